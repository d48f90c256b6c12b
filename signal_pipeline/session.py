"""
Session management: the auth token, its recovery, and 401 policy.

The token lives in local storage under "authToken" (with "user" beside
it). Storage writes from anywhere, including a storeAuth pushed from the
portal through the relay, update the live session through the store's
change listeners.

401 policy is scoped by endpoint:
- verification endpoint (GET /auth/me): resync; if that fails the session
  is cleared and SessionExpiredError tells the surface to show sign-in
- any other endpoint: resync and retry once; on failure the error goes
  back to the caller and the session is left alone
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

from .bridge import CHECK_AUTH_FROM_PORTAL
from .config import VERIFY_ENDPOINT
from .errors import SessionExpiredError
from .models import AuthSession
from .store import LocalStore

logger = logging.getLogger(__name__)

TOKEN_KEY = "authToken"
USER_KEY = "user"
SETTINGS_KEY = "settings"

DEFAULT_SETTINGS = {"schedulingUrl": "", "emailTone": "professional"}

SessionListener = Callable[[Optional[AuthSession]], None]


class SessionManager:

    def __init__(self, store: LocalStore, bridge=None, verify_endpoint: str = VERIFY_ENDPOINT):
        self.store = store
        self.bridge = bridge
        self.verify_endpoint = verify_endpoint
        self._session: Optional[AuthSession] = None
        self._listeners: List[SessionListener] = []
        self._lock = threading.Lock()
        self._unsubscribe_store = store.subscribe(self._on_storage_change)

    @property
    def session(self) -> Optional[AuthSession]:
        with self._lock:
            return self._session

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    def get_token(self) -> Optional[str]:
        session = self.session
        return session.token if session else None

    # -------------------------------------------------------------------------
    # lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> Optional[AuthSession]:
        """Load the persisted session; without one, try exactly one portal resync."""
        token = self.store.get(TOKEN_KEY)
        if token:
            self._replace(AuthSession(token=token, user=self.store.get(USER_KEY)))
            return self.session
        return self.resync()

    def resync(self) -> Optional[AuthSession]:
        """
        Ask the relay for the portal's session and adopt it.

        Returns the new session, or None when the portal has none (or the
        relay is unreachable).
        """
        if self.bridge is None:
            return None
        response = self.bridge.relay(CHECK_AUTH_FROM_PORTAL)
        if not response or not response.get("success") or not response.get("token"):
            logger.info(f"Could not sync auth from portal: {(response or {}).get('error')}")
            return None

        # the storage listener swaps in the new session
        self.store.set_many({TOKEN_KEY: response["token"], USER_KEY: response.get("user")})
        logger.info("Synced auth from portal")
        return self.session

    def verify(self, client) -> Optional[Dict]:
        """
        Confirm the session against the verification endpoint.

        Raises:
            SessionExpiredError: the session is gone and could not be recovered
        """
        user = client.get(self.verify_endpoint)
        if isinstance(user, dict) and user:
            session = self.session
            if session and session.user != user:
                self.store.set(USER_KEY, user)
        return user

    def sign_out(self) -> None:
        self.store.remove([TOKEN_KEY, USER_KEY])

    def close(self) -> None:
        self._unsubscribe_store()

    # -------------------------------------------------------------------------
    # 401 policy
    # -------------------------------------------------------------------------

    def is_verification(self, endpoint: str) -> bool:
        return endpoint.split("?")[0].rstrip("/") == self.verify_endpoint.rstrip("/")

    def on_unauthorized(self, endpoint: str) -> bool:
        """
        React to a 401 from endpoint.

        Returns True when a fresh session was obtained and the caller should
        retry once.

        Raises:
            SessionExpiredError: verification endpoint and no session to recover
        """
        logger.info(f"401 from {endpoint}, attempting to refresh from portal")
        if self.resync():
            return True
        if self.is_verification(endpoint):
            self._expire(endpoint)
        return False

    def unauthorized_after_retry(self, endpoint: str) -> None:
        """The retried call still got a 401."""
        if self.is_verification(endpoint):
            self._expire(endpoint)

    def _expire(self, endpoint: str) -> None:
        self.sign_out()
        raise SessionExpiredError(endpoint=endpoint)

    # -------------------------------------------------------------------------
    # preferences
    # -------------------------------------------------------------------------

    def preferences(self) -> Dict:
        settings = self.store.get(SETTINGS_KEY) or {}
        return {**DEFAULT_SETTINGS, **settings}

    def save_preferences(self, scheduling_url: Optional[str] = None, email_tone: Optional[str] = None) -> Dict:
        settings = self.preferences()
        if scheduling_url is not None:
            settings["schedulingUrl"] = scheduling_url
        if email_tone is not None:
            settings["emailTone"] = email_tone
        self.store.set(SETTINGS_KEY, settings)
        return settings

    # -------------------------------------------------------------------------
    # change propagation
    # -------------------------------------------------------------------------

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def _on_storage_change(self, changes: Dict[str, Dict]) -> None:
        if TOKEN_KEY in changes:
            token = changes[TOKEN_KEY].get("newValue")
            if token:
                user = changes[USER_KEY]["newValue"] if USER_KEY in changes else self.store.get(USER_KEY)
                self._replace(AuthSession(token=token, user=user))
            else:
                self._replace(None)
        elif USER_KEY in changes:
            session = self.session
            if session:
                self._replace(AuthSession(token=session.token, user=changes[USER_KEY].get("newValue")))

    def _replace(self, session: Optional[AuthSession]) -> None:
        with self._lock:
            if session == self._session:
                return
            self._session = session
            listeners = list(self._listeners)
        logger.debug(f"Session {'updated' if session else 'cleared'}")
        for listener in listeners:
            try:
                listener(session)
            except Exception as e:
                logger.warning(f"Session listener failed: {e}")
