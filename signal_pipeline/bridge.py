"""
Message bridge between the requesting surface, the relay and page contexts.

Each context is an isolated handler: it owns its own state and only sees
JSON copies of the messages sent to it. Two transports deliver messages:

- LocalTransport: in-process, one single-worker executor per context
- HttpTransport: requests against the backend service (backend/main.py)

The surface never talks to a page directly. It wraps its request in a
sendToContentScript envelope addressed to the relay, which forwards it
and returns the page's response verbatim. The envelope carries the inner
message's correlation id, so one id identifies the whole round trip.
"""

import json
import time
import uuid
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests

from .config import BRIDGE_TIMEOUT, HTTP_TIMEOUT, READINESS_DELAY
from .detection import PageContent, collect_signals, detect, detect_tech_stack, find_contacts
from .errors import BridgeError
from .retry import RetryExhausted, RetryPolicy

logger = logging.getLogger(__name__)


# =============================================================================
# ACTIONS
# =============================================================================

# Page context
GET_PAGE_DATA = "getPageData"
GET_TECH_STACK = "getTechStack"
GET_SIGNALS = "getSignals"
GET_CONTACTS = "getContacts"

PAGE_ACTIONS = frozenset({GET_PAGE_DATA, GET_TECH_STACK, GET_SIGNALS, GET_CONTACTS})

# Relay context
SEND_TO_CONTENT_SCRIPT = "sendToContentScript"
CHECK_AUTH_FROM_PORTAL = "checkAuthFromPortal"
STORE_AUTH = "storeAuth"

# Portal context
GET_SESSION = "getSession"

RELAY_CONTEXT_ID = "relay"
PORTAL_CONTEXT_ID = "portal"

UNAVAILABLE_MESSAGE = "Unable to analyze this page. Try refreshing."


@dataclass(frozen=True)
class Message:
    action: str
    payload: Dict[str, Any] = field(default_factory=dict)
    correlation_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict:
        return {"action": self.action, "correlationId": self.correlation_id, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: Dict) -> "Message":
        if not isinstance(data, dict) or not data.get("action"):
            raise BridgeError("Malformed message: missing action")
        return cls(
            action=str(data["action"]),
            payload=dict(data.get("payload") or {}),
            correlation_id=str(data.get("correlationId") or uuid.uuid4().hex),
        )


# =============================================================================
# CONTEXTS
# =============================================================================

class ContextHandler:
    """Base for an execution context. Subclasses answer one message at a time."""

    def handle(self, message: Message) -> Dict:
        raise NotImplementedError


class PageContext(ContextHandler):
    """
    The context living inside one web page.

    Owns the captured page content. The first detection waits a short
    readiness delay; later requests answer immediately.
    """

    def __init__(
        self,
        content: PageContent,
        readiness_delay: float = READINESS_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.content = content
        self.readiness_delay = readiness_delay
        self._sleep = sleep
        self._ready = False

    def _await_ready(self) -> None:
        if not self._ready:
            if self.readiness_delay > 0:
                self._sleep(self.readiness_delay)
            self._ready = True

    def handle(self, message: Message) -> Dict:
        if message.action not in PAGE_ACTIONS:
            return {"error": f"Unknown action: {message.action}"}

        self._await_ready()
        if message.action == GET_PAGE_DATA:
            return detect(self.content).to_dict()
        if message.action == GET_TECH_STACK:
            return {"techStack": [t.to_dict() for t in detect_tech_stack(self.content)]}
        if message.action == GET_SIGNALS:
            return {"signals": collect_signals(self.content).to_dict()}
        return {"contacts": [c.to_dict() for c in find_contacts(self.content)]}


class PortalContext(ContextHandler):
    """The portal surface; hands out whatever session it currently holds."""

    def __init__(self, session_provider: Callable[[], Optional[Dict]]):
        self._session_provider = session_provider

    def handle(self, message: Message) -> Dict:
        if message.action != GET_SESSION:
            return {"error": f"Unknown action: {message.action}"}
        session = self._session_provider() or {}
        if not session.get("token"):
            return {"success": False, "error": "No active portal session"}
        return {"success": True, "token": session["token"], "user": session.get("user")}


class RelayContext(ContextHandler):
    """
    Background relay: forwards envelopes to page contexts and brokers auth.

    Args:
        transport: Used to reach the target contexts
        store: Local storage that receives sessions pushed by storeAuth
        portal_id: Context id of the portal, when one is registered
    """

    def __init__(self, transport: "LocalTransport", store=None, portal_id: str = PORTAL_CONTEXT_ID):
        self.transport = transport
        self.store = store
        self.portal_id = portal_id

    def handle(self, message: Message) -> Dict:
        if message.action == SEND_TO_CONTENT_SCRIPT:
            return self._forward(message)
        if message.action == CHECK_AUTH_FROM_PORTAL:
            return self._check_portal(message)
        if message.action == STORE_AUTH:
            return self._store_auth(message)
        return {"error": f"Unknown action: {message.action}"}

    def _forward(self, message: Message) -> Dict:
        target = message.payload.get("targetContextId")
        inner = message.payload.get("message") or {}
        if not target:
            return {"error": "Missing targetContextId"}
        try:
            inner_message = Message.from_dict({**inner, "correlationId": message.correlation_id})
            return self.transport.deliver(str(target), inner_message)
        except BridgeError as e:
            return {"error": str(e)}

    def _check_portal(self, message: Message) -> Dict:
        try:
            response = self.transport.deliver(self.portal_id, Message(GET_SESSION))
        except BridgeError as e:
            logger.debug(f"Portal unreachable: {e}")
            return {"success": False, "error": "No portal context available"}
        response.pop("correlationId", None)
        return response

    def _store_auth(self, message: Message) -> Dict:
        token = message.payload.get("token")
        if not token:
            return {"success": False, "error": "Missing token"}
        if self.store is None:
            return {"success": False, "error": "No storage attached"}
        self.store.set_many({"authToken": token, "user": message.payload.get("user")})
        logger.info("Stored session pushed from portal")
        return {"success": True}


# =============================================================================
# TRANSPORTS
# =============================================================================

class LocalTransport:
    """
    In-process registry of contexts.

    Every context gets its own single-worker executor, so a context handles
    one message at a time and never shares a thread with another context.
    Messages and responses cross the boundary as JSON text.
    """

    def __init__(self, timeout: float = BRIDGE_TIMEOUT):
        self.timeout = timeout
        self._contexts: Dict[str, ContextHandler] = {}
        self._executors: Dict[str, ThreadPoolExecutor] = {}
        self._lock = threading.Lock()

    def register(self, handler: ContextHandler, context_id: Optional[str] = None) -> str:
        context_id = context_id or uuid.uuid4().hex[:12]
        with self._lock:
            old = self._executors.pop(context_id, None)
            self._contexts[context_id] = handler
            self._executors[context_id] = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"ctx-{context_id}"
            )
        if old is not None:
            old.shutdown(wait=False)
        logger.debug(f"Registered {type(handler).__name__} as {context_id}")
        return context_id

    def unregister(self, context_id: str) -> None:
        with self._lock:
            self._contexts.pop(context_id, None)
            executor = self._executors.pop(context_id, None)
        if executor is not None:
            executor.shutdown(wait=False)

    def has(self, context_id: str) -> bool:
        with self._lock:
            return context_id in self._contexts

    def get(self, context_id: str) -> Optional[ContextHandler]:
        with self._lock:
            return self._contexts.get(context_id)

    @staticmethod
    def _dispatch(handler: ContextHandler, wire: str) -> str:
        message = Message.from_dict(json.loads(wire))
        try:
            response = dict(handler.handle(message))
        except Exception as e:
            logger.warning(f"Context failed on {message.action}: {e}")
            response = {"error": str(e)}
        response["correlationId"] = message.correlation_id
        return json.dumps(response, default=str)

    def deliver(self, context_id: str, message: Message) -> Dict:
        """
        Deliver one message and wait for the response.

        Raises:
            BridgeError: unknown context, timeout, or a response that does
                         not answer this message
        """
        with self._lock:
            handler = self._contexts.get(context_id)
            executor = self._executors.get(context_id)
        if handler is None or executor is None:
            raise BridgeError(f"Receiving end does not exist: {context_id}")

        wire = json.dumps(message.to_dict())
        try:
            future = executor.submit(self._dispatch, handler, wire)
            raw = future.result(timeout=self.timeout)
        except FutureTimeout:
            raise BridgeError(f"Context {context_id} did not answer {message.action} in {self.timeout}s")
        except RuntimeError as e:
            # executor shut down between lookup and submit
            raise BridgeError(f"Context {context_id} is gone: {e}")

        response = json.loads(raw)
        if response.get("correlationId") != message.correlation_id:
            raise BridgeError(f"Mismatched response for {message.action} from {context_id}")
        return response

    def close(self) -> None:
        with self._lock:
            executors = list(self._executors.values())
            self._executors.clear()
            self._contexts.clear()
        for executor in executors:
            executor.shutdown(wait=False)


class HttpTransport:
    """Delivers messages to contexts hosted by the backend service."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = HTTP_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def deliver(self, context_id: str, message: Message) -> Dict:
        url = f"{self.base_url}/contexts/{context_id}/messages"
        try:
            response = self.session.post(url, json=message.to_dict(), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise BridgeError(f"Could not reach {url}: {e}")

        if response.status_code == 404:
            raise BridgeError(f"Receiving end does not exist: {context_id}")
        if response.status_code >= 400:
            raise BridgeError(f"Context {context_id} returned HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError:
            raise BridgeError(f"Context {context_id} returned a non-JSON response")

        if not isinstance(data, dict) or data.get("correlationId") != message.correlation_id:
            raise BridgeError(f"Mismatched response for {message.action} from {context_id}")
        return data


# =============================================================================
# BRIDGE
# =============================================================================

@dataclass(frozen=True)
class BridgeResult:
    ok: bool
    data: Optional[Dict] = None
    error: Optional[str] = None
    attempts: int = 0


class MessageBridge:
    """
    Request/response messaging from the surface to page contexts via the relay.

    Delivery failures and {error} payloads are retried under the retry
    policy (3 attempts, 200 ms apart by default). When every attempt fails
    the caller gets a failed BridgeResult with a user-facing message.
    """

    def __init__(self, transport, retry: Optional[RetryPolicy] = None, relay_id: str = RELAY_CONTEXT_ID):
        self.transport = transport
        self.retry = retry or RetryPolicy()
        self.relay_id = relay_id

    def request(self, context_id: str, action: str, payload: Optional[Dict] = None) -> BridgeResult:
        if action not in PAGE_ACTIONS:
            raise ValueError(f"Unknown page action: {action}")

        attempts = 0

        def attempt() -> Dict:
            nonlocal attempts
            attempts += 1
            inner = Message(action, payload or {})
            envelope = Message(
                SEND_TO_CONTENT_SCRIPT,
                {"targetContextId": context_id, "message": inner.to_dict()},
                correlation_id=inner.correlation_id,
            )
            response = self.transport.deliver(self.relay_id, envelope)
            if response.get("error"):
                raise BridgeError(str(response["error"]))
            response.pop("correlationId", None)
            return response

        try:
            data = self.retry.call(attempt, retry_on=(BridgeError,), label=action)
        except RetryExhausted as e:
            logger.warning(f"{action} to {context_id} failed after {e.attempts} attempts: {e.last_error}")
            return BridgeResult(ok=False, error=UNAVAILABLE_MESSAGE, attempts=attempts)
        return BridgeResult(ok=True, data=data, attempts=attempts)

    def relay(self, action: str, payload: Optional[Dict] = None) -> Optional[Dict]:
        """One-shot message to the relay itself. None when it cannot be reached."""
        try:
            response = self.transport.deliver(self.relay_id, Message(action, payload or {}))
        except BridgeError as e:
            logger.debug(f"Relay {action} failed: {e}")
            return None
        response.pop("correlationId", None)
        return response
