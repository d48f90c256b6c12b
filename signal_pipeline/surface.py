"""
The requesting surface: one open prospecting panel for one page.

Holds what the panel shows (snapshot, lead record, audit, view state and a
status message) and runs each user action through the bridge, the audit
orchestrator and the analysis pipeline. Actions never raise; failures land
in view/message and leave the panel ready for another try.
"""

import logging
from typing import Dict, Optional

from .analysis import AnalysisPipeline
from .audit import AuditOrchestrator
from .bridge import GET_PAGE_DATA, MessageBridge
from .config import PORTAL_URL
from .errors import ApiError, SessionExpiredError
from .models import (
    AUDIT_COMPLETED,
    AUDIT_FAILED,
    AuditResult,
    AuthSession,
    LeadRecord,
    PageSnapshot,
)
from .outreach import claim, compose_audit_email, first_email, generate_outreach, save_contacts
from .session import SessionManager

logger = logging.getLogger(__name__)


class ViewState:
    LOGIN = "login"
    READY = "ready"
    UNAVAILABLE = "unavailable"
    ANALYZING = "analyzing"
    AUDITING = "auditing"
    SAVED = "saved"
    ERROR = "error"


BROWSER_INTERNAL_PREFIXES = ("chrome://", "chrome-extension://", "about:", "edge://")


def is_browser_internal(url: Optional[str]) -> bool:
    return not url or url.startswith(BROWSER_INTERNAL_PREFIXES)


class ProspectingSurface:

    def __init__(
        self,
        bridge: MessageBridge,
        sessions: SessionManager,
        client,
        audits: AuditOrchestrator,
        pipeline: AnalysisPipeline,
        portal_url: str = PORTAL_URL,
    ):
        self.bridge = bridge
        self.sessions = sessions
        self.client = client
        self.audits = audits
        self.pipeline = pipeline
        self.portal_url = portal_url.rstrip("/")

        self.view = ViewState.LOGIN
        self.message = ""
        self.busy = False
        self.context_id: Optional[str] = None
        self.url: Optional[str] = None
        self.snapshot: Optional[PageSnapshot] = None
        self.lead: Optional[LeadRecord] = None
        self.audit: Optional[AuditResult] = None
        self.email_draft: Optional[Dict] = None

        self._unsubscribe = sessions.subscribe(self._on_session)

    # -------------------------------------------------------------------------
    # session
    # -------------------------------------------------------------------------

    @property
    def login_url(self) -> str:
        return f"{self.portal_url}/login?extension=true"

    def open(self) -> str:
        """Restore (or resync) the session and verify it."""
        if self.sessions.start() is None:
            self._show(ViewState.LOGIN, "")
            return self.view
        try:
            self.sessions.verify(self.client)
        except SessionExpiredError as e:
            self._show(ViewState.LOGIN, e.message)
            return self.view
        except ApiError as e:
            logger.warning(f"Could not verify session: {e}")
        self._show(ViewState.READY, "")
        return self.view

    def sign_in(self) -> bool:
        """Pick up a session from the portal; otherwise point at the login page."""
        if self.sessions.resync() is not None:
            self._show(ViewState.READY, "Signed in from portal!")
            return True
        self._show(ViewState.LOGIN, f"Sign in at {self.login_url}")
        return False

    def sign_out(self) -> None:
        self.sessions.sign_out()
        self._show(ViewState.LOGIN, "Signed out")

    def _on_session(self, session: Optional[AuthSession]) -> None:
        if session is None:
            self._show(ViewState.LOGIN, "")
        elif self.view == ViewState.LOGIN:
            self._show(ViewState.READY, "Signed in!")

    # -------------------------------------------------------------------------
    # page
    # -------------------------------------------------------------------------

    def load_page(self, context_id: str, url: str) -> Optional[PageSnapshot]:
        """Fetch the page snapshot for the page now in front of the user."""
        if self.url and self.url != url:
            self.audits.release(self.url)
            self.lead = None
            self.audit = None
            self.email_draft = None

        self.context_id = context_id
        self.url = url
        self.snapshot = None

        if is_browser_internal(url):
            self._show(ViewState.UNAVAILABLE, "Cannot analyze browser pages")
            return None

        result = self.bridge.request(context_id, GET_PAGE_DATA)
        if not result.ok:
            self._show(ViewState.UNAVAILABLE, result.error or "")
            return None

        self.snapshot = PageSnapshot.from_dict(result.data or {})
        self.audit = self.audits.cached(self.snapshot.url) or self.audit

        self.lead = None
        if self.sessions.is_authenticated:
            try:
                self.lead = self.pipeline.find_existing(self.snapshot.domain)
            except ApiError as e:
                logger.debug(f"No existing analysis for {self.snapshot.domain}: {e}")

        self._show(ViewState.SAVED if self.lead else ViewState.READY, "")
        return self.snapshot

    # -------------------------------------------------------------------------
    # actions
    # -------------------------------------------------------------------------

    def analyze(self) -> Optional[LeadRecord]:
        """Audit (or reuse the displayed audit), then score the page."""
        if self.busy:
            return None
        if self.snapshot is None:
            self._show(ViewState.ERROR, "No page data available")
            return None

        self.busy = True
        try:
            self._show(ViewState.AUDITING, "Running Audit...")
            audit = self.audits.run(self.snapshot.url)
            if audit.status != AUDIT_COMPLETED:
                logger.info(f"Audit {audit.status} for {self.snapshot.url}, analyzing with available data")
            self.audit = audit

            self._show(ViewState.ANALYZING, "Analyzing...")
            self.lead = self.pipeline.submit(self.snapshot, audit if audit.audit_id else None)
            self._show(ViewState.SAVED, "Site analyzed successfully!")
            return self.lead
        except SessionExpiredError as e:
            self._show(ViewState.LOGIN, e.message)
        except ApiError as e:
            self._show(ViewState.ERROR, e.message)
        finally:
            self.busy = False
        return None

    def run_audit(self) -> Optional[AuditResult]:
        """Standalone audit of the current page."""
        if self.busy:
            return None
        if self.snapshot is None:
            self._show(ViewState.ERROR, "No page URL available")
            return None

        self.busy = True
        settled = ViewState.SAVED if self.lead else ViewState.READY
        try:
            self._show(ViewState.AUDITING, "Running Audit...")
            result = self.audits.run(self.snapshot.url)
            self.audit = result
            if self.lead is not None and result.audit_id:
                self.lead = self.pipeline.link_audit(self.lead, result.audit_id)

            if result.status == AUDIT_COMPLETED:
                message = "Audit complete"
            elif result.status == AUDIT_FAILED:
                message = "Audit failed"
            else:
                message = "Audit timed out"
            self._show(settled, message)
            return result
        finally:
            self.busy = False

    def _audit_id(self) -> Optional[str]:
        if self.audit is not None and self.audit.audit_id:
            return self.audit.audit_id
        return self.lead.linked_audit_id if self.lead else None

    def audit_link(self) -> Optional[str]:
        audit_id = self._audit_id()
        return self.audits.audit_url(audit_id) if audit_id else None

    def send_audit(self) -> Optional[Dict]:
        """Create a magic link for the audit and draft the email around it."""
        audit_id = self._audit_id()
        if not audit_id:
            self.message = "No audit available to send"
            return None

        recipient = first_email(self.snapshot.contacts) if self.snapshot else None
        try:
            link = self.audits.magic_link(audit_id, recipient)
        except ApiError as e:
            self.message = e.message
            return None

        session = self.sessions.session
        sender = (session.user or {}).get("name") if session else None
        self.email_draft = compose_audit_email(
            link,
            domain=self.snapshot.domain if self.snapshot else None,
            recipient=recipient,
            sender=sender,
        )
        return self.email_draft

    def draft_outreach(self) -> Optional[Dict]:
        if self.lead is None:
            self.message = "Please analyze the site first"
            return None
        try:
            draft = generate_outreach(self.client, self.lead, self.sessions.preferences())
        except ApiError as e:
            self.message = e.message
            return None
        recipient = first_email(self.snapshot.contacts) if self.snapshot else None
        self.email_draft = {"to": recipient or "", **draft}
        return self.email_draft

    def save_prospect(self) -> bool:
        if self.lead is None:
            self.message = "Please analyze the site first"
            return False
        try:
            claim(self.client, self.lead)
        except ApiError as e:
            self.message = e.message
            return False
        self.message = "Added to your prospects!"
        return True

    def save_contacts(self) -> int:
        if self.lead is None or self.snapshot is None or not self.snapshot.contacts:
            self.message = "No contacts to save"
            return 0
        try:
            saved = save_contacts(self.client, self.lead, self.snapshot.contacts)
        except ApiError as e:
            self.message = e.message
            return 0
        self.message = f"{saved} contacts saved!"
        return saved

    # -------------------------------------------------------------------------
    # teardown
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """The panel went away: stop polling and forget the displayed audit."""
        self.audits.close()
        if self.url:
            self.audits.release(self.url)
        self._unsubscribe()

    def _show(self, view: str, message: str) -> None:
        self.view = view
        self.message = message
        logger.debug(f"View -> {view} {message!r}")
