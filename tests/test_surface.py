"""
Prospecting surface end to end over an in-process bridge: sign-in flow,
page loading, analyze with audit, sharing, teardown.
"""

import os
import sys

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

import pytest

from signal_pipeline.analysis import ANALYZE_ENDPOINT, LOOKUP_ENDPOINT, AnalysisPipeline
from signal_pipeline.audit import AuditOrchestrator
from signal_pipeline.bridge import (
    RELAY_CONTEXT_ID,
    STORE_AUTH,
    UNAVAILABLE_MESSAGE,
    LocalTransport,
    MessageBridge,
    PageContext,
    RelayContext,
)
from signal_pipeline.detection import PageContent
from signal_pipeline.errors import ApiError, SessionExpiredError
from signal_pipeline.models import AUDIT_COMPLETED, AUDIT_TIMED_OUT
from signal_pipeline.retry import RetryPolicy
from signal_pipeline.session import TOKEN_KEY, USER_KEY, SessionManager
from signal_pipeline.store import LocalStore
from signal_pipeline.surface import ProspectingSurface, ViewState, is_browser_internal

PAGE = PageContent(
    url="https://acme-plumbing.com/",
    html="""<html><head><title>Home | Acme Plumbing</title></head>
<body><p>Write to info@acme-plumbing.com or call (555) 123-4567</p></body></html>""",
)

OTHER_PAGE = PageContent(url="https://other-shop.example/", html="<title>Other</title>")


class FakeApi:
    def __init__(self, replies):
        self.replies = dict(replies)
        self.calls = []

    def _reply(self, method, endpoint, payload):
        self.calls.append((method, endpoint, payload))
        reply = self.replies.get((method, endpoint), {})
        if isinstance(reply, Exception):
            raise reply
        return reply

    def post(self, endpoint, body=None):
        return self._reply("POST", endpoint, body)

    def get(self, endpoint, params=None):
        return self._reply("GET", endpoint, params)

    def count(self, method, endpoint):
        return sum(1 for m, e, _ in self.calls if m == method and e == endpoint)


def _replies(overrides=None):
    replies = {
        ("GET", "/auth/me"): {"name": "Sam"},
        ("POST", "/audits"): {"auditId": "a1"},
        ("GET", "/audits/a1"): {"status": "completed", "performanceScore": 48, "desktopPerformanceScore": 77},
        ("POST", ANALYZE_ENDPOINT): {"id": "c1", "score": 81, "analysis": {"summary": "Needs speed work"}},
        ("GET", LOOKUP_ENDPOINT): {"data": []},
        ("POST", "/audits/a1/magic-link"): {"magicLink": "https://portal.test/r/xyz"},
    }
    replies.update(overrides or {})
    return replies


class Panel:
    """Everything one open panel needs, wired in-process."""

    def __init__(self, tmp_path, replies=None, token="tok-1", max_attempts=3):
        self.store = LocalStore(str(tmp_path / "panel.db"))
        if token:
            self.store.set_many({TOKEN_KEY: token, USER_KEY: {"name": "Sam"}})
        self.transport = LocalTransport(timeout=5)
        self.transport.register(RelayContext(self.transport, store=self.store), RELAY_CONTEXT_ID)
        self.page_id = self.transport.register(PageContext(PAGE, readiness_delay=0))
        self.bridge = MessageBridge(self.transport, RetryPolicy(sleep=lambda s: None))
        self.sessions = SessionManager(self.store, self.bridge, verify_endpoint="/auth/me")
        self.client = FakeApi(replies or _replies())
        self.audits = AuditOrchestrator(self.client, poll_interval=0, max_attempts=max_attempts,
                                        sleep=lambda s: None, portal_url="https://portal.test")
        self.surface = ProspectingSurface(self.bridge, self.sessions, self.client, self.audits,
                                          AnalysisPipeline(self.client, self.store),
                                          portal_url="https://portal.test")

    def close(self):
        self.surface.close()
        self.sessions.close()
        self.transport.close()


@pytest.fixture
def panel(tmp_path):
    p = Panel(tmp_path)
    yield p
    p.close()


def _loaded(panel):
    assert panel.surface.open() == ViewState.READY
    assert panel.surface.load_page(panel.page_id, PAGE.url) is not None
    return panel.surface


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

def test_open_without_any_session_shows_login(tmp_path):
    p = Panel(tmp_path, token=None)
    try:
        assert p.surface.open() == ViewState.LOGIN
        assert p.surface.sign_in() is False
        assert p.surface.message == "Sign in at https://portal.test/login?extension=true"
    finally:
        p.close()


def test_pushed_session_signs_panel_in(tmp_path):
    p = Panel(tmp_path, token=None)
    try:
        p.surface.open()
        p.bridge.relay(STORE_AUTH, {"token": "tok-pushed", "user": {"name": "Sam"}})

        assert p.surface.view == ViewState.READY
        assert p.surface.message == "Signed in!"
        assert p.sessions.get_token() == "tok-pushed"
    finally:
        p.close()


def test_expired_session_on_open_shows_login(tmp_path):
    p = Panel(tmp_path, replies=_replies({("GET", "/auth/me"): SessionExpiredError()}))
    try:
        assert p.surface.open() == ViewState.LOGIN
        assert p.surface.message == "Session expired. Please sign in again."
    finally:
        p.close()


def test_sign_out_returns_to_login(panel):
    _loaded(panel)
    panel.surface.sign_out()
    assert panel.surface.view == ViewState.LOGIN
    assert panel.sessions.session is None


# ---------------------------------------------------------------------------
# Page loading
# ---------------------------------------------------------------------------

def test_browser_internal_pages_are_refused(panel):
    assert is_browser_internal("chrome://extensions")
    assert is_browser_internal("")
    assert not is_browser_internal("https://acme-plumbing.com/")

    panel.surface.open()
    assert panel.surface.load_page(panel.page_id, "chrome://settings") is None
    assert panel.surface.view == ViewState.UNAVAILABLE
    assert panel.surface.message == "Cannot analyze browser pages"


def test_unreachable_page_shows_unavailable(panel):
    panel.surface.open()
    assert panel.surface.load_page("closed-tab", "https://acme-plumbing.com/") is None
    assert panel.surface.view == ViewState.UNAVAILABLE
    assert panel.surface.message == UNAVAILABLE_MESSAGE


def test_load_page_shows_existing_analysis(tmp_path):
    replies = _replies({("GET", LOOKUP_ENDPOINT): {"data": [{"id": "c0", "score": 55}]}})
    p = Panel(tmp_path, replies=replies)
    try:
        _loaded(p)
        assert p.surface.view == ViewState.SAVED
        assert p.surface.lead.tier == "warm"
        assert p.surface.snapshot.domain == "acme-plumbing.com"
    finally:
        p.close()


def test_load_page_without_session_skips_lookup(tmp_path):
    p = Panel(tmp_path, token=None)
    try:
        snapshot = p.surface.load_page(p.page_id, PAGE.url)

        assert snapshot.domain == "acme-plumbing.com"
        assert p.surface.view == ViewState.READY
        assert p.surface.lead is None
        assert p.client.calls == []
    finally:
        p.close()


# ---------------------------------------------------------------------------
# Analyze
# ---------------------------------------------------------------------------

def test_analyze_audits_then_scores(panel):
    surface = _loaded(panel)

    lead = surface.analyze()

    assert lead is not None
    assert lead.tier == "hot"
    assert lead.linked_audit_id == "a1"
    assert surface.view == ViewState.SAVED
    assert surface.message == "Site analyzed successfully!"
    assert surface.audit.status == AUDIT_COMPLETED
    assert surface.busy is False

    body = [p for m, e, p in panel.client.calls if e == ANALYZE_ENDPOINT][0]
    assert body["signals"]["mobilePageSpeed"] == 48
    assert body["signals"]["desktopPageSpeed"] == 77
    assert body["signals"]["hasPhone"] is True


def test_second_analyze_reuses_displayed_audit(panel):
    surface = _loaded(panel)
    surface.analyze()
    surface.analyze()

    assert panel.client.count("POST", "/audits") == 1
    assert panel.client.count("POST", ANALYZE_ENDPOINT) == 2


def test_analyze_continues_when_audit_times_out(tmp_path):
    replies = _replies({("GET", "/audits/a1"): {"status": "processing"}})
    p = Panel(tmp_path, replies=replies, max_attempts=2)
    try:
        surface = _loaded(p)
        lead = surface.analyze()

        assert lead is not None
        assert surface.audit.status == AUDIT_TIMED_OUT
        assert p.client.count("GET", "/audits/a1") == 2
        body = [b for m, e, b in p.client.calls if e == ANALYZE_ENDPOINT][0]
        assert body["signals"]["mobilePageSpeed"] is None
    finally:
        p.close()


def test_analyze_error_leaves_panel_usable(tmp_path):
    replies = _replies({("POST", ANALYZE_ENDPOINT): ApiError("Analysis failed", status=500)})
    p = Panel(tmp_path, replies=replies)
    try:
        surface = _loaded(p)
        assert surface.analyze() is None
        assert surface.view == ViewState.ERROR
        assert surface.message == "Analysis failed"
        assert surface.busy is False
    finally:
        p.close()


def test_analyze_without_page(panel):
    panel.surface.open()
    assert panel.surface.analyze() is None
    assert panel.surface.view == ViewState.ERROR


# ---------------------------------------------------------------------------
# Follow-ups
# ---------------------------------------------------------------------------

def test_send_audit_drafts_email(panel):
    surface = _loaded(panel)
    surface.analyze()

    draft = surface.send_audit()

    assert draft["to"] == "info@acme-plumbing.com"
    assert draft["subject"] == "Website Audit for acme-plumbing.com"
    assert "https://portal.test/r/xyz" in draft["body"]
    assert draft["body"].endswith("Sam")
    assert surface.audit_link() == "https://portal.test/audits/a1"


def test_send_audit_without_audit(panel):
    surface = _loaded(panel)
    assert surface.send_audit() is None
    assert surface.message == "No audit available to send"


def test_save_prospect_and_contacts(panel):
    surface = _loaded(panel)
    assert surface.save_prospect() is False
    surface.analyze()

    assert surface.save_prospect() is True
    assert surface.save_contacts() == 1
    assert surface.message == "1 contacts saved!"
    assert panel.client.count("POST", "/crm/target-companies/c1/claim") == 1


# ---------------------------------------------------------------------------
# Navigation and teardown
# ---------------------------------------------------------------------------

def test_navigating_away_releases_audit(panel):
    surface = _loaded(panel)
    surface.analyze()
    assert panel.audits.cached(PAGE.url) is not None

    other_id = panel.transport.register(PageContext(OTHER_PAGE, readiness_delay=0))
    surface.load_page(other_id, OTHER_PAGE.url)

    assert panel.audits.cached(PAGE.url) is None
    assert surface.audit is None
    assert surface.lead is None


def test_close_stops_audits(panel):
    _loaded(panel)
    panel.surface.close()
    assert panel.audits.closed is True
