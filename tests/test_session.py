"""
Session manager and API client: endpoint-scoped 401 policy, portal resync,
storage-driven session updates, error message extraction.
"""

import os
import sys
import json

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

import pytest
import requests

from signal_pipeline.api_client import ApiClient, error_message
from signal_pipeline.bridge import CHECK_AUTH_FROM_PORTAL
from signal_pipeline.errors import ApiError, SessionExpiredError
from signal_pipeline.session import DEFAULT_SETTINGS, TOKEN_KEY, USER_KEY, SessionManager
from signal_pipeline.store import LocalStore


def _response(status, data=None, text=None):
    r = requests.Response()
    r.status_code = status
    r.encoding = "utf-8"
    if text is not None:
        r._content = text.encode("utf-8")
    elif data is not None:
        r._content = json.dumps(data).encode("utf-8")
    else:
        r._content = b""
    return r


class FakeHttp:
    """Stands in for requests.Session; replies from a queue."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, headers=None, json=None, params=None, timeout=None):
        self.calls.append({"method": method, "url": url, "headers": headers, "json": json, "params": params})
        return self.responses.pop(0)


class FakeRelay:
    """Stands in for MessageBridge.relay; answers checkAuthFromPortal."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def relay(self, action, payload=None):
        self.calls.append(action)
        return self.replies.pop(0) if self.replies else {"success": False, "error": "No portal session"}


@pytest.fixture
def store(tmp_path):
    return LocalStore(str(tmp_path / "session.db"))


def _signed_in(store, relay=None):
    store.set_many({TOKEN_KEY: "tok-old", USER_KEY: {"email": "rep@agency.io"}})
    sessions = SessionManager(store, relay or FakeRelay(), verify_endpoint="/auth/me")
    sessions.start()
    return sessions


# ---------------------------------------------------------------------------
# Startup and resync
# ---------------------------------------------------------------------------

def test_start_uses_stored_token_without_resync(store):
    relay = FakeRelay()
    sessions = _signed_in(store, relay)

    assert sessions.get_token() == "tok-old"
    assert sessions.session.user == {"email": "rep@agency.io"}
    assert relay.calls == []


def test_start_without_token_resyncs_exactly_once(store):
    relay = FakeRelay()
    sessions = SessionManager(store, relay)

    assert sessions.start() is None
    assert relay.calls == [CHECK_AUTH_FROM_PORTAL]
    assert sessions.is_authenticated is False


def test_start_adopts_portal_session(store):
    relay = FakeRelay({"success": True, "token": "tok-portal", "user": {"name": "Rep"}})
    sessions = SessionManager(store, relay)

    session = sessions.start()

    assert session.token == "tok-portal"
    assert store.get(TOKEN_KEY) == "tok-portal"
    assert store.get(USER_KEY) == {"name": "Rep"}


def test_storage_write_updates_live_session(store):
    sessions = SessionManager(store, FakeRelay())
    seen = []
    sessions.subscribe(seen.append)

    # what the relay's storeAuth does
    store.set_many({TOKEN_KEY: "tok-pushed", USER_KEY: {"name": "Rep"}})

    assert sessions.get_token() == "tok-pushed"
    assert [s.token for s in seen] == ["tok-pushed"]

    sessions.sign_out()
    assert sessions.session is None
    assert seen[-1] is None


def test_closed_manager_ignores_storage(store):
    sessions = SessionManager(store, FakeRelay())
    sessions.close()
    store.set(TOKEN_KEY, "tok-late")
    assert sessions.session is None


def test_preferences_defaults_and_save(store):
    sessions = SessionManager(store)
    assert sessions.preferences() == DEFAULT_SETTINGS

    saved = sessions.save_preferences(scheduling_url="https://cal.example/rep")
    assert saved == {"schedulingUrl": "https://cal.example/rep", "emailTone": "professional"}
    assert sessions.preferences()["emailTone"] == "professional"


# ---------------------------------------------------------------------------
# 401 policy
# ---------------------------------------------------------------------------

def test_request_sends_bearer_token(store):
    sessions = _signed_in(store)
    http = FakeHttp(_response(200, {"id": "1"}))
    client = ApiClient(sessions, base_url="http://api.test/", http=http)

    assert client.get("/crm/target-companies", params={"domain": "acme.com"}) == {"id": "1"}
    call = http.calls[0]
    assert call["url"] == "http://api.test/crm/target-companies"
    assert call["headers"]["Authorization"] == "Bearer tok-old"
    assert call["params"] == {"domain": "acme.com"}


def test_401_on_other_endpoint_keeps_session(store):
    sessions = _signed_in(store)
    http = FakeHttp(_response(401, {"message": "nope"}))
    client = ApiClient(sessions, base_url="http://api.test", http=http)

    with pytest.raises(ApiError) as exc:
        client.post("/audits", {"url": "https://acme.com"})

    assert not isinstance(exc.value, SessionExpiredError)
    assert exc.value.status == 401
    assert exc.value.message == "Not authorized. Please sign in again."
    assert sessions.get_token() == "tok-old"
    assert store.get(TOKEN_KEY) == "tok-old"


def test_401_on_verification_endpoint_signs_out(store):
    sessions = _signed_in(store)
    http = FakeHttp(_response(401))
    client = ApiClient(sessions, base_url="http://api.test", http=http)

    with pytest.raises(SessionExpiredError):
        sessions.verify(client)

    assert sessions.session is None
    assert store.get(TOKEN_KEY) is None


def test_401_resync_then_single_retry(store):
    relay = FakeRelay({"success": True, "token": "tok-fresh", "user": None})
    sessions = _signed_in(store, relay)
    http = FakeHttp(_response(401), _response(200, {"auditId": "a1"}))
    client = ApiClient(sessions, base_url="http://api.test", http=http)

    assert client.post("/audits", {"url": "https://acme.com"}) == {"auditId": "a1"}
    assert [c["headers"]["Authorization"] for c in http.calls] == ["Bearer tok-old", "Bearer tok-fresh"]
    assert relay.calls == [CHECK_AUTH_FROM_PORTAL]


def test_verification_still_401_after_resync(store):
    relay = FakeRelay({"success": True, "token": "tok-fresh", "user": None})
    sessions = _signed_in(store, relay)
    http = FakeHttp(_response(401), _response(401))
    client = ApiClient(sessions, base_url="http://api.test", http=http)

    with pytest.raises(SessionExpiredError):
        client.get("/auth/me")

    assert len(http.calls) == 2
    assert sessions.session is None


def test_verify_refreshes_user(store):
    sessions = _signed_in(store)
    http = FakeHttp(_response(200, {"email": "rep@agency.io", "name": "Rep"}))
    client = ApiClient(sessions, base_url="http://api.test", http=http)

    assert sessions.verify(client)["name"] == "Rep"
    assert store.get(USER_KEY) == {"email": "rep@agency.io", "name": "Rep"}
    assert sessions.session.user["name"] == "Rep"


def test_server_error_raises_api_error(store):
    sessions = _signed_in(store)
    http = FakeHttp(_response(500, {"message": "Audit service down"}))
    client = ApiClient(sessions, base_url="http://api.test", http=http)

    with pytest.raises(ApiError) as exc:
        client.get("/audits/a1")
    assert exc.value.status == 500
    assert exc.value.message == "Audit service down"


def test_empty_success_body_parses_to_empty_dict(store):
    sessions = _signed_in(store)
    client = ApiClient(sessions, base_url="http://api.test", http=FakeHttp(_response(204)))
    assert client.post("/crm/contacts", {}) == {}


def test_error_message_extraction():
    assert error_message(_response(400, {"message": "Bad URL"})) == "Bad URL"
    assert error_message(_response(400, {"detail": "x"})) == '{"detail": "x"}'
    assert error_message(_response(502, text="Bad Gateway")) == "Bad Gateway"
    assert error_message(_response(503)) == "API error: 503"
