"""
Page fetching: URL normalization, SSL fallback, PageContent loading.
"""

import os
import sys

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

import requests

from signal_pipeline import fetch
from signal_pipeline.fetch import fetch_html, load_page, normalize_url


class _Reply:
    def __init__(self, url, text, status_code=200):
        self.url = url
        self.text = text
        self.status_code = status_code


def test_normalize_url():
    assert normalize_url(" acme-plumbing.com ") == "https://acme-plumbing.com"
    assert normalize_url("http://acme-plumbing.com") == "http://acme-plumbing.com"


def test_ssl_error_falls_back_to_http(monkeypatch):
    requested = []

    def fake_get(url, **kwargs):
        requested.append(url)
        if url.startswith("https://"):
            raise requests.exceptions.SSLError("bad cert")
        return _Reply(url, "<title>Acme</title>")

    monkeypatch.setattr(fetch.requests, "get", fake_get)

    html, _, final_url = fetch_html("acme-plumbing.com")

    assert html == "<title>Acme</title>"
    assert final_url == "http://acme-plumbing.com"
    assert requested == ["https://acme-plumbing.com", "http://acme-plumbing.com"]


def test_non_200_is_not_loaded(monkeypatch):
    monkeypatch.setattr(fetch.requests, "get", lambda url, **kw: _Reply(url, "gone", status_code=404))
    assert fetch_html("https://acme-plumbing.com")[0] is None
    assert load_page("https://acme-plumbing.com", render=False) is None


def test_load_page_without_rendering(monkeypatch):
    monkeypatch.setattr(fetch.requests, "get", lambda url, **kw: _Reply(url + "/", "<p>hi</p>"))

    def no_render(url):
        raise AssertionError("render_page must not be called")

    monkeypatch.setattr(fetch, "render_page", no_render)

    content = load_page("acme-plumbing.com", render=False)

    assert content.url == "https://acme-plumbing.com/"
    assert content.html == "<p>hi</p>"
    assert content.globals == {}


def test_timeout_does_not_fall_back_to_http(monkeypatch):
    requested = []

    def slow_get(url, **kwargs):
        requested.append(url)
        raise requests.exceptions.Timeout()

    monkeypatch.setattr(fetch.requests, "get", slow_get)

    html, load_ms, final_url = fetch_html("acme-plumbing.com", timeout=3)

    assert html is None
    assert load_ms == 3000
    assert final_url == "https://acme-plumbing.com"
    assert requested == ["https://acme-plumbing.com"]
