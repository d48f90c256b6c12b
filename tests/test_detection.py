"""
Detection engine: tech stack ordering/suppression, signals, contacts, hints.

Fixtures are small hand-written pages; globals stand in for what a
rendering browser would capture from the page.
"""

import os
import sys

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

from bs4 import BeautifulSoup

from signal_pipeline.analysis import build_request
from signal_pipeline.detection import (
    MAX_EMAILS,
    PageContent,
    collect_signals,
    detect,
    detect_tech_stack,
    extract_emails,
    extract_phones,
    find_contacts,
    infer_company_name,
    performance_hints,
)
from signal_pipeline.detectors import Detector, PageView, dedupe_by_name, run_detectors
from signal_pipeline.models import Contact, PageSnapshot, PerformanceHint, TechStackEntry


SHOPIFY_PAGE = PageContent(
    url="https://acme-goods.com/",
    html="""<html><head><title>Home | Acme Goods</title>
<script src="https://cdn.shopify.com/s/files/1/theme.js"></script>
<script src="https://static.klaviyo.com/onsite/js/klaviyo.js" async></script>
</head><body><div id="root" data-reactroot><p>Shop now</p></div></body></html>""",
    globals={"Shopify": True, "Shopify.theme.name": "Dawn"},
)


def _names(content):
    return [t.name for t in detect_tech_stack(content)]


# ---------------------------------------------------------------------------
# Tech stack
# ---------------------------------------------------------------------------

def test_shopify_page_suppresses_react_and_reports_ecommerce():
    """Shopify bundles React: React is not reported, theme and apps are."""
    tech = detect_tech_stack(SHOPIFY_PAGE)
    names = [t.name for t in tech]

    assert names[:3] == ["Shopify", "Theme: Dawn", "Klaviyo"]
    assert "React" not in names
    assert len(names) == len(set(names))
    # Klaviyo the Shopify app wins over Klaviyo the email detector
    assert tech[2].category == "plugin"

    body = build_request(detect(SHOPIFY_PAGE))
    assert body["businessInfo"]["hasEcommerce"] is True
    assert body["techStack"]["platform"] == "Shopify"
    assert body["techStack"]["theme"] == "Theme: Dawn"
    assert body["techStack"]["confidence"] == 0.8


def test_react_reported_without_builder_platform():
    content = PageContent(
        url="https://app.acme-tools.io/",
        html='<div data-reactroot></div><script src="/static/js/react-dom.production.min.js"></script>',
    )
    assert "React" in _names(content)


def test_wix_marker_suppresses_react():
    content = PageContent(
        url="https://acme-bakery.org/",
        html='<img src="https://static.wixstatic.com/media/a.png"><script src="/react-dom.js"></script>',
    )
    names = _names(content)
    assert names[0] == "Wix"
    assert "React" not in names


def test_wordpress_theme_and_plugins():
    content = PageContent(
        url="https://acme-plumbing.com/",
        html="""<link rel="stylesheet" href="https://acme-plumbing.com/wp-content/themes/astra/style.css">
<script src="https://acme-plumbing.com/wp-content/plugins/elementor/frontend.js"></script>
<script src="https://acme-plumbing.com/wp-content/plugins/woocommerce/cart.js"></script>""",
    )
    tech = detect_tech_stack(content)
    assert [t.name for t in tech[:4]] == ["WordPress", "astra", "Elementor", "WooCommerce"]
    assert [t.category for t in tech[:4]] == ["cms", "theme", "plugin", "plugin"]
    assert build_request(detect(content))["techStack"]["plugins"] == ["Elementor", "WooCommerce"]


def test_jquery_version_label_from_globals():
    content = PageContent(url="https://acme.org/", html="<p>hi</p>", globals={"jQuery": True, "jQuery.fn.jquery": "3.6.0"})
    assert "jQuery 3.6.0" in _names(content)


def test_dedupe_by_name_keeps_first_and_is_idempotent():
    entries = [
        TechStackEntry("Klaviyo", "plugin"),
        TechStackEntry("Stripe", "payments"),
        TechStackEntry("Klaviyo", "email"),
    ]
    once = dedupe_by_name(entries)
    assert once == [TechStackEntry("Klaviyo", "plugin"), TechStackEntry("Stripe", "payments")]
    assert dedupe_by_name(once) == once


def test_failing_detector_is_skipped():
    def boom(view):
        raise RuntimeError("bad rule")

    detectors = [
        Detector("Boom", "library", "", boom),
        Detector("Fine", "library", "", lambda v: True),
    ]
    view = PageView("", BeautifulSoup("", "html.parser"))
    assert run_detectors(view, detectors) == [TechStackEntry("Fine", "library", "")]


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------

SIGNALS_PAGE = PageContent(
    url="https://acme-plumbing.com/",
    html="""<html><head><title>Plumbing Services - Acme Plumbing</title>
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta name="description" content="Emergency plumbing in Springfield">
<script async src="https://www.googletagmanager.com/gtag/js?id=G-1"></script>
<script type="application/ld+json">{"@type": "Plumber"}</script>
<script src="https://widget.intercom.io/widget/abc"></script>
</head><body>
<form action="/send"><label>Get in touch</label><input name="email"></form>
<a href="https://facebook.com/acmeplumbing">Facebook</a>
<a href="https://www.linkedin.com/company/acme">LinkedIn</a>
<a href="https://www.dropbox.com/s/x.com">Menu</a>
<a href="/about">About</a>
</body></html>""",
)


def test_collect_signals_flags():
    signals = collect_signals(SIGNALS_PAGE)

    assert signals.has_forms is True
    assert signals.has_contact_form is True
    assert signals.has_livechat is True
    assert signals.has_analytics is True
    assert signals.has_schema is True
    assert signals.has_ssl is True
    assert signals.has_mobile_viewport is True
    assert signals.has_phone_number is False
    assert signals.company_name == "Acme Plumbing"
    assert signals.page_title == "Plumbing Services - Acme Plumbing"
    assert signals.meta_description == "Emergency plumbing in Springfield"


def test_social_links_match_by_hostname():
    signals = collect_signals(SIGNALS_PAGE)
    assert signals.social_links == (
        "https://facebook.com/acmeplumbing",
        "https://www.linkedin.com/company/acme",
    )
    assert signals.has_social_links is True


def test_list_backed_flags_match_lists():
    for content in (SIGNALS_PAGE, SHOPIFY_PAGE):
        signals = collect_signals(content)
        assert signals.has_phone_number == (len(signals.phone_numbers) > 0)
        assert signals.has_email == (len(signals.emails) > 0)
        assert signals.has_social_links == (len(signals.social_links) > 0)


def test_email_exclusion_policy():
    markup = (
        "info@acme-plumbing.com logo@2x.png someone@example.com errors@sentry.io "
        "2023@acme-plumbing.com jane.doe@acme-plumbing.com sprite@acme.png info@acme-plumbing.com"
    )
    assert extract_emails(markup) == ["info@acme-plumbing.com", "jane.doe@acme-plumbing.com"]


def test_placeholder_domains_match_whole_domain_only():
    markup = (
        "owner@mycompany.com sales@contest.com hi@latest.com team@bestwebsite.com "
        "me@myemail.com user@example.com ops@mail.example.com"
    )
    assert extract_emails(markup) == [
        "owner@mycompany.com",
        "sales@contest.com",
        "hi@latest.com",
        "team@bestwebsite.com",
        "me@myemail.com",
    ]


def test_email_cap():
    markup = " ".join(f"person{i}@acme-plumbing.com" for i in range(15))
    assert len(extract_emails(markup)) == MAX_EMAILS


def test_extract_phones():
    assert extract_phones("Call (555) 123-4567 or 555.987.6543") == ["(555) 123-4567", "555.987.6543"]


def test_company_name_inference():
    assert infer_company_name("Acme Co", "Home | Other") == "Acme Co"
    assert infer_company_name(None, "Services | Acme Plumbing") == "Acme Plumbing"
    assert infer_company_name(None, "About – Acme") == "Acme"
    assert infer_company_name(None, "Acme Plumbing") is None


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

def test_contacts_classified_and_deduplicated():
    content = PageContent(
        url="https://acme-plumbing.com/contact",
        html="""<html><body>
<p>Email info@acme-plumbing.com or jane.doe@acme-plumbing.com</p>
<p>Call (555) 123-4567</p>
<a href="mailto:info@acme-plumbing.com">Mail</a>
<script type="application/ld+json">{"@type": "Organization", "email": "mailto:info@acme-plumbing.com"}</script>
</body></html>""",
    )
    contacts = find_contacts(content)

    assert contacts == [
        Contact(type="generic", source="page", email="info@acme-plumbing.com"),
        Contact(type="personal", source="page", email="jane.doe@acme-plumbing.com", name="Jane Doe"),
        Contact(type="phone", source="page", phone="(555) 123-4567"),
    ]
    keys = [c.key for c in contacts]
    assert len(keys) == len(set(keys))


def test_broken_structured_data_block_does_not_hide_others():
    # \u0040 keeps the addresses out of the raw markup scan
    content = PageContent(
        url="https://acme-plumbing.com/",
        html=r"""<script type="application/ld+json">{not json</script>
<script type="application/ld+json">{"@graph": [{"@type": "LocalBusiness", "name": "Acme",
  "email": "owner\u0040acme-plumbing.com",
  "contactPoint": [{"email": "mailto:sales\u0040acme-plumbing.com"}]}]}</script>""",
    )
    assert find_contacts(content) == [
        Contact(type="schema", source="structured_data", email="owner@acme-plumbing.com", name="Acme"),
        Contact(type="contact_point", source="structured_data", email="sales@acme-plumbing.com"),
    ]


# ---------------------------------------------------------------------------
# Performance hints
# ---------------------------------------------------------------------------

def test_performance_hints_above_thresholds():
    imgs = "".join(f'<img src="/img/photo{i}.jpg">' for i in range(6))
    scripts = "".join(f'<script src="https://cdn.other-vendor.net/lib{i}.js"></script>' for i in range(4))
    content = PageContent(url="https://acme-plumbing.com/", html=f"<html><body>{imgs}{scripts}</body></html>")

    assert performance_hints(content) == [
        PerformanceHint("images", "6 images may not be optimized (no WebP/AVIF)"),
        PerformanceHint("responsive", "6 images missing srcset for responsive loading"),
        PerformanceHint("a11y", "6 images missing alt text"),
        PerformanceHint("scripts", "4 render-blocking scripts detected"),
        PerformanceHint("lazy", "No lazy loading detected for images"),
    ]


def test_performance_hints_at_thresholds():
    imgs = "".join(f'<img src="/img/photo{i}.webp">' for i in range(3))
    content = PageContent(url="https://acme-plumbing.com/", html=imgs)
    assert performance_hints(content) == [PerformanceHint("a11y", "3 images missing alt text")]


def test_third_party_scripts_hint():
    scripts = "".join(f'<script async src="https://vendor{i}.net/tag.js"></script>' for i in range(11))
    local = '<script defer src="https://acme-plumbing.com/app.js"></script>'
    content = PageContent(url="https://acme-plumbing.com/", html=scripts + local)
    assert performance_hints(content) == [PerformanceHint("third_party", "11 third-party scripts may slow page")]


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

def test_detect_is_idempotent_and_round_trips_wire_shape():
    first = detect(SIGNALS_PAGE)
    assert first == detect(SIGNALS_PAGE)
    assert first.domain == "acme-plumbing.com"
    assert PageSnapshot.from_dict(first.to_dict()) == first


def test_detect_never_raises_on_malformed_input():
    broken = PageContent(
        url="http://[broken",
        html="<div><p>unclosed <script type='application/ld+json'>{bad",
    )
    snapshot = detect(broken)
    assert isinstance(snapshot, PageSnapshot)
    assert snapshot.domain == ""

    empty = detect(PageContent(url="", html=""))
    assert empty.tech_stack == ()
    assert empty.contacts == ()
