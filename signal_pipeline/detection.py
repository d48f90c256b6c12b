"""
Detection engine: classifies one page's tech stack and business signals.

Runs in the page context over raw page content. Every entry point is a pure,
synchronous function of a PageContent:

    detect_tech_stack  -> ordered, name-unique TechStackEntry list
    collect_signals    -> SignalSet (phones, emails, social links, flags)
    find_contacts      -> Contact list, deduplicated by email/phone
    performance_hints  -> threshold-based PerformanceHint list
    detect             -> PageSnapshot bundling all of the above

Failure semantics:
- Never raises for malformed input
- A failing sub-step is logged and left out of the result
- One broken JSON-LD block never hides the others
"""

import re
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Comment, Doctype

from .detectors import PageView, dedupe_by_name, run_detectors
from .models import Contact, PageSnapshot, PerformanceHint, SignalSet, TechStackEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# EXTRACTION POLICY
# =============================================================================

MAX_PHONES = 5
MAX_EMAILS = 10
MAX_SOCIAL_LINKS = 6

PHONE_PATTERN = re.compile(r"(?:\+1[-.\s]?)?(?:\(?\d{3}\)?[-.\s]?)?\d{3}[-.\s]?\d{4}")
EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

# Email false positives observed in the wild. Matching is case-insensitive.
# Placeholder domains match the whole domain or a parent of it, never a substring.
EMAIL_PLACEHOLDER_DOMAINS = frozenset({
    "example.com", "domain.com", "email.com", "test.com",
    "yoursite.com", "website.com", "company.com",
})
EMAIL_EXCLUDED_SUBSTRINGS = (
    # platform-internal / error-reporting addresses
    "wixpress", "sentry",
    # retina image names ("logo@2x.png")
    "@2x", "@3x",
)
EMAIL_EXCLUDED_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".css", ".js")
EMAIL_EXCLUDED_PREFIX = re.compile(r"^\d")

SOCIAL_DOMAINS = (
    "facebook.com", "twitter.com", "x.com",
    "linkedin.com", "instagram.com", "youtube.com",
)

CONTACT_FORM_KEYWORDS = ("contact", "inquiry", "enquiry", "get in touch", "message")
LIVECHAT_MARKERS = ("intercom", "drift", "zendesk", "tawk", "crisp", "livechat", "freshchat", "hubspot")
ANALYTICS_MARKERS = ("google-analytics", "gtag", "googletagmanager", "facebook.com/tr")

GENERIC_MAILBOXES = frozenset({"info", "sales", "support", "contact", "hello", "admin", "help"})

TITLE_SEPARATORS = re.compile(r"[|\-–—]")

# Performance hint thresholds (hint fires when the count is ABOVE the value)
UNOPTIMIZED_IMAGE_THRESHOLD = 3
MISSING_SRCSET_THRESHOLD = 3
MISSING_ALT_THRESHOLD = 2
BLOCKING_SCRIPT_THRESHOLD = 3
THIRD_PARTY_SCRIPT_THRESHOLD = 10
LAZY_LOADING_MIN_IMAGES = 5
MODERN_IMAGE_FORMATS = ("webp", "avif")


# =============================================================================
# PAGE CONTENT
# =============================================================================

@dataclass(frozen=True)
class PageContent:
    """
    Raw content captured in the page context.

    Attributes:
        url: Location of the page
        html: Full document markup
        text: Visible text; derived from the markup when not supplied
        globals: Script-injected globals by dotted path, when a rendering
                 browser captured them (e.g. {"Shopify": True})
    """
    url: str
    html: str = ""
    text: Optional[str] = None
    globals: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict) -> "PageContent":
        return cls(
            url=str(data.get("url") or ""),
            html=str(data.get("html") or ""),
            text=data.get("text"),
            globals=dict(data.get("globals") or {}),
        )


NON_VISIBLE_TAGS = frozenset({"script", "style", "noscript", "template", "head", "title"})


def _visible_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    parts = []
    for s in root.find_all(string=True):
        if isinstance(s, (Comment, Doctype)) or s.parent.name in NON_VISIBLE_TAGS:
            continue
        s = s.strip()
        if s:
            parts.append(s)
    return " ".join(parts)


class ParsedPage:
    """PageContent plus its parsed DOM, built once per entry-point call."""

    def __init__(self, content: PageContent):
        self.content = content
        self.html = content.html or ""
        self.soup = BeautifulSoup(self.html, "html.parser")
        self.text = content.text if content.text is not None else _visible_text(self.soup)
        try:
            parsed = urlparse(content.url or "")
            self.hostname = (parsed.hostname or "").lower()
            self.scheme = parsed.scheme.lower()
        except ValueError:
            self.hostname, self.scheme = "", ""
        self.view = PageView(self.html, self.soup, content.globals)

    @property
    def title(self) -> str:
        if self.soup.title and self.soup.title.string:
            return self.soup.title.string.strip()
        return ""

    def meta_content(self, **attrs: str) -> Optional[str]:
        tag = self.soup.find("meta", attrs=attrs)
        if tag is None:
            return None
        content = tag.get("content")
        return content if isinstance(content, str) else None


def _safe(step: str, fn: Callable[[], T], default: T) -> T:
    try:
        return fn()
    except Exception as e:
        logger.debug(f"Detection step '{step}' failed: {e}")
        return default


def _parse(content: PageContent) -> ParsedPage:
    try:
        return ParsedPage(content)
    except Exception as e:
        logger.debug(f"Could not parse page {content.url}: {e}")
        return ParsedPage(PageContent(url=content.url, html="", text=content.text or ""))


# =============================================================================
# TECH STACK
# =============================================================================

def _tech_stack(page: ParsedPage) -> List[TechStackEntry]:
    return dedupe_by_name(run_detectors(page.view))


def detect_tech_stack(content: PageContent) -> List[TechStackEntry]:
    """Classify the page's technology stack. Order-stable, unique by name."""
    page = _parse(content)
    return _safe("tech_stack", lambda: _tech_stack(page), [])


# =============================================================================
# SIGNALS
# =============================================================================

def _unique(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


def is_placeholder_domain(domain: str) -> bool:
    return any(domain == d or domain.endswith("." + d) for d in EMAIL_PLACEHOLDER_DOMAINS)


def is_excluded_email(email: str) -> bool:
    """Return True for addresses that are artifacts, not real mailboxes."""
    lowered = email.lower()
    if any(s in lowered for s in EMAIL_EXCLUDED_SUBSTRINGS):
        return True
    if is_placeholder_domain(lowered.rpartition("@")[2]):
        return True
    if lowered.endswith(EMAIL_EXCLUDED_SUFFIXES):
        return True
    return bool(EMAIL_EXCLUDED_PREFIX.match(lowered))


def extract_emails(html: str) -> List[str]:
    """Harvest unique, filtered email addresses from markup (capped)."""
    matches = EMAIL_PATTERN.findall(html or "")
    return _unique([e for e in matches if not is_excluded_email(e)])[:MAX_EMAILS]


def extract_phones(text: str) -> List[str]:
    """Harvest unique phone-number strings from visible text (capped)."""
    matches = [m.strip() for m in PHONE_PATTERN.findall(text or "")]
    return _unique([m for m in matches if m])[:MAX_PHONES]


def _is_social(href: str) -> bool:
    try:
        host = (urlparse(href).hostname or "").lower()
    except ValueError:
        return False
    return any(host == d or host.endswith("." + d) for d in SOCIAL_DOMAINS)


def _social_links(page: ParsedPage) -> List[str]:
    links = []
    for a in page.soup.find_all("a", href=True):
        href = urljoin(page.content.url, a["href"])
        if _is_social(href):
            links.append(href)
    return _unique(links)[:MAX_SOCIAL_LINKS]


def _has_contact_form(page: ParsedPage) -> bool:
    for form in page.soup.find_all("form"):
        inner = form.decode_contents().lower()
        if any(k in inner for k in CONTACT_FORM_KEYWORDS):
            return True
    return False


def _has_mobile_viewport(page: ParsedPage) -> bool:
    content = page.meta_content(name="viewport")
    return bool(content and "width=device-width" in content)


def infer_company_name(site_name: Optional[str], title: str) -> Optional[str]:
    """
    Prefer the explicit site name; otherwise take the trailing title segment.

    "Services | Acme Plumbing" -> "Acme Plumbing"
    """
    if site_name and site_name.strip():
        return site_name.strip()
    parts = TITLE_SEPARATORS.split(title or "")
    if len(parts) > 1:
        tail = parts[-1].strip()
        return tail or None
    return None


def _signals(page: ParsedPage) -> SignalSet:
    html_lower = page.html.lower()
    forms = page.soup.find_all("form")

    phones = _safe("phones", lambda: extract_phones(page.text), [])
    emails = _safe("emails", lambda: extract_emails(page.html), [])
    social = _safe("social_links", lambda: _social_links(page), [])
    title = page.title

    return SignalSet(
        has_forms=len(forms) > 0,
        has_contact_form=_safe("contact_form", lambda: _has_contact_form(page), False),
        has_phone_number=len(phones) > 0,
        has_email=len(emails) > 0,
        has_social_links=len(social) > 0,
        has_livechat=any(m in html_lower for m in LIVECHAT_MARKERS),
        has_schema=page.soup.find("script", attrs={"type": "application/ld+json"}) is not None,
        has_ssl=page.scheme == "https",
        has_mobile_viewport=_safe("viewport", lambda: _has_mobile_viewport(page), False),
        has_analytics=any(m in page.html for m in ANALYTICS_MARKERS),
        phone_numbers=tuple(phones),
        emails=tuple(emails),
        social_links=tuple(social),
        company_name=infer_company_name(page.meta_content(property="og:site_name"), title),
        page_title=title,
        meta_description=page.meta_content(name="description"),
    )


def collect_signals(content: PageContent) -> SignalSet:
    """Collect business signals from the page."""
    page = _parse(content)
    return _safe("signals", lambda: _signals(page), SignalSet(has_ssl=page.scheme == "https"))


# =============================================================================
# CONTACTS
# =============================================================================

def _guess_name(local_part: str) -> str:
    spaced = re.sub(r"[._]", " ", local_part)
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced)


def _clean_email(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    return value.replace("mailto:", "").strip()


def _ld_nodes(data: Any) -> List[Dict]:
    """Flatten a JSON-LD document into its object nodes (lists, @graph)."""
    if isinstance(data, list):
        nodes = []
        for item in data:
            nodes.extend(_ld_nodes(item))
        return nodes
    if isinstance(data, dict):
        nodes = [data]
        if isinstance(data.get("@graph"), list):
            nodes.extend(_ld_nodes(data["@graph"]))
        return nodes
    return []


def _structured_contacts(page: ParsedPage) -> List[Contact]:
    contacts = []
    for script in page.soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(script.string or script.get_text() or "")
        except (ValueError, TypeError) as e:
            logger.debug(f"Skipping unparseable JSON-LD block: {e}")
            continue

        for node in _ld_nodes(data):
            email = _clean_email(node.get("email"))
            if email:
                name = node.get("name")
                contacts.append(Contact(
                    type="schema",
                    source="structured_data",
                    email=email,
                    name=name if isinstance(name, str) else None,
                ))

            points = node.get("contactPoint")
            if isinstance(points, dict):
                points = [points]
            for point in points if isinstance(points, list) else []:
                point_email = _clean_email(point.get("email")) if isinstance(point, dict) else None
                if point_email:
                    contacts.append(Contact(
                        type="contact_point",
                        source="structured_data",
                        email=point_email,
                    ))
    return contacts


def dedupe_contacts(contacts: List[Contact]) -> List[Contact]:
    """Collapse contacts sharing an email (or phone) key; first one wins."""
    seen = set()
    unique = []
    for contact in contacts:
        key = contact.key
        if key in seen:
            continue
        seen.add(key)
        unique.append(contact)
    return unique


def _contacts(page: ParsedPage, signals: SignalSet) -> List[Contact]:
    contacts = []

    for email in signals.emails:
        local_part = email.split("@")[0]
        generic = local_part.lower() in GENERIC_MAILBOXES
        contacts.append(Contact(
            type="generic" if generic else "personal",
            source="page",
            email=email,
            name=None if generic else _guess_name(local_part),
        ))

    contacts.extend(_safe("structured_data", lambda: _structured_contacts(page), []))

    for phone in signals.phone_numbers:
        contacts.append(Contact(type="phone", source="page", phone=phone))

    return dedupe_contacts(contacts)


def find_contacts(content: PageContent) -> List[Contact]:
    """Find potential contacts: page emails, structured data, phones."""
    page = _parse(content)
    signals = _safe("signals", lambda: _signals(page), SignalSet())
    return _safe("contacts", lambda: _contacts(page, signals), [])


# =============================================================================
# PERFORMANCE HINTS
# =============================================================================

def _hints(page: ParsedPage) -> List[PerformanceHint]:
    hints = []
    images = page.soup.find_all("img")

    unoptimized = 0
    missing_srcset = 0
    missing_alt = 0
    for img in images:
        src = img.get("src") or ""
        if not img.get("srcset"):
            missing_srcset += 1
        if not img.get("alt"):
            missing_alt += 1
        if src and not any(fmt in src for fmt in MODERN_IMAGE_FORMATS):
            unoptimized += 1

    if unoptimized > UNOPTIMIZED_IMAGE_THRESHOLD:
        hints.append(PerformanceHint("images", f"{unoptimized} images may not be optimized (no WebP/AVIF)"))
    if missing_srcset > MISSING_SRCSET_THRESHOLD:
        hints.append(PerformanceHint("responsive", f"{missing_srcset} images missing srcset for responsive loading"))
    if missing_alt > MISSING_ALT_THRESHOLD:
        hints.append(PerformanceHint("a11y", f"{missing_alt} images missing alt text"))

    scripts = page.soup.find_all("script", src=True)
    blocking = [s for s in scripts if not s.has_attr("async") and not s.has_attr("defer")]
    if len(blocking) > BLOCKING_SCRIPT_THRESHOLD:
        hints.append(PerformanceHint("scripts", f"{len(blocking)} render-blocking scripts detected"))

    third_party = [
        s for s in scripts
        if page.hostname not in urljoin(page.content.url, s["src"])
    ]
    if len(third_party) > THIRD_PARTY_SCRIPT_THRESHOLD:
        hints.append(PerformanceHint("third_party", f"{len(third_party)} third-party scripts may slow page"))

    lazy = page.soup.find_all("img", attrs={"loading": "lazy"})
    if len(images) > LAZY_LOADING_MIN_IMAGES and not lazy:
        hints.append(PerformanceHint("lazy", "No lazy loading detected for images"))

    return hints


def performance_hints(content: PageContent) -> List[PerformanceHint]:
    """Threshold-based performance heuristics for the page."""
    page = _parse(content)
    return _safe("performance_hints", lambda: _hints(page), [])


# =============================================================================
# SNAPSHOT
# =============================================================================

def detect(content: PageContent) -> PageSnapshot:
    """
    Build the full snapshot for one page view.

    Args:
        content: Raw page content captured in the page context

    Returns:
        Frozen PageSnapshot; sub-steps that fail contribute empty results
    """
    page = _parse(content)
    signals = _safe("signals", lambda: _signals(page), SignalSet(has_ssl=page.scheme == "https"))

    return PageSnapshot(
        url=content.url,
        domain=page.hostname,
        title=_safe("title", lambda: page.title, ""),
        tech_stack=tuple(_safe("tech_stack", lambda: _tech_stack(page), [])),
        signals=signals,
        contacts=tuple(_safe("contacts", lambda: _contacts(page, signals), [])),
        performance_hints=tuple(_safe("performance_hints", lambda: _hints(page), [])),
    )
