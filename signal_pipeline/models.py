"""
Data model for the prospecting signal pipeline.

Detection output (PageSnapshot and its parts) is frozen: a snapshot is
created once per detection call and handed around by value. Wire shapes
(message bridge payloads, API bodies) are camelCase; to_dict/from_dict
convert at the boundary.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


def parse_score(value: Any) -> int:
    """Whole-number score from an int, float or numeric string; 0 when unparseable."""
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


# =============================================================================
# DETECTION OUTPUT
# =============================================================================

@dataclass(frozen=True)
class TechStackEntry:
    name: str
    category: str      # "cms", "theme", "plugin", "framework", "analytics", ...
    icon: str = ""

    def to_dict(self) -> Dict:
        # "type" is the key consumers of the page data already read
        return {"name": self.name, "type": self.category, "icon": self.icon}

    @classmethod
    def from_dict(cls, data: Dict) -> "TechStackEntry":
        return cls(
            name=str(data.get("name") or ""),
            category=str(data.get("type") or data.get("category") or ""),
            icon=str(data.get("icon") or ""),
        )


@dataclass(frozen=True)
class SignalSet:
    """Business signals harvested from one page."""
    has_forms: bool = False
    has_contact_form: bool = False
    has_phone_number: bool = False
    has_email: bool = False
    has_social_links: bool = False
    has_livechat: bool = False
    has_schema: bool = False
    has_ssl: bool = False
    has_mobile_viewport: bool = False
    has_analytics: bool = False
    phone_numbers: Tuple[str, ...] = ()
    emails: Tuple[str, ...] = ()
    social_links: Tuple[str, ...] = ()
    company_name: Optional[str] = None
    page_title: str = ""
    meta_description: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "hasForms": self.has_forms,
            "hasContactForm": self.has_contact_form,
            "hasPhoneNumber": self.has_phone_number,
            "hasEmail": self.has_email,
            "hasSocialLinks": self.has_social_links,
            "hasLivechat": self.has_livechat,
            "hasSchema": self.has_schema,
            "hasSSL": self.has_ssl,
            "hasMobileViewport": self.has_mobile_viewport,
            "hasAnalytics": self.has_analytics,
            "phoneNumbers": list(self.phone_numbers),
            "emails": list(self.emails),
            "socialLinks": list(self.social_links),
            "companyName": self.company_name,
            "pageTitle": self.page_title,
            "metaDescription": self.meta_description,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "SignalSet":
        data = data or {}
        phones = tuple(data.get("phoneNumbers") or ())
        emails = tuple(data.get("emails") or ())
        social = tuple(data.get("socialLinks") or ())
        return cls(
            has_forms=bool(data.get("hasForms")),
            has_contact_form=bool(data.get("hasContactForm")),
            has_phone_number=len(phones) > 0,
            has_email=len(emails) > 0,
            has_social_links=len(social) > 0,
            has_livechat=bool(data.get("hasLivechat")),
            has_schema=bool(data.get("hasSchema")),
            has_ssl=bool(data.get("hasSSL")),
            has_mobile_viewport=bool(data.get("hasMobileViewport")),
            has_analytics=bool(data.get("hasAnalytics")),
            phone_numbers=phones,
            emails=emails,
            social_links=social,
            company_name=data.get("companyName"),
            page_title=data.get("pageTitle") or "",
            meta_description=data.get("metaDescription"),
        )


@dataclass(frozen=True)
class Contact:
    """An email or phone contact found on a page."""
    type: str                       # generic | personal | schema | contact_point | phone
    source: str                     # page | structured_data
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None

    @property
    def key(self) -> Optional[str]:
        return self.email or self.phone

    def to_dict(self) -> Dict:
        data: Dict[str, Any] = {"type": self.type, "source": self.source}
        if self.email is not None:
            data["email"] = self.email
            data["name"] = self.name
        if self.phone is not None:
            data["phone"] = self.phone
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "Contact":
        return cls(
            type=str(data.get("type") or ""),
            source=str(data.get("source") or ""),
            email=data.get("email"),
            phone=data.get("phone"),
            name=data.get("name"),
        )


@dataclass(frozen=True)
class PerformanceHint:
    type: str
    message: str

    def to_dict(self) -> Dict:
        return {"type": self.type, "message": self.message}

    @classmethod
    def from_dict(cls, data: Dict) -> "PerformanceHint":
        return cls(type=str(data.get("type") or ""), message=str(data.get("message") or ""))


@dataclass(frozen=True)
class PageSnapshot:
    """Immutable bundle of detection results for one page view."""
    url: str
    domain: str
    title: str
    tech_stack: Tuple[TechStackEntry, ...] = ()
    signals: SignalSet = field(default_factory=SignalSet)
    contacts: Tuple[Contact, ...] = ()
    performance_hints: Tuple[PerformanceHint, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "url": self.url,
            "domain": self.domain,
            "title": self.title,
            "techStack": [t.to_dict() for t in self.tech_stack],
            "signals": self.signals.to_dict(),
            "contacts": [c.to_dict() for c in self.contacts],
            "performanceHints": [h.to_dict() for h in self.performance_hints],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "PageSnapshot":
        return cls(
            url=str(data.get("url") or ""),
            domain=str(data.get("domain") or ""),
            title=str(data.get("title") or ""),
            tech_stack=tuple(TechStackEntry.from_dict(t) for t in data.get("techStack") or ()),
            signals=SignalSet.from_dict(data.get("signals")),
            contacts=tuple(Contact.from_dict(c) for c in data.get("contacts") or ()),
            performance_hints=tuple(
                PerformanceHint.from_dict(h) for h in data.get("performanceHints") or ()
            ),
        )


# =============================================================================
# AUDIT
# =============================================================================

AUDIT_REQUESTED = "requested"
AUDIT_PROCESSING = "processing"
AUDIT_COMPLETED = "completed"
AUDIT_FAILED = "failed"
AUDIT_TIMED_OUT = "timedOut"

AUDIT_TERMINAL_STATUSES = frozenset({AUDIT_COMPLETED, AUDIT_FAILED, AUDIT_TIMED_OUT})


@dataclass(frozen=True)
class AuditScores:
    """Audit sub-scores; each may be individually absent."""
    mobile: Optional[float] = None
    desktop: Optional[float] = None
    seo: Optional[float] = None
    accessibility: Optional[float] = None
    best_practices: Optional[float] = None

    def to_dict(self) -> Dict:
        return {
            "mobile": self.mobile,
            "desktop": self.desktop,
            "seo": self.seo,
            "accessibility": self.accessibility,
            "bestPractices": self.best_practices,
        }


@dataclass
class AuditJob:
    """A remote audit job. Mutated only by polling responses."""
    id: str
    url: str
    status: str = AUDIT_REQUESTED
    scores: Optional[AuditScores] = None
    attempts: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in AUDIT_TERMINAL_STATUSES


@dataclass(frozen=True)
class AuditResult:
    """What the orchestrator hands back: scores or None, never an exception."""
    audit_id: Optional[str]
    status: str
    scores: Optional[AuditScores] = None

    @property
    def has_scores(self) -> bool:
        return self.scores is not None


# =============================================================================
# SESSION
# =============================================================================

@dataclass(frozen=True)
class AuthSession:
    token: str
    user: Optional[Dict] = None
    expires_implicitly: bool = True


# =============================================================================
# LEAD RECORD
# =============================================================================

@dataclass(frozen=True)
class LeadRecord:
    """Scored prospect returned by the analyze call."""
    id: str
    score: int
    tier: str                       # hot | warm | potential
    domain: Optional[str] = None
    factors: Tuple[str, ...] = ()
    pitch_angles: Tuple[Any, ...] = ()
    summary: Optional[str] = None
    linked_audit_id: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "domain": self.domain,
            "score": self.score,
            "tier": self.tier,
            "factors": list(self.factors),
            "pitchAngles": list(self.pitch_angles),
            "summary": self.summary,
            "linkedAuditId": self.linked_audit_id,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "LeadRecord":
        return cls(
            id=str(data.get("id") or ""),
            score=parse_score(data.get("score")),
            tier=str(data.get("tier") or ""),
            domain=data.get("domain"),
            factors=tuple(data.get("factors") or ()),
            pitch_angles=tuple(data.get("pitchAngles") or ()),
            summary=data.get("summary"),
            linked_audit_id=data.get("linkedAuditId"),
        )
