"""
Analysis pipeline: turn a page snapshot (plus audit scores) into a scored lead.

Request composition is pure (build_request). submit() sends it to
/crm/target-companies/analyze, assigns a tier from the returned score and
persists the resulting LeadRecord locally. Remote errors go straight back
to the caller; the surface decides whether to try again.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from .models import AuditResult, LeadRecord, PageSnapshot, TechStackEntry, parse_score

logger = logging.getLogger(__name__)

ANALYZE_ENDPOINT = "/crm/target-companies/analyze"
LOOKUP_ENDPOINT = "/crm/target-companies"

# Tier policy: (tier, minimum score), checked in order
TIER_THRESHOLDS: Tuple[Tuple[str, int], ...] = (
    ("hot", 70),
    ("warm", 40),
)
DEFAULT_TIER = "potential"

TIER_LABELS = {"hot": "Hot Lead", "warm": "Warm Lead", "potential": "Potential"}

CONFIDENCE_DETECTED = 0.8
CONFIDENCE_EMPTY = 0.3

ECOMMERCE_MARKERS = ("shopify", "woocommerce", "bigcommerce")


def tier_for_score(score: int) -> str:
    for tier, minimum in TIER_THRESHOLDS:
        if score >= minimum:
            return tier
    return DEFAULT_TIER


def _first(entries: Tuple[TechStackEntry, ...], category: str) -> Optional[TechStackEntry]:
    return next((t for t in entries if t.category == category), None)


def _names(entries: Tuple[TechStackEntry, ...], category: str) -> List[str]:
    return [t.name for t in entries if t.category == category]


def build_request(snapshot: PageSnapshot, audit: Optional[AuditResult] = None) -> Dict[str, Any]:
    """
    Compose the analyze request body from a snapshot and optional audit.

    Platform is the first CMS entry, falling back to the first framework.
    """
    tech = snapshot.tech_stack
    signals = snapshot.signals
    cms = _first(tech, "cms")
    theme = _first(tech, "theme")
    framework = _first(tech, "framework")
    scores = audit.scores if audit is not None else None

    platform = cms or framework
    return {
        "url": snapshot.url,
        "domain": snapshot.domain,
        "techStack": {
            "platform": platform.name if platform else None,
            "theme": theme.name if theme else None,
            "framework": framework.name if framework else None,
            "analytics": _names(tech, "analytics"),
            "plugins": _names(tech, "plugin"),
            "confidence": CONFIDENCE_DETECTED if tech else CONFIDENCE_EMPTY,
        },
        "signals": {
            "hasContactForm": signals.has_contact_form,
            "hasPhone": signals.has_phone_number,
            "schemaPresent": signals.has_schema,
            "isHttps": snapshot.url.startswith("https"),
            "hasViewportMeta": signals.has_mobile_viewport,
            "mobilePageSpeed": scores.mobile if scores else None,
            "desktopPageSpeed": scores.desktop if scores else None,
        },
        "businessInfo": {
            "companyName": signals.company_name,
            "industry": None,
            "location": None,
            "hasEcommerce": any(
                marker in t.name.lower() for t in tech for marker in ECOMMERCE_MARKERS
            ),
        },
        "auditId": audit.audit_id if audit is not None else None,
    }


def lead_from_response(data: Dict, domain: Optional[str] = None, audit_id: Optional[str] = None) -> LeadRecord:
    """Build a LeadRecord from a target-company payload."""
    analysis = data.get("analysis") or {}
    score = parse_score(data.get("score"))
    return LeadRecord(
        id=str(data.get("id") or ""),
        score=score,
        tier=tier_for_score(score),
        domain=data.get("domain") or domain,
        factors=tuple(analysis.get("factors") or ()),
        pitch_angles=tuple(data.get("pitch_angles") or ()),
        summary=analysis.get("summary"),
        linked_audit_id=audit_id or data.get("last_audit_id") or data.get("audit_id"),
    )


class AnalysisPipeline:
    """
    Attributes:
        client: ApiClient for the CRM endpoints
        store: Optional LocalStore; scored records are saved there
    """

    def __init__(self, client, store=None):
        self.client = client
        self.store = store

    def submit(self, snapshot: PageSnapshot, audit: Optional[AuditResult] = None) -> LeadRecord:
        """
        Score the page remotely and record the result.

        Raises:
            ApiError: the analyze call failed
        """
        body = build_request(snapshot, audit)
        logger.info(
            f"Analyzing {snapshot.domain} "
            f"(tech={len(snapshot.tech_stack)}, audit={body['auditId'] or 'none'})"
        )
        data = self.client.post(ANALYZE_ENDPOINT, body)
        record = lead_from_response(data or {}, domain=snapshot.domain, audit_id=body["auditId"])
        logger.info(f"{snapshot.domain} scored {record.score} ({record.tier})")
        self._save(record)
        return record

    def link_audit(self, record: LeadRecord, audit_id: str) -> LeadRecord:
        """Attach an audit produced after the record was scored."""
        linked = replace(record, linked_audit_id=audit_id)
        self._save(linked)
        return linked

    def find_existing(self, domain: str) -> Optional[LeadRecord]:
        """
        Look up a previously analyzed company by domain.

        Returns None when there is none. Lookup errors propagate.
        """
        data = self.client.get(LOOKUP_ENDPOINT, params={"domain": domain})
        rows = data.get("data") if isinstance(data, dict) else None
        if not rows:
            return None
        return lead_from_response(rows[0], domain=domain)

    def _save(self, record: LeadRecord) -> None:
        if self.store is not None and record.id:
            self.store.save_lead_record(record)
