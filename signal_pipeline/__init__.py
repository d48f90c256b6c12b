"""
Prospecting Signal Pipeline

Detects a page's tech stack and business signals, audits its performance,
and turns both into a scored lead through the prospecting API.

Architecture:
    detectors: Ordered tech-stack detector registry
    detection: Tech stack, signals, contacts and performance hints per page
    bridge: Page, relay and portal contexts; local and HTTP transports
    retry: Fixed-interval retry policy
    store: SQLite key/value storage and lead records
    session: Auth token storage, portal resync, 401 policy
    api_client: Bearer-token HTTP client for the prospecting API
    audit: Audit request and polling state machine
    analysis: Analyze request composition, tiers, lead records
    outreach: Claim, contacts, outreach copy, audit email
    surface: One open prospecting panel tying it all together
    fetch / headless_browser: Loading live pages for detection
"""

from .detection import (
    PageContent,
    detect,
    detect_tech_stack,
    collect_signals,
    find_contacts,
    performance_hints,
)
from .models import PageSnapshot, LeadRecord, AuditResult
from .analysis import AnalysisPipeline, build_request, tier_for_score
from .audit import AuditOrchestrator
from .bridge import MessageBridge, LocalTransport, HttpTransport
from .session import SessionManager
from .store import LocalStore

__version__ = "1.0.0"
