#!/usr/bin/env python3
"""
Analyze a live page from the command line.

Loads the URL, runs detection through a local page context and prints the
snapshot as JSON. With --submit it also runs the audit and the analysis
against the prospecting API using the stored (or portal) session.

Usage:
    python scripts/analyze_page.py https://example-plumbing.com
    python scripts/analyze_page.py example-plumbing.com --render --submit

Environment Variables:
    SIGNAL_API_BASE: Prospecting API root (default http://localhost:3002)
    SIGNAL_AUTH_TOKEN: Optional. Token to store before submitting.
    HEADLESS_ENABLED: Render pages with Playwright when true.
"""

import os
import sys
import json
import argparse
import logging

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from signal_pipeline.analysis import AnalysisPipeline, TIER_LABELS
from signal_pipeline.api_client import ApiClient
from signal_pipeline.audit import AuditOrchestrator
from signal_pipeline.bridge import RELAY_CONTEXT_ID, LocalTransport, MessageBridge, PageContext, RelayContext
from signal_pipeline.fetch import load_page
from signal_pipeline.session import SessionManager, TOKEN_KEY
from signal_pipeline.store import LocalStore
from signal_pipeline.surface import ProspectingSurface, ViewState

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Detect tech stack and signals for a page")
    parser.add_argument("url", help="Page URL (scheme optional)")
    parser.add_argument("--render", action="store_true", help="Render with headless Chromium")
    parser.add_argument("--submit", action="store_true", help="Audit and score the page via the API")
    parser.add_argument("--output", "-o", help="Write the result JSON to this file")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    content = load_page(args.url, render=True if args.render else None)
    if content is None:
        logger.error(f"Could not load {args.url}")
        return 1

    store = LocalStore()
    transport = LocalTransport()
    transport.register(RelayContext(transport, store=store), RELAY_CONTEXT_ID)
    page_id = transport.register(PageContext(content))

    bridge = MessageBridge(transport)
    sessions = SessionManager(store, bridge)
    token = os.getenv("SIGNAL_AUTH_TOKEN")
    if token:
        store.set(TOKEN_KEY, token)

    client = ApiClient(sessions)
    audits = AuditOrchestrator(client)
    surface = ProspectingSurface(bridge, sessions, client, audits, AnalysisPipeline(client, store))

    try:
        snapshot = surface.load_page(page_id, content.url)
        if snapshot is None:
            logger.error(surface.message)
            return 1
        result = {"snapshot": snapshot.to_dict()}

        if args.submit:
            if surface.open() == ViewState.LOGIN:
                logger.error(f"Not signed in. {surface.message or 'Set SIGNAL_AUTH_TOKEN.'}")
                return 1
            surface.load_page(page_id, content.url)
            lead = surface.analyze()
            if lead is None:
                logger.error(surface.message)
                return 1
            logger.info(f"{lead.domain}: {lead.score} ({TIER_LABELS[lead.tier]})")
            result["lead"] = lead.to_dict()
            if surface.audit is not None:
                result["audit"] = {
                    "auditId": surface.audit.audit_id,
                    "status": surface.audit.status,
                    "scores": surface.audit.scores.to_dict() if surface.audit.scores else None,
                }
    finally:
        surface.close()
        sessions.close()
        transport.close()

    output = json.dumps(result, indent=2)
    if args.output:
        with open(args.output, "w") as f:
            f.write(output)
        logger.info(f"Wrote {args.output}")
    else:
        print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
