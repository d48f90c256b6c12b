#!/usr/bin/env python3
"""
Prospecting Signal Pipeline - Main Entry Point

This is a convenience wrapper around scripts/analyze_page.py.

Usage:
    python main.py https://example-plumbing.com [--render] [--submit]

Environment Variables:
    SIGNAL_API_BASE: Prospecting API root (default http://localhost:3002)
"""

import sys

from scripts.analyze_page import main

if __name__ == "__main__":
    sys.exit(main())
