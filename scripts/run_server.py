#!/usr/bin/env python3
"""
Entry point for the active calls alert server.

Usage:
    python3 scripts/run_server.py --provider nominatim --interval 60
"""

from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from src.services.hpd_alerts import main  # noqa: E402


if __name__ == "__main__":
    raise SystemExit(main())
