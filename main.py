#!/usr/bin/env python3
"""
ParsePal Relay v1.0.0 — launcher script.
Used for running from a source checkout and as the py2app entry point;
installed copies use the `parsepal-relay` console script instead.
"""

import sys
from pathlib import Path

# ── Determine project root ────────────────────────────────────────────
if getattr(sys, 'frozen', False):
    # Running inside a py2app / PyInstaller bundle
    PROJECT_ROOT = Path(getattr(sys, '_MEIPASS', Path(sys.executable).parent))
else:
    PROJECT_ROOT = Path(__file__).resolve().parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from parsepal.cli import main

if __name__ == "__main__":
    main()
