"""
ParsePal Relay — package and py2app build script.

Usage:
    # Development install:
    pip install -e .[test]

    # macOS app bundle (alias mode — fast, links to source):
    python3 setup.py py2app -A

    # macOS app bundle (standalone — fully self-contained):
    python3 setup.py py2app

The built app will be in the dist/ directory.
"""

import os
import sys
from setuptools import setup, find_namespace_packages

APP = ["main.py"]
APP_NAME = "ParsePal Relay"

# Check if .icns icon exists (user builds it on macOS)
ICON_FILE = "AppIcon.icns" if os.path.exists("AppIcon.icns") else None

PY2APP_OPTIONS = {
    "argv_emulation": False,
    "plist": {
        "CFBundleName": APP_NAME,
        "CFBundleDisplayName": APP_NAME,
        "CFBundleIdentifier": "app.parsepal.relay",
        "CFBundleVersion": "1.0.0",
        "CFBundleShortVersionString": "1.0.0",
        "CFBundlePackageType": "APPL",
        "LSMinimumSystemVersion": "10.15",
        "LSUIElement": True,
        "LSEnvironment": {
            "PYTHONDONTWRITEBYTECODE": "1",
        },
    },
    "packages": [
        "parsepal",
        "parsepal.core",
        "requests",
        "watchdog",
    ],
    "includes": [
        "parsepal.cli",
        "parsepal.core.constants",
        "parsepal.core.config",
        "parsepal.core.error_codes",
        "parsepal.core.events",
        "parsepal.core.models",
        "parsepal.core.segmenter",
        "parsepal.core.tailer",
        "parsepal.core.uploader",
        "parsepal.core.upload_queue",
        "parsepal.core.game_paths",
        "parsepal.core.history_sqlite",
        "parsepal.core.relay",
        "parsepal.core.diagnostics",
        "sqlite3",
    ],
    "excludes": [
        "tkinter", "PyQt5", "PyQt6", "PySide2", "PySide6",
        "numpy", "scipy", "pandas",
        "pytest", "unittest",
    ],
    "site_packages": True,
}

# Add icon if available
if ICON_FILE:
    PY2APP_OPTIONS["iconfile"] = ICON_FILE

py2app_kwargs = {}
if "py2app" in sys.argv:
    py2app_kwargs = {
        "app": APP,
        "options": {"py2app": PY2APP_OPTIONS},
        "setup_requires": ["py2app"],
    }

setup(
    name="parsepal-relay",
    version="1.0.0",
    description="Tails the WoW combat log and relays detected fights to ParsePal",
    packages=find_namespace_packages(include=["parsepal", "parsepal.*"]),
    install_requires=[
        "requests>=2.28.0",
        "watchdog>=3.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": ["parsepal-relay=parsepal.cli:main"],
    },
    python_requires=">=3.10",
    **py2app_kwargs,
)
