"""
Central configuration for the wiki backend.

All settings loaded from .env file or environment variables.
See .env.example for available options.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

APP_DIR = Path(__file__).parent

# Load .env file from backend directory
load_dotenv(APP_DIR / ".env")

# Environment: "production", "test" or "profile"
WIKI_ENV = os.getenv("WIKI_ENV", "production")

_ENV_DEFAULTS = {
    "production": {
        "data_dir": APP_DIR / "data",
        "origin_uri": None,
        "log_level": "INFO",
    },
    "test": {
        "data_dir": APP_DIR / "tmp" / "spec_data",
        "origin_uri": APP_DIR / "tmp" / "spec_master_repo",
        "log_level": "WARNING",
    },
    "profile": {
        "data_dir": APP_DIR / "data",
        "origin_uri": None,
        "log_level": "DEBUG",
    },
}

if WIKI_ENV not in _ENV_DEFAULTS:
    raise ValueError(f"WIKI_ENV must be one of {', '.join(_ENV_DEFAULTS)}, got '{WIKI_ENV}'")

_defaults = _ENV_DEFAULTS[WIKI_ENV]


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Local working copy of the wiki content (a git repository)
WIKI_DATA_DIR = os.getenv("WIKI_DATA_DIR", str(_defaults["data_dir"]))

# URI of the master git repository (required outside the test environment)
WIKI_ORIGIN_URI = os.getenv("WIKI_ORIGIN_URI") or (
    str(_defaults["origin_uri"]) if _defaults["origin_uri"] else None
)
if not WIKI_ORIGIN_URI:
    raise ValueError("WIKI_ORIGIN_URI environment variable is required. See .env.example")

# Committer identity for content changes
WIKI_USER_NAME = os.getenv("WIKI_USER_NAME", "Satellite")
WIKI_USER_EMAIL = os.getenv("WIKI_USER_EMAIL", "satellite@wiki.local")

# Branch synchronized with the master repository
WIKI_BRANCH = os.getenv("WIKI_BRANCH", "master")

# Seconds between background syncs
WIKI_SYNC_INTERVAL = float(os.getenv("WIKI_SYNC_INTERVAL", "300"))

# Push local commits to the master repository after each pull (off: pull-only mirror)
WIKI_PUSH_ENABLED = _flag("WIKI_PUSH_ENABLED")

# Seconds before a fetch or push is killed
WIKI_FETCH_TIMEOUT = float(os.getenv("WIKI_FETCH_TIMEOUT", "30"))

WIKI_LOG_LEVEL = os.getenv("WIKI_LOG_LEVEL", _defaults["log_level"])
