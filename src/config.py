"""Configuration — loads env vars and provides project-wide settings."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return default


# ── Paths ──────────────────────────────────────────────────────────────
PROJECT_ROOT = _PROJECT_ROOT
ASSETS_DIR = Path(os.getenv("ASSETS_DIR", str(_PROJECT_ROOT / "assets")))

# ── HTTP server ───────────────────────────────────────────────────────
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = _int_env("PORT", 8001)
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# ── OpenAI Apps SDK domain verification ───────────────────────────────
OPENAI_VERIFICATION_TOKEN: str = os.getenv(
    "OPENAI_VERIFICATION_TOKEN",
    "DPxuPbiplL5KtNt0UNg-JhFGzhgTMaFjUkhCgoILaQg",
)

# ── SlidesGPT API ─────────────────────────────────────────────────────
SLIDESGPT_BASE_URL: str = os.getenv("SLIDESGPT_BASE_URL", "https://slidesgpt.com")
SLIDESGPT_TIMEOUT: float = _float_env("SLIDESGPT_TIMEOUT", 60.0)

# ── Presentation registry ─────────────────────────────────────────────
PRESENTATION_TTL_HOURS: int = _int_env("PRESENTATION_TTL_HOURS", 24)
CLEANUP_INTERVAL_SECONDS: int = _int_env("CLEANUP_INTERVAL_SECONDS", 60 * 60)

# ── Image search ──────────────────────────────────────────────────────
# "auto" picks the best match, "pick" returns candidates for the caller.
IMAGE_SEARCH_MODE: str = os.getenv("IMAGE_SEARCH_MODE", "auto").lower()
IMAGE_SEARCH_LIMIT: int = _int_env("IMAGE_SEARCH_LIMIT", 5)
