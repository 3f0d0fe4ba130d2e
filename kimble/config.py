# KimbleAI - runtime configuration
# Everything is read from the environment (or a local .env) once at import time.

import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Paths
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DB_DIR = os.getenv("KIMBLE_DB_DIR", os.path.join(BASE_DIR, "db"))
KNOWLEDGE_COLLECTION = os.getenv("KIMBLE_KNOWLEDGE_COLLECTION", "kimble_knowledge")

# ─────────────────────────────────────────
# USERS
# ─────────────────────────────────────────

# The app only serves the family. Keys are the ids clients send; values are display names.
USERS = {
    "zach": "Zach",
    "rebecca": "Rebecca",
}

# ─────────────────────────────────────────
# MODELS / EXTERNAL SERVICES
# ─────────────────────────────────────────

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
CHAT_MODEL = os.getenv("KIMBLE_CHAT_MODEL", "claude-sonnet-4-6")
FACT_MODEL = os.getenv("KIMBLE_FACT_MODEL", "claude-haiku-4-5-20251001")
LLM_TIMEOUT_SECONDS = _float_env("KIMBLE_LLM_TIMEOUT", 10.0)

EMBED_MODEL_NAME = os.getenv("KIMBLE_EMBED_MODEL", "BAAI/bge-small-en-v1.5")
EMBED_TIMEOUT_SECONDS = _float_env("KIMBLE_EMBED_TIMEOUT", 8.0)
EMBED_CACHE_MAX = _int_env("KIMBLE_EMBED_CACHE_MAX", 1000)

# ─────────────────────────────────────────
# FACTS WIDGET
# ─────────────────────────────────────────

FACT_CACHE_MAX = _int_env("KIMBLE_FACT_CACHE_MAX", 120)
FACT_MIN_CACHE_SIZE = _int_env("KIMBLE_FACT_MIN_CACHE", 100)
FACT_GENERATION_ENABLED = _bool_env("KIMBLE_FACT_GENERATION", True)
FACT_GENERATION_ATTEMPTS = _int_env("KIMBLE_FACT_GENERATION_ATTEMPTS", 3)
SESSION_TTL_HOURS = _int_env("KIMBLE_SESSION_TTL_HOURS", 24)
SESSION_STORE_MAX = _int_env("KIMBLE_SESSION_STORE_MAX", 5000)

# ─────────────────────────────────────────
# RAG
# ─────────────────────────────────────────

RAG_TOP_K = _int_env("KIMBLE_RAG_TOP_K", 8)
CHUNK_SIZE = _int_env("KIMBLE_CHUNK_SIZE", 1000)
CHUNK_OVERLAP = _int_env("KIMBLE_CHUNK_OVERLAP", 200)
STORE_CONVERSATIONS = _bool_env("KIMBLE_STORE_CONVERSATIONS", True)

# ALLOWED_ORIGINS is a comma-separated list of origins (no trailing slashes).
_default_origins = "http://localhost:3000,http://localhost:3001"
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", _default_origins).split(",") if o.strip()]
