from __future__ import annotations
import os

def env(key: str, default: str | None = None) -> str | None:
    v = os.environ.get(key)
    return v if v is not None else default

# Data directory for the SQLite store and static catalogs
DATA_DIR = env("DATA_DIR", "data")
DB_PATH = env("DB_PATH", os.path.join(DATA_DIR, "helpdesk.db"))

CATALOG_DIR = env("CATALOG_DIR", "data")
FAQ_PATH = env("FAQ_PATH", os.path.join(CATALOG_DIR, "registrar_faq.json"))
DEPARTMENTS_PATH = env("DEPARTMENTS_PATH", os.path.join(CATALOG_DIR, "departments.json"))

HELPDESK_API_KEY = env("HELPDESK_API_KEY")
AUTO_PROVISION_USERS = env("AUTO_PROVISION_USERS", "1") == "1"

REDIS_URL = env("REDIS_URL", "redis://localhost:6379/0")
RATE_LIMIT_PER_MIN = int(env("RATE_LIMIT_PER_MIN", "60"))
MAX_BODY_KB = int(env("MAX_BODY_KB", "64"))
MAX_MESSAGE_CHARS = int(env("MAX_MESSAGE_CHARS", "1000"))

# Completion fallback: openai|local|none
LLM_BACKEND = env("LLM_BACKEND", "openai")
OPENAI_API_KEY = env("OPENAI_API_KEY")
OPENAI_MODEL = env("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_BASE_URL = env("OPENAI_BASE_URL", "https://api.openai.com/v1")
LLM_MAX_TOKENS = int(env("LLM_MAX_TOKENS", "250"))
LLM_TEMPERATURE = float(env("LLM_TEMPERATURE", "0.7"))
_timeout = env("LLM_TIMEOUT_SECONDS")
LLM_TIMEOUT_SECONDS = float(_timeout) if _timeout else None

# Only used when LLM_BACKEND=local
LLM_MODEL = env("LLM_MODEL", "TinyLlama/TinyLlama-1.1B-Chat-v1.0")

CONTEXT_SECRET = env("CONTEXT_SECRET")

DEBUG = env("DEBUG", "0") == "1"
LOG_LEVEL = env("LOG_LEVEL", "INFO")
