"""Environment-driven configuration.

GOOGLE_GENERATIVE_AI_API_KEY     primary key (or comma-separated list)
GOOGLE_GENERATIVE_AI_API_KEY_1   fallback keys, _1 through _6
...
SYLLABUS_GEN_MODEL               default "gemini/gemini-2.0-flash"
QAS_CACHE_TTL_SECONDS            Q&A cache TTL, default 7 days
LLM_CACHE_DIR                    cache root, default ./.cache
CACHE_CLEAR_KEY                  required secret for clearing the Q&A cache
"""

import os
from pathlib import Path

KEY_ENV = "GOOGLE_GENERATIVE_AI_API_KEY"
MAX_FALLBACK_KEYS = 6
DEFAULT_MODEL = "gemini/gemini-2.0-flash"
DEFAULT_QAS_TTL = 7 * 24 * 3600


def key_env_names() -> list[str]:
    return [KEY_ENV] + [f"{KEY_ENV}_{i}" for i in range(1, MAX_FALLBACK_KEYS + 1)]


def load_credentials(environ=None) -> list[str]:
    """Ordered, de-duplicated keys from the primary and numbered variables."""
    env = os.environ if environ is None else environ
    keys: list[str] = []
    for name in key_env_names():
        for k in (env.get(name) or "").split(","):
            k = k.strip()
            if k and k not in keys:
                keys.append(k)
    return keys


def model_name(environ=None) -> str:
    env = os.environ if environ is None else environ
    return env.get("SYLLABUS_GEN_MODEL") or DEFAULT_MODEL


def qas_cache_ttl_seconds(environ=None) -> int:
    env = os.environ if environ is None else environ
    val = env.get("QAS_CACHE_TTL_SECONDS")
    if not val:
        return DEFAULT_QAS_TTL
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"QAS_CACHE_TTL_SECONDS must be an integer, got {val!r}")


def cache_dir(environ=None) -> Path:
    env = os.environ if environ is None else environ
    val = env.get("LLM_CACHE_DIR")
    return Path(val) if val else Path.cwd() / ".cache"


def cache_clear_key(environ=None) -> str | None:
    env = os.environ if environ is None else environ
    return env.get("CACHE_CLEAR_KEY") or None
