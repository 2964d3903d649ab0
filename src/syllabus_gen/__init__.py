"""Study material generation from syllabus text with API key rotation.

Usage:
    from syllabus_gen import Generator
    gen = Generator()  # keys from GOOGLE_GENERATIVE_AI_API_KEY[_1.._6]
    topics = gen.extract_topics(syllabus_text)
    qas = gen.generate_topic_answers(syllabus_text, topics["topics"][0])

    from syllabus_gen import KeyRotator, call_with_rotation
    rotator = KeyRotator(["key1", "key2"])
    result = await call_with_rotation(rotator, lambda key: some_call(key))

Notes:
  - Keys rotate round-robin; a key that fails the final retry attempt with a
    429 / quota error is skipped for one hour.
  - The selected key is passed to each call; no environment variable is
    rewritten at runtime.
"""

import logging
from datetime import datetime, timezone

from syllabus_gen.errors import (
    CacheClearDenied,
    MalformedResponseError,
    NoCredentialsError,
    SyllabusGenError,
    error_response,
    is_rate_limit,
    retry_after_seconds,
)
from syllabus_gen.generator import Generator
from syllabus_gen.retry import call_with_rotation
from syllabus_gen.rotator import KeyRotator, default_rotator

for name in ("httpx", "google_genai", "LiteLLM", "LiteLLM Router"):
    logging.getLogger(name).setLevel(logging.WARNING)

__all__ = [
    "CacheClearDenied",
    "Generator",
    "KeyRotator",
    "MalformedResponseError",
    "NoCredentialsError",
    "SyllabusGenError",
    "call_with_rotation",
    "default_rotator",
    "error_response",
    "is_rate_limit",
    "retry_after_seconds",
    "status_report",
]


def status_report(rotator: KeyRotator | None = None) -> dict:
    """Rotator snapshot for a monitoring endpoint. Never includes key values."""
    rotator = rotator if rotator is not None else default_rotator()
    return {
        "success": True,
        "status": rotator.status(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
