"""Exceptions and upstream error classification.

``is_rate_limit`` decides whether a failed call should exhaust its key;
``error_response`` turns an upstream failure into an HTTP-style
(status, payload, headers) triple with an optional Retry-After hint.
"""

import json
import re


class SyllabusGenError(Exception):
    """Base class for errors raised by this package."""


class NoCredentialsError(SyllabusGenError):
    """The key pool is empty."""


class MalformedResponseError(SyllabusGenError):
    """The model returned text that could not be parsed as JSON."""

    def __init__(self, message: str, text: str = ""):
        super().__init__(message)
        self.text = text


class CacheClearDenied(SyllabusGenError):
    """Cache clear attempted with a missing or wrong clear key."""


_RATE_LIMIT_MARKERS = (
    "quota",
    "rate limit",
    "rate-limit",
    "resource_exhausted",
    "too many requests",
)
_RETRY_DELAY_RE = re.compile(r'retryDelay"?\s*:\s*"?(\d+(?:\.\d+)?)s')
_SECONDS_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)s\s*$")


def _status_code(exc) -> int | None:
    for attr in ("status_code", "status", "code"):
        val = getattr(exc, attr, None)
        if isinstance(val, int):
            return val
    response = getattr(exc, "response", None)
    val = getattr(response, "status_code", None)
    if isinstance(val, int):
        return val
    return None


def is_rate_limit(exc: BaseException) -> bool:
    """Check if an exception is a 429 / quota error."""
    # OpenAI SDK, litellm
    if type(exc).__name__ == "RateLimitError":
        return True
    if _status_code(exc) == 429:
        return True
    # google.genai APIError carries the gRPC status name in .status
    if getattr(exc, "status", None) == "RESOURCE_EXHAUSTED":
        return True
    text = str(exc).lower()
    return any(m in text for m in _RATE_LIMIT_MARKERS)


def parse_retry_seconds(value) -> int | None:
    """'9s' -> 9, '1.5s' -> 1, '12' -> 12, 12.7 -> 12. None if unparseable."""
    if value is None or value == "":
        return None
    m = _SECONDS_RE.match(str(value))
    if m:
        return int(float(m.group(1)))
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return None


def _error_body(exc) -> dict | None:
    details = getattr(exc, "details", None)
    if isinstance(details, dict):
        return details
    raw = getattr(exc, "response_body", None)
    if raw is None:
        response = getattr(exc, "response", None)
        if response is not None and hasattr(response, "json"):
            try:
                body = response.json()
            except Exception:
                body = None
            if isinstance(body, dict):
                return body
        return None
    if isinstance(raw, dict):
        return raw
    try:
        body = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return body if isinstance(body, dict) else None


def retry_after_seconds(exc: BaseException) -> int | None:
    """Best-effort Retry-After extraction from an upstream error."""
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if headers is not None:
        seconds = parse_retry_seconds(headers.get("retry-after"))
        if seconds is None:
            seconds = parse_retry_seconds(headers.get("Retry-After"))
        if seconds is not None:
            return seconds

    body = _error_body(exc)
    if body:
        err = body.get("error", body)
        if not isinstance(err, dict):
            err = {}
        details = err.get("details")
        for d in details if isinstance(details, list) else []:
            if isinstance(d, dict) and d.get("retryDelay"):
                seconds = parse_retry_seconds(d["retryDelay"])
                if seconds is not None:
                    return seconds
        message = err.get("message")
        if message:
            m = _RETRY_DELAY_RE.search(str(message))
            if m:
                return int(float(m.group(1)))

    m = _RETRY_DELAY_RE.search(str(exc))
    if m:
        return int(float(m.group(1)))
    return None


def error_response(exc: BaseException) -> tuple[int, dict, dict]:
    """Map an upstream failure to (status, payload, headers)."""
    message = str(exc)
    if not is_rate_limit(exc):
        return 500, {"error": message or type(exc).__name__}, {}

    payload = {
        "error": message or "AI quota or rate limit exceeded",
        "quotaExceeded": True,
    }
    headers = {}
    seconds = retry_after_seconds(exc)
    if seconds is not None:
        payload["retryAfterSeconds"] = seconds
        headers["Retry-After"] = str(seconds)
    return 429, payload, headers
