"""Round-robin API key rotation with cooldown on exhaustion.

Usage:
    rotator = KeyRotator(["key1", "key2", "key3"])
    key = rotator.next_credential()
    ...
    rotator.mark_exhausted(key)  # after a 429 / quota error

Exhausted keys are skipped until COOLDOWN_SECONDS have passed since they were
marked. Recovery is checked lazily on the next selection (no timer thread).
"""

import logging
import threading
import time
from datetime import datetime, timezone

from syllabus_gen.errors import NoCredentialsError

log = logging.getLogger(__name__)

COOLDOWN_SECONDS = 3600.0


def mask(key: str) -> str:
    """'AIzaSyD...9xQk' style preview, safe for logs."""
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}...{key[-4:]}"


def _iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class CredentialSlot:
    """One configured key and its usage / exhaustion state."""

    __slots__ = (
        "value",
        "last_used_at",
        "consecutive_failure_count",
        "exhausted",
        "exhausted_at",
    )

    def __init__(self, value: str):
        self.value = value
        self.last_used_at = 0.0
        self.consecutive_failure_count = 0
        self.exhausted = False
        self.exhausted_at: float | None = None

    def __repr__(self):
        return (
            f"CredentialSlot({mask(self.value)!r}, exhausted={self.exhausted}, "
            f"failures={self.consecutive_failure_count})"
        )


class KeyRotator:
    """Thread-safe round-robin pool of API keys.

    Slot order is the order of ``credentials`` and never changes. An empty
    list gives an empty pool; ``next_credential`` then raises
    ``NoCredentialsError``.
    """

    def __init__(
        self,
        credentials: list[str],
        cooldown: float = COOLDOWN_SECONDS,
        clock=time.time,
    ):
        self._slots = [CredentialSlot(c) for c in credentials]
        self._cooldown = cooldown
        self._clock = clock
        self._idx = 0
        self._lock = threading.Lock()
        log.info("Key rotator initialized with %d API keys", len(self._slots))

    def __len__(self):
        return len(self._slots)

    @property
    def cooldown(self) -> float:
        return self._cooldown

    @property
    def all_exhausted(self) -> bool:
        with self._lock:
            return bool(self._slots) and all(s.exhausted for s in self._slots)

    def _recover(self, now: float):
        for i, slot in enumerate(self._slots):
            if slot.exhausted and now - slot.exhausted_at > self._cooldown:
                log.info("Re-enabling key %d after cooldown", i + 1)
                slot.exhausted = False
                slot.exhausted_at = None
                slot.consecutive_failure_count = 0

    def next_credential(self) -> str:
        """Return the next usable key, advancing the cursor past it.

        If every key is exhausted, the key at the current cursor is returned
        anyway; the caller should expect it may still be rate limited.
        """
        with self._lock:
            n = len(self._slots)
            if n == 0:
                raise NoCredentialsError(
                    "No API keys configured (set GOOGLE_GENERATIVE_AI_API_KEY)"
                )
            now = self._clock()
            self._recover(now)

            start = self._idx
            for offset in range(n):
                i = (start + offset) % n
                slot = self._slots[i]
                if not slot.exhausted:
                    slot.last_used_at = max(slot.last_used_at, now)
                    self._idx = (i + 1) % n
                    log.debug("Using key %d/%d", i + 1, n)
                    return slot.value

            log.warning(
                "All %d API keys are exhausted, using key %d anyway", n, start + 1
            )
            return self._slots[start].value

    def mark_exhausted(self, credential: str):
        """Exclude ``credential`` until the cooldown passes. Unknown keys are ignored."""
        with self._lock:
            for i, slot in enumerate(self._slots):
                if slot.value == credential:
                    slot.exhausted = True
                    slot.exhausted_at = self._clock()
                    slot.consecutive_failure_count += 1
                    log.warning(
                        "Key %d marked as exhausted (failure %d)",
                        i + 1,
                        slot.consecutive_failure_count,
                    )
                    return

    def status(self) -> dict:
        """Diagnostic snapshot. Keys are reported by 1-based position only."""
        with self._lock:
            return {
                "total_keys": len(self._slots),
                "current_index": self._idx,
                "key_states": [
                    {
                        "key_index": i + 1,
                        "is_exhausted": s.exhausted,
                        "error_count": s.consecutive_failure_count,
                        "last_used": _iso(s.last_used_at) if s.last_used_at else None,
                        "exhausted_at": _iso(s.exhausted_at),
                    }
                    for i, s in enumerate(self._slots)
                ],
            }


_default: KeyRotator | None = None
_default_lock = threading.Lock()


def default_rotator() -> KeyRotator:
    """Process-wide rotator built from the environment on first use."""
    global _default
    with _default_lock:
        if _default is None:
            from syllabus_gen.config import load_credentials

            _default = KeyRotator(load_credentials())
        return _default


def _reset_default():
    global _default
    with _default_lock:
        _default = None
