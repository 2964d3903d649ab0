"""Disk cache for generated Q&A, keyed by syllabus content and topic."""

import hashlib
import logging
import secrets
from pathlib import Path

from syllabus_gen import config
from syllabus_gen.errors import CacheClearDenied

log = logging.getLogger(__name__)


def cache_key(content: str, topic_title: str) -> str:
    return hashlib.sha256(f"{content}::{topic_title}".encode()).hexdigest()


class QACache:
    """Lazy-initialized FanoutCache with a per-entry TTL."""

    def __init__(self, directory: str | Path | None = None, ttl: int | None = None):
        self._dir = Path(directory) if directory else config.cache_dir() / "qas"
        self._ttl = config.qas_cache_ttl_seconds() if ttl is None else ttl
        self._cache = None

    @property
    def directory(self) -> Path:
        return self._dir

    def _ensure(self):
        if self._cache is None:
            from diskcache import FanoutCache

            self._cache = FanoutCache(str(self._dir), shards=8)
        return self._cache

    def get(self, key: str):
        return self._ensure().get(key)

    def set(self, key: str, value) -> bool:
        return self._ensure().set(key, value, expire=self._ttl)

    def clear(self, secret: str | None = None) -> int:
        """Remove every entry. Returns the number removed.

        When CACHE_CLEAR_KEY is set, ``secret`` must match it.
        """
        expected = config.cache_clear_key()
        if expected and not secrets.compare_digest(expected, secret or ""):
            raise CacheClearDenied("Unauthorized")
        removed = self._ensure().clear()
        log.info("Cleared %d cached Q&A entries", removed)
        return removed

    def close(self):
        if self._cache is not None:
            self._cache.close()
            self._cache = None
