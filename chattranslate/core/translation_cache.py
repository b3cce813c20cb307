"""
Translation Cache: byte-budgeted in-memory store for translation results.

Two key families share one budget:
- message key = the host's stable message identifier -> multi-segment entry
- direct key  = hash of (normalized text, provider signature, target language)
                -> single-segment entry for standalone text

Overflow policy is a full flush: entries are cheap to regenerate on demand.
"""
import hashlib
import json
import logging
import threading
from typing import Dict, List, Optional

from ..config import CACHE_LIMIT_MB, clamp_cache_limit
from .models import CacheEntry, ProviderConfig

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024
DIRECT_KEY_PREFIX = "direct:"

_INVISIBLE_CHARS = ("\u200b", "\u200d", "\ufeff")


def normalize_text(text: str) -> str:
    """Strip zero-width characters and NBSPs so equal-looking input shares a key."""
    text = text or ""
    for char in _INVISIBLE_CHARS:
        text = text.replace(char, "")
    return text.replace("\u00a0", " ").strip()


def provider_signature(provider: Optional[ProviderConfig]) -> str:
    """Endpoint + model + first 8 chars of the key; the full secret is never kept."""
    if provider is None:
        return "none"
    key_fragment = provider.api_key[:8] if provider.api_key else ""
    return f"{provider.base_url or ''}|{provider.model_id or ''}|{key_fragment}"


def build_text_signature(main_text: str, quoted_texts: List[str]) -> str:
    return json.dumps({"main": main_text or "", "quotes": list(quoted_texts or [])}, ensure_ascii=False)


def text_fingerprint(text: str) -> str:
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def direct_cache_key(text: str, provider_sig: str, target_language: str) -> str:
    raw = f"{normalize_text(text)}|{provider_sig}|{target_language}"
    return DIRECT_KEY_PREFIX + hashlib.sha256(raw.encode("utf-8")).hexdigest()[:24]


def entry_size(entry: CacheEntry) -> int:
    """Serialized UTF-8 size of an entry in bytes."""
    return len(entry.model_dump_json().encode("utf-8"))


class TranslationCache:
    def __init__(self, limit_mb: int = CACHE_LIMIT_MB):
        self._entries: Dict[str, CacheEntry] = {}
        self._sizes: Dict[str, int] = {}
        self._total_bytes = 0
        self._limit_bytes = clamp_cache_limit(limit_mb) * BYTES_PER_MB
        self._lock = threading.RLock()

    @property
    def limit_bytes(self) -> int:
        return self._limit_bytes

    def set_limit(self, limit_mb) -> int:
        """Change the budget (clamped to 1-50 MB); flushes if the store no longer fits."""
        with self._lock:
            self._limit_bytes = clamp_cache_limit(limit_mb) * BYTES_PER_MB
            if self._total_bytes > self._limit_bytes:
                logger.info("[Cache] Budget shrank below current size, flushing")
                self._clear_locked()
            return self._limit_bytes

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def lookup(self, key: str, text_signature: str, provider_sig: str, target_language: str) -> Optional[CacheEntry]:
        """Return the entry only if it is still valid for this request context."""
        entry = self.get(key)
        if entry is None:
            return None
        if not entry.matches(text_signature, provider_sig, target_language):
            return None
        return entry

    def put(self, key: str, entry: CacheEntry) -> bool:
        """Store an entry. Returns False when it was rejected as oversized."""
        size = entry_size(entry)
        with self._lock:
            if size > self._limit_bytes:
                logger.warning(f"[Cache] Entry {key!r} ({size} bytes) exceeds budget, clearing cache")
                self._clear_locked()
                return False

            previous = self._sizes.get(key, 0)
            if self._total_bytes - previous + size > self._limit_bytes:
                logger.info(f"[Cache] Budget of {self._limit_bytes} bytes exceeded, flushing {len(self._entries)} entries")
                self._clear_locked()

            if key in self._sizes:
                self._total_bytes -= self._sizes[key]
            self._entries[key] = entry
            self._sizes[key] = size
            self._total_bytes += size
            return True

    def invalidate(self, key: str) -> bool:
        """Remove a single entry. Returns True if it existed."""
        with self._lock:
            if key not in self._entries:
                return False
            del self._entries[key]
            self._total_bytes = max(0, self._total_bytes - self._sizes.pop(key, 0))
            return True

    def _clear_locked(self) -> None:
        self._entries.clear()
        self._sizes.clear()
        self._total_bytes = 0

    def clear(self) -> None:
        with self._lock:
            self._clear_locked()

    def size_bytes(self) -> int:
        with self._lock:
            return self._total_bytes

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def stats(self) -> dict:
        with self._lock:
            direct = sum(1 for key in self._entries if key.startswith(DIRECT_KEY_PREFIX))
            return {
                "entries": len(self._entries),
                "message_entries": len(self._entries) - direct,
                "direct_entries": direct,
                "size_bytes": self._total_bytes,
                "limit_bytes": self._limit_bytes,
            }
