"""
Cooperative cancellation tokens, one live token per key.
"""
import threading
from typing import Dict, Optional


class CancellationToken:
    """Abort handle checked by the pipeline at every suspension point."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        # First reason wins; a late timeout never relabels a user cancel
        if not self._event.is_set():
            self.reason = reason
            self._event.set()


class TokenRegistry:
    """Maps a key (message identity, or the quick-translate slot) to its live token."""

    def __init__(self):
        self._tokens: Dict[str, CancellationToken] = {}
        self._lock = threading.RLock()

    def replace(self, key: str) -> CancellationToken:
        """Cancel whatever is in flight for key and hand out a fresh token."""
        token = CancellationToken()
        with self._lock:
            previous = self._tokens.get(key)
            if previous is not None:
                previous.cancel("superseded")
            self._tokens[key] = token
        return token

    def cancel(self, key: str, reason: str = "cancelled") -> bool:
        with self._lock:
            token = self._tokens.pop(key, None)
        if token is None:
            return False
        token.cancel(reason)
        return True

    def cancel_all(self, reason: str = "cancelled") -> int:
        with self._lock:
            tokens = list(self._tokens.values())
            self._tokens.clear()
        for token in tokens:
            token.cancel(reason)
        return len(tokens)

    def is_current(self, key: str, token: CancellationToken) -> bool:
        with self._lock:
            return self._tokens.get(key) is token

    def release(self, key: str, token: CancellationToken) -> None:
        """Drop the token for key, but only if it was not superseded meanwhile."""
        with self._lock:
            if self._tokens.get(key) is token:
                del self._tokens[key]

    def get(self, key: str) -> Optional[CancellationToken]:
        with self._lock:
            return self._tokens.get(key)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._tokens

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
