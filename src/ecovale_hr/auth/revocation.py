"""In-memory denylist for logged-out tokens.

JWTs are stateless, so without this a token stays usable for its whole
TTL after logout. Logout records the token's `jti` here until the token
would have expired anyway; the authentication middleware rejects any
token whose id is listed.

Single-process only: with several workers each keeps its own list.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable

import structlog

logger = structlog.get_logger()


class TokenDenylist:
    """Thread-safe, size-capped set of revoked token ids with per-entry expiry."""

    def __init__(self, max_entries: int = 100_000, clock: Callable[[], float] = time.time):
        self._max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, float]" = OrderedDict()
        self._lock = threading.Lock()

    def revoke(self, token_id: str, expires_at: float) -> None:
        """Deny `token_id` until `expires_at` (unix seconds)."""
        if not token_id or expires_at <= self._clock():
            return
        with self._lock:
            self._purge_expired()
            self._entries[token_id] = expires_at
            self._entries.move_to_end(token_id)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.warning("revocation.evicted", token_id=evicted)

    def is_revoked(self, token_id: str) -> bool:
        if not token_id:
            return False
        with self._lock:
            expires_at = self._entries.get(token_id)
            if expires_at is None:
                return False
            if expires_at <= self._clock():
                del self._entries[token_id]
                return False
            return True

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._entries)

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [k for k, exp in self._entries.items() if exp <= now]
        for k in expired:
            del self._entries[k]
