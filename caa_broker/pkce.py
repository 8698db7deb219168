"""
PKCE helpers and the in-memory store for short-lived handshake state.

Login state, PKCE verifiers and pending connected-account sessions only need
to live for the few minutes between a redirect and its callback, so they are
kept per process (in production, use Redis/DB).
"""

import base64
import hashlib
import secrets
import time
from typing import Any, Callable, Dict, Optional


def generate_code_verifier() -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("utf-8").rstrip("=")


def code_challenge(code_verifier: str) -> str:
    """S256 code challenge for ``code_verifier`` (RFC 7636)."""
    return base64.urlsafe_b64encode(
        hashlib.sha256(code_verifier.encode("utf-8")).digest()
    ).decode("utf-8").rstrip("=")


def generate_state() -> str:
    return secrets.token_urlsafe(16)


class PendingStore:
    """Keyed entries that expire ``ttl_seconds`` after they were stored."""

    def __init__(self, ttl_seconds: float = 600.0, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def put(self, key: str, **data: Any) -> None:
        self.purge_expired()
        self._entries[key] = {"data": data, "created_at": self._clock()}

    def _expired(self, entry: Dict[str, Any]) -> bool:
        return self._clock() - entry["created_at"] >= self.ttl_seconds

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[key]
            return None
        return dict(entry["data"])

    def pop(self, key: str) -> Optional[Dict[str, Any]]:
        """Remove and return the entry; None when it is unknown or expired."""
        entry = self._entries.pop(key, None)
        if entry is None or self._expired(entry):
            return None
        return dict(entry["data"])

    def purge_expired(self) -> int:
        expired = [key for key, entry in self._entries.items() if self._expired(entry)]
        for key in expired:
            del self._entries[key]
        return len(expired)
