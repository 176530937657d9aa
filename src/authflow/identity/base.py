"""Pluggable identity backend interface.

A backend is the injected handle to the external identity service (a
Supabase/GoTrue project, or the in-memory stand-in). It speaks the service's
native shapes: every call returns a ``BackendReply`` with the HTTP-like status
and decoded JSON body, and transport failures raise ``httpx.TransportError``.
Only ``authflow.identity.adapter`` is allowed to interpret those shapes.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

SessionCallback = Callable[[str, dict | None], None]


@dataclass(frozen=True)
class BackendReply:
    status: int
    data: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Subscription:
    """Owned handle for a registered callback.

    ``close()`` runs the release function exactly once. Usable as a context
    manager so the callback is released when the owner goes away.
    """

    def __init__(self, release: Callable[[], None]) -> None:
        self._release: Callable[[], None] | None = release

    @property
    def closed(self) -> bool:
        return self._release is None

    def close(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class SessionEmitter:
    """Fan-out of session events to registered callbacks."""

    def __init__(self) -> None:
        self._callbacks: list[SessionCallback] = []

    def add(self, callback: SessionCallback) -> Subscription:
        self._callbacks.append(callback)

        def _release() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return Subscription(_release)

    def emit(self, event: str, user: dict | None) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event, user)
            except Exception:
                logger.exception("Session listener failed for event %s", event)


class IdentityBackend(ABC):
    """Abstract handle to an external identity service."""

    @abstractmethod
    async def invoke(self, function: str, body: dict) -> BackendReply:
        """Call a server-side function by name with a JSON body."""

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> BackendReply: ...

    @abstractmethod
    async def sign_up(self, email: str, password: str, metadata: dict) -> BackendReply: ...

    @abstractmethod
    async def sign_in_with_otp(self, email: str, create_user: bool = True) -> BackendReply:
        """Send a one-time code. ``create_user`` lets one call serve sign-up and sign-in."""

    @abstractmethod
    async def verify_otp(self, email: str, token: str) -> BackendReply: ...

    @abstractmethod
    async def update_user(self, metadata: dict) -> BackendReply:
        """Merge ``metadata`` into the signed-in user's metadata."""

    @abstractmethod
    async def sign_out(self) -> BackendReply: ...

    @abstractmethod
    async def get_user(self) -> BackendReply: ...

    @abstractmethod
    def on_auth_state_change(self, callback: SessionCallback) -> Subscription:
        """Register ``callback(event, user)`` for session changes."""
