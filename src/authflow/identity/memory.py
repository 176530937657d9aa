"""In-memory identity backend.

Answers with the same reply shapes as the HTTP backend so the adapter cannot
tell them apart. Used by the ``--demo`` terminal flow and by tests. Codes it
"sends" are recorded in ``outbox`` instead of being emailed.
"""

from __future__ import annotations

import secrets
import uuid
from collections.abc import Callable

import httpx

from authflow.identity.base import (
    BackendReply,
    IdentityBackend,
    SessionCallback,
    SessionEmitter,
    Subscription,
)
from authflow.validators import is_valid_email, normalize_email

EMAIL_CHECK_FUNCTION = "is-email-registered"


def _random_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


class InMemoryIdentityBackend(IdentityBackend):
    """Identity service held in a dict. Not for production use."""

    def __init__(self, code_factory: Callable[[], str] | None = None) -> None:
        self._users: dict[str, dict] = {}
        self._pending_codes: dict[str, str] = {}
        self._session: dict | None = None
        self._emitter = SessionEmitter()
        self._code_factory = code_factory or _random_code
        self.outbox: list[tuple[str, str]] = []
        self.offline = False

    def add_user(self, email: str, password: str = "", name: str | None = None) -> dict:
        """Seed an existing account."""
        user = {
            "id": str(uuid.uuid4()),
            "email": normalize_email(email),
            "password": password,
            "user_metadata": {"name": name} if name else {},
        }
        self._users[user["email"]] = user
        return _public(user)

    @property
    def current_session(self) -> dict | None:
        return self._session

    def _ensure_online(self) -> None:
        if self.offline:
            raise httpx.ConnectError("Failed to send a request to the identity service")

    def _open_session(self, user: dict) -> BackendReply:
        self._session = {
            "access_token": uuid.uuid4().hex,
            "refresh_token": uuid.uuid4().hex,
            "token_type": "bearer",
            "user": _public(user),
        }
        self._emitter.emit("SIGNED_IN", _public(user))
        return BackendReply(status=200, data=self._session)

    async def invoke(self, function: str, body: dict) -> BackendReply:
        self._ensure_online()
        if function != EMAIL_CHECK_FUNCTION:
            return BackendReply(
                status=404,
                data={"code": "NOT_FOUND", "message": "Requested function was not found"},
            )
        email = normalize_email(body.get("email"))
        if not email or not is_valid_email(email):
            return BackendReply(status=400, data={"error": "Invalid email"})
        return BackendReply(status=200, data={"exists": email in self._users})

    async def sign_in_with_password(self, email: str, password: str) -> BackendReply:
        self._ensure_online()
        user = self._users.get(normalize_email(email))
        if user is None or not user["password"] or user["password"] != password:
            return BackendReply(
                status=400,
                data={"error_code": "invalid_credentials", "msg": "Invalid login credentials"},
            )
        return self._open_session(user)

    async def sign_up(self, email: str, password: str, metadata: dict) -> BackendReply:
        self._ensure_online()
        key = normalize_email(email)
        if key in self._users:
            return BackendReply(
                status=422,
                data={"error_code": "user_already_exists", "msg": "User already registered"},
            )
        user = {
            "id": str(uuid.uuid4()),
            "email": key,
            "password": password,
            "user_metadata": dict(metadata),
        }
        self._users[key] = user
        return self._open_session(user)

    async def sign_in_with_otp(self, email: str, create_user: bool = True) -> BackendReply:
        self._ensure_online()
        key = normalize_email(email)
        if key not in self._users:
            if not create_user:
                return BackendReply(
                    status=422,
                    data={"error_code": "otp_disabled", "msg": "Signups not allowed for otp"},
                )
            self._users[key] = {
                "id": str(uuid.uuid4()),
                "email": key,
                "password": "",
                "user_metadata": {},
            }
        code = self._code_factory()
        self._pending_codes[key] = code
        self.outbox.append((key, code))
        return BackendReply(status=200, data={})

    async def verify_otp(self, email: str, token: str) -> BackendReply:
        self._ensure_online()
        key = normalize_email(email)
        expected = self._pending_codes.get(key)
        if expected is None or expected != token.strip():
            return BackendReply(
                status=403,
                data={"error_code": "otp_expired", "msg": "Token has expired or is invalid"},
            )
        del self._pending_codes[key]
        return self._open_session(self._users[key])

    async def update_user(self, metadata: dict) -> BackendReply:
        self._ensure_online()
        if not self._session:
            return BackendReply(status=401, data={"msg": "Auth session missing!"})
        user = self._users[self._session["user"]["email"]]
        user["user_metadata"] = {**user["user_metadata"], **metadata}
        self._session = {**self._session, "user": _public(user)}
        self._emitter.emit("USER_UPDATED", _public(user))
        return BackendReply(status=200, data=_public(user))

    async def sign_out(self) -> BackendReply:
        self._ensure_online()
        if self._session:
            self._session = None
            self._emitter.emit("SIGNED_OUT", None)
        return BackendReply(status=204)

    async def get_user(self) -> BackendReply:
        self._ensure_online()
        if not self._session:
            return BackendReply(status=200, data=None)
        return BackendReply(status=200, data=self._session["user"])

    def on_auth_state_change(self, callback: SessionCallback) -> Subscription:
        return self._emitter.add(callback)


def _public(user: dict) -> dict:
    return {
        "id": user["id"],
        "email": user["email"],
        "user_metadata": dict(user["user_metadata"]),
    }
