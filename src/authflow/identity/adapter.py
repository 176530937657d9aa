"""Identity provider adapter — the only code that knows the backend's native shapes.

Every backend call goes through here and comes out as either a domain result
or an ``AuthError`` with a message that is safe to show to the user. Backend
replies are first mapped to a tagged ``Ok``/``Err`` result, then unwrapped at
the public method boundary.

Two capability sets are exposed, one per strategy:

- ``PasswordProvider``: existence check, sign in, sign up, sign out,
  current user, session change subscription
- ``CodeProvider``: request a one-time code, verify it, update the profile
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from authflow.errors import AuthError, ConfigurationError, ErrorKind
from authflow.identity.base import BackendReply, IdentityBackend, Subscription
from authflow.models.results import (
    Err,
    Ok,
    Result,
    SessionEvent,
    SessionResult,
    UserProfile,
)

logger = logging.getLogger(__name__)

DEFAULT_EMAIL_CHECK_FUNCTION = "is-email-registered"

UNREACHABLE_MESSAGE = (
    "Cannot reach the identity service. Check: the backend URL is exactly "
    "`https://<project-ref>.supabase.co` (no spaces, no quotes); restart the app "
    "after changing environment variables; the device has internet access."
)
INVALID_CHECK_RESPONSE = "Email check failed (invalid response)."
UNKNOWN_ERROR = "Unknown error"

_CHECK_STATUS_MESSAGES = {
    ErrorKind.NOT_FOUND: (
        "Email check service not found. Deploy the function: {function}."
    ),
    ErrorKind.UNAUTHORIZED: (
        "Email check not authorized. Ensure your anon key is correct and the "
        "function is deployed."
    ),
    ErrorKind.SERVER: (
        "Email check server error. Ensure the function secrets are set "
        "(recommended): SB_URL and SB_SERVICE_ROLE_KEY."
    ),
}

_AUTH_STATUS_MESSAGES = {
    ErrorKind.NOT_FOUND: "Authentication endpoint not found. Check the backend URL.",
    ErrorKind.UNAUTHORIZED: "Not authorized. Check the backend key.",
    ErrorKind.SERVER: "The identity service failed. Try again in a moment.",
}


# ---------------------------------------------------------------------------
# Reading native shapes
# ---------------------------------------------------------------------------


def _kind_for_status(status: int) -> ErrorKind:
    if status in (401, 403):
        return ErrorKind.UNAUTHORIZED
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status >= 500:
        return ErrorKind.SERVER
    return ErrorKind.FAILED


def extract_message(data: Any) -> str | None:
    """Pull a human-readable message out of a GoTrue-style error body."""
    if isinstance(data, dict):
        for key in ("msg", "error_description", "message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _missing_secrets(config: Any) -> list[str]:
    """Names of server secrets reported absent through ``has<NAME>: false`` flags."""
    if not isinstance(config, dict):
        return []
    return [
        key[len("has"):]
        for key, value in config.items()
        if isinstance(key, str) and key.startswith("has") and value is False
    ]


def explain_function_error(reply: BackendReply, function: str) -> Err:
    """Normalize a failed existence-check function call.

    The function reports safe diagnostics only: an ``error`` string, an
    optional key ``role``, a ``hint`` and boolean ``config`` flags. Nothing
    else from the body is echoed.
    """
    data = reply.data if isinstance(reply.data, dict) else {}
    server_error = data.get("error") if isinstance(data.get("error"), str) else None
    if server_error:
        message = server_error
        role = data.get("role")
        if isinstance(role, str):
            message += f" (role: {role})"
        missing = _missing_secrets(data.get("config"))
        if missing:
            message += f" (missing: {', '.join(missing)})"
        hint = data.get("hint")
        if isinstance(hint, str):
            message += f" ({hint})"
        kind = ErrorKind.CONFIGURATION if missing else _kind_for_status(reply.status)
        return Err(kind, message)

    kind = _kind_for_status(reply.status)
    template = _CHECK_STATUS_MESSAGES.get(kind)
    if template:
        return Err(kind, template.format(function=function))
    return Err(kind, extract_message(reply.data) or UNKNOWN_ERROR)


def explain_auth_error(reply: BackendReply) -> Err:
    kind = _kind_for_status(reply.status)
    message = extract_message(reply.data)
    if message is None:
        message = _AUTH_STATUS_MESSAGES.get(kind, UNKNOWN_ERROR)
    return Err(kind, message)


def parse_user(data: Any) -> UserProfile | None:
    if not isinstance(data, dict) or not data.get("id"):
        return None
    metadata = data.get("user_metadata") if isinstance(data.get("user_metadata"), dict) else {}
    name = metadata.get("name")
    return UserProfile(
        id=str(data["id"]),
        email=data.get("email") if isinstance(data.get("email"), str) else None,
        name=name.strip() if isinstance(name, str) and name.strip() else None,
    )


def parse_session(data: Any) -> SessionResult:
    """Session replies carry ``user`` next to the tokens; sign-up without
    auto-confirm returns the bare user object instead."""
    if not isinstance(data, dict):
        return SessionResult()
    user = parse_user(data.get("user")) if "user" in data else parse_user(data)
    return SessionResult(
        user=user,
        has_session=bool(data.get("access_token")),
        is_new_user=user is not None and user.name is None,
    )


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class _BackendProvider:
    id: str = ""
    label: str = ""

    def __init__(self, backend: IdentityBackend) -> None:
        self._backend = backend

    async def _send(self, operation: str, call: Awaitable[BackendReply]) -> Result[BackendReply]:
        try:
            reply = await call
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("%s could not reach the backend (%s)", operation, type(exc).__name__)
            return Err(ErrorKind.NETWORK, UNREACHABLE_MESSAGE)
        if not reply.ok:
            logger.info("%s rejected by backend with status %s", operation, reply.status)
        return Ok(reply)

    async def _auth_call(self, operation: str, call: Awaitable[BackendReply]) -> Result[Any]:
        sent = await self._send(operation, call)
        if not sent.ok:
            return sent
        reply = sent.value
        if not reply.ok:
            return explain_auth_error(reply)
        return Ok(reply.data)


class PasswordProvider(_BackendProvider):
    """Email + password strategy."""

    id = "email_password"
    label = "Email"

    def __init__(
        self,
        backend: IdentityBackend,
        email_check_function: str = DEFAULT_EMAIL_CHECK_FUNCTION,
    ) -> None:
        super().__init__(backend)
        self._email_check_function = email_check_function

    async def check_identity_exists(self, email: str) -> bool:
        """Ask the server-side lookup whether ``email`` has an account.

        Fails closed: a reply without an explicit boolean ``exists`` is an
        error, never read as either answer.
        """
        function = self._email_check_function
        sent = await self._send(
            "check_identity_exists", self._backend.invoke(function, {"email": email})
        )
        if not sent.ok:
            raise sent.to_error()
        reply = sent.value
        if not reply.ok:
            raise explain_function_error(reply, function).to_error()
        exists = reply.data.get("exists") if isinstance(reply.data, dict) else None
        if not isinstance(exists, bool):
            raise AuthError(INVALID_CHECK_RESPONSE, ErrorKind.INVALID_RESPONSE)
        return exists

    async def sign_in(self, email: str, password: str) -> SessionResult:
        result = await self._auth_call("sign_in", self._backend.sign_in_with_password(email, password))
        return parse_session(result.unwrap()).model_copy(update={"is_new_user": False})

    async def sign_up(self, name: str, email: str, password: str) -> SessionResult:
        result = await self._auth_call(
            "sign_up", self._backend.sign_up(email, password, {"name": name})
        )
        return parse_session(result.unwrap()).model_copy(update={"is_new_user": True})

    async def sign_out(self) -> None:
        (await self._auth_call("sign_out", self._backend.sign_out())).unwrap()

    async def get_current_user(self) -> UserProfile | None:
        result = await self._auth_call("get_current_user", self._backend.get_user())
        data = result.unwrap()
        if isinstance(data, dict) and "user" in data:
            data = data["user"]
        return parse_user(data)

    def subscribe_to_session_changes(
        self, handler: Callable[[SessionEvent], None]
    ) -> Subscription:
        def _forward(event: str, user: dict | None) -> None:
            handler(SessionEvent(event=event, user=parse_user(user)))

        return self._backend.on_auth_state_change(_forward)


class CodeProvider(_BackendProvider):
    """Email one-time-code strategy. One request serves sign-up and sign-in."""

    id = "email_otp"
    label = "Email OTP"

    async def request_code(self, email: str) -> None:
        result = await self._auth_call(
            "request_code", self._backend.sign_in_with_otp(email, create_user=True)
        )
        result.unwrap()

    async def verify_code(self, email: str, code: str) -> SessionResult:
        result = await self._auth_call("verify_code", self._backend.verify_otp(email, code))
        return parse_session(result.unwrap())

    async def update_profile(self, *, name: str) -> UserProfile | None:
        result = await self._auth_call("update_profile", self._backend.update_user({"name": name}))
        return parse_user(result.unwrap())


@dataclass(frozen=True)
class IdentityProviderAdapter:
    """Both strategies over one backend handle."""

    password: PasswordProvider
    code: CodeProvider


def create_identity_providers(
    backend: IdentityBackend | None,
    *,
    email_check_function: str | None = None,
) -> IdentityProviderAdapter:
    if backend is None:
        raise ConfigurationError("An identity backend is required (pass backend=...).")
    if email_check_function is None:
        email_check_function = getattr(
            backend, "email_check_function", DEFAULT_EMAIL_CHECK_FUNCTION
        )
    return IdentityProviderAdapter(
        password=PasswordProvider(backend, email_check_function=email_check_function),
        code=CodeProvider(backend),
    )
