"""Tests for the identity provider adapter's normalization."""

from __future__ import annotations

import httpx
import pytest

from authflow.errors import AuthError, ConfigurationError, ErrorKind
from authflow.identity.adapter import (
    INVALID_CHECK_RESPONSE,
    UNREACHABLE_MESSAGE,
    CodeProvider,
    PasswordProvider,
    create_identity_providers,
    explain_function_error,
    extract_message,
    parse_session,
)
from authflow.identity.base import BackendReply, IdentityBackend, SessionEmitter, Subscription
from authflow.identity.memory import InMemoryIdentityBackend
from authflow.models.results import SessionEvent


class StubBackend(IdentityBackend):
    """Backend that answers every call with one canned reply or error."""

    def __init__(self, reply: BackendReply | None = None, error: Exception | None = None) -> None:
        self.reply = reply or BackendReply(status=200, data={})
        self.error = error
        self.calls: list[tuple] = []
        self.emitter = SessionEmitter()

    async def _answer(self, *call) -> BackendReply:
        self.calls.append(call)
        if self.error is not None:
            raise self.error
        return self.reply

    async def invoke(self, function: str, body: dict) -> BackendReply:
        return await self._answer("invoke", function, body)

    async def sign_in_with_password(self, email: str, password: str) -> BackendReply:
        return await self._answer("sign_in_with_password", email, password)

    async def sign_up(self, email: str, password: str, metadata: dict) -> BackendReply:
        return await self._answer("sign_up", email, password, metadata)

    async def sign_in_with_otp(self, email: str, create_user: bool = True) -> BackendReply:
        return await self._answer("sign_in_with_otp", email, create_user)

    async def verify_otp(self, email: str, token: str) -> BackendReply:
        return await self._answer("verify_otp", email, token)

    async def update_user(self, metadata: dict) -> BackendReply:
        return await self._answer("update_user", metadata)

    async def sign_out(self) -> BackendReply:
        return await self._answer("sign_out")

    async def get_user(self) -> BackendReply:
        return await self._answer("get_user")

    def on_auth_state_change(self, callback) -> Subscription:
        return self.emitter.add(callback)


class TestCreateProviders:
    def test_requires_backend(self) -> None:
        with pytest.raises(ConfigurationError):
            create_identity_providers(None)

    def test_provider_identity(self) -> None:
        providers = create_identity_providers(StubBackend())
        assert providers.password.id == "email_password"
        assert providers.password.label == "Email"
        assert providers.code.id == "email_otp"
        assert providers.code.label == "Email OTP"


class TestCheckIdentityExists:
    @pytest.mark.asyncio
    async def test_true_and_false(self) -> None:
        for value in (True, False):
            backend = StubBackend(BackendReply(status=200, data={"exists": value}))
            provider = PasswordProvider(backend)
            assert await provider.check_identity_exists("a@x.com") is value
            assert backend.calls == [("invoke", "is-email-registered", {"email": "a@x.com"})]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [{}, {"exists": "true"}, {"exists": 1}, None, "ok", []])
    async def test_fails_closed(self, data: object) -> None:
        provider = PasswordProvider(StubBackend(BackendReply(status=200, data=data)))
        with pytest.raises(AuthError) as exc_info:
            await provider.check_identity_exists("a@x.com")
        assert exc_info.value.kind == ErrorKind.INVALID_RESPONSE
        assert exc_info.value.message == INVALID_CHECK_RESPONSE

    @pytest.mark.asyncio
    async def test_network_failure(self) -> None:
        backend = StubBackend(error=httpx.ConnectError("dns lookup failed"))
        provider = PasswordProvider(backend)
        with pytest.raises(AuthError) as exc_info:
            await provider.check_identity_exists("a@x.com")
        assert exc_info.value.kind == ErrorKind.NETWORK
        assert exc_info.value.message == UNREACHABLE_MESSAGE

    @pytest.mark.asyncio
    async def test_function_not_deployed(self) -> None:
        reply = BackendReply(status=404, data={"code": "NOT_FOUND"})
        provider = PasswordProvider(StubBackend(reply), email_check_function="lookup-email")
        with pytest.raises(AuthError, match="Deploy the function: lookup-email") as exc_info:
            await provider.check_identity_exists("a@x.com")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_unauthorized(self) -> None:
        provider = PasswordProvider(StubBackend(BackendReply(status=401, data=None)))
        with pytest.raises(AuthError, match="not authorized") as exc_info:
            await provider.check_identity_exists("a@x.com")
        assert exc_info.value.kind == ErrorKind.UNAUTHORIZED


class TestExplainFunctionError:
    def test_server_diagnostics(self) -> None:
        reply = BackendReply(
            status=500,
            data={
                "error": "Lookup failed",
                "role": "anon",
                "hint": "Set the function secrets",
                "config": {"hasSB_URL": True, "hasSB_SERVICE_ROLE_KEY": False},
                "stack": "secret internals",
            },
        )
        err = explain_function_error(reply, "is-email-registered")
        assert err.kind == ErrorKind.CONFIGURATION
        assert err.message == (
            "Lookup failed (role: anon) (missing: SB_SERVICE_ROLE_KEY) (Set the function secrets)"
        )
        assert "secret internals" not in err.message

    def test_server_error_without_body(self) -> None:
        err = explain_function_error(BackendReply(status=503), "is-email-registered")
        assert err.kind == ErrorKind.SERVER
        assert "SB_URL" in err.message


class TestAuthCalls:
    @pytest.mark.asyncio
    async def test_sign_in_error_message_passed_through(self) -> None:
        reply = BackendReply(status=400, data={"msg": "Invalid login credentials"})
        provider = PasswordProvider(StubBackend(reply))
        with pytest.raises(AuthError, match="Invalid login credentials") as exc_info:
            await provider.sign_in("a@x.com", "wrong-password")
        assert exc_info.value.kind == ErrorKind.FAILED

    @pytest.mark.asyncio
    async def test_sign_up_sends_name_metadata(self) -> None:
        backend = StubBackend(BackendReply(status=200, data={"id": "u1", "email": "a@x.com"}))
        result = await PasswordProvider(backend).sign_up("Ann", "a@x.com", "longenough")
        assert backend.calls == [("sign_up", "a@x.com", "longenough", {"name": "Ann"})]
        assert result.is_new_user is True
        assert result.has_session is False

    @pytest.mark.asyncio
    async def test_request_code_creates_user(self) -> None:
        backend = StubBackend()
        await CodeProvider(backend).request_code("a@x.com")
        assert backend.calls == [("sign_in_with_otp", "a@x.com", True)]

    @pytest.mark.asyncio
    async def test_generic_failure_has_fallback_message(self) -> None:
        provider = CodeProvider(StubBackend(BackendReply(status=429, data=None)))
        with pytest.raises(AuthError, match="Unknown error"):
            await provider.verify_code("a@x.com", "123456")

    @pytest.mark.asyncio
    async def test_invalid_url_is_network_error(self) -> None:
        provider = CodeProvider(StubBackend(error=httpx.InvalidURL("bad url")))
        with pytest.raises(AuthError) as exc_info:
            await provider.request_code("a@x.com")
        assert exc_info.value.kind == ErrorKind.NETWORK


class TestParsing:
    def test_extract_message_key_order(self) -> None:
        assert extract_message({"error": "e", "msg": "m"}) == "m"
        assert extract_message({"error_description": "d", "message": "x"}) == "d"
        assert extract_message({"msg": "  "}) is None
        assert extract_message("plain") is None

    def test_parse_session_new_user_has_no_name(self) -> None:
        data = {"access_token": "t", "user": {"id": "u1", "email": "a@x.com", "user_metadata": {}}}
        result = parse_session(data)
        assert result.has_session is True
        assert result.is_new_user is True

    def test_parse_session_returning_user(self) -> None:
        data = {
            "access_token": "t",
            "user": {"id": "u1", "email": "a@x.com", "user_metadata": {"name": "Ann"}},
        }
        result = parse_session(data)
        assert result.user is not None
        assert result.user.name == "Ann"
        assert result.is_new_user is False


class TestWithMemoryBackend:
    @pytest.mark.asyncio
    async def test_code_round_trip_new_identity(self) -> None:
        backend = InMemoryIdentityBackend(code_factory=lambda: "654321")
        providers = create_identity_providers(backend)

        await providers.code.request_code("new@x.com")
        assert backend.outbox == [("new@x.com", "654321")]
        result = await providers.code.verify_code("new@x.com", "654321")
        assert result.is_new_user is True

        profile = await providers.code.update_profile(name="Ann")
        assert profile is not None
        assert profile.name == "Ann"
        current = await providers.password.get_current_user()
        assert current is not None
        assert current.name == "Ann"

    @pytest.mark.asyncio
    async def test_wrong_code(self) -> None:
        backend = InMemoryIdentityBackend(code_factory=lambda: "654321")
        providers = create_identity_providers(backend)
        await providers.code.request_code("new@x.com")
        with pytest.raises(AuthError, match="expired or is invalid") as exc_info:
            await providers.code.verify_code("new@x.com", "000000")
        assert exc_info.value.kind == ErrorKind.UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_session_subscription(self) -> None:
        backend = InMemoryIdentityBackend()
        backend.add_user("old@x.com", password="correct-horse", name="Olga")
        providers = create_identity_providers(backend)
        events: list[SessionEvent] = []

        with providers.password.subscribe_to_session_changes(events.append) as subscription:
            await providers.password.sign_in("old@x.com", "correct-horse")
            await providers.password.sign_out()
        assert subscription.closed is True
        assert [event.event for event in events] == ["SIGNED_IN", "SIGNED_OUT"]
        assert events[0].user is not None
        assert events[0].user.name == "Olga"

        await providers.password.sign_in("old@x.com", "correct-horse")
        assert len(events) == 2

    @pytest.mark.asyncio
    async def test_offline_backend(self) -> None:
        backend = InMemoryIdentityBackend()
        backend.offline = True
        providers = create_identity_providers(backend)
        with pytest.raises(AuthError) as exc_info:
            await providers.password.sign_in("old@x.com", "correct-horse")
        assert exc_info.value.kind == ErrorKind.NETWORK

    @pytest.mark.asyncio
    async def test_get_current_user_without_session(self) -> None:
        providers = create_identity_providers(InMemoryIdentityBackend())
        assert await providers.password.get_current_user() is None
