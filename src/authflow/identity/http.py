"""HTTP identity backend — talks to a Supabase-compatible project over REST.

Auth calls go to the GoTrue endpoints under ``/auth/v1``; the email existence
lookup is a server-side function under ``/functions/v1``. The backend owns the
session (tokens stay here) and announces changes to registered callbacks.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from authflow.config import BackendSettings
from authflow.errors import ConfigurationError
from authflow.identity.base import (
    BackendReply,
    IdentityBackend,
    SessionCallback,
    SessionEmitter,
    Subscription,
)

logger = logging.getLogger(__name__)


class HttpIdentityBackend(IdentityBackend):
    """GoTrue/Edge Functions client built on httpx."""

    def __init__(
        self,
        settings: BackendSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not settings.url.strip() or not settings.anon_key.strip():
            raise ConfigurationError("Backend URL and key are required.")
        self._settings = settings
        self._base_url = settings.url.strip().rstrip("/")
        self._client = client
        self._owns_client = client is None
        self._session: dict | None = None
        self._emitter = SessionEmitter()

    @property
    def email_check_function(self) -> str:
        return self._settings.email_check_function

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._settings.timeout,
                headers={"User-Agent": "authflow/0.1"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpIdentityBackend:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self, use_session: bool = False) -> dict[str, str]:
        token = self._settings.anon_key
        if use_session and self._session:
            token = self._session.get("access_token") or token
        return {
            "apikey": self._settings.anon_key,
            "authorization": f"Bearer {token}",
            "accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        use_session: bool = False,
    ) -> BackendReply:
        client = self._get_client()
        resp = await client.request(
            method,
            f"{self._base_url}{path}",
            json=json,
            params=params,
            headers=self._headers(use_session),
        )
        logger.debug("%s %s -> %s", method, path, resp.status_code)
        return BackendReply(status=resp.status_code, data=_decode(resp))

    def _store_session(self, reply: BackendReply) -> None:
        data = reply.data if isinstance(reply.data, dict) else {}
        if reply.ok and data.get("access_token"):
            self._session = data
            self._emitter.emit("SIGNED_IN", data.get("user"))

    # ------------------------------------------------------------------
    # IdentityBackend
    # ------------------------------------------------------------------

    async def invoke(self, function: str, body: dict) -> BackendReply:
        return await self._request("POST", f"/functions/v1/{function}", json=body)

    async def sign_in_with_password(self, email: str, password: str) -> BackendReply:
        reply = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        self._store_session(reply)
        return reply

    async def sign_up(self, email: str, password: str, metadata: dict) -> BackendReply:
        reply = await self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": metadata},
        )
        self._store_session(reply)
        return reply

    async def sign_in_with_otp(self, email: str, create_user: bool = True) -> BackendReply:
        return await self._request(
            "POST",
            "/auth/v1/otp",
            json={"email": email, "create_user": create_user},
        )

    async def verify_otp(self, email: str, token: str) -> BackendReply:
        reply = await self._request(
            "POST",
            "/auth/v1/verify",
            json={"type": "email", "email": email, "token": token},
        )
        self._store_session(reply)
        return reply

    async def update_user(self, metadata: dict) -> BackendReply:
        if not self._session:
            return BackendReply(status=401, data={"msg": "Auth session missing!"})
        reply = await self._request(
            "PUT", "/auth/v1/user", json={"data": metadata}, use_session=True
        )
        if reply.ok and isinstance(reply.data, dict):
            self._session = {**self._session, "user": reply.data}
            self._emitter.emit("USER_UPDATED", reply.data)
        return reply

    async def sign_out(self) -> BackendReply:
        if not self._session:
            return BackendReply(status=204)
        reply = await self._request("POST", "/auth/v1/logout", use_session=True)
        # The local session is dropped even when the server already forgot it.
        if reply.ok or reply.status in (401, 404):
            self._session = None
            self._emitter.emit("SIGNED_OUT", None)
            return BackendReply(status=204)
        return reply

    async def get_user(self) -> BackendReply:
        if not self._session:
            return BackendReply(status=200, data=None)
        return await self._request("GET", "/auth/v1/user", use_session=True)

    def on_auth_state_change(self, callback: SessionCallback) -> Subscription:
        return self._emitter.add(callback)


def _decode(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text
