"""Runtime settings: flow timings and backend connection details."""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field

from authflow.errors import ConfigurationError

BACKEND_URL_ENV = "AUTHFLOW_BACKEND_URL"
BACKEND_KEY_ENV = "AUTHFLOW_BACKEND_KEY"


class FlowTimings(BaseModel):
    """Timer constants for the flow. Seconds throughout."""

    model_config = ConfigDict(frozen=True)

    debounce_seconds: float = Field(default=0.5, ge=0)
    check_attempts: int = Field(default=4, ge=1)
    retry_base_delay: float = Field(default=0.35, ge=0)
    retry_jitter: float = Field(default=0.15, ge=0)
    resend_window: int = Field(default=30, ge=0)
    tick_seconds: float = Field(default=1.0, gt=0)


class BackendSettings(BaseModel):
    """Where the identity backend lives and the public key used to call it."""

    url: str
    anon_key: str
    email_check_function: str = "is-email-registered"
    timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> BackendSettings:
        env = os.environ if environ is None else environ
        url = (env.get(BACKEND_URL_ENV) or "").strip()
        key = (env.get(BACKEND_KEY_ENV) or "").strip()
        missing = [
            name
            for name, value in ((BACKEND_URL_ENV, url), (BACKEND_KEY_ENV, key))
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Backend is not configured (missing: {', '.join(missing)})")
        return cls(url=url, anon_key=key)
