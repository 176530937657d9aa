"""Configuration surface consumed once at flow construction."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class AuthMode(StrEnum):
    PASSWORD = "password"
    OTP = "otp"


class EmailOptions(BaseModel):
    """Which email methods are enabled. ``None`` means not specified."""

    model_config = ConfigDict(extra="ignore")

    password: bool | None = None
    otp: bool | None = None
    default: AuthMode | None = None


class AuthOptions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: EmailOptions = Field(default_factory=EmailOptions)

    @classmethod
    def coerce(cls, options: AuthOptions | dict | None) -> AuthOptions:
        if options is None:
            return cls()
        if isinstance(options, AuthOptions):
            return options
        return cls.model_validate(options)
