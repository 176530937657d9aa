"""Adapter outcomes: the tagged Ok/Err result and the domain results it carries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from authflow.errors import AuthError, ErrorKind

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False

    def to_error(self) -> AuthError:
        return AuthError(self.message, self.kind)

    def unwrap(self) -> Any:
        raise self.to_error()


Result = Ok[T] | Err


class UserProfile(BaseModel):
    """The slice of a backend user record the flow cares about."""

    id: str
    email: str | None = None
    name: str | None = None


class SessionResult(BaseModel):
    """Outcome of sign-in, sign-up or code verification.

    Tokens stay inside the backend; only the facts the flow branches on are kept.
    """

    user: UserProfile | None = None
    has_session: bool = False
    is_new_user: bool = False


class SessionEvent(BaseModel):
    """A session change pushed by the backend (SIGNED_IN, SIGNED_OUT, USER_UPDATED)."""

    event: str
    user: UserProfile | None = None
