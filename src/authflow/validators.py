"""Pure field validators. Cheap enough to run on every keystroke; never raise."""

from __future__ import annotations

import re

# Practical shape check, not RFC 5322: one @, no whitespace, a dot in the domain.
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_CODE_RE = re.compile(r"^[0-9]{6}$")

MIN_PASSWORD_LENGTH = 8
CODE_LENGTH = 6


def normalize_email(email: str | None) -> str:
    return str(email or "").strip().lower()


def is_valid_email(email: str | None) -> bool:
    return bool(_EMAIL_RE.match(str(email or "").strip()))


def is_valid_password(password: str | None) -> bool:
    # len() counts code points, which is what a user perceives as characters.
    return len(str(password or "")) >= MIN_PASSWORD_LENGTH


def is_valid_code(code: str | None) -> bool:
    # str.isdigit() accepts non-ASCII digits, so match explicitly.
    return bool(_CODE_RE.fullmatch(str(code or "").strip()))


def is_valid_name(name: str | None) -> bool:
    return len(str(name or "").strip()) > 0
