"""Resolve which authentication strategy a flow instance uses."""

from __future__ import annotations

from authflow.models.options import AuthMode, AuthOptions


def resolve_mode(options: AuthOptions | dict | None = None) -> AuthMode:
    """Map the ``email`` options to a single strategy.

    Rules, first match wins:
    1. otp disabled, password not disabled -> password
    2. otp enabled, password not explicitly enabled -> otp
    3. both enabled -> configured default, password if none
    4. both disabled -> otp, the method every backend supports
    5. otp unspecified -> otp if password is disabled, else default or password
    """
    email = AuthOptions.coerce(options).email
    password, otp = email.password, email.otp

    if otp is False and password is not False:
        return AuthMode.PASSWORD
    if otp is True and password is not True:
        return AuthMode.OTP
    if otp is True and password is True:
        return email.default or AuthMode.PASSWORD
    if otp is False and password is False:
        return AuthMode.OTP
    if password is False:
        return AuthMode.OTP
    return email.default or AuthMode.PASSWORD
