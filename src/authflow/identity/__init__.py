"""Identity backends and the provider adapter that normalizes them."""

from authflow.identity.adapter import (
    CodeProvider,
    IdentityProviderAdapter,
    PasswordProvider,
    create_identity_providers,
)
from authflow.identity.base import BackendReply, IdentityBackend, Subscription
from authflow.identity.http import HttpIdentityBackend
from authflow.identity.memory import InMemoryIdentityBackend

__all__ = [
    "BackendReply",
    "CodeProvider",
    "HttpIdentityBackend",
    "IdentityBackend",
    "IdentityProviderAdapter",
    "InMemoryIdentityBackend",
    "PasswordProvider",
    "Subscription",
    "create_identity_providers",
]
