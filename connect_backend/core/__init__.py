"""Core business logic."""
from .identity import (
    IdentityError,
    IdentityResolver,
    IdentityValidationError,
    Resolution,
    ResolutionOutcome,
)
from .identity_store import (
    IdentityStore,
    InMemoryIdentityStore,
    RedisIdentityStore,
    create_identity_store,
)

__all__ = [
    "IdentityError",
    "IdentityResolver",
    "IdentityStore",
    "IdentityValidationError",
    "InMemoryIdentityStore",
    "RedisIdentityStore",
    "Resolution",
    "ResolutionOutcome",
    "create_identity_store",
]
