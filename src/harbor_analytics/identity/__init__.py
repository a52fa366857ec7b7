"""Visitor identity: session ids, environment fingerprints and session storage."""

from .fingerprint import EnvironmentTraits, collect_traits, hash_string
from .provider import SESSION_KEY, UNKNOWN_VISITOR, IdentityProvider
from .session_store import FileSessionStore, MemorySessionStore, SessionStore

__all__ = [
    "IdentityProvider",
    "EnvironmentTraits",
    "SessionStore",
    "MemorySessionStore",
    "FileSessionStore",
    "collect_traits",
    "hash_string",
    "SESSION_KEY",
    "UNKNOWN_VISITOR",
]
