"""Credential obfuscation and the time-boxed reveal guard."""

from subshare.credentials.obfuscation import (
    OBFUSCATION_PREFIX,
    obfuscate,
    reveal_secret,
)
from subshare.credentials.guard import CredentialRevealGuard

__all__ = [
    "OBFUSCATION_PREFIX",
    "CredentialRevealGuard",
    "obfuscate",
    "reveal_secret",
]
