"""
Reversible obfuscation of stored secrets.

SECURITY NOTE: this is base64 behind a prefix, NOT encryption. It keeps the
secret out of a casual glance at the store and provides no protection at all
against anyone who can read the store.
"""

import base64
import binascii


OBFUSCATION_PREFIX = "enc_"


def obfuscate(secret: str) -> str:
    """Encode a secret for storage."""
    encoded = base64.b64encode(secret.encode("utf-8")).decode("ascii")
    return f"{OBFUSCATION_PREFIX}{encoded}"


def reveal_secret(stored: str) -> str:
    """
    Decode a stored secret.

    Text that is not a valid encoding is returned unchanged, so legacy
    plain-text credentials still display.
    """
    payload = stored[len(OBFUSCATION_PREFIX):] if stored.startswith(OBFUSCATION_PREFIX) else stored
    try:
        return base64.b64decode(payload, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return stored
