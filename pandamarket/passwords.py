"""
Credential store — bcrypt password hashing.

``verify_password`` never raises: a wrong password and a corrupt digest are
both a plain ``False`` so callers cannot tell them apart.
"""
import bcrypt

from pandamarket.config import settings
from pandamarket.errors import ValidationError

# bcrypt only looks at the first 72 bytes of its input.
_BCRYPT_MAX_BYTES = 72


def hash_password(plaintext: str) -> str:
    """Return a salted bcrypt digest of *plaintext* using the configured work factor."""
    encoded = plaintext.encode("utf-8")
    if len(encoded) > _BCRYPT_MAX_BYTES:
        raise ValidationError("Password is too long")
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(encoded, salt).decode("ascii")


def verify_password(plaintext: str, digest: str | None) -> bool:
    """Return True only when *plaintext* matches *digest*."""
    if not digest:
        return False
    encoded = plaintext.encode("utf-8")
    if len(encoded) > _BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, digest.encode("ascii"))
    except (ValueError, UnicodeEncodeError):
        # Malformed digest (bad salt, truncated record, ...).
        return False
