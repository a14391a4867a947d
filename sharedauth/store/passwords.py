"""Credential hashing."""

import bcrypt

from .exceptions import InvalidPassword

DEFAULT_ROUNDS = 12

MAX_BYTES = 72
"""bcrypt only hashes this many bytes of the UTF-8 encoded password."""


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """
    Generate a bcrypt hash of a password.

    Raises
    ------
    :class:`InvalidPassword`
        The encoded password is longer than :data:`MAX_BYTES`.

    """
    encoded = password.encode('utf-8')
    if len(encoded) > MAX_BYTES:
        raise InvalidPassword(f'Password cannot be longer than {MAX_BYTES} '
                              'bytes')
    hashed = bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds))
    return hashed.decode('ascii')


def check_password(password: str, hashed: str) -> bool:
    """
    Check a password against a stored hash.

    Never raises: a malformed hash is simply a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'),
                              hashed.encode('ascii'))
    except (ValueError, TypeError, UnicodeEncodeError):
        return False
