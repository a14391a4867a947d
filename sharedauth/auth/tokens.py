"""Functions for working with signed session tokens."""

from datetime import datetime, timedelta
from typing import Optional

import jwt
from pytz import UTC

from ..domain import Identity, SessionClaim
from .exceptions import ExpiredToken, InvalidToken

ALGORITHM = 'HS256'
REQUIRED_CLAIMS = ['sub', 'iat', 'exp']


class TokenCodec(object):
    """
    Encodes and decodes session claims as signed JWTs.

    Pure transformation: no store lookups, no clock other than the one used to
    check expiry on decode.
    """

    def __init__(self, secret: str, duration: int = 86400,
                 algorithm: str = ALGORITHM) -> None:
        self._secret = secret
        self.duration = duration
        self.algorithm = algorithm

    def issue(self, identity: Identity,
              now: Optional[datetime] = None) -> SessionClaim:
        """
        Create a fresh claim for ``identity``.

        The claim is built only from the identity record, with a new
        issued-at time and a full lifetime.
        """
        issued_at = now if now is not None else datetime.now(tz=UTC)
        return SessionClaim(
            user_id=identity.user_id,
            name=identity.name,
            email=identity.email,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=self.duration)
        )

    def encode(self, claim: SessionClaim) -> str:
        """Encode a claim as a signed JWT."""
        payload = {
            'sub': claim.user_id,
            'name': claim.name,
            'email': claim.email,
            'iat': claim.issued_at.timestamp(),
            'exp': claim.expires_at.timestamp(),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def decode(self, token: str) -> SessionClaim:
        """
        Decode a token into a claim.

        Raises
        ------
        :class:`ExpiredToken`
        :class:`InvalidToken`
            Raised if the token is malformed, tampered with, signed with a
            different key, or missing required claims.

        """
        try:
            data: dict = jwt.decode(token, self._secret,
                                    algorithms=[self.algorithm],
                                    options={'require': REQUIRED_CLAIMS})
        except jwt.ExpiredSignatureError as e:
            raise ExpiredToken('Session has expired') from e
        except jwt.InvalidTokenError as e:
            raise InvalidToken('Not a valid token') from e

        try:
            return SessionClaim(
                user_id=str(data['sub']),
                name=str(data.get('name') or ''),
                email=str(data.get('email') or ''),
                issued_at=datetime.fromtimestamp(float(data['iat']), tz=UTC),
                expires_at=datetime.fromtimestamp(float(data['exp']), tz=UTC)
            )
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidToken('Token payload malformed') from e
