"""
Session issuance on the service that owns login.

Per request, authentication moves through::

    UNAUTHENTICATED -> VERIFYING -> AUTHENTICATED
                                 -> REJECTED

An unknown e-mail address and a wrong password are indistinguishable to the
caller: both are rejected with :data:`REJECTED_MESSAGE`. Only the log tells
them apart.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional

from ..domain import SessionClaim
from ..store import IdentityStore
from ..store.exceptions import NoSuchUser
from .tokens import TokenCodec

logger = logging.getLogger(__name__)

REJECTED_MESSAGE = 'Invalid email or password.'


class AuthState(Enum):
    UNAUTHENTICATED = 'unauthenticated'
    VERIFYING = 'verifying'
    AUTHENTICATED = 'authenticated'
    REJECTED = 'rejected'


class Authentication(NamedTuple):
    """Outcome of a login attempt."""

    state: AuthState
    claim: Optional[SessionClaim] = None
    token: Optional[str] = None
    reason: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.state is AuthState.AUTHENTICATED


REJECTED = Authentication(AuthState.REJECTED, reason=REJECTED_MESSAGE)


class Issuer(object):
    """Turns verified credentials into a fresh session claim."""

    def __init__(self, store: IdentityStore, codec: TokenCodec,
                 service_name: str) -> None:
        self.store = store
        self.codec = codec
        self.service_name = service_name

    def authenticate(self, email: str, password: str,
                     now: Optional[datetime] = None) -> Authentication:
        """
        Verify an e-mail address and password.

        Parameters
        ----------
        email : str
        password : str
            Password (as entered).
        now : datetime
            Issue time of the new claim; defaults to the current time.

        Returns
        -------
        :class:`Authentication`

        Raises
        ------
        :class:`.StoreUnavailable`
            The identity store could not be reached. This is never reported
            as a rejected login.

        """
        if not email or not password:
            logger.debug('Email and password are required')
            return REJECTED

        logger.debug('Authenticating user: %s', email)
        try:
            identity, hashed = self.store.find_credential(email)
        except NoSuchUser:
            logger.info('No user found with email: %s', email)
            return REJECTED

        if not self.store.verify_credential(password, hashed):
            logger.info('Invalid password for user: %s', identity.email)
            return REJECTED

        try:
            identity = self.store.record_usage(identity.user_id,
                                               self.service_name)
        except NoSuchUser:
            logger.info('User %s vanished during login', identity.user_id)
            return REJECTED

        claim = self.codec.issue(identity, now=now)
        logger.info('%s signed in to %s', identity.email, self.service_name)
        return Authentication(AuthState.AUTHENTICATED, claim=claim,
                              token=self.codec.encode(claim))
