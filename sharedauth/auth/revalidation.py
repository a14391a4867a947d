"""
Per-request revalidation of the shared session on every service.

A session token written by another service is never trusted as-is. On each
request the token is decoded, the user id it names is looked up in the
identity store, and a new claim is issued from the *current* store record::

    RECEIVED -> DECODING -> NO_SESSION
                         -> RECHECKING -> REFRESHED
                                       -> INVALIDATED
                         -> INVALIDATED

The decoded claim is used only as a lookup key. Its name and e-mail are never
copied into the refreshed claim, so a change to the account shows up on the
next request on every service, and a deleted account loses its session.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional

from ..domain import SessionClaim
from ..store import IdentityStore
from ..store.exceptions import NoSuchUser, StoreUnavailable
from .exceptions import InvalidToken
from .tokens import TokenCodec

logger = logging.getLogger(__name__)

ERROR = 'error'
"""Fail fast when the store is unavailable (a retryable error)."""

PRESERVE = 'preserve'
"""Keep the inbound session untouched when the store is unavailable."""

POLICIES = (ERROR, PRESERVE)


class RevalidationState(Enum):
    RECEIVED = 'received'
    DECODING = 'decoding'
    NO_SESSION = 'no_session'
    RECHECKING = 'rechecking'
    REFRESHED = 'refreshed'
    INVALIDATED = 'invalidated'
    PRESERVED = 'preserved'
    """The store was unavailable and the ``preserve`` policy is in effect."""


class Revalidation(NamedTuple):
    """Outcome of revalidating an inbound session token."""

    state: RevalidationState
    claim: Optional[SessionClaim] = None
    token: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.claim is not None


NO_SESSION = Revalidation(RevalidationState.NO_SESSION)
INVALIDATED = Revalidation(RevalidationState.INVALIDATED)


class Revalidator(object):
    """Rechecks inbound session claims against the identity store."""

    def __init__(self, store: IdentityStore, codec: TokenCodec,
                 service_name: str, unavailable_policy: str = ERROR) -> None:
        if unavailable_policy not in POLICIES:
            raise ValueError(f'Unknown policy {unavailable_policy!r}; '
                             f'expected one of {POLICIES}')
        self.store = store
        self.codec = codec
        self.service_name = service_name
        self.unavailable_policy = unavailable_policy

    def revalidate(self, token: Optional[str],
                   now: Optional[datetime] = None) -> Revalidation:
        """
        Revalidate the raw session token from the request, if any.

        Parameters
        ----------
        token : str or None
            Value of the session cookie.
        now : datetime
            Issue time of the refreshed claim; defaults to the current time.

        Returns
        -------
        :class:`Revalidation`

        Raises
        ------
        :class:`.StoreUnavailable`
            Only under the ``error`` policy. Not being able to check a session
            is not the same as not having one.

        """
        if not token:
            return NO_SESSION

        try:
            inbound = self.codec.decode(token)
        except InvalidToken as e:
            logger.info('Dropping session token on %s: %s',
                        self.service_name, e)
            return INVALIDATED

        try:
            return self._recheck(inbound.user_id, now)
        except StoreUnavailable as e:
            if self.unavailable_policy == PRESERVE:
                logger.warning('Cannot revalidate session for %s on %s, '
                               'keeping it: %s',
                               inbound.user_id, self.service_name, e)
                return Revalidation(RevalidationState.PRESERVED,
                                    claim=inbound, token=token)
            raise

    def _recheck(self, user_id: str,
                 now: Optional[datetime]) -> Revalidation:
        try:
            identity = self.store.find_by_id(user_id)
            identity = self.store.record_usage(identity.user_id,
                                               self.service_name)
        except NoSuchUser as e:
            logger.info('User %s no longer exists, invalidating token: %s',
                        user_id, e)
            return INVALIDATED

        claim = self.codec.issue(identity, now=now)
        logger.debug('Token validated for user: %s on %s',
                     identity.email, self.service_name)
        return Revalidation(RevalidationState.REFRESHED, claim=claim,
                            token=self.codec.encode(claim))
