"""Defines identity and session concepts shared by all participating services."""

from typing import Any, Dict, FrozenSet, NamedTuple, Optional
from datetime import datetime
from enum import Enum

from pytz import UTC


class Identity(NamedTuple):
    """A user record in the shared identity store."""

    user_id: str
    """Unique identifier for the user."""

    name: str
    """Display name."""

    email: str
    """The user's e-mail address, lower-cased and trimmed."""

    services: FrozenSet[str] = frozenset()
    """Names of the services on which this identity has been used."""

    last_login_at: Optional[datetime] = None
    """When the identity was last used to log in or revalidate a session."""

    verified: bool = False
    """Whether or not the user's e-mail address has been verified."""

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SessionClaim(NamedTuple):
    """The signed, time-bounded assertion of identity carried between services."""

    user_id: str
    name: str
    email: str

    issued_at: datetime
    """When the claim was issued."""

    expires_at: datetime
    """When the claim stops being valid."""

    @property
    def expired(self) -> bool:
        """Expired if the current time is later than :attr:`.expires_at`."""
        return datetime.now(tz=UTC) >= self.expires_at

    @property
    def expires(self) -> int:
        """
        Number of seconds until the claim expires.

        If the claim is already expired, returns 0.
        """
        duration = (self.expires_at - datetime.now(tz=UTC)).total_seconds()
        return max(int(duration), 0)


class UserStats(NamedTuple):
    """Aggregate usage of the identity store."""

    total: int
    recent: int
    """Identities created in the last 30 days."""

    services: Dict[str, int]
    """Number of identities that have used each service."""


class Status(Enum):
    """Readiness of the connection to the identity store."""

    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    DISCONNECTING = 'disconnecting'
    CLOSED = 'closed'


class ConnectionState(object):
    """
    Process-wide state of the identity store connection.

    Owned and mutated by exactly one :class:`.ConnectionManager`; everything
    else only reads it.
    """

    def __init__(self, max_retries: int = 5, retry_delay: float = 5.0) -> None:
        self.status = Status.DISCONNECTED
        self.attempts = 0
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.shutting_down = False
        self.exhausted = False

    @property
    def connected(self) -> bool:
        return self.status is Status.CONNECTED

    def backoff(self) -> float:
        """Delay before the next attempt, doubling with each failure."""
        return float(self.retry_delay * 2 ** (self.attempts - 1))

    def __repr__(self) -> str:
        return (f'ConnectionState(status={self.status.value}, '
                f'attempts={self.attempts}/{self.max_retries}, '
                f'shutting_down={self.shutting_down}, '
                f'exhausted={self.exhausted})')


def to_dict(identity: Identity) -> Dict[str, Any]:
    """Public representation of an :class:`.Identity`, for JSON responses."""
    def _cast(value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, frozenset):
            return sorted(value)
        return value
    return {key: _cast(value) for key, value in identity._asdict().items()}
