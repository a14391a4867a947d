"""Exceptions."""


class NoSuchUser(RuntimeError):
    """User does not exist."""


class InvalidId(NoSuchUser):
    """The user id is not a well-formed identifier."""


class DuplicateEmail(RuntimeError):
    """A user with this e-mail address already exists."""


class StoreUnavailable(RuntimeError):
    """The identity store cannot be reached right now; try again later."""


class ConnectionFailed(StoreUnavailable):
    """A connection attempt failed; another attempt has been scheduled."""


class ConnectionExhausted(StoreUnavailable):
    """Every permitted connection attempt has failed."""


class ShuttingDown(StoreUnavailable):
    """The connection manager is shutting down."""


class InvalidPassword(ValueError):
    """The password cannot be hashed, e.g. it is too long."""
