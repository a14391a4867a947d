"""Typed operations on the shared user record."""

import logging
import re
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Generator, List, Optional, Tuple

from pytz import UTC
from sqlalchemy import func
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, \
    TimeoutError as PoolTimeout
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session

from ..domain import Identity, UserStats
from . import passwords
from .connection import ConnectionManager, Event
from .exceptions import DuplicateEmail, InvalidId, NoSuchUser, \
    StoreUnavailable
from .models import Base, DBUser, DBUserService, utcnow

logger = logging.getLogger(__name__)

USER_ID = re.compile(r'^[0-9a-f]{32}$')
"""User ids are uuid4 values in lowercase hex."""

RECENT = timedelta(days=30)

QUERY_CANCELED = '57014'
"""PostgreSQL error code for a statement stopped by ``statement_timeout``."""


def normalize_email(email: str) -> str:
    """E-mail addresses are stored and looked up lower-cased and trimmed."""
    return email.strip().lower()


def is_valid_id(user_id: Any) -> bool:
    """Determine whether ``user_id`` is a well-formed user identifier."""
    return isinstance(user_id, str) and bool(USER_ID.match(user_id))


def is_timeout(e: Exception) -> bool:
    """Whether ``e`` is a statement cancelled by the server-side timeout."""
    return isinstance(e, DBAPIError) \
        and getattr(e.orig, 'pgcode', None) == QUERY_CANCELED


def _is_disconnect(e: Exception) -> bool:
    """
    Whether ``e`` means the connection itself is gone.

    Deadlocks and lock wait timeouts are also :class:`OperationalError`s, but
    the connection survives them; the driver marks real disconnects, including
    read timeouts, as ``connection_invalidated``. A statement timeout counts as
    a disconnect too.
    """
    if isinstance(e, (InterfaceError, PoolTimeout)) or is_timeout(e):
        return True
    return isinstance(e, DBAPIError) and e.connection_invalidated


def _aware(t: Optional[datetime]) -> Optional[datetime]:
    return t.replace(tzinfo=UTC) if t is not None else None


def _to_identity(db_user: DBUser) -> Identity:
    return Identity(
        user_id=db_user.user_id,
        name=db_user.name,
        email=db_user.email,
        services=frozenset(s.service_name for s in db_user.services),
        last_login_at=_aware(db_user.last_login_at),
        verified=bool(db_user.flag_email_verified),
        created_at=_aware(db_user.created_at),
        updated_at=_aware(db_user.updated_at)
    )


class IdentityStore(object):
    """
    Client for the shared identity store.

    Every operation needs a live connection. The store listens to the
    :class:`.ConnectionManager`'s health events and refuses work with
    :class:`.StoreUnavailable` while disconnected, instead of attempting
    operations that are bound to fail.
    """

    def __init__(self, connections: ConnectionManager,
                 hash_rounds: int = passwords.DEFAULT_ROUNDS) -> None:
        self.connections = connections
        self.hash_rounds = hash_rounds
        self._available = connections.state.connected
        self._sessionmaker = sessionmaker(autoflush=False,
                                          expire_on_commit=False)
        connections.subscribe(self._on_health)

    @property
    def available(self) -> bool:
        return self._available

    def _on_health(self, event: Event,
                   error: Optional[BaseException] = None) -> None:
        if event in (Event.CONNECTED, Event.RECONNECTED):
            self._available = True
        else:
            self._available = False

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """Context manager for database transaction."""
        if not self._available:
            raise StoreUnavailable('Identity store is not connected')
        session = self._sessionmaker(bind=self.connections.engine)
        try:
            yield session
            # Changes the caller already flushed no longer show up in
            # ``new`` or ``dirty``, so always commit.
            session.commit()
        except Exception as e:
            session.rollback()
            if _is_disconnect(e):
                logger.error('Lost the identity store: %s', e)
                self.connections.report_failure(e)
                raise StoreUnavailable('Identity store is unavailable') from e
            logger.error('Commit failed, rolling back: %s', str(e))
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """Create all tables in the database."""
        Base.metadata.create_all(self.connections.engine)

    def drop_all(self) -> None:
        """Drop all tables in the database."""
        Base.metadata.drop_all(self.connections.engine)

    def find_by_email(self, email: str) -> Identity:
        """
        Get an identity by e-mail address.

        Raises
        ------
        :class:`NoSuchUser`

        """
        identity, _ = self.find_credential(email)
        return identity

    def find_credential(self, email: str) -> Tuple[Identity, str]:
        """
        Get an identity and its credential hash by e-mail address.

        This is only for credential verification; the hash must not travel
        any further than :meth:`verify_credential`.

        Raises
        ------
        :class:`NoSuchUser`

        """
        normalized = normalize_email(email)
        with self.transaction() as session:
            db_user: Optional[DBUser] = session.query(DBUser) \
                .filter(DBUser.email == normalized) \
                .first()
            found = (_to_identity(db_user), db_user.password_enc) \
                if db_user is not None else None
        if found is None:
            logger.debug('No user found with email %s', normalized)
            raise NoSuchUser('User does not exist')
        logger.debug('Found user: %s', normalized)
        return found

    def find_by_id(self, user_id: str) -> Identity:
        """
        Get an identity by id.

        Raises
        ------
        :class:`InvalidId`
            ``user_id`` is malformed; the store is not queried.
        :class:`NoSuchUser`

        """
        if not is_valid_id(user_id):
            logger.debug('Invalid user id: %r', user_id)
            raise InvalidId(f'Not a valid user id: {user_id!r}')
        with self.transaction() as session:
            db_user: Optional[DBUser] = session.get(DBUser, user_id)
            identity = _to_identity(db_user) if db_user is not None else None
        if identity is None:
            raise NoSuchUser(f'No user with id {user_id}')
        logger.debug('Found user by id: %s (%s)', identity.email, user_id)
        return identity

    def verify_credential(self, plain: str, hashed: str) -> bool:
        """Check a password against a stored hash; never raises."""
        return passwords.check_password(plain, hashed)

    def record_usage(self, user_id: str, service_name: str) -> Identity:
        """
        Note that ``service_name`` has just been used by this identity.

        Adds the service to the identity's service set (at most once) and
        stamps :attr:`.Identity.last_login_at`. Safe to call on every request.

        Raises
        ------
        :class:`InvalidId`
        :class:`NoSuchUser`

        """
        if not is_valid_id(user_id):
            raise InvalidId(f'Not a valid user id: {user_id!r}')
        now = utcnow()
        try:
            with self.transaction() as session:
                db_user: Optional[DBUser] = session.get(DBUser, user_id)
                if db_user is not None:
                    db_user.last_login_at = now
                    used = {s.service_name for s in db_user.services}
                    if service_name not in used:
                        db_user.services.append(DBUserService(
                            service_name=service_name, first_used_at=now
                        ))
                    session.flush()
                    identity = _to_identity(db_user)
        except IntegrityError:
            # Another request recorded the same service first.
            logger.debug('Service %s already recorded for %s',
                         service_name, user_id)
            return self.record_usage(user_id, service_name)
        if db_user is None:
            raise NoSuchUser(f'No user with id {user_id}')
        return identity

    def create(self, name: str, email: str, password: str) -> Identity:
        """
        Create a new identity.

        Raises
        ------
        :class:`DuplicateEmail`
            Also raised when a concurrent request wins the race for the same
            address; the unique index has the final say.
        :class:`InvalidPassword`
            The password is too long to hash.

        """
        normalized = normalize_email(email)
        db_user = DBUser(
            user_id=uuid.uuid4().hex,
            name=name.strip(),
            email=normalized,
            password_enc=passwords.hash_password(password, self.hash_rounds),
            flag_email_verified=0,
            services=[]
        )
        try:
            with self.transaction() as session:
                exists = session.query(DBUser.user_id) \
                    .filter(DBUser.email == normalized) \
                    .first() is not None
                if not exists:
                    session.add(db_user)
        except IntegrityError as e:
            raise DuplicateEmail(f'User with email {normalized} already '
                                 'exists') from e
        if exists:
            raise DuplicateEmail(f'User with email {normalized} already '
                                 'exists')
        logger.info('User created: %s (ID: %s)', normalized, db_user.user_id)
        return _to_identity(db_user)

    def delete(self, user_id: str) -> bool:
        """Delete an identity. Returns ``False`` if there was none."""
        if not is_valid_id(user_id):
            raise InvalidId(f'Not a valid user id: {user_id!r}')
        with self.transaction() as session:
            db_user: Optional[DBUser] = session.get(DBUser, user_id)
            if db_user is not None:
                session.delete(db_user)
        if db_user is None:
            return False
        logger.info('User deleted: %s', user_id)
        return True

    def list_users(self) -> List[Identity]:
        """All identities, newest first."""
        with self.transaction() as session:
            return [_to_identity(db_user) for db_user
                    in session.query(DBUser).order_by(DBUser.created_at.desc())]

    def stats(self) -> UserStats:
        """Count identities, recent sign-ups, and identities per service."""
        since = utcnow() - RECENT
        with self.transaction() as session:
            total = session.query(func.count(DBUser.user_id)).scalar()
            recent = session.query(func.count(DBUser.user_id)) \
                .filter(DBUser.created_at >= since) \
                .scalar()
            rows = session.query(DBUserService.service_name,
                                 func.count(DBUserService.user_id)) \
                .group_by(DBUserService.service_name) \
                .all()
        return UserStats(total=total, recent=recent,
                         services={name: count for name, count in rows})
