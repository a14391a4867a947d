"""
Connection lifecycle for the shared identity store.

Every session revalidation on every participating service depends on the
identity store, so each process owns exactly one :class:`ConnectionManager`.
The manager drives a small state machine over
:class:`sharedauth.domain.Status`::

    DISCONNECTED -> CONNECTING -> CONNECTED
         ^              |             |
         +-- (backoff) -+             | report_failure()
         +----------------------------+
    any -> DISCONNECTING -> CLOSED        (shutdown)

Only one connection attempt is ever in flight: callers arriving while the
manager is CONNECTING wait for that attempt and share its outcome. A failed
attempt schedules the next one on a background timer, after
``retry_delay * 2 ** (attempts - 1)`` seconds, so request threads never sleep
through a backoff. After ``max_retries`` consecutive failures the manager is
exhausted; it emits :attr:`Event.EXHAUSTED` exactly once and stops retrying.
What to do about that is up to whoever observes the event (see
:mod:`sharedauth.store.supervisor`).

Dependents learn about readiness through pushed :class:`Event`s rather than
by polling, so they can refuse work while the store is unreachable.
"""

import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeout
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool

from ..domain import ConnectionState, Status
from .exceptions import ConnectionExhausted, ConnectionFailed, \
    ShuttingDown, StoreUnavailable

logger = logging.getLogger(__name__)


class Event(Enum):
    """Health signals pushed to subscribers."""

    CONNECTED = 'connected'
    DISCONNECTED = 'disconnected'
    RECONNECTED = 'reconnected'
    ERROR = 'error'
    EXHAUSTED = 'exhausted'
    CLOSED = 'closed'


Listener = Callable[[Event, Optional[BaseException]], None]


def engine_options(uri: str, pool_size: int = 15, pool_recycle: int = 300,
                   pool_timeout: float = 15.0, connect_timeout: float = 15.0,
                   query_timeout: float = 15.0) -> Dict[str, Any]:
    """
    Driver and pool options for ``uri``.

    Pool checkout, connecting and each statement are all bounded. MySQL
    drivers drop the connection when a read or write times out; PostgreSQL
    cancels the statement instead (see :func:`.users.is_timeout`).
    """
    url = make_url(uri)
    backend = url.get_backend_name()
    if backend == 'sqlite':
        options: Dict[str, Any] = {
            'connect_args': {'check_same_thread': False,
                             'timeout': connect_timeout}
        }
        if url.database in (None, '', ':memory:'):
            options['poolclass'] = StaticPool
        return options
    connect_args: Dict[str, Any] = {'connect_timeout': int(connect_timeout)}
    if backend == 'mysql':
        connect_args['read_timeout'] = int(query_timeout)
        connect_args['write_timeout'] = int(query_timeout)
    elif backend == 'postgresql':
        connect_args['options'] = \
            f'-c statement_timeout={int(query_timeout * 1000)}'
    return {
        'pool_size': pool_size,
        'pool_recycle': pool_recycle,
        'pool_timeout': pool_timeout,
        'pool_pre_ping': True,
        'connect_args': connect_args,
    }


class _Attempt(object):
    """Outcome of one connection attempt, shared by everyone waiting on it."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.engine: Optional[Engine] = None
        self.error: Optional[StoreUnavailable] = None

    def succeed(self, engine: Engine) -> None:
        self.engine = engine
        self.done.set()

    def fail(self, error: StoreUnavailable) -> None:
        self.error = error
        self.done.set()

    def wait(self, timeout: float) -> Engine:
        if not self.done.wait(timeout):
            raise ConnectionFailed('Timed out waiting for the connection '
                                   'attempt in progress')
        if self.error is not None:
            raise type(self.error)(str(self.error))
        assert self.engine is not None
        return self.engine


class ConnectionManager(object):
    """
    Owns the connection (pool) to the identity store for this process.

    Parameters
    ----------
    uri : str
        SQLAlchemy database URI.
    max_retries : int
        Consecutive failed attempts after which the manager gives up.
    retry_delay : float
        Base backoff delay in seconds.
    connect_timeout : float
        Upper bound on a single attempt to open and ping the database.
    options : dict
        Keyword arguments for ``engine_factory``; see :func:`engine_options`.
    engine_factory : callable
        Defaults to :func:`sqlalchemy.create_engine`.

    """

    def __init__(self, uri: str, max_retries: int = 5,
                 retry_delay: float = 5.0, connect_timeout: float = 15.0,
                 options: Optional[Mapping[str, Any]] = None,
                 engine_factory: Callable[..., Engine] = create_engine) \
            -> None:
        self.uri = uri
        self.state = ConnectionState(max_retries, retry_delay)
        self.connect_timeout = connect_timeout
        self._options = dict(options) if options is not None \
            else engine_options(uri, connect_timeout=connect_timeout)
        self._engine_factory = engine_factory
        self._engine: Optional[Engine] = None
        self._lock = threading.RLock()
        self._inflight: Optional[_Attempt] = None
        self._timer: Optional[threading.Timer] = None
        self._listeners: List[Listener] = []
        self._has_connected = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'ConnectionManager':
        """Build a manager from application configuration."""
        uri = config['DATABASE_URI']
        connect_timeout = float(config.get('DB_CONNECT_TIMEOUT', 15))
        options = engine_options(
            uri,
            pool_size=int(config.get('DB_POOL_SIZE', 15)),
            pool_recycle=int(config.get('DB_POOL_RECYCLE', 300)),
            pool_timeout=float(config.get('DB_POOL_TIMEOUT', 15)),
            connect_timeout=connect_timeout,
            query_timeout=float(config.get('DB_QUERY_TIMEOUT', 15))
        )
        return cls(uri,
                   max_retries=int(config.get('DB_MAX_RETRIES', 5)),
                   retry_delay=float(config.get('DB_RETRY_DELAY', 5)),
                   connect_timeout=connect_timeout,
                   options=options)

    @property
    def engine(self) -> Engine:
        """The live engine; raises :class:`StoreUnavailable` if not connected."""
        with self._lock:
            if self.state.status is not Status.CONNECTED \
                    or self._engine is None:
                raise StoreUnavailable('Identity store is not connected')
            return self._engine

    def subscribe(self, listener: Listener) -> None:
        """Register ``listener`` for health :class:`Event`s."""
        with self._lock:
            self._listeners.append(listener)

    def start(self) -> bool:
        """
        Make the first connection attempt at process start.

        Failures are left to the retry path rather than propagated, so that
        the service can come up while the store is still unreachable.
        """
        try:
            self.connect()
        except StoreUnavailable as e:
            logger.error('Identity store unavailable at startup: %s', e)
            return False
        return True

    def connect(self) -> Engine:
        """
        Get a live engine, connecting if necessary.

        Returns
        -------
        :class:`sqlalchemy.engine.Engine`

        Raises
        ------
        :class:`ShuttingDown`
            The manager has been shut down.
        :class:`ConnectionExhausted`
            Every permitted attempt has already failed.
        :class:`ConnectionFailed`
            This attempt failed; the next one has been scheduled.

        """
        with self._lock:
            if self.state.shutting_down:
                raise ShuttingDown('Connection manager is shutting down')
            if self.state.exhausted:
                raise ConnectionExhausted(
                    f'Gave up after {self.state.max_retries} attempts'
                )
            if self.state.status is Status.CONNECTED \
                    and self._engine is not None:
                logger.debug('Identity store already connected, reusing')
                return self._engine
            if self.state.status is Status.CONNECTING \
                    and self._inflight is not None:
                attempt = self._inflight
                leader = False
            else:
                attempt = self._inflight = _Attempt()
                leader = True
                self.state.status = Status.CONNECTING
                self._cancel_retry()

        if not leader:
            logger.debug('Identity store connection in progress, waiting')
            return attempt.wait(self.connect_timeout + 1)
        return self._attempt(attempt)

    def report_failure(self, error: BaseException) -> None:
        """
        Report that the live connection broke during an operation.

        Network errors and operation timeouts both land here, and are handled
        like a failed connection attempt.
        """
        with self._lock:
            if self.state.status is not Status.CONNECTED \
                    or self.state.shutting_down:
                return
            logger.warning('Identity store disconnected: %s', error)
            engine, self._engine = self._engine, None
            exc = self._record_failure(error)
        if engine is not None:
            engine.dispose()
        self._emit(Event.DISCONNECTED, error)
        if isinstance(exc, ConnectionExhausted):
            self._emit(Event.EXHAUSTED, exc)

    def shutdown(self, reason: str = 'shutdown') -> bool:
        """
        Close the connection and refuse to connect again.

        Runs at most once; returns ``False`` if a shutdown already happened.
        """
        with self._lock:
            if self.state.shutting_down:
                return False
            logger.info('%s received. Closing identity store connection',
                        reason)
            self.state.shutting_down = True
            self._cancel_retry()
            self.state.status = Status.DISCONNECTING
            engine, self._engine = self._engine, None

        try:
            if engine is not None:
                engine.dispose()
            logger.info('Identity store connection closed gracefully')
        except Exception as e:
            logger.error('Error closing identity store connection: %s', e)
        finally:
            with self._lock:
                self.state.status = Status.CLOSED
        self._emit(Event.CLOSED)
        return True

    def stats(self) -> Dict[str, Any]:
        """Connection statistics, e.g. for a health endpoint."""
        url = make_url(self.uri)
        with self._lock:
            engine = self._engine
            return {
                'status': self.state.status.value,
                'connected': self.state.connected,
                'attempts': self.state.attempts,
                'max_retries': self.state.max_retries,
                'shutting_down': self.state.shutting_down,
                'exhausted': self.state.exhausted,
                'host': url.host,
                'database': url.database,
                'pool': engine.pool.status() if engine is not None else None,
            }

    def _attempt(self, attempt: _Attempt) -> Engine:
        logger.info('Attempting to connect to identity store (attempt %i)',
                    self.state.attempts + 1)
        future = self._open_in_background()
        try:
            engine = future.result(timeout=self.connect_timeout)
        except FutureTimeout:
            future.add_done_callback(_dispose_late)
            return self._failed(attempt, ConnectionFailed(
                f'Timed out after {self.connect_timeout}s'
            ))
        except Exception as e:
            return self._failed(attempt, e)

        with self._lock:
            self._inflight = None
            if self.state.shutting_down:
                engine.dispose()
                attempt.fail(ShuttingDown('Shut down while connecting'))
                raise ShuttingDown('Shut down while connecting')
            self._engine = engine
            self.state.status = Status.CONNECTED
            self.state.attempts = 0
            reconnected = self._has_connected
            self._has_connected = True
            attempt.succeed(engine)

        url = make_url(self.uri)
        logger.info('Identity store connected: %s - DB: %s',
                    url.host or 'local', url.database)
        self._emit(Event.RECONNECTED if reconnected else Event.CONNECTED)
        return engine

    def _open_in_background(self) -> Future:
        """
        Open the engine on a thread of its own.

        A hung attempt must not hold up the next one, so attempts never share
        a worker.
        """
        future: Future = Future()

        def run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self._open())
            except Exception as e:
                future.set_exception(e)

        threading.Thread(target=run, name='store-connect', daemon=True).start()
        return future

    def _open(self) -> Engine:
        engine = self._engine_factory(self.uri, **self._options)
        try:
            with engine.connect() as connection:
                connection.execute(text('SELECT 1'))
        except Exception:
            engine.dispose()
            raise
        return engine

    def _failed(self, attempt: _Attempt, error: BaseException) -> Engine:
        logger.error('Identity store connection failed (attempt %i): %s',
                     self.state.attempts + 1, error)
        with self._lock:
            self._inflight = None
            exc = self._record_failure(error)
            attempt.fail(exc)
        self._emit(Event.ERROR, error)
        if isinstance(exc, ConnectionExhausted):
            self._emit(Event.EXHAUSTED, exc)
        raise exc from error

    def _record_failure(self, error: BaseException) -> StoreUnavailable:
        """Count a failure and decide what happens next. Caller holds lock."""
        self.state.attempts += 1
        self.state.status = Status.DISCONNECTED
        if self.state.shutting_down:
            return ShuttingDown('Connection manager is shutting down')
        if self.state.attempts >= self.state.max_retries:
            self.state.exhausted = True
            logger.critical('Failed to connect to identity store after %i '
                            'attempts', self.state.attempts)
            return ConnectionExhausted(
                f'Failed to connect after {self.state.attempts} attempts'
            )
        delay = self.state.backoff()
        logger.info('Retrying identity store connection in %.1fs', delay)
        self._timer = threading.Timer(delay, self._retry)
        self._timer.daemon = True
        self._timer.start()
        return ConnectionFailed(
            f'Connection attempt {self.state.attempts} failed: {error}'
        )

    def _retry(self) -> None:
        with self._lock:
            self._timer = None
        try:
            self.connect()
        except StoreUnavailable as e:
            logger.debug('Retry connection failed: %s', e)

    def _cancel_retry(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _emit(self, event: Event,
              error: Optional[BaseException] = None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, error)
            except Exception:
                logger.exception('Health listener failed on %s', event.value)


def _dispose_late(future: Any) -> None:
    """Dispose of an engine whose attempt finished after its timeout."""
    if not future.cancelled() and future.exception() is None:
        future.result().dispose()
