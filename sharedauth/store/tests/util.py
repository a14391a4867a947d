"""Helpers for testing the identity store."""

from contextlib import contextmanager
from typing import Generator

from ..connection import ConnectionManager
from ..users import IdentityStore


@contextmanager
def temporary_store(uri: str = 'sqlite://', retry_delay: float = 0.01) \
        -> Generator[IdentityStore, None, None]:
    """Provide an identity store with fresh tables, if it can connect."""
    connections = ConnectionManager(uri, max_retries=3,
                                    retry_delay=retry_delay)
    store = IdentityStore(connections, hash_rounds=4)
    if connections.start():
        store.create_all()
    try:
        yield store
    finally:
        if connections.state.connected:
            store.drop_all()
        connections.shutdown('teardown')
