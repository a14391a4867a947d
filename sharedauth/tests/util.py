"""Helpers for testing participating services over HTTP."""

from contextlib import contextmanager
from typing import Any, Dict, Generator

from flask import Flask

from ..factory import create_service_app

SECRET = 'foosecret' * 4
LOGIN_URL = 'http://local.a.com/login'


def service_config(name: str, uri: str = 'sqlite://',
                   **extra: Any) -> Dict[str, Any]:
    """Configuration for a service on the ``.local.a.com`` domain."""
    config = {
        'SERVICE_NAME': name,
        'BASE_URL': f'http://{name}.local.a.com',
        'LOGIN_URL': LOGIN_URL,
        'DATABASE_URI': uri,
        'JWT_SECRET': SECRET,
        'AUTH_COOKIE_DOMAIN': '.local.a.com',
        'AUTH_COOKIE_SECURE': False,
        'CREATE_DB': True,
        'HANDLE_SIGNALS': False,
        'PASSWORD_HASH_ROUNDS': 4,
        'DB_RETRY_DELAY': 60,
        'DB_MAX_RETRIES': 100,
    }
    config.update(extra)
    return config


@contextmanager
def running(config: Dict[str, Any],
            issuing: bool = False) -> Generator[Flask, None, None]:
    """Run a service app, and drain its connection afterwards."""
    app = create_service_app(config, issuing=issuing)
    try:
        yield app
    finally:
        app.extensions['sharedauth'].store.connections.shutdown('teardown')


def cookie_header(**cookies: str) -> Dict[str, str]:
    """A ``Cookie`` header with the ``session``, ``callback`` or ``csrf`` cookie."""
    names = {'session': 'sso.session-token', 'callback': 'sso.callback-url',
             'csrf': 'sso.csrf-token'}
    return {'Cookie': '; '.join(f'{names[key]}={value}'
                                for key, value in cookies.items())}
