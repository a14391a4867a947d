"""Flask configuration shared by the issuing service and every other service."""
import secrets
import os

#################### Deployment ####################
SERVICE_NAME = os.environ.get('SERVICE_NAME', 'unknown')
"""Name under which this service records identity usage."""

ENVIRONMENT = os.environ.get('ENVIRONMENT', 'production')
"""One of ``production`` or ``development``.

Only affects whether cookies are ``Secure`` and the log verbosity."""

BASE_SERVER = os.environ.get('BASE_SERVER', 'local.a.com')
"""Parent domain of all participating services."""

BASE_URL = os.environ.get('BASE_URL', f'http://{BASE_SERVER}')
"""Origin of this service; relative redirect targets resolve against it."""

LOGIN_URL = os.environ.get('LOGIN_URL', f'http://{BASE_SERVER}/login')
"""Absolute login URL on the issuing service.

Every other service sends anonymous users here."""

SIGN_IN_PATH = os.environ.get('SIGN_IN_PATH', '/login')
"""Path of this service's own sign-in endpoint."""

ISSUER = bool(int(os.environ.get('ISSUER', '0')))
"""Whether this service is the one that accepts credentials."""

HANDLE_SIGNALS = bool(int(os.environ.get('HANDLE_SIGNALS', '1')))
"""Install handlers that drain the identity store connection on SIGTERM."""

#################### Session cookies ####################
AUTH_COOKIE_DOMAIN = os.environ.get('AUTH_COOKIE_DOMAIN', f'.{BASE_SERVER}')
"""Domain of the session, callback-url and CSRF cookies.

Must be byte-identical on every participating service."""

AUTH_COOKIE_SECURE = bool(int(os.environ.get(
    'AUTH_COOKIE_SECURE', '1' if ENVIRONMENT == 'production' else '0'
)))

JWT_SECRET = os.environ.get('JWT_SECRET', secrets.token_urlsafe(16))
"""Signing key for session tokens; shared by all participating services."""

SESSION_DURATION = int(os.environ.get('SESSION_DURATION', '86400'))
"""Lifetime of a session claim in seconds; renewed on every revalidation."""

STORE_UNAVAILABLE_POLICY = os.environ.get('STORE_UNAVAILABLE_POLICY', 'error')
"""What revalidation does when the identity store cannot be reached.

``error`` fails the request with a retryable 503; ``preserve`` keeps the
inbound session untouched for this request."""

#################### Identity store ####################
DATABASE_URI = os.environ.get('DATABASE_URI', 'sqlite:///sharedauth.db')
"""SQLAlchemy URI of the shared identity store."""

DB_MAX_RETRIES = int(os.environ.get('DB_MAX_RETRIES', '5'))
DB_RETRY_DELAY = float(os.environ.get('DB_RETRY_DELAY', '5'))
"""Base delay in seconds; doubled after each failed attempt."""

DB_CONNECT_TIMEOUT = float(os.environ.get('DB_CONNECT_TIMEOUT', '15'))
DB_POOL_SIZE = int(os.environ.get('DB_POOL_SIZE', '15'))
DB_POOL_RECYCLE = int(os.environ.get('DB_POOL_RECYCLE', '300'))
"""Seconds after which an idle pooled connection is replaced."""

DB_POOL_TIMEOUT = float(os.environ.get('DB_POOL_TIMEOUT', '15'))
"""Upper bound on waiting for a pooled connection during an operation."""

DB_QUERY_TIMEOUT = float(os.environ.get('DB_QUERY_TIMEOUT', '15'))
"""Upper bound on a single statement; exceeding it counts as a disconnect."""

CREATE_DB = bool(int(os.environ.get('CREATE_DB', '0')))

PASSWORD_HASH_ROUNDS = int(os.environ.get('PASSWORD_HASH_ROUNDS', '12'))

#################### Minor configs ##############################
SECRET_KEY = os.environ.get('SECRET_KEY', secrets.token_urlsafe(16))
"""Sets the `Flask` secret key. Not used for session tokens."""

LOGLEVEL = os.environ.get('LOGLEVEL',
                          'DEBUG' if ENVIRONMENT == 'development' else 'INFO')
