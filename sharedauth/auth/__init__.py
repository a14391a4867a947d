"""
Provides tools for working with the shared cross-service session.

Every participating service revalidates the session cookie on every request
against the shared identity store, and writes back a freshly issued token
(or clears a dead one). The issuing service additionally exposes login (see
:mod:`sharedauth.issuer`).
"""

import logging
from typing import Iterable, Optional
from urllib.parse import urlencode

from flask import Flask, Response, current_app, g, jsonify, redirect, request

from ..domain import SessionClaim
from ..store import IdentityStore
from ..store.exceptions import StoreUnavailable
from .cookies import SESSION, CookieTransport
from .redirects import resolve_redirect
from .revalidation import Revalidation, RevalidationState, Revalidator
from .tokens import TokenCodec

logger = logging.getLogger(__name__)

UNAVAILABLE = {'reason': 'Authentication is temporarily unavailable'}

EXEMPT = ('session.health', 'session.logout', 'session.logout_form')
"""Endpoints that never revalidate the inbound session."""


class Auth(object):
    """
    Attaches the revalidated session claim to the request.

    Intended for use in a Flask application factory, for example:

    .. code-block:: python

       from flask import Flask
       from sharedauth.auth import Auth

       def create_web_app() -> Flask:
           app = Flask('someapp')
           app.config.from_object(config)
           Auth(app, store)
           app.register_blueprint(routes.blueprint)
           return app

    After :meth:`load_session` has run, ``request.auth`` is the refreshed
    :class:`.SessionClaim`, or ``None`` for an anonymous request.
    """

    def __init__(self, app: Optional[Flask] = None,
                 store: Optional[IdentityStore] = None) -> None:
        if app is not None and store is not None:
            self.init_app(app, store)

    def init_app(self, app: Flask, store: IdentityStore) -> None:
        """
        Attach :meth:`.load_session` and :meth:`.write_session` to the app.

        Parameters
        ----------
        app : :class:`Flask`
        store : :class:`.IdentityStore`

        """
        self.app = app
        self.store = store
        config = app.config
        self.codec = TokenCodec(config['JWT_SECRET'],
                                duration=int(config['SESSION_DURATION']))
        self.cookies = CookieTransport(config['AUTH_COOKIE_DOMAIN'],
                                       secure=bool(config['AUTH_COOKIE_SECURE']),
                                       max_age=int(config['SESSION_DURATION']))
        self.revalidator = Revalidator(
            store, self.codec, config['SERVICE_NAME'],
            unavailable_policy=config['STORE_UNAVAILABLE_POLICY']
        )
        self._exempt = set(EXEMPT)
        app.extensions['sharedauth'] = self
        app.before_request(self.load_session)
        app.after_request(self.write_session)
        app.register_error_handler(StoreUnavailable, self.handle_unavailable)

    def exempt(self, endpoints: Iterable[str]) -> None:
        """Skip revalidation for ``endpoints``."""
        self._exempt.update(endpoints)

    def load_session(self) -> None:
        """Revalidate the inbound session token, and attach the result."""
        request.auth = None
        if request.endpoint in self._exempt:
            return
        token = self.cookies.read_session(request)
        result: Revalidation = self.revalidator.revalidate(token)
        g.revalidation = result
        request.auth = result.claim

    def write_session(self, response: Response) -> Response:
        """Write the refreshed token, or clear an invalidated one."""
        result: Optional[Revalidation] = g.get('revalidation')
        if result is None or self.cookies.written(response, SESSION):
            return response
        if result.state is RevalidationState.REFRESHED:
            self.cookies.write_session(response, result.token)
        elif result.state is RevalidationState.INVALIDATED:
            self.cookies.clear_session(response)
        return response

    def handle_unavailable(self, error: StoreUnavailable) -> Response:
        """Fail the request with a retryable error; cookies are untouched."""
        logger.error('Identity store unavailable on %s: %s',
                     request.path, error)
        response: Response = jsonify(UNAVAILABLE)
        response.status_code = 503
        retry_after = max(1, int(self.app.config.get('DB_RETRY_DELAY', 5)))
        response.headers['Retry-After'] = str(retry_after)
        return response

    def redirect_to_login(self, next_page: str) -> Response:
        """Send an anonymous user to the issuing service's login."""
        login_url = self.app.config['LOGIN_URL']
        sep = '&' if '?' in login_url else '?'
        response: Response = redirect(
            f'{login_url}{sep}{urlencode({"next": next_page})}'
        )
        self.cookies.write_callback_url(response, next_page)
        return response

    def resolve(self, target: Optional[str],
                trusted: bool = False) -> str:
        """Apply the redirect policy of this service to ``target``."""
        config = self.app.config
        return resolve_redirect(
            target, config['BASE_URL'],
            login_url=config['LOGIN_URL'],
            sign_in_path=config['SIGN_IN_PATH'],
            trusted_domain=self.cookies.domain if trusted else None
        )


def current_auth() -> Auth:
    """The :class:`Auth` extension of the current app."""
    auth: Auth = current_app.extensions['sharedauth']
    return auth


def current_claim() -> Optional[SessionClaim]:
    """The revalidated claim of the current request, if any."""
    return getattr(request, 'auth', None)
