"""
The shared-domain cookies.

Every participating service must read and write these cookies with
byte-identical names, domain and attributes; otherwise a cookie written by one
service is silently invisible (or duplicated) on another.
"""

import logging
import secrets
from typing import NamedTuple, Optional

from werkzeug.wrappers import Request, Response

logger = logging.getLogger(__name__)

SAMESITE = 'Lax'


class CookieSpec(NamedTuple):
    """Fixed name and http-only flag of a shared cookie."""

    name: str
    httponly: bool


SESSION = CookieSpec('sso.session-token', httponly=True)
CALLBACK_URL = CookieSpec('sso.callback-url', httponly=False)
CSRF = CookieSpec('sso.csrf-token', httponly=True)

INVALID_CSRF = 'Invalid or missing CSRF token'


class CookieTransport(object):
    """Maps session tokens to and from the shared cookies."""

    def __init__(self, domain: Optional[str], secure: bool,
                 max_age: int) -> None:
        if domain and not domain.startswith('.'):
            domain = '.' + domain
            logger.warning('Cookie domain did not have the leading dot: %s',
                           domain)
        self.domain = domain
        self.secure = secure
        self.max_age = max_age

    def read_session(self, request: Request) -> Optional[str]:
        return request.cookies.get(SESSION.name) or None

    def write_session(self, response: Response, token: str) -> None:
        self._set(response, SESSION, token, self.max_age)

    def clear_session(self, response: Response) -> None:
        self._clear(response, SESSION)

    def read_callback_url(self, request: Request) -> Optional[str]:
        return request.cookies.get(CALLBACK_URL.name) or None

    def write_callback_url(self, response: Response, url: str) -> None:
        self._set(response, CALLBACK_URL, url)

    def clear_callback_url(self, response: Response) -> None:
        self._clear(response, CALLBACK_URL)

    def new_csrf_token(self) -> str:
        return secrets.token_urlsafe(32)

    def write_csrf(self, response: Response, token: str) -> None:
        self._set(response, CSRF, token)

    def check_csrf(self, request: Request, submitted: Optional[str]) -> bool:
        """Double-submit check of ``submitted`` against the CSRF cookie."""
        expected = request.cookies.get(CSRF.name)
        if not expected or not submitted:
            return False
        return secrets.compare_digest(expected, submitted)

    def written(self, response: Response, spec: CookieSpec) -> bool:
        """Whether ``response`` already sets (or clears) this cookie."""
        prefix = f'{spec.name}='
        return any(header.startswith(prefix)
                   for header in response.headers.getlist('Set-Cookie'))

    def _set(self, response: Response, spec: CookieSpec, value: str,
             max_age: Optional[int] = None) -> None:
        logger.debug('Set cookie %s, max_age %s', spec.name, max_age)
        response.set_cookie(spec.name, value, max_age=max_age,
                            domain=self.domain, path='/', secure=self.secure,
                            httponly=spec.httponly, samesite=SAMESITE)

    def _clear(self, response: Response, spec: CookieSpec) -> None:
        logger.debug('Clear cookie %s', spec.name)
        response.delete_cookie(spec.name, path='/', domain=self.domain,
                               secure=self.secure, httponly=spec.httponly,
                               samesite=SAMESITE)
