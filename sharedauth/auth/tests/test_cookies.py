"""Tests for :mod:`sharedauth.auth.cookies`."""

from unittest import TestCase

from werkzeug.test import EnvironBuilder
from werkzeug.wrappers import Request, Response

from ..cookies import CALLBACK_URL, CSRF, SESSION, CookieTransport
from .util import cleared, set_cookies


def a_request(cookie: str = '') -> Request:
    headers = {'Cookie': cookie} if cookie else {}
    return Request(EnvironBuilder(headers=headers).get_environ())


class TestCookieTransport(TestCase):
    """Tests for :class:`.CookieTransport`."""

    def setUp(self):
        self.cookies = CookieTransport('.local.a.com', secure=True,
                                       max_age=86400)

    def test_names(self):
        """The cookie names are fixed."""
        self.assertEqual(SESSION.name, 'sso.session-token')
        self.assertEqual(CALLBACK_URL.name, 'sso.callback-url')
        self.assertEqual(CSRF.name, 'sso.csrf-token')

    def test_leading_dot(self):
        """The domain always gets a leading dot."""
        self.assertEqual(CookieTransport('local.a.com', False, 60).domain,
                         '.local.a.com')

    def test_write_session(self):
        """The session cookie is http-only and scoped to the domain."""
        response = Response()
        self.cookies.write_session(response, 'thetoken')
        morsel = set_cookies(response)[SESSION.name]
        self.assertEqual(morsel.value, 'thetoken')
        self.assertEqual(morsel['domain'].lstrip('.'), 'local.a.com')
        self.assertEqual(morsel['path'], '/')
        self.assertEqual(morsel['max-age'], '86400')
        self.assertEqual(morsel['samesite'].lower(), 'lax')
        self.assertTrue(morsel['httponly'])
        self.assertTrue(morsel['secure'])
        self.assertTrue(self.cookies.written(response, SESSION))
        self.assertFalse(self.cookies.written(response, CALLBACK_URL))

    def test_clear_session(self):
        """Clearing uses the same attributes as writing."""
        response = Response()
        self.cookies.clear_session(response)
        morsel = set_cookies(response)[SESSION.name]
        self.assertTrue(cleared(morsel))
        self.assertEqual(morsel['domain'].lstrip('.'), 'local.a.com')
        self.assertEqual(morsel['path'], '/')

    def test_callback_url(self):
        """The callback url is readable by scripts."""
        response = Response()
        self.cookies.write_callback_url(response, 'http://b.local.a.com/x')
        morsel = set_cookies(response)[CALLBACK_URL.name]
        self.assertEqual(morsel.value, 'http://b.local.a.com/x')
        self.assertFalse(morsel['httponly'])
        self.assertEqual(morsel['samesite'].lower(), 'lax')

    def test_insecure(self):
        """Outside production the cookies are not ``Secure``."""
        cookies = CookieTransport('.local.a.com', secure=False, max_age=60)
        response = Response()
        cookies.write_session(response, 'thetoken')
        self.assertFalse(set_cookies(response)[SESSION.name]['secure'])

    def test_read(self):
        """Cookies are read from the request."""
        request = a_request('sso.session-token=thetoken; '
                            'sso.callback-url=/dashboard')
        self.assertEqual(self.cookies.read_session(request), 'thetoken')
        self.assertEqual(self.cookies.read_callback_url(request),
                         '/dashboard')
        self.assertIsNone(self.cookies.read_session(a_request()))


class TestCSRF(TestCase):
    """Double-submit CSRF check."""

    def setUp(self):
        self.cookies = CookieTransport('.local.a.com', secure=False,
                                       max_age=60)

    def test_write(self):
        """The CSRF cookie is http-only."""
        response = Response()
        token = self.cookies.new_csrf_token()
        self.cookies.write_csrf(response, token)
        morsel = set_cookies(response)[CSRF.name]
        self.assertEqual(morsel.value, token)
        self.assertTrue(morsel['httponly'])

    def test_check(self):
        """The submitted token must match the cookie."""
        token = self.cookies.new_csrf_token()
        request = a_request(f'sso.csrf-token={token}')
        self.assertTrue(self.cookies.check_csrf(request, token))
        self.assertFalse(self.cookies.check_csrf(request, token + 'x'))
        self.assertFalse(self.cookies.check_csrf(request, None))
        self.assertFalse(self.cookies.check_csrf(a_request(), token))
