"""Helpers for testing the shared cookies."""

from http.cookies import Morsel, SimpleCookie
from typing import Dict


def set_cookies(response) -> Dict[str, Morsel]:
    """Parse the ``Set-Cookie`` headers of a response, by cookie name."""
    cookies: Dict[str, Morsel] = {}
    for header in response.headers.getlist('Set-Cookie'):
        parsed = SimpleCookie()
        parsed.load(header)
        cookies.update(parsed)
    return cookies


def cleared(morsel: Morsel) -> bool:
    """Whether this ``Set-Cookie`` tells the browser to drop the cookie."""
    return morsel.value == '' and morsel['max-age'] == '0'
