"""
The issuing service: the only participant that accepts credentials.

Mounted on top of :class:`sharedauth.auth.Auth`, which it shares the token
codec and cookie transport with.
"""

from flask import Flask, current_app

from ..auth.issuing import Issuer


def init_app(app: Flask) -> Issuer:
    """Attach an :class:`.Issuer` to an app that already has ``Auth``."""
    auth = app.extensions['sharedauth']
    issuer = Issuer(auth.store, auth.codec, app.config['SERVICE_NAME'])
    app.extensions['sharedauth.issuer'] = issuer
    return issuer


def current_issuer() -> Issuer:
    """The :class:`.Issuer` of the current app."""
    issuer: Issuer = current_app.extensions['sharedauth.issuer']
    return issuer
