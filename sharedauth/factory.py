"""Application factories for the issuing service and every other service."""

import logging
from typing import Any, Mapping, Optional

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException

from . import config, issuer
from .app_logging import setup_logger
from .auth import Auth
from .auth import routes as session_routes
from .issuer import routes as issuer_routes
from .store import ConnectionManager, Event, IdentityStore, Supervisor
from .store.connection import Listener

logger = logging.getLogger(__name__)


def jsonify_exception(error: HTTPException) -> Response:
    exc_resp = error.get_response()
    response = jsonify(reason=error.description)
    response.status_code = exc_resp.status_code
    return response


def _create_tables(store: IdentityStore) -> Listener:
    def create(event: Event, error: Optional[BaseException] = None) -> None:
        if event in (Event.CONNECTED, Event.RECONNECTED):
            store.create_all()
    return create


def create_service_app(overrides: Optional[Mapping[str, Any]] = None,
                       issuing: bool = False) -> Flask:
    """
    Initialize a participating service.

    Parameters
    ----------
    overrides : dict
        Configuration values that take precedence over :mod:`.config`.
    issuing : bool
        Also mount login and signup (see :mod:`sharedauth.issuer`).

    """
    app = Flask('sharedauth')
    app.config.from_object(config)
    if overrides:
        app.config.update(overrides)
    setup_logger(app.config['LOGLEVEL'])

    connections = ConnectionManager.from_config(app.config)
    store = IdentityStore(connections,
                          hash_rounds=app.config['PASSWORD_HASH_ROUNDS'])
    if app.config['CREATE_DB']:
        connections.subscribe(_create_tables(store))
    supervisor = Supervisor(connections)
    if app.config['HANDLE_SIGNALS']:
        supervisor.install()
    app.extensions['sharedauth.supervisor'] = supervisor

    Auth(app, store)
    app.register_blueprint(session_routes.blueprint)
    if issuing:
        issuer.init_app(app)
        app.register_blueprint(issuer_routes.blueprint)

    app.register_error_handler(HTTPException, jsonify_exception)
    connections.start()
    logger.info('%s started (issuing: %s)', app.config['SERVICE_NAME'],
                issuing)
    return app


def create_issuing_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Initialize the service that owns login."""
    return create_service_app(overrides, issuing=True)


def create_web_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Initialize the service described by :mod:`.config`."""
    issuing = (overrides or {}).get('ISSUER', config.ISSUER)
    return create_service_app(overrides, issuing=bool(issuing))
