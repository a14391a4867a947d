"""Provides Flask integration for the issuing service."""

import logging
from typing import Optional

from flask import Blueprint, Response, jsonify, make_response, redirect, \
    request
from werkzeug.datastructures import MultiDict

from ..auth import current_auth, current_claim
from ..auth.decorators import login_required
from ..domain import to_dict
from . import controllers, current_issuer

logger = logging.getLogger(__name__)

blueprint = Blueprint('issuer', __name__)


def _form_data() -> MultiDict:
    """Accept both form-encoded and JSON bodies."""
    if request.form:
        return request.form
    payload = request.get_json(silent=True)
    return MultiDict(payload if isinstance(payload, dict) else {})


def _next_page() -> str:
    """Where to go after login: ``next``, else the callback-url cookie."""
    auth = current_auth()
    target: Optional[str] = request.args.get('next') \
        or auth.cookies.read_callback_url(request)
    return auth.resolve(target, trusted=True)


@blueprint.route('/login', methods=['GET'])
def login_form() -> Response:
    """Hand out a CSRF token for the login POST."""
    next_page = _next_page()
    if current_claim() is not None:
        logger.debug('Already signed in, redirecting to %s', next_page)
        return redirect(next_page, code=303)
    cookies = current_auth().cookies
    token = cookies.new_csrf_token()
    response: Response = jsonify({'next_page': next_page,
                                  'csrf_token': token})
    cookies.write_csrf(response, token)
    return response


@blueprint.route('/login', methods=['POST'])
def login() -> Response:
    """User logs in with e-mail address and password."""
    auth = current_auth()
    form_data = _form_data()
    submitted = form_data.get('csrf_token') \
        or request.headers.get('X-CSRF-Token')
    next_page = _next_page()
    logger.debug('Request to log in, then redirect to %s', next_page)

    data, code, headers = controllers.login(
        form_data, auth.cookies.check_csrf(request, submitted), next_page
    )
    token = data.pop('token', None)
    response: Response = make_response(jsonify(data), code, headers)
    if token is not None:
        auth.cookies.write_session(response, token)
        auth.cookies.clear_callback_url(response)
    return response


@blueprint.route('/signup', methods=['POST'])
def signup() -> Response:
    """Create a new account."""
    data, code, headers = controllers.signup(_form_data())
    return make_response(jsonify(data), code, headers)


@blueprint.route('/users', methods=['GET'])
@login_required
def users() -> Response:
    """All identities in the shared store, newest first."""
    identities = current_issuer().store.list_users()
    return jsonify({'users': [to_dict(identity) for identity in identities]})


@blueprint.route('/users/stats', methods=['GET'])
@login_required
def user_stats() -> Response:
    """Usage statistics for the shared store."""
    stats = current_issuer().store.stats()
    return jsonify(stats._asdict())
