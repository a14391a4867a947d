"""Session routes mounted by every participating service."""

import logging

from flask import Blueprint, Response, jsonify, make_response, redirect, \
    request

from . import current_auth, current_claim
from .cookies import INVALID_CSRF
from .exceptions import InvalidToken

logger = logging.getLogger(__name__)

blueprint = Blueprint('session', __name__)


@blueprint.route('/session', methods=['GET'])
def session() -> Response:
    """The user behind the current session, if any."""
    claim = current_claim()
    if claim is None:
        return make_response(jsonify({'reason': 'Not signed in'}), 401)
    return jsonify({
        'user': {'id': claim.user_id, 'name': claim.name,
                 'email': claim.email},
        'expires_at': claim.expires_at.isoformat()
    })


@blueprint.route('/health', methods=['GET'])
def health() -> Response:
    """Identity store connection status."""
    stats = current_auth().store.connections.stats()
    return make_response(jsonify(stats), 200 if stats['connected'] else 503)


@blueprint.route('/logout', methods=['GET'])
def logout_form() -> Response:
    """Hand out a CSRF token for the logout POST."""
    cookies = current_auth().cookies
    token = cookies.new_csrf_token()
    response: Response = jsonify({'csrf_token': token})
    cookies.write_csrf(response, token)
    return response


@blueprint.route('/logout', methods=['POST'])
def logout() -> Response:
    """Drop the shared session and go back to ``next``, if allowed."""
    auth = current_auth()
    payload = request.get_json(silent=True)
    submitted = request.form.get('csrf_token') \
        or (payload.get('csrf_token') if isinstance(payload, dict) else None) \
        or request.headers.get('X-CSRF-Token')
    if not auth.cookies.check_csrf(request, submitted):
        logger.info('Logout refused: CSRF check failed')
        return make_response(jsonify({'reason': INVALID_CSRF}), 403)

    token = auth.cookies.read_session(request)
    if token:
        try:
            claim = auth.codec.decode(token)
            logger.info('%s signed out of %s', claim.email,
                        auth.app.config['SERVICE_NAME'])
        except InvalidToken as e:
            logger.debug('Signing out with an unusable token: %s', e)

    response: Response = redirect(auth.resolve(request.args.get('next')),
                                  code=303)
    auth.cookies.clear_session(response)
    auth.cookies.clear_callback_url(response)
    return response
