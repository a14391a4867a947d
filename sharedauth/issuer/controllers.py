"""
Controllers for the issuing service.

A successful login yields a freshly issued session token, which the route
writes to the shared session cookie. Since the cookie is scoped to the parent
domain, every other participating service sees it on its next request, and
revalidates it there against the same identity store.
"""

import logging
from typing import Any, Dict, Tuple

from werkzeug.datastructures import MultiDict

from ..auth.cookies import INVALID_CSRF
from ..auth.issuing import REJECTED_MESSAGE
from ..domain import to_dict
from ..store.exceptions import DuplicateEmail, InvalidPassword
from . import current_issuer
from .forms import LoginForm, SignupForm

logger = logging.getLogger(__name__)

ResponseData = Tuple[dict, int, dict]

DUPLICATE = 'User with this email already exists'


def login(form_data: MultiDict, csrf_valid: bool,
          next_page: str) -> ResponseData:
    """
    Verify credentials and issue a new session.

    Parameters
    ----------
    form_data : MultiDict
        Should include ``email`` and ``password``.
    csrf_valid : bool
        Outcome of the double-submit check against the CSRF cookie.
    next_page : str
        Page to which the user should be redirected upon login; already
        checked against the redirect policy.

    Returns
    -------
    dict
        Response data. On success, includes the ``token`` that the route must
        set as the session cookie.
    int
        Status code. This should be 303 (See Other) if all goes well.
    dict
        Headers to add to the response.

    """
    if not csrf_valid:
        logger.info('Login refused: CSRF check failed')
        return {'reason': INVALID_CSRF}, 403, {}

    form = LoginForm(form_data)
    if not form.validate():
        logger.debug('Login form is not valid: %s', form.errors)
        return {'reason': 'Email and password are required',
                'errors': form.errors}, 400, {}

    result = current_issuer().authenticate(form.email.data,
                                           form.password.data)
    if not result.authenticated:
        return {'reason': REJECTED_MESSAGE}, 401, {}

    claim = result.claim
    data: Dict[str, Any] = {
        'user': {'id': claim.user_id, 'name': claim.name,
                 'email': claim.email},
        'next_page': next_page,
        'token': result.token
    }
    return data, 303, {'Location': next_page}


def signup(form_data: MultiDict) -> ResponseData:
    """
    Create a new identity in the shared store.

    Returns
    -------
    dict
        The public representation of the new identity, or a ``reason``.
    int
        201 on success; 400 if the form is invalid or the password cannot be
        hashed; 409 if the e-mail address is taken.
    dict
        Headers to add to the response.

    """
    form = SignupForm(form_data)
    if not form.validate():
        logger.debug('Signup form is not valid: %s', form.errors)
        return {'reason': 'Invalid signup data', 'errors': form.errors}, \
            400, {}
    try:
        identity = current_issuer().store.create(form.name.data,
                                                 form.email.data,
                                                 form.password.data)
    except DuplicateEmail as e:
        logger.info('Signup refused: %s', e)
        return {'reason': DUPLICATE}, 409, {}
    except InvalidPassword as e:
        logger.info('Signup refused: %s', e)
        return {'reason': 'Invalid signup data',
                'errors': {'password': [str(e)]}}, 400, {}
    return {'user': to_dict(identity)}, 201, {}
