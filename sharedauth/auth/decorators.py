"""
Protection of Flask routes that need a signed-in user.

.. code-block:: python

   from sharedauth.auth.decorators import login_required

   @blueprint.route('/dashboard', methods=['GET'])
   @login_required
   def dashboard():
       return jsonify({'name': request.auth.name})

An anonymous ``GET`` is redirected to the issuing service's login, with the
current URL remembered in the callback-url cookie; any other anonymous
request is refused with 401.
"""

import logging
from functools import wraps
from typing import Any, Callable

from flask import request
from werkzeug.exceptions import Unauthorized

from . import current_auth, current_claim

logger = logging.getLogger(__name__)


def login_required(func: Callable) -> Callable:
    """Require a revalidated session on the decorated route."""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        if current_claim() is None:
            logger.debug('No session on %s', request.path)
            if request.method == 'GET':
                return current_auth().redirect_to_login(request.url)
            raise Unauthorized('Not signed in')
        return func(*args, **kwargs)
    return wrapper
