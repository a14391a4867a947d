"""Web Server Gateway Interface entry-point."""

import os

__flask_app__ = None


def application(environ, start_response):    # type: ignore
    """WSGI application."""
    global __flask_app__
    if __flask_app__ is None:
        for key, value in environ.items():
            # uWSGI passes deployment config in the environ; request headers
            # and ``SERVER_NAME`` are not config.
            if key == 'SERVER_NAME' or key.startswith('HTTP_') \
                    or not isinstance(value, str):
                continue
            os.environ[key] = value
        # Configuration is read from os.environ at import time.
        from sharedauth.factory import create_web_app
        __flask_app__ = create_web_app()
    return __flask_app__(environ, start_response)
