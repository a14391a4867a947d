"""Process-level JSON log output."""

import logging
from pythonjsonlogger import jsonlogger

_configured = False


def setup_logger(level: str = 'INFO') -> None:
    """Send all records to stderr as JSON; safe to call once per app."""
    global _configured
    root = logging.getLogger()
    root.setLevel(level)
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(jsonlogger.JsonFormatter(
        '%(asctime)s %(levelname)s %(name)s %(message)s',
        rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
    ))
    root.addHandler(handler)
    _configured = True
