"""
The shared identity store.

All participating services read and write the same user records. This
package provides the connection lifecycle (:mod:`.connection`), the process
supervisor that reacts to it (:mod:`.supervisor`), and the typed client used
by the session protocol (:mod:`.users`).
"""

from .connection import ConnectionManager, Event
from .supervisor import Supervisor
from .users import IdentityStore, normalize_email, is_valid_id
from . import exceptions
