""" Python client for message exchange over an AMQP broker: fire-and-forget
    publishing, queue consumption, and request/reply RPC, all sharing one
    exchange and one channel per :class:`Client`.
"""

import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Utility components.

from . import json
from . import config
from . import errors

# Submodules used by multiple other components.

from . import transport
from . import loop
from . import registry
from . import classify
from . import connection

# Primary public-facing interfaces.

from .client import Client
from .message import Message
from .errors import (
    MsgrError,
    RpcTimeout,
    ClientError,
    ConsumerError,
    ConnectionFailed,
    ConnectionClosed,
)

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
