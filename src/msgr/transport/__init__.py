"""Broker transport implementations."""

import os

from .base import (
    Channel,
    Connection,
    Delivery,
    TransportError,
    TransportTimeout,
    TransportConnectionError,
)

_BACKEND = os.environ.get("MSGR_TRANSPORT", "rabbitmq")

if _BACKEND == "rabbitmq":
    from . import rabbitmq as default
else:
    raise ImportError(f"unknown MSGR_TRANSPORT backend: {_BACKEND!r}")
