"""Transport interface.

This is the (small) contract that a broker adapter must follow. The rest
of :mod:`msgr` only ever talks to a broker through these classes, which
keeps the correlation machinery independent of any one AMQP library.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional


# Transport agnostic exceptions

class TransportError(Exception):
    """Base class for all transport-layer errors."""


class TransportTimeout(TransportError):
    """A transport operation did not complete in time."""


class TransportConnectionError(TransportError):
    """The transport could not establish or maintain a connection."""


class Delivery:
    """One message as handed over by the broker.

    *content* is the raw body; *properties* holds the AMQP basic properties
    that were set (``correlation_id``, ``reply_to``, ...) and *fields* the
    delivery method fields (``delivery_tag``, ``routing_key``, ...).
    """

    def __init__(self, content: bytes, properties: Optional[Dict[str, Any]] = None,
                 fields: Optional[Dict[str, Any]] = None):
        self.content = content
        self.properties = properties if properties is not None else {}
        self.fields = fields if fields is not None else {}

    def __repr__(self) -> str:
        return f"Delivery({self.content!r}, {self.properties!r}, {self.fields!r})"


class Channel(ABC):
    """Minimal contract for a channel on an open broker connection."""

    @abstractmethod
    def assert_exchange(self, name: str, type: str, **options) -> None:
        """Declare *name*, creating it if it does not exist."""

    @abstractmethod
    def assert_queue(self, name: str, **options) -> str:
        """Declare a queue and return its (possibly server-chosen) name."""

    @abstractmethod
    def bind_queue(self, queue: str, exchange: str, routing_key: str) -> None:
        """Route messages published to *exchange* under *routing_key* to *queue*."""

    @abstractmethod
    def publish(self, exchange: str, routing_key: str, body: bytes,
                properties: Optional[Dict[str, Any]] = None) -> None:
        """Write *body* to *exchange*; *properties* are passed through."""

    @abstractmethod
    def consume(self, queue: str, callback: Callable[[Delivery], None],
                no_ack: bool = True, **options) -> str:
        """Invoke *callback* for every delivery on *queue*; return the consumer tag."""

    @abstractmethod
    def ack(self, delivery: Delivery) -> None:
        """Acknowledge a single delivery received on this channel."""

    @abstractmethod
    def on_close(self, callback: Callable[[Optional[Exception]], None]) -> None:
        """Register *callback* to be told when this channel goes away."""


class Connection(ABC):
    """Minimal contract for a broker connection."""

    @abstractmethod
    def channel(self) -> Channel:
        """Open a new channel on this connection."""

    @abstractmethod
    def close(self) -> None:
        """Tear down the underlying connection."""

    @property
    def is_open(self) -> bool:
        """Whether the connection is currently usable."""
        return False
