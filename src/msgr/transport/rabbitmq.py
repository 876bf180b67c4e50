"""RabbitMQ transport backed by pika."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import pika
import pika.exceptions

from . import base
from .base import Delivery, TransportConnectionError, TransportError, TransportTimeout


logger = logging.getLogger(__name__)

_PROPERTY_NAMES = (
    "app_id",
    "cluster_id",
    "content_encoding",
    "content_type",
    "correlation_id",
    "delivery_mode",
    "expiration",
    "headers",
    "message_id",
    "priority",
    "reply_to",
    "timestamp",
    "type",
    "user_id",
)

_FIELD_NAMES = (
    "consumer_tag",
    "delivery_tag",
    "exchange",
    "redelivered",
    "routing_key",
)


def connect(url: str, timeout: float = 10) -> "Connection":
    """Open a connection to the broker at *url*, an ``amqp://`` URL."""
    return Connection(url, timeout)


class Connection(base.Connection):
    """A pika BlockingConnection owned by a dedicated I/O thread.

    pika connections are not thread safe; every operation requested by
    another thread is queued with ``add_callback_threadsafe`` and executed
    on the I/O thread, and the caller blocks for the result.
    """

    def __init__(self, url: str, timeout: float = 10):
        self.url = url
        self.timeout = timeout

        self._connection = None
        self._channels: List[Channel] = []
        self._closing = False
        self._opened: concurrent.futures.Future = concurrent.futures.Future()

        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        try:
            self._opened.result(timeout)
        except concurrent.futures.TimeoutError:
            self._closing = True
            raise TransportTimeout(f"no connection to {self.url} in {timeout:.2f} sec")

    @property
    def is_open(self) -> bool:
        connection = self._connection
        return connection is not None and connection.is_open and not self._closing

    def channel(self) -> "Channel":
        return self._call(self._open_channel)

    def close(self) -> None:
        self._closing = True
        if self._connection is None:
            return

        # Wake the I/O thread so it notices the shutdown request.

        try:
            self._connection.add_callback_threadsafe(lambda: None)
        except pika.exceptions.AMQPError as e:
            logger.debug("connection to %s already down: %r", self.url, e)

        if threading.current_thread() is not self._thread:
            self._thread.join(self.timeout)

    def _open_channel(self) -> "Channel":
        channel = Channel(self, self._connection.channel())
        self._channels.append(channel)
        return channel

    def _call(self, method: Callable, *args, **kwargs) -> Any:
        """Run *method* on the I/O thread and return its result."""

        if threading.current_thread() is self._thread:
            return method(*args, **kwargs)

        future: concurrent.futures.Future = concurrent.futures.Future()

        def invoke() -> None:
            try:
                result = method(*args, **kwargs)
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(result)

        if self._closing:
            raise TransportConnectionError(f"connection to {self.url} is closed")

        try:
            self._connection.add_callback_threadsafe(invoke)
        except pika.exceptions.AMQPError as e:
            raise TransportConnectionError(f"connection to {self.url} is closed") from e

        try:
            return future.result(self.timeout)
        except concurrent.futures.TimeoutError:
            raise TransportTimeout(f"{getattr(method, '__name__', method)}: no result in {self.timeout:.2f} sec")
        except pika.exceptions.AMQPError as e:
            raise TransportError(repr(e)) from e

    def _run(self) -> None:
        try:
            parameters = pika.URLParameters(self.url)
            self._connection = pika.BlockingConnection(parameters)
        except (pika.exceptions.AMQPError, ValueError) as e:
            self._opened.set_exception(TransportConnectionError(f"cannot connect to {self.url}: {e!r}"))
            return

        self._opened.set_result(True)

        error = None
        try:
            while not self._closing:
                self._connection.process_data_events(time_limit=1)
                self._check_channels()
        except pika.exceptions.AMQPError as e:
            error = TransportConnectionError(f"lost connection to {self.url}: {e!r}")
            logger.warning("%s", error)

        if self._closing and self._connection.is_open:
            try:
                self._connection.close()
            except pika.exceptions.AMQPError as e:
                logger.debug("error closing connection to %s: %r", self.url, e)

        self._closing = True
        for channel in self._channels:
            channel._closed(error)
        self._channels = []

    def _check_channels(self) -> None:
        for channel in list(self._channels):
            if channel._channel.is_closed:
                self._channels.remove(channel)
                channel._closed(TransportError(f"channel {channel._channel.channel_number} closed"))


class Channel(base.Channel):
    """A pika BlockingChannel; see :class:`Connection` for threading."""

    def __init__(self, connection: Connection, channel):
        self._connection = connection
        self._channel = channel
        self._close_callbacks: List[Callable[[Optional[Exception]], None]] = []
        self._is_closed = False

    def assert_exchange(self, name: str, type: str, **options) -> None:
        self._connection._call(
            self._channel.exchange_declare,
            exchange=name,
            exchange_type=type,
            **options,
        )

    def assert_queue(self, name: str, **options) -> str:
        result = self._connection._call(self._channel.queue_declare, queue=name, **options)
        return result.method.queue

    def bind_queue(self, queue: str, exchange: str, routing_key: str) -> None:
        self._connection._call(
            self._channel.queue_bind,
            queue=queue,
            exchange=exchange,
            routing_key=routing_key,
        )

    def publish(self, exchange: str, routing_key: str, body: bytes,
                properties: Optional[Dict[str, Any]] = None) -> None:
        options = dict(properties or {})
        mandatory = options.pop("mandatory", False)

        self._connection._call(
            self._channel.basic_publish,
            exchange=exchange,
            routing_key=routing_key,
            body=body,
            properties=pika.BasicProperties(**options),
            mandatory=mandatory,
        )

    def consume(self, queue: str, callback: Callable[[Delivery], None],
                no_ack: bool = True, **options) -> str:

        def deliver(_channel, method, properties, body: bytes) -> None:
            delivery = Delivery(body, _properties(properties), _fields(method))
            try:
                callback(delivery)
            except Exception:
                logger.exception("consumer callback failed for queue %r", queue)

        return self._connection._call(
            self._channel.basic_consume,
            queue=queue,
            on_message_callback=deliver,
            auto_ack=no_ack,
            **options,
        )

    def ack(self, delivery: Delivery) -> None:
        self._connection._call(self._channel.basic_ack, delivery_tag=delivery.fields["delivery_tag"])

    def on_close(self, callback: Callable[[Optional[Exception]], None]) -> None:
        self._close_callbacks.append(callback)

    def _closed(self, error: Optional[Exception]) -> None:
        """Notify listeners once; called on the I/O thread."""

        if self._is_closed:
            return
        self._is_closed = True

        for callback in self._close_callbacks:
            try:
                callback(error)
            except Exception:
                logger.exception("channel close callback failed")


def _properties(properties) -> Dict[str, Any]:
    """Flatten pika.BasicProperties into a dict of the values that are set."""

    flattened = {}
    for name in _PROPERTY_NAMES:
        value = getattr(properties, name, None)
        if value is not None:
            flattened[name] = value
    return flattened


def _fields(method) -> Dict[str, Any]:
    fields = {}
    for name in _FIELD_NAMES:
        value = getattr(method, name, None)
        if value is not None:
            fields[name] = value
    return fields
