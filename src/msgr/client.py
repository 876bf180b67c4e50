""" The :class:`Client` is the primary public-facing interface: three
    message exchange patterns over one shared exchange on an AMQP broker.

    * :func:`Client.publish` writes a message and forgets about it.
    * :func:`Client.consume` subscribes a handler to a named queue.
    * :func:`Client.rpc_exec` publishes a request and returns a future that
      settles with the reply, or with an error if the reply says so or never
      arrives.

    All three may be called from any thread, and before the connection to
    the broker is established; the work is queued until the channel is
    ready. Each returns a :class:`concurrent.futures.Future`.
"""

import concurrent.futures
import logging
import numbers
import uuid

from . import connection
from . import errors
from . import json
from . import loop
from . import message
from . import registry
from . import transport as transports
from .config import Configuration
from .transport import TransportError

logger = logging.getLogger(__name__)


class Client:
    """ Connect to the broker at *url* and use *exchange* for everything.
        Both default to the values in the *config*, a
        :class:`msgr.config.Configuration` instance, which in turn is built
        from the environment if not specified. The *transport* is any object
        with a ``connect(url)`` function returning a
        :class:`msgr.transport.Connection`; the default is the pika backed
        :mod:`msgr.transport.rabbitmq`.

        Replies to RPC requests arrive on a private, exclusive queue that is
        created by the broker on every (re)connect, and bound to the
        exchange under its own name.

        :ivar reply_queue: The name of the current reply queue.
        :ivar registry: The :class:`msgr.registry.Registry` of calls in flight.
    """

    def __init__(self, url=None, exchange=None, config=None, transport=None):

        if config is None:
            config = Configuration()

        if url is None:
            url = config.url

        if exchange is None:
            exchange = config.exchange

        if transport is None:
            transport = transports.default

        self.config = config
        self.exchange = exchange
        self.reply_queue = None
        self.registry = registry.Registry()
        self.subscriptions = list()

        self.loop = loop.Loop()
        self.link = connection.Link(self.loop, transport, url, self._setup,
                                    config.attempts, config.interval)
        self.loop.call_soon(self.link.start)


    def __enter__(self):
        return self


    def __exit__(self, *exc_info):
        self.close()


    @property
    def state(self):
        return self.link.state


    def rpc_exec(self, key, data, timeout=None, **options):
        """ Publish *data* under the routing *key* as a request, and return a
            future for the reply. The *timeout* is in milliseconds; if no
            reply arrives in time the future fails with
            :class:`msgr.errors.RpcTimeout`. A reply flagged as an error
            fails the future with :class:`msgr.errors.ClientError` or
            :class:`msgr.errors.ConsumerError`; otherwise the future
            resolves with the *data* field of the reply.

            Any additional *options* are passed through to the transport as
            message properties, except that the content type, correlation
            id, reply address and expiration are always set here.
        """

        _check_key(key)

        if timeout is None:
            timeout = self.config.timeout

        if isinstance(timeout, bool) or not isinstance(timeout, numbers.Integral) or timeout < 1:
            raise ValueError('timeout must be a positive integer number of milliseconds, not %r' % (timeout,))

        body = message.encode(data)

        future = concurrent.futures.Future()
        self._defer(future, self._rpc_send, key, body, int(timeout), options)
        return future


    def publish(self, key, data, **options):
        """ Publish *data* under the routing *key*. The returned future
            resolves to None once the message has been handed to the
            transport. Any *options* are passed through as message
            properties.
        """

        _check_key(key)
        body = message.encode(data)

        future = concurrent.futures.Future()
        self._defer(future, self._publish_send, key, body, options)
        return future


    def consume(self, queue, handler, no_ack=True, **options):
        """ Make sure *queue* exists and is bound to the exchange under its
            own name, then invoke *handler* with a :class:`msgr.Message` for
            each message that arrives. The handler runs on the client's loop
            thread. The subscription is re-established after a reconnect.
            The returned future resolves to the consumer tag.
        """

        _check_key(queue)

        if not callable(handler):
            raise TypeError('handler must be callable')

        future = concurrent.futures.Future()
        self._defer(future, self._consume_start, queue, handler, no_ack, options)
        return future


    def close(self, timeout=None):
        """ Disconnect from the broker. Calls still waiting for a reply fail
            with :class:`msgr.errors.ConnectionClosed`.
        """

        if self.loop.is_running() == False:
            return

        if self.loop.in_loop():
            self._close()
            self.loop.stop()
            return

        done = concurrent.futures.Future()

        try:
            self.loop.call_soon(self._close, done)
        except RuntimeError:
            return

        done.result(timeout)
        self.loop.stop(timeout)


    def _close(self, done=None):

        self.link.close()

        count = self.registry.drain(errors.ConnectionClosed())
        if count:
            logger.debug('closed with %d RPC call(s) outstanding', count)

        if done is not None:
            done.set_result(None)


    def _defer(self, future, method, *args):
        """ Arrange for *method* to be invoked with the live channel, the
            *future*, and *args* once the link is ready. If it never will
            be, fail the *future* instead.
        """

        def action(channel):
            method(channel, future, *args)

        def failure(error):
            if future.set_running_or_notify_cancel():
                future.set_exception(error)

        try:
            self.loop.call_soon(self.link.when_ready, action, failure)
        except RuntimeError:
            failure(errors.ConnectionClosed())


    def _setup(self, channel):
        """ Invoked by the :class:`msgr.connection.Link` with each new
            channel, before any deferred work is released.
        """

        if self.config.declare_exchange and self.exchange != '':
            channel.assert_exchange(self.exchange, self.config.exchange_type, durable=True)

        reply_queue = channel.assert_queue('', exclusive=True)

        if self.exchange != '':
            channel.bind_queue(reply_queue, self.exchange, reply_queue)

        channel.consume(reply_queue, self._reply_received, no_ack=True)
        self.reply_queue = reply_queue

        for subscription in self.subscriptions:
            self._subscribe(channel, *subscription)


    def _rpc_send(self, channel, future, key, body, timeout, options):

        if future.set_running_or_notify_cancel() == False:
            return

        correlation_id = str(uuid.uuid4())
        pending = registry.PendingCall(correlation_id, future, timeout)

        try:
            self.registry.register(pending)
        except errors.DuplicateCorrelationId as e:
            future.set_exception(e)
            return

        pending.timer = self.loop.call_later(timeout / 1000.0, self.registry.expire, correlation_id)

        properties = dict(options)
        properties['content_type'] = message.content_type
        properties['correlation_id'] = correlation_id
        properties['reply_to'] = self.reply_queue
        properties['expiration'] = str(timeout)

        # A transport failure leaves the call to its timer; the link will
        # notice the broken channel on its own. Anything else means the
        # request can never be sent, so the call fails now.

        try:
            channel.publish(self.exchange, key, body, properties)
        except TransportError as e:
            logger.warning('RPC %s to %r not sent: %s', correlation_id, key, e)
        except Exception as e:
            self.registry.reject(correlation_id, e)


    def _reply_received(self, delivery):
        """ Invoked by the transport for every message on the reply queue.
        """

        self._post(self._handle_reply, delivery)


    def _handle_reply(self, delivery):

        correlation_id = delivery.properties.get('correlation_id')

        if correlation_id not in self.registry:
            logger.debug('dropping reply with no pending call: %r', correlation_id)
            return

        try:
            envelope = message.decode(delivery.content)
        except json.DecodeError:
            envelope = None

        self.registry.resolve(correlation_id, envelope)


    def _publish_send(self, channel, future, key, body, options):

        if future.set_running_or_notify_cancel() == False:
            return

        properties = dict()
        properties['content_type'] = message.content_type
        properties.update(options)

        try:
            channel.publish(self.exchange, key, body, properties)
        except Exception as e:
            future.set_exception(e)
        else:
            future.set_result(None)


    def _consume_start(self, channel, future, queue, handler, no_ack, options):

        if future.set_running_or_notify_cancel() == False:
            return

        subscription = (queue, handler, no_ack, options)

        try:
            tag = self._subscribe(channel, *subscription)
        except Exception as e:
            future.set_exception(e)
            return

        self.subscriptions.append(subscription)
        future.set_result(tag)


    def _subscribe(self, channel, queue, handler, no_ack, options):

        channel.assert_queue(queue, durable=True)

        if self.exchange != '':
            channel.bind_queue(queue, self.exchange, queue)

        def delivered(delivery):
            self._post(self._dispatch, channel, handler, no_ack, delivery)

        return channel.consume(queue, delivered, no_ack=no_ack, **options)


    def _dispatch(self, channel, handler, no_ack, delivery):

        try:
            received = message.Message.from_delivery(delivery, channel)
        except json.DecodeError:
            logger.warning('discarding message with undecodable body from %r', delivery.fields.get('routing_key'))

            # Nobody will ever ack it otherwise.

            if no_ack == False:
                try:
                    channel.ack(delivery)
                except TransportError as e:
                    logger.warning('could not ack discarded message: %s', e)
            return

        handler(received)


    def _post(self, method, *args):
        try:
            self.loop.call_soon(method, *args)
        except RuntimeError:
            logger.debug('client closed, dropping %s', method.__name__)


# end of class Client



def _check_key(key):
    if not isinstance(key, str) or key == '':
        raise ValueError('routing key must be a non-empty string, not %r' % (key,))


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
