""" Connection state machine for a :class:`msgr.Client`. A :class:`Link`
    owns the transport connection and channel, and walks through these
    states:

        idle -> connecting -> ready -> reconnecting -> ready ...
                          \\-> failed      \\-> failed

    plus closed, reachable from anywhere. Connection attempts are made on
    a short-lived worker thread, since the transport blocks while
    connecting; everything else, including every state change, happens on
    the client's :class:`msgr.loop.Loop` thread.

    Work that needs a channel is handed to :func:`Link.when_ready`, and is
    held until the link is ready. If the reconnect budget runs out the link
    is failed for good, and all held and future work is refused with a
    :class:`msgr.errors.ConnectionFailed`.
"""

import functools
import logging
import threading
import urllib.parse

from . import errors
from .transport import TransportError

logger = logging.getLogger(__name__)

IDLE = 'idle'
CONNECTING = 'connecting'
READY = 'ready'
RECONNECTING = 'reconnecting'
FAILED = 'failed'
CLOSED = 'closed'


class Link:
    """ The *setup* callable is invoked with the fresh channel on the loop
        thread every time a connection is established, before the link is
        declared ready; if it raises, the attempt counts as failed.
        *attempts* is the number of consecutive failed connection attempts
        tolerated per (re)connect cycle, *interval* the number of seconds to
        wait between them.
    """

    def __init__(self, loop, transport, url, setup, attempts=10, interval=1.0):

        self.loop = loop
        self.transport = transport
        self.url = url
        self.setup = setup
        self.attempts = attempts
        self.interval = interval

        self.state = IDLE
        self.connection = None
        self.channel = None
        self.error = None
        self.attempt = 0
        self.retry = None
        self.waiting = list()


    def start(self):
        if self.state != IDLE:
            return

        self._transition(CONNECTING)
        self._attempt()


    def when_ready(self, action, failure):
        """ Call *action* with the live channel as soon as the link is
            ready; if the link has failed or been closed, call *failure*
            with the reason instead. Held actions run in the order they were
            submitted.
        """

        if self.state == READY:
            action(self.channel)
        elif self.state == FAILED or self.state == CLOSED:
            failure(self.error)
        else:
            self.waiting.append((action, failure))


    def close(self):

        if self.state == CLOSED:
            return

        self._transition(CLOSED)
        self.error = errors.ConnectionClosed()

        if self.retry is not None:
            self.retry.cancel()
            self.retry = None

        connection = self.connection
        self.connection = None
        self.channel = None

        if connection is not None:
            self._discard(connection)

        self._refuse_waiting()


    def _attempt(self):

        self.retry = None

        if self.state != CONNECTING and self.state != RECONNECTING:
            return

        self.attempt += 1
        logger.debug('connecting to %s (attempt %d/%d)', redact(self.url), self.attempt, self.attempts)

        thread = threading.Thread(target=self._open, name='msgr.connect')
        thread.daemon = True
        thread.start()


    def _open(self):
        """ Runs on the worker thread. The outcome is posted back to the
            loop. Any error at all counts as a failed attempt, otherwise the
            link would wait forever for an outcome.
        """

        try:
            connection = self.transport.connect(self.url)
        except Exception as e:
            self._post(self._attempt_failed, e)
            return

        try:
            channel = connection.channel()
        except Exception as e:
            self._discard(connection)
            self._post(self._attempt_failed, e)
            return

        if self._post(self._opened, connection, channel) == False:
            self._discard(connection)


    def _opened(self, connection, channel):

        if self.state != CONNECTING and self.state != RECONNECTING:
            self._discard(connection)
            return

        channel.on_close(functools.partial(self._channel_closed, channel))

        try:
            self.setup(channel)
        except Exception as e:
            self._discard(connection)
            self._attempt_failed(e)
            return

        self.connection = connection
        self.channel = channel
        self.attempt = 0
        self.error = None
        self._transition(READY)

        waiting = self.waiting
        self.waiting = list()

        for action, failure in waiting:
            try:
                action(channel)
            except Exception:
                logger.exception('deferred action %r failed', action)


    def _attempt_failed(self, error):

        if self.state != CONNECTING and self.state != RECONNECTING:
            return

        logger.warning('connection attempt %d/%d to %s failed: %s', self.attempt, self.attempts, redact(self.url), error)

        if self.attempt >= self.attempts:
            self._fail(error)
            return

        self.retry = self.loop.call_later(self.interval, self._attempt)


    def _fail(self, cause):

        message = 'unable to connect to %s after %d attempt(s): %s' % (redact(self.url), self.attempt, cause)
        self.error = errors.ConnectionFailed(message, self.attempt)
        self._transition(FAILED)
        logger.error(message)

        self._refuse_waiting()


    def _channel_closed(self, channel, error):
        """ Invoked by the transport, on whatever thread it likes.
        """

        self._post(self._lost, channel, error)


    def _lost(self, channel, error):

        # Notifications for a channel that has already been replaced, or
        # for a link that is shutting down, are stale.

        if channel is not self.channel or self.state != READY:
            return

        logger.warning('lost channel to %s: %s; reconnecting', redact(self.url), error)

        connection = self.connection
        self.connection = None
        self.channel = None
        self._discard(connection)

        self._transition(RECONNECTING)
        self._attempt()


    def _refuse_waiting(self):

        waiting = self.waiting
        self.waiting = list()

        for action, failure in waiting:
            failure(self.error)


    def _post(self, method, *args):
        """ Queue *method* on the loop. Returns False if the loop has
            already been stopped.
        """

        try:
            self.loop.call_soon(method, *args)
        except RuntimeError:
            logger.debug('loop stopped, dropping %s', method.__name__)
            return False

        return True


    def _discard(self, connection):
        try:
            connection.close()
        except TransportError as e:
            logger.debug('error closing connection to %s: %s', redact(self.url), e)


    def _transition(self, state):
        logger.debug('link %s -> %s', self.state, state)
        self.state = state


# end of class Link



def redact(url):
    """ Return *url* with any password replaced, suitable for logging.
    """

    parts = urllib.parse.urlsplit(url)

    if parts.password is None:
        return url

    userinfo, separator, hostinfo = parts.netloc.rpartition('@')
    username = userinfo.split(':', 1)[0]
    netloc = username + ':***@' + hostinfo

    return urllib.parse.urlunsplit(parts._replace(netloc=netloc))


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
