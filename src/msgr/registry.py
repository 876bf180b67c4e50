""" Bookkeeping for outstanding RPC calls. Each call in flight is a
    :class:`PendingCall` keyed by its correlation id in a :class:`Registry`;
    an id is present in the registry if and only if the call has neither
    been answered nor timed out. Whichever of the reply or the timeout gets
    to the registry first removes the entry and settles the call, the other
    finds nothing and does nothing.

    None of this is thread safe. A :class:`msgr.Client` only ever touches
    its registry from its own :class:`msgr.loop.Loop` thread.
"""

import logging

from . import classify
from . import errors

logger = logging.getLogger(__name__)


class PendingCall:
    """ One outstanding RPC invocation. The *future* is the
        :class:`concurrent.futures.Future` handed back to the caller; the
        *timer*, once armed, is the :class:`msgr.loop.Handle` that will
        expire this call.
    """

    def __init__(self, id, future, timeout):

        self.id = id
        self.future = future
        self.timeout = timeout
        self.timer = None


    def resolve(self, value):
        self._disarm()
        self.future.set_result(value)


    def reject(self, error):
        self._disarm()
        self.future.set_exception(error)


    def _disarm(self):
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


# end of class PendingCall



class Registry:
    """ Map of correlation id to :class:`PendingCall`.
    """

    def __init__(self):
        self.pending = dict()


    def __contains__(self, id):
        return id in self.pending


    def __len__(self):
        return len(self.pending)


    def register(self, pending):
        """ Track a new :class:`PendingCall`. Correlation ids are expected to
            be unique; a collision is an error, the existing entry is left
            untouched.
        """

        if pending.id in self.pending:
            raise errors.DuplicateCorrelationId('correlation id already pending: ' + str(pending.id))

        self.pending[pending.id] = pending


    def resolve(self, id, envelope):
        """ Settle the call identified by *id* according to the reply
            *envelope*. Returns False, having done nothing, if no such call
            is outstanding.
        """

        try:
            pending = self.pending.pop(id)
        except KeyError:
            return False

        try:
            value = classify.outcome(envelope)
        except errors.MsgrError as e:
            pending.reject(e)
        else:
            pending.resolve(value)

        return True


    def expire(self, id):
        """ Reject the call identified by *id* with a timeout. Returns False,
            having done nothing, if the call was already settled.
        """

        try:
            pending = self.pending.pop(id)
        except KeyError:
            return False

        logger.debug('RPC %s timed out after %dms', id, pending.timeout)
        pending.reject(errors.RpcTimeout(pending.timeout))
        return True


    def reject(self, id, error):
        """ Fail the call identified by *id* with *error*, as when the
            request could not be sent at all. Returns False, having done
            nothing, if the call was already settled.
        """

        try:
            pending = self.pending.pop(id)
        except KeyError:
            return False

        pending.reject(error)
        return True


    def drain(self, error):
        """ Reject every outstanding call with *error*.
        """

        pending = list(self.pending.values())
        self.pending.clear()

        for call in pending:
            call.reject(error)

        return len(pending)


# end of class Registry


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
