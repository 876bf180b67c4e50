""" The :class:`Loop` is the one background thread on which a
    :class:`msgr.Client` does all of its bookkeeping: registering and
    settling pending calls, firing timeouts, dispatching replies and
    consumed messages, and stepping the connection state machine. Work
    arrives from other threads via :func:`Loop.call_soon` and
    :func:`Loop.call_later`, and is executed strictly one task at a time,
    in the order it became due. Since nothing else touches the client
    state, none of it needs a lock.
"""

import collections
import heapq
import itertools
import logging
import threading
import time

logger = logging.getLogger(__name__)


class Handle:
    """ A scheduled invocation of *method* with *args*. A :class:`Handle`
        that has been cancelled will not be invoked, even if it is already
        due.
    """

    def __init__(self, method, args, deadline=None):
        self.method = method
        self.args = args
        self.deadline = deadline
        self.cancelled = False


    def __repr__(self):
        name = getattr(self.method, '__qualname__', repr(self.method))
        return '<Handle %s deadline=%r cancelled=%r>' % (name, self.deadline, self.cancelled)


    def cancel(self):
        self.cancelled = True


    def run(self):
        if self.cancelled:
            return

        try:
            self.method(*self.args)
        except Exception:
            logger.exception('unhandled error in %r', self)


# end of class Handle



class Loop:
    """ Single-threaded cooperative task queue. The background thread is
        started immediately; :func:`stop` ends it.
    """

    def __init__(self, name='msgr.loop'):

        self.condition = threading.Condition()
        self.ready = collections.deque()
        self.timers = list()
        self.sequence = itertools.count()
        self.shutdown = False

        self.thread = threading.Thread(target=self.run, name=name)
        self.thread.daemon = True
        self.thread.start()


    def call_soon(self, method, *args):
        """ Queue *method* to be called with *args* on the loop thread.
            Tasks queued this way run in the order they were queued.
        """

        handle = Handle(method, args)

        with self.condition:
            if self.shutdown == True:
                raise RuntimeError('loop is stopped')

            self.ready.append(handle)
            self.condition.notify()

        return handle


    def call_later(self, delay, method, *args):
        """ Call *method* with *args* on the loop thread after *delay*
            seconds. The returned :class:`Handle` can be cancelled.
        """

        deadline = time.monotonic() + delay
        handle = Handle(method, args, deadline)

        with self.condition:
            if self.shutdown == True:
                raise RuntimeError('loop is stopped')

            heapq.heappush(self.timers, (deadline, next(self.sequence), handle))
            self.condition.notify()

        return handle


    def in_loop(self):
        return threading.current_thread() is self.thread


    def is_running(self):
        return self.thread.is_alive() and not self.shutdown


    def stop(self, timeout=None):
        """ Stop the loop after the task currently executing, if any. Tasks
            still queued are discarded.
        """

        with self.condition:
            self.shutdown = True
            self.condition.notify()

        if self.in_loop():
            return

        self.thread.join(timeout)


    def run(self):

        while True:
            with self.condition:
                batch = self._wait()

            if batch is None:
                break

            for handle in batch:
                handle.run()

                if self.shutdown == True:
                    break


    def _wait(self):
        """ Block until at least one task is due, and return all of the due
            tasks. Returns None if the loop is shutting down. Must be called
            with the condition held.
        """

        while True:
            if self.shutdown == True:
                discarded = len(self.ready) + len(self.timers)
                if discarded:
                    logger.debug('loop stopped with %d task(s) outstanding', discarded)
                return None

            now = time.monotonic()

            while self.timers and self.timers[0][0] <= now:
                handle = heapq.heappop(self.timers)[2]
                if handle.cancelled == False:
                    self.ready.append(handle)

            if self.ready:
                batch = self.ready
                self.ready = collections.deque()
                return batch

            if self.timers:
                delay = self.timers[0][0] - now
            else:
                delay = None

            self.condition.wait(delay)


# end of class Loop


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
