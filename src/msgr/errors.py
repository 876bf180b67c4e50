""" Exceptions surfaced to callers of :class:`msgr.Client`. Every
    :func:`msgr.Client.rpc_exec` future settles with either the unwrapped
    reply data or one of :class:`RpcTimeout`, :class:`ClientError`, or
    :class:`ConsumerError`; connection-level trouble only appears as a
    :class:`ConnectionFailed` once the reconnect budget is gone.
"""


class MsgrError(Exception):
    """ Base class for all msgr errors.
    """


class RpcTimeout(MsgrError):
    """ No reply arrived within the configured window. The *timeout* is
        retained in milliseconds.
    """

    def __init__(self, timeout):
        self.timeout = timeout
        message = 'RPC server failed to respond before the configured timeout (%dms)' % (timeout)
        MsgrError.__init__(self, message)


class ClientError(MsgrError):
    """ The remote consumer rejected the request as invalid. The ordered
        list of human-readable reasons is available as *client_messages*.
    """

    def __init__(self, client_messages):
        self.client_messages = list(client_messages)
        MsgrError.__init__(self, 'client error')


class ConsumerError(MsgrError):
    """ The remote consumer failed unexpectedly. No further detail is
        carried across to the caller.
    """

    def __init__(self):
        MsgrError.__init__(self, 'RPC consumer failed')


class ConnectionFailed(MsgrError):
    """ The broker could not be reached within the reconnect budget.
    """

    def __init__(self, message, attempts=None):
        self.attempts = attempts
        MsgrError.__init__(self, message)


class ConnectionClosed(ConnectionFailed):
    """ The client was closed before the operation could complete.
    """

    def __init__(self, message='client is closed'):
        ConnectionFailed.__init__(self, message)


class DuplicateCorrelationId(MsgrError):
    pass


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
