""" Interpretation of RPC reply envelopes. A reply is a JSON object with
    a *data* field, and optionally an *error* flag and a *trace* string;
    the combination of *error* and *trace* decides whether the caller gets
    the data back, a :class:`msgr.errors.ClientError`, or an opaque
    :class:`msgr.errors.ConsumerError`.
"""

import logging

from . import errors

logger = logging.getLogger(__name__)


def outcome(envelope):
    """ Return the *data* of a successful reply, or raise the appropriate
        :class:`msgr.errors.MsgrError` subclass. Anything other than a JSON
        object is treated as a consumer failure.
    """

    try:
        error = envelope.get('error')
    except AttributeError:
        logger.debug('malformed reply envelope: %r', envelope)
        raise errors.ConsumerError()

    data = envelope.get('data')
    trace = envelope.get('trace')

    if error and trace:
        # The trace stays on this side of the boundary.
        logger.debug('remote consumer failed:\n%s', trace)
        raise errors.ConsumerError()

    if error:
        raise errors.ClientError(client_messages(data))

    return data


def client_messages(data):
    """ Reinterpret the *data* of a client error as a list of messages.
    """

    if data is None:
        return []

    if isinstance(data, (list, tuple)):
        return list(data)

    return [data]


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
