""" The client-facing representation of a consumed message, and the
    encoding used for every message body.
"""

from . import json

content_type = 'application/json'


def encode(data):
    """ Serialize *data* as UTF-8 JSON bytes. Raises TypeError for values
        that have no JSON representation.
    """

    return json.dumps(data)


def decode(content):
    return json.loads(content)



class Message:
    """ A message received via :func:`msgr.Client.consume`. The *content*
        is the decoded JSON body; *properties* and *fields* are the AMQP
        properties and delivery fields as provided by the transport.

        :func:`ack` acknowledges this specific delivery on the channel it
        arrived on. It is always present, but is only meaningful when the
        subscription was created with ``no_ack=False``; acknowledging a
        message that was auto-acknowledged is an error reported by the
        transport.
    """

    def __init__(self, content, properties, fields, channel, delivery):

        self.content = content
        self.properties = properties
        self.fields = fields

        self._channel = channel
        self._delivery = delivery


    def __repr__(self):
        return 'Message(%r, properties=%r, fields=%r)' % (self.content, self.properties, self.fields)


    def ack(self):
        self._channel.ack(self._delivery)


    @classmethod
    def from_delivery(cls, delivery, channel):
        content = decode(delivery.content)
        return cls(content, delivery.properties, delivery.fields, channel, delivery)


# end of class Message


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
