''' JSON encoding for message bodies. :func:`dumps` always produces UTF-8
    bytes, ready to be handed to the transport; :func:`loads` accepts bytes
    or text. Decoding failures are any of the exceptions in
    :data:`DecodeError`, suitable for use in an ``except`` clause.
'''

# msgspec is the declared dependency and is used whenever it imports.
# orjson, then the standard library, cover installations without it.

msgspec = None
orjson = None
json = None

try:
    import msgspec
except ImportError:
    pass

if msgspec is None:
    try:
        import orjson
    except ImportError:
        pass

if msgspec is None and orjson is None:
    import json


def _stdlib_dumps(data):
    # Unlike msgspec and orjson the standard library produces text.
    return json.dumps(data, ensure_ascii=False).encode('utf-8')

if msgspec is not None:
    dumps = msgspec.json.Encoder().encode
    loads = msgspec.json.Decoder().decode
    DecodeError = (ValueError, msgspec.DecodeError)
elif orjson is not None:
    dumps = orjson.dumps
    loads = orjson.loads
    DecodeError = (ValueError,)
else:
    dumps = _stdlib_dumps
    loads = json.loads
    DecodeError = (ValueError,)

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
