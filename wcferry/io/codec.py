"""
wcferry wire codec.

Converts the dataclasses declared in schema.py to and from protobuf bytes.

- encode_request / decode_request: the command channel, client side
- encode_response / decode_response: replies, decoded by the function that was sent
- encode_event / decode_event: frames pushed on the event channel
- encode_message / decode_message: any other schema message (e.g. RoomData blobs)

Any parse failure raises WcfResponseError; nothing is silently defaulted.
"""

from typing import Any, TypeVar

from google.protobuf.message import DecodeError, Message as ProtoMessage

from ..exceptions import WcfResponseError
from .schema import (
    PROTO, REQUEST_PAYLOAD, RESPONSE_RESULT, Function, Request, Response, WireField, WxMsg, wire_fields,
)

T = TypeVar("T")


# ============================
# DATACLASS <-> PROTOBUF
# ============================

def _write(pb: ProtoMessage, name: str, wire: WireField, value: Any) -> None:
    if wire.kind == "map":
        getattr(pb, name).update(value)
    elif wire.kind == "message" and wire.repeated:
        container = getattr(pb, name)
        for item in value:
            container.add().CopyFrom(to_proto(item))
    elif wire.kind == "message":
        sub = getattr(pb, name)
        sub.SetInParent()  # an empty sub-message must still count as set
        sub.MergeFrom(to_proto(value))
    elif wire.repeated:
        getattr(pb, name).extend(value)
    else:
        setattr(pb, name, value)


def _read(pb: ProtoMessage, name: str, wire: WireField) -> Any:
    value = getattr(pb, name)
    match wire.kind:
        case "map":
            return dict(value)
        case "message" if wire.repeated:
            return [from_proto(item, wire.message) for item in value]
        case "message":
            return from_proto(value, wire.message)
        case "bytes":
            return bytes(value)
        case "enum":
            try:
                return Function(value)
            except ValueError as e:
                raise WcfResponseError(f"Unknown function code: {value}") from e
        case _:
            return list(value) if wire.repeated else value


def to_proto(obj: Any) -> ProtoMessage:
    pb = PROTO[type(obj)]()
    for f, wire in wire_fields(obj):
        value = getattr(obj, f.name)
        if wire.oneof and value is None:
            continue
        _write(pb, f.name, wire, value)
    return pb


def from_proto(pb: ProtoMessage, cls: type[T]) -> T:
    kwargs = {}
    for f, wire in wire_fields(cls):
        if wire.oneof and pb.WhichOneof(wire.oneof) != f.name:
            continue
        kwargs[f.name] = _read(pb, f.name, wire)
    return cls(**kwargs)


def _parse(cls: type, data: bytes) -> ProtoMessage:
    pb = PROTO[cls]()
    try:
        pb.ParseFromString(data)
    except DecodeError as e:
        raise WcfResponseError(f"Malformed {cls.__name__} ({len(data)} bytes): {e}") from e
    return pb


# ============================
# COMMAND CHANNEL
# ============================

def encode_request(request: Request) -> bytes:
    """Serialize a Request, checking that it carries the payload its function expects"""
    expected = REQUEST_PAYLOAD.get(request.function)
    actual = request.payload_name
    if actual not in (expected, "empty" if expected is None else expected):
        raise ValueError(f"{request.function.name} expects payload '{expected}', got '{actual}'")
    return to_proto(request).SerializeToString()


def decode_request(data: bytes) -> Request:
    return from_proto(_parse(Request, data), Request)


def encode_response(response: Response) -> bytes:
    """Serialize a Response carrying only the result field of its function"""
    pb = PROTO[Response]()
    pb.function = response.function
    name = RESPONSE_RESULT[response.function]
    value = getattr(response, name)
    for f, wire in wire_fields(Response):
        if f.name == name and value is not None:
            _write(pb, name, wire, value)
    return pb.SerializeToString()


def decode_response(data: bytes, function: Function) -> Response:
    """
    Parse a reply to `function`. The status is always read; the result field is
    the one RESPONSE_RESULT names for `function`, at its zero value if the host
    left it out.
    """
    pb = _parse(Response, data)
    response = Response(function=function, status=pb.status)
    name = RESPONSE_RESULT[function]
    if name != "status":
        for f, wire in wire_fields(Response):
            if f.name == name:
                setattr(response, name, _read(pb, name, wire))
    return response


# ============================
# EVENT CHANNEL
# ============================

def encode_event(message: WxMsg) -> bytes:
    pb = PROTO[Response]()
    pb.wxmsg.SetInParent()
    pb.wxmsg.MergeFrom(to_proto(message))
    return pb.SerializeToString()


def decode_event(data: bytes) -> WxMsg:
    pb = _parse(Response, data)
    if pb.WhichOneof("msg") != "wxmsg":
        raise WcfResponseError(f"Event frame carries no message ({len(data)} bytes)")
    return from_proto(pb.wxmsg, WxMsg)


# ============================
# STANDALONE MESSAGES
# ============================

def encode_message(obj: Any) -> bytes:
    return to_proto(obj).SerializeToString()


def decode_message(cls: type[T], data: bytes) -> T:
    return from_proto(_parse(cls, data), cls)
