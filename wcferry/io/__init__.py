"""
Wire-level protocol implementation.

This module contains the lowest-level communication components:
- WcfClient, WcfListener - Raw command and event channels over nng
- Request, Response, WxMsg and the payload types - The wire schema
- encode/decode helpers - The protobuf codec
"""

from .command import WcfClient, ClientConst
from .event import WcfListener
from .schema import (
    Function, Request, Response, REQUEST_PAYLOAD, RESPONSE_RESULT,
    Empty, TextMsg, PathMsg, XmlMsg, DbQuery, Verification, MemberMgmt, DecPath, Transfer,
    AttachMsg, AudioMsg, RichText, PatMsg, ForwardMsg,
    WxMsg, MsgTypes, RpcContact, RpcContacts, DbNames, DbTable, DbTables, DbField, DbRow, DbRows,
    UserInfo, OcrMsg, RoomMember, RoomData,
)
from .codec import (
    encode_request, decode_request, encode_response, decode_response,
    encode_event, decode_event, encode_message, decode_message,
)

__all__ = [
    "WcfClient",
    "WcfListener",
    "ClientConst",
    "Function",
    "Request",
    "Response",
    "REQUEST_PAYLOAD",
    "RESPONSE_RESULT",
    "Empty",
    "TextMsg",
    "PathMsg",
    "XmlMsg",
    "DbQuery",
    "Verification",
    "MemberMgmt",
    "DecPath",
    "Transfer",
    "AttachMsg",
    "AudioMsg",
    "RichText",
    "PatMsg",
    "ForwardMsg",
    "WxMsg",
    "MsgTypes",
    "RpcContact",
    "RpcContacts",
    "DbNames",
    "DbTable",
    "DbTables",
    "DbField",
    "DbRow",
    "DbRows",
    "UserInfo",
    "OcrMsg",
    "RoomMember",
    "RoomData",
    "encode_request",
    "decode_request",
    "encode_response",
    "decode_response",
    "encode_event",
    "decode_event",
    "encode_message",
    "decode_message",
]
