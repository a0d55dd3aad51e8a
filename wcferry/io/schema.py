"""
wcferry wire schema.

The host speaks protobuf (proto3). Every message is declared once here as a
dataclass; each field carries its wire number and kind in the dataclass field
metadata, and the protobuf descriptors are built from that metadata at import
time. The codec (codec.py) converts between these dataclasses and the
generated protobuf classes.

Terms:
- Request = A message sent by the Client on the command channel
- Response = The single reply to a Request; also the envelope of pushed events
- Function = The host operation a Request targets
"""

from dataclasses import dataclass, field, fields, Field
from enum import IntEnum
from typing import Any, Optional

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory


PACKAGE = "wcf"


class Function(IntEnum):
    """Host operations, one per capability"""
    RESERVED = 0x00
    IS_LOGIN = 0x01
    GET_SELF_WXID = 0x10
    GET_MSG_TYPES = 0x11
    GET_CONTACTS = 0x12
    GET_DB_NAMES = 0x13
    GET_DB_TABLES = 0x14
    GET_USER_INFO = 0x15
    GET_AUDIO_MSG = 0x16
    SEND_TXT = 0x20
    SEND_IMG = 0x21
    SEND_FILE = 0x22
    SEND_XML = 0x23
    SEND_EMOTION = 0x24
    SEND_RICH_TXT = 0x25
    SEND_PAT_MSG = 0x26
    FORWARD_MSG = 0x27
    ENABLE_RECV_TXT = 0x30
    DISABLE_RECV_TXT = 0x40
    EXEC_DB_QUERY = 0x50
    ACCEPT_FRIEND = 0x51
    RECV_TRANSFER = 0x52
    REFRESH_PYQ = 0x53
    DOWNLOAD_ATTACH = 0x54
    GET_CONTACT_INFO = 0x55
    REVOKE_MSG = 0x56
    DECRYPT_IMAGE = 0x60
    EXEC_OCR = 0x61
    ADD_ROOM_MEMBERS = 0x70
    DEL_ROOM_MEMBERS = 0x71
    INV_ROOM_MEMBERS = 0x72


@dataclass(frozen=True)
class WireField:
    """Wire description of one dataclass field"""
    number: int
    kind: str                       # string, bytes, bool, int32, uint32, int64, uint64, enum, message, map
    message: Optional[type] = None  # message class for kind == "message"
    repeated: bool = False
    oneof: Optional[str] = None
    key: Optional[str] = None       # map key kind
    value: Optional[str] = None     # map value kind


_ZERO = {
    "string": "",
    "bytes": b"",
    "bool": False,
    "int32": 0,
    "uint32": 0,
    "int64": 0,
    "uint64": 0,
}


def scalar(number: int, kind: str) -> Any:
    return field(default=_ZERO[kind], metadata={"wire": WireField(number, kind)})

def repeated(number: int, kind: str, message: Optional[type] = None) -> Any:
    return field(default_factory=list, metadata={"wire": WireField(number, kind, message=message, repeated=True)})

def mapping(number: int, key: str, value: str) -> Any:
    return field(default_factory=dict, metadata={"wire": WireField(number, "map", key=key, value=value)})

def choice(number: int, kind: str, message: Optional[type] = None, group: str = "msg", default: Any = None) -> Any:
    """A member of a oneof group. Unset members are None unless a default is given."""
    return field(default=default, metadata={"wire": WireField(number, kind, message=message, oneof=group)})

def wire_fields(cls: type) -> list[tuple[Field, WireField]]:
    return [(f, f.metadata["wire"]) for f in fields(cls)]


# ============================
# PAYLOADS (request side)
# ============================

@dataclass
class Empty:
    pass

@dataclass
class TextMsg:
    msg: str = scalar(1, "string")
    receiver: str = scalar(2, "string")
    aters: str = scalar(3, "string")

@dataclass
class PathMsg:
    path: str = scalar(1, "string")
    receiver: str = scalar(2, "string")

@dataclass
class XmlMsg:
    receiver: str = scalar(1, "string")
    content: str = scalar(2, "string")
    path: str = scalar(3, "string")
    type: int = scalar(4, "int32")

@dataclass
class DbQuery:
    db: str = scalar(1, "string")
    sql: str = scalar(2, "string")

@dataclass
class Verification:
    v3: str = scalar(1, "string")
    v4: str = scalar(2, "string")
    scene: int = scalar(3, "int32")

@dataclass
class MemberMgmt:
    roomid: str = scalar(1, "string")
    wxids: str = scalar(2, "string")  # comma separated

@dataclass
class DecPath:
    src: str = scalar(1, "string")
    dst: str = scalar(2, "string")

@dataclass
class Transfer:
    wxid: str = scalar(1, "string")
    tfid: str = scalar(2, "string")
    taid: str = scalar(3, "string")

@dataclass
class AttachMsg:
    id: int = scalar(1, "uint64")
    thumb: str = scalar(2, "string")
    extra: str = scalar(3, "string")

@dataclass
class AudioMsg:
    id: int = scalar(1, "uint64")
    dir: str = scalar(2, "string")

@dataclass
class RichText:
    name: str = scalar(1, "string")
    account: str = scalar(2, "string")
    title: str = scalar(3, "string")
    digest: str = scalar(4, "string")
    url: str = scalar(5, "string")
    thumburl: str = scalar(6, "string")
    receiver: str = scalar(7, "string")

@dataclass
class PatMsg:
    roomid: str = scalar(1, "string")
    wxid: str = scalar(2, "string")

@dataclass
class ForwardMsg:
    id: int = scalar(1, "uint64")
    receiver: str = scalar(2, "string")


# ============================
# RESULTS (response side)
# ============================

@dataclass(frozen=True)
class WxMsg:
    """A pushed message. Immutable once decoded."""
    is_self: bool = scalar(1, "bool")
    is_group: bool = scalar(2, "bool")
    id: int = scalar(3, "uint64")
    type: int = scalar(4, "uint32")
    ts: int = scalar(5, "uint32")
    roomid: str = scalar(6, "string")
    content: str = scalar(7, "string")
    sender: str = scalar(8, "string")
    sign: str = scalar(9, "string")
    thumb: str = scalar(10, "string")
    extra: str = scalar(11, "string")
    xml: str = scalar(12, "string")

@dataclass
class MsgTypes:
    types: dict[int, str] = mapping(1, "int32", "string")

@dataclass
class RpcContact:
    wxid: str = scalar(1, "string")
    code: str = scalar(2, "string")
    remark: str = scalar(3, "string")
    name: str = scalar(4, "string")
    country: str = scalar(5, "string")
    province: str = scalar(6, "string")
    city: str = scalar(7, "string")
    gender: int = scalar(8, "int32")

@dataclass
class RpcContacts:
    contacts: list[RpcContact] = repeated(1, "message", RpcContact)

@dataclass
class DbNames:
    names: list[str] = repeated(1, "string")

@dataclass
class DbTable:
    name: str = scalar(1, "string")
    sql: str = scalar(2, "string")

@dataclass
class DbTables:
    tables: list[DbTable] = repeated(1, "message", DbTable)

@dataclass
class DbField:
    type: int = scalar(1, "int32")
    column: str = scalar(2, "string")
    content: bytes = scalar(3, "bytes")

@dataclass
class DbRow:
    fields: list[DbField] = repeated(1, "message", DbField)

@dataclass
class DbRows:
    rows: list[DbRow] = repeated(1, "message", DbRow)

@dataclass
class UserInfo:
    wxid: str = scalar(1, "string")
    name: str = scalar(2, "string")
    mobile: str = scalar(3, "string")
    home: str = scalar(4, "string")

@dataclass
class OcrMsg:
    status: int = scalar(1, "int32")
    result: str = scalar(2, "string")


# Stored by the host in the ChatRoom.RoomData column
@dataclass
class RoomMember:
    wxid: str = scalar(1, "string")
    name: str = scalar(2, "string")
    state: int = scalar(3, "int32")

@dataclass
class RoomData:
    members: list[RoomMember] = repeated(1, "message", RoomMember)


# ============================
# ENVELOPES
# ============================

@dataclass
class Request:
    """A command for the host. At most one payload field may be populated."""
    function: Function = field(default=Function.RESERVED, metadata={"wire": WireField(1, "enum")})
    empty: Optional[Empty] = choice(2, "message", Empty)
    string: Optional[str] = choice(3, "string")
    text_msg: Optional[TextMsg] = choice(4, "message", TextMsg)
    path_msg: Optional[PathMsg] = choice(5, "message", PathMsg)
    db_query: Optional[DbQuery] = choice(6, "message", DbQuery)
    verification: Optional[Verification] = choice(7, "message", Verification)
    member_mgmt: Optional[MemberMgmt] = choice(8, "message", MemberMgmt)
    xml_msg: Optional[XmlMsg] = choice(9, "message", XmlMsg)
    dec_path: Optional[DecPath] = choice(10, "message", DecPath)
    transfer: Optional[Transfer] = choice(11, "message", Transfer)
    ui64: Optional[int] = choice(12, "uint64")
    flag: Optional[bool] = choice(13, "bool")
    attach_msg: Optional[AttachMsg] = choice(14, "message", AttachMsg)
    audio_msg: Optional[AudioMsg] = choice(15, "message", AudioMsg)
    rich_text: Optional[RichText] = choice(16, "message", RichText)
    pat_msg: Optional[PatMsg] = choice(17, "message", PatMsg)
    forward_msg: Optional[ForwardMsg] = choice(18, "message", ForwardMsg)

    def __post_init__(self):
        self.function = Function(self.function)
        populated = [f.name for f, wire in wire_fields(self) if wire.oneof and getattr(self, f.name) is not None]
        if len(populated) > 1:
            raise ValueError(f"Request carries more than one payload: {', '.join(populated)}")

    @property
    def payload_name(self) -> Optional[str]:
        for f, wire in wire_fields(self):
            if wire.oneof and getattr(self, f.name) is not None:
                return f.name
        return None


@dataclass
class Response:
    """
    A reply from the host. Which result field is meaningful depends on the
    function that was sent (see RESPONSE_RESULT), never on what the bytes carry.
    """
    function: Function = field(default=Function.RESERVED, metadata={"wire": WireField(1, "enum")})
    status: int = choice(2, "int32", default=0)
    string: str = choice(3, "string", default="")
    wxmsg: Optional[WxMsg] = choice(4, "message", WxMsg)
    types: Optional[MsgTypes] = choice(5, "message", MsgTypes)
    contacts: Optional[RpcContacts] = choice(6, "message", RpcContacts)
    dbs: Optional[DbNames] = choice(7, "message", DbNames)
    tables: Optional[DbTables] = choice(8, "message", DbTables)
    rows: Optional[DbRows] = choice(9, "message", DbRows)
    user_info: Optional[UserInfo] = choice(10, "message", UserInfo)
    ocr: Optional[OcrMsg] = choice(11, "message", OcrMsg)

    @property
    def result(self) -> Any:
        return getattr(self, RESPONSE_RESULT[self.function])


# Payload field each function expects (None = no payload)
REQUEST_PAYLOAD: dict[Function, Optional[str]] = {
    Function.IS_LOGIN: None,
    Function.GET_SELF_WXID: None,
    Function.GET_MSG_TYPES: None,
    Function.GET_CONTACTS: None,
    Function.GET_DB_NAMES: None,
    Function.GET_DB_TABLES: "string",
    Function.GET_USER_INFO: None,
    Function.GET_AUDIO_MSG: "audio_msg",
    Function.SEND_TXT: "text_msg",
    Function.SEND_IMG: "path_msg",
    Function.SEND_FILE: "path_msg",
    Function.SEND_XML: "xml_msg",
    Function.SEND_EMOTION: "path_msg",
    Function.SEND_RICH_TXT: "rich_text",
    Function.SEND_PAT_MSG: "pat_msg",
    Function.FORWARD_MSG: "forward_msg",
    Function.ENABLE_RECV_TXT: "flag",
    Function.DISABLE_RECV_TXT: None,
    Function.EXEC_DB_QUERY: "db_query",
    Function.ACCEPT_FRIEND: "verification",
    Function.RECV_TRANSFER: "transfer",
    Function.REFRESH_PYQ: "ui64",
    Function.DOWNLOAD_ATTACH: "attach_msg",
    Function.GET_CONTACT_INFO: "string",
    Function.REVOKE_MSG: "ui64",
    Function.DECRYPT_IMAGE: "dec_path",
    Function.EXEC_OCR: "string",
    Function.ADD_ROOM_MEMBERS: "member_mgmt",
    Function.DEL_ROOM_MEMBERS: "member_mgmt",
    Function.INV_ROOM_MEMBERS: "member_mgmt",
}

# Result field each function answers with
RESPONSE_RESULT: dict[Function, str] = {
    Function.RESERVED: "status",
    Function.IS_LOGIN: "status",
    Function.GET_SELF_WXID: "string",
    Function.GET_MSG_TYPES: "types",
    Function.GET_CONTACTS: "contacts",
    Function.GET_DB_NAMES: "dbs",
    Function.GET_DB_TABLES: "tables",
    Function.GET_USER_INFO: "user_info",
    Function.GET_AUDIO_MSG: "string",
    Function.SEND_TXT: "status",
    Function.SEND_IMG: "status",
    Function.SEND_FILE: "status",
    Function.SEND_XML: "status",
    Function.SEND_EMOTION: "status",
    Function.SEND_RICH_TXT: "status",
    Function.SEND_PAT_MSG: "status",
    Function.FORWARD_MSG: "status",
    Function.ENABLE_RECV_TXT: "status",
    Function.DISABLE_RECV_TXT: "status",
    Function.EXEC_DB_QUERY: "rows",
    Function.ACCEPT_FRIEND: "status",
    Function.RECV_TRANSFER: "status",
    Function.REFRESH_PYQ: "status",
    Function.DOWNLOAD_ATTACH: "status",
    Function.GET_CONTACT_INFO: "contacts",
    Function.REVOKE_MSG: "status",
    Function.DECRYPT_IMAGE: "string",
    Function.EXEC_OCR: "ocr",
    Function.ADD_ROOM_MEMBERS: "status",
    Function.DEL_ROOM_MEMBERS: "status",
    Function.INV_ROOM_MEMBERS: "status",
}


# ============================
# DESCRIPTORS
# ============================

MESSAGES: tuple[type, ...] = (
    Empty, TextMsg, PathMsg, XmlMsg, DbQuery, Verification, MemberMgmt, DecPath, Transfer,
    AttachMsg, AudioMsg, RichText, PatMsg, ForwardMsg,
    WxMsg, MsgTypes, RpcContact, RpcContacts, DbNames, DbTable, DbTables, DbField, DbRow, DbRows,
    UserInfo, OcrMsg, RoomMember, RoomData,
    Request, Response,
)

_FDP = descriptor_pb2.FieldDescriptorProto
_PROTO_TYPES = {
    "string": _FDP.TYPE_STRING,
    "bytes": _FDP.TYPE_BYTES,
    "bool": _FDP.TYPE_BOOL,
    "int32": _FDP.TYPE_INT32,
    "uint32": _FDP.TYPE_UINT32,
    "int64": _FDP.TYPE_INT64,
    "uint64": _FDP.TYPE_UINT64,
    "enum": _FDP.TYPE_ENUM,
    "message": _FDP.TYPE_MESSAGE,
}


def _describe(file: descriptor_pb2.FileDescriptorProto, cls: type) -> None:
    msg = file.message_type.add(name=cls.__name__)
    groups: list[str] = []
    for f, wire in wire_fields(cls):
        if wire.kind == "map":
            # Map entry naming is fixed by protobuf: CamelCase(field) + "Entry"
            entry = msg.nested_type.add(name="".join(p.capitalize() for p in f.name.split("_")) + "Entry")
            entry.options.map_entry = True
            entry.field.add(name="key", number=1, type=_PROTO_TYPES[wire.key], label=_FDP.LABEL_OPTIONAL)
            entry.field.add(name="value", number=2, type=_PROTO_TYPES[wire.value], label=_FDP.LABEL_OPTIONAL)
            msg.field.add(name=f.name, number=wire.number, type=_FDP.TYPE_MESSAGE, label=_FDP.LABEL_REPEATED,
                          type_name=f".{PACKAGE}.{cls.__name__}.{entry.name}")
            continue
        proto = msg.field.add(name=f.name, number=wire.number, type=_PROTO_TYPES[wire.kind],
                              label=_FDP.LABEL_REPEATED if wire.repeated else _FDP.LABEL_OPTIONAL)
        match wire.kind:
            case "message":
                proto.type_name = f".{PACKAGE}.{wire.message.__name__}"
            case "enum":
                proto.type_name = f".{PACKAGE}.Functions"
        if wire.oneof:
            if wire.oneof not in groups:
                groups.append(wire.oneof)
                msg.oneof_decl.add(name=wire.oneof)
            proto.oneof_index = groups.index(wire.oneof)


def _build() -> dict[type, type]:
    file = descriptor_pb2.FileDescriptorProto(name="wcf.proto", package=PACKAGE, syntax="proto3")
    functions = file.enum_type.add(name="Functions")
    for func in Function:
        functions.value.add(name=f"FUNC_{func.name}", number=func.value)
    for cls in MESSAGES:
        _describe(file, cls)

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(file.SerializeToString())
    return {
        cls: message_factory.GetMessageClass(pool.FindMessageTypeByName(f"{PACKAGE}.{cls.__name__}"))
        for cls in MESSAGES
    }


# dataclass -> generated protobuf class
PROTO: dict[type, type] = _build()
