"""
API-level type definitions.

This module contains types and enums that belong to the API layer:
- Connection and receiving states
- Database field content types and their decoding
- Constants used by the API layer
"""

from enum import Enum, IntEnum
from typing import Optional

from ..exceptions import WcfResponseError


class ConnectionState(Enum):
    DISCONNECTED = 0
    CONNECTED = 1


class ReceivingState(Enum):
    DISABLED = 0
    ENABLED = 1


class DbFieldType(IntEnum):
    INTEGER = 1
    FLOAT = 2
    TEXT = 3
    BLOB = 4
    NULL = 5


def parse_db_field(type: int, content: bytes) -> Optional[int | float | str | bytes]:
    """Decode one field of a query result row according to its content type"""
    match type:
        case DbFieldType.INTEGER | DbFieldType.FLOAT:
            text = content.decode("utf-8", errors="replace")
            try:
                return int(text) if type == DbFieldType.INTEGER else float(text)
            except ValueError as e:
                raise WcfResponseError(f"Cannot parse {DbFieldType(type).name} field: {text!r}") from e
        case DbFieldType.BLOB:
            return bytes(content)
        case DbFieldType.NULL:
            return None
        case _:
            return content.decode("utf-8", errors="replace")


# API-level constants
class Const:
    """API-level constants"""
    # Contacts
    CHATROOM_SUFFIX = "@chatroom"
    PUBLIC_ACCOUNT_PREFIX = "gh_"
    # System accounts that show up in the contact list but are not friends
    NOT_FRIEND = {
        "fmessage": "朋友推荐消息",
        "medianote": "语音记事本",
        "floatbottle": "漂流瓶",
        "filehelper": "文件传输助手",
        "newsapp": "新闻",
    }

    # Database holding contacts and chat rooms
    CONTACT_DB = "MicroMsg.db"

    # Polling
    POLL_DELAY = 1.0  # seconds between attempts
    MEMBERSHIP_ATTEMPTS = 5
    AUDIO_ATTEMPTS = 3
    OCR_ATTEMPTS = 2
    DECRYPT_ATTEMPTS = 30

    # Friend requests
    DEFAULT_FRIEND_SCENE = 30  # added by QR code scan
