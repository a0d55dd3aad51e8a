"""
wcferry API-level models.

This module contains models that belong to the api layer:
- Message, the object handed to event listeners (wraps the wire-level WxMsg)
"""

import re

from ..io import WxMsg


class Message:
    """A received chat message"""

    def __init__(self, message: WxMsg):
        self._message = message

    @property
    def raw(self) -> WxMsg:
        return self._message

    @property
    def id(self) -> int:
        return self._message.id

    @property
    def type(self) -> int:
        return self._message.type

    @property
    def ts(self) -> int:
        return self._message.ts

    @property
    def is_self(self) -> bool:
        return self._message.is_self

    @property
    def is_group(self) -> bool:
        return self._message.is_group

    @property
    def room_id(self) -> str:
        return self._message.roomid

    @property
    def sender(self) -> str:
        return self._message.sender

    @property
    def content(self) -> str:
        return self._message.content

    @property
    def xml(self) -> str:
        return self._message.xml

    @property
    def thumb(self) -> str:
        return self._message.thumb

    @property
    def extra(self) -> str:
        return self._message.extra

    @property
    def sign(self) -> str:
        return self._message.sign

    def from_self(self) -> bool:
        return self._message.is_self

    def from_group(self) -> bool:
        return self._message.is_group

    def is_at(self, wxid: str) -> bool:
        """Mentioned: a group message, wxid in the @ list, and not an @all"""
        if not self.from_group():
            return False  # only group messages can mention
        if not re.search(rf"<atuserlist>.*({re.escape(wxid)}).*</atuserlist>", self.xml):
            return False
        if re.search(r"@(?:所有人|all|All)", self.content):
            return False
        return True

    def __repr__(self) -> str:
        origin = f"{self.sender}@{self.room_id}" if self.from_group() else self.sender
        return f"Message(id={self.id}, type={self.type}, from={origin}, content={self.content!r})"
