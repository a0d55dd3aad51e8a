import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from colorama import Fore, Style

from ..exceptions import WcfCommandError
from ..io import (
    WcfClient, ClientConst, Function, Request, Response, encode_request, decode_response, decode_message,
    TextMsg, PathMsg, XmlMsg, DbQuery, Verification, MemberMgmt, DecPath, Transfer,
    AttachMsg, AudioMsg, RichText, PatMsg, ForwardMsg,
    RpcContact, DbTable, UserInfo, RoomData,
)
from ..utils import default_cache_dir, sql_quote
from .files import FileSavable, acquire
from .polling import AudioPoll, DecryptPoll, MembershipPoll, OcrPoll
from .receiving import Listener, MessageReceiver
from .types import ConnectionState, ReceivingState, Const, parse_db_field

if TYPE_CHECKING:
    from ..config import WcfOptions

"""
===================================================================================
This module implements the wcferry command surface using wcferry.io.
===================================================================================
"""

Locator = str | bytes | FileSavable


def _join_wxids(wxids: str | list[str]) -> str:
    """Member lists go over the wire as one comma separated string without spaces"""
    if not isinstance(wxids, str): wxids = ",".join(wxids)
    return wxids.replace(" ", "")


class WcfProtocol:

    def __init__(self,
                 host: str = ClientConst.DEFAULT_HOST,
                 port: int = ClientConst.DEFAULT_PORT,
                 socket_options: Optional[dict] = None,
                 cache_dir: Optional[str] = None,
                 recv_pyq: bool = False,
                 logger: Optional[logging.Logger] = None,
                 print_traffic: bool = False,
                 client: Optional[WcfClient] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.print_traffic = print_traffic
        self.cache_dir = cache_dir or default_cache_dir()
        self.client = client or WcfClient(host, port, socket_options=socket_options, logger=self.logger)
        self.receiver = MessageReceiver(self.client, self._send_request, recv_pyq=recv_pyq, logger=self.logger)
        # One command in flight at a time on the command channel
        self._lock = asyncio.Lock()

    @classmethod
    def from_options(cls, options: "WcfOptions", logger: Optional[logging.Logger] = None) -> "WcfProtocol":
        return cls(host=options.host,
                   port=options.port,
                   socket_options=options.socket_options,
                   cache_dir=options.cache_dir,
                   recv_pyq=options.recv_pyq,
                   logger=logger,
                   print_traffic=options.print_traffic)

    async def __aenter__(self):
        """Async context manager entry"""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.stop()

    async def start(self):
        """Connect to the host, then resume message receiving if anyone is listening"""
        await self.client.connect()
        await self.receiver.on_connected()

    async def stop(self):
        """Tell the host to stop pushing, then close both channels"""
        try:
            await self.receiver.force_disable()
        finally:
            await self.client.close()

    @property
    def connected(self) -> bool:
        return self.client.is_connected()

    @property
    def connection_state(self) -> ConnectionState:
        return ConnectionState.CONNECTED if self.client.is_connected() else ConnectionState.DISCONNECTED

    @property
    def msg_receiving(self) -> bool:
        return self.receiver.state == ReceivingState.ENABLED

    @property
    def recv_pyq(self) -> bool:
        return self.receiver.recv_pyq

    async def set_recv_pyq(self, flag: bool):
        """Include moments (pyq) in the pushed messages. Re-enables receiving if it is on."""
        await self.receiver.set_recv_pyq(flag)

    async def on(self, listener: Listener) -> Callable[[], Awaitable[None]]:
        """Register a message listener. Returns an async unsubscribe function."""
        await self.receiver.add_listener(listener)

        async def unsubscribe():
            await self.receiver.remove_listener(listener)
        return unsubscribe

    # ============================
    # REQUEST SENDING
    # ============================

    async def _send_request(self, request: Request) -> Response:
        data = encode_request(request)
        async with self._lock:
            sent = time.time()
            reply = await self.client.send_command(data)
            rtt_ms = (time.time() - sent) * 1000
        response = decode_response(reply, request.function)

        # print_traffic
        if self.print_traffic:
            print(Fore.MAGENTA + f"REQUEST: {request.function.name} [{', '.join(f'0x{b:02X}' for b in data)}]  "
                + Fore.WHITE + Style.DIM + f"RTT: {rtt_ms:.0f}ms".ljust(10)
                + Style.BRIGHT + Fore.CYAN + f"  RESPONSE: [{', '.join(f'0x{b:02X}' for b in reply)}]"
                + Style.RESET_ALL)
        self.logger.debug(f"{request.function.name} -> status {response.status} in {rtt_ms:.0f}ms")
        return response

    async def _status(self, function: Function, **payload) -> int:
        response = await self._send_request(Request(function=function, **payload))
        return response.status

    async def _send_staged(self, function: Function, locator: Locator, receiver: str) -> int:
        staged = await acquire(locator, self.cache_dir)
        try:
            return await self._status(function, path_msg=PathMsg(path=staged.path, receiver=receiver))
        finally:
            staged.discard()

    # ============================
    # ACCOUNT
    # ============================

    async def is_login(self) -> bool:
        """Whether the host account is logged in"""
        return await self._status(Function.IS_LOGIN) == 1

    async def get_self_wxid(self) -> str:
        response = await self._send_request(Request(function=Function.GET_SELF_WXID))
        return response.string

    async def get_user_info(self) -> UserInfo:
        response = await self._send_request(Request(function=Function.GET_USER_INFO))
        return response.user_info

    async def get_msg_types(self) -> dict[int, str]:
        """Message type numbers and their names"""
        response = await self._send_request(Request(function=Function.GET_MSG_TYPES))
        return response.types.types

    # ============================
    # CONTACTS
    # ============================

    async def get_contacts(self) -> list[RpcContact]:
        response = await self._send_request(Request(function=Function.GET_CONTACTS))
        return response.contacts.contacts

    async def get_contact(self, wxid: str) -> Optional[RpcContact]:
        """Look up one contact. Returns None if the host doesn't know it."""
        response = await self._send_request(Request(function=Function.GET_CONTACT_INFO, string=wxid))
        contacts = response.contacts.contacts
        return contacts[0] if contacts else None

    async def get_chatrooms(self) -> list[RpcContact]:
        contacts = await self.get_contacts()
        return [c for c in contacts if c.wxid.endswith(Const.CHATROOM_SUFFIX)]

    async def get_friends(self) -> list[RpcContact]:
        """Contacts that are people: no chat rooms, public accounts or system accounts"""
        contacts = await self.get_contacts()
        return [c for c in contacts
                if not c.wxid.endswith(Const.CHATROOM_SUFFIX)
                and not c.wxid.startswith(Const.PUBLIC_ACCOUNT_PREFIX)
                and c.wxid not in Const.NOT_FRIEND]

    async def accept_new_friend(self, v3: str, v4: str, scene: int = Const.DEFAULT_FRIEND_SCENE) -> int:
        """Accept a friend request. Returns 1 on success."""
        return await self._status(Function.ACCEPT_FRIEND, verification=Verification(v3=v3, v4=v4, scene=scene))

    async def receive_transfer(self, wxid: str, transferid: str, transactionid: str) -> int:
        """Accept a money transfer. Returns 1 on success."""
        return await self._status(Function.RECV_TRANSFER, transfer=Transfer(wxid=wxid, tfid=transferid, taid=transactionid))

    # ============================
    # DATABASE
    # ============================

    async def get_db_names(self) -> list[str]:
        response = await self._send_request(Request(function=Function.GET_DB_NAMES))
        return response.dbs.names

    async def get_db_tables(self, db: str) -> list[DbTable]:
        response = await self._send_request(Request(function=Function.GET_DB_TABLES, string=db))
        return response.tables.tables

    async def query_sql(self, db: str, sql: str) -> list[dict[str, Any]]:
        """Run a query in one of the host's databases. Each row becomes a dict of column -> decoded value."""
        response = await self._send_request(Request(function=Function.EXEC_DB_QUERY, db_query=DbQuery(db=db, sql=sql)))
        return [{f.column: parse_db_field(f.type, f.content) for f in row.fields} for row in response.rows.rows]

    # ============================
    # CHAT ROOMS
    # ============================

    async def _room_data(self, roomid: str) -> Optional[RoomData]:
        rows = await self.query_sql(Const.CONTACT_DB,
                                    f"SELECT RoomData FROM ChatRoom WHERE ChatRoomName = {sql_quote(roomid)};")
        if not rows: return None
        return decode_message(RoomData, rows[0].get("RoomData") or b"")

    async def get_chatroom_members(self,
                                   roomid: str,
                                   attempts: int = Const.MEMBERSHIP_ATTEMPTS,
                                   cancel: Optional[asyncio.Event] = None) -> dict[str, str]:
        """Members of a chat room as {wxid: display name}. Returns {} if the room never shows up."""
        async def probe() -> Optional[dict[str, str]]:
            room = await self._room_data(roomid)
            if room is None: return None
            users = await self.query_sql(Const.CONTACT_DB, "SELECT UserName, NickName FROM Contact;")
            nicknames = {u.get("UserName"): u.get("NickName") for u in users}
            return {m.wxid: m.name or nicknames.get(m.wxid) or "" for m in room.members}

        return await MembershipPoll(attempts=attempts, cancel=cancel, logger=self.logger).run(probe)

    async def get_alias_in_chatroom(self, wxid: str, roomid: str) -> Optional[str]:
        """The name wxid goes by in a chat room, or None if the contact or room is unknown"""
        rows = await self.query_sql(Const.CONTACT_DB,
                                    f"SELECT NickName FROM Contact WHERE UserName = {sql_quote(wxid)};")
        nickname = rows[0].get("NickName") if rows else None
        if not nickname: return None
        room = await self._room_data(roomid)
        if room is None: return None
        for member in room.members:
            if member.wxid == wxid:
                return member.name or nickname
        return None

    async def invite_chatroom_members(self, roomid: str, wxids: str | list[str]) -> int:
        """Invite members into a chat room. Returns 1 on success."""
        return await self._status(Function.INV_ROOM_MEMBERS, member_mgmt=MemberMgmt(roomid=roomid, wxids=_join_wxids(wxids)))

    async def add_chatroom_members(self, roomid: str, wxids: str | list[str]) -> int:
        """Add members to a chat room. Returns 1 on success."""
        return await self._status(Function.ADD_ROOM_MEMBERS, member_mgmt=MemberMgmt(roomid=roomid, wxids=_join_wxids(wxids)))

    async def del_chatroom_members(self, roomid: str, wxids: str | list[str]) -> int:
        """Remove members from a chat room. Returns 1 on success."""
        return await self._status(Function.DEL_ROOM_MEMBERS, member_mgmt=MemberMgmt(roomid=roomid, wxids=_join_wxids(wxids)))

    # ============================
    # SENDING
    # ============================

    async def send_text(self, msg: str, receiver: str, aters: str | list[str] = "") -> int:
        """Send a text message. aters are the wxids to @ in a group (the text must contain the @name). Returns 0 on success."""
        if not isinstance(aters, str): aters = ",".join(aters)
        return await self._status(Function.SEND_TXT, text_msg=TextMsg(msg=msg, receiver=receiver, aters=aters))

    async def send_image(self, image: Locator, receiver: str) -> int:
        """Send an image from a path, URL, data URI or bytes. Returns 0 on success."""
        return await self._send_staged(Function.SEND_IMG, image, receiver)

    async def send_file(self, file: Locator, receiver: str) -> int:
        """Send a file from a path, URL, data URI or bytes. Returns 0 on success."""
        return await self._send_staged(Function.SEND_FILE, file, receiver)

    async def send_emotion(self, emotion: Locator, receiver: str) -> int:
        """Send an emoticon (gif) from a path, URL, data URI or bytes. Returns 0 on success."""
        return await self._send_staged(Function.SEND_EMOTION, emotion, receiver)

    async def send_xml(self, receiver: str, content: str, type: int, path: Optional[str] = None) -> int:
        return await self._status(Function.SEND_XML,
                                  xml_msg=XmlMsg(receiver=receiver, content=content, path=path or "", type=type))

    async def send_rich_text(self,
                             receiver: str,
                             name: str,
                             account: str,
                             title: str,
                             digest: str,
                             url: str,
                             thumburl: str) -> int:
        """Send a link card. name/account identify the public account shown at the bottom of the card."""
        rich_text = RichText(name=name, account=account, title=title, digest=digest,
                             url=url, thumburl=thumburl, receiver=receiver)
        return await self._status(Function.SEND_RICH_TXT, rich_text=rich_text)

    async def send_pat_msg(self, roomid: str, wxid: str) -> int:
        """Pat someone in a chat room. Returns 1 on success."""
        return await self._status(Function.SEND_PAT_MSG, pat_msg=PatMsg(roomid=roomid, wxid=wxid))

    async def forward_msg(self, id: int, receiver: str) -> int:
        """Forward a message by id. Returns 1 on success."""
        return await self._status(Function.FORWARD_MSG, forward_msg=ForwardMsg(id=id, receiver=receiver))

    async def revoke_msg(self, id: int) -> int:
        """Revoke a sent message. Returns 1 on success."""
        return await self._status(Function.REVOKE_MSG, ui64=id)

    async def refresh_pyq(self, id: int = 0) -> int:
        """Refresh moments, starting at id (0 = latest). Returns 1 on success."""
        return await self._status(Function.REFRESH_PYQ, ui64=id)

    # ============================
    # ATTACHMENTS
    # ============================

    async def download_attach(self, id: int, thumb: str = "", extra: str = "") -> int:
        """Ask the host to download a message attachment. Returns 0 on success."""
        return await self._status(Function.DOWNLOAD_ATTACH, attach_msg=AttachMsg(id=id, thumb=thumb, extra=extra))

    async def decrypt_image(self, src: str, dir: str) -> str:
        """Decrypt a downloaded image into dir. Returns the output path, or "" if not ready."""
        response = await self._send_request(Request(function=Function.DECRYPT_IMAGE, dec_path=DecPath(src=src, dst=dir)))
        return response.string

    async def download_image(self,
                             id: int,
                             extra: str,
                             dir: str,
                             attempts: int = Const.DECRYPT_ATTEMPTS,
                             cancel: Optional[asyncio.Event] = None) -> str:
        """Download and decrypt the image of a received message. Returns the path of the decrypted image."""
        status = await self.download_attach(id, "", extra)
        if status != 0:
            raise WcfCommandError("Failed to download attach", status)

        async def probe() -> str:
            return await self.decrypt_image(extra, dir)

        return await DecryptPoll(attempts=attempts, cancel=cancel, logger=self.logger).run(probe)

    async def get_audio_msg(self,
                            id: int,
                            dir: str,
                            attempts: int = Const.AUDIO_ATTEMPTS,
                            cancel: Optional[asyncio.Event] = None) -> str:
        """Save a voice message as MP3 in dir. Returns the path."""
        async def probe() -> str:
            response = await self._send_request(Request(function=Function.GET_AUDIO_MSG, audio_msg=AudioMsg(id=id, dir=dir)))
            return response.string

        return await AudioPoll(attempts=attempts, cancel=cancel, logger=self.logger).run(probe)

    async def get_ocr_result(self,
                             extra: str,
                             attempts: int = Const.OCR_ATTEMPTS,
                             cancel: Optional[asyncio.Event] = None) -> str:
        """OCR the image at extra (a received image's local path). Returns the recognised text."""
        async def probe() -> Optional[str]:
            response = await self._send_request(Request(function=Function.EXEC_OCR, string=extra))
            ocr = response.ocr
            if ocr.status == 0 and ocr.result: return ocr.result
            return None

        return await OcrPoll(attempts=attempts, cancel=cancel, logger=self.logger).run(probe)
