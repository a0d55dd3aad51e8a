"""
Bridge between a remote caller (a websocket or similar server) and WcfProtocol.

The server owns the transport and the request ids; this module only maps
method names onto WcfProtocol calls and wraps the outcome:

    {"result": <json-ready value>}
    {"error": {"message": "...", "code": -1}}   command failed or unknown method
    {"error": {"message": "...", "code": -2}}   subscription failed

Example usage:
async def handle(request: dict) -> dict:
    reply = await bridge.invoke(request["method"], request.get("params"))
    return {"id": request["id"], **reply}
"""

import base64
import dataclasses
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from ..api import Message, WcfProtocol

EventSink = Callable[[dict], Any]


def to_jsonable(value: Any) -> Any:
    """Dataclasses become dicts, bytes become base64 text, containers are converted recursively"""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(value).decode("ascii")
    return value


class WcfBridge:

    # WcfProtocol methods a remote caller may invoke
    ALLOWED_METHODS: tuple[str, ...] = (
        "accept_new_friend",
        "add_chatroom_members",
        "query_sql",
        "decrypt_image",
        "del_chatroom_members",
        "download_attach",
        "download_image",
        "forward_msg",
        "get_alias_in_chatroom",
        "get_audio_msg",
        "get_chatroom_members",
        "get_chatrooms",
        "get_contact",
        "get_contacts",
        "get_db_names",
        "get_db_tables",
        "get_friends",
        "get_msg_types",
        "get_ocr_result",
        "get_self_wxid",
        "get_user_info",
        "invite_chatroom_members",
        "is_login",
        "receive_transfer",
        "refresh_pyq",
        "revoke_msg",
        "send_file",
        "send_image",
        "send_pat_msg",
        "send_rich_text",
        "send_text",
    )

    def __init__(self,
                 protocol: WcfProtocol,
                 sink: Optional[EventSink] = None,
                 logger: Optional[logging.Logger] = None):
        self.protocol = protocol
        self.sink = sink
        self.logger = logger or logging.getLogger(__name__)
        self._unsubscribe: Optional[Callable[[], Awaitable[None]]] = None

    @staticmethod
    def _error(message: str, code: int) -> dict:
        return {"error": {"message": message, "code": code}}

    async def invoke(self, name: str, args: Optional[list | dict] = None) -> dict:
        """Run one named call. Never raises; failures come back as an error envelope."""
        self.logger.debug(f"-> {name} {args!r}")
        match name:
            case "recv_pyq":
                if isinstance(args, dict): flag = bool(args.get("flag"))
                else: flag = bool(args[0]) if args else False
                try:
                    await self.protocol.set_recv_pyq(flag)
                except Exception as e:
                    return self._error(f"Execute {name} failed: {e}", -1)
                return {"result": True}
            case "message.enable":
                return await self._enable_events()
            case "message.disable":
                return await self._disable_events()

        if name not in self.ALLOWED_METHODS:
            return self._error(f"Unknown method: {name}", -1)

        method = getattr(self.protocol, name)
        try:
            if isinstance(args, dict):
                result = await method(**args)
            else:
                result = await method(*(args or []))
        except Exception as e:
            self.logger.warning(f"Execute {name} failed: {e}")
            return self._error(f"Execute {name} failed: {e}", -1)
        reply = {"result": to_jsonable(result)}
        self.logger.debug(f"<- {name} {reply!r}")
        return reply

    async def subscribe_events(self, callback: EventSink) -> Callable[[], Awaitable[None]]:
        """Forward every received message to callback as {"type": "message", "data": {...}}"""
        async def forward(message: Message):
            result = callback({"type": "message", "data": to_jsonable(message.raw)})
            if inspect.isawaitable(result):
                await result
        return await self.protocol.on(forward)

    async def _enable_events(self) -> dict:
        if self.sink is None:
            return self._error("No event sink configured", -2)
        try:
            if self._unsubscribe is None:
                self._unsubscribe = await self.subscribe_events(self.sink)
        except Exception as e:
            return self._error(f"{e}", -2)
        return {"result": True}

    async def _disable_events(self) -> dict:
        try:
            if self._unsubscribe is not None:
                unsubscribe, self._unsubscribe = self._unsubscribe, None
                await unsubscribe()
        except Exception as e:
            return self._error(f"{e}", -2)
        return {"result": True}
