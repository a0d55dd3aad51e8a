"""
wcferry Python Library

An asyncio client for a running wcferry automation host.

This library provides three distinct layers of abstraction:

1. **io**: Wire-level protocol implementation (nng sockets, protobuf codec)
2. **api**: Host commands and message receiving using io
3. **interface**: Bridge for servers that expose the api to remote callers

Example usage:
    import wcferry

    async def on_message(msg: wcferry.Message):
        if msg.from_group() and msg.is_at(wxid):
            await wcf.send_text("pong", msg.room_id)

    async with wcferry.WcfProtocol(host="127.0.0.1", port=10086) as wcf:
        wxid = await wcf.get_self_wxid()
        unsubscribe = await wcf.on(on_message)
        ...
        await unsubscribe()
"""

# Main client
from .api.protocol import WcfProtocol

# API-level models
from .api.models import Message
from .api.receiving import MessageReceiver
from .api.files import FileRef, StagedFile, acquire
from .api.polling import PollPolicy, MembershipPoll, AudioPoll, OcrPoll, DecryptPoll

# Outer interface
from .interface import WcfBridge

# Configuration
from .config import WcfOptions

# Low-level models (used by io)
from .io import WcfClient, WcfListener, Function, Request, Response, WxMsg, RpcContact, UserInfo, DbTable

# Shared types and exceptions
from .api.types import ConnectionState, ReceivingState, DbFieldType, Const
from .exceptions import (
    WcfError, WcfTimeoutError, WcfResponseError, WcfConnectionError,
    WcfConfigurationError, WcfCancelledError, WcfCommandError,
)

__version__ = "0.1.0"

# Public API - these are the main classes users should import
__all__ = [
    # Main client
    "WcfProtocol",

    # API-level models
    "Message",
    "MessageReceiver",
    "FileRef",
    "StagedFile",
    "acquire",
    "PollPolicy",
    "MembershipPoll",
    "AudioPoll",
    "OcrPoll",
    "DecryptPoll",

    # Outer interface
    "WcfBridge",

    # Configuration
    "WcfOptions",

    # Low-level models (for advanced users)
    "WcfClient",
    "WcfListener",
    "Function",
    "Request",
    "Response",
    "WxMsg",
    "RpcContact",
    "UserInfo",
    "DbTable",

    # Exceptions
    "WcfError",
    "WcfTimeoutError",
    "WcfResponseError",
    "WcfConnectionError",
    "WcfConfigurationError",
    "WcfCancelledError",
    "WcfCommandError",

    # Types and enums
    "ConnectionState",
    "ReceivingState",
    "DbFieldType",
    "Const",
]
