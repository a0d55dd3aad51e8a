"""
wcferry wire-level command client.

This module implements the command side of the host connection using asyncio and pynng.
It contains the WcfClient class for sending requests and receiving responses.

Terms:
- Request = Bytes sent by the Client on the command channel
- Response = The single reply to a Request
- Client = A class which sends Requests and receives Responses

Channels:
- Command channel: tcp://{host}:{port}    one request in flight, one reply each
- Event channel:   tcp://{host}:{port+1}  frames pushed by the host (see event.py)

Example usage:
async def main():
    async with WcfClient("127.0.0.1", 10086) as client:
        reply = await client.send_command(encode_request(Request(function=Function.IS_LOGIN)))
        print(decode_response(reply, Function.IS_LOGIN).status)

asyncio.run(main())
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import pynng
from pynng.exceptions import NNGException, Timeout

from ..exceptions import WcfConnectionError, WcfTimeoutError
from .event import ErrorHandler, FrameHandler, WcfListener

# Constants
class ClientConst:
    """Constants for the WcfClient"""
    DEFAULT_HOST = "127.0.0.1"
    DEFAULT_PORT = 10086
    EVENT_PORT_OFFSET = 1
    DEFAULT_SEND_TIMEOUT = 5000  # msec
    DEFAULT_RECV_TIMEOUT = 5000  # msec


class WcfClient:
    """
    Owns the command socket and opens event streams on the neighbouring port.
      - send_command() is strictly one write then one read; it does not multiplex,
        so callers must not issue a second command before the first returns.
      - connect() fails fast and leaves nothing open behind it.
      - A command that times out or is cancelled before its reply arrives drops the
        command socket. The host may still answer it later, and that reply would be
        read as the answer to the next command, so the client stays disconnected
        until connect() is called again.
    """

    def __init__(self,
                 host: str = ClientConst.DEFAULT_HOST,
                 port: int = ClientConst.DEFAULT_PORT,
                 socket_options: Optional[dict] = None,
                 logger: Optional[logging.Logger] = None):
        self.host = host
        self.port = port
        self.socket_options = {
            "send_timeout": ClientConst.DEFAULT_SEND_TIMEOUT,
            "recv_timeout": ClientConst.DEFAULT_RECV_TIMEOUT,
            **(socket_options or {}),
        }
        self.logger = logger or logging.getLogger(__name__)
        self._socket: Optional[pynng.Pair1] = None
        self._listeners: list[WcfListener] = []

    @property
    def command_url(self) -> str:
        return f"tcp://{self.host}:{self.port}"

    @property
    def event_url(self) -> str:
        return f"tcp://{self.host}:{self.port + ClientConst.EVENT_PORT_OFFSET}"

    async def connect(self):
        if self.is_connected():
            return
        sock = pynng.Pair1(**self.socket_options)
        try:
            await asyncio.to_thread(sock.dial, self.command_url, block=True)
        except NNGException as e:
            sock.close()
            self.logger.error(f"Cannot connect to host at {self.command_url}: {e}")
            raise WcfConnectionError(f"Cannot connect to host at {self.command_url}: {e}") from e
        self._socket = sock
        self.logger.info(f"Connected to host at {self.command_url}")

    async def send_command(self, data: bytes) -> bytes:
        if self._socket is None:
            raise WcfConnectionError("Client is not connected")
        try:
            await self._socket.asend(data)
            return await self._socket.arecv()
        except asyncio.CancelledError:
            self._drop_command_socket("command cancelled before its reply")
            raise
        except Timeout as e:
            self._drop_command_socket(f"timed out: {e}")
            raise WcfTimeoutError(f"No response from {self.command_url}: {e}") from e
        except NNGException as e:
            raise WcfConnectionError(f"Command channel failure on {self.command_url}: {e}") from e

    async def open_event_stream(self,
                                on_frame: FrameHandler,
                                on_error: Optional[ErrorHandler] = None) -> Callable[[], Awaitable[None]]:
        """Dial the event channel and start reading. Returns an async disposer."""
        listener = await WcfListener.create(self.event_url, on_frame, on_error,
                                            socket_options=self.socket_options, logger=self.logger)
        self._listeners.append(listener)

        async def dispose():
            if listener in self._listeners:
                self._listeners.remove(listener)
            await listener.close()
        return dispose

    def _drop_command_socket(self, reason: str):
        if self._socket:
            self._socket.close()
            self._socket = None
            self.logger.warning(f"Dropped command channel to {self.command_url}: {reason}")

    def is_connected(self) -> bool:
        """Check if client is connected"""
        return self._socket is not None

    async def close(self):
        """Close any event streams, then the command socket"""
        while self._listeners:
            await self._listeners.pop().close()
        if self._socket:
            self._socket.close()
            self._socket = None
            self.logger.info(f"Disconnected from host at {self.command_url}")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
