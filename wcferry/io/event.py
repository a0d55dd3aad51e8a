"""
wcferry wire-level event listener.

This module implements the event side of the host connection using asyncio and pynng.
It contains the WcfListener class, which dials the event channel and runs a read loop
handing every frame to a callback, in arrival order.

Terms:
- Event = A frame pushed by the host on the event channel
- Listener = A class which receives Events

Example usage:
async def on_frame(frame: bytes):
    print(decode_event(frame))

listener = await WcfListener.create("tcp://127.0.0.1:10087", on_frame)
...
await listener.close()
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import pynng
from pynng.exceptions import Closed, NNGException, Timeout

from ..exceptions import WcfConnectionError

FrameHandler = Callable[[bytes], Awaitable[None]]
ErrorHandler = Callable[[Exception], None]


class WcfListener:
    def __init__(self,
                 url: str,
                 on_frame: FrameHandler,
                 on_error: Optional[ErrorHandler] = None,
                 socket_options: Optional[dict] = None,
                 logger: Optional[logging.Logger] = None):
        self.url = url
        self.on_frame = on_frame
        self.on_error = on_error
        # The read loop waits for frames indefinitely
        self.socket_options = {k: v for k, v in (socket_options or {}).items() if k != "recv_timeout"}
        self.logger = logger or logging.getLogger(__name__)
        self._socket: Optional[pynng.Pair1] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @classmethod
    async def create(cls,
                     url: str,
                     on_frame: FrameHandler,
                     on_error: Optional[ErrorHandler] = None,
                     socket_options: Optional[dict] = None,
                     logger: Optional[logging.Logger] = None) -> "WcfListener":
        """Create a WcfListener, dial the event channel and start reading"""
        self = cls(url, on_frame, on_error, socket_options, logger)
        await self.start_listening()
        return self

    async def start_listening(self):
        if self.is_listening():
            self.logger.warning("Event listener already running")
            return
        sock = pynng.Pair1(**self.socket_options)
        try:
            await asyncio.to_thread(sock.dial, self.url, block=True)
        except NNGException as e:
            sock.close()
            raise WcfConnectionError(f"Cannot open event channel {self.url}: {e}") from e
        self._socket = sock
        self._closed = False
        self._task = asyncio.create_task(self._read_loop())
        self.logger.info(f"Listening for events on {self.url}")

    def is_listening(self) -> bool:
        return self._task is not None and not self._task.done() and not self._closed

    async def _read_loop(self):
        while not self._closed:
            try:
                frame = await self._socket.arecv()
            except Closed:
                break
            except Timeout:
                continue
            except NNGException as e:
                if self._closed:
                    break
                self._report(e)
                continue
            self.logger.debug(f"Received event frame: {len(frame)} bytes")
            try:
                await self.on_frame(frame)
            except Exception as e:
                self._report(e)
        self.logger.info("Event read loop finished")

    def _report(self, error: Exception):
        if self.on_error:
            self.on_error(error)
        else:
            self.logger.error(f"Event channel error: {error}")

    async def close(self):
        """Stop reading and close the event socket. Safe to call from inside on_frame."""
        if self._closed:
            return
        self._closed = True
        if self._socket:
            self._socket.close()
            self._socket = None
        task = self._task
        self._task = None
        if task and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.logger.info("Stopped event listener")

    async def __aenter__(self):
        if not self.is_listening():
            await self.start_listening()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
