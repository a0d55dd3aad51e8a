"""
Message receiving: keeps the host's push state in line with the local listeners.

The host only pushes messages after ENABLE_RECV_TXT, and keeps pushing until
DISABLE_RECV_TXT. MessageReceiver sends those two commands on the 0 -> 1 and
1 -> 0 listener transitions and owns the event stream in between, so that
the receiving state is ENABLED exactly while the read loop runs and the host
has been told to push.

If an enable fails while listeners remain (on start() or a pyq toggle), the
next add_listener() or set_recv_pyq() call tries again.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from ..exceptions import WcfCommandError
from ..io import Function, Request, Response, WcfClient, decode_event
from .models import Message
from .types import ReceivingState

Listener = Callable[[Message], Any]
SendRequest = Callable[[Request], Awaitable[Response]]


class MessageReceiver:

    def __init__(self,
                 client: WcfClient,
                 send_request: SendRequest,
                 recv_pyq: bool = False,
                 logger: Optional[logging.Logger] = None):
        self.client = client
        self.send_request = send_request
        self.recv_pyq = recv_pyq
        self.logger = logger or logging.getLogger(__name__)
        self._listeners: list[Listener] = []
        self._state = ReceivingState.DISABLED
        self._dispose: Optional[Callable[[], Awaitable[None]]] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ReceivingState:
        return self._state

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ============================
    # LISTENERS
    # ============================

    async def add_listener(self, listener: Listener):
        async with self._lock:
            self._listeners.append(listener)
            if not self._stalled():
                return
            try:
                await self._enable()
            except Exception:
                self._listeners.remove(listener)
                raise

    async def remove_listener(self, listener: Listener):
        async with self._lock:
            if listener not in self._listeners:
                return
            self._listeners.remove(listener)
            if not self._listeners and self._state == ReceivingState.ENABLED:
                await self._disable()

    async def on_connected(self):
        """Resume receiving after start() if anyone is listening"""
        async with self._lock:
            if not self._listeners or self._state == ReceivingState.ENABLED:
                return
            try:
                await self._enable()
            except Exception as e:
                self.logger.error(f"Could not enable message receiving: {e}")

    async def force_disable(self):
        """Tell the host to stop pushing whatever the local state, and tear the stream down"""
        async with self._lock:
            await self._disable()

    async def set_recv_pyq(self, flag: bool):
        async with self._lock:
            if flag == self.recv_pyq and not self._stalled():
                return
            previous, self.recv_pyq = self.recv_pyq, flag
            try:
                if self._state == ReceivingState.ENABLED:
                    await self._disable()
                if self._stalled():
                    await self._enable()
            except Exception:
                self.recv_pyq = previous
                raise

    def _stalled(self) -> bool:
        """Listeners are waiting on a connected client but the host is not pushing"""
        return bool(self._listeners) and self._state == ReceivingState.DISABLED and self.client.is_connected()

    # ============================
    # TRANSITIONS (lock held)
    # ============================

    async def _enable(self):
        response = await self.send_request(Request(function=Function.ENABLE_RECV_TXT, flag=self.recv_pyq))
        if response.status != 0:
            raise WcfCommandError("Failed to enable message receiving", response.status)
        try:
            self._dispose = await self.client.open_event_stream(self._on_frame, self._on_error)
        except Exception:
            await self._send_disable()
            raise
        self._state = ReceivingState.ENABLED
        self.logger.info(f"Message receiving enabled (pyq={self.recv_pyq})")

    async def _disable(self):
        await self._send_disable()
        if self._dispose:
            dispose, self._dispose = self._dispose, None
            try:
                await dispose()
            except Exception as e:
                self.logger.warning(f"Error closing event stream: {e}")
        if self._state == ReceivingState.ENABLED:
            self.logger.info("Message receiving disabled")
        self._state = ReceivingState.DISABLED

    async def _send_disable(self):
        if not self.client.is_connected():
            return
        try:
            response = await self.send_request(Request(function=Function.DISABLE_RECV_TXT))
            self.logger.debug(f"DISABLE_RECV_TXT status {response.status}")
        except Exception as e:
            self.logger.warning(f"Failed to disable message receiving: {e}")

    # ============================
    # DISPATCH
    # ============================

    async def _on_frame(self, frame: bytes):
        message = Message(decode_event(frame))
        self.logger.debug(f"Received {message!r}")
        for listener in list(self._listeners):
            if listener not in self._listeners:
                continue  # removed during this dispatch
            try:
                result = listener(message)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self.logger.exception(f"Message listener {listener!r} raised")

    def _on_error(self, error: Exception):
        self.logger.error(f"Event channel error: {error}")
