import asyncio
from typing import Callable

import pytest

from wcferry import WcfProtocol
from wcferry.api.polling import PollPolicy
from wcferry.exceptions import WcfConnectionError
from wcferry.io import (
    Function, Request, Response, WxMsg, DbField, DbRow, DbRows, decode_request, encode_response, encode_event,
)

Handler = Callable[[Request], Response | int]


class FakeHost:
    """
    In-memory stand-in for WcfClient. Requests are decoded from real bytes and
    replies encoded through the codec, so everything above the socket is exercised.
    """

    def __init__(self):
        self.connected = False
        self.requests: list[Request] = []
        self.handlers: dict[Function, Handler] = {}
        self.streams: list[tuple] = []
        self.streams_opened = 0
        self.fail_stream = False
        self.in_flight = 0
        self.max_in_flight = 0

    # WcfClient interface

    async def connect(self):
        self.connected = True

    def is_connected(self) -> bool:
        return self.connected

    async def close(self):
        self.streams.clear()
        self.connected = False

    async def send_command(self, data: bytes) -> bytes:
        if not self.connected:
            raise WcfConnectionError("Client is not connected")
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            request = decode_request(data)
            self.requests.append(request)
            handler = self.handlers.get(request.function)
            response = handler(request) if handler else 0
            if isinstance(response, int):
                response = Response(function=request.function, status=response)
            return encode_response(response)
        finally:
            self.in_flight -= 1

    async def open_event_stream(self, on_frame, on_error=None):
        if self.fail_stream:
            raise WcfConnectionError("Cannot open event channel")
        stream = (on_frame, on_error)
        self.streams.append(stream)
        self.streams_opened += 1

        async def dispose():
            if stream in self.streams:
                self.streams.remove(stream)
        return dispose

    # Test helpers

    def answer(self, function: Function, **fields):
        """Always reply to function with these Response fields"""
        self.handlers[function] = lambda request: Response(function=function, **fields)

    def answer_sequence(self, function: Function, replies: list[dict]):
        """Reply with each set of Response fields in turn; the last one repeats"""
        remaining = list(replies)

        def handler(request):
            fields = remaining.pop(0) if len(remaining) > 1 else remaining[0]
            return Response(function=function, **fields)
        self.handlers[function] = handler

    def functions(self) -> list[Function]:
        return [r.function for r in self.requests]

    def sent(self, function: Function) -> list[Request]:
        return [r for r in self.requests if r.function == function]

    async def push(self, message: WxMsg | bytes):
        frame = message if isinstance(message, bytes) else encode_event(message)
        for on_frame, on_error in list(self.streams):
            try:
                await on_frame(frame)
            except Exception as e:
                if on_error: on_error(e)


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def wcf(host, tmp_path) -> WcfProtocol:
    return WcfProtocol(client=host, cache_dir=str(tmp_path / "cache"))


@pytest.fixture
def waits(monkeypatch) -> list[float]:
    """Record polling delays instead of sleeping through them"""
    recorded: list[float] = []

    async def wait(self):
        recorded.append(self.delay)
    monkeypatch.setattr(PollPolicy, "wait", wait)
    return recorded


def text_message(content: str = "hello", **kwargs) -> WxMsg:
    values = dict(id=1, type=1, ts=1700000000, sender="wxid_sender", content=content)
    values.update(kwargs)
    return WxMsg(**values)


def rows(*records: dict) -> DbRows:
    """Query rows: bytes become BLOB fields, int INTEGER, float FLOAT, str TEXT, None NULL"""
    def field(column, value):
        match value:
            case None: return DbField(type=5, column=column)
            case bytes(): return DbField(type=4, column=column, content=value)
            case int(): return DbField(type=1, column=column, content=str(value).encode())
            case float(): return DbField(type=2, column=column, content=str(value).encode())
            case _: return DbField(type=3, column=column, content=value.encode())
    return DbRows(rows=[DbRow(fields=[field(c, v) for c, v in r.items()]) for r in records])
