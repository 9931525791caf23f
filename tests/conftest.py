"""Shared fixtures and in-memory fakes for sshproxy tests."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import pytest

from sshproxy.core.exceptions import NotConnectedError
from sshproxy.core.interfaces import Channel, ConnectionFactory, Transport
from sshproxy.core.telemetry import Telemetry
from sshproxy.domain.tunnel.models import ChannelRequest, ConnectOptions
from sshproxy.domain.tunnel.session import Session


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll predicate until it holds or fail after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class FakeChannel(Channel):
    """In-memory channel; the test feeds remote bytes and inspects sent bytes."""

    def __init__(self, request: Optional[ChannelRequest] = None):
        self.request = request
        self.sent = bytearray()
        self.eof_written = False
        self._incoming: asyncio.Queue[bytes] = asyncio.Queue()
        self._buffer = b""
        self._eof = False
        self._closed = False

    def feed(self, data: bytes) -> None:
        self._incoming.put_nowait(data)

    def feed_eof(self) -> None:
        self._incoming.put_nowait(b"")

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, n: int) -> bytes:
        if not self._buffer:
            if self._eof or self._closed:
                return b""
            self._buffer = await self._incoming.get()
            if not self._buffer:
                self._eof = True
                return b""
        data, self._buffer = self._buffer[:n], self._buffer[n:]
        return data

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise OSError("Channel is closed")
        self.sent += data

    def write_eof(self) -> None:
        self.eof_written = True

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._incoming.put_nowait(b"")


class FakeTransport(Transport):
    """Transport double driven by its FakeConnectionFactory."""

    def __init__(self, factory: "FakeConnectionFactory", options: ConnectOptions, on_closed: Callable[[], None]):
        self.factory = factory
        self.options = options
        self.on_closed = on_closed
        self.connected = False
        self.closed = False
        self.stale = False

    async def connect(self) -> None:
        self.factory.connect_calls += 1
        if self.factory.connect_gate is not None:
            await self.factory.connect_gate.wait()
        if self.factory.connect_error is not None:
            raise self.factory.connect_error
        self.connected = True
        self.stale = self.factory.stale_on_connect

    async def open_channel(self, request: ChannelRequest) -> Channel:
        self.factory.open_calls += 1
        if self.closed or self.stale or not self.connected:
            raise NotConnectedError()
        if self.factory.open_error is not None:
            raise self.factory.open_error
        channel = FakeChannel(request)
        self.factory.channels.append(channel)
        return channel

    def close(self) -> None:
        self.closed = True

    def is_alive(self) -> bool:
        return self.connected and not self.closed and not self.stale

    def drop(self) -> None:
        """Session dies without the state machine noticing."""
        self.stale = True

    def end(self) -> None:
        """Session dies and the transport reports it."""
        self.stale = True
        self.on_closed()


class FakeConnectionFactory(ConnectionFactory):
    """Creates FakeTransports and records what happened to them."""

    def __init__(self):
        self.transports: list[FakeTransport] = []
        self.channels: list[FakeChannel] = []
        self.connect_calls = 0
        self.open_calls = 0
        self.connect_error: Optional[BaseException] = None
        self.open_error: Optional[BaseException] = None
        self.connect_gate: Optional[asyncio.Event] = None
        self.stale_on_connect = False

    def create(self, options: ConnectOptions, on_closed: Callable[[], None]) -> FakeTransport:
        transport = FakeTransport(self, options, on_closed)
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.transports[-1]


@pytest.fixture
def options() -> ConnectOptions:
    return ConnectOptions(host="ssh.example.com", user="alice", auth_method="key")


@pytest.fixture
def factory() -> FakeConnectionFactory:
    return FakeConnectionFactory()


@pytest.fixture
def telemetry() -> Telemetry:
    return Telemetry()


@pytest.fixture
def session(options, factory, telemetry) -> Session:
    return Session(options, factory, telemetry=telemetry)


@pytest.fixture
def request_example() -> ChannelRequest:
    return ChannelRequest("127.0.0.1", 50000, "example.com", 443)
