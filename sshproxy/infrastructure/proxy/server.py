"""
Built-in HTTP/SOCKS proxy server
"""
import asyncio
from typing import Optional, Callable, Awaitable, Dict, Any

from ...core.interfaces import Channel
from ...core.constants import (
    DEFAULT_LISTEN_BACKLOG,
    HANDSHAKE_TIMEOUT,
    RELAY_CHUNK_SIZE,
)
from ...core.exceptions import ListenFailure, ProtocolError
from ...core.logging import get_logger
from ...domain.tunnel.models import ChannelRequest
from .protocols import Handshake, read_http, read_socks4, read_socks5

logger = get_logger(__name__)

RequestHandler = Callable[[ChannelRequest], Awaitable[Channel]]

EVENTS = ("listening", "connection", "proxy-connection", "close", "error", "server-close")


class ClientConnection:
    """
    One accepted proxy client.

    Tracks traffic for idle timeouts and owns the channel once one is
    attached, so that aborting the client also closes the channel.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        peer = writer.get_extra_info("peername") or ("", 0)
        self.remote_host: str = peer[0]
        self.remote_port: int = peer[1]
        self.channel: Optional[Channel] = None
        self.closed = False
        self._loop = asyncio.get_running_loop()
        self.last_activity = self._loop.time()
        self._timeout_task: Optional[asyncio.Task] = None

    @property
    def address(self) -> str:
        return f"{self.remote_host}:{self.remote_port}"

    def touch(self) -> None:
        """Record traffic on this connection"""
        self.last_activity = self._loop.time()

    def set_timeout(self, seconds: float, callback: Callable[[], None]) -> None:
        """
        Call callback once no traffic was seen for the given interval.

        Args:
            seconds: Idle interval; 0 disables the timeout
            callback: Invoked at most once
        """
        self._cancel_timeout()
        if seconds > 0 and not self.closed:
            self._timeout_task = asyncio.ensure_future(self._watch_idle(seconds, callback))

    async def _watch_idle(self, seconds: float, callback: Callable[[], None]) -> None:
        while not self.closed:
            remaining = self.last_activity + seconds - self._loop.time()
            if remaining <= 0:
                callback()
                return
            await asyncio.sleep(remaining)

    def _cancel_timeout(self) -> None:
        task, self._timeout_task = self._timeout_task, None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def abort(self) -> None:
        """Force-close the client socket and its channel"""
        if self.closed:
            return
        self.closed = True
        self._cancel_timeout()
        if self.channel:
            self.channel.close()
        self.writer.transport.abort()

    def close(self) -> None:
        """Close the client socket and its channel"""
        if self.closed:
            return
        self.closed = True
        self._cancel_timeout()
        if self.channel:
            self.channel.close()
        self.writer.close()


class ProxyServer:
    """
    Built-in HTTP/SOCKS proxy server.

    One listener serves HTTP CONNECT, plain HTTP proxy requests, SOCKS4,
    SOCKS4a and SOCKS5; the protocol is picked from the first byte. Each
    request is turned into a ChannelRequest and handed to request_handler,
    whose channel is then spliced with the client socket.

    Events (register with ``on``):
    - listening()
    - connection(conn)
    - proxy-connection(conn, request)
    - close(conn)
    - error(exc)
    - server-close()
    """

    def __init__(
        self,
        local_host: str,
        local_port: int,
        request_handler: RequestHandler,
        backlog: int = DEFAULT_LISTEN_BACKLOG,
        handshake_timeout: float = HANDSHAKE_TIMEOUT,
    ):
        """
        Initialize proxy server.

        Args:
            local_host: Local bind address
            local_port: Local bind port (0 picks a free port)
            request_handler: Async callable turning a request into a channel
            backlog: Listen backlog
            handshake_timeout: Seconds allowed for the client's request
        """
        self.local_host = local_host
        self.local_port = local_port
        self.request_handler = request_handler
        self.backlog = backlog
        self.handshake_timeout = handshake_timeout
        self._server: Optional[asyncio.AbstractServer] = None
        self._connections: set[ClientConnection] = set()
        self._tasks: set[asyncio.Task] = set()
        self._listeners: Dict[str, list[Callable[..., Any]]] = {name: [] for name in EVENTS}

    # --------------------
    # Events
    # --------------------
    def on(self, event: str, listener: Callable[..., Any]) -> None:
        """Register an event listener"""
        if event not in self._listeners:
            raise ValueError(f"Unknown event: {event}")
        self._listeners[event].append(listener)

    def _emit(self, event: str, *args: Any) -> None:
        for listener in self._listeners[event]:
            try:
                listener(*args)
            except Exception:
                logger.exception(f"Listener for '{event}' failed")

    # --------------------
    # Lifecycle
    # --------------------
    async def start(self) -> None:
        """
        Start listening.

        Raises:
            RuntimeError: If the server is already running
            ListenFailure: If the address cannot be bound
        """
        if self._server is not None:
            raise RuntimeError("Proxy server is already running")

        try:
            self._server = await asyncio.start_server(
                self._handle_client,
                self.local_host,
                self.local_port,
                backlog=self.backlog,
                reuse_address=True,
            )
        except OSError as e:
            raise ListenFailure(f"Cannot listen on {self.local_host}:{self.local_port}: {e}") from e

        self.local_port = self._server.sockets[0].getsockname()[1]
        self._emit("listening")

    async def serve_forever(self) -> None:
        """Serve until cancelled or stopped"""
        if self._server is None:
            await self.start()
        try:
            await self._server.serve_forever()
        except asyncio.CancelledError:
            # stop() clears _server before closing; anything else is a real cancel
            if self._server is not None:
                raise

    async def stop(self) -> None:
        """Stop listening and abort every open connection"""
        server, self._server = self._server, None
        if server is None:
            return

        server.close()
        for conn in list(self._connections):
            conn.abort()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await server.wait_closed()
        self._emit("server-close")

    def is_running(self) -> bool:
        """Check if proxy server is listening"""
        return self._server is not None and self._server.is_serving()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # --------------------
    # Client handling
    # --------------------
    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        self._tasks.add(task)
        conn = ClientConnection(reader, writer)
        self._connections.add(conn)
        self._emit("connection", conn)
        try:
            await self._serve(conn)
        except (
            ProtocolError,
            asyncio.IncompleteReadError,
            asyncio.LimitOverrunError,
            asyncio.TimeoutError,
            ValueError,
        ) as e:
            logger.debug(f"Rejected client {conn.address}: {e!r}")
        except OSError as e:
            logger.debug(f"Client {conn.address} connection error: {e!r}")
        except Exception as e:
            self._emit("error", e)
        finally:
            conn.close()
            self._connections.discard(conn)
            self._tasks.discard(task)
            self._emit("close", conn)

    async def _serve(self, conn: ClientConnection) -> None:
        handshake = await asyncio.wait_for(self._handshake(conn), self.handshake_timeout)

        try:
            channel = await self.request_handler(handshake.request)
        except Exception as e:
            # Nothing has been relayed yet, the client only sees the failure reply
            logger.debug(f"Channel to {handshake.request.destination} failed: {e!r}")
            if not conn.closed:
                conn.writer.write(handshake.failure_reply(e))
                await conn.writer.drain()
            return

        conn.channel = channel
        if conn.closed:
            channel.close()
            return

        if handshake.success_reply:
            conn.writer.write(handshake.success_reply)
            await conn.writer.drain()
        if handshake.payload:
            await channel.write(handshake.payload)

        self._emit("proxy-connection", conn, handshake.request)
        await self._relay(conn, channel)

    async def _handshake(self, conn: ClientConnection) -> Handshake:
        source = (conn.remote_host, conn.remote_port)
        first = await conn.reader.readexactly(1)
        conn.touch()
        if first == b"\x05":
            return await read_socks5(conn.reader, conn.writer, source)
        if first == b"\x04":
            return await read_socks4(conn.reader, conn.writer, source)
        return await read_http(first, conn.reader, conn.writer, source)

    async def _relay(self, conn: ClientConnection, channel: Channel) -> None:
        """Forward data bidirectionally, propagating half-close"""

        async def upstream() -> None:
            try:
                while True:
                    data = await conn.reader.read(RELAY_CHUNK_SIZE)
                    if not data:
                        break
                    conn.touch()
                    await channel.write(data)
                channel.write_eof()
            except OSError:
                conn.abort()

        async def downstream() -> None:
            try:
                while True:
                    data = await channel.read(RELAY_CHUNK_SIZE)
                    if not data:
                        break
                    conn.touch()
                    conn.writer.write(data)
                    await conn.writer.drain()
                if not conn.closed and conn.writer.can_write_eof():
                    conn.writer.write_eof()
            except OSError:
                conn.abort()

        await asyncio.gather(upstream(), downstream())
