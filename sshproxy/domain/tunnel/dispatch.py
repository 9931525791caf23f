"""
Connection dispatch loop
"""
from typing import Optional, Protocol, Callable, Awaitable, Any

from ...core.interfaces import Channel
from ...core.logging import get_logger
from ...core.telemetry import Telemetry, get_telemetry
from .models import ChannelRequest, ProxyConfig
from .provider import ResilientChannelProvider
from .session import Session

logger = get_logger(__name__)


class ProxyEngine(Protocol):
    """Client-facing proxy protocol engine"""

    local_host: str
    local_port: int

    def on(self, event: str, listener: Callable[..., Any]) -> None: ...

    async def start(self) -> None: ...

    async def serve_forever(self) -> None: ...

    async def stop(self) -> None: ...


EngineFactory = Callable[[str, int, Callable[[ChannelRequest], Awaitable[Channel]]], ProxyEngine]


class ConnectionDispatcher:
    """
    Glue between the proxy engine and the channel provider.

    Handles the process lifecycle: connect the session, listen, route each
    client request to the provider, enforce idle timeouts, and report
    lifecycle events. Event reporting is side-channel only.
    """

    def __init__(
        self,
        session: Session,
        config: ProxyConfig,
        engine_factory: EngineFactory,
        telemetry: Optional[Telemetry] = None,
    ):
        """
        Initialize dispatcher.

        Args:
            session: SSH session state machine
            config: Local listener configuration
            engine_factory: Builds the proxy engine from (host, port, handler)
            telemetry: Event sink (default: global telemetry)
        """
        config.validate()
        self.session = session
        self.config = config
        self.provider = ResilientChannelProvider(session)
        self.telemetry = telemetry or get_telemetry()
        self.server = engine_factory(config.bind_host, config.bind_port, self.handle_request)
        self.server.on("connection", self._on_connection)
        self.server.on("proxy-connection", self._on_proxy_connection)
        self.server.on("close", self._on_close)
        self.server.on("error", self._on_error)
        self.server.on("server-close", self._on_server_close)

    async def start(self) -> None:
        """
        Connect the session, then start listening.

        Raises:
            ConnectFailure: If the initial SSH connection fails
            ListenFailure: If the local address cannot be bound
        """
        await self.session.connect()
        try:
            await self.server.start()
        except Exception:
            self.session.destroy()
            raise

        self.session.auto_reconnect = True
        logger.info(f"Server listening on {self.config.bind_host}:{self.server.local_port}")
        self.telemetry.record_event("server.started", {
            "host": self.config.bind_host,
            "port": self.server.local_port,
        })

    async def run(self) -> None:
        """Start and serve until cancelled"""
        await self.start()
        try:
            await self.server.serve_forever()
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop listening and tear the session down"""
        self.session.auto_reconnect = False
        await self.server.stop()
        self.session.destroy()

    async def handle_request(self, request: ChannelRequest) -> Channel:
        """
        Turn a client request into a channel.

        Failures are logged and re-raised so the engine can answer the
        client with a protocol-level error.
        """
        try:
            channel = await self.provider.obtain_channel(request)
        except Exception as e:
            logger.warning(f"Cannot open channel {request.source} -> {request.destination}: {e}")
            self.telemetry.record_event("channel.failed", {
                "source": request.source,
                "destination": request.destination,
                "error": str(e),
            })
            raise

        self.telemetry.record_event("channel.opened", {
            "source": request.source,
            "destination": request.destination,
        })
        return channel

    # --------------------
    # Engine events
    # --------------------
    def _on_connection(self, conn) -> None:
        logger.debug(f"Connected from {conn.address}")
        self.telemetry.record_event("client.connected", {"address": conn.address})
        if self.config.idle_timeout > 0:
            conn.set_timeout(self.config.idle_timeout, lambda: self._on_idle(conn))

    def _on_idle(self, conn) -> None:
        logger.debug(f"Idle timeout, closing {conn.address}")
        self.telemetry.record_event("client.idle_timeout", {"address": conn.address})
        conn.abort()

    def _on_proxy_connection(self, conn, request: ChannelRequest) -> None:
        logger.debug(f"Connected to {request.destination}")

    def _on_close(self, conn) -> None:
        logger.debug(f"Disconnected {conn.address}")
        self.telemetry.record_event("client.disconnected", {"address": conn.address})

    def _on_error(self, error: Exception) -> None:
        logger.error(f"Proxy server error: {error!r}")

    def _on_server_close(self) -> None:
        logger.debug("Server closed")
        self.telemetry.record_event("server.stopped", {"port": self.server.local_port})
