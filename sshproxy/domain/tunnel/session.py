"""
SSH session state machine
"""
import asyncio
import functools
from typing import Optional

from ...core.interfaces import Channel, ConnectionFactory, Transport
from ...core.exceptions import ConnectFailure, NotConnectedError
from ...core.logging import get_logger
from ...core.telemetry import Telemetry, get_telemetry
from .models import ChannelRequest, ConnectOptions, SessionState

logger = get_logger(__name__)


class Session:
    """
    Owns the single SSH transport handle and its connectivity state.

    Transitions:
    - DISCONNECTED --connect()--> CONNECTING --ready--> READY
    - CONNECTING --failure--> DISCONNECTED
    - READY --session ended / restart()--> DISCONNECTED
    - any --destroy()--> DISCONNECTED

    Every new handle bumps ``generation``. Callers that saw a handle fail
    pass that generation to ``restart()`` so that a handle someone else
    already replaced is not torn down a second time.
    """

    def __init__(
        self,
        options: ConnectOptions,
        factory: ConnectionFactory,
        telemetry: Optional[Telemetry] = None,
    ):
        """
        Initialize session.

        Args:
            options: Connect options, referenced on every (re)connect
            factory: Creates a fresh transport handle per connect cycle
            telemetry: Event sink (default: global telemetry)
        """
        self.options = options
        self.factory = factory
        self.telemetry = telemetry or get_telemetry()
        self.auto_reconnect = False
        self.restarts = 0
        self._handle: Optional[Transport] = None
        self._state = SessionState.DISCONNECTED
        self._generation = 0
        self._lock = asyncio.Lock()
        self._restart_task: Optional[asyncio.Future] = None
        self._reconnect_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    # --------------------
    # Connection management
    # --------------------
    async def connect(self) -> None:
        """
        Connect the session; no-op when already READY.

        Raises:
            ConnectFailure: If the SSH session could not be established
        """
        async with self._lock:
            if self._state is SessionState.READY:
                return
            await self._connect_locked()

    async def restart(self, observed_generation: Optional[int] = None) -> None:
        """
        Destroy the current handle and connect a fresh one.

        A restart already in flight is joined rather than duplicated.

        Args:
            observed_generation: Generation of the handle the caller saw fail

        Raises:
            ConnectFailure: If the new session could not be established
        """
        if self._restart_task is None or self._restart_task.done():
            if self._superseded(observed_generation):
                return
            self._restart_task = asyncio.ensure_future(self._restart(observed_generation))
        task = self._restart_task
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            # destroy() cancelled the shared restart, not this caller
            if task.cancelled() and not asyncio.current_task().cancelling():
                raise ConnectFailure("SSH session was shut down") from None
            raise

    def destroy(self) -> None:
        """Release the handle without reconnecting; cancels pending restarts"""
        self.auto_reconnect = False
        for task in (self._reconnect_task, self._restart_task):
            if task and not task.done():
                task.cancel()
        self._reconnect_task = None
        self._restart_task = None
        self._release_handle()

    # --------------------
    # Channels
    # --------------------
    async def open_channel(self, request: ChannelRequest) -> Channel:
        """
        Open a forwarded channel on the current handle.

        Raises:
            NotConnectedError: If the session is not READY or went stale
            ChannelOpenFailure: If the destination was rejected
        """
        if not self.is_ready() or self._handle is None:
            raise NotConnectedError()
        return await self._handle.open_channel(request)

    # --------------------
    # Internals
    # --------------------
    def _superseded(self, observed_generation: Optional[int]) -> bool:
        return (
            observed_generation is not None
            and observed_generation != self._generation
            and self.is_ready()
        )

    async def _restart(self, observed_generation: Optional[int]) -> None:
        async with self._lock:
            # A connect() that held the lock may already have replaced the handle
            if self._superseded(observed_generation):
                return
            logger.info(f"Restarting SSH session to {self.options.host}:{self.options.port}")
            self._release_handle()
            self.restarts += 1
            self.telemetry.record_event("session.restarted", {
                "host": self.options.host,
                "restarts": self.restarts,
            })
            await self._connect_locked()

    async def _connect_locked(self) -> None:
        if self._handle is None:
            self._generation += 1
            self._handle = self.factory.create(
                self.options,
                functools.partial(self._handle_closed, self._generation),
            )

        handle = self._handle
        self._state = SessionState.CONNECTING
        logger.debug(f"Connecting to {self.options.user}@{self.options.host}:{self.options.port}")
        try:
            await handle.connect()
        except asyncio.CancelledError:
            if self._handle is handle:
                self._release_handle()
            raise
        except Exception as e:
            if self._handle is handle:
                self._release_handle()
            self.telemetry.record_event("session.connect_failed", {
                "host": self.options.host,
                "error": str(e),
            })
            if isinstance(e, ConnectFailure):
                raise
            raise ConnectFailure(f"Failed to connect to {self.options.host}: {e}") from e

        if self._handle is not handle:
            # destroy() released the handle while connecting
            raise ConnectFailure("SSH session was shut down while connecting")

        self._state = SessionState.READY
        logger.debug("SSH session ready")
        self.telemetry.record_event("session.connected", {
            "host": self.options.host,
            "generation": self._generation,
        })

    def _release_handle(self) -> None:
        handle, self._handle = self._handle, None
        self._state = SessionState.DISCONNECTED
        if handle is not None:
            handle.close()

    def _handle_closed(self, generation: int) -> None:
        """Session-ended notification from the transport"""
        if generation != self._generation or self._state is not SessionState.READY:
            return

        logger.warning("SSH session ended")
        self._release_handle()
        self.telemetry.record_event("session.ended", {
            "host": self.options.host,
            "generation": generation,
        })

        if self.auto_reconnect:
            self._reconnect_task = asyncio.ensure_future(self._reconnect(generation))

    async def _reconnect(self, generation: int) -> None:
        try:
            await self.restart(observed_generation=generation)
        except ConnectFailure as e:
            logger.error(f"Reconnect failed: {e}")
