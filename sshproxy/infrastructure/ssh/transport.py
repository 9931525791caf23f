"""
paramiko-backed SSH transport
"""
import asyncio
from pathlib import Path
from typing import Callable, Optional

import paramiko

from ...core.interfaces import Channel, ConnectionFactory, Transport
from ...core.constants import SESSION_MONITOR_INTERVAL
from ...core.exceptions import ChannelOpenFailure, ConnectFailure, NotConnectedError
from ...core.logging import get_logger
from ...domain.tunnel.models import ChannelRequest, ConnectOptions
from .channel import SSHChannel

logger = get_logger(__name__)

KEY_CLASSES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)


def load_private_key(path: str, passphrase: Optional[str] = None) -> paramiko.PKey:
    """
    Load a private key, probing Ed25519, ECDSA and RSA.

    Raises:
        ConnectFailure: If no key type can read the file
    """
    p = Path(path).expanduser()
    errors = []
    for key_class in KEY_CLASSES:
        try:
            return key_class.from_private_key_file(str(p), password=passphrase)
        except (paramiko.SSHException, ValueError) as e:
            errors.append(f"{key_class.__name__}: {e}")
        except OSError as e:
            raise ConnectFailure(f"Cannot read private key at {p}: {e}") from e
    raise ConnectFailure(f"Failed to load private key at {p} ({'; '.join(errors)})")


class SSHTransport(Transport):
    """
    One paramiko SSH session.

    - password or private key login
    - ``direct-tcpip`` channels for forwarded connections
    - a monitor task that reports the session ending on its own
    """

    def __init__(
        self,
        options: ConnectOptions,
        on_closed: Callable[[], None],
        monitor_interval: float = SESSION_MONITOR_INTERVAL,
    ):
        self.options = options
        self.on_closed = on_closed
        self.monitor_interval = monitor_interval
        self.client = paramiko.SSHClient()
        self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        self._monitor: Optional[asyncio.Task] = None
        self._closed = False

    # --------------------
    # Connection management
    # --------------------
    async def connect(self) -> None:
        """
        Connect and authenticate in a worker thread.

        Raises:
            ConnectFailure: If the session could not be established
        """
        try:
            await asyncio.to_thread(self._connect)
        except ConnectFailure:
            raise
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise ConnectFailure(
                f"SSH connection to {self.options.host}:{self.options.port} failed: {e}"
            ) from e

        if self._closed:
            self.client.close()
            raise ConnectFailure("Transport closed while connecting")

        logger.debug("SSH connected")
        transport = self.client.get_transport()
        if self.options.keepalive_interval:
            transport.set_keepalive(self.options.keepalive_interval)
        self._monitor = asyncio.ensure_future(self._watch())

    def _connect(self) -> None:
        opts = self.options

        if opts.auth_method == "password":
            self.client.connect(
                hostname=opts.host,
                port=opts.port,
                username=opts.user,
                password=opts.password,
                timeout=opts.timeout,
                allow_agent=False,
                look_for_keys=False,
            )

        elif opts.auth_method == "key":
            pkey = load_private_key(opts.key_path) if opts.key_path else None
            self.client.connect(
                hostname=opts.host,
                port=opts.port,
                username=opts.user,
                pkey=pkey,
                timeout=opts.timeout,
            )

        else:
            raise ConnectFailure(f"Unsupported auth method: {opts.auth_method}")

    def is_alive(self) -> bool:
        transport = self.client.get_transport()
        return not self._closed and transport is not None and transport.is_active()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._monitor and not self._monitor.done():
            self._monitor.cancel()
        self.client.close()

    async def _watch(self) -> None:
        """Poll the transport and report once when it dies"""
        while not self._closed:
            await asyncio.sleep(self.monitor_interval)
            if not self._closed and not self.is_alive():
                self.on_closed()
                return

    # --------------------
    # Channels
    # --------------------
    async def open_channel(self, request: ChannelRequest) -> Channel:
        """
        Open a direct-tcpip channel to request.destination.

        Raises:
            NotConnectedError: If the session is gone
            ChannelOpenFailure: If the server rejects the destination
        """
        transport = self.client.get_transport()
        if self._closed or transport is None or not transport.is_active():
            raise NotConnectedError()

        try:
            chan = await asyncio.to_thread(
                transport.open_channel,
                "direct-tcpip",
                (request.dest_host, request.dest_port),
                (request.source_host, request.source_port),
                timeout=self.options.timeout,
            )
        except paramiko.ChannelException as e:
            raise ChannelOpenFailure(
                f"Channel to {request.destination} rejected: {e.text} (code {e.code})"
            ) from e
        except (EOFError, OSError) as e:
            raise NotConnectedError(f"Not connected: {e}") from e
        except paramiko.SSHException as e:
            if not transport.is_active():
                raise NotConnectedError(f"Not connected: {e}") from e
            raise ChannelOpenFailure(f"Failed to open channel to {request.destination}: {e}") from e

        return SSHChannel(chan)


class SSHConnectionFactory(ConnectionFactory):
    """Creates paramiko transports"""

    def __init__(self, monitor_interval: float = SESSION_MONITOR_INTERVAL):
        self.monitor_interval = monitor_interval

    def create(self, options: ConnectOptions, on_closed: Callable[[], None]) -> SSHTransport:
        return SSHTransport(options, on_closed, monitor_interval=self.monitor_interval)
