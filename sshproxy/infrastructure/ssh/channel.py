"""
Async adapter for paramiko channels
"""
import asyncio
import socket

import paramiko

from ...core.interfaces import Channel


class SSHChannel(Channel):
    """
    Async byte stream over a paramiko ``direct-tcpip`` channel.

    Reads wait on the channel's pollable file descriptor inside the event
    loop; writes run ``sendall`` in a worker thread because it blocks while
    the remote window is full.
    """

    def __init__(self, channel: paramiko.Channel):
        self.channel = channel
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or self.channel.closed

    async def read(self, n: int) -> bytes:
        """Receive data from channel"""
        while not self._readable():
            await self._wait_readable()
        if self._closed:
            return b""
        try:
            return self.channel.recv(n)
        except (socket.error, paramiko.SSHException) as e:
            raise OSError(f"Receive failed: {e}") from e

    async def write(self, data: bytes) -> None:
        """Send data to channel"""
        if self.closed:
            raise OSError("Channel is closed")
        try:
            await asyncio.to_thread(self.channel.sendall, data)
        except (socket.error, paramiko.SSHException) as e:
            raise OSError(f"Send failed: {e}") from e

    def write_eof(self) -> None:
        if not self.closed:
            self.channel.shutdown_write()

    def close(self) -> None:
        """Close channel"""
        if not self._closed:
            self._closed = True
            self.channel.close()

    def _readable(self) -> bool:
        chan = self.channel
        return self._closed or chan.closed or chan.eof_received or chan.recv_ready()

    async def _wait_readable(self) -> None:
        # paramiko signals a pipe whenever data arrives or the channel closes
        loop = asyncio.get_running_loop()
        fd = self.channel.fileno()
        ready = loop.create_future()

        def on_ready() -> None:
            if not ready.done():
                ready.set_result(None)

        loop.add_reader(fd, on_ready)
        try:
            # recheck after registering to avoid missing a wakeup
            if not self._readable():
                await ready
        finally:
            loop.remove_reader(fd)
