"""Tests for the paramiko transport adapter with the SSH client mocked out."""

import asyncio
import dataclasses
import socket
from unittest.mock import Mock

import paramiko
import pytest

from sshproxy.core.exceptions import ChannelOpenFailure, ConnectFailure, NotConnectedError
from sshproxy.domain.tunnel.models import ConnectOptions
from sshproxy.infrastructure.ssh import transport as transport_module
from sshproxy.infrastructure.ssh.channel import SSHChannel
from sshproxy.infrastructure.ssh.transport import SSHConnectionFactory, SSHTransport, load_private_key

from .conftest import eventually

pytestmark = [pytest.mark.unit]


def make_transport(options, on_closed=None, active=True, monitor_interval=0.01):
    transport = SSHTransport(options, on_closed or Mock(), monitor_interval=monitor_interval)
    transport.client = Mock()
    transport.client.get_transport.return_value.is_active.return_value = active
    return transport


class TestConnect:
    @pytest.mark.asyncio
    async def test_password_login(self, options):
        options = dataclasses.replace(options, auth_method="password", password="pw", port=2222)
        transport = make_transport(options)

        await transport.connect()

        transport.client.connect.assert_called_once_with(
            hostname="ssh.example.com",
            port=2222,
            username="alice",
            password="pw",
            timeout=10,
            allow_agent=False,
            look_for_keys=False,
        )
        transport.close()

    @pytest.mark.asyncio
    async def test_key_login(self, options, monkeypatch):
        key = object()
        monkeypatch.setattr(transport_module, "load_private_key", Mock(return_value=key))
        transport = make_transport(dataclasses.replace(options, key_path="/keys/id_ed25519"))

        await transport.connect()

        transport_module.load_private_key.assert_called_once_with("/keys/id_ed25519")
        assert transport.client.connect.call_args.kwargs["pkey"] is key
        transport.close()

    @pytest.mark.asyncio
    async def test_key_login_without_path_uses_agent(self, options):
        transport = make_transport(options)

        await transport.connect()

        assert transport.client.connect.call_args.kwargs["pkey"] is None
        transport.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            paramiko.AuthenticationException("Authentication failed."),
            socket.timeout("timed out"),
            ConnectionRefusedError(111, "Connection refused"),
            EOFError(),
        ],
    )
    async def test_errors_become_connect_failure(self, options, error):
        transport = make_transport(options)
        transport.client.connect.side_effect = error

        with pytest.raises(ConnectFailure, match="ssh.example.com:22"):
            await transport.connect()

    @pytest.mark.asyncio
    async def test_keepalive(self, options):
        transport = make_transport(dataclasses.replace(options, keepalive_interval=15))

        await transport.connect()

        transport.client.get_transport.return_value.set_keepalive.assert_called_once_with(15)
        transport.close()

    @pytest.mark.asyncio
    async def test_no_keepalive_by_default(self, options):
        transport = make_transport(options)

        await transport.connect()

        transport.client.get_transport.return_value.set_keepalive.assert_not_called()
        transport.close()

    @pytest.mark.asyncio
    async def test_closed_while_connecting(self, options):
        transport = make_transport(options)
        transport.client.connect.side_effect = lambda **kwargs: transport.close()

        with pytest.raises(ConnectFailure, match="closed while connecting"):
            await transport.connect()


class TestMonitor:
    @pytest.mark.asyncio
    async def test_reports_session_end_once(self, options):
        on_closed = Mock()
        transport = make_transport(options, on_closed)
        await transport.connect()
        assert transport.is_alive()

        transport.client.get_transport.return_value.is_active.return_value = False

        await eventually(lambda: on_closed.called)
        await asyncio.sleep(0.05)
        on_closed.assert_called_once_with()
        transport.close()

    @pytest.mark.asyncio
    async def test_close_stops_monitor(self, options):
        on_closed = Mock()
        transport = make_transport(options, on_closed)
        await transport.connect()

        transport.close()
        transport.close()
        transport.client.get_transport.return_value.is_active.return_value = False
        await asyncio.sleep(0.05)

        on_closed.assert_not_called()
        transport.client.close.assert_called_once_with()
        assert not transport.is_alive()


class TestOpenChannel:
    @pytest.mark.asyncio
    async def test_direct_tcpip(self, options, request_example):
        transport = make_transport(options)
        chan = transport.client.get_transport.return_value.open_channel.return_value

        channel = await transport.open_channel(request_example)

        transport.client.get_transport.return_value.open_channel.assert_called_once_with(
            "direct-tcpip",
            ("example.com", 443),
            ("127.0.0.1", 50000),
            timeout=10,
        )
        assert isinstance(channel, SSHChannel)
        assert channel.channel is chan

    @pytest.mark.asyncio
    async def test_inactive_session(self, options, request_example):
        transport = make_transport(options, active=False)

        with pytest.raises(NotConnectedError):
            await transport.open_channel(request_example)

    @pytest.mark.asyncio
    async def test_no_session(self, options, request_example):
        transport = make_transport(options)
        transport.client.get_transport.return_value = None

        with pytest.raises(NotConnectedError):
            await transport.open_channel(request_example)

    @pytest.mark.asyncio
    async def test_rejected_destination(self, options, request_example):
        transport = make_transport(options)
        transport.client.get_transport.return_value.open_channel.side_effect = paramiko.ChannelException(
            2, "Connect failed"
        )

        with pytest.raises(ChannelOpenFailure, match="example.com:443"):
            await transport.open_channel(request_example)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [EOFError(), ConnectionResetError(104, "reset")])
    async def test_dropped_session(self, options, request_example, error):
        transport = make_transport(options)
        transport.client.get_transport.return_value.open_channel.side_effect = error

        with pytest.raises(NotConnectedError):
            await transport.open_channel(request_example)

    @pytest.mark.asyncio
    async def test_ssh_error_on_live_session(self, options, request_example):
        transport = make_transport(options)
        transport.client.get_transport.return_value.open_channel.side_effect = paramiko.SSHException(
            "Timeout opening channel."
        )

        with pytest.raises(ChannelOpenFailure):
            await transport.open_channel(request_example)

    @pytest.mark.asyncio
    async def test_ssh_error_on_dead_session(self, options, request_example):
        transport = make_transport(options)
        ssh_transport = transport.client.get_transport.return_value
        ssh_transport.open_channel.side_effect = paramiko.SSHException("SSH session not active")
        ssh_transport.is_active.side_effect = [True, False]

        with pytest.raises(NotConnectedError):
            await transport.open_channel(request_example)


def test_factory_creates_transport(options):
    on_closed = Mock()

    transport = SSHConnectionFactory(monitor_interval=0.5).create(options, on_closed)

    assert isinstance(transport, SSHTransport)
    assert transport.options is options
    assert transport.on_closed is on_closed
    assert transport.monitor_interval == 0.5


class TestLoadPrivateKey:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConnectFailure, match="Cannot read private key"):
            load_private_key(str(tmp_path / "id_missing"))

    def test_not_a_key(self, tmp_path):
        path = tmp_path / "id_garbage"
        path.write_text("this is not a key\n", encoding="utf-8")

        with pytest.raises(ConnectFailure, match="Failed to load private key"):
            load_private_key(str(path))


def make_paramiko_channel(**attrs):
    chan = Mock()
    chan.closed = False
    chan.eof_received = False
    chan.recv_ready.return_value = False
    for name, value in attrs.items():
        setattr(chan, name, value)
    return chan


class TestSSHChannel:
    @pytest.mark.asyncio
    async def test_read_available(self):
        chan = make_paramiko_channel()
        chan.recv_ready.return_value = True
        chan.recv.return_value = b"data"

        assert await SSHChannel(chan).read(1024) == b"data"
        chan.recv.assert_called_once_with(1024)

    @pytest.mark.asyncio
    async def test_read_waits_for_wakeup(self):
        """Reads park on the channel's pipe until paramiko signals it."""
        pipe_r, pipe_w = socket.socketpair()
        try:
            chan = make_paramiko_channel()
            chan.fileno.return_value = pipe_r.fileno()
            chan.recv.return_value = b"late"
            task = asyncio.ensure_future(SSHChannel(chan).read(16))

            await asyncio.sleep(0.05)
            assert not task.done()

            chan.recv_ready.return_value = True
            pipe_w.send(b"*")

            assert await asyncio.wait_for(task, 1.0) == b"late"
        finally:
            pipe_r.close()
            pipe_w.close()

    @pytest.mark.asyncio
    async def test_read_after_remote_eof(self):
        chan = make_paramiko_channel(eof_received=True)
        chan.recv.return_value = b""

        assert await SSHChannel(chan).read(16) == b""

    @pytest.mark.asyncio
    async def test_read_after_close(self):
        chan = make_paramiko_channel()
        channel = SSHChannel(chan)
        channel.close()

        assert await channel.read(16) == b""
        chan.recv.assert_not_called()

    @pytest.mark.asyncio
    async def test_write(self):
        chan = make_paramiko_channel()

        await SSHChannel(chan).write(b"payload")

        chan.sendall.assert_called_once_with(b"payload")

    @pytest.mark.asyncio
    async def test_write_failure_is_oserror(self):
        chan = make_paramiko_channel()
        chan.sendall.side_effect = paramiko.SSHException("Socket is closed")

        with pytest.raises(OSError, match="Send failed"):
            await SSHChannel(chan).write(b"payload")

    @pytest.mark.asyncio
    async def test_write_to_closed_channel(self):
        chan = make_paramiko_channel(closed=True)

        with pytest.raises(OSError):
            await SSHChannel(chan).write(b"payload")
        chan.sendall.assert_not_called()

    def test_write_eof_and_close(self):
        chan = make_paramiko_channel()
        channel = SSHChannel(chan)

        channel.write_eof()
        channel.close()
        channel.close()
        channel.write_eof()

        chan.shutdown_write.assert_called_once_with()
        chan.close.assert_called_once_with()
        assert channel.closed
