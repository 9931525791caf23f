"""
Proxy handshake parsing: HTTP CONNECT, plain HTTP, SOCKS4/4a and SOCKS5
"""
import asyncio
import socket
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Tuple
from urllib.parse import urlsplit

from ...core.exceptions import ChannelOpenFailure, ProtocolError
from ...domain.tunnel.models import ChannelRequest


# ============================================================================
# SOCKS Protocol Constants
# ============================================================================

class SOCKS5Method(IntEnum):
    """SOCKS5 authentication methods"""
    NO_AUTH = 0x00
    GSSAPI = 0x01
    USERNAME_PASSWORD = 0x02
    NO_ACCEPTABLE = 0xFF


class SOCKS5Command(IntEnum):
    """SOCKS5 commands"""
    CONNECT = 0x01
    BIND = 0x02
    UDP_ASSOCIATE = 0x03


class SOCKS5AddressType(IntEnum):
    """SOCKS5 address types"""
    IPV4 = 0x01
    DOMAIN = 0x03
    IPV6 = 0x04


class SOCKS5Reply(IntEnum):
    """SOCKS5 reply codes"""
    SUCCESS = 0x00
    GENERAL_FAILURE = 0x01
    CONNECTION_NOT_ALLOWED = 0x02
    NETWORK_UNREACHABLE = 0x03
    HOST_UNREACHABLE = 0x04
    CONNECTION_REFUSED = 0x05
    TTL_EXPIRED = 0x06
    COMMAND_NOT_SUPPORTED = 0x07
    ADDRESS_TYPE_NOT_SUPPORTED = 0x08


class SOCKS4Reply(IntEnum):
    """SOCKS4 reply codes"""
    GRANTED = 0x5A
    REJECTED = 0x5B


SOCKS4_CONNECT = 0x01

HTTP_CONNECT_ESTABLISHED = b"HTTP/1.1 200 Connection Established\r\n\r\n"
HTTP_BAD_REQUEST = b"HTTP/1.1 400 Bad Request\r\nConnection: close\r\n\r\n"
HTTP_BAD_GATEWAY = b"HTTP/1.1 502 Bad Gateway\r\nConnection: close\r\n\r\n"

# Hop-by-hop headers stripped before forwarding; "Connection: close" is sent instead
HOP_BY_HOP_HEADERS = (b"connection", b"keep-alive", b"proxy-connection", b"proxy-authorization")


@dataclass
class Handshake:
    """
    Outcome of a client handshake.

    Attributes:
        request: Requested tunnel
        success_reply: Bytes sent to the client once the channel is open
        failure_reply: Builds the bytes sent when the channel cannot be opened
        payload: Bytes written to the channel before relaying starts
    """
    request: ChannelRequest
    success_reply: bytes
    failure_reply: Callable[[BaseException], bytes]
    payload: bytes = field(default=b"")


def split_host_port(target: str) -> Tuple[str, int]:
    """
    Split "host:port" or "[v6]:port".

    Raises:
        ProtocolError: If the port is missing or invalid
    """
    if target.startswith("["):
        host, _, rest = target[1:].partition("]")
        port_str = rest[1:] if rest.startswith(":") else ""
    elif target.count(":") == 1:
        host, _, port_str = target.partition(":")
    else:
        host, port_str = target, ""
    if not port_str:
        raise ProtocolError(f"Missing port in target: {target}")
    try:
        port = int(port_str)
    except ValueError:
        raise ProtocolError(f"Invalid port in target: {target}") from None
    if not host or not (0 < port <= 65535):
        raise ProtocolError(f"Invalid target: {target}")
    return host, port


# ============================================================================
# SOCKS5
# ============================================================================

def _socks5_reply(code: int) -> bytes:
    return bytes([5, code, 0, SOCKS5AddressType.IPV4]) + bytes(6)


def _socks5_failure(error: BaseException) -> bytes:
    if isinstance(error, ChannelOpenFailure):
        return _socks5_reply(SOCKS5Reply.CONNECTION_REFUSED)
    return _socks5_reply(SOCKS5Reply.GENERAL_FAILURE)


async def read_socks5(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    source: Tuple[str, int],
) -> Handshake:
    """Parse a SOCKS5 greeting and CONNECT request (version byte consumed)"""
    nmethods = (await reader.readexactly(1))[0]
    methods = await reader.readexactly(nmethods)
    if SOCKS5Method.NO_AUTH not in methods:
        writer.write(bytes([5, SOCKS5Method.NO_ACCEPTABLE]))
        await writer.drain()
        raise ProtocolError("SOCKS5 client offers no acceptable auth method")

    writer.write(bytes([5, SOCKS5Method.NO_AUTH]))
    await writer.drain()

    version, cmd, _rsv, atype = await reader.readexactly(4)
    if version != 5:
        raise ProtocolError(f"Unexpected SOCKS version in request: {version}")

    if atype == SOCKS5AddressType.IPV4:
        host = socket.inet_ntoa(await reader.readexactly(4))
    elif atype == SOCKS5AddressType.DOMAIN:
        length = (await reader.readexactly(1))[0]
        host = (await reader.readexactly(length)).decode("idna")
    elif atype == SOCKS5AddressType.IPV6:
        host = socket.inet_ntop(socket.AF_INET6, await reader.readexactly(16))
    else:
        writer.write(_socks5_reply(SOCKS5Reply.ADDRESS_TYPE_NOT_SUPPORTED))
        await writer.drain()
        raise ProtocolError(f"Unsupported SOCKS5 address type: {atype}")

    port = struct.unpack(">H", await reader.readexactly(2))[0]

    if cmd != SOCKS5Command.CONNECT:
        writer.write(_socks5_reply(SOCKS5Reply.COMMAND_NOT_SUPPORTED))
        await writer.drain()
        raise ProtocolError(f"Unsupported SOCKS5 command: {cmd}")

    return Handshake(
        request=ChannelRequest(source[0], source[1], host, port),
        success_reply=_socks5_reply(SOCKS5Reply.SUCCESS),
        failure_reply=_socks5_failure,
    )


# ============================================================================
# SOCKS4 / SOCKS4a
# ============================================================================

def _socks4_reply(code: int) -> bytes:
    return bytes([0, code]) + bytes(6)


async def read_socks4(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    source: Tuple[str, int],
) -> Handshake:
    """Parse a SOCKS4/4a CONNECT request (version byte consumed)"""
    header = await reader.readexactly(7)
    cmd = header[0]
    port = struct.unpack(">H", header[1:3])[0]
    addr = header[3:7]
    await reader.readuntil(b"\x00")  # user id, ignored

    # 0.0.0.x with x != 0 marks a SOCKS4a request carrying a host name
    if addr[:3] == b"\x00\x00\x00" and addr[3] != 0:
        host = (await reader.readuntil(b"\x00"))[:-1].decode("idna")
    else:
        host = socket.inet_ntoa(addr)

    if cmd != SOCKS4_CONNECT:
        writer.write(_socks4_reply(SOCKS4Reply.REJECTED))
        await writer.drain()
        raise ProtocolError(f"Unsupported SOCKS4 command: {cmd}")

    return Handshake(
        request=ChannelRequest(source[0], source[1], host, port),
        success_reply=_socks4_reply(SOCKS4Reply.GRANTED),
        failure_reply=lambda error: _socks4_reply(SOCKS4Reply.REJECTED),
    )


# ============================================================================
# HTTP
# ============================================================================

def _http_failure(error: BaseException) -> bytes:
    return HTTP_BAD_GATEWAY


async def read_http(
    first: bytes,
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    source: Tuple[str, int],
) -> Handshake:
    """
    Parse an HTTP proxy request head.

    CONNECT requests become a plain tunnel. Absolute-URI requests
    (``GET http://host/path HTTP/1.1``) are rewritten to origin form and
    sent down the channel as the first payload. Only that first request
    is rewritten, so the origin is told to close the connection after
    answering it.
    """
    try:
        head = first + await reader.readuntil(b"\r\n\r\n")
    except asyncio.LimitOverrunError as e:
        writer.write(HTTP_BAD_REQUEST)
        await writer.drain()
        raise ProtocolError("HTTP request head too large") from e

    request_line, _, headers = head.partition(b"\r\n")
    parts = request_line.decode("latin-1").split()
    if len(parts) != 3 or not parts[2].startswith("HTTP/"):
        writer.write(HTTP_BAD_REQUEST)
        await writer.drain()
        raise ProtocolError(f"Malformed HTTP request line: {request_line[:100]!r}")

    method, target, version = parts
    if method.upper() == "CONNECT":
        try:
            host, port = split_host_port(target)
        except ProtocolError:
            writer.write(HTTP_BAD_REQUEST)
            await writer.drain()
            raise
        return Handshake(
            request=ChannelRequest(source[0], source[1], host, port),
            success_reply=HTTP_CONNECT_ESTABLISHED,
            failure_reply=_http_failure,
        )

    url = urlsplit(target)
    if url.scheme.lower() != "http" or not url.hostname:
        writer.write(HTTP_BAD_REQUEST)
        await writer.drain()
        raise ProtocolError(f"Unsupported HTTP proxy target: {target}")

    try:
        port = url.port or 80
    except ValueError:
        writer.write(HTTP_BAD_REQUEST)
        await writer.drain()
        raise ProtocolError(f"Invalid port in target: {target}") from None

    path = url.path or "/"
    if url.query:
        path = f"{path}?{url.query}"

    kept = [
        line for line in headers.split(b"\r\n")
        if line and line.split(b":", 1)[0].strip().lower() not in HOP_BY_HOP_HEADERS
    ]
    head_lines = [f"{method} {path} {version}".encode("latin-1"), *kept, b"Connection: close"]
    payload = b"\r\n".join(head_lines) + b"\r\n\r\n"

    return Handshake(
        request=ChannelRequest(source[0], source[1], url.hostname, port),
        success_reply=b"",
        failure_reply=_http_failure,
        payload=payload,
    )
