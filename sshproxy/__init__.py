"""
sshproxy - HTTP/SOCKS proxy over a single SSH session

Exposes a local proxy endpoint that forwards every client connection
through one authenticated SSH session, the way ``ssh -D`` does for
SOCKS-only clients:
- HTTP CONNECT, plain HTTP, SOCKS4/4a and SOCKS5 on one port
- Transparent SSH session restart when the session went stale
- Idle timeout for client connections
"""

__version__ = "0.1.0"

from .core import (
    SSHProxyError,
    ConnectFailure,
    NotConnectedError,
    ChannelOpenFailure,
    ListenFailure,
)

from .domain.tunnel import (
    ChannelRequest,
    ConnectOptions,
    ProxyConfig,
    SessionState,
    Session,
    ResilientChannelProvider,
    ConnectionDispatcher,
)

__all__ = [
    # Version
    "__version__",
    # Errors
    "SSHProxyError",
    "ConnectFailure",
    "NotConnectedError",
    "ChannelOpenFailure",
    "ListenFailure",
    # Models
    "ChannelRequest",
    "ConnectOptions",
    "ProxyConfig",
    "SessionState",
    # Tunnel
    "Session",
    "ResilientChannelProvider",
    "ConnectionDispatcher",
]
