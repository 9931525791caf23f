"""
Unified exception definitions
"""


class SSHProxyError(Exception):
    """Base exception class"""
    pass


class ConfigError(SSHProxyError):
    """Configuration error"""
    pass


class SessionError(SSHProxyError):
    """SSH session error"""
    pass


class ConnectFailure(SessionError):
    """SSH session could not be established"""
    pass


class NotConnectedError(SessionError):
    """SSH session is absent or has gone stale"""

    def __init__(self, message: str = "Not connected"):
        super().__init__(message)


class ChannelOpenFailure(SSHProxyError):
    """Destination channel rejected by the SSH server"""
    pass


class ListenFailure(SSHProxyError):
    """Local proxy listener could not be started"""
    pass


class ProtocolError(SSHProxyError):
    """Malformed or unsupported proxy client request"""
    pass
