"""
Core infrastructure layer
"""
from .constants import *
from .exceptions import *
from .logging import setup_logging, get_logger, get_stdout_console, get_stderr_console
from .interfaces import Channel, Transport, ConnectionFactory
from .telemetry import Telemetry, get_telemetry

__all__ = [
    "setup_logging",
    "get_logger",
    "get_stdout_console",
    "get_stderr_console",
    "Channel",
    "Transport",
    "ConnectionFactory",
    "Telemetry",
    "get_telemetry",
    "SSHProxyError",
    "ConfigError",
    "SessionError",
    "ConnectFailure",
    "NotConnectedError",
    "ChannelOpenFailure",
    "ListenFailure",
    "ProtocolError",
]
