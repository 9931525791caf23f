"""
Tunnel domain module
"""
from .models import ChannelRequest, ConnectOptions, ProxyConfig, SessionState
from .session import Session
from .provider import ResilientChannelProvider
from .dispatch import ConnectionDispatcher

__all__ = [
    "ChannelRequest",
    "ConnectOptions",
    "ProxyConfig",
    "SessionState",
    "Session",
    "ResilientChannelProvider",
    "ConnectionDispatcher",
]
