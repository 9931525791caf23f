"""
Proxy protocol engine module
"""
from .server import ProxyServer, ClientConnection

__all__ = ["ProxyServer", "ClientConnection"]
