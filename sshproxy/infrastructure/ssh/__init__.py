"""
SSH transport module
"""
from .channel import SSHChannel
from .transport import SSHTransport, SSHConnectionFactory, load_private_key

__all__ = ["SSHChannel", "SSHTransport", "SSHConnectionFactory", "load_private_key"]
