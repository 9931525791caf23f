"""
Core interfaces for dependency injection
"""
from abc import ABC, abstractmethod
from typing import Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from ..domain.tunnel.models import ChannelRequest, ConnectOptions


class Channel(ABC):
    """Bidirectional byte stream to one destination"""
    
    @abstractmethod
    async def read(self, n: int) -> bytes:
        """Read up to n bytes; returns b"" at end of stream"""
        pass
    
    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Write all of data"""
        pass
    
    @abstractmethod
    def write_eof(self) -> None:
        """Signal that no more data will be written"""
        pass
    
    @abstractmethod
    def close(self) -> None:
        """Close the stream; idempotent"""
        pass
    
    @property
    @abstractmethod
    def closed(self) -> bool:
        """Whether the stream has been closed"""
        pass


class Transport(ABC):
    """One SSH session handle"""
    
    @abstractmethod
    async def connect(self) -> None:
        """Establish the session; raises ConnectFailure"""
        pass
    
    @abstractmethod
    async def open_channel(self, request: "ChannelRequest") -> Channel:
        """
        Open a forwarded channel.
        
        Raises:
            NotConnectedError: If the session is gone
            ChannelOpenFailure: If the server rejects the destination
        """
        pass
    
    @abstractmethod
    def close(self) -> None:
        """Release the session; idempotent, never fires on_closed"""
        pass
    
    @abstractmethod
    def is_alive(self) -> bool:
        """Check if the session is active"""
        pass


class ConnectionFactory(ABC):
    """SSH transport factory interface"""
    
    @abstractmethod
    def create(self, options: "ConnectOptions", on_closed: Callable[[], None]) -> Transport:
        """
        Create an unconnected transport.
        
        Args:
            options: Connect options
            on_closed: Called once when the session ends on its own
        """
        pass
