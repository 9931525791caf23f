"""
Tunnel domain models
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, Literal

from ...core.constants import (
    DEFAULT_SSH_PORT,
    DEFAULT_SSH_TIMEOUT,
    DEFAULT_SSH_KEEPALIVE,
    DEFAULT_BIND_HOST,
    DEFAULT_IDLE_TIMEOUT,
)
from ...core.exceptions import ConfigError


class SessionState(str, Enum):
    """SSH session connectivity state"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"


@dataclass(frozen=True)
class ChannelRequest:
    """One proxy client's requested tunnel"""
    source_host: str
    source_port: int
    dest_host: str
    dest_port: int
    
    @property
    def source(self) -> str:
        return f"{self.source_host}:{self.source_port}"
    
    @property
    def destination(self) -> str:
        return f"{self.dest_host}:{self.dest_port}"


@dataclass(frozen=True)
class ConnectOptions:
    """SSH connect options, resolved once at startup"""
    host: str
    user: str
    port: int = DEFAULT_SSH_PORT
    auth_method: Literal["password", "key"] = "key"
    password: Optional[str] = field(default=None, repr=False)
    key_path: Optional[str] = None
    timeout: float = DEFAULT_SSH_TIMEOUT
    keepalive_interval: int = DEFAULT_SSH_KEEPALIVE
    
    def validate(self) -> None:
        """Validate options"""
        if not self.host:
            raise ConfigError("SSH host is required")
        if not (1 <= self.port <= 65535):
            raise ConfigError(f"Invalid SSH port: {self.port}")
        if self.auth_method not in ("password", "key"):
            raise ConfigError(f"Unsupported auth method: {self.auth_method}")
        if self.auth_method == "password" and self.password is None:
            raise ConfigError("Password authentication requires a password")
        if self.timeout <= 0:
            raise ConfigError(f"Invalid connect timeout: {self.timeout}")
        if self.keepalive_interval < 0:
            raise ConfigError(f"Invalid SSH keepalive interval: {self.keepalive_interval}")
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with the password masked"""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "auth_method": self.auth_method,
            "password": "*" * len(self.password) if self.password else None,
            "key_path": self.key_path,
            "timeout": self.timeout,
            "keepalive_interval": self.keepalive_interval,
        }


@dataclass(frozen=True)
class ProxyConfig:
    """Local proxy listener configuration"""
    bind_port: int
    bind_host: str = DEFAULT_BIND_HOST
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT  # seconds, 0 disables
    
    def validate(self) -> None:
        """Validate configuration"""
        # Port 0 asks the OS for a free port
        if not (0 <= self.bind_port <= 65535):
            raise ConfigError(f"Invalid bind port: {self.bind_port}")
        if self.idle_timeout < 0:
            raise ConfigError(f"Invalid idle timeout: {self.idle_timeout}")
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "bind_host": self.bind_host,
            "bind_port": self.bind_port,
            "idle_timeout": self.idle_timeout,
        }
