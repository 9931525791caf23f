"""
Host string parsers

Handles the two address forms accepted on the command line:
- destination: hostname, user@hostname, user@hostname:port
- dynamic forward: port, bind_address:port, [v6_address]:port
"""
from typing import Optional, Tuple, Union

from ...core.constants import DEFAULT_BIND_HOST
from ...core.exceptions import ConfigError


def parse_host_string(host: str) -> Tuple[str, Optional[str], Optional[int]]:
    """
    Parse destination string into components.
    
    Args:
        host: Destination string (may include user and port)
        
    Returns:
        Tuple of (hostname, user, port)
        
    Examples:
        parse_host_string("server") -> ("server", None, None)
        parse_host_string("user@server") -> ("server", "user", None)
        parse_host_string("user@server:2222") -> ("server", "user", 2222)
        parse_host_string("[::1]:2222") -> ("::1", None, 2222)
    """
    user: Optional[str] = None
    port: Optional[int] = None
    
    if "@" in host:
        user, host = host.rsplit("@", 1)
        user = user or None
    
    if host.startswith("["):
        inner, _, rest = host[1:].partition("]")
        host = inner
        if rest.startswith(":"):
            port = _parse_port(rest[1:], host)
    elif host.count(":") == 1:
        host, port_str = host.split(":")
        port = _parse_port(port_str, host)
    
    if not host:
        raise ConfigError("Destination host is empty")
    
    return host, user, port


def parse_dynamic(value: Union[str, int]) -> Tuple[str, int]:
    """
    Parse a dynamic forward address "[bind_address:]port".
    
    Returns:
        Tuple of (bind_host, bind_port); bind_host defaults to 0.0.0.0
    """
    parts = str(value).split(":")
    port_str = parts.pop()
    bind_host = ":".join(parts).strip("[]") or DEFAULT_BIND_HOST
    return bind_host, _parse_port(port_str, str(value), allow_zero=True)


def _parse_port(value: str, context: str, allow_zero: bool = False) -> int:
    try:
        port = int(value)
    except ValueError:
        raise ConfigError(f"Invalid port '{value}' in '{context}'") from None
    lowest = 0 if allow_zero else 1
    if not (lowest <= port <= 65535):
        raise ConfigError(f"Port out of range in '{context}': {port}")
    return port
