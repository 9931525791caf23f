"""
Resolve merged configuration into connect options and proxy config
"""
import getpass
from pathlib import Path
from typing import Dict, Any, Tuple

from ...core.constants import (
    DEFAULT_SSH_PORT,
    DEFAULT_SSH_TIMEOUT,
    DEFAULT_SSH_KEEPALIVE,
    DEFAULT_IDENTITY_FILE,
    DEFAULT_DYNAMIC,
    DEFAULT_IDLE_TIMEOUT,
    SSH_CONFIG_PATH,
)
from ...core.exceptions import ConfigError
from ...core.logging import get_logger
from ...core.utils import load_ssh_config
from ...domain.tunnel.models import ConnectOptions, ProxyConfig
from .host_parser import parse_host_string, parse_dynamic

logger = get_logger(__name__)


def resolve_settings(
    cfg: Dict[str, Any],
    ssh_config_path: str = SSH_CONFIG_PATH,
) -> Tuple[ConnectOptions, ProxyConfig]:
    """
    Resolve SSH connect options and proxy config.
    
    Explicit host/user/port keys win over the destination string;
    ~/.ssh/config fills in whatever is still missing for host aliases.
    
    Args:
        cfg: Merged configuration dictionary
        ssh_config_path: SSH config file consulted for host aliases
    
    Returns:
        (ConnectOptions, ProxyConfig)
    
    Raises:
        ConfigError: If required values are missing or invalid
    """
    host, user, port = None, None, None
    if cfg.get("destination"):
        host, user, port = parse_host_string(str(cfg["destination"]))
    
    host = str(cfg["host"]) if cfg.get("host") else host
    user = str(cfg["user"]) if cfg.get("user") else user
    port = cfg.get("port") or port
    identity = cfg.get("identity")
    
    if not host:
        raise ConfigError("SSH host is required: pass [user@]host[:port] or --host")
    
    if Path(ssh_config_path).expanduser().exists():
        entry = load_ssh_config(host, ssh_config_path)
        host = entry["host"]
        user = user or entry["user"]
        port = port or entry["port"]
        identity = identity or entry["key_file"]
    
    user = user or getpass.getuser()
    password = cfg.get("password")
    
    if password:
        auth_method, key_path = "password", None
    else:
        auth_method, key_path = "key", identity
        if key_path is None and Path(DEFAULT_IDENTITY_FILE).expanduser().exists():
            key_path = DEFAULT_IDENTITY_FILE
    
    try:
        options = ConnectOptions(
            host=host,
            user=user,
            port=int(port or DEFAULT_SSH_PORT),
            auth_method=auth_method,
            password=password or None,
            key_path=str(Path(key_path).expanduser()) if key_path else None,
            timeout=float(cfg.get("timeout", DEFAULT_SSH_TIMEOUT)),
            keepalive_interval=int(cfg.get("ssh_keepalive", DEFAULT_SSH_KEEPALIVE)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid SSH settings: {e}") from e
    options.validate()
    
    proxy = cfg.get("proxy", {})
    bind_host, bind_port = parse_dynamic(proxy.get("dynamic", DEFAULT_DYNAMIC))
    try:
        proxy_config = ProxyConfig(
            bind_host=bind_host,
            bind_port=bind_port,
            idle_timeout=float(proxy.get("keepalive", DEFAULT_IDLE_TIMEOUT)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid proxy settings: {e}") from e
    proxy_config.validate()
    
    return options, proxy_config
