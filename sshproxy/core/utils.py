"""
Core utility functions
"""
import paramiko
from pathlib import Path
from typing import Dict, Any

from .constants import SSH_CONFIG_PATH, DEFAULT_SSH_PORT
from .exceptions import ConfigError


# ============================================================
# SSH Config Management
# ============================================================

def load_ssh_config(hostname: str, config_path: str = SSH_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration for specified Host from ~/.ssh/config.
    
    Args:
        hostname: Host name or alias in SSH configuration
        config_path: SSH config file path
    
    Returns:
        Dictionary containing host, user, port, key_file
    
    Raises:
        ConfigError: If the config file doesn't exist or cannot be parsed
    """
    path = Path(config_path).expanduser()
    if not path.exists():
        raise ConfigError(f"{config_path} does not exist")

    try:
        ssh_config = paramiko.SSHConfig.from_path(str(path))
    except (OSError, paramiko.SSHException) as e:
        raise ConfigError(f"Failed to parse {config_path}: {e}") from e
    entry = ssh_config.lookup(hostname)

    return {
        "host": entry.get("hostname", hostname),
        "user": entry.get("user", None),
        "port": int(entry.get("port", DEFAULT_SSH_PORT)),
        "key_file": entry.get("identityfile", [None])[0],
    }
