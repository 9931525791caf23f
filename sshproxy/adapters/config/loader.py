"""
Configuration loader with priority: CLI > env > TOML > defaults
"""
import os
import tomllib
from pathlib import Path
from typing import Dict, Any, Optional

from ...core.constants import ENV_PREFIX
from ...core.exceptions import ConfigError


class ConfigLoader:
    """Configuration loader with priority support"""
    
    # Environment variable suffix -> config key
    ENV_MAPPINGS = {
        "HOST": "host",
        "USER": "user",
        "PORT": "port",
        "PASSWORD": "password",
        "IDENTITY": "identity",
        "TIMEOUT": "timeout",
        "SSH_KEEPALIVE": "ssh_keepalive",
        "DYNAMIC": "proxy.dynamic",
        "KEEPALIVE": "proxy.keepalive",
    }
    
    def __init__(self, env_prefix: str = ENV_PREFIX, environ: Optional[Dict[str, str]] = None):
        self._env_prefix = env_prefix
        self._environ = os.environ if environ is None else environ
    
    def load_toml(self, path: Path) -> Dict[str, Any]:
        """Load TOML configuration file"""
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
        
        try:
            return tomllib.loads(path.read_text(encoding='utf-8'))
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Failed to parse TOML configuration: {e}") from e
    
    def load_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        config: Dict[str, Any] = {}
        
        for suffix, config_key in self.ENV_MAPPINGS.items():
            value = self._environ.get(self._env_prefix + suffix)
            if not value:
                continue
            # Passwords are taken verbatim
            converted = value if config_key == "password" else self._convert_value(value)
            if "." in config_key:
                section, key = config_key.split(".", 1)
                config.setdefault(section, {})[key] = converted
            else:
                config[config_key] = converted
        
        return config
    
    def _convert_value(self, value: str) -> Any:
        """Convert string value to appropriate type"""
        try:
            return int(value)
        except ValueError:
            pass
        
        try:
            return float(value)
        except ValueError:
            pass
        
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False
        
        return value
    
    def merge_configs(self, *configs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge multiple configurations with priority.
        Later configs override earlier ones.
        """
        result: Dict[str, Any] = {}
        
        for config in configs:
            result = self._deep_merge(result, config)
        
        return result
    
    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, ignoring None overrides"""
        result = base.copy()
        
        for key, value in override.items():
            if value is None:
                continue
            if isinstance(value, dict):
                current = result.get(key)
                result[key] = self._deep_merge(current if isinstance(current, dict) else {}, value)
            else:
                result[key] = value
        
        return result
    
    def load(
        self,
        toml_path: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
        use_env: bool = True,
    ) -> Dict[str, Any]:
        """
        Load configuration with priority: CLI > env > TOML > defaults
        
        Args:
            toml_path: Path to TOML configuration file
            cli_overrides: CLI parameter overrides (None values are skipped)
            use_env: Whether to load from environment variables
        
        Returns:
            Merged configuration dictionary
        """
        configs = []
        
        if toml_path:
            configs.append(self.load_toml(toml_path))
        
        if use_env:
            env_config = self.load_env()
            if env_config:
                configs.append(env_config)
        
        if cli_overrides:
            configs.append(cli_overrides)
        
        return self.merge_configs(*configs)
