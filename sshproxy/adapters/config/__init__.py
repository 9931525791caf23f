"""
Configuration adapters
"""
from .loader import ConfigLoader
from .host_parser import parse_host_string, parse_dynamic
from .settings import resolve_settings

__all__ = ["ConfigLoader", "parse_host_string", "parse_dynamic", "resolve_settings"]
