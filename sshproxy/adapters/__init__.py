"""
Adapters: CLI and configuration
"""
