"""
Infrastructure layer: paramiko transport and proxy protocol engine
"""
