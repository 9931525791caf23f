"""
Project constants definitions
"""

# ============================================================
# SSH Defaults
# ============================================================

DEFAULT_SSH_PORT = 22
DEFAULT_SSH_TIMEOUT = 10
DEFAULT_SSH_KEEPALIVE = 0
DEFAULT_IDENTITY_FILE = "~/.ssh/id_rsa"

# ============================================================
# Proxy Defaults
# ============================================================

DEFAULT_DYNAMIC = "8080"
DEFAULT_BIND_HOST = "0.0.0.0"
DEFAULT_IDLE_TIMEOUT = 0
DEFAULT_LISTEN_BACKLOG = 128

# Relay buffer size for a single read
RELAY_CHUNK_SIZE = 8192

# Seconds between SSH transport liveness checks
SESSION_MONITOR_INTERVAL = 1.0

# Seconds allowed for a proxy client to send its request
HANDSHAKE_TIMEOUT = 30

# ============================================================
# SSH Config
# ============================================================

SSH_CONFIG_PATH = "~/.ssh/config"

# ============================================================
# Environment
# ============================================================

ENV_PREFIX = "SSHPROXY_"
