"""
Configuration-related constants and resource limits.
"""

# Maximum config file size (1MB); suite configs are small
MAX_CONFIG_SIZE_BYTES = 1024 * 1024

# Environment overrides: E2E_RETRY__ATTEMPTS=3 -> retry.attempts
ENV_PREFIX = "E2E_"
ENV_NESTING_SEPARATOR = "__"
