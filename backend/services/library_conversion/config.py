"""
GPI Document Hub - Folder Conversion Configuration

Settings for converting legacy folders into libraries. Values are read from
the environment once at import time; server.py loads .env before importing
this module.
"""

import os


# =============================================================================
# FEATURE FLAG
# =============================================================================

def is_conversion_enabled() -> bool:
    """Check if folder conversion is enabled via feature flag."""
    return os.environ.get("CONVERSION_ENABLED", "true").lower() in ("true", "1", "yes")


# =============================================================================
# NAMING
# =============================================================================

# Libraries and permission groups are named "<prefix>_<folder developer name>"
LIBRARY_NAME_PREFIX = os.environ.get("LIBRARY_NAME_PREFIX", "LIB")

# Separator for the sharing principal list stored on a conversion request
PRINCIPAL_SEPARATOR = ","


# =============================================================================
# LEGACY SYSTEM
# =============================================================================

LEGACY_API_BASE = os.environ.get("LEGACY_API_BASE", "http://localhost:8080/api")
RESOLVER_TIMEOUT_SECONDS = float(os.environ.get("RESOLVER_TIMEOUT_SECONDS", "30"))


# =============================================================================
# PROCESSING
# =============================================================================

# Maximum completion events drained per consumer run
EVENT_BATCH_SIZE = int(os.environ.get("EVENT_BATCH_SIZE", "50"))

# Completion events that keep failing are parked after this many attempts
EVENT_MAX_ATTEMPTS = int(os.environ.get("EVENT_MAX_ATTEMPTS", "5"))

# Default page size for request listings
REQUEST_LIST_LIMIT = int(os.environ.get("REQUEST_LIST_LIMIT", "100"))
