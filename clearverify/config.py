"""Shared configuration for the ClearVerify eligibility core.

This module centralizes environment variable access and default values
to prevent drift between modules.
"""

import os
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Payer connection profiles
PROVIDERS_FILE = os.getenv(
    "CLEARVERIFY_PROVIDERS_FILE",
    str(Path(__file__).parent / "providers" / "providers.yaml"),
)

# Outbound calls
REQUEST_TIMEOUT = float(os.getenv("CLEARVERIFY_REQUEST_TIMEOUT", "30"))

# Result cache
CACHE_TTL_SECONDS = int(os.getenv("CLEARVERIFY_CACHE_TTL", "3600"))
CACHE_SWEEP_INTERVAL = int(os.getenv("CLEARVERIFY_CACHE_SWEEP_INTERVAL", "60"))

# Credential broker: tokens are treated as expired this many seconds early
TOKEN_SAFETY_MARGIN = int(os.getenv("CLEARVERIFY_TOKEN_SAFETY_MARGIN", "60"))

# Fallback cascade
DEFAULT_CLEARINGHOUSE = os.getenv("CLEARVERIFY_CLEARINGHOUSE") or None
ALLOW_DEGRADED = _env_bool("CLEARVERIFY_ALLOW_DEGRADED", True)

# X12 submitter identity
SUBMITTER_ID = os.getenv("CLEARVERIFY_SUBMITTER_ID", "CLEARVERIFY")
SUBMITTER_NPI = os.getenv("CLEARVERIFY_SUBMITTER_NPI", "1234567890")
# T = test, P = production (ISA15)
USAGE_INDICATOR = os.getenv("CLEARVERIFY_USAGE_INDICATOR", "T")

# Integrity signing key (never defaulted)
SIGNING_KEY_ENV = "CLEARVERIFY_SIGNING_KEY"

# Batch verification
BATCH_WORKERS = int(os.getenv("CLEARVERIFY_BATCH_WORKERS", "8"))
