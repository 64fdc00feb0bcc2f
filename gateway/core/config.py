"""
Gateway configuration - environment driven, loaded once at import.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/gateway.db")

# Debug flag
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Operations an unrestricted ("*" or empty) scope grants
AUTHORIZED_OPERATIONS = [
    op.strip() for op in os.getenv(
        "AUTHORIZED_OPERATIONS",
        "vote,comment,delete_comment,comment_options,custom_json,claim_reward_balance,"
        "follow,unfollow,ignore,reblog"
    ).split(",") if op.strip()
]

# Ledger client configuration
LEDGER_PROVIDER = os.getenv("LEDGER_PROVIDER", "memory")  # memory|rpc
LEDGER_RPC_URL = os.getenv("LEDGER_RPC_URL", "http://127.0.0.1:8090")
LEDGER_RPC_TIMEOUT_SEC = float(os.getenv("LEDGER_RPC_TIMEOUT_SEC", "10"))
BROADCASTER_POSTING_KEY = os.getenv("BROADCASTER_POSTING_KEY")

# Registration throttle (per client IP)
REGISTER_ALLOWED_USES = os.getenv("REGISTER_ALLOWED_USES", "2")
REGISTER_WINDOW_SIZE = os.getenv("REGISTER_WINDOW_SIZE", "1")
REGISTER_WINDOW_UNIT = os.getenv("REGISTER_WINDOW_UNIT", "week")  # second|minute|hour|day|week|month|year|decade|century

# Registration sponsor account
REGISTRATION_SPONSOR = os.getenv("REGISTRATION_SPONSOR", "gateway")
REGISTRATION_FEE = os.getenv("REGISTRATION_FEE", "1.000 TME")
REGISTRATION_DELEGATION = os.getenv("REGISTRATION_DELEGATION", "1337.455455 SCORE")

# user_metadata limit in bytes
USER_METADATA_MAX_SIZE = int(os.getenv("USER_METADATA_MAX_SIZE", "1000000"))

# Version string
VERSION = "1.0.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory():
    """Ensure the database directory exists."""
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def get_registration_limits():
    """Raw (allowed_uses, window_size, window_unit) for the register endpoint.

    Values are passed through unparsed when they are not integers so that the
    rate limiter can fail closed on them.
    """
    return _as_int(REGISTER_ALLOWED_USES), _as_int(REGISTER_WINDOW_SIZE), REGISTER_WINDOW_UNIT


def _as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


def get_ledger_client():
    """Get the configured ledger client implementation."""
    if LEDGER_PROVIDER == "rpc":
        from .ledger import JsonRpcLedgerClient
        return JsonRpcLedgerClient(LEDGER_RPC_URL, timeout=LEDGER_RPC_TIMEOUT_SEC)
    from .ledger import InMemoryLedgerClient
    return InMemoryLedgerClient()


def validate_rate_limit_config():
    """Validate registration throttle configuration and return any issues."""
    from .rate_limit import WINDOW_UNITS

    issues = []
    allowed_uses, window_size, window_unit = get_registration_limits()

    if not isinstance(allowed_uses, int) or allowed_uses < 1:
        issues.append(f"Invalid REGISTER_ALLOWED_USES: {allowed_uses}")

    if not isinstance(window_size, int) or window_size < 1:
        issues.append(f"Invalid REGISTER_WINDOW_SIZE: {window_size}")

    if window_unit not in WINDOW_UNITS:
        issues.append(f"Invalid REGISTER_WINDOW_UNIT: {window_unit}")

    if LEDGER_PROVIDER not in ["memory", "rpc"]:
        issues.append(f"Invalid LEDGER_PROVIDER: {LEDGER_PROVIDER}")

    return issues
