"""ID Generation Utilities"""
import secrets
import string
import uuid
from datetime import datetime, timezone
from typing import Optional

LINKING_CODE_ALPHABET = string.ascii_uppercase + string.digits
LINKING_CODE_LENGTH = 6
CHALLENGE_MIN = 1000
CHALLENGE_MAX = 9999


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'LOG', 'NTF')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('LOG')
        'LOG-a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_delivery_log_id() -> str:
    """Generate delivery log entry ID"""
    return generate_id("DLV")


def generate_linking_code() -> str:
    """Generate a 6 character uppercase alphanumeric linking code"""
    return "".join(secrets.choice(LINKING_CODE_ALPHABET) for _ in range(LINKING_CODE_LENGTH))


def generate_challenge_number() -> int:
    """Generate a 4 digit challenge number in [1000, 9999]"""
    return CHALLENGE_MIN + secrets.randbelow(CHALLENGE_MAX - CHALLENGE_MIN + 1)


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"
