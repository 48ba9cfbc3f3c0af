"""
Logger factory and privacy helpers.

Provides:
- get_logger(): Get a configured structlog logger
- hash_ip(): Hash IP addresses for privacy
- mask_email_for_log(): Mask an email address for privacy
- log_with_context(): Bind context to a logger
"""

from typing import Optional

import structlog
from structlog.stdlib import BoundLogger

from shared.logging_config import (
    configure_structlog,
    hash_ip as _hash_ip,
    mask_email as _mask_email,
    setup_logging,
)


def get_logger(name: str) -> BoundLogger:
    """
    Get a configured logger instance.

    Example:
        >>> from shared.logging import get_logger
        >>> log = get_logger(__name__)
        >>> log.info("otp_sent", email=mask_email_for_log(email))
    """
    return structlog.get_logger(name)


def hash_ip(ip_address: Optional[str]) -> Optional[str]:
    """Hash an IP address in production; ``None`` passes through."""
    if ip_address is None:
        return None
    return _hash_ip(ip_address)


def mask_email_for_log(email: Optional[str]) -> Optional[str]:
    """Mask an email for logging; ``None`` passes through."""
    if email is None:
        return None
    return _mask_email(email)


def log_with_context(logger: BoundLogger, **context) -> BoundLogger:
    """Bind context to a logger for all subsequent log calls."""
    return logger.bind(**context)


__all__ = [
    "get_logger",
    "hash_ip",
    "mask_email_for_log",
    "log_with_context",
    "configure_structlog",
    "setup_logging",
]
