"""Personal data handling for logs.

Names of people at risk and free-text threat descriptions are personal
data. They are hashed before they reach application logs; only the audit
trail (reviewed by an auditor) holds them in clear.
"""
import hashlib
import logging
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

MIN_SALT_LENGTH = 32
LOG_HASH_LENGTH = 16

# Set from PII_HASH_SALT when a service starts
_salt: Optional[str] = None


def configure_pii_salt(salt: str) -> None:
    """Set the secret salt for hash_pii().

    Services call this once at import time, before handling requests.

    Raises:
        ValueError: If the salt is shorter than MIN_SALT_LENGTH
    """
    global _salt
    if not salt or len(salt) < MIN_SALT_LENGTH:
        logger.critical(
            "PII_SALT_REJECTED",
            extra={"salt_length": len(salt or ""), "min_length": MIN_SALT_LENGTH}
        )
        raise ValueError(f"PII salt must be at least {MIN_SALT_LENGTH} characters")

    _salt = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def hash_pii(value: str) -> str:
    """Salted SHA-256 of a personal identifier, as 64 hex chars.

    Stable across log lines for the same person within one deployment.

    Raises:
        RuntimeError: If configure_pii_salt() has not been called
    """
    if _salt is None:
        logger.critical("PII_SALT_MISSING", extra={"value_length": len(value)})
        raise RuntimeError("configure_pii_salt() must be called before hash_pii()")

    return hashlib.sha256((_salt + value).encode("utf-8")).hexdigest()


def hash_people(people: Iterable[str]) -> List[str]:
    """Hash each name in a who-at-risk list, truncated for log lines.

    Args:
        people: Names of people at risk, in request order

    Returns:
        One LOG_HASH_LENGTH hex prefix of hash_pii() per name, same order

    Raises:
        RuntimeError: If configure_pii_salt() has not been called

    Example:
        >>> configure_pii_salt("x" * 32)
        >>> hashes = hash_people(["Alice", "Bob"])
        >>> len(hashes), len(hashes[0])
        (2, 16)
    """
    return [hash_pii(person)[:LOG_HASH_LENGTH] for person in people]


def hash_text_for_audit(text: str) -> str:
    """Fingerprint free text (action or harm descriptions) for logs.

    Unsalted so the same text can be matched against the audit trail.

    Args:
        text: Free text as submitted

    Returns:
        Full 64-char SHA-256 hex digest; callers truncate for log lines
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
