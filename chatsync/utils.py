"""
Utility functions for session tokens.
"""

import hmac
import hashlib
import logging

logger = logging.getLogger(__name__)


def sign_subject(subject: str, secret: str) -> str:
    """Hex-encoded HMAC-SHA256 of the subject id keyed by secret."""
    return hmac.new(
        secret.encode("utf-8"),
        subject.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


def verify_hmac_signature(subject: str, signature: str, secret: str) -> bool:
    """
    Verify HMAC-SHA256 signature.

    Args:
        subject: Signed subject id
        signature: Hex-encoded signature, as produced by sign_subject
        secret: AUTH_SECRET

    Returns:
        True if signature is valid, False otherwise
    """
    expected_signature = sign_subject(subject, secret)

    # Compare bytes: compare_digest rejects str arguments with non-ASCII characters
    is_valid = hmac.compare_digest(expected_signature.encode("utf-8"), signature.encode("utf-8"))
    logger.debug(f"HMAC signature verification: {'valid' if is_valid else 'invalid'}")

    return is_valid


def parse_custom_token(token: str, secret: str) -> str | None:
    """
    Parse a "<subject>.<hex signature>" token.

    Returns:
        The subject id if the signature verifies, None otherwise
    """
    subject, sep, signature = token.rpartition(".")
    if not sep or not subject or not signature:
        logger.warning("Malformed custom token")
        return None
    if not secret:
        logger.warning("Custom token supplied but AUTH_SECRET is not configured")
        return None
    if not verify_hmac_signature(subject, signature, secret):
        return None
    return subject
