"""Optional authentication of inbound webhooks.

GitHub signs the raw body with HMAC-SHA256 (``X-Hub-Signature-256``);
GitLab echoes a shared token (``X-Gitlab-Token``). Both checks use
constant-time comparison.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def verify_github_signature(
    payload_body: bytes,
    signature_header: Optional[str],
    secret: str,
) -> bool:
    """Verify a GitHub ``X-Hub-Signature-256`` header.

    Args:
        payload_body: Raw request body
        signature_header: Header value, ``sha256=<hexdigest>``
        secret: Webhook secret configured on GitHub

    Returns:
        True if the signature matches
    """
    if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        logger.warning("Invalid signature header format")
        return False

    received_signature = signature_header[len(SIGNATURE_PREFIX):]
    expected_signature = hmac.new(
        key=secret.encode("utf-8"),
        msg=payload_body,
        digestmod=hashlib.sha256,
    ).hexdigest()

    is_valid = hmac.compare_digest(received_signature, expected_signature)
    if not is_valid:
        logger.warning("Webhook signature verification failed")
    return is_valid


def verify_gitlab_token(token_header: Optional[str], token: str) -> bool:
    """Verify a GitLab ``X-Gitlab-Token`` header."""
    if not token_header:
        logger.warning("GitLab token header is missing")
        return False
    is_valid = hmac.compare_digest(token_header.encode("utf-8"), token.encode("utf-8"))
    if not is_valid:
        logger.warning("GitLab token verification failed")
    return is_valid


__all__ = ["verify_github_signature", "verify_gitlab_token"]
