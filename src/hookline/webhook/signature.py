"""HMAC-SHA256 verification of GitHub webhook deliveries.

GitHub signs each delivery body with the shared webhook secret and sends
the result in the X-Hub-Signature-256 header as "sha256=<hexdigest>".

When no secret is configured the service runs in unauthenticated mode:
every delivery verifies.
"""

import hashlib
import hmac
from typing import Optional

SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Compute the X-Hub-Signature-256 header value for a body.

    Args:
        raw_body: The exact request body bytes.
        secret: The shared webhook secret.

    Returns:
        str: Signature in the form "sha256=<hexdigest>".
    """
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256)
    return SIGNATURE_PREFIX + digest.hexdigest()


def verify_signature(
    raw_body: bytes,
    provided_signature: Optional[str],
    secret: str,
) -> bool:
    """Check a delivery's signature against the shared secret.

    The comparison is constant-time over the provided value. A missing
    header is compared as an empty string.

    Args:
        raw_body: The exact request body bytes.
        provided_signature: The X-Hub-Signature-256 header value, if any.
        secret: The shared webhook secret. Empty means unauthenticated mode.

    Returns:
        bool: True if the signature matches or no secret is configured.
    """
    if not secret:
        return True

    expected = compute_signature(raw_body, secret).encode("utf-8")
    provided = (provided_signature or "").encode("utf-8")
    return hmac.compare_digest(expected, provided)
