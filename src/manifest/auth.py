"""Request signing for the manifest API."""
import hmac
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def sign_payload(payload_body: bytes, secret_token: str) -> str:
    """Build the X-Manifest-Signature-256 header value for a request body."""
    hash_object = hmac.new(
        secret_token.encode('utf-8'),
        msg=payload_body,
        digestmod=hashlib.sha256
    )
    return SIGNATURE_PREFIX + hash_object.hexdigest()


def verify_request_signature(
    payload_body: bytes,
    secret_token: Optional[str],
    signature: Optional[str]
) -> bool:
    """Verify that the payload was signed with the shared API secret.

    Args:
        payload_body: Original request body to verify
        secret_token: Shared secret (MANIFEST_API_SECRET)
        signature: Header received with the request (X-Manifest-Signature-256)

    Returns:
        True if signature is valid, False otherwise
    """
    if not secret_token:
        logger.warning("No API secret configured; refusing signed request")
        return False

    if not signature:
        return False

    if not signature.startswith(SIGNATURE_PREFIX):
        return False

    expected_signature = sign_payload(payload_body, secret_token)

    return hmac.compare_digest(expected_signature, signature)
