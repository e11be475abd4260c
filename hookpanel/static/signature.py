# hookpanel/static/signature.py
"""
Webhook signature verification.

Two forms are accepted, both keyed by the script's own webhook secret:

* URL signature: hex HMAC-SHA256 of the script id, handed out as the
  ``signature`` query parameter of the webhook URL or sent verbatim in
  ``X-Hook-Signature``.
* Body signature: ``X-Hook-Signature: sha256=<hex>`` where the digest is the
  HMAC-SHA256 of the raw request body.

Rotating the secret changes both forms at once, so previously issued URLs
stop verifying immediately.
"""
import hashlib
import hmac
from typing import Optional, Tuple

SIGNATURE_HEADER = "X-Hook-Signature"
SIGNATURE_PARAM = "signature"
BODY_SIGNATURE_PREFIX = "sha256="


def _hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def url_signature(secret: str, script_id: str) -> str:
    return _hmac_hex(secret, script_id.encode())


def body_signature(secret: str, body: bytes) -> str:
    return BODY_SIGNATURE_PREFIX + _hmac_hex(secret, body)


class SignatureVerifier:
    @staticmethod
    def extract(query_value: Optional[str], header_value: Optional[str]) -> Optional[str]:
        """Query parameter wins over the header"""
        return query_value or header_value or None

    @staticmethod
    def verify(secret: str, script_id: str, body: bytes, signature: Optional[str]) -> Tuple[bool, Optional[str]]:
        """
        Check a presented signature against the script's secret.

        Args:
            secret: The script's webhook secret
            script_id: Script the request targets
            body: Raw request body
            signature: Value from the query parameter or header

        Returns:
            Tuple[bool, Optional[str]]: (is_valid, error_message)
        """
        if not signature:
            return False, "Missing signature"
        if not secret:
            return False, "Script has no webhook secret"

        if signature.startswith(BODY_SIGNATURE_PREFIX):
            expected = body_signature(secret, body)
        else:
            expected = url_signature(secret, script_id)

        if hmac.compare_digest(signature.encode(), expected.encode()):
            return True, None
        return False, "Invalid signature"


signature_verifier = SignatureVerifier()
