"""
Signature verification for inbound job deliveries.

The scheduler (QStash) signs every delivery with a short-lived HS256 JWT in
the ``Upstash-Signature`` header. The token's ``body`` claim is the
base64url-encoded SHA-256 of the raw request body, so the body must be
verified byte-for-byte before it is parsed.

Two keys are held, "current" and "next", so signing keys can rotate without
downtime: a token signed with either is accepted.
"""

import base64
import hashlib
import hmac
import logging

import jwt  # PyJWT

from src.core.config import get_settings
from src.core.exceptions import MissingCredentialsError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Upstash-Signature"
SIGNATURE_ISSUER = "Upstash"
JWT_ALG = "HS256"


def body_digest(body: bytes) -> str:
    """Unpadded base64url SHA-256 digest of *body*."""
    digest = hashlib.sha256(body).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


class SignatureVerifier:
    """Checks delivery signatures against the current and next signing keys.

    Args:
        current_key: The signing key in active use.
        next_key: The key that will replace it after rotation.
        clock_tolerance: Seconds of leeway for ``exp`` / ``nbf``.
    """

    def __init__(self, current_key: str, next_key: str, clock_tolerance: int = 0) -> None:
        self._keys = (current_key, next_key)
        self._leeway = clock_tolerance

    def _verify_with_key(self, key: str, signature: str, body: bytes, url: str | None) -> bool:
        try:
            claims = jwt.decode(
                signature,
                key,
                algorithms=[JWT_ALG],
                issuer=SIGNATURE_ISSUER,
                leeway=self._leeway,
                options={"require": ["iss", "exp", "nbf", "body"]},
            )
        except jwt.InvalidTokenError:
            return False

        claimed = str(claims.get("body", "")).rstrip("=")
        if not hmac.compare_digest(claimed.encode("ascii", "replace"), body_digest(body).encode()):
            return False
        if url is not None and claims.get("sub") not in (None, url):
            return False
        return True

    def verify(self, signature: str | None, body: bytes, url: str | None = None) -> bool:
        """Return True if *signature* is valid for *body* under either key.

        Args:
            signature: Value of the signature header (may be missing).
            body: Raw request body exactly as received.
            url: Delivery URL to match against the ``sub`` claim, if given.
        """
        if not signature:
            return False
        # Both keys are always checked.
        results = [self._verify_with_key(key, signature, body, url) for key in self._keys]
        return any(results)


_verifier: SignatureVerifier | None = None


def get_verifier() -> SignatureVerifier:
    """Return the process-wide verifier, building it on first use.

    Raises:
        MissingCredentialsError: If either signing key is not configured.
    """
    global _verifier
    if _verifier is None:
        s = get_settings()
        if not s.qstash_current_signing_key:
            raise MissingCredentialsError("QSTASH_CURRENT_SIGNING_KEY", "job delivery")
        if not s.qstash_next_signing_key:
            raise MissingCredentialsError("QSTASH_NEXT_SIGNING_KEY", "job delivery")
        _verifier = SignatureVerifier(
            s.qstash_current_signing_key,
            s.qstash_next_signing_key,
            clock_tolerance=s.signature_clock_tolerance_secs,
        )
    return _verifier


def reset_verifier() -> None:
    """Drop the memoized verifier (test helper)."""
    global _verifier
    _verifier = None
