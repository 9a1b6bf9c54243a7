from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Optional

from services.job_runner.errors import AuthenticationError

LOGGER = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha1="


def compute_signature(payload: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha1).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify(payload: bytes, presented_signature: Optional[str], secret: str) -> bool:
    """
    Check an ``X-Hub-Signature`` header against the payload.

    Constant time regardless of where the first differing byte is.
    """
    if not presented_signature:
        return False
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(
        expected.encode("utf-8"), presented_signature.encode("utf-8")
    )


class SignatureVerifier:
    def __init__(self, secret: str) -> None:
        self._secret = secret

    def verify(self, payload: bytes, presented_signature: Optional[str]) -> bool:
        if not self._secret:
            LOGGER.warning(
                "GITHUB_WEBHOOK_SECRET is not set, rejecting webhook delivery"
            )
            return False
        return verify(payload, presented_signature, self._secret)

    def require(self, payload: bytes, presented_signature: Optional[str]) -> None:
        if not self.verify(payload, presented_signature):
            raise AuthenticationError("Signatures didn't match!")
