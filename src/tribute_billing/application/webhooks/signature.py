"""Application webhooks – HMAC-SHA256 verification of the ``trbt-signature`` header."""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from typing import Literal, Union

from tribute_billing.config.validation import ConfigurationError

__all__ = [
    "SIGNATURE_HEADER",
    "SUPPORTED_ENCODINGS",
    "RawBody",
    "SignatureEncoding",
    "SignatureVerifier",
    "normalize_body",
    "verify_signature",
]

SIGNATURE_HEADER = "trbt-signature"
SUPPORTED_ENCODINGS: tuple[str, ...] = ("hex", "base64")

SignatureEncoding = Literal["hex", "base64"]
RawBody = Union[bytes, bytearray, memoryview, str]


def normalize_body(body: RawBody) -> bytes:
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)
    raise TypeError(f"Expected raw body as bytes, bytearray, memoryview or str, got {type(body).__name__}")


def _decode_header(header: str, encoding: str) -> bytes | None:
    try:
        if encoding == "hex":
            return bytes.fromhex(header)
        return base64.b64decode(header, validate=True)
    except (ValueError, binascii.Error):
        return None


class SignatureVerifier:
    """Signs and verifies Tribute webhook bodies using HMAC-SHA256.

    The digest is computed over the exact raw bytes received; re-serialising
    parsed JSON would change the signature.
    """

    ALG = "sha256"

    def __init__(self, secret: str | bytes | None, encoding: str = "hex") -> None:
        if not secret:
            raise ConfigurationError("Tribute API key is required for signature verification")
        if encoding not in SUPPORTED_ENCODINGS:
            raise ConfigurationError(f"Unsupported signature encoding: {encoding}")
        self._secret = secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)
        self.encoding = encoding

    def digest(self, body: RawBody) -> bytes:
        return hmac.new(self._secret, normalize_body(body), hashlib.sha256).digest()

    def sign(self, body: RawBody) -> str:
        """Return the header value Tribute would send for *body*."""
        raw = self.digest(body)
        if self.encoding == "hex":
            return raw.hex()
        return base64.b64encode(raw).decode("ascii")

    def verify(self, body: RawBody, signature_header: str | None) -> bool:
        """Verify *signature_header* using constant-time comparison.

        Returns ``False`` for an absent header or one that does not decode
        to a digest of the expected length.
        """
        if not signature_header:
            return False
        provided = _decode_header(signature_header.strip(), self.encoding)
        expected = self.digest(body)
        if provided is None or len(provided) != len(expected):
            return False
        return hmac.compare_digest(expected, provided)


def verify_signature(
    body: RawBody,
    signature_header: str | None,
    secret: str | bytes | None,
    encoding: str = "hex",
) -> bool:
    """Functional shorthand for ``SignatureVerifier(secret, encoding).verify(...)``."""
    return SignatureVerifier(secret, encoding).verify(body, signature_header)
