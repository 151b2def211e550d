import base64
import hashlib
import hmac
import json
import secrets
from typing import Any

from app.core.constants import SECRET_KEY_BYTES

SCHEME_HMAC_SHA256 = "hmac-sha256"
SCHEME_LEGACY_BASE64 = "legacy-base64"
SIGNATURE_SCHEMES = frozenset({SCHEME_HMAC_SHA256, SCHEME_LEGACY_BASE64})


def generate_secret_key() -> str:
    """64 hex characters of cryptographically secure randomness."""
    return secrets.token_hex(SECRET_KEY_BYTES)


def serialize_payload(payload: Any) -> bytes:
    """Compact, deterministic JSON: the exact bytes that are signed and sent."""
    return json.dumps(
        payload, separators=(",", ":"), ensure_ascii=False, default=str
    ).encode("utf-8")


def sign_payload(body: bytes, secret_key: str, scheme: str = SCHEME_HMAC_SHA256) -> str:
    """Signature for the ``X-Webhook-Signature`` header.

    ``hmac-sha256`` yields ``sha256=<hex digest>`` over the body bytes.
    ``legacy-base64`` reproduces the older ``base64(secret:body)`` header
    for receivers that have not migrated; it is not a real MAC.
    """
    if scheme == SCHEME_HMAC_SHA256:
        digest = hmac.new(secret_key.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return f"sha256={digest}"
    if scheme == SCHEME_LEGACY_BASE64:
        raw = secret_key.encode("utf-8") + b":" + body
        return base64.b64encode(raw).decode("ascii")
    raise ValueError(f"Unknown signature scheme: {scheme}")


def verify_signature(
    body: bytes, secret_key: str, signature: str, scheme: str = SCHEME_HMAC_SHA256
) -> bool:
    """Constant-time check, as a receiver would perform it."""
    expected = sign_payload(body, secret_key, scheme)
    return hmac.compare_digest(expected, signature)
