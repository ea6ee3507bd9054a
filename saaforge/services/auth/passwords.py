from __future__ import annotations

import base64
import hashlib
import hmac
import secrets


_PBKDF2_ITERATIONS = 310_000


def hash_password(password: str, salt_b64: str | None = None) -> tuple[str, str]:
    # Return (digest, salt) as base64 so both fit in plain string columns.
    salt = base64.b64decode(salt_b64) if salt_b64 else secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ITERATIONS)
    return base64.b64encode(digest).decode("utf-8"), base64.b64encode(salt).decode("utf-8")


def verify_password(password: str, expected_hash: str, salt_b64: str) -> bool:
    computed, _ = hash_password(password, salt_b64)
    return hmac.compare_digest(computed, expected_hash)
