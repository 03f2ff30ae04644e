from __future__ import annotations

import hashlib
import hmac
import os
import secrets

PASSWORD_HASH_ITERATIONS = int(os.getenv("PASSWORD_HASH_ITERATIONS", "260000"))
PASSWORD_SCHEME = "pbkdf2_sha256"


def _derive(raw_password: str, salt: str, iterations: int) -> str:
    return hashlib.pbkdf2_hmac("sha256", raw_password.encode(), salt.encode(), iterations).hex()


def hash_password(raw_password: str) -> str:
    """Return ``scheme$iterations$salt$digest`` with a fresh random salt."""
    salt = secrets.token_hex(16)
    iterations = PASSWORD_HASH_ITERATIONS
    digest = _derive(raw_password, salt, iterations)
    return f"{PASSWORD_SCHEME}${iterations}${salt}${digest}"


def verify_password(raw_password: str, password_hash: str) -> bool:
    parts = password_hash.split("$")
    if len(parts) != 4 or parts[0] != PASSWORD_SCHEME or not parts[1].isdigit():
        return False
    _, iterations, salt, expected = parts
    return hmac.compare_digest(_derive(raw_password, salt, int(iterations)), expected)


def new_opaque_token() -> str:
    return secrets.token_hex(32)
