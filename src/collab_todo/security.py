from __future__ import annotations

import hashlib
import hmac
import secrets

_ALGORITHM = "pbkdf2_sha256"


# PUBLIC_INTERFACE
def hash_secret(secret: str, iterations: int) -> str:
    """
    Hash a password or recovery answer for storage.

    Returns a self-describing string '<algorithm>$<iterations>$<salt>$<hexdigest>'
    so the iteration count can change without invalidating stored hashes.
    """
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt.encode("ascii"), iterations)
    return f"{_ALGORITHM}${iterations}${salt}${digest.hex()}"


# PUBLIC_INTERFACE
def verify_secret(secret: str, stored: str) -> bool:
    """Verify a secret against a hash produced by hash_secret."""
    try:
        algorithm, iterations, salt, expected = stored.split("$")
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != _ALGORITHM:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt.encode("ascii"), rounds)
    return hmac.compare_digest(digest.hex(), expected)


def normalize_answer(answer: str) -> str:
    """Recovery answers are compared trimmed and case-insensitively."""
    return answer.strip().lower()
