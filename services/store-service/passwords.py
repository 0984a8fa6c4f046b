"""Password hashing utilities."""
import base64
import hashlib
import hmac
import secrets

from config import PASSWORD_HASH_ITERATIONS

ALGORITHM = "pbkdf2_sha256"
ITERATIONS = PASSWORD_HASH_ITERATIONS
SALT_BYTES = 16


def hash_password(password: str) -> str:
    """
    Hash a password with a random salt.

    Returns:
        Encoded hash in the form ``algorithm$iterations$salt$digest``
    """
    salt = secrets.token_bytes(SALT_BYTES)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, ITERATIONS)
    return "$".join([
        ALGORITHM,
        str(ITERATIONS),
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(digest).decode("ascii"),
    ])


def verify_password(password: str, encoded: str) -> bool:
    """Check a password against an encoded hash produced by hash_password."""
    try:
        algorithm, iterations, salt_b64, digest_b64 = encoded.split("$")
    except ValueError:
        return False
    if algorithm != ALGORITHM:
        return False

    try:
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(digest_b64)
        rounds = int(iterations)
    except ValueError:
        return False

    actual = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(actual, expected)
