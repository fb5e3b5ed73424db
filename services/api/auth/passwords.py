"""
Password hashing: PBKDF2-HMAC-SHA256.

Stored format: ``pbkdf2_sha256$<iterations>$<salt_hex>$<hash_hex>``.
The iteration count travels with the hash so it can be raised later without
invalidating existing passwords. Logins are checked by the web app against
this same format; this service only writes hashes.
"""

import hashlib
import os

HASH_ALGORITHM = "pbkdf2_sha256"
HASH_ITERATIONS = 260_000
SALT_BYTES = 16


def hash_password(password: str, iterations: int = HASH_ITERATIONS) -> str:
    salt = os.urandom(SALT_BYTES)
    key = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"{HASH_ALGORITHM}${iterations}${salt.hex()}${key.hex()}"

