"""Password hashing for local accounts.

Learn: Uses bcrypt for secure password hashing. bcrypt automatically
handles salting and is resistant to rainbow table attacks. Federated
accounts have no hash at all, and verify_password() refuses them.

Every verification costs one bcrypt check, even when there is no hash to
check against (unknown user, federated account). Otherwise the response
time alone tells a caller which usernames and emails exist.
"""

from typing import Optional

import bcrypt

BCRYPT_ROUNDS = 12


def _bcrypt_bytes(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    """Hash a password with bcrypt.

    Learn: bcrypt includes a random salt automatically and produces
    hashes starting with "$2b$". Passwords are truncated to 72 bytes
    (bcrypt's limit).
    """
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(_bcrypt_bytes(password), salt).decode("utf-8")


# Same cost factor as real hashes; checked against when there is no real one.
_DUMMY_HASH = bcrypt.hashpw(b"promptdex-no-such-account", bcrypt.gensalt(BCRYPT_ROUNDS))


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Verify a password against its hash. No hash means no match."""
    pw_bytes = _bcrypt_bytes(password)
    if not password_hash:
        bcrypt.checkpw(pw_bytes, _DUMMY_HASH)
        return False
    try:
        return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        bcrypt.checkpw(pw_bytes, _DUMMY_HASH)
        return False
