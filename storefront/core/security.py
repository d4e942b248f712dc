import secrets
from datetime import timedelta
from typing import Optional

from passlib.context import CryptContext

from storefront.models.schemas import utcnow

RESET_TOKEN_TTL = timedelta(hours=1)

pwd_ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def configure_password_context(schemes):
    """Swap the hashing schemes (first one hashes, the rest still verify)."""
    pwd_ctx.update(schemes=list(schemes), deprecated="auto")


def is_password_hash(value: str) -> bool:
    return pwd_ctx.identify(value) is not None


def hash_password(password: str) -> str:
    # Values that are already hashes (seed imports, admin tooling) are stored untouched
    if is_password_hash(password):
        return password
    return pwd_ctx.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_ctx.verify(plain, hashed)
    except (ValueError, TypeError):
        # Unknown or malformed hash (e.g. plaintext rows migrated from the old schema)
        return False


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def reset_token_expiry(ttl: Optional[timedelta] = None):
    return utcnow() + (ttl or RESET_TOKEN_TTL)
