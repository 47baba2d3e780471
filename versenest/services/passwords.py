"""Argon2id password hashing.

Hashing is deliberately slow, so both hash and verify run on a worker
thread to keep the event loop free for other requests.
"""

import asyncio
import logging
import re

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from versenest.core import settings

logger = logging.getLogger(__name__)

# Argon2 password hasher with configured parameters
# Defaults: Memory 64 MiB, Time 3 iterations, Parallelism 4
ph = PasswordHasher(
    time_cost=settings.password_hash_time_cost,
    memory_cost=settings.password_hash_memory_cost,
    parallelism=settings.password_hash_parallelism,
    hash_len=32,
    salt_len=16,
)

_dummy_hash: str | None = None

MAX_PASSWORD_LENGTH = 128
_SPECIAL_CHARACTERS = re.compile(r"[^A-Za-z0-9]")


def password_policy_violations(password: str) -> list[str]:
    """Return every rule the password breaks (empty when acceptable)."""
    problems: list[str] = []
    if len(password) < settings.password_min_length:
        problems.append(
            f"Password must be at least {settings.password_min_length} characters long"
        )
    if len(password) > MAX_PASSWORD_LENGTH:
        problems.append(f"Password must not exceed {MAX_PASSWORD_LENGTH} characters")
    if not re.search(r"[a-z]", password):
        problems.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        problems.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        problems.append("Password must contain at least one number")
    if not _SPECIAL_CHARACTERS.search(password):
        problems.append("Password must contain at least one special character")
    return problems


def hash_password_sync(password: str) -> str:
    """Hash a password using Argon2id."""
    return ph.hash(password)


def verify_password_sync(password: str, password_hash: str) -> bool:
    """Verify a password against its hash using constant-time comparison."""
    try:
        ph.verify(password_hash, password)
        return True
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError):
        logger.warning("Stored password hash could not be verified")
        return False


async def hash_password(password: str) -> str:
    return await asyncio.to_thread(hash_password_sync, password)


async def verify_password(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(verify_password_sync, password, password_hash)


async def burn_verification(password: str) -> None:
    """Spend the same time as a real verify when there is no account.

    Keeps "unknown email" and "wrong password" indistinguishable by timing.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = await hash_password("versenest-dummy-password")
    await verify_password(password, _dummy_hash)


def needs_rehash(password_hash: str) -> bool:
    """True when the stored hash was made with different cost parameters."""
    try:
        return ph.check_needs_rehash(password_hash)
    except InvalidHashError:
        return True
