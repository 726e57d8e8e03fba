"""
Gradian Security Module
Version: 1.0.0
Author: Gradian Development Team
License: MIT

Password hashing with argon2 (through passlib) plus a server-side pepper.
"""

import logging
from typing import Optional

from passlib.context import CryptContext
from passlib.exc import UnknownHashError

logger = logging.getLogger(__name__)

ARGON2_PREFIXES = ("$argon2id$", "$argon2i$", "$argon2d$")

HASH_TYPE_ARGON2 = "argon2"
HASH_TYPE_NONE = "none"


class PasswordManager:
    """Hashes and verifies passwords with argon2 and a pepper."""

    def __init__(self, pepper: str = "", scheme: str = "argon2"):
        self.pepper = pepper or ""
        self.context = CryptContext(schemes=[scheme], deprecated="auto")
        if not self.pepper:
            logger.warning("PEPPER is not set; passwords are hashed without a pepper")

    def _peppered(self, password: str) -> str:
        return f"{password}{self.pepper}"

    def hash_password(self, password: str) -> str:
        """Hash a plain-text password."""
        if not isinstance(password, str) or password == "":
            raise ValueError("Password must be a non-empty string")
        return self.context.hash(self._peppered(password))

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against its stored hash."""
        if not password_hash or not isinstance(password, str):
            return False
        if detect_hash_type(password_hash) != HASH_TYPE_ARGON2:
            return False
        try:
            return self.context.verify(self._peppered(password), password_hash)
        except (ValueError, UnknownHashError):
            return False


def is_argon2_hash(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.startswith(ARGON2_PREFIXES)


def detect_hash_type(value: Optional[str]) -> str:
    """Return ``"argon2"`` for argon2 hashes and ``"none"`` for anything else."""
    return HASH_TYPE_ARGON2 if is_argon2_hash(value) else HASH_TYPE_NONE
