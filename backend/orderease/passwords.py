# Overview: Password hashing and password policies.

"""
bcrypt hashing plus the three password policies.

- strict: operators and shop owners
- weak: registered customers
- simple: six digits, the temp-code style used on the ephemeral customer path

Stored hashes are self-describing ("$2b$12$..."), so a value that already
looks like a bcrypt hash is never hashed a second time.
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app, has_app_context

from .errors import InvalidInput

DEFAULT_ROUNDS = 12
BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
SPECIAL_CHARS = re.compile(r"[^A-Za-z0-9]")


class PasswordValidationError(InvalidInput):
    """Raised when a password doesn't meet its policy."""


def _rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", DEFAULT_ROUNDS))
    return DEFAULT_ROUNDS


def is_password_hash(value: str | None) -> bool:
    return bool(value) and value.startswith(BCRYPT_PREFIXES) and len(value) == 60


def hash_password(password: str) -> str:
    """Hash with bcrypt; values that are already bcrypt hashes pass through."""
    if is_password_hash(password):
        return password
    salt = bcrypt.gensalt(rounds=_rounds())
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password or not password_hash or not is_password_hash(password_hash):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def validate_strict_password(password: str) -> None:
    """
    Operator / shop owner policy.

    8-20 characters with at least one uppercase letter, one lowercase
    letter, one digit and one non-alphanumeric character.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password must be a string")
    if len(password) < 8 or len(password) > 20:
        raise PasswordValidationError("Password must be 8-20 characters long")
    if not re.search(r"[A-Z]", password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")
    if not SPECIAL_CHARS.search(password):
        raise PasswordValidationError("Password must contain at least one special character")


def validate_weak_password(password: str) -> None:
    """Customer policy: 6-20 characters, at least one letter and one digit."""
    if not isinstance(password, str):
        raise PasswordValidationError("Password must be a string")
    if len(password) < 6 or len(password) > 20:
        raise PasswordValidationError("Password must be 6-20 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def validate_simple_password(password: str) -> None:
    """Exactly six digits."""
    if not isinstance(password, str) or not re.fullmatch(r"\d{6}", password):
        raise PasswordValidationError("Code must be exactly 6 digits")
