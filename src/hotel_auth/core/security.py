"""Credential hashing and registration field rules."""

import re

import bcrypt

from src.hotel_auth.core.errors import ValidationError
from src.hotel_auth.core.models.identity import RegistrationInput
from src.hotel_auth.entities.core.user.entity import Role

BCRYPT_ROUNDS = 12

# bcrypt only looks at the first 72 bytes of a password
_BCRYPT_MAX_BYTES = 72

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def hash_password(password: str) -> str:
    """Hash a password with a fresh salt.

    Args:
        password: Plain-text password

    Returns:
        bcrypt hash as text
    """
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8")[:_BCRYPT_MAX_BYTES], salt).decode(
        "utf-8"
    )


def verify_password(plain: str, hashed: str | None) -> bool:
    """Check a password against a stored hash; a missing hash never matches."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(
            plain.encode("utf-8")[:_BCRYPT_MAX_BYTES], hashed.encode("utf-8")
        )
    except ValueError:
        # Malformed stored hash
        return False


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def validate_registration(
    data: RegistrationInput,
    *,
    min_password_length: int,
    max_self_assign_role: Role,
) -> None:
    """Reject a registration request before anything is written.

    Raises:
        ValidationError: describing every failed field rule
    """
    problems: list[str] = []

    email = data.email.strip()
    if not email:
        problems.append("email is required")
    elif not is_valid_email(email):
        problems.append("email is not a valid address")

    if not data.first_name.strip():
        problems.append("firstName is required")
    if not data.last_name.strip():
        problems.append("lastName is required")

    if data.password is None or data.password == "":
        if not data.skip_password:
            problems.append("password is required")
    elif len(data.password) < min_password_length:
        problems.append(
            f"password must be at least {min_password_length} characters"
        )

    if data.role is not None and not max_self_assign_role.at_least(data.role):
        problems.append(f"role '{data.role.value}' cannot be self-assigned")

    if problems:
        raise ValidationError("; ".join(problems))
