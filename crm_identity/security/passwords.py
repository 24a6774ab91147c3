"""Password hashing and credential policy."""

from __future__ import annotations

import bcrypt

MIN_PASSWORD_LENGTH = 6

# Compared against when the email is unknown so both login failure paths cost the same.
_DUMMY_HASH = bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt()).decode("utf-8")


def hash_password(plain: str) -> str:
    """Generate a bcrypt hash for a password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Verify a password against a bcrypt hash; ``None`` burns a comparison and fails."""
    try:
        if not hashed:
            bcrypt.checkpw(plain.encode("utf-8"), _DUMMY_HASH.encode("utf-8"))
            return False
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # over-long input or malformed hash
        return False


def password_policy_violations(password: str) -> list[str]:
    """Return human-readable reasons the password is rejected, empty when acceptable."""
    problems: list[str] = []
    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(f"Passwords must be at least {MIN_PASSWORD_LENGTH} characters.")
    if not any(ch.isdigit() for ch in password):
        problems.append("Passwords must have at least one digit ('0'-'9').")
    if not any(ch.islower() for ch in password):
        problems.append("Passwords must have at least one lowercase ('a'-'z').")
    if not any(ch.isupper() for ch in password):
        problems.append("Passwords must have at least one uppercase ('A'-'Z').")
    if all(ch.isalnum() for ch in password):
        problems.append("Passwords must have at least one non alphanumeric character.")
    if len(password.encode("utf-8")) > 72:
        problems.append("Passwords must be at most 72 bytes.")
    return problems
