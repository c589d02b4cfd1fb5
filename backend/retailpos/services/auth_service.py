# Overview: Service-layer operations for auth; password hashing, user creation and login.

"""
Authentication Service

WHY: Every sale and drawer posting must be attributable to an operator.
Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters, with upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import Branch, Role, User, UserRole
from ..time_utils import utcnow
from ..validation import NotFoundError, PreconditionError, ValidationError


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")
    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    username: str,
    password: str,
    *,
    email: str | None = None,
    branch_id: int | None = None,
    role_name: str | None = None,
) -> User:
    """
    Create an operator with a bcrypt password and an optional role.

    Raises:
        ValidationError: empty username or weak password
        PreconditionError: username already taken
        NotFoundError: unknown branch or role
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    if db.session.query(User).filter_by(username=username).first():
        raise PreconditionError(f"User '{username}' already exists")
    if branch_id is not None and not db.session.get(Branch, branch_id):
        raise NotFoundError(f"Branch {branch_id} not found")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        branch_id=branch_id,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()

    if role_name:
        assign_role(user.id, role_name, commit=False)

    db.session.commit()
    return user


def assign_role(user_id: int, role_name: str, *, commit: bool = True) -> UserRole:
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise NotFoundError(f"Role '{role_name}' not found")

    existing = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)
    db.session.add(user_role)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return user_role


def authenticate(username: str, password: str) -> User | None:
    """
    Return the active user matching the credentials, or None.

    Unknown users, inactive users and wrong passwords are indistinguishable
    to the caller.
    """
    user = db.session.query(User).filter_by(username=(username or "").strip()).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
