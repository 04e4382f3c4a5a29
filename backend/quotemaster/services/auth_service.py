# Overview: Service-layer operations for auth; password hashing, registration and sign-in.

"""
Authentication Service

Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
- Banned and deleted accounts cannot sign in

ENTITLEMENT FIELDS:
free_downloads_used is never written here. Admin updates may change the
role and the cached subscription flag only.
"""

import re

import bcrypt

from ..extensions import db
from ..identity import Role
from ..models import User
from ..validation import (
    USER_ADMIN_POLICY,
    NotFoundError,
    ValidationError,
    enforce_rules_user_admin,
    validate_payload,
)
from . import session_service
from quotemaster.time_utils import utcnow


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt (cost factor 12)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def register_user(
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
    role: Role = Role.USER,
) -> User:
    """
    Create a user account.

    Raises:
        ValueError: invalid or already registered email
        PasswordValidationError: weak password
    """
    email = normalize_email(email)
    if not EMAIL_PATTERN.match(email):
        raise ValueError("A valid email is required")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ValueError("Email already registered")

    password_hash = hash_password(password)

    user = User(
        email=email,
        password_hash=password_hash,
        first_name=(first_name or "").strip() or None,
        last_name=(last_name or "").strip() or None,
        role=role.value,
        free_downloads_used=0,
        has_active_subscription=False,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns the User when credentials are valid and the account may sign in,
    None otherwise. Updates last_login_at on success.
    """
    user = db.session.query(User).filter_by(email=normalize_email(email)).first()
    if not user:
        return None

    if not user.role_enum.can_sign_in:
        return None

    if verify_password(password or "", user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def update_user_admin(user_id: int, data: dict) -> User:
    """
    Admin edit of a user: names, role and the cached subscription flag.

    Moving a user to banned or deleted revokes all of their sessions.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    if isinstance(data, dict) and "free_downloads_used" in data:
        raise ValidationError("free_downloads_used cannot be changed")

    patch = validate_payload(model=User, payload=data, policy=USER_ADMIN_POLICY, partial=True)
    enforce_rules_user_admin(patch)

    for key, value in patch.items():
        setattr(user, key, value)
    db.session.commit()

    if not user.role_enum.can_sign_in:
        session_service.revoke_all_user_sessions(user.id, reason=f"Account {user.role}")

    return user


def set_role(user_id: int, role: Role) -> User:
    return update_user_admin(user_id, {"role": role.value})
