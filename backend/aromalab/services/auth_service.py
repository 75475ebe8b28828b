# Overview: Service-layer operations for users and credentials.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing; credentials are never stored in plaintext.

RULES:
- Email is the login key and is unique (case-insensitive, stored lowercase)
- Roles: admin (manages materials, formulas, users, reads the activity log)
  and user (creates, completes and cancels orders)
- Minimum password length: 6 characters
- The last active admin cannot be deleted, deactivated or demoted
"""

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, USER_ROLES
from aromalab.time_utils import utcnow


MIN_PASSWORD_LENGTH = 6


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Cost factor comes from BCRYPT_ROUNDS (12 by default, lowered in tests).
    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Malformed hashes never match.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _validate_role(role: str) -> None:
    if role not in USER_ROLES:
        raise ValueError(f"role must be one of: {', '.join(USER_ROLES)}")


def create_user(email: str, password: str, name: str, role: str = "user") -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: If the email is already used or the role is unknown
        PasswordValidationError: If password doesn't meet requirements
    """
    email = normalize_email(email)
    if not email:
        raise ValueError("email is required")
    _validate_role(role)

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ValueError("A user with this email already exists")

    user = User(
        email=email,
        name=(name or "").strip() or email,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
        created_at=utcnow(),
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.name, User.id).all()


def get_user(user_id: int) -> User | None:
    return db.session.get(User, user_id)


def _active_admin_count(exclude_user_id: int | None = None) -> int:
    q = db.session.query(User).filter(User.role == "admin", User.is_active.is_(True))
    if exclude_user_id is not None:
        q = q.filter(User.id != exclude_user_id)
    return q.count()


def update_user(user_id: int, patch: dict) -> User | None:
    """
    Merge-patch a user.

    Accepted keys: name, email, role, password, is_active.
    Returns the user, or None if not found.
    """
    user = db.session.get(User, user_id)
    if not user:
        return None

    if "role" in patch:
        _validate_role(patch["role"])

    demoting = "role" in patch and patch["role"] != "admin"
    deactivating = "is_active" in patch and not patch["is_active"]
    if user.is_admin and (demoting or deactivating) and _active_admin_count(user.id) == 0:
        raise ValueError("Cannot remove the last administrator")

    if "email" in patch:
        email = normalize_email(patch["email"])
        clash = db.session.query(User).filter(User.email == email, User.id != user.id).first()
        if clash:
            raise ValueError("A user with this email already exists")
        user.email = email

    if "name" in patch:
        user.name = patch["name"]
    if "role" in patch:
        user.role = patch["role"]
    if "is_active" in patch:
        user.is_active = bool(patch["is_active"])
    if "password" in patch:
        user.password_hash = hash_password(patch["password"])

    db.session.commit()
    return user


def delete_user(user_id: int) -> bool:
    """Delete a user. Returns False if not found."""
    user = db.session.get(User, user_id)
    if not user:
        return False

    if user.is_admin and _active_admin_count(user.id) == 0:
        raise ValueError("Cannot remove the last administrator")

    db.session.delete(user)
    db.session.commit()
    return True


def ensure_default_admin() -> User | None:
    """
    Create the bootstrap administrator when the users table is empty.

    Returns the created user, or None when users already exist.
    """
    if db.session.query(User).count() > 0:
        return None

    return create_user(
        email=current_app.config["DEFAULT_ADMIN_EMAIL"],
        password=current_app.config["DEFAULT_ADMIN_PASSWORD"],
        name=current_app.config.get("DEFAULT_ADMIN_NAME", "Administrateur"),
        role="admin",
    )
