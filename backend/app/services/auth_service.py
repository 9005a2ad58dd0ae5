# Overview: Service-layer operations for auth and user accounts; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
- Deactivated users cannot authenticate
"""

import re

import bcrypt

from ..extensions import db
from ..models import User
from ..permissions import VALID_ROLES, ROLE_STAFF
from ..validation import ValidationError, ConflictError, NotFoundError
from app.time_utils import utcnow


USER_MUTABLE_FIELDS = {"email", "first_name", "last_name", "phone", "role", "is_active"}


class PasswordValidationError(ValidationError):
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
    if not isinstance(password, str) or len(password) < 8:
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
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def _normalize_role(role: str | None) -> str:
    if role is None or role == "":
        return ROLE_STAFF
    value = str(role).strip().upper()
    if value not in VALID_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(VALID_ROLES)}")
    return value


def create_user(
    username: str,
    email: str,
    password: str,
    *,
    role: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    phone: str | None = None,
    created_by: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: missing fields, bad role
        PasswordValidationError: password doesn't meet requirements
        ConflictError: username or email already taken
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username or not email:
        raise ValidationError("username and email are required")
    if "@" not in email:
        raise ValidationError("email must be a valid email address")

    role = _normalize_role(role)

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        role=role,
        is_active=True,
        created_by=created_by,
        created_at=utcnow(),
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    if not identifier or not password:
        return None

    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier.lower()),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


def list_users(*, include_inactive: bool = True) -> list[User]:
    q = db.session.query(User)
    if not include_inactive:
        q = q.filter(User.is_active.is_(True))
    return q.order_by(User.username.asc()).all()


def update_user(user_id: int, payload: dict) -> User:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    user = get_user(user_id)

    for key in payload:
        if key not in USER_MUTABLE_FIELDS:
            raise ValidationError(f"Field not allowed: {key}")

    if "email" in payload:
        email = (payload["email"] or "").strip().lower()
        if "@" not in email:
            raise ValidationError("email must be a valid email address")
        clash = db.session.query(User.id).filter(User.email == email, User.id != user.id).first()
        if clash:
            raise ConflictError("Username or email already exists")
        user.email = email

    if "role" in payload:
        user.role = _normalize_role(payload["role"])

    if "is_active" in payload:
        if not isinstance(payload["is_active"], bool):
            raise ValidationError("is_active must be a boolean")
        user.is_active = payload["is_active"]

    for key in ("first_name", "last_name", "phone"):
        if key in payload:
            value = payload[key]
            setattr(user, key, value.strip() if isinstance(value, str) else value)

    user.updated_at = utcnow()
    db.session.commit()
    return user


def deactivate_user(user_id: int) -> User:
    user = get_user(user_id)
    user.is_active = False
    user.updated_at = utcnow()
    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    user.updated_at = utcnow()
    db.session.commit()
