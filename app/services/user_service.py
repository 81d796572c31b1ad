"""Company signup, user administration and company settings."""
from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from flask import current_app

from app import db
from app.errors import AuthorizationError, NotFoundError, ValidationError
from app.models import Company, User, UserRole
from app.services import audit_service, currency_service, repository
from app.services.actor import ActingUser

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_MIN_LENGTH = 6
SELF_EDITABLE_FIELDS = frozenset({"first_name", "last_name"})
ADMIN_EDITABLE_FIELDS = SELF_EDITABLE_FIELDS | {"email", "role", "manager_id", "is_active"}


def _clean_name(value: Any, field: str, required: bool = True) -> str:
    name = str(value or "").strip()
    if required and not 1 <= len(name) <= 50:
        raise ValidationError(f"'{field}' must be between 1 and 50 characters.")
    if len(name) > 50:
        raise ValidationError(f"'{field}' cannot exceed 50 characters.")
    return name


def _clean_email(value: Any, exclude_user_id: Optional[int] = None) -> str:
    email = str(value or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email address.")
    existing = User.query.filter_by(email=email).first()
    if existing is not None and existing.id != exclude_user_id:
        raise ValidationError("Email already exists.")
    return email


def _clean_password(value: Any) -> str:
    password = str(value or "")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters.")
    return password


def _clean_role(value: Any) -> UserRole:
    if isinstance(value, UserRole):
        return value
    try:
        return UserRole(str(value).strip().lower())
    except ValueError:
        raise ValidationError("Unsupported role.") from None


def _validate_manager(company_id: int, user: Optional[User], manager_id: Optional[int]) -> Optional[int]:
    """Check that ``manager_id`` is a usable manager for ``user``.

    The walk up the manager chain is bounded by the company's head count, so a
    cycle that is already stored cannot make it loop forever.
    """
    if manager_id in (None, ""):
        return None
    try:
        manager_id = int(manager_id)
    except (TypeError, ValueError):
        raise ValidationError("Invalid manager selected.") from None
    manager = repository.find_user(manager_id, company_id)
    if manager is None or not manager.is_active:
        raise ValidationError("Invalid manager selected.")
    if user is None or user.id is None:
        return manager.id
    if manager.id == user.id:
        raise ValidationError("A user cannot be their own manager.")

    max_depth = User.query.filter_by(company_id=company_id).count()
    current: Optional[User] = manager
    for _ in range(max_depth):
        if current is None or current.manager_id is None:
            return manager.id
        if current.manager_id == user.id:
            raise ValidationError("Manager assignment would create a reporting cycle.")
        current = repository.find_user(current.manager_id, company_id)
    raise ValidationError("Manager chain is too deep or already contains a cycle.")


def signup(
    company_name: str,
    country: str,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    currency_code: Optional[str] = None,
) -> User:
    """Create a company together with its first admin."""
    company_name = str(company_name or "").strip()
    if not 1 <= len(company_name) <= 100:
        raise ValidationError("Company name must be between 1 and 100 characters.")
    country = str(country or "").strip()
    if not country:
        raise ValidationError("Country is required.")

    symbol = None
    if not currency_code:
        currency = currency_service.get_default_currency_for_country(country)
        currency_code = currency["currency_code"] or current_app.config["DEFAULT_CURRENCY"]
        symbol = currency["currency_symbol"]
    currency_code = str(currency_code).strip().upper()
    if len(currency_code) != 3 or not currency_code.isalpha():
        raise ValidationError("Currency must be a 3-letter code.")

    company = Company(name=company_name, country=country, currency_code=currency_code, currency_symbol=symbol)
    admin = User(
        first_name=_clean_name(first_name, "first_name"),
        last_name=_clean_name(last_name, "last_name", required=False),
        email=_clean_email(email),
        role=UserRole.ADMIN,
        company=company,
    )
    admin.set_password(_clean_password(password))

    db.session.add_all([company, admin])
    db.session.flush()
    audit_service.record("company", company.id, "created", actor_id=admin.id, company_id=company.id)
    db.session.commit()
    logger.info("Company %s signed up with admin %s (%s)", company.id, admin.id, currency_code)
    return admin


def authenticate(email: str, password: str) -> Optional[User]:
    user = User.query.filter_by(email=str(email or "").strip().lower()).first()
    if user is None or not user.is_active or not user.check_password(password or ""):
        return None
    return user


def list_users(actor: ActingUser) -> List[User]:
    if not actor.can_approve:
        raise AuthorizationError("Insufficient permissions.")
    return (
        User.query.filter_by(company_id=actor.company_id)
        .order_by(User.first_name.asc(), User.last_name.asc(), User.id.asc())
        .all()
    )


def get_user(actor: ActingUser, user_id: int) -> User:
    """Employees may only read their own profile."""
    if actor.role == UserRole.EMPLOYEE and user_id != actor.id:
        raise AuthorizationError("You can only view your own profile.")
    return repository.get_user_or_404(user_id, actor.company_id)


def list_team(actor: ActingUser, manager_id: int) -> List[User]:
    if not actor.can_approve:
        raise AuthorizationError("Insufficient permissions.")
    manager = repository.find_user(manager_id, actor.company_id)
    if manager is None:
        raise NotFoundError("Manager not found.")
    return repository.find_direct_reports(manager.id, actor.company_id)


def create_user(
    actor: ActingUser,
    first_name: str,
    email: str,
    password: str,
    role: Any,
    last_name: str = "",
    manager_id: Optional[int] = None,
) -> User:
    if not actor.is_admin:
        raise AuthorizationError("Only admins can create users.")

    user = User(
        first_name=_clean_name(first_name, "first_name"),
        last_name=_clean_name(last_name, "last_name", required=False),
        email=_clean_email(email),
        role=_clean_role(role),
        company_id=actor.company_id,
        manager_id=_validate_manager(actor.company_id, None, manager_id),
        is_active=True,
    )
    user.set_password(_clean_password(password))

    db.session.add(user)
    db.session.flush()
    audit_service.record("user", user.id, "created", actor_id=actor.id, company_id=actor.company_id)
    db.session.commit()
    logger.info("User %s created by admin %s", user.id, actor.id)
    return user


def update_user(actor: ActingUser, user_id: int, **fields: Any) -> User:
    """Admins edit anyone in the company; users only their own name fields."""
    user = repository.get_user_or_404(user_id, actor.company_id)
    allowed = ADMIN_EDITABLE_FIELDS if actor.is_admin else SELF_EDITABLE_FIELDS
    if not actor.is_admin and user.id != actor.id:
        raise AuthorizationError("You can only update your own profile.")
    forbidden = set(fields) - allowed
    if forbidden:
        if forbidden <= ADMIN_EDITABLE_FIELDS:
            raise AuthorizationError(f"Not allowed to change: {', '.join(sorted(forbidden))}")
        raise ValidationError(f"Unknown fields: {', '.join(sorted(forbidden))}")
    if user.id == actor.id and "role" in fields and _clean_role(fields["role"]) != user.role:
        raise AuthorizationError("You cannot change your own role.")

    if "first_name" in fields:
        user.first_name = _clean_name(fields["first_name"], "first_name")
    if "last_name" in fields:
        user.last_name = _clean_name(fields["last_name"], "last_name", required=False)
    if "email" in fields:
        user.email = _clean_email(fields["email"], exclude_user_id=user.id)
    if "role" in fields:
        user.role = _clean_role(fields["role"])
    if "manager_id" in fields:
        user.manager_id = _validate_manager(actor.company_id, user, fields["manager_id"])
    if "is_active" in fields:
        if not isinstance(fields["is_active"], bool):
            raise ValidationError("'is_active' must be true or false.")
        if user.id == actor.id and not fields["is_active"]:
            raise ValidationError("You cannot deactivate your own account.")
        user.is_active = fields["is_active"]

    audit_service.record(
        "user", user.id, "updated", actor_id=actor.id, company_id=actor.company_id, fields=sorted(fields)
    )
    db.session.commit()
    return user


def update_company_settings(actor: ActingUser, **fields: Any) -> Company:
    """Edit company name and settings. The base currency never changes."""
    if not actor.is_admin:
        raise AuthorizationError("Only admins can change company settings.")
    company = repository.get_company_or_404(actor.company_id)

    unknown = set(fields) - {"name", "auto_approval_limit", "allow_multi_currency", "require_receipt"}
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    if "name" in fields:
        name = str(fields["name"] or "").strip()
        if not 1 <= len(name) <= 100:
            raise ValidationError("Company name must be between 1 and 100 characters.")
        company.name = name
    if "auto_approval_limit" in fields:
        try:
            limit = Decimal(str(fields["auto_approval_limit"]))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("Invalid auto approval limit.") from None
        if not limit.is_finite() or limit < 0:
            raise ValidationError("Auto approval limit cannot be negative.")
        company.auto_approval_limit = limit
    for key in ("allow_multi_currency", "require_receipt"):
        if key in fields:
            if not isinstance(fields[key], bool):
                raise ValidationError(f"'{key}' must be true or false.")
            setattr(company, key, fields[key])

    audit_service.record(
        "company", company.id, "settings_updated", actor_id=actor.id, company_id=company.id,
        fields=sorted(fields),
    )
    db.session.commit()
    return company
