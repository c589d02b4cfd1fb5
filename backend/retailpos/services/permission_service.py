# Overview: Service-layer operations for permissions; role-based access checks for POS routes.

from __future__ import annotations

from ..extensions import db
from ..models import Permission, Role, RolePermission, UserRole


class PermissionDeniedError(Exception):
    """Raised when a user lacks a required permission."""


# (code, name, category)
PERMISSION_DEFINITIONS = (
    ("sale.create", "Create sales and operate the cash drawer", "sales"),
    ("sale.view", "View sales, summaries and reports", "sales"),
    ("cash_register.manage", "Provision registers, maintenance and adjustments", "cash_register"),
)

DEFAULT_ROLES = (
    ("admin", "Full access"),
    ("manager", "Store management"),
    ("cashier", "Point of sale operator"),
)

DEFAULT_ROLE_PERMISSIONS = {
    "admin": ["sale.create", "sale.view", "cash_register.manage"],
    "manager": ["sale.create", "sale.view", "cash_register.manage"],
    "cashier": ["sale.create", "sale.view"],
}


def create_default_roles() -> int:
    """Idempotent: creates missing roles only."""
    created_count = 0
    for name, description in DEFAULT_ROLES:
        if not db.session.query(Role).filter_by(name=name).first():
            db.session.add(Role(name=name, description=description))
            created_count += 1
    db.session.commit()
    return created_count


def initialize_permissions() -> int:
    """
    Create Permission records for every code in PERMISSION_DEFINITIONS.

    Idempotent: Safe to run multiple times.
    """
    created_count = 0
    for code, name, category in PERMISSION_DEFINITIONS:
        if not db.session.query(Permission).filter_by(code=code).first():
            db.session.add(Permission(code=code, name=name, category=category))
            created_count += 1
    db.session.commit()
    return created_count


def assign_default_role_permissions() -> int:
    """
    Link roles to their default permissions. Skips existing links.

    WHY: Admin and manager get everything, cashier can sell and look things up.
    """
    created_count = 0
    for role_name, permission_codes in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            continue

        for permission_code in permission_codes:
            permission = db.session.query(Permission).filter_by(code=permission_code).first()
            if not permission:
                continue

            existing = db.session.query(RolePermission).filter_by(
                role_id=role.id,
                permission_id=permission.id,
            ).first()
            if not existing:
                db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
                created_count += 1

    db.session.commit()
    return created_count


def get_user_permissions(user_id: int) -> set[str]:
    """Union of the permission codes of all the user's roles."""
    rows = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    return {code for (code,) in rows}


def user_has_permission(user_id: int, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user_id)


def require_permission(user_id: int, permission_code: str) -> None:
    if not user_has_permission(user_id, permission_code):
        raise PermissionDeniedError(f"Missing permission: {permission_code}")
