from __future__ import annotations

from typing import Optional

DEFAULT_SUPER_ADMIN_EMAIL = "support@tiffinhub.me"
BLOCKED_SUBSCRIPTION_STATUSES = ("expired", "cancelled")


def is_super_admin(user, admin_email: Optional[str] = None) -> bool:
    if user is None:
        return False
    admin_email = (admin_email or DEFAULT_SUPER_ADMIN_EMAIL).strip().lower()
    email = (getattr(user, "email", None) or "").strip().lower()
    return email == admin_email or bool(getattr(user, "is_super_admin", False))


def has_special_access(user) -> bool:
    access = getattr(user, "special_access_type", None)
    return bool(access) and access != "none"


def subscription_blocked(user, admin_email: Optional[str] = None) -> bool:
    if is_super_admin(user, admin_email) or has_special_access(user):
        return False
    return getattr(user, "subscription_status", None) in BLOCKED_SUBSCRIPTION_STATUSES


def has_premium_access(user, admin_email: Optional[str] = None) -> bool:
    if is_super_admin(user, admin_email) or has_special_access(user):
        return True
    if subscription_blocked(user, admin_email):
        return False
    return getattr(user, "plan_type", None) == "premium"


def owner_value(user, owner_kind: str) -> Optional[str]:
    """Identifier a record owned by ``user`` carries in its owner column."""
    if owner_kind == "email":
        return user.email
    return user.id
