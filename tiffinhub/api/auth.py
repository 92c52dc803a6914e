from __future__ import annotations

from functools import wraps
from typing import Callable, Optional

from flask import current_app, g
from flask_jwt_extended import create_access_token, get_jwt_identity, verify_jwt_in_request

from ..errors import Unauthorized
from ..extensions import db
from ..models import User
from ..security import has_premium_access, is_super_admin, subscription_blocked


def issue_token(user: User) -> str:
    return create_access_token(identity=user.id)


def resolve_user(identity: Optional[str]) -> Optional[User]:
    if not identity:
        return None
    return db.session.get(User, identity)


def current_user_is_super_admin() -> bool:
    return is_super_admin(g.get("api_user"), current_app.config.get("SUPER_ADMIN_EMAIL"))


def token_required(fn: Callable) -> Callable:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        user = resolve_user(get_jwt_identity())
        if not user:
            raise Unauthorized("User not found")
        g.api_user = user
        return fn(*args, **kwargs)

    return wrapper


def super_admin_required(fn: Callable) -> Callable:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_user_is_super_admin():
            return {"error": "Forbidden: Super Admin only"}, 403
        return fn(*args, **kwargs)

    return wrapper


def _renewal_required(user: User):
    return {
        "error": "Your subscription has expired. Please renew to continue.",
        "subscription_status": user.subscription_status,
        "renewal_required": True,
    }, 403


def active_subscription_required(fn: Callable) -> Callable:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = g.api_user
        if subscription_blocked(user, current_app.config.get("SUPER_ADMIN_EMAIL")):
            return _renewal_required(user)
        return fn(*args, **kwargs)

    return wrapper


def premium_required(fn: Callable) -> Callable:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = g.api_user
        admin_email = current_app.config.get("SUPER_ADMIN_EMAIL")
        if subscription_blocked(user, admin_email):
            return _renewal_required(user)
        if not has_premium_access(user, admin_email):
            return {
                "error": "This feature is available in the Premium plan",
                "current_plan": user.plan_type or "none",
                "upgrade_required": True,
            }, 403
        return fn(*args, **kwargs)

    return wrapper
