from datetime import timedelta

from flask import Blueprint, current_app, g, request

from ..api.auth import issue_token, super_admin_required, token_required
from ..entities.gateway import serialize
from ..entities.registry import owned_entities
from ..errors import BadRequest, Conflict, NotFound, Unauthorized
from ..extensions import db
from ..models import DELETED_MARKER, User
from ..security import owner_value
from ..utils.dates import utcnow

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

PROFILE_FIELDS = (
    "full_name", "phone", "business_name", "logo_url",
    "whatsapp_notifications_enabled", "whatsapp_number",
)


def _credentials():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    return data, email, data.get("password")


def _session_payload(user: User) -> dict:
    return {"token": issue_token(user), "user": serialize(user)}


@auth_bp.post("/register")
def register():
    data, email, password = _credentials()
    if not email or not password:
        raise BadRequest("Email and password required")

    existing = User.query.filter_by(email=email).first()
    if existing and existing.subscription_status == "deleted":
        # returning accounts do not get a second trial
        existing.set_password(password)
        existing.full_name = data.get("full_name") or None
        existing.subscription_status = "expired"
        existing.plan_type = None
        existing.subscription_source = None
        existing.trial_ends_at = None
        existing.subscription_ends_at = None
        db.session.commit()
        current_app.logger.info("Re-registered deleted account %s without trial", email)
        return _session_payload(existing), 201
    if existing:
        raise Conflict("Email already registered")

    user = User(
        email=email,
        full_name=data.get("full_name") or None,
        subscription_status="trial",
        plan_type="trial",
        subscription_source="trial",
        trial_ends_at=utcnow() + timedelta(days=current_app.config.get("MERCHANT_TRIAL_DAYS", 7)),
    )
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    current_app.logger.info("Registered %s", email)
    return _session_payload(user), 201


@auth_bp.post("/login")
def login():
    _, email, password = _credentials()
    if not email or not password:
        raise BadRequest("Email and password required")
    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        raise Unauthorized("Invalid credentials")
    return _session_payload(user)


@auth_bp.get("/me")
@token_required
def me():
    return serialize(g.api_user)


@auth_bp.put("/me")
@token_required
def update_me():
    data = request.get_json(silent=True) or {}
    user = g.api_user
    for field in PROFILE_FIELDS:
        if field in data:
            setattr(user, field, data[field])
    db.session.commit()
    return serialize(user)


@auth_bp.post("/impersonate")
@token_required
@super_admin_required
def impersonate():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    if not email:
        raise BadRequest("Email required")
    target = User.query.filter_by(email=email).first()
    if not target:
        raise NotFound("User not found")
    current_app.logger.warning("%s is impersonating %s", g.api_user.email, target.email)
    return _session_payload(target)


@auth_bp.delete("/delete-account")
@token_required
def delete_account():
    user = g.api_user
    for config in owned_entities():
        column = getattr(config.model, config.owner_field)
        config.model.query.filter(column == owner_value(user, config.owner_kind)).delete(
            synchronize_session=False
        )

    # the tombstone keeps the email from claiming a fresh trial
    user.password_hash = DELETED_MARKER
    user.full_name = DELETED_MARKER
    user.subscription_status = "deleted"
    user.plan_type = None
    user.stripe_customer_id = None
    user.stripe_subscription_id = None
    user.subscription_ends_at = None
    user.trial_ends_at = None
    db.session.commit()
    current_app.logger.info("Deleted account data for %s", user.email)
    return {"success": True}
