from flask import Blueprint, current_app, g, request

from ..api.auth import (
    active_subscription_required,
    current_user_is_super_admin,
    super_admin_required,
    token_required,
)
from ..errors import NotFound
from ..extensions import db
from ..models import User
from . import gateway
from .coercion import coerce_payload
from .registry import get_entity

entities_bp = Blueprint("entities", __name__, url_prefix="/api")

ADMIN_USER_FIELDS = (
    "id", "email", "full_name", "role", "subscription_status", "plan_type",
    "subscription_source", "is_super_admin", "special_access_type",
    "trial_ends_at", "subscription_ends_at", "stripe_customer_id",
    "stripe_subscription_id", "currency", "created_at",
)

ADMIN_EDITABLE_FIELDS = (
    "full_name", "business_name", "role", "is_super_admin",
    "special_access_type", "subscription_status", "plan_type",
    "subscription_source", "trial_ends_at", "subscription_ends_at",
)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@entities_bp.get("/admin/users")
@token_required
@super_admin_required
def list_users():
    users = User.query.order_by(User.created_at.desc()).all()
    result = []
    for user in users:
        data = gateway.serialize(user)
        result.append(gateway.add_virtual_fields({key: data.get(key) for key in ADMIN_USER_FIELDS}))
    return result


@entities_bp.put("/admin/users/<user_id>")
@token_required
@super_admin_required
def update_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    body = _json_body()
    updates = coerce_payload({key: body[key] for key in ADMIN_EDITABLE_FIELDS if key in body})
    gateway.assign(user, updates)
    db.session.commit()
    current_app.logger.info("Admin %s updated user %s: %s", g.api_user.email, user.email, sorted(updates))
    return gateway.serialize(user)


@entities_bp.get("/<entity>")
@token_required
def list_entity(entity):
    config = get_entity(entity)
    args = request.args
    return gateway.list_records(
        config,
        g.api_user,
        super_admin=current_user_is_super_admin(),
        where=args.get("where"),
        sort_by=args.get("sortBy"),
        limit=args.get("limit"),
        offset=args.get("offset"),
        include_all=args.get("all") == "true",
    )


@entities_bp.get("/<entity>/<record_id>")
@token_required
def get_entity_record(entity, record_id):
    config = get_entity(entity)
    return gateway.get_record(config, g.api_user, record_id, current_user_is_super_admin())


@entities_bp.post("/<entity>")
@token_required
@active_subscription_required
def create_entity_record(entity):
    config = get_entity(entity)
    return gateway.create_record(config, g.api_user, _json_body()), 201


@entities_bp.put("/<entity>/<record_id>")
@token_required
@active_subscription_required
def update_entity_record(entity, record_id):
    config = get_entity(entity)
    current_app.logger.debug("PUT %s/%s by %s", entity, record_id, g.api_user.id)
    return gateway.update_record(
        config, g.api_user, record_id, _json_body(), current_user_is_super_admin()
    )


@entities_bp.delete("/<entity>/<record_id>")
@token_required
@active_subscription_required
def delete_entity_record(entity, record_id):
    config = get_entity(entity)
    return gateway.delete_record(config, g.api_user, record_id, current_user_is_super_admin())
