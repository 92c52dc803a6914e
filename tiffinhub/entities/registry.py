from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Type

from .. import models
from ..errors import EntityNotFound


@dataclass(frozen=True)
class EntityConfig:
    name: str
    model: Type[models.db.Model]
    owner_field: Optional[str] = "created_by"
    owner_kind: str = "id"
    soft_delete: bool = False
    list_all: bool = False


def _by_id(name, model, **kwargs) -> EntityConfig:
    return EntityConfig(name=name, model=model, **kwargs)


def _by_email(name, model) -> EntityConfig:
    return EntityConfig(name=name, model=model, owner_field="user_email", owner_kind="email")


_ENTRIES = (
    _by_id("customers", models.Customer, soft_delete=True),
    _by_id("orders", models.Order),
    _by_id("menu_items", models.MenuItem),
    _by_id("tiffin_skips", models.TiffinSkip),
    _by_email("notifications", models.Notification),
    _by_id("activity_logs", models.ActivityLog),
    _by_id("ingredients", models.Ingredient),
    _by_id("recipes", models.Recipe),
    _by_id("suppliers", models.Supplier),
    _by_id("purchases", models.Purchase),
    _by_id("wastages", models.Wastage),
    _by_email("support_tickets", models.SupportTicket),
    _by_email("subscriptions", models.Subscription),
    _by_email("payment_history", models.PaymentHistory),
    _by_id("payment_links", models.PaymentLink),
    _by_id("consumption_logs", models.ConsumptionLog),
    _by_id("meal_ratings", models.MealRating),
    _by_id("invoices", models.Invoice),
    _by_id("referrals", models.Referral),
    _by_id("family_groups", models.FamilyGroup),
    _by_id("drivers", models.Driver),
    _by_id("delivery_batches", models.DeliveryBatch),
    _by_id("delivery_items", models.DeliveryItem),
    _by_id("containers", models.Container),
    _by_id("container_logs", models.ContainerLog),
    _by_id("kitchens", models.Kitchen),
    _by_id("prep_items", models.PrepItem),
    _by_id("chat_messages", models.ChatMessage),
    _by_id("one_time_orders", models.OneTimeOrder),
    _by_id("system_logs", models.SystemLog, list_all=True),
)

ENTITIES: Dict[str, EntityConfig] = {entry.name: entry for entry in _ENTRIES}


def get_entity(name: str) -> EntityConfig:
    config = ENTITIES.get(name)
    if config is None:
        raise EntityNotFound(name)
    return config


def owned_entities():
    return [config for config in ENTITIES.values() if config.owner_field]
