"""Generic CRUD over registered entities.

Every operation takes the acting user and whether that user is a super admin.
Ownership is enforced here so the HTTP layer stays a thin translation of
query strings and JSON bodies.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import Boolean, DateTime, inspect

from ..errors import AccessDenied, NotFound, UnknownFieldsError
from ..extensions import db
from ..security import owner_value
from ..utils.dates import format_datetime, parse_datetime, utcnow
from .coercion import TRUE_STRINGS, coerce_payload
from .registry import EntityConfig

logger = logging.getLogger(__name__)

CREATE_STRIP_FIELDS = ("id", "created_date", "updated_date")

UPDATE_DENY_FIELDS = frozenset({
    "id", "created_date", "updated_date", "created_by", "created_at",
    "updated_at", "user_email", "delivered_time",
    # relation names some clients echo back from expanded reads
    "creator", "customer", "customerRef", "orders", "tiffinSkips",
    "paymentLinks", "ingredient", "wastages", "skipRecords",
})

SORT_ALIASES = {
    "created_date": "created_at",
    "updated_date": "updated_at",
    "order_date": "created_at",
}

DEFAULT_SORT = [("created_at", "desc")]

HIDDEN_FIELDS = frozenset({"password_hash"})

MONGO_OPERATORS = {
    "$ne": "not",
    "$gt": "gt",
    "$gte": "gte",
    "$lt": "lt",
    "$lte": "lte",
    "$in": "in",
}


def columns_of(model) -> Dict[str, Any]:
    """Map external (column) names to mapped attribute keys."""
    mapper = inspect(model)
    return {attr.columns[0].name: attr.key for attr in mapper.column_attrs}


def column_object(model, name: str):
    return model.__table__.columns[name]


def serialize(record, hidden: Iterable[str] = HIDDEN_FIELDS) -> Dict[str, Any]:
    data = {}
    for name, key in columns_of(type(record)).items():
        if name in hidden:
            continue
        value = getattr(record, key)
        if isinstance(value, datetime):
            value = format_datetime(value)
        data[name] = value
    return add_virtual_fields(data)


def add_virtual_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    if data.get("created_at"):
        data["created_date"] = data["created_at"]
    if data.get("updated_at"):
        data["updated_date"] = data["updated_at"]
    return data


# -- filters -----------------------------------------------------------------

def parse_where(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.info("Ignoring malformed where clause: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def translate_operators(filters: Dict[str, Any]) -> Dict[str, Any]:
    translated = {}
    for key, value in filters.items():
        if isinstance(value, dict) and any(op in value for op in MONGO_OPERATORS):
            dropped = [op for op in value if op not in MONGO_OPERATORS]
            if dropped:
                logger.info("Ignoring unsupported operators on %s: %s", key, ", ".join(dropped))
            value = {MONGO_OPERATORS[op]: operand for op, operand in value.items() if op in MONGO_OPERATORS}
        translated[key] = value
    return translated


def scope_filters(config: EntityConfig, user, filters: Dict[str, Any]) -> Dict[str, Any]:
    """Restrict a caller-supplied filter to records the caller owns."""
    where = dict(filters)
    where.pop("created_by", None)
    where.pop("user_email", None)
    if config.owner_field:
        where[config.owner_field] = owner_value(user, config.owner_kind)
    if config.soft_delete:
        requested = filters.get("is_deleted")
        where["is_deleted"] = False if requested is None else requested
    return where


def _filter_value(column, value):
    if isinstance(value, list):
        return [_filter_value(column, v) for v in value]
    return _column_value(column, value)


def _operator_clause(column, op: str, operand):
    if op == "not":
        return column.is_not(None) if operand is None else column != operand
    if op == "gt":
        return column > operand
    if op == "gte":
        return column >= operand
    if op == "lt":
        return column < operand
    if op == "lte":
        return column <= operand
    if op == "in":
        return column.in_(operand or [])
    if op == "notIn":
        return column.not_in(operand or [])
    if op == "contains":
        return column.contains(operand, autoescape=True)
    if op == "startsWith":
        return column.startswith(operand, autoescape=True)
    if op == "endsWith":
        return column.endswith(operand, autoescape=True)
    if op == "equals":
        return column.is_(None) if operand is None else column == operand
    return None


def build_criteria(model, where: Dict[str, Any]) -> List[Any]:
    known = columns_of(model)
    criteria = []
    for name, value in where.items():
        if name not in known:
            logger.info("Ignoring filter on unknown field %s.%s", model.__tablename__, name)
            continue
        column = column_object(model, name)
        if isinstance(value, dict):
            clauses = [
                _operator_clause(column, op, _filter_value(column, operand))
                for op, operand in value.items()
            ]
            if clauses and all(clause is not None for clause in clauses):
                criteria.extend(clauses)
            else:
                criteria.append(column == value)
        elif value is None:
            criteria.append(column.is_(None))
        else:
            criteria.append(column == _filter_value(column, value))
    return criteria


# -- sorting -----------------------------------------------------------------

def _sort_term(field, direction="asc") -> Optional[Tuple[str, str]]:
    if not isinstance(field, str) or not field:
        return None
    direction = "desc" if str(direction or "asc").lower() == "desc" else "asc"
    return SORT_ALIASES.get(field, field), direction


def _plain_sort(text: str) -> List[Tuple[str, str]]:
    if text.startswith("-"):
        term = _sort_term(text[1:], "desc")
    else:
        term = _sort_term(text, "asc")
    return [term] if term else []


def parse_sort(raw: Optional[str]) -> List[Tuple[str, str]]:
    if not raw:
        return list(DEFAULT_SORT)
    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = raw

    terms: List[Tuple[str, str]] = []
    if isinstance(parsed, str):
        terms = _plain_sort(parsed)
    elif isinstance(parsed, list):
        for item in parsed:
            if isinstance(item, dict):
                term = _sort_term(item.get("field"), item.get("direction"))
            elif isinstance(item, (list, tuple)) and item:
                term = _sort_term(item[0], item[1] if len(item) > 1 else "asc")
            else:
                term = None
            if term:
                terms.append(term)
    elif isinstance(parsed, dict) and parsed.get("field"):
        term = _sort_term(parsed.get("field"), parsed.get("direction"))
        terms = [term] if term else []
    return terms or list(DEFAULT_SORT)


def order_clauses(model, terms: List[Tuple[str, str]]) -> List[Any]:
    known = columns_of(model)
    clauses = []
    for field, direction in terms:
        if field not in known:
            logger.info("Ignoring sort on unknown field %s.%s", model.__tablename__, field)
            continue
        column = column_object(model, field)
        clauses.append(column.desc() if direction == "desc" else column.asc())
    if not clauses:
        clauses.append(column_object(model, "created_at").desc())
    return clauses


def parse_int(raw) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


# -- writes ------------------------------------------------------------------

def _column_value(column, value):
    if isinstance(column.type, DateTime) and isinstance(value, str):
        return parse_datetime(value)
    if isinstance(column.type, Boolean) and isinstance(value, str):
        return value in TRUE_STRINGS
    return value


def assign(record, data: Dict[str, Any]) -> None:
    """Copy ``data`` onto ``record``; nothing is written if any key is unknown."""
    model = type(record)
    known = columns_of(model)
    unknown = [name for name in data if name not in known]
    if unknown:
        raise UnknownFieldsError(unknown)
    for name, value in data.items():
        setattr(record, known[name], _column_value(column_object(model, name), value))


def write_with_retry(write: Callable[[Dict[str, Any]], Any], data: Dict[str, Any], label: str):
    try:
        return write(data)
    except UnknownFieldsError as exc:
        db.session.rollback()
        logger.warning("%s: dropping unknown fields %s and retrying", label, ", ".join(exc.fields))
        cleaned = {key: value for key, value in data.items() if key not in exc.fields}
        return write(cleaned)


# -- operations --------------------------------------------------------------

def list_records(
    config: EntityConfig,
    user,
    super_admin: bool = False,
    where: Optional[str] = None,
    sort_by: Optional[str] = None,
    limit=None,
    offset=None,
    include_all: bool = False,
) -> List[Dict[str, Any]]:
    if config.list_all and not super_admin:
        raise AccessDenied("Forbidden")

    filters = translate_operators(parse_where(where))
    bypass = (include_all or config.list_all) and super_admin
    if not bypass:
        filters = scope_filters(config, user, filters)

    model = config.model
    query = model.query.filter(*build_criteria(model, filters))
    query = query.order_by(*order_clauses(model, parse_sort(sort_by)))
    limit = parse_int(limit)
    offset = parse_int(offset)
    if limit is not None:
        query = query.limit(limit)
    if offset:
        query = query.offset(offset)
    return [serialize(record) for record in query.all()]


def load_owned(config: EntityConfig, user, record_id: str, super_admin: bool = False):
    record = db.session.get(config.model, record_id)
    if record is None:
        raise NotFound("Not found")
    if config.owner_field and not super_admin:
        key = columns_of(config.model)[config.owner_field]
        if getattr(record, key) != owner_value(user, config.owner_kind):
            raise AccessDenied("Access denied")
    return record


def get_record(config: EntityConfig, user, record_id: str, super_admin: bool = False) -> Dict[str, Any]:
    return serialize(load_owned(config, user, record_id, super_admin))


def create_record(config: EntityConfig, user, payload: Dict[str, Any]) -> Dict[str, Any]:
    data = {key: value for key, value in payload.items() if key not in CREATE_STRIP_FIELDS}
    if config.owner_field:
        data[config.owner_field] = owner_value(user, config.owner_kind)
    data = coerce_payload(data)
    if config.name == "menu_items" and not data.get("name") and data.get("item_name"):
        data["name"] = data["item_name"]

    def write(values):
        record = config.model()
        assign(record, values)
        db.session.add(record)
        db.session.commit()
        return record

    record = write_with_retry(write, data, f"create {config.name}")
    return serialize(record)


def update_record(
    config: EntityConfig, user, record_id: str, payload: Dict[str, Any], super_admin: bool = False
) -> Dict[str, Any]:
    record = load_owned(config, user, record_id, super_admin)
    data = {key: value for key, value in payload.items() if key not in UPDATE_DENY_FIELDS}
    data = coerce_payload(data)

    def write(values):
        assign(record, values)
        db.session.commit()
        return record

    record = write_with_retry(write, data, f"update {config.name}/{record_id}")
    return serialize(record)


def delete_record(config: EntityConfig, user, record_id: str, super_admin: bool = False) -> Dict[str, Any]:
    record = load_owned(config, user, record_id, super_admin)
    if config.soft_delete:
        record.is_deleted = True
        record.deleted_at = utcnow()
    else:
        db.session.delete(record)
    db.session.commit()
    return {"success": True}
