"""Stock bookkeeping shared by the purchase, wastage and cooking endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from ..entities.coercion import parse_number
from ..models import Ingredient, Recipe


def as_number(value, default=0):
    if isinstance(value, str):
        value = parse_number(value)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


def set_stock(ingredient: Ingredient, stock, cost_per_unit=None) -> None:
    """Store a new stock level and refresh the derived value and critical flag.

    Stock never goes below zero. The critical flag is computed from the
    requested level, so an over-deduction still marks the item critical.
    """
    if cost_per_unit is None:
        cost_per_unit = ingredient.cost_per_unit or 0
    remaining = max(0, stock)
    ingredient.current_stock = remaining
    ingredient.total_value = remaining * cost_per_unit
    ingredient.is_critical = stock <= (ingredient.min_stock_threshold or 0)


def is_low(ingredient: Ingredient) -> bool:
    return (ingredient.current_stock or 0) <= (ingredient.min_stock_threshold or 0)


def consume_recipe(recipe: Recipe, servings, owner_id: str) -> Tuple[List[Dict[str, Any]], float]:
    """Deduct ``servings`` worth of every recipe line from the owner's stock.

    Lines pointing at ingredients the owner does not have are skipped.
    Returns the per-ingredient deductions and the ingredient cost.
    """
    deductions = []
    total_cost = 0
    for line in recipe.ingredients or []:
        if not isinstance(line, dict):
            continue
        ingredient = Ingredient.query.filter_by(id=line.get("ingredient_id"), created_by=owner_id).first()
        if ingredient is None:
            continue
        used = as_number(line.get("quantity")) * servings
        stock = (ingredient.current_stock or 0) - used
        cost = used * (ingredient.cost_per_unit or 0)
        total_cost += cost
        set_stock(ingredient, stock)
        deductions.append({
            "ingredient": line.get("ingredient_name") or ingredient.name,
            "deducted": used,
            "unit": line.get("unit") or ingredient.unit,
            "remaining": ingredient.current_stock,
            "cost": cost,
        })
    return deductions, total_cost
