"""Pure procurement quantity calculation from an event menu.

Arithmetic runs on Decimal so totals do not depend on float rounding, and the
result does not depend on the order of the menu lines.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_CEILING, Decimal

from kitchenops.core.errors import ValidationError, coerce_input
from kitchenops.domain.cooking import TaskPriority
from kitchenops.domain.event import MenuItem
from kitchenops.domain.provisioning import Portion, QuantityRules
from kitchenops.models.service_models import ProcurementLine


logger = logging.getLogger(__name__)

_HUNDRED = Decimal(100)


@dataclass
class _Accumulator:
    unit: str
    raw: Decimal = Decimal(0)
    names: set[str] = field(default_factory=set)


def _known_categories(rules: QuantityRules) -> set[str]:
    return {*rules.category_portions, *rules.buffer_percentages, *rules.cooking_times, *rules.priorities}


def normalize_category(category: str, rules: QuantityRules) -> str:
    """Map planner aliases and case variants onto the canonical kitchen category."""
    stripped = category.strip()
    folded = stripped.casefold()
    alias = rules.category_aliases.get(folded)
    if alias:
        return alias
    for canonical in _known_categories(rules):
        if canonical.casefold() == folded:
            return canonical
    return stripped


def base_portion(item: MenuItem, rules: QuantityRules) -> Portion:
    """Per-guest portion for one menu line.

    Precedence: the line's explicit quantity_per_person, then the planner
    category's portion, then a dish-name keyword rule, then the category
    default, then the fallback portion. A unit stated without a quantity must
    match the rule that supplies the quantity.

    Raises:
        ValidationError: If the line names a unit the matching rule is not in
    """
    category = normalize_category(item.category, rules)
    rule_portion = rules.alias_portions.get(item.category.strip().casefold())
    if rule_portion is None:
        name = item.item_name.casefold()
        for rule in rules.keyword_portions:
            if rule.category == category and any(keyword in name for keyword in rule.keywords):
                rule_portion = rule.portion
                break
    if rule_portion is None:
        rule_portion = rules.category_portions.get(category, rules.fallback_portion)

    if item.quantity_per_person is not None:
        return Portion(quantity=item.quantity_per_person, unit=item.unit or rule_portion.unit)
    if item.unit and item.unit.strip().casefold() != rule_portion.unit.casefold():
        msg = (
            f"Menu item '{item.item_name}' is listed in {item.unit} but {category} portions are in "
            f"{rule_portion.unit}; give quantity_per_person to use another unit"
        )
        raise ValidationError(msg)
    return rule_portion


def buffer_percentage(category: str, rules: QuantityRules) -> float:
    """Safety buffer for a canonical category."""
    return rules.buffer_percentages.get(category, rules.default_buffer_percentage)


def calculate_procurement(
    menu_items: Iterable[MenuItem | dict],
    guest_count: int,
    rules: QuantityRules | None = None,
) -> list[ProcurementLine]:
    """Aggregate a menu into buffered procurement lines.

    Lines sharing a (case-insensitive name, canonical category) key are summed
    before the category buffer is applied once and the total rounded up to a
    whole unit. Output is sorted by category then name.

    Raises:
        ValidationError: On a non-positive guest count, an invalid menu line,
            or two lines of the same key in different units
    """
    rules = rules or QuantityRules()
    if guest_count < 1:
        msg = f"Guest count must be at least 1, got {guest_count}"
        raise ValidationError(msg)

    guests = Decimal(guest_count)
    totals: dict[tuple[str, str], _Accumulator] = {}

    for raw_item in menu_items:
        item = coerce_input(MenuItem, raw_item, context="menu item")
        category = normalize_category(item.category, rules)
        name = item.item_name.strip()
        portion = base_portion(item, rules)
        key = (name.casefold(), category)

        acc = totals.setdefault(key, _Accumulator(unit=portion.unit))
        if acc.unit != portion.unit:
            msg = f"Menu item '{name}' ({category}) is listed in both {acc.unit} and {portion.unit}"
            raise ValidationError(msg)
        acc.raw += Decimal(str(portion.quantity)) * guests
        acc.names.add(name)

    lines = []
    for (name_key, category), acc in sorted(totals.items(), key=lambda kv: (kv[0][1], kv[0][0])):
        buffer = buffer_percentage(category, rules)
        buffered = acc.raw * (1 + Decimal(str(buffer)) / _HUNDRED)
        quantity = int(buffered.to_integral_value(rounding=ROUND_CEILING))
        lines.append(
            ProcurementLine(
                # Deterministic display name when the same dish is spelled with different casing
                item_name=min(acc.names),
                category=category,
                quantity=quantity,
                unit=acc.unit,
                raw_quantity=float(acc.raw),
                buffer_percentage=buffer,
            )
        )
        logger.debug(
            "Calculated procurement line",
            extra={"item": name_key, "category": category, "raw": str(acc.raw), "quantity": quantity},
        )

    return lines


def estimate_cooking_time(category: str, dish_name: str, rules: QuantityRules | None = None) -> int:
    """Estimated cooking time in minutes for a dish."""
    rules = rules or QuantityRules()
    canonical = normalize_category(category, rules)
    name = dish_name.casefold()
    for rule in rules.keyword_cooking_times:
        if rule.category == canonical and any(keyword in name for keyword in rule.keywords):
            return rule.minutes
    return rules.cooking_times.get(canonical, rules.default_cooking_time)


def priority_for_category(category: str, rules: QuantityRules | None = None) -> TaskPriority:
    """Cooking priority for a dish category."""
    rules = rules or QuantityRules()
    return rules.priorities.get(normalize_category(category, rules), rules.default_priority)
