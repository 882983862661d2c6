from collections import Counter
from decimal import Decimal

from menu_modifiers.core.pricing import compute_price
from menu_modifiers.core.tree_store import TreeStore
from menu_modifiers.exceptions import ValidationError
from menu_modifiers.models import Modifier, ModifierGroup, SelectedModifier, Selections
from menu_modifiers.schemas.base import Base
from menu_modifiers.utils.enums import PreModifier


class SelectionViolation(Base):
    group_id: str
    group_name: str
    message: str


def default_selections(store: TreeStore) -> Selections:
    selections: Selections = {}
    for group in store.walk():
        defaults = [
            SelectedModifier(modifier_id=modifier.id) for modifier in store.modifiers_of(group.id) if modifier.is_default
        ]
        if defaults:
            selections[group.id] = defaults
    return selections


def unit_price(modifier: Modifier, pre_modifier: PreModifier | None = None) -> Decimal:
    if pre_modifier is None:
        return modifier.price
    if not modifier.allows(pre_modifier):
        raise ValidationError("pre_modifier", f"{pre_modifier.value} is not allowed for {modifier.name}")

    if pre_modifier == PreModifier.NO:
        return Decimal("0")
    if pre_modifier == PreModifier.EXTRA:
        return modifier.extra_price if modifier.extra_price else modifier.price
    if pre_modifier == PreModifier.LITE:
        return modifier.price * modifier.lite_multiplier
    return modifier.price * modifier.on_side_multiplier


def group_total(store: TreeStore, group_id: str, selected: list[SelectedModifier]) -> Decimal:
    group = store.get_group(group_id)
    prices = [unit_price(store.get_group_modifier(group_id, item.modifier_id), item.pre_modifier) for item in selected]
    return compute_price(len(selected), prices, group.tiered_pricing_config)


def selections_total(store: TreeStore, selections: Selections) -> Decimal:
    return sum(
        (group_total(store, group.id, selections.get(group.id, [])) for group in active_groups(store, selections)),
        Decimal("0"),
    )


def active_groups(store: TreeStore, selections: Selections) -> list[ModifierGroup]:
    """Top-level groups plus the child groups opened by selected choices."""
    active: list[ModifierGroup] = []
    seen: set[str] = set()
    pending = [group.id for group in store.top_level_groups()]
    while pending:
        group_id = pending.pop(0)
        if group_id in seen or group_id not in store.groups:
            continue
        seen.add(group_id)
        active.append(store.groups[group_id])
        for selected in selections.get(group_id, []):
            modifier = store.modifiers.get(selected.modifier_id)
            if modifier is not None and modifier.child_group_id:
                pending.append(modifier.child_group_id)
    return active


def validate_selections(store: TreeStore, selections: Selections) -> list[SelectionViolation]:
    violations = []
    for group in active_groups(store, selections):
        selected = selections.get(group.id, [])
        if group.is_required and len(selected) < group.min_selections:
            violations.append(
                SelectionViolation(
                    group_id=group.id,
                    group_name=group.label,
                    message=f"Select at least {group.min_selections}",
                )
            )
        if group.max_selections and len(selected) > group.max_selections:
            violations.append(
                SelectionViolation(
                    group_id=group.id,
                    group_name=group.label,
                    message=f"Maximum {group.max_selections} selections",
                )
            )
        if not group.allow_stacking:
            repeated = [modifier_id for modifier_id, count in Counter(s.modifier_id for s in selected).items() if count > 1]
            if repeated:
                violations.append(
                    SelectionViolation(
                        group_id=group.id,
                        group_name=group.label,
                        message=f"Stacking is not allowed: {', '.join(repeated)}",
                    )
                )
        unknown = [s.modifier_id for s in selected if store.owning_group_id(s.modifier_id) != group.id]
        if unknown:
            violations.append(
                SelectionViolation(
                    group_id=group.id,
                    group_name=group.label,
                    message=f"Unknown modifiers: {', '.join(unknown)}",
                )
            )
    return violations
