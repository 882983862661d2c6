from decimal import Decimal

import pytest

from menu_modifiers.core.selection import (
    active_groups,
    default_selections,
    group_total,
    selections_total,
    unit_price,
    validate_selections,
)
from menu_modifiers.exceptions import ValidationError
from menu_modifiers.models import FreeThreshold, PricingModes, SelectedModifier, TieredPricingConfig
from menu_modifiers.utils.enums import PreModifier


def pick(*modifier_ids, pre_modifier=None):
    return [SelectedModifier(modifier_id=modifier_id, pre_modifier=pre_modifier) for modifier_id in modifier_ids]


def test_default_selections(tree_store):
    tree_store.modifiers["m-dark"].is_default = True

    selections = default_selections(tree_store)

    assert {group_id: [s.modifier_id for s in picked] for group_id, picked in selections.items()} == {
        "g-bread": ["m-white"],
        "g-toast": ["m-dark"],
    }


@pytest.mark.parametrize(
    "modifier_id, pre_modifier, expected",
    [
        ("m-cheddar", None, "1.00"),
        ("m-cheddar", PreModifier.NO, "0"),
        ("m-cheddar", PreModifier.EXTRA, "1.50"),
        ("m-swiss", PreModifier.LITE, "0.625"),
        ("m-mayo", PreModifier.ON_SIDE, "0"),
    ],
)
def test_unit_price(tree_store, modifier_id, pre_modifier, expected):
    assert unit_price(tree_store.modifiers[modifier_id], pre_modifier) == Decimal(expected)


def test_extra_without_extra_price_uses_price(tree_store):
    modifier = tree_store.modifiers["m-swiss"]
    modifier.allow_extra = True

    assert unit_price(modifier, PreModifier.EXTRA) == Decimal("1.25")


def test_disallowed_pre_modifier(tree_store):
    with pytest.raises(ValidationError):
        unit_price(tree_store.modifiers["m-brie"], PreModifier.LITE)


def test_group_total_applies_tiered_pricing(tree_store):
    tree_store.groups["g-sauce"].tiered_pricing_config = TieredPricingConfig(
        enabled=True,
        modes=PricingModes(free_threshold=True),
        free_threshold=FreeThreshold(free_count=1),
    )

    assert group_total(tree_store, "g-sauce", pick("m-mayo", "m-mustard", "m-ketchup")) == Decimal("0.50")


def test_active_groups_open_selected_choice(tree_store):
    closed = active_groups(tree_store, {"g-bread": pick("m-white")})
    opened = active_groups(tree_store, {"g-bread": pick("m-toast")})

    assert "g-toast" not in [group.id for group in closed]
    assert "g-toast" in [group.id for group in opened]


def test_selections_total(tree_store):
    selections = {
        "g-bread": pick("m-toast"),
        "g-toast": pick("m-dark"),
        "g-cheese": pick("m-swiss"),
        "g-sauce": pick("m-mayo", "m-mayo"),
    }

    assert selections_total(tree_store, selections) == Decimal("2.00")


def test_selections_of_closed_groups_are_not_charged(tree_store):
    selections = {"g-bread": pick("m-white"), "g-toast": pick("m-dark")}

    assert selections_total(tree_store, selections) == Decimal("0")


def test_validate_selections(tree_store):
    selections = {
        "g-bread": pick("m-toast"),
        "g-cheese": pick("m-cheddar", "m-cheddar", "m-swiss"),
        "g-sauce": pick("m-mayo", "m-mayo"),
    }

    violations = validate_selections(tree_store, selections)

    assert {(v.group_id, v.message.split(":")[0]) for v in violations} == {
        ("g-toast", "Select at least 1"),
        ("g-cheese", "Maximum 2 selections"),
        ("g-cheese", "Stacking is not allowed"),
    }


def test_valid_selections(tree_store):
    selections = {
        "g-bread": pick("m-white"),
        "g-extra-cheese": pick("m-brie", "m-cheddar-x", "m-brie"),
    }
    tree_store.groups["g-extra-cheese"].allow_stacking = True

    assert validate_selections(tree_store, selections) == []


def test_selection_from_other_group_is_reported(tree_store):
    violations = validate_selections(tree_store, {"g-bread": pick("m-white", "m-mayo")})

    assert [v.group_id for v in violations] == ["g-bread", "g-bread"]
