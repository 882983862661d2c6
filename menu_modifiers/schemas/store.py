from decimal import Decimal
from typing import Optional

from pydantic import Field

from menu_modifiers.models import (
    ChoiceModifier,
    ItemModifier,
    Modifier,
    ModifierGroup,
    Money,
    TieredPricingConfig,
)
from menu_modifiers.schemas.base import Base


class StoreModifier(Base):
    id: str
    name: str
    display_name: str | None = None
    price: Money = Decimal("0")
    allow_no: bool = True
    allow_lite: bool = False
    allow_on_side: bool = False
    allow_extra: bool = False
    lite_multiplier: Money = Decimal("1")
    on_side_multiplier: Money = Decimal("1")
    extra_price: Money = Decimal("0")
    is_default: bool = False
    is_label: bool = False
    ingredient_id: str | None = None
    ingredient_name: str | None = None
    printer_routing: str | None = None
    sort_order: int = 0
    child_modifier_group_id: str | None = None
    child_modifier_group: Optional["StoreGroup"] = None

    def to_domain(self) -> Modifier:
        fields = self.model_dump(exclude={"is_label", "child_modifier_group_id", "child_modifier_group"})
        child_group_id = self.child_modifier_group_id or (
            self.child_modifier_group.id if self.child_modifier_group else None
        )
        if child_group_id:
            return ChoiceModifier(**fields, child_group_id=child_group_id)
        return ItemModifier(**fields)


class StoreGroup(Base):
    id: str
    name: str
    display_name: str | None = None
    min_selections: int = 0
    max_selections: int = 1
    is_required: bool = False
    allow_stacking: bool = False
    tiered_pricing_config: TieredPricingConfig | None = None
    exclusion_group_key: str | None = None
    sort_order: int = 0
    modifiers: list[StoreModifier] = Field(default_factory=list)

    def to_domain(self) -> ModifierGroup:
        ordered = sorted(self.modifiers, key=lambda modifier: modifier.sort_order)
        return ModifierGroup(
            **self.model_dump(exclude={"modifiers"}),
            modifier_ids=[modifier.id for modifier in ordered],
        )

    def flatten(self) -> tuple[list[ModifierGroup], list[Modifier]]:
        groups = [self.to_domain()]
        modifiers: list[Modifier] = []
        for store_modifier in self.modifiers:
            modifiers.append(store_modifier.to_domain())
            if store_modifier.child_modifier_group:
                child_groups, child_modifiers = store_modifier.child_modifier_group.flatten()
                groups.extend(child_groups)
                modifiers.extend(child_modifiers)

        return groups, modifiers


StoreModifier.model_rebuild()


class StoreIngredient(Base):
    id: str
    name: str


class CreateGroup(Base):
    name: str
    min_selections: int = 0
    max_selections: int = 1
    is_required: bool = False
    parent_modifier_id: str | None = None


class DuplicateGroup(Base):
    duplicate_from_group_id: str


class ReparentGroup(Base):
    group_id: str
    target_parent_modifier_id: str | None


class SortOrderEntry(Base):
    id: str
    sort_order: int


class BulkReorder(Base):
    sort_orders: list[SortOrderEntry]


class UpdateGroup(Base):
    name: str | None = None
    display_name: str | None = None
    min_selections: int | None = None
    max_selections: int | None = None
    is_required: bool | None = None
    allow_stacking: bool | None = None
    tiered_pricing_config: TieredPricingConfig | None = None
    exclusion_group_key: str | None = None


class CreateModifier(Base):
    name: str
    price: Money = Decimal("0")
    allow_no: bool = True
    allow_lite: bool = False
    allow_on_side: bool = False
    allow_extra: bool = False
    extra_price: Money = Decimal("0")
    is_default: bool = False
    is_label: bool = False
    printer_routing: str | None = None


class UpdateModifier(Base):
    modifier_id: str
    name: str | None = None
    display_name: str | None = None
    price: Money | None = None
    allow_no: bool | None = None
    allow_lite: bool | None = None
    allow_on_side: bool | None = None
    allow_extra: bool | None = None
    lite_multiplier: Money | None = None
    on_side_multiplier: Money | None = None
    extra_price: Money | None = None
    is_default: bool | None = None
    ingredient_id: str | None = None
    printer_routing: str | None = None
    sort_order: int | None = None
