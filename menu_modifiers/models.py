from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import Field, PlainSerializer

from menu_modifiers.schemas.base import Base
from menu_modifiers.utils.enums import PreModifier

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class FlatTier(Base):
    up_to: int = Field(ge=0)
    price: Money = Decimal("0")


class FlatTiers(Base):
    tiers: list[FlatTier] = Field(default_factory=list)
    overflow_price: Money = Decimal("0")


class FreeThreshold(Base):
    free_count: int = Field(default=0, ge=0)


class PricingModes(Base):
    flat_tiers: bool = False
    free_threshold: bool = False


class TieredPricingConfig(Base):
    enabled: bool = False
    modes: PricingModes = Field(default_factory=PricingModes)
    flat_tiers: FlatTiers | None = None
    free_threshold: FreeThreshold | None = None


class ModifierBase(Base):
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
    ingredient_id: str | None = None
    ingredient_name: str | None = None
    printer_routing: str | None = None
    sort_order: int = 0

    def allows(self, pre_modifier: PreModifier) -> bool:
        return {
            PreModifier.NO: self.allow_no,
            PreModifier.LITE: self.allow_lite,
            PreModifier.ON_SIDE: self.allow_on_side,
            PreModifier.EXTRA: self.allow_extra,
        }[pre_modifier]

    def as_choice(self, child_group_id: str) -> "ChoiceModifier":
        return ChoiceModifier(**self.model_dump(exclude={"kind", "child_group_id"}), child_group_id=child_group_id)

    def as_item(self) -> "ItemModifier":
        return ItemModifier(**self.model_dump(exclude={"kind", "child_group_id"}))


class ItemModifier(ModifierBase):
    kind: Literal["item"] = "item"
    child_group_id: None = None


class ChoiceModifier(ModifierBase):
    """A modifier that opens a nested group, e.g. "Toasted?" -> "Toast Level"."""

    kind: Literal["choice"] = "choice"
    child_group_id: str


Modifier = Annotated[Union[ItemModifier, ChoiceModifier], Field(discriminator="kind")]


class ModifierGroup(Base):
    id: str
    name: str
    display_name: str | None = None
    min_selections: int = Field(default=0, ge=0)
    max_selections: int = Field(default=1, ge=0)
    is_required: bool = False
    allow_stacking: bool = False
    tiered_pricing_config: TieredPricingConfig | None = None
    exclusion_group_key: str | None = None
    sort_order: int = 0
    modifier_ids: list[str] = Field(default_factory=list)

    @property
    def label(self) -> str:
        return self.display_name or self.name


class TreeSnapshot(Base):
    groups: dict[str, ModifierGroup] = Field(default_factory=dict)
    modifiers: dict[str, Modifier] = Field(default_factory=dict)


class DeletePreview(Base):
    group_count: int
    modifier_count: int
    group_name: str


class SelectedModifier(Base):
    modifier_id: str
    pre_modifier: PreModifier | None = None


Selections = dict[str, list[SelectedModifier]]
