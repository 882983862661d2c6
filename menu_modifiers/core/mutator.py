from decimal import Decimal
from typing import Any, Callable, Sequence
from uuid import uuid4

from menu_modifiers.config import settings
from menu_modifiers.core.tree_store import TreeStore
from menu_modifiers.exceptions import ConflictError, CycleError, ValidationError
from menu_modifiers.logger import get_logger
from menu_modifiers.models import (
    ChoiceModifier,
    DeletePreview,
    ItemModifier,
    Modifier,
    ModifierGroup,
)

logger = get_logger("mutator")

GROUP_PATCH_FIELDS = {
    "name",
    "display_name",
    "min_selections",
    "max_selections",
    "is_required",
    "allow_stacking",
    "tiered_pricing_config",
    "exclusion_group_key",
}
MODIFIER_PATCH_FIELDS = {
    "name",
    "display_name",
    "price",
    "allow_no",
    "allow_lite",
    "allow_on_side",
    "allow_extra",
    "lite_multiplier",
    "on_side_multiplier",
    "extra_price",
    "is_default",
    "ingredient_id",
    "ingredient_name",
    "printer_routing",
}


def temp_id() -> str:
    return f"{settings.TEMP_ID_PREFIX}{uuid4().hex}"


def clean_name(name: str | None, field_name: str = "name") -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(field_name, "must not be blank")
    return cleaned


def check_selection_bounds(min_selections: int, max_selections: int) -> None:
    if min_selections < 0:
        raise ValidationError("min_selections", "must be >= 0")
    if max_selections < 0:
        raise ValidationError("max_selections", "must be >= 0")


class StructuralMutator:
    """Structural edits on a TreeStore that keep the group forest acyclic.

    Every operation checks its preconditions before touching the store, so a
    rejected call leaves no partial state behind.
    """

    def __init__(self, store: TreeStore, id_factory: Callable[[], str] = temp_id) -> None:
        self.store = store
        self.new_id = id_factory

    def create_group(
        self,
        name: str,
        min_selections: int = 0,
        max_selections: int = 1,
        parent_modifier_id: str | None = None,
        is_required: bool = False,
    ) -> ModifierGroup:
        name = clean_name(name)
        check_selection_bounds(min_selections, max_selections)
        if parent_modifier_id is not None:
            parent = self.store.get_modifier(parent_modifier_id)
            if parent.child_group_id:
                raise ConflictError(f"Modifier {parent_modifier_id} already owns child group {parent.child_group_id}")

        group = ModifierGroup(
            id=self.new_id(),
            name=name,
            min_selections=min_selections,
            max_selections=max_selections,
            is_required=is_required,
            sort_order=0 if parent_modifier_id else self.store.next_top_level_sort_order(),
        )
        self.store.add_group(group)
        if parent_modifier_id is not None:
            self.store.attach(group.id, parent_modifier_id)

        logger.debug("Group created", group_id=group.id, parent_modifier_id=parent_modifier_id)
        return group

    def update_group(self, group_id: str, **patch: Any) -> ModifierGroup:
        group = self.store.get_group(group_id)
        unknown = set(patch) - GROUP_PATCH_FIELDS
        if unknown:
            raise ValidationError(", ".join(sorted(unknown)), "cannot be patched")
        if "name" in patch:
            patch["name"] = clean_name(patch["name"])
        check_selection_bounds(
            patch.get("min_selections", group.min_selections),
            patch.get("max_selections", group.max_selections),
        )
        if patch.get("exclusion_group_key") == "":
            patch["exclusion_group_key"] = None

        for field_name, value in patch.items():
            setattr(group, field_name, value)
        return group

    def rename_group(self, group_id: str, name: str) -> bool:
        name = clean_name(name)
        if self.store.get_group(group_id).name == name:
            return False
        self.update_group(group_id, name=name)
        return True

    def add_modifier(self, group_id: str, name: str, price: Decimal | int | str = 0, **fields: Any) -> ItemModifier:
        name = clean_name(name)
        unknown = set(fields) - MODIFIER_PATCH_FIELDS
        if unknown:
            raise ValidationError(", ".join(sorted(unknown)), "cannot be set on create")
        group = self.store.get_group(group_id)

        modifier = ItemModifier(
            id=self.new_id(),
            name=name,
            price=Decimal(str(price)),
            sort_order=len(group.modifier_ids),
            **fields,
        )
        self.store.add_modifier(group_id, modifier)
        return modifier

    def add_choice(self, group_id: str, name: str) -> tuple[ChoiceModifier, ModifierGroup]:
        name = clean_name(name)
        modifier = self.add_modifier(
            group_id,
            name,
            price=0,
            allow_no=False,
            allow_lite=False,
            allow_on_side=False,
            allow_extra=False,
        )
        child = self.create_group(name, min_selections=0, max_selections=1, parent_modifier_id=modifier.id)
        choice = self.store.get_modifier(modifier.id)
        return choice, child  # type: ignore[return-value]

    def update_modifier(self, group_id: str, modifier_id: str, **patch: Any) -> Modifier:
        modifier = self.store.get_group_modifier(group_id, modifier_id)
        unknown = set(patch) - MODIFIER_PATCH_FIELDS
        if unknown:
            raise ValidationError(", ".join(sorted(unknown)), "cannot be patched")
        if "name" in patch:
            patch["name"] = clean_name(patch["name"])
        for money_field in ("price", "extra_price", "lite_multiplier", "on_side_multiplier"):
            if money_field in patch:
                patch[money_field] = Decimal(str(patch[money_field]))

        for field_name, value in patch.items():
            setattr(modifier, field_name, value)
        return modifier

    def delete_modifier(self, group_id: str, modifier_id: str) -> tuple[list[ModifierGroup], list[Modifier]]:
        self.store.get_group_modifier(group_id, modifier_id)
        return self.store.remove_modifier(modifier_id)

    def check_can_nest(self, group_id: str, target_group_id: str) -> None:
        if self.store.is_descendant_of(group_id, target_group_id):
            logger.info("Nesting rejected", group_id=group_id, target_group_id=target_group_id)
            raise CycleError(group_id, target_group_id)

    def reparent_group(self, group_id: str, target_parent_modifier_id: str | None) -> None:
        self.store.get_group(group_id)
        if target_parent_modifier_id is None:
            if self.store.parent_modifier_id(group_id) is None:
                return
            self.store.detach(group_id)
            self.store.groups[group_id].sort_order = self.store.next_top_level_sort_order(group_id)
            logger.debug("Group promoted to top level", group_id=group_id)
            return

        target = self.store.get_modifier(target_parent_modifier_id)
        target_group_id = self.store.owning_group_id(target_parent_modifier_id)
        if target_group_id is None:
            raise ValidationError("target_parent_modifier_id", "modifier is not owned by any group")
        self.check_can_nest(group_id, target_group_id)
        if target.child_group_id == group_id:
            return
        if target.child_group_id:
            raise ConflictError(f"Modifier {target_parent_modifier_id} already owns child group {target.child_group_id}")

        self.store.detach(group_id)
        self.store.attach(group_id, target_parent_modifier_id)
        logger.debug("Group reparented", group_id=group_id, target_parent_modifier_id=target_parent_modifier_id)

    def nest_group_in_group(self, dragged_group_id: str, target_group_id: str) -> ChoiceModifier:
        dragged = self.store.get_group(dragged_group_id)
        self.store.get_group(target_group_id)
        self.check_can_nest(dragged_group_id, target_group_id)

        wrapper = self.add_modifier(target_group_id, dragged.name or "Sub-Group", price=0)
        self.reparent_group(dragged_group_id, wrapper.id)
        return self.store.get_modifier(wrapper.id)  # type: ignore[return-value]

    def handle_group_drop_on_modifier(self, dragged_group_id: str, target_modifier_id: str) -> str | None:
        self.store.get_group(dragged_group_id)
        target = self.store.get_modifier(target_modifier_id)
        target_group_id = self.store.owning_group_id(target_modifier_id)
        if target_group_id is None:
            raise ValidationError("target_modifier_id", "modifier is not owned by any group")
        self.check_can_nest(dragged_group_id, target_group_id)

        displaced_group_id = None
        if target.child_group_id and target.child_group_id != dragged_group_id:
            displaced_group_id = target.child_group_id
            self.reparent_group(displaced_group_id, None)

        self.reparent_group(dragged_group_id, target_modifier_id)
        return displaced_group_id

    def duplicate_group(self, group_id: str, target_parent_group_id: str | None = None) -> ModifierGroup:
        source = self.store.get_group(group_id)
        parent_group_id = target_parent_group_id or self.store.parent_group_id(group_id)
        if parent_group_id is not None:
            self.store.get_group(parent_group_id)

        groups, modifiers = self.store.subtree(group_id)
        group_ids = {group.id: self.new_id() for group in groups}
        modifier_ids = {modifier.id: self.new_id() for modifier in modifiers}

        for group in groups:
            self.store.add_group(
                group.model_copy(
                    deep=True,
                    update={
                        "id": group_ids[group.id],
                        "modifier_ids": [modifier_ids[modifier_id] for modifier_id in group.modifier_ids],
                    },
                )
            )
        for modifier in modifiers:
            update: dict[str, Any] = {"id": modifier_ids[modifier.id]}
            if modifier.child_group_id:
                update["child_group_id"] = group_ids[modifier.child_group_id]
            owner_id = self.store.owning_group_id(modifier.id)
            self.store.add_modifier(group_ids[owner_id], modifier.model_copy(update=update))  # type: ignore[index]

        duplicate = self.store.get_group(group_ids[source.id])
        if parent_group_id is not None:
            wrapper = self.add_modifier(parent_group_id, f"{source.name} (Copy)", price=0)
            self.store.attach(duplicate.id, wrapper.id)
        else:
            duplicate.sort_order = self.store.next_top_level_sort_order(duplicate.id)

        logger.debug("Group duplicated", group_id=group_id, duplicate_id=duplicate.id, parent_group_id=parent_group_id)
        return duplicate

    def preview_delete(self, group_id: str) -> DeletePreview:
        group = self.store.get_group(group_id)
        groups, modifiers = self.store.subtree(group_id)
        return DeletePreview(group_count=len(groups), modifier_count=len(modifiers), group_name=group.name)

    def delete_group(self, group_id: str) -> DeletePreview:
        preview = self.preview_delete(group_id)
        self.store.remove_group(group_id)
        logger.debug(
            "Group deleted",
            group_id=group_id,
            group_count=preview.group_count,
            modifier_count=preview.modifier_count,
        )
        return preview

    def reorder_groups(self, ordered_top_level_ids: Sequence[str]) -> None:
        top_level_ids = [group.id for group in self.store.top_level_groups()]
        check_permutation("ordered_top_level_ids", ordered_top_level_ids, top_level_ids)
        for sort_order, group_id in enumerate(ordered_top_level_ids):
            self.store.groups[group_id].sort_order = sort_order

    def reorder_modifiers(self, group_id: str, ordered_modifier_ids: Sequence[str]) -> None:
        group = self.store.get_group(group_id)
        check_permutation("ordered_modifier_ids", ordered_modifier_ids, group.modifier_ids)
        group.modifier_ids = list(ordered_modifier_ids)
        self.store.renumber_modifiers(group_id)


def check_permutation(field_name: str, ordered_ids: Sequence[str], current_ids: Sequence[str]) -> None:
    if len(ordered_ids) != len(set(ordered_ids)):
        raise ValidationError(field_name, "contains duplicate ids")
    if set(ordered_ids) != set(current_ids):
        raise ValidationError(field_name, "must list exactly the current siblings")


def move_item(ordered: list[str], from_id: str, to_id: str) -> list[str]:
    if from_id not in ordered or to_id not in ordered:
        raise ValidationError("ids", "both ids must belong to the same sibling set")
    to_index = ordered.index(to_id)
    ordered.insert(to_index, ordered.pop(ordered.index(from_id)))
    return ordered
