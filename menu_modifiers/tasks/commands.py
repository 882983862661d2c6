import asyncio
from decimal import Decimal
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from menu_modifiers.clients.store_client import MenuStoreClient
from menu_modifiers.config import settings
from menu_modifiers.core.defaults import DefaultSelectionPolicy
from menu_modifiers.core.mutator import StructuralMutator
from menu_modifiers.core.tree_store import TreeStore
from menu_modifiers.exceptions import ModifierEngineError, NetworkError, ValidationError
from menu_modifiers.logger import get_logger
from menu_modifiers.models import TieredPricingConfig
from menu_modifiers.schemas.store import (
    CreateGroup,
    CreateModifier,
    SortOrderEntry,
    StoreGroup,
    UpdateGroup,
    UpdateModifier,
)
from menu_modifiers.utils.batch import generate_batch

logger = get_logger("commands")

CREATE_MODIFIER_FIELDS = set(CreateModifier.model_fields) - {"name", "price", "is_label"}
UPDATE_MODIFIER_FIELDS = set(UpdateModifier.model_fields) - {"modifier_id"}

# Marks an optional argument the caller left out, so it stays out of the patch.
UNCHANGED: Any = object()


class CommandResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    command: str
    ok: bool
    value: Any = None
    error: ModifierEngineError | None = None


class TempIdRegistry:
    """Tracks locally generated ids until the store answers with canonical ones.

    A command that refers to an id created by an earlier, still unconfirmed
    command awaits ``canonical`` before it sends anything.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future] = {}
        self._resolved: dict[str, str] = {}
        self._failed: dict[str, ModifierEngineError] = {}

    def expect(self, temp_id: str) -> None:
        self._pending[temp_id] = asyncio.get_running_loop().create_future()

    def resolve(self, temp_id: str, canonical_id: str) -> None:
        self._resolved[temp_id] = canonical_id
        future = self._pending.pop(temp_id, None)
        if future is not None and not future.done():
            future.set_result(canonical_id)

    def fail(self, temp_id: str, error: ModifierEngineError) -> None:
        self._failed[temp_id] = error
        future = self._pending.pop(temp_id, None)
        if future is not None and not future.done():
            future.set_result(None)

    def is_pending(self, entity_id: str) -> bool:
        return entity_id in self._pending

    async def canonical(self, entity_id: str | None) -> str | None:
        if entity_id is None:
            return None
        if entity_id in self._resolved:
            return self._resolved[entity_id]
        if entity_id in self._failed:
            raise self._failed[entity_id]

        future = self._pending.get(entity_id)
        if future is None:
            return entity_id
        canonical_id = await asyncio.shield(future)
        if canonical_id is None:
            raise self._failed[entity_id]
        return canonical_id


class SyncContext:
    def __init__(self, store: TreeStore, client: MenuStoreClient, ids: TempIdRegistry) -> None:
        self.store = store
        self.client = client
        self.ids = ids

    def rebind_group(self, temp_id: str, canonical_id: str) -> None:
        if not self.store.rebind_group_id(temp_id, canonical_id):
            logger.warning("Stale group response discarded", temp_id=temp_id, group_id=canonical_id)
        self.ids.resolve(temp_id, canonical_id)

    def rebind_modifier(self, temp_id: str, canonical_id: str) -> None:
        if not self.store.rebind_modifier_id(temp_id, canonical_id):
            logger.warning("Stale modifier response discarded", temp_id=temp_id, modifier_id=canonical_id)
        self.ids.resolve(temp_id, canonical_id)


class Command:
    """One optimistic edit: ``apply`` changes the TreeStore, ``confirm`` tells the store.

    ``apply`` runs synchronously and raises on local rejection before anything
    is sent. ``confirm`` raises ``ModifierEngineError`` when the store refuses.
    """

    name = "command"

    def __init__(self) -> None:
        self.generation = 0
        self.temp_ids: list[str] = []

    def apply(self, mutator: StructuralMutator, policy: DefaultSelectionPolicy) -> Any:
        raise NotImplementedError

    async def confirm(self, ctx: SyncContext) -> Any:
        raise NotImplementedError

    def created_ids(self) -> list[str]:
        return []

    def expect(self, ids: TempIdRegistry, *temp_ids: str) -> None:
        for temp_id in temp_ids:
            ids.expect(temp_id)
            self.temp_ids.append(temp_id)

    def abandon(self, ids: TempIdRegistry, error: ModifierEngineError) -> None:
        for temp_id in self.temp_ids:
            if ids.is_pending(temp_id):
                ids.fail(temp_id, error)


class CreateGroupCommand(Command):
    name = "create_group"

    def __init__(
        self,
        name: str,
        min_selections: int = 0,
        max_selections: int = 1,
        parent_modifier_id: str | None = None,
        is_required: bool = False,
    ) -> None:
        super().__init__()
        self.group_name = name
        self.min_selections = min_selections
        self.max_selections = max_selections
        self.parent_modifier_id = parent_modifier_id
        self.is_required = is_required
        self.group_id = ""

    def apply(self, mutator, policy):
        group = mutator.create_group(
            self.group_name,
            self.min_selections,
            self.max_selections,
            parent_modifier_id=self.parent_modifier_id,
            is_required=self.is_required,
        )
        self.group_id = group.id
        self.group_name = group.name
        return group

    def created_ids(self):
        return [self.group_id]

    async def confirm(self, ctx):
        created = await ctx.client.create_group(
            CreateGroup(
                name=self.group_name,
                min_selections=self.min_selections,
                max_selections=self.max_selections,
                is_required=self.is_required,
                parent_modifier_id=await ctx.ids.canonical(self.parent_modifier_id),
            )
        )
        ctx.rebind_group(self.group_id, created.id)
        return created.id


class UpdateGroupCommand(Command):
    name = "update_group"

    def __init__(self, group_id: str, **patch: Any) -> None:
        super().__init__()
        self.group_id = group_id
        self.patch = patch

    def apply(self, mutator, policy):
        group = mutator.update_group(self.group_id, **self.patch)
        self.patch = {field_name: getattr(group, field_name) for field_name in self.patch}
        return group

    async def confirm(self, ctx):
        group_id = await ctx.ids.canonical(self.group_id)
        await ctx.client.update_group(group_id, UpdateGroup(**self.patch))
        return group_id


class PricingCommand(UpdateGroupCommand):
    name = "update_pricing_config"

    def __init__(
        self,
        group_id: str,
        config: TieredPricingConfig | dict | None,
        exclusion_group_key: Any = UNCHANGED,
    ) -> None:
        if isinstance(config, dict):
            try:
                config = TieredPricingConfig.model_validate(config)
            except PydanticValidationError as e:
                raise ValidationError("tiered_pricing_config", str(e)) from e

        patch: dict[str, Any] = {"tiered_pricing_config": config}
        if exclusion_group_key is not UNCHANGED:
            patch["exclusion_group_key"] = exclusion_group_key
        super().__init__(group_id, **patch)


class AddModifierCommand(Command):
    name = "add_modifier"

    def __init__(self, group_id: str, name: str, price: Decimal | int | str = 0, **fields: Any) -> None:
        super().__init__()
        self.group_id = group_id
        self.modifier_name = name
        self.price = price
        self.fields = fields
        self.modifier_id = ""

    def apply(self, mutator, policy):
        modifier = mutator.add_modifier(self.group_id, self.modifier_name, self.price, **self.fields)
        self.modifier_id = modifier.id
        self.modifier_name = modifier.name
        self.price = modifier.price
        return modifier

    def created_ids(self):
        return [self.modifier_id]

    async def confirm(self, ctx):
        group_id = await ctx.ids.canonical(self.group_id)
        create_fields = {k: v for k, v in self.fields.items() if k in CREATE_MODIFIER_FIELDS}
        created = await ctx.client.create_modifier(
            group_id,
            CreateModifier(name=self.modifier_name, price=self.price, **create_fields),
        )

        rest = {k: v for k, v in self.fields.items() if k in UPDATE_MODIFIER_FIELDS and k not in create_fields}
        if rest:
            await ctx.client.update_modifier(group_id, UpdateModifier(modifier_id=created.id, **rest))
        ctx.rebind_modifier(self.modifier_id, created.id)
        return created.id


class AddChoiceCommand(Command):
    name = "add_choice"

    def __init__(self, group_id: str, name: str) -> None:
        super().__init__()
        self.group_id = group_id
        self.choice_name = name
        self.modifier_id = ""
        self.child_group_id = ""

    def apply(self, mutator, policy):
        choice, child = mutator.add_choice(self.group_id, self.choice_name)
        self.choice_name = choice.name
        self.modifier_id = choice.id
        self.child_group_id = child.id
        return choice, child

    def created_ids(self):
        return [self.modifier_id, self.child_group_id]

    async def confirm(self, ctx):
        group_id = await ctx.ids.canonical(self.group_id)
        created = await ctx.client.create_modifier(
            group_id,
            CreateModifier(
                name=self.choice_name,
                price=Decimal("0"),
                allow_no=False,
                allow_lite=False,
                allow_on_side=False,
                allow_extra=False,
                is_label=True,
            ),
        )
        ctx.rebind_modifier(self.modifier_id, created.id)

        child = await ctx.client.create_group(
            CreateGroup(name=self.choice_name, min_selections=0, max_selections=1, parent_modifier_id=created.id)
        )
        ctx.rebind_group(self.child_group_id, child.id)
        return created.id, child.id


class UpdateModifierCommand(Command):
    name = "update_modifier"

    def __init__(self, group_id: str, modifier_id: str, **patch: Any) -> None:
        super().__init__()
        self.group_id = group_id
        self.modifier_id = modifier_id
        self.patch = patch

    def apply(self, mutator, policy):
        modifier = mutator.update_modifier(self.group_id, self.modifier_id, **self.patch)
        self.patch = {field_name: getattr(modifier, field_name) for field_name in self.patch}
        return modifier

    async def confirm(self, ctx):
        group_id = await ctx.ids.canonical(self.group_id)
        modifier_id = await ctx.ids.canonical(self.modifier_id)
        wire_patch = {k: v for k, v in self.patch.items() if k in UPDATE_MODIFIER_FIELDS}
        await ctx.client.update_modifier(group_id, UpdateModifier(modifier_id=modifier_id, **wire_patch))
        return modifier_id


class DeleteModifierCommand(Command):
    name = "delete_modifier"

    def __init__(self, group_id: str, modifier_id: str) -> None:
        super().__init__()
        self.group_id = group_id
        self.modifier_id = modifier_id

    def apply(self, mutator, policy):
        return mutator.delete_modifier(self.group_id, self.modifier_id)

    async def confirm(self, ctx):
        group_id = await ctx.ids.canonical(self.group_id)
        modifier_id = await ctx.ids.canonical(self.modifier_id)
        await ctx.client.delete_modifier(group_id, modifier_id)
        return modifier_id


class SetDefaultCommand(Command):
    name = "set_default"

    def __init__(self, group_id: str, modifier_id: str, make_default: bool) -> None:
        super().__init__()
        self.group_id = group_id
        self.modifier_id = modifier_id
        self.make_default = make_default
        self.evicted: list[str] = []

    def apply(self, mutator, policy):
        self.evicted = policy.set_default(self.group_id, self.modifier_id, self.make_default)
        return self.evicted

    async def confirm(self, ctx):
        group_id = await ctx.ids.canonical(self.group_id)
        updates = [(modifier_id, False) for modifier_id in self.evicted]
        updates.append((self.modifier_id, self.make_default))

        patches = [
            UpdateModifier(modifier_id=await ctx.ids.canonical(modifier_id), is_default=is_default)
            for modifier_id, is_default in updates
        ]
        await asyncio.gather(*(ctx.client.update_modifier(group_id, patch) for patch in patches))
        return self.evicted


class ReparentGroupCommand(Command):
    name = "reparent_group"

    def __init__(self, group_id: str, target_parent_modifier_id: str | None) -> None:
        super().__init__()
        self.group_id = group_id
        self.target_parent_modifier_id = target_parent_modifier_id

    def apply(self, mutator, policy):
        mutator.reparent_group(self.group_id, self.target_parent_modifier_id)

    async def confirm(self, ctx):
        group_id = await ctx.ids.canonical(self.group_id)
        await ctx.client.reparent_group(group_id, await ctx.ids.canonical(self.target_parent_modifier_id))
        return group_id


class NestGroupCommand(Command):
    name = "nest_group_in_group"

    def __init__(self, dragged_group_id: str, target_group_id: str) -> None:
        super().__init__()
        self.dragged_group_id = dragged_group_id
        self.target_group_id = target_group_id
        self.wrapper_id = ""
        self.wrapper_name = ""

    def apply(self, mutator, policy):
        wrapper = mutator.nest_group_in_group(self.dragged_group_id, self.target_group_id)
        self.wrapper_id = wrapper.id
        self.wrapper_name = wrapper.name
        return wrapper

    def created_ids(self):
        return [self.wrapper_id]

    async def confirm(self, ctx):
        target_group_id = await ctx.ids.canonical(self.target_group_id)
        wrapper = await ctx.client.create_modifier(
            target_group_id, CreateModifier(name=self.wrapper_name, price=Decimal("0"), is_label=True)
        )
        ctx.rebind_modifier(self.wrapper_id, wrapper.id)

        dragged_group_id = await ctx.ids.canonical(self.dragged_group_id)
        await ctx.client.reparent_group(dragged_group_id, wrapper.id)
        return wrapper.id


class DropGroupOnModifierCommand(Command):
    name = "handle_group_drop_on_modifier"

    def __init__(self, dragged_group_id: str, target_modifier_id: str) -> None:
        super().__init__()
        self.dragged_group_id = dragged_group_id
        self.target_modifier_id = target_modifier_id
        self.displaced_group_id: str | None = None

    def apply(self, mutator, policy):
        self.displaced_group_id = mutator.handle_group_drop_on_modifier(self.dragged_group_id, self.target_modifier_id)
        return self.displaced_group_id

    async def confirm(self, ctx):
        if self.displaced_group_id is not None:
            await ctx.client.reparent_group(await ctx.ids.canonical(self.displaced_group_id), None)
        dragged_group_id = await ctx.ids.canonical(self.dragged_group_id)
        await ctx.client.reparent_group(dragged_group_id, await ctx.ids.canonical(self.target_modifier_id))
        return self.displaced_group_id


def subtree_layout(store: TreeStore, group_id: str) -> tuple[str, list[tuple[str, Any]]]:
    """``(group_id, [(modifier_id, child_layout | None), ...])`` in modifier order."""
    return group_id, [
        (modifier.id, subtree_layout(store, modifier.child_group_id) if modifier.child_group_id in store.groups else None)
        for modifier in store.modifiers_of(group_id)
    ]


def pair_ids(layout: tuple[str, list[tuple[str, Any]]], store_group: StoreGroup) -> dict[str, str]:
    """Map each local id of a copied subtree to the node at the same position in ``store_group``."""
    group_id, modifiers = layout
    pairs = {group_id: store_group.id}
    remote_modifiers = sorted(store_group.modifiers, key=lambda modifier: modifier.sort_order)
    for (modifier_id, child_layout), remote in zip(modifiers, remote_modifiers):
        pairs[modifier_id] = remote.id
        if child_layout is not None and remote.child_modifier_group is not None:
            pairs.update(pair_ids(child_layout, remote.child_modifier_group))
    return pairs


class DuplicateGroupCommand(Command):
    """The store always duplicates to top level; re-nesting is a follow-up reparent.

    Every node of the local copy gets a temp id, so edits made inside the copy
    before the store answers wait for the ids of the matching stored nodes.
    """

    name = "duplicate_group"

    def __init__(self, group_id: str, target_parent_group_id: str | None = None) -> None:
        super().__init__()
        self.group_id = group_id
        self.target_parent_group_id = target_parent_group_id
        self.duplicate_id = ""
        self.layout: tuple[str, list[tuple[str, Any]]] = ("", [])
        self.copied_ids: list[str] = []
        self.wrapper_id: str | None = None
        self.parent_group_id: str | None = None
        self.wrapper_name = ""

    def apply(self, mutator, policy):
        duplicate = mutator.duplicate_group(self.group_id, self.target_parent_group_id)
        self.duplicate_id = duplicate.id
        self.layout = subtree_layout(mutator.store, duplicate.id)
        groups, modifiers = mutator.store.subtree(duplicate.id)
        self.copied_ids = [group.id for group in groups] + [modifier.id for modifier in modifiers]
        self.wrapper_id = mutator.store.parent_modifier_id(duplicate.id)
        if self.wrapper_id is not None:
            self.parent_group_id = mutator.store.owning_group_id(self.wrapper_id)
            self.wrapper_name = mutator.store.get_modifier(self.wrapper_id).name
        return duplicate

    def created_ids(self):
        return self.copied_ids + ([self.wrapper_id] if self.wrapper_id else [])

    async def confirm(self, ctx):
        source_id = await ctx.ids.canonical(self.group_id)
        created = await ctx.client.duplicate_group(source_id)
        if self.duplicate_id in ctx.store.groups:
            ctx.store.swap_subtree(self.duplicate_id, created)
        else:
            logger.warning("Stale duplicate response discarded", temp_id=self.duplicate_id, group_id=created.id)

        pairs = pair_ids(self.layout, created)
        for temp_id in self.copied_ids:
            if temp_id in pairs:
                ctx.ids.resolve(temp_id, pairs[temp_id])
            else:
                logger.warning("Copied entity missing from duplicate response", temp_id=temp_id, group_id=created.id)
                ctx.ids.fail(temp_id, NetworkError(f"Duplicate {created.id} does not contain a copy of {temp_id}"))

        if self.wrapper_id is not None:
            parent_group_id = await ctx.ids.canonical(self.parent_group_id)
            wrapper = await ctx.client.create_modifier(
                parent_group_id, CreateModifier(name=self.wrapper_name, price=Decimal("0"), is_label=True)
            )
            ctx.rebind_modifier(self.wrapper_id, wrapper.id)
            await ctx.client.reparent_group(created.id, wrapper.id)
        return created.id


class DeleteGroupCommand(Command):
    name = "delete_group"

    def __init__(self, group_id: str) -> None:
        super().__init__()
        self.group_id = group_id

    def apply(self, mutator, policy):
        return mutator.delete_group(self.group_id)

    async def confirm(self, ctx):
        group_id = await ctx.ids.canonical(self.group_id)
        await ctx.client.delete_group(group_id)
        return group_id


class ReorderGroupsCommand(Command):
    name = "reorder_groups"

    def __init__(self, ordered_top_level_ids: Sequence[str]) -> None:
        super().__init__()
        self.ordered_ids = list(ordered_top_level_ids)

    def apply(self, mutator, policy):
        mutator.reorder_groups(self.ordered_ids)

    async def confirm(self, ctx):
        sort_orders = [
            SortOrderEntry(id=await ctx.ids.canonical(group_id), sort_order=sort_order)
            for sort_order, group_id in enumerate(self.ordered_ids)
        ]
        await ctx.client.bulk_reorder_groups(sort_orders)
        return [entry.id for entry in sort_orders]


class ReorderModifiersCommand(Command):
    """Each modifier's sort order is its own request; overlapping reorders of one group race."""

    name = "reorder_modifiers"

    def __init__(self, group_id: str, ordered_modifier_ids: Sequence[str]) -> None:
        super().__init__()
        self.group_id = group_id
        self.ordered_ids = list(ordered_modifier_ids)

    def apply(self, mutator, policy):
        mutator.reorder_modifiers(self.group_id, self.ordered_ids)

    async def confirm(self, ctx):
        group_id = await ctx.ids.canonical(self.group_id)
        patches = [
            UpdateModifier(modifier_id=await ctx.ids.canonical(modifier_id), sort_order=sort_order)
            for sort_order, modifier_id in enumerate(self.ordered_ids)
        ]
        for batch in generate_batch(patches, settings.REORDER_BATCH_SIZE):
            await asyncio.gather(*(ctx.client.update_modifier(group_id, patch) for patch in batch))
        return [patch.modifier_id for patch in patches]
