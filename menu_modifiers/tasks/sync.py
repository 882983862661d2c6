import asyncio
from decimal import Decimal
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

from pydantic import ValidationError as PydanticValidationError

from menu_modifiers.clients.store_client import MenuStoreClient
from menu_modifiers.config import settings
from menu_modifiers.core.defaults import DefaultSelectionPolicy
from menu_modifiers.core.mutator import StructuralMutator, clean_name, move_item, temp_id
from menu_modifiers.core.session import EditorSession
from menu_modifiers.core.tree_store import TreeStore
from menu_modifiers.exceptions import ModifierEngineError, NetworkError
from menu_modifiers.logger import get_logger
from menu_modifiers.models import DeletePreview, TieredPricingConfig
from menu_modifiers.tasks.commands import (
    UNCHANGED,
    AddChoiceCommand,
    AddModifierCommand,
    Command,
    CommandResult,
    CreateGroupCommand,
    DeleteGroupCommand,
    DeleteModifierCommand,
    DropGroupOnModifierCommand,
    DuplicateGroupCommand,
    NestGroupCommand,
    PricingCommand,
    ReorderGroupsCommand,
    ReorderModifiersCommand,
    ReparentGroupCommand,
    SetDefaultCommand,
    SyncContext,
    TempIdRegistry,
    UpdateGroupCommand,
    UpdateModifierCommand,
)
from menu_modifiers.utils.debounce import TrailingDebouncer
from menu_modifiers.utils.enums import NotificationLevel

logger = get_logger("sync")

T = TypeVar("T")


class Pending(Generic[T]):
    """Local result of an optimistic edit plus the future of its remote confirmation."""

    def __init__(self, value: T, outcome: "asyncio.Future[CommandResult]") -> None:
        self.value = value
        self.outcome = outcome

    def __await__(self):
        return self.outcome.__await__()


class SyncReconciler:
    """Applies edits to the TreeStore at once and confirms them with the store in the background.

    Structural edits fail closed: when the store refuses one, local state is
    replaced by a fresh snapshot from the store, or by the last confirmed
    snapshot when even that reload fails. Pricing edits are debounced and fail
    open: the unsent value stays on screen until ``retry_pricing``.
    """

    def __init__(
        self,
        session: EditorSession,
        client: MenuStoreClient,
        store: TreeStore | None = None,
        id_factory: Callable[[], str] = temp_id,
    ) -> None:
        self.session = session
        self.client = client
        self.store = store or TreeStore()
        self.mutator = StructuralMutator(self.store, id_factory)
        self.policy = DefaultSelectionPolicy(self.store)
        self.ids = TempIdRegistry()
        self.context = SyncContext(self.store, client, self.ids)
        self.confirmed = self.store.snapshot()
        self.debouncer = TrailingDebouncer(settings.PRICING_DEBOUNCE_SECONDS)
        self.unsent_pricing: dict[str, PricingCommand] = {}
        self._tasks: set[asyncio.Task] = set()
        self._reload_lock = asyncio.Lock()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def load(self) -> None:
        groups = await self.client.list_groups()
        ingredients = await self.client.get_ingredients()
        self.store.load(groups)
        self.session.set_ingredients({ingredient.id: ingredient.name for ingredient in ingredients})
        self.confirmed = self.store.snapshot()
        logger.debug("Snapshot loaded", item_id=self.session.item_id, groups=len(self.store.groups))

    async def reload(self) -> None:
        async with self._reload_lock:
            groups = await self.client.list_groups()
            self.store.load(groups)
            self.confirmed = self.store.snapshot()
            logger.info("Snapshot reloaded", item_id=self.session.item_id, generation=self.store.generation)

    async def drain(self) -> None:
        """Wait until every debounced and in-flight edit has been answered."""
        await self.debouncer.flush()
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def create_group(
        self,
        name: str,
        min_selections: int = 0,
        max_selections: int = 1,
        parent_modifier_id: str | None = None,
        is_required: bool = False,
    ) -> Pending:
        return self._dispatch(CreateGroupCommand(name, min_selections, max_selections, parent_modifier_id, is_required))

    def update_group(self, group_id: str, **patch: Any) -> Pending:
        return self._dispatch(UpdateGroupCommand(group_id, **patch))

    def rename_group(self, group_id: str, name: str) -> Pending | None:
        if self.store.get_group(group_id).name == clean_name(name):
            return None
        return self.update_group(group_id, name=name)

    def add_modifier(self, group_id: str, name: str, price: Decimal | int | str = 0, **fields: Any) -> Pending:
        return self._dispatch(AddModifierCommand(group_id, name, price, **fields))

    def add_choice(self, group_id: str, name: str) -> Pending:
        return self._dispatch(AddChoiceCommand(group_id, name))

    def update_modifier(self, group_id: str, modifier_id: str, **patch: Any) -> Pending:
        return self._dispatch(UpdateModifierCommand(group_id, modifier_id, **patch))

    def delete_modifier(self, group_id: str, modifier_id: str) -> Pending:
        return self._dispatch(DeleteModifierCommand(group_id, modifier_id))

    def link_ingredient(self, group_id: str, modifier_id: str, ingredient_id: str | None) -> Pending:
        ingredient_name = self.session.ingredient_label(ingredient_id) if ingredient_id else None
        pending = self.update_modifier(
            group_id,
            modifier_id,
            ingredient_id=ingredient_id,
            ingredient_name=ingredient_name,
        )
        if self.session.linking_modifier_id == modifier_id:
            self.session.finish_linking()
        return pending

    def set_default(self, group_id: str, modifier_id: str, make_default: bool) -> Pending:
        return self._dispatch(SetDefaultCommand(group_id, modifier_id, make_default))

    def reparent_group(self, group_id: str, target_parent_modifier_id: str | None) -> Pending:
        return self._dispatch(ReparentGroupCommand(group_id, target_parent_modifier_id))

    def nest_group_in_group(self, dragged_group_id: str, target_group_id: str) -> Pending:
        return self._dispatch(NestGroupCommand(dragged_group_id, target_group_id))

    def handle_group_drop_on_modifier(self, dragged_group_id: str, target_modifier_id: str) -> Pending:
        return self._dispatch(DropGroupOnModifierCommand(dragged_group_id, target_modifier_id))

    def duplicate_group(self, group_id: str, target_parent_group_id: str | None = None) -> Pending:
        return self._dispatch(DuplicateGroupCommand(group_id, target_parent_group_id))

    def preview_delete(self, group_id: str) -> DeletePreview:
        return self.mutator.preview_delete(group_id)

    async def fetch_delete_preview(self, group_id: str) -> DeletePreview:
        return await self.client.preview_delete(await self.ids.canonical(group_id))  # type: ignore[arg-type]

    def delete_group(self, group_id: str) -> Pending:
        return self._dispatch(DeleteGroupCommand(group_id))

    def reorder_groups(self, ordered_top_level_ids: Sequence[str]) -> Pending:
        return self._dispatch(ReorderGroupsCommand(ordered_top_level_ids))

    def reorder_modifiers(self, group_id: str, ordered_modifier_ids: Sequence[str]) -> Pending:
        return self._dispatch(ReorderModifiersCommand(group_id, ordered_modifier_ids))

    def move_group(self, from_group_id: str, to_group_id: str) -> Pending:
        ordered = move_item([group.id for group in self.store.top_level_groups()], from_group_id, to_group_id)
        return self.reorder_groups(ordered)

    def move_modifier(self, group_id: str, from_modifier_id: str, to_modifier_id: str) -> Pending:
        ordered = move_item(list(self.store.get_group(group_id).modifier_ids), from_modifier_id, to_modifier_id)
        return self.reorder_modifiers(group_id, ordered)

    def update_pricing_config(
        self,
        group_id: str,
        config: TieredPricingConfig | dict | None,
        exclusion_group_key: str | None = UNCHANGED,
    ) -> Pending:
        command = PricingCommand(group_id, config, exclusion_group_key)
        value = command.apply(self.mutator, self.policy)
        outcome = self.debouncer.call(group_id, lambda: self._confirm_pricing(command))
        return Pending(value, outcome)

    def retry_pricing(self, group_id: str) -> Pending | None:
        command = self.unsent_pricing.get(group_id)
        if command is None:
            return None
        value = command.apply(self.mutator, self.policy)
        return Pending(value, self._spawn(self._confirm_pricing(command)))

    def _dispatch(self, command: Command) -> Pending:
        value = command.apply(self.mutator, self.policy)
        command.generation = self.store.generation
        command.expect(self.ids, *command.created_ids())
        logger.debug("Command applied", command=command.name, generation=command.generation)
        return Pending(value, self._spawn(self._confirm(command)))

    def _spawn(self, coroutine: Awaitable[CommandResult]) -> asyncio.Task:
        task = asyncio.ensure_future(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _confirm(self, command: Command) -> CommandResult:
        try:
            value = await self._send(command)
        except ModifierEngineError as e:
            command.abandon(self.ids, e)
            await self._recover(command, e)
            return CommandResult(command=command.name, ok=False, error=e)

        if self.in_flight <= 1:
            self.confirmed = self.store.snapshot()
        logger.debug("Command confirmed", command=command.name, value=value)
        return CommandResult(command=command.name, ok=True, value=value)

    async def _confirm_pricing(self, command: PricingCommand) -> CommandResult:
        try:
            value = await self._send(command)
        except ModifierEngineError as e:
            self.unsent_pricing[command.group_id] = command
            logger.warning("Pricing config not saved", group_id=command.group_id, error=str(e))
            self.session.notify(NotificationLevel.WARNING, f"Pricing was not saved: {e}. Retry to send it again.")
            return CommandResult(command=command.name, ok=False, error=e)

        self.unsent_pricing.pop(command.group_id, None)
        return CommandResult(command=command.name, ok=True, value=value)

    async def _send(self, command: Command) -> Any:
        try:
            return await command.confirm(self.context)
        except PydanticValidationError as e:
            raise NetworkError(f"Unexpected store response: {e}") from e

    async def _recover(self, command: Command, error: ModifierEngineError) -> None:
        logger.warning("Command rejected by store", command=command.name, error=str(error))
        self.session.notify(NotificationLevel.ERROR, f"Could not {command.name.replace('_', ' ')}: {error}")
        if self.store.generation != command.generation:
            logger.info("Rollback skipped, snapshot already replaced", command=command.name)
            return

        try:
            await self.reload()
        except ModifierEngineError as e:
            logger.error("Reload failed, restoring last confirmed snapshot", error=str(e))
            self.store.restore(self.confirmed)
