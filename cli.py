import asyncio
from decimal import Decimal
from typing import Any, Awaitable, Callable

import click

from menu_modifiers.clients.store_client import MenuStoreClient
from menu_modifiers.core.selection import default_selections, group_total, selections_total
from menu_modifiers.core.session import EditorSession
from menu_modifiers.core.tree_store import TreeStore
from menu_modifiers.exceptions import ModifierEngineError
from menu_modifiers.models import SelectedModifier
from menu_modifiers.tasks.sync import SyncReconciler
from menu_modifiers.tracer import init_tracer
from menu_modifiers.utils.enums import PreModifier


def abort_if_false(ctx, param, value):
    if not value:
        ctx.abort()


def render_tree(store: TreeStore) -> list[str]:
    lines: list[str] = []
    seen: set[str] = set()

    def render_group(group_id: str, depth: int) -> None:
        if group_id in seen:
            return
        seen.add(group_id)
        group = store.groups[group_id]
        bounds = f"{group.min_selections}-{group.max_selections or 'any'}"
        lines.append(f"{'  ' * depth}[{group.id}] {group.label} ({bounds})")
        for modifier in store.modifiers_of(group_id):
            default = " *" if modifier.is_default else ""
            lines.append(f"{'  ' * (depth + 1)}- [{modifier.id}] {modifier.name} {modifier.price:.2f}{default}")
            if modifier.child_group_id and modifier.child_group_id in store.groups:
                render_group(modifier.child_group_id, depth + 2)

    for group in store.top_level_groups():
        render_group(group.id, 0)
    return lines


def run(item_id: str, operation: Callable[[SyncReconciler], Awaitable[Any]]) -> Any:
    async def wrapper() -> Any:
        async with MenuStoreClient(item_id) as client:
            reconciler = SyncReconciler(EditorSession(item_id), client)
            await reconciler.load()
            result = await operation(reconciler)
            await reconciler.drain()
            return result

    try:
        return asyncio.run(wrapper())
    except ModifierEngineError as e:
        raise click.ClickException(str(e))


async def confirmed(pending: Any) -> Any:
    result = await pending
    if not result.ok:
        raise result.error
    return result.value


@click.group()
def cli():
    init_tracer()


@cli.command()
@click.option("--item-id", required=True)
def tree(item_id: str) -> None:
    """
    Print the modifier group tree of a menu item
    """

    async def operation(reconciler: SyncReconciler) -> list[str]:
        return render_tree(reconciler.store)

    for line in run(item_id, operation):
        click.echo(line)


@cli.command()
@click.option("--item-id", required=True)
@click.option("--group-id", required=True)
def preview_delete(item_id: str, group_id: str) -> None:
    async def operation(reconciler: SyncReconciler):
        return reconciler.preview_delete(group_id)

    preview = run(item_id, operation)
    click.echo(f"{preview.group_name}: {preview.group_count} groups, {preview.modifier_count} modifiers")


@cli.command()
@click.option("--item-id", required=True)
@click.option("--group-id", required=True)
@click.option(
    "--yes",
    is_flag=True,
    callback=abort_if_false,
    expose_value=False,
    prompt="Delete the group with all nested groups and modifiers?",
)
def delete(item_id: str, group_id: str) -> None:
    async def operation(reconciler: SyncReconciler):
        pending = reconciler.delete_group(group_id)
        await confirmed(pending)
        return pending.value

    preview = run(item_id, operation)
    click.echo(f"Deleted {preview.group_count} groups and {preview.modifier_count} modifiers")


@cli.command()
@click.option("--item-id", required=True)
@click.option("--group-id", required=True)
@click.option("--modifier-id", default=None, help="New parent modifier; omit to promote to top level")
def reparent(item_id: str, group_id: str, modifier_id: str | None) -> None:
    async def operation(reconciler: SyncReconciler):
        await confirmed(reconciler.reparent_group(group_id, modifier_id))

    run(item_id, operation)
    click.echo(f"Moved {group_id} under {modifier_id}" if modifier_id else f"Moved {group_id} to top level")


@cli.command()
@click.option("--item-id", required=True)
@click.option("--group-id", required=True)
@click.option("--target-group-id", required=True)
def nest(item_id: str, group_id: str, target_group_id: str) -> None:
    async def operation(reconciler: SyncReconciler):
        return await confirmed(reconciler.nest_group_in_group(group_id, target_group_id))

    wrapper_id = run(item_id, operation)
    click.echo(f"Nested {group_id} in {target_group_id} via modifier {wrapper_id}")


@cli.command()
@click.option("--item-id", required=True)
@click.option("--group-id", required=True)
@click.option("--target-group-id", default=None)
def duplicate(item_id: str, group_id: str, target_group_id: str | None) -> None:
    async def operation(reconciler: SyncReconciler):
        return await confirmed(reconciler.duplicate_group(group_id, target_group_id))

    duplicate_id = run(item_id, operation)
    click.echo(f"Duplicated {group_id} as {duplicate_id}")


@cli.command()
@click.option("--item-id", required=True)
@click.argument("group_ids", nargs=-1, required=True)
def reorder_groups(item_id: str, group_ids: tuple[str, ...]) -> None:
    async def operation(reconciler: SyncReconciler):
        return await confirmed(reconciler.reorder_groups(group_ids))

    click.echo(" ".join(run(item_id, operation)))


@cli.command()
@click.option("--item-id", required=True)
@click.option("--group-id", default=None)
@click.option("--modifier-id", "modifier_ids", multiple=True)
@click.option("--pre-modifier", type=click.Choice([p.value for p in PreModifier]), default=None)
def price(item_id: str, group_id: str | None, modifier_ids: tuple[str, ...], pre_modifier: str | None) -> None:
    """
    Price selected modifiers of one group, or the item's default selections
    """

    async def operation(reconciler: SyncReconciler) -> Decimal:
        if group_id is None:
            return selections_total(reconciler.store, default_selections(reconciler.store))
        selected = [
            SelectedModifier(modifier_id=modifier_id, pre_modifier=PreModifier(pre_modifier) if pre_modifier else None)
            for modifier_id in modifier_ids
        ]
        return group_total(reconciler.store, group_id, selected)

    click.echo(f"{run(item_id, operation):.2f}")


if __name__ == "__main__":
    cli()
