from typing import Iterable, Iterator, Sequence

from menu_modifiers.exceptions import NotFoundError
from menu_modifiers.logger import get_logger
from menu_modifiers.models import ChoiceModifier, Modifier, ModifierGroup, TreeSnapshot
from menu_modifiers.schemas.store import StoreGroup
from menu_modifiers.utils.enums import Entity

logger = get_logger("tree_store")


class TreeStore:
    """Canonical in-memory forest of modifier groups for one menu item.

    Groups and modifiers are kept in id-indexed maps. Ownership is held by
    ``ModifierGroup.modifier_ids`` (group -> modifiers) and by
    ``ChoiceModifier.child_group_id`` (modifier -> nested group); the two
    reverse indexes below are derived from them and rebuilt on every load.
    """

    def __init__(self, groups: Iterable[ModifierGroup] = (), modifiers: Iterable[Modifier] = ()) -> None:
        self.groups: dict[str, ModifierGroup] = {}
        self.modifiers: dict[str, Modifier] = {}
        self._owner: dict[str, str] = {}
        self._parent_modifier: dict[str, str] = {}
        self.generation = 0
        self.replace(groups, modifiers)

    @classmethod
    def from_store_groups(cls, store_groups: Sequence[StoreGroup]) -> "TreeStore":
        tree = cls()
        tree.load(store_groups)
        return tree

    def load(self, store_groups: Sequence[StoreGroup]) -> None:
        groups: dict[str, ModifierGroup] = {}
        modifiers: dict[str, Modifier] = {}
        for store_group in store_groups:
            flat_groups, flat_modifiers = store_group.flatten()
            groups.update({group.id: group for group in flat_groups})
            modifiers.update({modifier.id: modifier for modifier in flat_modifiers})

        self.replace(groups.values(), modifiers.values())

    def replace(self, groups: Iterable[ModifierGroup], modifiers: Iterable[Modifier]) -> None:
        self.groups = {group.id: group for group in groups}
        self.modifiers = {modifier.id: modifier for modifier in modifiers}
        self.generation += 1
        self._reindex()

    def snapshot(self) -> TreeSnapshot:
        return TreeSnapshot(groups=self.groups, modifiers=self.modifiers).model_copy(deep=True)

    def restore(self, snapshot: TreeSnapshot) -> None:
        copied = snapshot.model_copy(deep=True)
        self.replace(copied.groups.values(), copied.modifiers.values())

    def _reindex(self) -> None:
        self._owner = {}
        self._parent_modifier = {}
        for group in self.groups.values():
            for modifier_id in group.modifier_ids:
                self._owner[modifier_id] = group.id
        for modifier in self.modifiers.values():
            if modifier.child_group_id and modifier.child_group_id in self.groups:
                self._parent_modifier[modifier.child_group_id] = modifier.id

    def top_level_groups(self) -> list[ModifierGroup]:
        top_level = [group for group in self.groups.values() if group.id not in self._parent_modifier]
        return sorted(top_level, key=lambda group: group.sort_order)

    def modifiers_of(self, group_id: str) -> list[Modifier]:
        group = self.get_group(group_id)
        return [self.modifiers[modifier_id] for modifier_id in group.modifier_ids if modifier_id in self.modifiers]

    def parent_modifier_id(self, group_id: str) -> str | None:
        return self._parent_modifier.get(group_id)

    def parent_group_id(self, group_id: str) -> str | None:
        parent_modifier_id = self._parent_modifier.get(group_id)
        if parent_modifier_id is None:
            return None
        return self._owner.get(parent_modifier_id)

    def owning_group_id(self, modifier_id: str) -> str | None:
        return self._owner.get(modifier_id)

    def walk(self, root_ids: Sequence[str] | None = None) -> Iterator[ModifierGroup]:
        if root_ids is None:
            root_ids = [group.id for group in self.top_level_groups()]

        visited: set[str] = set()
        stack = list(reversed(root_ids))
        while stack:
            group_id = stack.pop()
            if group_id in visited:
                logger.warning("Group revisited during traversal", group_id=group_id)
                return
            visited.add(group_id)

            group = self.groups.get(group_id)
            if group is None:
                continue
            yield group

            children = [
                self.modifiers[modifier_id].child_group_id
                for modifier_id in group.modifier_ids
                if modifier_id in self.modifiers and self.modifiers[modifier_id].child_group_id
            ]
            stack.extend(reversed(children))  # type: ignore[arg-type]

    def find_group(self, group_id: str) -> ModifierGroup | None:
        for group in self.walk():
            if group.id == group_id:
                return group
        return None

    def find_modifier(self, modifier_id: str) -> Modifier | None:
        for group in self.walk():
            if modifier_id in group.modifier_ids:
                return self.modifiers.get(modifier_id)
        return None

    def get_group(self, group_id: str) -> ModifierGroup:
        group = self.groups.get(group_id)
        if group is None:
            raise NotFoundError(Entity.MODIFIER_GROUP, group_id)
        return group

    def get_modifier(self, modifier_id: str) -> Modifier:
        modifier = self.modifiers.get(modifier_id)
        if modifier is None:
            raise NotFoundError(Entity.MODIFIER, modifier_id)
        return modifier

    def get_group_modifier(self, group_id: str, modifier_id: str) -> Modifier:
        modifier = self.get_modifier(modifier_id)
        if self._owner.get(modifier_id) != group_id:
            raise NotFoundError(Entity.MODIFIER, modifier_id)
        return modifier

    def is_descendant_of(self, ancestor_group_id: str, target_group_id: str) -> bool:
        if ancestor_group_id == target_group_id:
            return True
        return any(group.id == target_group_id for group in self.walk([ancestor_group_id]))

    def subtree(self, group_id: str) -> tuple[list[ModifierGroup], list[Modifier]]:
        self.get_group(group_id)
        groups = list(self.walk([group_id]))
        modifiers = [
            self.modifiers[modifier_id]
            for group in groups
            for modifier_id in group.modifier_ids
            if modifier_id in self.modifiers
        ]
        return groups, modifiers

    def depth(self, group_id: str) -> int:
        depth = 0
        seen = {group_id}
        current = self.parent_group_id(group_id)
        while current is not None and current not in seen:
            seen.add(current)
            depth += 1
            current = self.parent_group_id(current)
        return depth

    def is_forest(self) -> bool:
        reached: dict[str, str] = {}
        for root in self.top_level_groups():
            for group in self.walk([root.id]):
                if group.id in reached and reached[group.id] != root.id:
                    return False
                reached[group.id] = root.id
        return len(reached) == len(self.groups)

    def add_group(self, group: ModifierGroup) -> None:
        self.groups[group.id] = group
        for modifier_id in group.modifier_ids:
            self._owner[modifier_id] = group.id

    def add_modifier(self, group_id: str, modifier: Modifier) -> None:
        group = self.get_group(group_id)
        self.modifiers[modifier.id] = modifier
        if modifier.id not in group.modifier_ids:
            group.modifier_ids.append(modifier.id)
        self._owner[modifier.id] = group_id
        if modifier.child_group_id:
            self._parent_modifier[modifier.child_group_id] = modifier.id
        self.renumber_modifiers(group_id)

    def put_modifier(self, modifier: Modifier) -> None:
        previous = self.get_modifier(modifier.id)
        if previous.child_group_id and previous.child_group_id != modifier.child_group_id:
            self._parent_modifier.pop(previous.child_group_id, None)
        if modifier.child_group_id:
            self._parent_modifier[modifier.child_group_id] = modifier.id
        self.modifiers[modifier.id] = modifier

    def attach(self, group_id: str, modifier_id: str) -> None:
        modifier = self.get_modifier(modifier_id)
        self.put_modifier(modifier.as_choice(group_id))

    def detach(self, group_id: str) -> str | None:
        parent_modifier_id = self._parent_modifier.get(group_id)
        if parent_modifier_id is None:
            return None
        self.put_modifier(self.modifiers[parent_modifier_id].as_item())
        return parent_modifier_id

    def remove_group(self, group_id: str) -> tuple[list[ModifierGroup], list[Modifier]]:
        groups, modifiers = self.subtree(group_id)
        self.detach(group_id)
        for modifier in modifiers:
            self.modifiers.pop(modifier.id, None)
            self._owner.pop(modifier.id, None)
        for group in groups:
            self.groups.pop(group.id, None)
            self._parent_modifier.pop(group.id, None)
        return groups, modifiers

    def remove_modifier(self, modifier_id: str) -> tuple[list[ModifierGroup], list[Modifier]]:
        modifier = self.get_modifier(modifier_id)
        removed_groups: list[ModifierGroup] = []
        removed_modifiers: list[Modifier] = [modifier]
        if isinstance(modifier, ChoiceModifier) and modifier.child_group_id in self.groups:
            removed_groups, child_modifiers = self.remove_group(modifier.child_group_id)
            removed_modifiers.extend(child_modifiers)

        group_id = self._owner.pop(modifier_id, None)
        self.modifiers.pop(modifier_id, None)
        if group_id is not None and group_id in self.groups:
            self.groups[group_id].modifier_ids.remove(modifier_id)
            self.renumber_modifiers(group_id)
        return removed_groups, removed_modifiers

    def renumber_modifiers(self, group_id: str) -> None:
        for index, modifier_id in enumerate(self.get_group(group_id).modifier_ids):
            if modifier_id in self.modifiers:
                self.modifiers[modifier_id].sort_order = index

    def next_top_level_sort_order(self, exclude_group_id: str | None = None) -> int:
        orders = [group.sort_order for group in self.top_level_groups() if group.id != exclude_group_id]
        return max(orders) + 1 if orders else 0

    def rebind_group_id(self, old_id: str, new_id: str) -> bool:
        group = self.groups.pop(old_id, None)
        if group is None:
            return False

        group.id = new_id
        self.groups[new_id] = group
        for modifier_id in group.modifier_ids:
            self._owner[modifier_id] = new_id

        parent_modifier_id = self._parent_modifier.pop(old_id, None)
        if parent_modifier_id is not None:
            self._parent_modifier[new_id] = parent_modifier_id
            self.modifiers[parent_modifier_id] = self.modifiers[parent_modifier_id].as_choice(new_id)
        return True

    def rebind_modifier_id(self, old_id: str, new_id: str) -> bool:
        modifier = self.modifiers.pop(old_id, None)
        if modifier is None:
            return False

        modifier.id = new_id
        self.modifiers[new_id] = modifier
        group_id = self._owner.pop(old_id, None)
        if group_id is not None:
            self._owner[new_id] = group_id
            modifier_ids = self.groups[group_id].modifier_ids
            modifier_ids[modifier_ids.index(old_id)] = new_id
        if modifier.child_group_id:
            self._parent_modifier[modifier.child_group_id] = new_id
        return True

    def swap_subtree(self, old_root_id: str, store_group: StoreGroup) -> ModifierGroup:
        old_root = self.get_group(old_root_id)
        parent_modifier_id = self._parent_modifier.get(old_root_id)
        self.remove_group(old_root_id)

        flat_groups, flat_modifiers = store_group.flatten()
        for group in flat_groups:
            self.add_group(group)
        for modifier in flat_modifiers:
            self.modifiers[modifier.id] = modifier
            if modifier.child_group_id:
                self._parent_modifier[modifier.child_group_id] = modifier.id

        root = self.groups[store_group.id]
        if parent_modifier_id is not None:
            self.attach(root.id, parent_modifier_id)
        else:
            root.sort_order = old_root.sort_order
        return root
