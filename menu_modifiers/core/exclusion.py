from typing import Callable

from menu_modifiers.core.tree_store import TreeStore
from menu_modifiers.models import Modifier, ModifierGroup, Selections

SameChoice = Callable[[Modifier, Modifier], bool]


def same_ingredient(candidate: Modifier, committed: Modifier) -> bool:
    return candidate.ingredient_id is not None and candidate.ingredient_id == committed.ingredient_id


def same_name(candidate: Modifier, committed: Modifier) -> bool:
    return candidate.name.strip().casefold() == committed.name.strip().casefold()


class ExclusionCoordinator:
    """Groups sharing a non-empty ``exclusion_group_key`` suppress each other's choices.

    What counts as "the same choice" is left to the caller: pass a
    ``SameChoice`` predicate (``same_ingredient``, ``same_name`` or your own).
    """

    def __init__(self, store: TreeStore) -> None:
        self.store = store

    def related_groups(self, group_id: str) -> list[ModifierGroup]:
        key = self.store.get_group(group_id).exclusion_group_key
        if not key:
            return []
        return [group for group in self.store.walk() if group.id != group_id and group.exclusion_group_key == key]

    def related_group_ids(self, group_id: str) -> set[str]:
        return {group.id for group in self.related_groups(group_id)}

    def related_selections(self, group_id: str, selections: Selections) -> Selections:
        return {group.id: list(selections.get(group.id, [])) for group in self.related_groups(group_id)}

    def committed_modifiers(self, group_id: str, selections: Selections) -> list[Modifier]:
        return [
            self.store.modifiers[selected.modifier_id]
            for selected_in_group in self.related_selections(group_id, selections).values()
            for selected in selected_in_group
            if selected.modifier_id in self.store.modifiers
        ]

    def disabled_modifier_ids(
        self,
        group_id: str,
        selections: Selections,
        same_choice: SameChoice | None = None,
    ) -> set[str]:
        """Ids to disable while rendering ``group_id``.

        Without a predicate this is every modifier id already selected in a
        related group. With one, it is the modifiers of ``group_id`` that match
        any of those selections.
        """
        committed = self.committed_modifiers(group_id, selections)
        if same_choice is None:
            return {modifier.id for modifier in committed}

        return {
            candidate.id
            for candidate in self.store.modifiers_of(group_id)
            if any(same_choice(candidate, modifier) for modifier in committed)
        }
