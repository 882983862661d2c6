from menu_modifiers.core.tree_store import TreeStore
from menu_modifiers.logger import get_logger

logger = get_logger("defaults")


class DefaultSelectionPolicy:
    def __init__(self, store: TreeStore) -> None:
        self.store = store

    def set_default(self, group_id: str, modifier_id: str, make_default: bool) -> list[str]:
        """Mark or unmark a default, evicting the oldest defaults past ``max_selections``.

        Returns the ids of modifiers whose default flag was cleared by eviction.
        ``max_selections == 0`` means unlimited defaults.
        """
        group = self.store.get_group(group_id)
        target = self.store.get_group_modifier(group_id, modifier_id)

        evicted: list[str] = []
        if make_default and group.max_selections > 0:
            current = [
                modifier for modifier in self.store.modifiers_of(group_id) if modifier.is_default and modifier.id != modifier_id
            ]
            if len(current) >= group.max_selections:
                excess = len(current) - group.max_selections + 1
                for modifier in current[:excess]:
                    modifier.is_default = False
                    evicted.append(modifier.id)
                logger.info(
                    "Defaults evicted",
                    group_id=group_id,
                    max_selections=group.max_selections,
                    evicted=evicted,
                )

        target.is_default = make_default
        return evicted
