from typing import Callable, Mapping

from menu_modifiers.exceptions import NotFoundError
from menu_modifiers.logger import get_logger
from menu_modifiers.utils.enums import Entity, NotificationLevel

logger = get_logger("session")

Notifier = Callable[[NotificationLevel, str], None]


def log_notification(level: NotificationLevel, message: str) -> None:
    if level == NotificationLevel.ERROR:
        logger.error(message, level=level.value)
    elif level == NotificationLevel.WARNING:
        logger.warning(message, level=level.value)
    else:
        logger.info(message, level=level.value)


class EditorSession:
    """Per-editor context handed to the reconciler and the CLI.

    Holds the menu item being edited, the read-only ingredient lookup, the
    modifier currently being linked to an ingredient and the notification sink.
    """

    def __init__(
        self,
        item_id: str,
        ingredient_names: Mapping[str, str] | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.item_id = item_id
        self.ingredient_names: dict[str, str] = dict(ingredient_names or {})
        self.notifier = notifier or log_notification
        self.linking_modifier_id: str | None = None

    def notify(self, level: NotificationLevel, message: str) -> None:
        self.notifier(level, message)

    def set_ingredients(self, ingredient_names: Mapping[str, str]) -> None:
        self.ingredient_names = dict(ingredient_names)

    def ingredient_label(self, ingredient_id: str) -> str:
        name = self.ingredient_names.get(ingredient_id)
        if name is None:
            raise NotFoundError(Entity.INGREDIENT, ingredient_id)
        return name

    def begin_linking(self, modifier_id: str) -> None:
        self.linking_modifier_id = modifier_id

    def finish_linking(self) -> str | None:
        modifier_id, self.linking_modifier_id = self.linking_modifier_id, None
        return modifier_id

    @property
    def is_linking(self) -> bool:
        return self.linking_modifier_id is not None
