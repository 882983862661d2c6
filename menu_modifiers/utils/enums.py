from enum import Enum


class Entity(str, Enum):
    MENU_ITEM = "MenuItem"
    MODIFIER_GROUP = "ModifierGroup"
    MODIFIER = "Modifier"
    INGREDIENT = "Ingredient"


class PreModifier(str, Enum):
    NO = "no"
    LITE = "lite"
    ON_SIDE = "on_side"
    EXTRA = "extra"


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
