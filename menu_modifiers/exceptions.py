from menu_modifiers.utils.enums import Entity


class ModifierEngineError(Exception):
    pass


class ValidationError(ModifierEngineError):
    def __init__(self, field_name: str, message: str):
        super().__init__(f"{field_name}: {message}")
        self.field_name = field_name
        self.message = message


class CycleError(ModifierEngineError):
    def __init__(self, group_id: str, target_group_id: str):
        super().__init__(f"Cannot nest group {group_id} inside its own descendant {target_group_id}")
        self.group_id = group_id
        self.target_group_id = target_group_id


class ConflictError(ModifierEngineError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ModifierEngineError):
    def __init__(self, entity: Entity, obj_id: str):
        super().__init__(f"{entity.value} {obj_id} not exists.")
        self.entity = entity
        self.obj_id = obj_id


class NetworkError(ModifierEngineError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
