import pytest

from menu_modifiers.core.session import EditorSession
from menu_modifiers.exceptions import NotFoundError
from menu_modifiers.utils.enums import Entity, NotificationLevel


def test_ingredient_label(session):
    assert session.ingredient_label("i-swiss") == "Swiss cheese"

    with pytest.raises(NotFoundError) as exc_info:
        session.ingredient_label("i-missing")
    assert exc_info.value.entity == Entity.INGREDIENT


def test_linking_state(session):
    assert not session.is_linking

    session.begin_linking("m-cheddar")

    assert session.is_linking
    assert session.finish_linking() == "m-cheddar"
    assert session.linking_modifier_id is None


def test_notify_uses_sink(session, notifications):
    session.notify(NotificationLevel.WARNING, "Pricing was not saved")

    assert notifications == [(NotificationLevel.WARNING, "Pricing was not saved")]


def test_default_sink_logs():
    session = EditorSession("item-2")

    for level in NotificationLevel:
        session.notify(level, "logged")

    assert session.ingredient_names == {}
