import pytest

from menu_modifiers.config import settings

pytest_plugins = [
    "tests.fixtures.tree",
    "tests.fixtures.store",
]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def fast_debounce(monkeypatch):
    monkeypatch.setattr(settings, "PRICING_DEBOUNCE_SECONDS", 0.01)
