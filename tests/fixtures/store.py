import httpx
import pytest

from menu_modifiers.clients.store_client import MenuStoreClient
from menu_modifiers.core.session import EditorSession
from menu_modifiers.tasks.sync import SyncReconciler
from tests.fixtures.tree import INGREDIENTS


def refuse_request(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected store request {request.method} {request.url}")


@pytest.fixture
def notifications():
    return []


@pytest.fixture
def session(notifications):
    return EditorSession(
        "item-1",
        {ingredient["id"]: ingredient["name"] for ingredient in INGREDIENTS},
        notifier=lambda level, message: notifications.append((level, message)),
    )


@pytest.fixture
def store_client():
    return MenuStoreClient("item-1", base_url="http://store.test/api/menu/", transport=httpx.MockTransport(refuse_request))


@pytest.fixture
def mock_store():
    """Build a client whose requests are answered by ``handler`` and recorded."""

    def wrapper(handler):
        requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        client = MenuStoreClient("item-1", base_url="http://store.test/api/menu/", transport=httpx.MockTransport(record))
        return client, requests

    return wrapper


@pytest.fixture
def reconciler(session, store_client, tree_store, id_factory):
    return SyncReconciler(session, store_client, store=tree_store, id_factory=id_factory)
