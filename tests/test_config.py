import pytest

from menu_modifiers.config import Settings


def test_store_url_gets_trailing_slash():
    assert Settings(STORE_URL="http://store.test/api/menu").STORE_URL == "http://store.test/api/menu/"


@pytest.mark.parametrize("value, expected", [(10, 10), ("25", 25), (0, 50), ("-3", 50), ("many", 50)])
def test_reorder_batch_size_falls_back(value, expected):
    assert Settings(REORDER_BATCH_SIZE=value).REORDER_BATCH_SIZE == expected
