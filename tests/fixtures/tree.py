import copy
import itertools

import pytest

from menu_modifiers.core.defaults import DefaultSelectionPolicy
from menu_modifiers.core.mutator import StructuralMutator
from menu_modifiers.core.tree_store import TreeStore
from menu_modifiers.schemas.store import StoreGroup

SANDWICH_GROUPS = [
    {
        "id": "g-bread",
        "name": "Bread",
        "minSelections": 1,
        "maxSelections": 1,
        "isRequired": True,
        "sortOrder": 0,
        "modifiers": [
            {"id": "m-white", "name": "White", "price": 0, "isDefault": True, "sortOrder": 0},
            {
                "id": "m-toast",
                "name": "Toasted?",
                "price": 0,
                "isLabel": True,
                "sortOrder": 1,
                "childModifierGroupId": "g-toast",
                "childModifierGroup": {
                    "id": "g-toast",
                    "name": "Toast Level",
                    "minSelections": 1,
                    "maxSelections": 1,
                    "isRequired": True,
                    "modifiers": [
                        {"id": "m-light", "name": "Light", "price": 0, "sortOrder": 0},
                        {"id": "m-dark", "name": "Dark", "price": 0.25, "sortOrder": 1},
                    ],
                },
            },
        ],
    },
    {
        "id": "g-cheese",
        "name": "Cheese",
        "maxSelections": 2,
        "exclusionGroupKey": "cheese",
        "sortOrder": 1,
        "modifiers": [
            {
                "id": "m-cheddar",
                "name": "Cheddar",
                "price": 1.00,
                "allowExtra": True,
                "extraPrice": 1.50,
                "ingredientId": "i-cheddar",
                "sortOrder": 0,
            },
            {
                "id": "m-swiss",
                "name": "Swiss",
                "price": 1.25,
                "allowLite": True,
                "liteMultiplier": 0.5,
                "ingredientId": "i-swiss",
                "sortOrder": 1,
            },
        ],
    },
    {
        "id": "g-extra-cheese",
        "name": "Extra Cheese",
        "maxSelections": 0,
        "exclusionGroupKey": "cheese",
        "sortOrder": 2,
        "modifiers": [
            {"id": "m-cheddar-x", "name": "cheddar ", "price": 1.00, "ingredientId": "i-cheddar", "sortOrder": 0},
            {"id": "m-brie", "name": "Brie", "price": 1.50, "ingredientId": "i-brie", "sortOrder": 1},
        ],
    },
    {
        "id": "g-sauce",
        "name": "Sauce",
        "maxSelections": 3,
        "allowStacking": True,
        "sortOrder": 3,
        "modifiers": [
            {"id": "m-mayo", "name": "Mayo", "price": 0.25, "allowOnSide": True, "onSideMultiplier": 0, "sortOrder": 0},
            {"id": "m-mustard", "name": "Mustard", "price": 0.25, "sortOrder": 1},
            {"id": "m-ketchup", "name": "Ketchup", "price": 0.25, "sortOrder": 2},
        ],
    },
]

INGREDIENTS = [
    {"id": "i-cheddar", "name": "Cheddar cheese"},
    {"id": "i-swiss", "name": "Swiss cheese"},
    {"id": "i-brie", "name": "Brie"},
]


@pytest.fixture
def sandwich_payload():
    return copy.deepcopy(SANDWICH_GROUPS)


@pytest.fixture
def store_groups(sandwich_payload):
    return [StoreGroup(**group) for group in sandwich_payload]


@pytest.fixture
def tree_store(store_groups):
    return TreeStore.from_store_groups(store_groups)


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"tmp-{next(counter)}"


@pytest.fixture
def mutator(tree_store, id_factory):
    return StructuralMutator(tree_store, id_factory)


@pytest.fixture
def policy(tree_store):
    return DefaultSelectionPolicy(tree_store)
