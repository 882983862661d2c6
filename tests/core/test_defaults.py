def defaults_of(tree_store, group_id):
    return [modifier.id for modifier in tree_store.modifiers_of(group_id) if modifier.is_default]


def test_single_default_replaces_previous(policy, tree_store):
    evicted = policy.set_default("g-bread", "m-toast", True)

    assert evicted == ["m-white"]
    assert defaults_of(tree_store, "g-bread") == ["m-toast"]


def test_inconsistent_legacy_defaults_are_evicted_oldest_first(policy, tree_store):
    tree_store.modifiers["m-mayo"].is_default = True
    tree_store.modifiers["m-mustard"].is_default = True
    tree_store.groups["g-sauce"].max_selections = 1

    evicted = policy.set_default("g-sauce", "m-ketchup", True)

    assert evicted == ["m-mayo", "m-mustard"]
    assert defaults_of(tree_store, "g-sauce") == ["m-ketchup"]


def test_eviction_keeps_newest_defaults(policy, tree_store):
    tree_store.groups["g-sauce"].max_selections = 2
    policy.set_default("g-sauce", "m-mayo", True)
    policy.set_default("g-sauce", "m-mustard", True)

    evicted = policy.set_default("g-sauce", "m-ketchup", True)

    assert evicted == ["m-mayo"]
    assert defaults_of(tree_store, "g-sauce") == ["m-mustard", "m-ketchup"]


def test_unlimited_group_never_evicts(policy, tree_store):
    for modifier_id in ("m-cheddar-x", "m-brie"):
        assert policy.set_default("g-extra-cheese", modifier_id, True) == []

    assert defaults_of(tree_store, "g-extra-cheese") == ["m-cheddar-x", "m-brie"]


def test_clearing_default(policy, tree_store):
    assert policy.set_default("g-bread", "m-white", False) == []
    assert defaults_of(tree_store, "g-bread") == []


def test_re_marking_existing_default_does_not_evict_it(policy, tree_store):
    assert policy.set_default("g-bread", "m-white", True) == []
    assert defaults_of(tree_store, "g-bread") == ["m-white"]
