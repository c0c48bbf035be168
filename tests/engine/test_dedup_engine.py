from __future__ import annotations

import pytest

from mindvault.engine.dedup import (
    DeduplicationEngine,
    RetentionPolicy,
    find_duplicate_groups,
    plan_deletions,
)
from mindvault.engine.items import ItemType


@pytest.fixture
def collection(make_item):
    return [
        make_item(id="u100", content="https://u.io", created_at=100),
        make_item(id="u300", content="https://u.io", created_at=300),
        make_item(id="v200", content="https://v.io", created_at=200),
        make_item(id="n1", type=ItemType.NOTE, content="https://v.io", created_at=50),
    ]


def test_groups_only_links_with_shared_content(collection) -> None:
    groups = find_duplicate_groups(collection)
    assert len(groups) == 1
    assert groups[0].content == "https://u.io"
    assert [item.id for item in groups[0].items] == ["u300", "u100"]
    assert groups[0].newest.id == "u300"
    assert groups[0].oldest.id == "u100"


def test_retention_policies(collection) -> None:
    groups = find_duplicate_groups(collection)
    assert plan_deletions(groups, RetentionPolicy.KEEP_NEWEST) == ["u100"]
    assert plan_deletions(groups, RetentionPolicy.KEEP_OLDEST) == ["u300"]


def test_equal_timestamps_keep_collection_order(make_item) -> None:
    items = [
        make_item(id="first", content="https://t.io", created_at=5),
        make_item(id="second", content="https://t.io", created_at=5),
    ]
    (group,) = find_duplicate_groups(items)
    assert [item.id for item in group.items] == ["first", "second"]


def test_scan_has_no_side_effects(gateway, collection) -> None:
    gateway.upsert_batch(collection)
    engine = DeduplicationEngine(gateway)
    before = gateway.list_all()
    engine.scan()
    engine.scan()
    assert gateway.list_all() == before


@pytest.mark.parametrize(
    ("policy", "survivor", "removed"),
    [("newest", "u300", "u100"), ("oldest", "u100", "u300")],
)
def test_apply_deletes_through_gateway(gateway, collection, policy, survivor, removed) -> None:
    gateway.upsert_batch(collection)
    deleted = DeduplicationEngine(gateway).apply(policy)
    assert deleted == [removed]
    remaining = {item.id for item in gateway.list_all()}
    assert remaining == {survivor, "v200", "n1"}


def test_apply_without_duplicates_skips_delete(gateway, make_item) -> None:
    gateway.upsert_batch([make_item(), make_item()])
    assert DeduplicationEngine(gateway).apply(RetentionPolicy.KEEP_NEWEST) == []


def test_manual_remove(gateway, collection) -> None:
    gateway.upsert_batch(collection)
    engine = DeduplicationEngine(gateway)
    engine.remove("u300")
    assert engine.scan() == []
