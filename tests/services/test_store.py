"""Tests for the roadmap store: transactions, bulk writes and roadmap queries."""

from datetime import timedelta

import pytest

from roadmap_app.models import Resource, Roadmap, RoadmapNode
from roadmap_app.services.store import BulkOperation
from roadmap_app.utils.time import utc_now


def test_nested_transaction_joins_outer(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.create(Roadmap(title="Outer", category='other', difficulty='beginner'))
            with store.transaction():
                store.create(Roadmap(title="Inner", category='other', difficulty='beginner'))
            raise RuntimeError("abort")
    assert store.count(Roadmap) == 0


def test_bulk_write_reports_missing_rows(store, make_roadmap):
    a = make_roadmap("Alpha")
    b = make_roadmap("Beta")
    result = store.bulk_write([
        BulkOperation('update', Roadmap, a.id, {'description': "updated"}),
        BulkOperation('delete', Roadmap, b.id),
        BulkOperation('update', Roadmap, 999, {'description': "ghost"}),
    ])
    assert result == {'updated': 1, 'deleted': 1, 'missing': 1}
    assert store.get(Roadmap, a.id).description == "updated"
    assert store.get(Roadmap, b.id) is None


def test_count_by(store, make_roadmap):
    make_roadmap("A", category='frontend')
    make_roadmap("B", category='frontend')
    make_roadmap("C", category='backend')
    assert store.count_by(Roadmap, Roadmap.category) == {'frontend': 2, 'backend': 1}


def test_find_candidates_prefilter(store, make_roadmap):
    tagged = make_roadmap("Mobile Apps", tags=['flutter'])
    described = make_roadmap("Cross Platform", description="Build apps with Flutter widgets")
    make_roadmap("Unrelated")
    ids = [r.id for r in store.find_candidates(['flutter'])]
    assert ids == [tagged.id, described.id]


def test_find_by_fingerprint_ignores_regenerating(store, make_roadmap):
    make_roadmap("Busy", prompt_fingerprint='docker kubernetes', is_regenerating=True)
    assert store.find_by_fingerprint('docker kubernetes') is None
    ready = make_roadmap("Ready", prompt_fingerprint='docker kubernetes')
    assert store.find_by_fingerprint('docker kubernetes').id == ready.id


def test_nodes_for_orders_by_depth_then_position(store, make_roadmap):
    roadmap = make_roadmap("Ordered")
    with store.transaction():
        root = store.create(RoadmapNode.build(roadmap.id, 0, "root"))
        store.create(RoadmapNode.build(roadmap.id, 2, "child", parent=root))
        store.create(RoadmapNode.build(roadmap.id, 1, "second root"))
    assert [n.title for n in store.nodes_for(roadmap.id)] == ["root", "second root", "child"]


def test_build_requires_flushed_parent(make_roadmap):
    roadmap = make_roadmap("Unflushed")
    parent = RoadmapNode(roadmap_id=roadmap.id, title="p", position=0)
    with pytest.raises(ValueError):
        RoadmapNode.build(roadmap.id, 1, "c", parent=parent)


def test_claim_and_release_regeneration(store, make_roadmap):
    roadmap = make_roadmap("Claimed")
    stale_before = utc_now() - timedelta(minutes=15)
    assert store.claim_regeneration(roadmap.id, stale_before)
    assert not store.claim_regeneration(roadmap.id, stale_before)
    store.release_regeneration(roadmap.id)
    assert store.claim_regeneration(roadmap.id, stale_before)


def test_increment_views_keeps_row_version(store, make_roadmap):
    roadmap = make_roadmap("Viewed")
    before = store.get(Roadmap, roadmap.id).row_version
    store.increment_views(roadmap.id)
    refreshed = store.get(Roadmap, roadmap.id)
    assert refreshed.views == 1
    assert refreshed.row_version == before


def test_delete_tree_keeps_resources_shared_with_other_roadmaps(store, make_roadmap):
    mine = make_roadmap("Mine")
    theirs = make_roadmap("Theirs")
    with store.transaction():
        shared = store.create(Resource(title="Shared", url="https://example.com/s", is_approved=True))
        approved = store.create(Resource(title="Approved", url="https://example.com/a", is_approved=True))
        pending = store.create(Resource(title="Pending", url="https://example.com/p", is_approved=False))
        node = RoadmapNode.build(mine.id, 0, "root")
        node.resources = [shared, approved, pending]
        store.create(node)
        other = RoadmapNode.build(theirs.id, 0, "root")
        other.resources = [shared]
        store.create(other)

    exclusive = {r.title for r in store.exclusive_resources_for(mine.id)}
    assert exclusive == {"Approved", "Pending"}

    with store.transaction():
        counts = store.delete_tree(store.get(Roadmap, mine.id))

    assert counts == {'nodes': 1, 'resources': 2}
    assert [r.title for r in store.find(Resource)] == ["Shared"]
    assert store.nodes_for(mine.id) == []
    assert len(store.nodes_for(theirs.id)) == 1
