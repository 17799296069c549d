"""Tests for vote toggling, the degradation threshold and in-place regeneration."""

from datetime import timedelta

import pytest
from sqlalchemy import update

from roadmap_app.constants import MatchSource
from roadmap_app.models import RegenerationEvent, Resource, Roadmap, RoadmapNode
from roadmap_app.services.quality import RegenerationService, VotingService
from roadmap_app.services.service_base import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    UpstreamError,
    ValidationError,
)
from roadmap_app.utils.time import utc_now

from conftest import roadmap_payload

REGENERATED_NODES = [
    {'title': "Density Functional Theory", 'nodeType': 'topic', 'resources': [
        {'title': "DFT Primer", 'url': "https://example.com/dft", 'resourceType': 'course'},
    ]},
    {'title': "Basis Sets", 'nodeType': 'topic'},
]


@pytest.fixture
def voting(store):
    return VotingService(store, downvote_threshold=3, retry_base_delay=0)


@pytest.fixture
def regeneration(store, pipeline):
    return RegenerationService(store, pipeline, downvote_threshold=3)


@pytest.fixture
def generated(pipeline, oracle):
    """A generated roadmap; the oracle answers the next call with a different tree."""
    oracle.queue(
        roadmap_payload(),
        roadmap_payload("Quantum Chemistry, Reworked", nodes=REGENERATED_NODES, difficulty='expert'),
    )
    outcome = pipeline.generate("quantum chemistry simulation", requester_id=1)
    assert outcome.source == MatchSource.GENERATED
    return outcome.roadmap


def _bump_row_version(store, roadmap_id):
    """Simulate a concurrent writer committing between our read and our flush."""
    store.session.connection().execute(
        update(Roadmap.__table__)
        .where(Roadmap.__table__.c.id == roadmap_id)
        .values(row_version=Roadmap.__table__.c.row_version + 1)
    )


class TestVoting:
    def test_upvote_then_switch_to_downvote(self, voting, make_roadmap):
        roadmap = make_roadmap("Docker Basics")
        summary = voting.upvote(roadmap.id, 'u1')
        assert (summary['upvotes'], summary['downvotes'], summary['quality_score']) == (1, 0, 100.0)

        summary = voting.downvote(roadmap.id, 'u1')
        assert (summary['upvotes'], summary['downvotes'], summary['quality_score']) == (0, 1, 0.0)

    def test_repeat_vote_toggles_off(self, voting, make_roadmap):
        roadmap = make_roadmap("Docker Basics")
        voting.upvote(roadmap.id, 'u1')
        summary = voting.upvote(roadmap.id, 'u1')
        assert summary['upvotes'] == 0
        assert summary['quality_score'] == 0.0

    def test_voter_ids_are_compared_as_strings(self, voting, store, make_roadmap):
        roadmap = make_roadmap("Docker Basics")
        voting.upvote(roadmap.id, 7)
        voting.upvote(roadmap.id, '7')
        assert store.get(Roadmap, roadmap.id).upvotes == []

    def test_threshold_boundary(self, voting, store, make_roadmap):
        roadmap = make_roadmap("Docker Basics")
        voting.downvote(roadmap.id, 'a')
        summary = voting.downvote(roadmap.id, 'b')
        assert summary['needs_regeneration'] is False
        summary = voting.downvote(roadmap.id, 'c')
        assert summary['needs_regeneration'] is True
        assert summary['state'] == 'degraded'

        # withdrawing a downvote drops back below the threshold
        summary = voting.downvote(roadmap.id, 'c')
        assert summary['needs_regeneration'] is False
        assert store.get(Roadmap, roadmap.id).state.value == 'fresh'

    def test_requires_voter(self, voting, make_roadmap):
        roadmap = make_roadmap("Docker Basics")
        with pytest.raises(ValidationError):
            voting.upvote(roadmap.id, '  ')
        with pytest.raises(ValidationError):
            voting.upvote(roadmap.id, None)

    def test_unknown_roadmap(self, voting):
        with pytest.raises(NotFoundError):
            voting.upvote(404, 'u1')

    def test_concurrent_writer_is_retried(self, voting, store, make_roadmap, monkeypatch):
        roadmap = make_roadmap("Docker Basics")
        original_update = store.update
        attempts = []

        def racing_update(instance, **fields):
            attempts.append(1)
            if len(attempts) == 1:
                _bump_row_version(store, instance.id)
            return original_update(instance, **fields)

        monkeypatch.setattr(store, 'update', racing_update)
        summary = voting.upvote(roadmap.id, 'u1')
        monkeypatch.undo()

        assert len(attempts) == 2
        assert summary['upvotes'] == 1
        assert store.get(Roadmap, roadmap.id).upvotes == ['u1']

    def test_persistent_conflict_raises(self, store, make_roadmap, monkeypatch):
        voting = VotingService(store, max_retries=1, retry_base_delay=0)
        roadmap = make_roadmap("Docker Basics")
        original_update = store.update

        def always_racing(instance, **fields):
            _bump_row_version(store, instance.id)
            return original_update(instance, **fields)

        monkeypatch.setattr(store, 'update', always_racing)
        with pytest.raises(ConflictError):
            voting.upvote(roadmap.id, 'u1')
        monkeypatch.undo()
        assert store.get(Roadmap, roadmap.id).upvotes == []


class TestRegenerationGate:
    def test_fresh_roadmap_refused_for_plain_user(self, regeneration, generated, make_user):
        user = make_user('bob')
        with pytest.raises(PermissionDeniedError):
            regeneration.regenerate(generated.id, actor_id=user.id)

    def test_anonymous_refused(self, regeneration, generated):
        with pytest.raises(PermissionDeniedError):
            regeneration.regenerate(generated.id)

    def test_unknown_roadmap(self, regeneration):
        with pytest.raises(NotFoundError):
            regeneration.regenerate(404, actor_role='admin')

    def test_admin_role_from_user_record(self, regeneration, generated, make_user):
        admin = make_user('root', role='admin')
        roadmap = regeneration.regenerate(generated.id, actor_id=admin.id)
        assert roadmap.version == 2
        assert roadmap.regeneration_history[-1].reason == "Regeneration forced by admin"

    def test_owner_may_force(self, store, regeneration, pipeline, oracle, make_user):
        owner = make_user('carol')
        oracle.queue(roadmap_payload(), roadmap_payload(nodes=REGENERATED_NODES))
        roadmap = pipeline.generate("quantum chemistry simulation", requester_id=owner.id,
                                    community_contributed=True).roadmap
        regenerated = regeneration.regenerate(roadmap.id, actor_id=owner.id)
        assert regenerated.regeneration_history[-1].reason == "Regeneration forced by owner"

    def test_conflict_when_already_regenerating(self, store, regeneration, generated, oracle):
        with store.transaction():
            store.update(store.get(Roadmap, generated.id), is_regenerating=True, regeneration_started_at=utc_now())
        calls_before = oracle.call_count
        with pytest.raises(ConflictError):
            regeneration.regenerate(generated.id, actor_role='admin')
        assert oracle.call_count == calls_before

    def test_stale_claim_is_taken_over(self, store, regeneration, generated):
        with store.transaction():
            store.update(
                store.get(Roadmap, generated.id),
                is_regenerating=True,
                regeneration_started_at=utc_now() - timedelta(hours=2),
            )
        assert regeneration.regenerate(generated.id, actor_role='admin').version == 2


class TestRegeneration:
    def _degrade(self, store, roadmap_id):
        voting = VotingService(store, downvote_threshold=3, retry_base_delay=0)
        voting.upvote(roadmap_id, 'fan')
        for voter in ('a', 'b', 'c'):
            voting.downvote(roadmap_id, voter)
        assert store.get(Roadmap, roadmap_id).needs_regeneration

    def test_degraded_roadmap_regenerates_for_anyone(self, store, regeneration, generated, progress, oracle):
        roadmap_id = generated.id
        old_node_ids = {n.id for n in store.nodes_for(roadmap_id)}
        self._degrade(store, roadmap_id)

        roadmap = regeneration.regenerate(roadmap_id, actor_id=None, subscriber='sid-r')

        assert roadmap.id == roadmap_id
        assert roadmap.title == "Quantum Chemistry Simulation"
        assert roadmap.difficulty == 'expert'
        assert roadmap.version == 2
        assert roadmap.upvotes == [] and roadmap.downvotes == []
        assert roadmap.quality_score == 0.0
        assert not roadmap.needs_regeneration
        assert not roadmap.is_regenerating
        assert roadmap.state.value == 'fresh'

        nodes = store.nodes_for(roadmap_id)
        assert [n.title for n in nodes] == ["Density Functional Theory", "Basis Sets"]
        assert not old_node_ids & {n.id for n in nodes}
        assert sorted(r.title for r in store.find(Resource)) == ["DFT Primer"]

        history = store.find(RegenerationEvent, roadmap_id=roadmap_id)
        assert len(history) == 1
        assert history[0].previous_downvotes == 3
        assert history[0].previous_version == 1
        assert history[0].reason == "Quality threshold reached (3+ downvotes)"

        assert 'Quantum Chemistry Simulation. Learn quantum chemistry simulation' in oracle.calls[-1]
        assert progress.recent('sid-r')[-1]['step'] == 'complete'

    def test_oracle_failure_leaves_old_tree_and_releases_claim(self, store, regeneration, generated, oracle):
        roadmap_id = generated.id
        old_titles = [n.title for n in store.nodes_for(roadmap_id)]
        oracle.responses = [UpstreamError("Oracle returned 502: bad gateway", status_code=502)]

        with pytest.raises(UpstreamError):
            regeneration.regenerate(roadmap_id, actor_role='admin')

        roadmap = store.get(Roadmap, roadmap_id)
        assert [n.title for n in store.nodes_for(roadmap_id)] == old_titles
        assert roadmap.version == 1
        assert not roadmap.is_regenerating
        assert store.count(RegenerationEvent) == 0

    def test_shared_resource_survives_regeneration(self, store, regeneration, generated, make_roadmap):
        other = make_roadmap("Chemistry Refresher")
        shared = store.find(Resource, title="QM Lecture Notes")[0]
        with store.transaction():
            node = store.create(RoadmapNode.build(other.id, 0, "Atoms"))
            node.resources = [shared]
            store.update(node)

        regeneration.regenerate(generated.id, actor_role='admin')

        titles = sorted(r.title for r in store.find(Resource))
        assert titles == ["DFT Primer", "QM Lecture Notes"]

    def test_regenerated_roadmap_is_found_by_fingerprint_again(self, store, regeneration, generated):
        regeneration.regenerate(generated.id, actor_role='admin')
        assert store.find_by_fingerprint('chemistry quantum simulation').id == generated.id
