"""Roadmap Generation Pipeline
============================

Turns a free-text learning request into a roadmap, generating only when the
cache cannot answer:

1. exact title match (returned as-is)
2. similarity search; a strong, non-degraded best match is reused
3. single-flight on the prompt fingerprint (plus an optional Redis lock)
4. oracle call, response validation and normalization
5. one transaction persisting the roadmap shell, nodes and resources

Each step emits a progress event to the requester. Any failure after step 3
emits a terminal ``error`` event before propagating, and a persistence
failure rolls back everything written for the attempt.
"""
from __future__ import annotations

from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..constants import (
    DEFAULT_MAX_TREE_DEPTH,
    DEFAULT_MAX_TREE_NODES,
    DEFAULT_REUSE_THRESHOLD,
    DEFAULT_SEARCH_THRESHOLD,
    Importance,
    MatchSource,
    ProgressStep,
)
from ..models import Resource, Roadmap, RoadmapNode
from ..realtime.progress_events import ProgressNotifier
from ..utils.distributed_lock import GenerationLockFactory, LockNotAcquiredError
from ..utils.logging_config import get_logger
from ..utils.slug_utils import slugify
from ..utils.time import utc_now
from .keywords import extract_keywords, fingerprint, merge_keywords
from .roadmap_search import RoadmapSearchService
from .roadmap_validation import (
    SYSTEM_PROMPT,
    NodeDraft,
    RoadmapDraft,
    build_generation_prompt,
    parse_roadmap_response,
)
from .service_base import InFlightTimeoutError, StorageError, UpstreamError, ValidationError
from .single_flight import SingleFlight
from .store import RoadmapStore

logger = get_logger("generation")


@dataclass
class GenerationOutcome:
    """A roadmap together with how the request was satisfied."""
    roadmap: Roadmap
    source: MatchSource
    similarity: Optional[float] = None

    @property
    def generated(self) -> bool:
        return self.source == MatchSource.GENERATED

    @property
    def contributor(self):
        return self.roadmap.contributor

    @property
    def updated_by(self):
        return self.roadmap.updated_by

    def to_dict(self) -> Dict[str, Any]:
        data = self.roadmap.to_dict()
        data['nodes'] = [node.to_dict() for node in self.roadmap.nodes]
        data['source'] = self.source.value
        data['similarity'] = round(self.similarity, 4) if self.similarity is not None else None
        return data


class GenerationPipeline:
    """Cache-first roadmap generation with single-flight dedup."""

    def __init__(
        self,
        store: RoadmapStore,
        oracle: Any,
        search: RoadmapSearchService,
        progress: ProgressNotifier,
        single_flight: Optional[SingleFlight] = None,
        lock_factory: Optional[GenerationLockFactory] = None,
        search_threshold: float = DEFAULT_SEARCH_THRESHOLD,
        reuse_threshold: float = DEFAULT_REUSE_THRESHOLD,
        max_depth: int = DEFAULT_MAX_TREE_DEPTH,
        max_nodes: int = DEFAULT_MAX_TREE_NODES,
    ):
        self.store = store
        self.oracle = oracle
        self.search = search
        self.progress = progress
        self.single_flight = single_flight or SingleFlight()
        self.lock_factory = lock_factory
        self.search_threshold = search_threshold
        self.reuse_threshold = reuse_threshold
        self.max_depth = max_depth
        self.max_nodes = max_nodes

    # Public entry point --------------------------------------------------

    def generate(
        self,
        prompt: str,
        requester_id: Optional[int] = None,
        community_contributed: bool = False,
        socket_id: Optional[str] = None,
    ) -> GenerationOutcome:
        """Return a roadmap satisfying `prompt`, generating one only on a cache miss.

        Raises:
            ValidationError: empty prompt or unusable oracle output
            UpstreamError: oracle unreachable or erroring
            StorageError: persistence failed (nothing was kept)
            InFlightTimeoutError: a concurrent identical request did not finish in time
        """
        prompt = (prompt or '').strip()
        if not prompt:
            raise ValidationError("Prompt must not be empty")
        subscriber = requester_id if requester_id is not None else socket_id

        self.notify(subscriber, ProgressStep.ANALYZING, 5)
        logger.info(f"Roadmap requested: '{prompt[:80]}'")

        self.notify(subscriber, ProgressStep.SEARCHING, 10, message="Searching for existing roadmap...")
        exact = self.search.find_exact(prompt)
        if exact is not None:
            logger.info(f"Exact match: roadmap {exact.id} '{exact.title}'")
            self.notify(subscriber, ProgressStep.COMPLETE, 100, message="Found existing roadmap!")
            return GenerationOutcome(exact, MatchSource.EXACT, 1.0)

        self.notify(subscriber, ProgressStep.SEARCHING, 15, message="Checking similar roadmaps...")
        matches = self.search.find_similar(prompt, self.search_threshold)
        if matches:
            best = matches[0]
            if best.similarity >= self.reuse_threshold and not best.roadmap.needs_regeneration:
                logger.info(f"Similar match: roadmap {best.roadmap.id} (similarity {best.similarity:.2f})")
                self.store.increment_views(best.roadmap.id)
                self.notify(subscriber, ProgressStep.COMPLETE, 100, message="Found similar roadmap!")
                return GenerationOutcome(self.store.get(Roadmap, best.roadmap.id), MatchSource.SIMILAR, best.similarity)
            logger.info(
                f"Best candidate roadmap {best.roadmap.id} not reusable "
                f"(similarity {best.similarity:.2f}, needs_regeneration={bool(best.roadmap.needs_regeneration)})"
            )

        key = fingerprint(prompt)
        led = []

        def lead() -> Tuple[int, MatchSource]:
            led.append(True)
            return self._generate_exclusive(prompt, key, requester_id, community_contributed, subscriber)

        try:
            (roadmap_id, source), shared = self.single_flight.run(key, lead)
        except Exception as e:
            # the leader reports its own failures; a follower reports here
            if not led:
                logger.error(f"Identical in-flight generation for '{key}' failed: {e}")
                self.notify(subscriber, ProgressStep.ERROR, 0, error=f"Failed to generate roadmap: {e}")
            raise
        if shared:
            source = MatchSource.SHARED
            self.notify(subscriber, ProgressStep.COMPLETE, 100, message="Found roadmap generated for an identical request")
        roadmap = self.store.get(Roadmap, roadmap_id)
        if roadmap is None:
            raise StorageError(f"Roadmap {roadmap_id} disappeared after generation")
        return GenerationOutcome(roadmap, source)

    # Oracle ----------------------------------------------------------------

    def request_draft(self, prompt: str, subscriber: Any = None) -> RoadmapDraft:
        """Ask the oracle for a roadmap and validate it; emits the error event on failure."""
        self.notify(subscriber, ProgressStep.GENERATING, 20, message="Generating new roadmap...")
        try:
            self.notify(subscriber, ProgressStep.RESEARCHING, 25)
            raw = self.oracle.complete(SYSTEM_PROMPT, build_generation_prompt(prompt))
            self.notify(subscriber, ProgressStep.STRUCTURING, 35)
            draft = parse_roadmap_response(raw, max_depth=self.max_depth, max_nodes=self.max_nodes)
            self.notify(subscriber, ProgressStep.GENERATING, 60)
        except (UpstreamError, ValidationError) as e:
            logger.error(f"Failed to analyze user request '{prompt[:80]}': {e}")
            self.notify(subscriber, ProgressStep.ERROR, 0, error=f"Failed to analyze user request: {e}")
            raise
        logger.info(f"Oracle draft '{draft.title}': {draft.node_count} nodes, depth {draft.max_depth + 1}")
        return draft

    # Persistence -----------------------------------------------------------

    def write_tree(self, roadmap: Roadmap, draft: RoadmapDraft, actor_id: Optional[int] = None,
                   community_contributed: bool = False) -> List[RoadmapNode]:
        """Depth-first creation of the draft's nodes under `roadmap`.

        Runs inside the caller's transaction. Each node's resources are
        created before the node; positions increase globally in creation
        order. Children inherit the parent's dependency set, except under a
        milestone, whose id becomes their sole dependency.
        """
        created: List[RoadmapNode] = []
        position = 0
        stack: List[Tuple[NodeDraft, Optional[RoadmapNode], Tuple[int, ...]]] = [
            (node, None, ()) for node in reversed(draft.nodes)
        ]
        while stack:
            node_draft, parent, dependencies = stack.pop()
            resources = [
                self.store.create(Resource(
                    title=res.title,
                    description=res.description,
                    url=res.url,
                    resource_type=res.resource_type,
                    content_type='free',
                    difficulty=node_draft.difficulty,
                    is_community_contributed=True,
                    contributor_id=actor_id,
                    is_approved=not community_contributed,
                ))
                for res in node_draft.resources
            ]
            node = RoadmapNode.build(
                roadmap.id,
                position,
                node_draft.title,
                parent=parent,
                dependencies=dependencies,
                description=node_draft.description,
                node_type=node_draft.node_type,
                is_optional=node_draft.importance == Importance.LOW.value,
                importance=node_draft.importance,
                difficulty=node_draft.difficulty,
                updated_by_id=actor_id,
            )
            node.set_estimated_duration(node_draft.estimated_duration)
            node.set_keywords(extract_keywords(node_draft.title))
            node.resources = resources
            self.store.create(node)
            created.append(node)
            position += 1

            child_dependencies = (node.id,) if node_draft.is_milestone else dependencies
            for child in reversed(node_draft.children):
                stack.append((child, node, child_dependencies))
        return created

    def persist_new(self, draft: RoadmapDraft, prompt: str, key: str, requester_id: Optional[int] = None,
                    community_contributed: bool = False) -> Roadmap:
        """Create the roadmap shell and its tree in one transaction."""
        with self.store.transaction():
            roadmap = self.store.create(Roadmap(
                title=draft.title,
                slug=slugify(draft.title),
                description=draft.description,
                category=draft.category,
                difficulty=draft.difficulty,
                is_published=False,
                is_community_contributed=community_contributed,
                contributor_id=requester_id if community_contributed else None,
                prompt_fingerprint=key,
                version=1,
            ))
            roadmap.set_tags([])
            roadmap.set_search_keywords(merge_keywords(extract_keywords(draft.title), extract_keywords(prompt)))
            roadmap.set_votes([], [])
            nodes = self.write_tree(roadmap, draft, requester_id, community_contributed)
            self.store.update(roadmap, last_updated=utc_now(), updated_by_id=requester_id)
            logger.info(f"Persisted roadmap {roadmap.id} '{roadmap.title}' with {len(nodes)} nodes")
        return roadmap

    # Internals -------------------------------------------------------------

    def _generate_exclusive(self, prompt: str, key: str, requester_id: Optional[int],
                            community_contributed: bool, subscriber: Any) -> Tuple[int, MatchSource]:
        """Single-flight leader body; returns (roadmap id, source).

        Another worker holding the cross-process lock too long is not a
        reason to generate a second copy: the store is re-checked and, if
        the other worker has not produced the roadmap, the request fails
        with ``InFlightTimeoutError``.
        """
        hold = self.lock_factory.hold(key) if self.lock_factory is not None else nullcontext(False)
        try:
            with hold:
                return self._generate_locked(prompt, key, requester_id, community_contributed, subscriber)
        except LockNotAcquiredError as e:
            existing = self._reusable_by_fingerprint(key)
            if existing is not None:
                self.notify(subscriber, ProgressStep.COMPLETE, 100, message="Found existing roadmap!")
                return existing.id, MatchSource.SHARED
            logger.error(f"Gave up on '{prompt[:80]}': {e}")
            self.notify(subscriber, ProgressStep.ERROR, 0, error=f"Failed to generate roadmap: {e}")
            raise InFlightTimeoutError(str(e)) from e

    def _reusable_by_fingerprint(self, key: str) -> Optional[Roadmap]:
        existing = self.store.find_by_fingerprint(key)
        if existing is None or existing.needs_regeneration:
            return None
        logger.info(f"Roadmap {existing.id} already generated for fingerprint '{key}'")
        return existing

    def _generate_locked(self, prompt: str, key: str, requester_id: Optional[int],
                         community_contributed: bool, subscriber: Any) -> Tuple[int, MatchSource]:
        existing = self._reusable_by_fingerprint(key)
        if existing is not None:
            self.notify(subscriber, ProgressStep.COMPLETE, 100, message="Found existing roadmap!")
            return existing.id, MatchSource.SHARED

        draft = self.request_draft(prompt, subscriber)
        try:
            roadmap = self.persist_new(draft, prompt, key, requester_id, community_contributed)
        except Exception as e:
            logger.error(f"Failed to save roadmap for '{prompt[:80]}': {e}", exc_info=True)
            self.notify(subscriber, ProgressStep.ERROR, 0, error=f"Failed to save roadmap: {e}")
            raise StorageError(f"Failed to save roadmap: {e}") from e

        self.notify(subscriber, ProgressStep.FINALIZING, 95)
        self.notify(subscriber, ProgressStep.COMPLETE, 100)
        return roadmap.id, MatchSource.GENERATED

    def notify(self, subscriber: Any, step: ProgressStep, progress: int,
              error: Optional[str] = None, message: Optional[str] = None) -> None:
        if self.progress is not None:
            self.progress.emit(subscriber, step.value, progress, error=error, message=message)
