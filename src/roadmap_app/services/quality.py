"""Quality scoring, voting and regeneration.

Lifecycle of a roadmap::

    FRESH --(downvotes >= threshold)--> DEGRADED --(regenerate)--> REGENERATING --> FRESH

``needs_regeneration`` is recomputed on every vote, so a DEGRADED roadmap
whose downvotes are withdrawn returns to FRESH without regeneration.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm.exc import StaleDataError

from ..constants import (
    DEFAULT_DOWNVOTE_THRESHOLD,
    FORCED_REGENERATION_REASON,
    REGENERATION_REASON,
    ProgressStep,
    UserRole,
    VoteDirection,
)
from ..decorators import retry_with_backoff
from ..models import RegenerationEvent, Roadmap, User
from ..utils.logging_config import get_logger
from ..utils.time import utc_now
from .generation import GenerationPipeline
from .roadmap_validation import RoadmapDraft, regeneration_prompt
from .service_base import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    StorageError,
    ValidationError,
)
from .store import RoadmapStore

logger = get_logger("quality")


# Pure scoring ----------------------------------------------------------

def compute_quality_score(upvotes: int, downvotes: int) -> float:
    """Percentage of upvotes, two decimals; 0.0 when nobody voted."""
    total = upvotes + downvotes
    if total <= 0:
        return 0.0
    return round(100.0 * upvotes / total, 2)


def is_degraded(downvotes: int, threshold: int = DEFAULT_DOWNVOTE_THRESHOLD) -> bool:
    return downvotes >= threshold


def toggle_vote(upvotes: Iterable[str], downvotes: Iterable[str], voter: str,
                direction: VoteDirection) -> Tuple[List[str], List[str]]:
    """Return new (upvotes, downvotes) after `voter` votes `direction`.

    The voter is first removed from the opposite set, then their membership
    in the chosen set is toggled. Voting the same way twice is a no-op.
    """
    up = [v for v in upvotes if v != voter] if direction == VoteDirection.DOWN else list(upvotes)
    down = [v for v in downvotes if v != voter] if direction == VoteDirection.UP else list(downvotes)
    chosen = up if direction == VoteDirection.UP else down
    if voter in chosen:
        chosen[:] = [v for v in chosen if v != voter]
    else:
        chosen.append(voter)
    return up, down


def vote_summary(roadmap: Roadmap) -> Dict[str, Any]:
    return {
        'roadmap_id': roadmap.id,
        'upvotes': len(roadmap.upvotes),
        'downvotes': len(roadmap.downvotes),
        'quality_score': roadmap.quality_score or 0.0,
        'needs_regeneration': bool(roadmap.needs_regeneration),
        'state': roadmap.state.value,
    }


# Voting ----------------------------------------------------------------

class VotingService:
    """Vote toggling with optimistic retry on concurrent writers."""

    def __init__(self, store: RoadmapStore, downvote_threshold: int = DEFAULT_DOWNVOTE_THRESHOLD,
                 max_retries: int = 5, retry_base_delay: float = 0.01):
        self.store = store
        self.downvote_threshold = downvote_threshold
        self._apply_with_retry = retry_with_backoff(
            attempts=max_retries + 1,
            base_delay=retry_base_delay,
            max_delay=0.5,
            before_retry=lambda attempt, exc: self.store.rollback(),
        )(self._apply_vote)

    def upvote(self, roadmap_id: int, voter_id: Any) -> Dict[str, Any]:
        return self.vote(roadmap_id, voter_id, VoteDirection.UP)

    def downvote(self, roadmap_id: int, voter_id: Any) -> Dict[str, Any]:
        return self.vote(roadmap_id, voter_id, VoteDirection.DOWN)

    def vote(self, roadmap_id: int, voter_id: Any, direction: VoteDirection) -> Dict[str, Any]:
        if voter_id is None or str(voter_id).strip() == '':
            raise ValidationError("Voter identity is required")
        try:
            return self._apply_with_retry(roadmap_id, str(voter_id), VoteDirection(direction))
        except StaleDataError as e:
            raise ConflictError(f"Vote on roadmap {roadmap_id} kept conflicting with concurrent updates") from e

    def _apply_vote(self, roadmap_id: int, voter: str, direction: VoteDirection) -> Dict[str, Any]:
        with self.store.transaction():
            roadmap = self.store.get(Roadmap, roadmap_id)
            if roadmap is None:
                raise NotFoundError(f"Roadmap {roadmap_id} not found")
            was_degraded = bool(roadmap.needs_regeneration)

            up, down = toggle_vote(roadmap.upvotes, roadmap.downvotes, voter, direction)
            roadmap.set_votes(up, down)
            roadmap.quality_score = compute_quality_score(len(up), len(down))
            roadmap.needs_regeneration = is_degraded(len(down), self.downvote_threshold)
            self.store.update(roadmap)

            if roadmap.needs_regeneration and not was_degraded:
                logger.warning(
                    f"Roadmap {roadmap.id} flagged for regeneration ({len(down)} downvotes >= {self.downvote_threshold})"
                )
            elif was_degraded and not roadmap.needs_regeneration:
                logger.info(f"Roadmap {roadmap.id} dropped below the regeneration threshold")
            summary = vote_summary(roadmap)
        return summary


# Regeneration ----------------------------------------------------------

class RegenerationService:
    """Gate and run the delete-then-recreate of a roadmap's tree."""

    def __init__(self, store: RoadmapStore, pipeline: GenerationPipeline,
                 downvote_threshold: int = DEFAULT_DOWNVOTE_THRESHOLD, lock_ttl: int = 900):
        self.store = store
        self.pipeline = pipeline
        self.downvote_threshold = downvote_threshold
        self.lock_ttl = lock_ttl
        self._replace_with_retry = retry_with_backoff(
            attempts=3,
            base_delay=0.01,
            before_retry=lambda attempt, exc: self.store.rollback(),
        )(self._replace_tree)

    def _resolve_role(self, actor_id: Any, actor_role: Optional[str]) -> Optional[str]:
        if actor_role:
            return str(actor_role).lower()
        if actor_id is None:
            return None
        user = self.store.get(User, actor_id)
        return user.role if user else None

    def check_permission(self, roadmap: Roadmap, actor_id: Any = None, actor_role: Optional[str] = None) -> str:
        """Return the regeneration reason, or raise PermissionDeniedError."""
        role = self._resolve_role(actor_id, actor_role)
        if roadmap.needs_regeneration:
            return REGENERATION_REASON.format(threshold=self.downvote_threshold)
        if role == UserRole.ADMIN.value:
            return FORCED_REGENERATION_REASON.format(role=UserRole.ADMIN.value)
        if actor_id is not None and roadmap.contributor_id is not None and str(roadmap.contributor_id) == str(actor_id):
            return FORCED_REGENERATION_REASON.format(role='owner')
        raise PermissionDeniedError(
            f"Roadmap {roadmap.id} does not need regeneration; only its owner or an admin can force it"
        )

    def regenerate(self, roadmap_id: int, actor_id: Any = None, actor_role: Optional[str] = None,
                   subscriber: Any = None) -> Roadmap:
        """Regenerate a roadmap in place.

        Raises:
            NotFoundError: unknown roadmap
            PermissionDeniedError: not degraded and actor is neither owner nor admin
            ConflictError: a regeneration of this roadmap is already running
            UpstreamError / ValidationError: oracle failure (old tree untouched)
            StorageError: the replacement could not be written (old tree untouched)
        """
        roadmap = self.store.get(Roadmap, roadmap_id)
        if roadmap is None:
            raise NotFoundError(f"Roadmap {roadmap_id} not found")
        reason = self.check_permission(roadmap, actor_id, actor_role)

        stale_before = utc_now() - timedelta(seconds=self.lock_ttl)
        if not self.store.claim_regeneration(roadmap_id, stale_before):
            raise ConflictError(f"Roadmap {roadmap_id} is already being regenerated")
        logger.info(f"Regenerating roadmap {roadmap_id}: {reason}")

        try:
            roadmap = self.store.get(Roadmap, roadmap_id)
            draft = self.pipeline.request_draft(regeneration_prompt(roadmap.title, roadmap.description), subscriber)
            try:
                self._replace_with_retry(roadmap_id, draft, actor_id, reason)
            except ServiceError:
                raise
            except Exception as e:
                logger.error(f"Failed to replace tree of roadmap {roadmap_id}: {e}", exc_info=True)
                self.pipeline.notify(subscriber, ProgressStep.ERROR, 0, error=f"Failed to save roadmap: {e}")
                raise StorageError(f"Failed to regenerate roadmap {roadmap_id}: {e}") from e
        except Exception:
            self.store.release_regeneration(roadmap_id)
            raise

        self.pipeline.notify(subscriber, ProgressStep.FINALIZING, 95)
        self.pipeline.notify(subscriber, ProgressStep.COMPLETE, 100)
        return self.store.get(Roadmap, roadmap_id)

    def _replace_tree(self, roadmap_id: int, draft: RoadmapDraft, actor_id: Any, reason: str) -> None:
        with self.store.transaction():
            roadmap = self.store.get(Roadmap, roadmap_id)
            if roadmap is None:
                raise NotFoundError(f"Roadmap {roadmap_id} was deleted during regeneration")
            previous_downvotes = len(roadmap.downvotes)
            previous_version = roadmap.version or 1

            removed = self.store.delete_tree(roadmap)
            nodes = self.pipeline.write_tree(roadmap, draft, actor_id, bool(roadmap.is_community_contributed))

            roadmap.description = draft.description or roadmap.description
            roadmap.difficulty = draft.difficulty
            roadmap.set_votes([], [])
            roadmap.quality_score = 0.0
            roadmap.needs_regeneration = False
            roadmap.is_regenerating = False
            roadmap.regeneration_started_at = None
            roadmap.version = previous_version + 1
            roadmap.last_updated = utc_now()
            roadmap.updated_by_id = actor_id
            self.store.update(roadmap)

            self.store.create(RegenerationEvent(
                roadmap_id=roadmap.id,
                reason=reason,
                previous_downvotes=previous_downvotes,
                previous_version=previous_version,
                triggered_by_id=actor_id,
            ))
            logger.info(
                f"Roadmap {roadmap.id} regenerated to v{roadmap.version}: "
                f"removed {removed['nodes']} nodes/{removed['resources']} resources, wrote {len(nodes)} nodes"
            )
