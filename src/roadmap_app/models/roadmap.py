from __future__ import annotations

import json
from typing import Any, Dict, List

from ..constants import Difficulty, RoadmapCategory, RoadmapState
from ..extensions import db
from ..utils.time import as_utc, utc_now


def _load_list(raw: str | None) -> List[Any]:
    if raw:
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return []
        return value if isinstance(value, list) else []
    return []


class Roadmap(db.Model):
    """A generated or seeded learning roadmap; the unit of caching."""
    __tablename__ = 'roadmaps'
    __table_args__ = (
        db.Index('idx_roadmap_published_pregenerated', 'is_published', 'is_pre_generated'),
        {'extend_existing': True},
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False, index=True)
    slug = db.Column(db.String(220), index=True)
    description = db.Column(db.Text, default='')
    long_description = db.Column(db.Text)
    category = db.Column(db.String(50), nullable=False, default=RoadmapCategory.OTHER.value, index=True)
    difficulty = db.Column(db.String(20), nullable=False, default=Difficulty.BEGINNER.value, index=True)
    estimated_duration_json = db.Column(db.Text)
    cover_image = db.Column(db.String(500))

    # Search surface
    tags_json = db.Column(db.Text)
    search_keywords_json = db.Column(db.Text)
    prompt_fingerprint = db.Column(db.String(500), index=True)  # fingerprint of the generating prompt

    # Lifecycle
    version = db.Column(db.Integer, nullable=False, default=1)  # bumped on structural update/regeneration
    is_published = db.Column(db.Boolean, default=False, index=True)
    published_at = db.Column(db.DateTime(timezone=True))
    is_featured = db.Column(db.Boolean, default=False)
    is_pre_generated = db.Column(db.Boolean, default=False)
    is_community_contributed = db.Column(db.Boolean, default=False)
    contributor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)

    # Community quality signals
    upvotes_json = db.Column(db.Text)
    downvotes_json = db.Column(db.Text)
    quality_score = db.Column(db.Float, default=0.0)
    needs_regeneration = db.Column(db.Boolean, default=False, index=True)
    is_regenerating = db.Column(db.Boolean, default=False, nullable=False)
    regeneration_started_at = db.Column(db.DateTime(timezone=True))

    # Stats
    views = db.Column(db.Integer, default=0)
    completions = db.Column(db.Integer, default=0)
    average_rating = db.Column(db.Float, default=0.0)
    ratings_count = db.Column(db.Integer, default=0)

    last_updated = db.Column(db.DateTime(timezone=True))
    updated_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    # Optimistic concurrency counter, distinct from the user-facing `version`
    row_version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {'version_id_col': row_version}

    contributor = db.relationship('User', foreign_keys=[contributor_id], lazy='joined')
    updated_by = db.relationship('User', foreign_keys=[updated_by_id], lazy='joined')
    nodes = db.relationship(
        'RoadmapNode', backref='roadmap', lazy=True, cascade='all, delete-orphan',
        order_by='RoadmapNode.position',
    )
    regeneration_history = db.relationship(
        'RegenerationEvent', backref='roadmap', lazy=True, cascade='all, delete-orphan',
        order_by='RegenerationEvent.regenerated_at',
    )

    # JSON field helpers -------------------------------------------------

    def get_tags(self) -> List[str]:
        return [str(tag) for tag in _load_list(self.tags_json)]

    def set_tags(self, tags: List[str]) -> None:
        self.tags_json = json.dumps(list(tags or []))

    def get_search_keywords(self) -> List[str]:
        return [str(kw) for kw in _load_list(self.search_keywords_json)]

    def set_search_keywords(self, keywords: List[str]) -> None:
        self.search_keywords_json = json.dumps(list(keywords or []))

    def get_estimated_duration(self) -> Dict[str, Any] | None:
        if self.estimated_duration_json:
            try:
                return json.loads(self.estimated_duration_json)
            except json.JSONDecodeError:
                return None
        return None

    def set_estimated_duration(self, duration: Dict[str, Any] | None) -> None:
        self.estimated_duration_json = json.dumps(duration) if duration else None

    @property
    def upvotes(self) -> List[str]:
        return [str(v) for v in _load_list(self.upvotes_json)]

    @property
    def downvotes(self) -> List[str]:
        return [str(v) for v in _load_list(self.downvotes_json)]

    def set_votes(self, upvotes: List[str], downvotes: List[str]) -> None:
        self.upvotes_json = json.dumps(list(upvotes))
        self.downvotes_json = json.dumps(list(downvotes))

    # Derived state -----------------------------------------------------

    @property
    def state(self) -> RoadmapState:
        if self.is_regenerating:
            return RoadmapState.REGENERATING
        if self.needs_regeneration:
            return RoadmapState.DEGRADED
        return RoadmapState.FRESH

    def to_dict(self, include_votes: bool = False) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'title': self.title,
            'slug': self.slug,
            'description': self.description,
            'long_description': self.long_description,
            'category': self.category,
            'difficulty': self.difficulty,
            'estimated_duration': self.get_estimated_duration(),
            'cover_image': self.cover_image,
            'tags': self.get_tags(),
            'search_keywords': self.get_search_keywords(),
            'version': self.version,
            'is_published': bool(self.is_published),
            'published_at': as_utc(self.published_at).isoformat() if self.published_at else None,
            'is_featured': bool(self.is_featured),
            'is_pre_generated': bool(self.is_pre_generated),
            'is_community_contributed': bool(self.is_community_contributed),
            'contributor': self.contributor.to_public_dict() if self.contributor else None,
            'updated_by': self.updated_by.to_public_dict() if self.updated_by else None,
            'upvote_count': len(self.upvotes),
            'downvote_count': len(self.downvotes),
            'quality_score': self.quality_score or 0.0,
            'needs_regeneration': bool(self.needs_regeneration),
            'state': self.state.value,
            'stats': {
                'views': self.views or 0,
                'completions': self.completions or 0,
                'average_rating': self.average_rating or 0.0,
                'ratings_count': self.ratings_count or 0,
            },
            'last_updated': as_utc(self.last_updated).isoformat() if self.last_updated else None,
            'created_at': as_utc(self.created_at).isoformat() if self.created_at else None,
        }
        if include_votes:
            data['upvotes'] = self.upvotes
            data['downvotes'] = self.downvotes
        return data

    def __repr__(self) -> str:
        return f'<Roadmap {self.id} {self.title!r} v{self.version}>'


class RegenerationEvent(db.Model):
    """Append-only log entry written each time a roadmap is regenerated."""
    __tablename__ = 'roadmap_regenerations'

    id = db.Column(db.Integer, primary_key=True)
    roadmap_id = db.Column(db.Integer, db.ForeignKey('roadmaps.id', ondelete='CASCADE'), nullable=False, index=True)
    regenerated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    reason = db.Column(db.String(255), nullable=False)
    previous_downvotes = db.Column(db.Integer, nullable=False, default=0)
    previous_version = db.Column(db.Integer, nullable=False, default=1)
    triggered_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'regenerated_at': as_utc(self.regenerated_at).isoformat() if self.regenerated_at else None,
            'reason': self.reason,
            'previous_downvotes': self.previous_downvotes,
            'previous_version': self.previous_version,
            'triggered_by_id': self.triggered_by_id,
        }
