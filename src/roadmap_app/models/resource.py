from __future__ import annotations

from typing import Any, Dict

from ..constants import Difficulty, ResourceType
from ..extensions import db
from ..utils.time import utc_now


class Resource(db.Model):
    """Leaf learning reference attached to one or more roadmap nodes."""
    __tablename__ = 'resources'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text)
    url = db.Column(db.String(1000), nullable=False)
    resource_type = db.Column(db.String(30), nullable=False, default=ResourceType.OTHER.value)
    content_type = db.Column(db.String(20), default='free')
    difficulty = db.Column(db.String(20), default=Difficulty.BEGINNER.value)

    is_approved = db.Column(db.Boolean, default=False, index=True)
    is_community_contributed = db.Column(db.Boolean, default=False)
    contributor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)

    # Simple counters
    views = db.Column(db.Integer, default=0)
    clicks = db.Column(db.Integer, default=0)
    upvotes = db.Column(db.Integer, default=0)
    downvotes = db.Column(db.Integer, default=0)
    rating = db.Column(db.Float, default=0.0)
    ratings_count = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def to_summary_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'url': self.url,
            'resource_type': self.resource_type,
            'description': self.description,
        }

    def __repr__(self) -> str:
        return f'<Resource {self.id} {self.resource_type} {self.url}>'
