from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

from ..constants import Difficulty, Importance, NodeType
from ..extensions import db
from ..utils.time import utc_now

node_resources = db.Table(
    'roadmap_node_resources',
    db.Column('node_id', db.Integer, db.ForeignKey('roadmap_nodes.id', ondelete='CASCADE'), primary_key=True),
    db.Column('resource_id', db.Integer, db.ForeignKey('resources.id', ondelete='CASCADE'), primary_key=True),
)


def _id_list(raw: str | None) -> List[int]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(value, list):
        return []
    return [int(v) for v in value]


class RoadmapNode(db.Model):
    """One step of a roadmap tree.

    `prerequisites` is the canonical structural-parent edge (the node this one
    was generated under). `dependencies` is the secondary unlocking edge to
    the nearest milestone ancestor and never drives tree assembly.
    """
    __tablename__ = 'roadmap_nodes'
    __table_args__ = (
        db.Index('idx_node_roadmap_order', 'roadmap_id', 'depth', 'position'),
        {'extend_existing': True},
    )

    id = db.Column(db.Integer, primary_key=True)
    roadmap_id = db.Column(db.Integer, db.ForeignKey('roadmaps.id', ondelete='CASCADE'), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default='')
    depth = db.Column(db.Integer, nullable=False, default=0)
    position = db.Column(db.Integer, nullable=False, default=0)  # global creation order within the roadmap
    node_type = db.Column(db.String(20), nullable=False, default=NodeType.TOPIC.value)
    estimated_duration_json = db.Column(db.Text)
    is_optional = db.Column(db.Boolean, default=False)
    importance = db.Column(db.String(20), default=Importance.MEDIUM.value)
    difficulty = db.Column(db.String(20), default=Difficulty.BEGINNER.value)
    keywords_json = db.Column(db.Text)
    prerequisites_json = db.Column(db.Text)
    dependencies_json = db.Column(db.Text)

    updated_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    resources = db.relationship('Resource', secondary=node_resources, lazy='selectin', backref='nodes')

    @classmethod
    def build(
        cls,
        roadmap_id: int,
        position: int,
        title: str,
        parent: Optional['RoadmapNode'] = None,
        dependencies: Iterable[int] = (),
        **fields: Any,
    ) -> 'RoadmapNode':
        """Construct a node whose depth and parent edge derive from `parent`.

        The parent must already have an identity (flushed). Depth is never
        accepted from the caller so `depth == parent.depth + 1` always holds.
        """
        if parent is not None and parent.id is None:
            raise ValueError("parent node must be flushed before children are built")
        node = cls(roadmap_id=roadmap_id, position=position, title=title, **fields)
        node.depth = parent.depth + 1 if parent is not None else 0
        node.set_prerequisites([parent.id] if parent is not None else [])
        node.set_dependencies(list(dependencies))
        return node

    # JSON field helpers -------------------------------------------------

    @property
    def prerequisites(self) -> List[int]:
        return _id_list(self.prerequisites_json)

    def set_prerequisites(self, node_ids: List[int]) -> None:
        self.prerequisites_json = json.dumps([int(n) for n in node_ids])

    @property
    def dependencies(self) -> List[int]:
        return _id_list(self.dependencies_json)

    def set_dependencies(self, node_ids: List[int]) -> None:
        self.dependencies_json = json.dumps([int(n) for n in node_ids])

    def get_keywords(self) -> List[str]:
        if self.keywords_json:
            try:
                return list(json.loads(self.keywords_json))
            except (json.JSONDecodeError, TypeError):
                return []
        return []

    def set_keywords(self, keywords: List[str]) -> None:
        self.keywords_json = json.dumps(list(keywords or []))

    def get_estimated_duration(self) -> Dict[str, Any] | None:
        if self.estimated_duration_json:
            try:
                return json.loads(self.estimated_duration_json)
            except json.JSONDecodeError:
                return None
        return None

    def set_estimated_duration(self, duration: Dict[str, Any] | None) -> None:
        self.estimated_duration_json = json.dumps(duration) if duration else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'roadmap_id': self.roadmap_id,
            'title': self.title,
            'description': self.description,
            'depth': self.depth,
            'position': self.position,
            'node_type': self.node_type,
            'estimated_duration': self.get_estimated_duration(),
            'is_optional': bool(self.is_optional),
            'prerequisites': self.prerequisites,
            'dependencies': self.dependencies,
            'resources': [r.to_summary_dict() for r in self.resources or []],
            'metadata': {
                'keywords': self.get_keywords(),
                'difficulty': self.difficulty,
                'importance': self.importance,
            },
        }

    def __repr__(self) -> str:
        return f'<RoadmapNode {self.id} depth={self.depth} pos={self.position} {self.title!r}>'
