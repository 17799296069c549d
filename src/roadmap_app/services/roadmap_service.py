"""Roadmap Service
================

Read and maintenance operations on stored roadmaps: hierarchical reads,
listing, publishing, structural edits, deletion and statistics.

Usage:
    service = RoadmapService(store)
    detail = service.get_roadmap_with_nodes(roadmap_id)
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select

from ..constants import Difficulty, RoadmapCategory
from ..models import Resource, Roadmap, RoadmapNode, node_resources
from ..utils.logging_config import get_logger
from ..utils.time import utc_now
from .roadmap_search import RoadmapSearchService
from .service_base import NotFoundError, ValidationError
from .store import BulkOperation, RoadmapStore
from .tree_assembler import assemble_tree

logger = get_logger("roadmaps")

# Node fields callers may edit through update_roadmap_with_nodes
EDITABLE_NODE_FIELDS = ('title', 'description', 'node_type', 'is_optional', 'importance', 'difficulty')
EDITABLE_ROADMAP_FIELDS = ('title', 'description', 'long_description', 'category', 'difficulty',
                           'cover_image', 'is_featured')


class RoadmapService:
    """Roadmap reads and edits over the store."""

    def __init__(self, store: RoadmapStore, search: Optional[RoadmapSearchService] = None,
                 items_per_page: int = 10):
        self.store = store
        self.search = search or RoadmapSearchService(store)
        self.items_per_page = items_per_page

    def _require(self, roadmap_id: int) -> Roadmap:
        roadmap = self.store.get(Roadmap, roadmap_id)
        if roadmap is None:
            raise NotFoundError(f"Roadmap {roadmap_id} not found")
        return roadmap

    # Reads -----------------------------------------------------------------

    def get_roadmap_with_nodes(self, roadmap_id: int) -> Dict[str, Any]:
        roadmap = self._require(roadmap_id)
        nodes = self.store.nodes_for(roadmap_id)
        tree = assemble_tree(nodes)
        return {
            'roadmap': roadmap.to_dict(),
            'hierarchical_nodes': [root.to_dict() for root in tree],
            'flat_nodes': [node.to_dict() for node in nodes],
        }

    def list_roadmaps(self, page: int = 1, limit: Optional[int] = None, category: Optional[str] = None,
                      difficulty: Optional[str] = None, search: Optional[str] = None) -> Dict[str, Any]:
        """Published roadmaps, most recently published first."""
        page = max(int(page or 1), 1)
        limit = max(int(limit or self.items_per_page), 1)

        criteria = [Roadmap.is_published.is_(True)]
        if category:
            if category not in RoadmapCategory.values():
                raise ValidationError(f"Unknown category: {category}")
            criteria.append(Roadmap.category == category)
        if difficulty:
            if difficulty not in Difficulty.values():
                raise ValidationError(f"Unknown difficulty: {difficulty}")
            criteria.append(Roadmap.difficulty == difficulty)
        if search:
            like = f'%{search.strip()}%'
            criteria.append(or_(Roadmap.title.ilike(like), Roadmap.description.ilike(like)))

        total = self.store.count(Roadmap, *criteria)
        rows = self.store.find(
            Roadmap, *criteria,
            order_by=(Roadmap.published_at.desc(), Roadmap.id.desc()),
            limit=limit,
            offset=(page - 1) * limit,
        )
        return {
            'roadmaps': [roadmap.to_dict() for roadmap in rows],
            'pagination': {
                'page': page,
                'limit': limit,
                'total': total,
                'pages': math.ceil(total / limit) if total else 0,
            },
        }

    def get_popular_roadmaps(self, limit: int = 20) -> List[Dict[str, Any]]:
        return [roadmap.to_dict() for roadmap in self.search.get_popular(limit)]

    def get_roadmap_stats(self, roadmap_id: int) -> Dict[str, Any]:
        roadmap = self._require(roadmap_id)
        node_types = self.store.count_by(RoadmapNode, RoadmapNode.node_type, RoadmapNode.roadmap_id == roadmap_id)
        linked = Resource.id.in_(
            select(node_resources.c.resource_id)
            .join(RoadmapNode, RoadmapNode.id == node_resources.c.node_id)
            .where(RoadmapNode.roadmap_id == roadmap_id)
        )
        resource_types = self.store.count_by(Resource, Resource.resource_type, linked)
        return {
            'roadmap_id': roadmap.id,
            'version': roadmap.version,
            'upvotes': len(roadmap.upvotes),
            'downvotes': len(roadmap.downvotes),
            'quality_score': roadmap.quality_score or 0.0,
            'needs_regeneration': bool(roadmap.needs_regeneration),
            'state': roadmap.state.value,
            'views': roadmap.views or 0,
            'completions': roadmap.completions or 0,
            'node_count': sum(node_types.values()),
            'node_types': node_types,
            'resource_types': resource_types,
            'regenerations': [event.to_dict() for event in roadmap.regeneration_history],
        }

    def record_view(self, roadmap_id: int) -> int:
        self._require(roadmap_id)
        self.store.increment_views(roadmap_id)
        return self.store.get(Roadmap, roadmap_id).views

    # Writes ----------------------------------------------------------------

    def update_roadmap_with_nodes(self, roadmap_id: int, updates: Optional[Dict[str, Any]] = None,
                                  nodes: Optional[List[Dict[str, Any]]] = None,
                                  actor_id: Optional[int] = None) -> Dict[str, Any]:
        """Apply roadmap field edits and node edits, bumping the version once.

        Node entries are ``{"id": ..., <field>: ...}``; ids that do not belong
        to this roadmap are rejected.
        """
        updates = updates or {}
        nodes = nodes or []
        unknown = set(updates) - set(EDITABLE_ROADMAP_FIELDS) - {'tags'}
        if unknown:
            raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")

        with self.store.transaction():
            roadmap = self._require(roadmap_id)
            owned_ids = {node.id for node in self.store.nodes_for(roadmap_id)}

            operations = []
            for entry in nodes:
                node_id = entry.get('id')
                if node_id not in owned_ids:
                    raise ValidationError(f"Node {node_id} does not belong to roadmap {roadmap_id}")
                fields = {k: v for k, v in entry.items() if k in EDITABLE_NODE_FIELDS}
                fields['updated_by_id'] = actor_id
                operations.append(BulkOperation('update', RoadmapNode, node_id, fields))
            if operations:
                self.store.bulk_write(operations)

            fields = {k: v for k, v in updates.items() if k in EDITABLE_ROADMAP_FIELDS}
            if 'category' in fields and fields['category'] not in RoadmapCategory.values():
                raise ValidationError(f"Unknown category: {fields['category']}")
            if 'difficulty' in fields and fields['difficulty'] not in Difficulty.values():
                raise ValidationError(f"Unknown difficulty: {fields['difficulty']}")
            if 'tags' in updates:
                roadmap.set_tags(updates['tags'])
            self.store.update(
                roadmap,
                version=(roadmap.version or 1) + 1,
                last_updated=utc_now(),
                updated_by_id=actor_id,
                **fields,
            )
        logger.info(f"Roadmap {roadmap_id} updated to v{roadmap.version} ({len(nodes)} node edits)")
        return self.get_roadmap_with_nodes(roadmap_id)

    def set_published(self, roadmap_id: int, is_published: bool = True) -> Dict[str, Any]:
        with self.store.transaction():
            roadmap = self._require(roadmap_id)
            self.store.update(
                roadmap,
                is_published=bool(is_published),
                published_at=utc_now() if is_published else None,
            )
        return roadmap.to_dict()

    def delete_roadmap(self, roadmap_id: int) -> Dict[str, int]:
        """Delete a roadmap, its nodes, its history and resources no other roadmap uses."""
        with self.store.transaction():
            roadmap = self._require(roadmap_id)
            removed = self.store.delete_tree(roadmap)
            self.store.delete(roadmap)
        logger.info(f"Deleted roadmap {roadmap_id} ({removed['nodes']} nodes, {removed['resources']} resources)")
        return removed
