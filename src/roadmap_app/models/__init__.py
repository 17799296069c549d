"""
Database Models for the Roadmap Service

Models include:
- User: contributor / updater / voter identities
- Roadmap: cached learning roadmap (the unit of caching)
- RegenerationEvent: append-only regeneration log per roadmap
- RoadmapNode: one step of a roadmap tree
- Resource: leaf learning reference owned by nodes
"""

from __future__ import annotations

from ..constants import Difficulty, NodeType, ResourceType, RoadmapCategory, RoadmapState
from ..extensions import db

from .user import User
from .roadmap import Roadmap, RegenerationEvent
from .node import RoadmapNode, node_resources
from .resource import Resource

from ..utils.time import utc_now

__all__ = [
    # Enums
    'Difficulty', 'NodeType', 'ResourceType', 'RoadmapCategory', 'RoadmapState',

    # DB instance
    'db',

    # Models
    'User', 'Roadmap', 'RegenerationEvent', 'RoadmapNode', 'node_resources', 'Resource',

    # Utility function
    'utc_now',
]
