"""Oracle instruction building and response validation.

The oracle is asked for a JSON document::

    {"title", "description", "category", "difficulty",
     "nodes": [{"title", "description", "nodeType", "estimatedDuration",
                "importance", "difficulty", "resources": [...], "children": [...]}]}

:func:`parse_roadmap_response` turns that text into a :class:`RoadmapDraft`.
Missing required fields raise ``ValidationError``; bad enum values are
corrected in place with the documented defaults.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..constants import (
    DEFAULT_MAX_TREE_DEPTH,
    DEFAULT_MAX_TREE_NODES,
    Difficulty,
    DurationUnit,
    Importance,
    NodeType,
    ResourceType,
    RoadmapCategory,
)
from ..utils.logging_config import get_logger
from .service_base import ValidationError

logger = get_logger("validation")

SYSTEM_PROMPT = "You are a helpful assistant that outputs JSON and strictly follows all validation rules."

_CODE_FENCE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)


@dataclass
class ResourceDraft:
    title: str
    url: str
    resource_type: str = ResourceType.OTHER.value
    description: str = ''


@dataclass
class NodeDraft:
    title: str
    description: str = ''
    node_type: str = NodeType.TOPIC.value
    estimated_duration: Optional[Dict[str, Any]] = None
    importance: str = Importance.MEDIUM.value
    difficulty: str = Difficulty.BEGINNER.value
    resources: List[ResourceDraft] = field(default_factory=list)
    children: List['NodeDraft'] = field(default_factory=list)

    @property
    def is_milestone(self) -> bool:
        return self.node_type == NodeType.MILESTONE.value


@dataclass
class RoadmapDraft:
    title: str
    description: str
    category: str
    difficulty: str
    nodes: List[NodeDraft]

    def walk(self):
        """Yield ``(node, depth)`` pairs depth-first in document order."""
        stack = [(node, 0) for node in reversed(self.nodes)]
        while stack:
            node, depth = stack.pop()
            yield node, depth
            stack.extend((child, depth + 1) for child in reversed(node.children))

    @property
    def node_count(self) -> int:
        return sum(1 for _ in self.walk())

    @property
    def max_depth(self) -> int:
        return max((depth for _, depth in self.walk()), default=-1)


# Normalizers -----------------------------------------------------------

def normalize_category(value: Any) -> str:
    lowered = str(value or '').strip().lower()
    if 'front' in lowered or 'ui' in lowered:
        return RoadmapCategory.FRONTEND.value
    if 'back' in lowered:
        return RoadmapCategory.BACKEND.value
    if 'data' in lowered:
        return RoadmapCategory.DATA_SCIENCE.value
    if 'security' in lowered:
        return RoadmapCategory.CYBERSECURITY.value
    if lowered in RoadmapCategory.values():
        return lowered
    return RoadmapCategory.OTHER.value


def normalize_difficulty(value: Any) -> str:
    lowered = str(value or '').strip().lower()
    return lowered if lowered in Difficulty.values() else Difficulty.BEGINNER.value


def normalize_node_type(value: Any) -> str:
    lowered = str(value or '').strip().lower()
    return lowered if lowered in NodeType.values() else NodeType.TOPIC.value


def normalize_importance(value: Any) -> str:
    lowered = str(value or '').strip().lower()
    return lowered if lowered in Importance.values() else Importance.MEDIUM.value


def normalize_resource_type(value: Any) -> str:
    lowered = str(value or '').strip().lower()
    return lowered if lowered in ResourceType.values() else ResourceType.OTHER.value


def normalize_duration(value: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(value, dict):
        return None
    amount = value.get('value')
    unit = str(value.get('unit') or '').strip().lower()
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        return None
    if unit not in DurationUnit.values():
        # "hours/days/weeks" style answers keep the first listed unit
        unit = next((u for u in DurationUnit.values() if unit.startswith(u)), DurationUnit.WEEKS.value)
    return {'value': amount, 'unit': unit}


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ''


# Parsing ---------------------------------------------------------------

def _parse_resource(raw: Any) -> Optional[ResourceDraft]:
    if not isinstance(raw, dict):
        return None
    title = _text(raw.get('title'))
    url = _text(raw.get('url'))
    if not title or not url:
        logger.warning(f"Dropping resource without title/url: {raw!r:.120}")
        return None
    return ResourceDraft(
        title=title,
        url=url,
        resource_type=normalize_resource_type(_pick(raw, 'resourceType', 'resource_type', 'type')),
        description=_text(raw.get('description')),
    )


def _parse_node(raw: Any, path: str) -> NodeDraft:
    if not isinstance(raw, dict):
        raise ValidationError(f"Node {path} is not an object")
    title = _text(raw.get('title'))
    if not title:
        raise ValidationError(f"Node {path} is missing a title")
    resources = [r for r in (_parse_resource(item) for item in (raw.get('resources') or [])) if r]
    return NodeDraft(
        title=title,
        description=_text(raw.get('description')),
        node_type=normalize_node_type(_pick(raw, 'nodeType', 'node_type', 'type')),
        estimated_duration=normalize_duration(_pick(raw, 'estimatedDuration', 'estimated_duration')),
        importance=normalize_importance(raw.get('importance')),
        difficulty=normalize_difficulty(raw.get('difficulty')),
        resources=resources,
    )


def _parse_nodes(raw_nodes: List[Any], max_depth: int, max_nodes: int) -> List[NodeDraft]:
    """Iteratively build the draft tree, bounding depth and size."""
    roots: List[NodeDraft] = []
    count = 0
    stack: List[Tuple[Any, List[NodeDraft], int, str]] = [
        (raw, roots, 0, str(i)) for i, raw in reversed(list(enumerate(raw_nodes)))
    ]
    while stack:
        raw, siblings, depth, path = stack.pop()
        if depth >= max_depth:
            raise ValidationError(f"Roadmap tree deeper than {max_depth} levels (at node {path})")
        count += 1
        if count > max_nodes:
            raise ValidationError(f"Roadmap tree has more than {max_nodes} nodes")
        node = _parse_node(raw, path)
        siblings.append(node)
        children = raw.get('children') or []
        if not isinstance(children, list):
            children = []
        for i, child in reversed(list(enumerate(children))):
            stack.append((child, node.children, depth + 1, f"{path}.{i}"))
    return roots


def parse_roadmap_response(
    raw: str,
    max_depth: int = DEFAULT_MAX_TREE_DEPTH,
    max_nodes: int = DEFAULT_MAX_TREE_NODES,
) -> RoadmapDraft:
    """Parse and normalize oracle output.

    Raises:
        ValidationError: unparsable JSON, missing title/category/nodes, a
            node without a title, or a tree beyond the depth/size limits.
    """
    text = _CODE_FENCE.sub('', (raw or '').strip())
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise ValidationError(f"Oracle response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError("Oracle response is not a JSON object")

    title = _text(data.get('title'))
    category = _text(data.get('category'))
    nodes = data.get('nodes')
    missing = [name for name, value in (('title', title), ('category', category), ('nodes', nodes)) if not value]
    if missing:
        raise ValidationError(f"Invalid roadmap structure: missing {', '.join(missing)}")
    if not isinstance(nodes, list):
        raise ValidationError("Invalid roadmap structure: nodes must be a list")

    draft = RoadmapDraft(
        title=title,
        description=_text(data.get('description')),
        category=normalize_category(category),
        difficulty=normalize_difficulty(data.get('difficulty')),
        nodes=_parse_nodes(nodes, max_depth, max_nodes),
    )
    logger.debug(f"Parsed roadmap draft '{draft.title}' with {draft.node_count} nodes")
    return draft


# Instruction -----------------------------------------------------------

def build_generation_prompt(user_prompt: str) -> str:
    """Instruction text enumerating the closed vocabularies and the JSON shape."""
    return f"""
You are an expert learning roadmap analyzer. Analyze the following user request and create a detailed roadmap.

STRICT RULES:
1. CATEGORIES: Must be one of these exact values (choose the closest match):
   - {', '.join(RoadmapCategory.values())}

2. RESOURCE TYPES: Must be one of these exact values:
   - {', '.join(ResourceType.values())}

3. DIFFICULTY LEVELS: Must be one of:
   - {', '.join(Difficulty.values())}

4. NODE TYPES: Must be one of:
   - {', '.join(NodeType.values())}

STRUCTURE REQUIREMENTS for every node:
- Title (clear and concise)
- Description (1-2 sentences)
- Node type (from allowed values)
- Estimated duration (value and unit: {', '.join(DurationUnit.values())})
- Importance level ({', '.join(Importance.values())})
- Difficulty (from allowed values)
- Resources (when applicable, with valid types)
- Children (nested nodes that build on this one)

User Request: "{user_prompt}"

Return your response as a JSON object with this exact structure:
{{
  "title": "Roadmap Title",
  "description": "Roadmap description",
  "category": "selected-category-from-allowed-values",
  "difficulty": "selected-difficulty-from-allowed-values",
  "nodes": [
    {{
      "title": "Node title",
      "description": "Node description",
      "nodeType": "allowed-node-type",
      "estimatedDuration": {{ "value": 2, "unit": "weeks" }},
      "importance": "low/medium/high/critical",
      "difficulty": "allowed-difficulty",
      "resources": [
        {{
          "title": "Resource title",
          "url": "https://example.com",
          "resourceType": "allowed-resource-type",
          "description": "Resource description"
        }}
      ],
      "children": []
    }}
  ]
}}
""".strip()


def regeneration_prompt(title: str, description: str | None) -> str:
    """Prompt synthesized from an existing roadmap when regenerating it."""
    description = (description or '').strip()
    if description:
        return f"{title}. {description}"
    return title
