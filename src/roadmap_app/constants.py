"""
Constants and Enums for the Roadmap Service
===========================================

Centralized enums for the closed vocabularies the generator is allowed to
emit, plus the handful of shared defaults used by the generation pipeline.

Notes:
- Enum values are the exact strings stored in the database and sent to the
  oracle, so never rename a value without a migration.
- Tunable thresholds live in `roadmap_app.config.settings`; the defaults below
  are what those settings fall back to.
"""

from enum import Enum


class BaseEnum(str, Enum):
    """Base enum class with string values for consistent behavior."""

    def __str__(self):
        return self.value

    @classmethod
    def values(cls) -> list:
        return [member.value for member in cls]


# ===========================
# CLOSED VOCABULARIES
# ===========================

class RoadmapCategory(BaseEnum):
    FRONTEND = "frontend"
    BACKEND = "backend"
    DEVOPS = "devops"
    MOBILE = "mobile"
    DATA_SCIENCE = "data-science"
    DESIGN = "design"
    PRODUCT_MANAGEMENT = "product-management"
    CYBERSECURITY = "cybersecurity"
    CLOUD = "cloud"
    BLOCKCHAIN = "blockchain"
    OTHER = "other"


class Difficulty(BaseEnum):
    """Ordered difficulty ladder: beginner < intermediate < advanced < expert."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        return list(Difficulty).index(self)


class NodeType(BaseEnum):
    TOPIC = "topic"
    SKILL = "skill"
    MILESTONE = "milestone"
    PROJECT = "project"
    CHECKPOINT = "checkpoint"


class ResourceType(BaseEnum):
    ARTICLE = "article"
    VIDEO = "video"
    COURSE = "course"
    BOOK = "book"
    DOCUMENTATION = "documentation"
    PODCAST = "podcast"
    CHEATSHEET = "cheatsheet"
    TOOL = "tool"
    OTHER = "other"


class Importance(BaseEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DurationUnit(BaseEnum):
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


class UserRole(BaseEnum):
    USER = "user"
    ADMIN = "admin"


# ===========================
# LIFECYCLE ENUMS
# ===========================

class RoadmapState(BaseEnum):
    """Quality lifecycle of a cached roadmap."""
    FRESH = "fresh"
    DEGRADED = "degraded"          # needs_regeneration is set
    REGENERATING = "regenerating"  # regeneration critical section held


class VoteDirection(BaseEnum):
    UP = "up"
    DOWN = "down"


class MatchSource(BaseEnum):
    """How the generation pipeline satisfied a request."""
    EXACT = "exact"
    SIMILAR = "similar"
    GENERATED = "generated"
    SHARED = "shared"  # waited on a concurrent identical request


class ProgressStep(BaseEnum):
    ANALYZING = "analyzing"
    SEARCHING = "searching"
    GENERATING = "generating"
    RESEARCHING = "researching"
    STRUCTURING = "structuring"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    ERROR = "error"


# ===========================
# DEFAULTS
# ===========================

MAX_KEYWORDS = 10
MIN_KEYWORD_LENGTH = 3

DEFAULT_SEARCH_THRESHOLD = 0.7
DEFAULT_REUSE_THRESHOLD = 0.8
TITLE_BOOST = 0.2
DEGRADED_QUALITY_FACTOR = 0.5

DEFAULT_DOWNVOTE_THRESHOLD = 100
REGENERATION_REASON = "Quality threshold reached ({threshold}+ downvotes)"
FORCED_REGENERATION_REASON = "Regeneration forced by {role}"

DEFAULT_MAX_TREE_DEPTH = 12
DEFAULT_MAX_TREE_NODES = 500

PROGRESS_EVENT = "roadmap-progress"
