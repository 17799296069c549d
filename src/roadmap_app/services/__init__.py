"""
Services Package
================

Business logic for the roadmap generation engine. Services are constructed
once per app in the factory and reached through ``AppComponents``.
"""

from .generation import GenerationOutcome, GenerationPipeline
from .keywords import extract_keywords, fingerprint
from .oracle_client import OpenRouterOracle
from .quality import RegenerationService, VotingService, compute_quality_score, toggle_vote
from .roadmap_search import RoadmapSearchService, SearchResult, calculate_similarity
from .roadmap_service import RoadmapService
from .service_base import (
    ConflictError,
    InFlightTimeoutError,
    NotFoundError,
    OperationError,
    PermissionDeniedError,
    ServiceError,
    StorageError,
    UpstreamError,
    ValidationError,
)
from .single_flight import SingleFlight
from .store import BulkOperation, RoadmapStore
from .tree_assembler import TreeNode, assemble_tree, flatten_tree

__all__ = [
    'GenerationOutcome', 'GenerationPipeline',
    'extract_keywords', 'fingerprint',
    'OpenRouterOracle',
    'RegenerationService', 'VotingService', 'compute_quality_score', 'toggle_vote',
    'RoadmapSearchService', 'SearchResult', 'calculate_similarity',
    'RoadmapService',
    'ConflictError', 'InFlightTimeoutError', 'NotFoundError', 'OperationError',
    'PermissionDeniedError', 'ServiceError', 'StorageError', 'UpstreamError', 'ValidationError',
    'SingleFlight',
    'BulkOperation', 'RoadmapStore',
    'TreeNode', 'assemble_tree', 'flatten_tree',
]
