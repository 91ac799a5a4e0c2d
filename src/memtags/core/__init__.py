"""Tag hierarchy core: graph model, projection, mutation protocol, bulk engine."""

from .bulk import bulk_add_parent
from .client import TagHierarchyClient
from .errors import (
    InvalidTagNameError,
    MalformedResponseError,
    NetworkError,
    SelfParentError,
    ServerError,
    TagHierarchyError,
    TreeDepthError,
    ValidationError,
)
from .graph import TagGraph
from .hierarchy import MutationPhase, TagHierarchyService, validate_tag_name
from .models import BulkFailure, BulkReport, FlatTag, LinkedPairResult, Tag, TagPath, TreeNode
from .projection import ProjectionState, collect_node_ids, filter_by_search_term, flatten

__all__ = [
    "BulkFailure",
    "BulkReport",
    "FlatTag",
    "InvalidTagNameError",
    "LinkedPairResult",
    "MalformedResponseError",
    "MutationPhase",
    "NetworkError",
    "ProjectionState",
    "SelfParentError",
    "ServerError",
    "Tag",
    "TagGraph",
    "TagHierarchyClient",
    "TagHierarchyError",
    "TagHierarchyService",
    "TagPath",
    "TreeDepthError",
    "TreeNode",
    "ValidationError",
    "bulk_add_parent",
    "collect_node_ids",
    "filter_by_search_term",
    "flatten",
    "validate_tag_name",
]
