"""Pydantic models for tags, tree nodes, and derived projection rows."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Tag(BaseModel):
    """A tag as returned by the flat relation endpoints."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str


class TagPath(BaseModel):
    """One step of a root-to-node path."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str


class TreeNode(BaseModel):
    """A tag with its immediate parents and recursively populated children.

    The same tag id may appear at several positions of a forest when the tag
    has more than one parent. Node objects are therefore not unique per id;
    only the id is used as an identity key.
    """

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    children: List[TreeNode] = Field(default_factory=list)
    parents: List[TreeNode] = Field(default_factory=list)

    @property
    def has_children(self) -> bool:
        return len(self.children) > 0

    def as_tag(self) -> Tag:
        return Tag(id=self.id, name=self.name)


class FlatTag(BaseModel):
    """A read-only row of the flattened tree."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    depth: int
    path: List[TagPath]
    has_children: bool
    is_expanded: bool = False


class ApiEnvelope(BaseModel):
    """Standard response wrapper used by the memory server."""

    model_config = ConfigDict(extra="allow")

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    message: Optional[str] = None
    warning: Optional[str] = None


class LinkedPairResult(BaseModel):
    """Outcome of creating (or resolving) a child/parent tag pair."""

    child_tag: Tag
    parent_tag: Tag
    created_child: Optional[bool] = None
    created_parent: Optional[bool] = None
    relationship_created: Optional[bool] = None
    message: str = ""


class BulkFailure(BaseModel):
    """A child tag the bulk engine could not attach."""

    child_id: int
    message: str
    name: Optional[str] = None

    @property
    def label(self) -> str:
        """Tag name when known, otherwise `Tag <id>`."""
        return self.name or f"Tag {self.child_id}"


class BulkReport(BaseModel):
    """Aggregate result of applying one parent to many children."""

    parent_id: int
    succeeded_ids: List[int] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)
    reload_error: Optional[str] = None

    @computed_field
    @property
    def succeeded(self) -> int:
        return len(self.succeeded_ids)

    @property
    def total(self) -> int:
        return len(self.succeeded_ids) + len(self.failed)

    def summary(self) -> str:
        """One line when everything succeeded; otherwise counts plus one line per failure."""
        if not self.failed:
            return f"Successfully added parent to {self.succeeded} tags"
        lines = [
            f"Bulk operation completed: {self.succeeded} successful, {len(self.failed)} failed.",
            "Errors:",
        ]
        lines.extend(f"{failure.label}: {failure.message}" for failure in self.failed)
        return "\n".join(lines)


TreeNode.model_rebuild()


__all__ = [
    "Tag",
    "TagPath",
    "TreeNode",
    "FlatTag",
    "ApiEnvelope",
    "LinkedPairResult",
    "BulkFailure",
    "BulkReport",
]
