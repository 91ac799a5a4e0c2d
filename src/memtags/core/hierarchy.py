"""TagHierarchyService - validated edits to the tag hierarchy.

This service handles:
- Adding and removing parent edges
- Creating a linked child/parent tag pair by name
- Read-through relation queries (ancestors, descendants, parents, children)
- Reloading the tag graph after every successful edit

Edits are validated locally first; a rejected edit never reaches the server.
The graph is never patched in place: one edge can change ancestor and
descendant sets far from the edited tags, so every successful edit is
followed by a full reload.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional, TypeVar

from .client import TagHierarchyClient
from .errors import InvalidTagNameError, SelfParentError, TagHierarchyError, ValidationError
from .graph import TagGraph
from .interfaces import ITagHierarchyApi
from .models import FlatTag, LinkedPairResult, Tag, TreeNode
from .projection import ProjectionState, filter_by_search_term, flatten

logger = logging.getLogger(__name__)

T = TypeVar("T")

INVALID_NAME_CHARS = ("<", ">")


class MutationPhase(str, Enum):
    """Lifecycle of a single mutating call."""

    IDLE = "idle"
    VALIDATING = "validating"
    REJECTED = "rejected"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def validate_tag_name(name: Optional[str], label: str = "Tag name") -> str:
    """Check a tag name and return it stripped.

    Raises:
        InvalidTagNameError: The name is blank or contains < or >.
    """
    if name is None or not name.strip():
        raise InvalidTagNameError(f"{label} is required", {"name": name})
    if any(ch in name for ch in INVALID_NAME_CHARS):
        raise InvalidTagNameError("Tag names cannot contain < or > characters", {"name": name})
    return name.strip()


class TagHierarchyService:
    """Mutation protocol and state owner for one tag hierarchy view.

    Holds the TagGraph and the ProjectionState derived from it. Overlapping
    edits are not coalesced; callers should wait for `in_flight` to drop to
    zero before starting the next user-initiated edit.
    """

    def __init__(
        self,
        api: Optional[ITagHierarchyApi] = None,
        graph: Optional[TagGraph] = None,
        state: Optional[ProjectionState] = None,
    ):
        """Initialize the service.

        Args:
            api: REST client. Creates a TagHierarchyClient if not provided.
            graph: Graph cache. Creates one over `api` if not provided.
            state: Expand/select state. Created empty if not provided.
        """
        self.api = api or TagHierarchyClient()
        self.graph = graph or TagGraph(self.api)
        self.state = state or ProjectionState()
        self.graph.add_reload_listener(self.state.reset)

        self.phase = MutationPhase.IDLE
        self.in_flight = 0
        self.error: Optional[str] = None

    def clear_error(self) -> None:
        self.error = None

    # ========================================
    # Graph and projection
    # ========================================

    async def refresh(self) -> List[TreeNode]:
        """Reload the tag graph from the server."""
        try:
            return await self.graph.load()
        except TagHierarchyError as e:
            self.error = e.message
            raise

    def flat_tree(self) -> List[FlatTag]:
        """Display rows for the current graph and expand-set."""
        return flatten(self.graph.roots, self.state.expanded_ids, self.graph.max_depth)

    def filtered_tree(self, term: Optional[str]) -> List[TreeNode]:
        return filter_by_search_term(self.graph.roots, term, self.graph.max_depth)

    def expand_all(self) -> None:
        self.state.expand_all(self.graph.roots, self.graph.max_depth)

    def collapse_all(self) -> None:
        self.state.collapse_all()

    # ========================================
    # Mutations
    # ========================================

    async def _mutate(
        self,
        description: str,
        validate: Callable[[], None],
        send: Callable[[], Awaitable[T]],
        reload: bool,
    ) -> T:
        """Run one mutating call through validate -> send -> reload."""
        self.error = None
        self.phase = MutationPhase.VALIDATING
        try:
            validate()
        except ValidationError as e:
            self.phase = MutationPhase.REJECTED
            self.error = e.message
            logger.info(f"{description} rejected: {e.message}")
            raise

        self.phase = MutationPhase.IN_FLIGHT
        self.in_flight += 1
        try:
            result = await send()
        except TagHierarchyError as e:
            self.phase = MutationPhase.FAILED
            self.error = e.message
            logger.warning(f"{description} failed: {e.message}")
            raise
        finally:
            self.in_flight -= 1

        self.phase = MutationPhase.SUCCEEDED
        logger.info(f"{description} succeeded")

        if reload:
            await self.refresh()
        return result

    async def add_parent(self, child_id: int, parent_id: int, reload: bool = True) -> None:
        """Make `parent_id` a parent of `child_id`.

        Args:
            child_id: Tag receiving the parent.
            parent_id: Tag becoming the parent.
            reload: Reload the graph after success.

        Raises:
            SelfParentError: child_id == parent_id (no request is sent).
            NetworkError, ServerError: The server could not be reached or
                rejected the edge (cycle, duplicate, unknown id).
        """

        def validate() -> None:
            if child_id == parent_id:
                raise SelfParentError(details={"tag_id": child_id})

        await self._mutate(
            f"Add parent {parent_id} to tag {child_id}",
            validate,
            lambda: self.api.add_parent(child_id, parent_id),
            reload,
        )

    async def remove_parent(self, child_id: int, parent_id: int, reload: bool = True) -> None:
        """Remove the edge child_id -> parent_id.

        A missing edge is reported by the server as a ServerError.
        """
        await self._mutate(
            f"Remove parent {parent_id} from tag {child_id}",
            lambda: None,
            lambda: self.api.remove_parent(child_id, parent_id),
            reload,
        )

    async def create_linked_pair(self, child_name: str, parent_name: str) -> LinkedPairResult:
        """Create or reuse two tags by name and link them child -> parent.

        Returns:
            LinkedPairResult with the resolved tags and a summary message.

        Raises:
            InvalidTagNameError: A name is blank or contains < or >.
            SelfParentError: The names are equal ignoring case.
            NetworkError, ServerError: The request failed.
        """
        names: List[str] = []

        def validate() -> None:
            child = validate_tag_name(child_name, "Child tag name")
            parent = validate_tag_name(parent_name, "Parent tag name")
            if child.lower() == parent.lower():
                raise SelfParentError(details={"name": child})
            names[:] = [child, parent]

        async def send() -> LinkedPairResult:
            return await self.api.create_with_parent(names[0], names[1])

        result = await self._mutate(
            f"Create tag pair '{child_name}' -> '{parent_name}'",
            validate,
            send,
            reload=True,
        )
        if not result.message:
            result.message = f'Successfully created "{names[0]}" with parent "{names[1]}"'
        return result

    # ========================================
    # Relation queries
    # ========================================

    async def _query(self, call: Callable[[], Awaitable[List[Tag]]]) -> List[Tag]:
        self.error = None
        try:
            return await call()
        except TagHierarchyError as e:
            self.error = e.message
            raise

    async def get_ancestors(self, tag_id: int) -> List[Tag]:
        return await self._query(lambda: self.api.get_ancestors(tag_id))

    async def get_descendants(self, tag_id: int) -> List[Tag]:
        return await self._query(lambda: self.api.get_descendants(tag_id))

    async def get_parents(self, tag_id: int) -> List[Tag]:
        return await self._query(lambda: self.api.get_parents(tag_id))

    async def get_children(self, tag_id: int) -> List[Tag]:
        return await self._query(lambda: self.api.get_children(tag_id))
