from abc import ABC, abstractmethod
from typing import List

from .models import LinkedPairResult, Tag, TreeNode


# Abstract Interfaces
class ITagHierarchyApi(ABC):
    """REST operations the tag hierarchy core depends on."""

    @abstractmethod
    async def get_tree(self) -> List[TreeNode]: ...

    @abstractmethod
    async def get_ancestors(self, tag_id: int) -> List[Tag]: ...

    @abstractmethod
    async def get_descendants(self, tag_id: int) -> List[Tag]: ...

    @abstractmethod
    async def get_parents(self, tag_id: int) -> List[Tag]: ...

    @abstractmethod
    async def get_children(self, tag_id: int) -> List[Tag]: ...

    @abstractmethod
    async def add_parent(self, child_id: int, parent_id: int) -> None: ...

    @abstractmethod
    async def remove_parent(self, child_id: int, parent_id: int) -> None: ...

    @abstractmethod
    async def create_with_parent(self, child_name: str, parent_name: str) -> LinkedPairResult: ...
