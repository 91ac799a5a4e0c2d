"""Tag hierarchy HTTP client for the memory server API.

This module wraps the tag hierarchy endpoints of the memory server:

- GET    /tags/tree                     nested forest of tags
- GET    /tags/{id}/ancestors           all ancestors (flat)
- GET    /tags/{id}/descendants         all descendants (flat)
- GET    /tags/{id}/parents             immediate parents
- GET    /tags/{id}/children            immediate children
- POST   /tags/{id}/parent              add a parent edge
- DELETE /tags/{id}/parent/{parent_id}  remove a parent edge
- POST   /tags/create-with-parent       resolve-or-create a linked pair

Every non-success response or transport failure is converted into a
NetworkError or ServerError carrying a human-readable message.

Configuration:
- MEMTAGS_API_URL: Memory server origin (default: http://localhost:8787)
- MEMTAGS_API_KEY: Bearer token for the memory server
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from .errors import MalformedResponseError, NetworkError, ServerError
from .interfaces import ITagHierarchyApi
from .models import LinkedPairResult, Tag, TreeNode

logger = logging.getLogger(__name__)


class TagHierarchyClient(ITagHierarchyApi):
    """HTTP client for the tag hierarchy endpoints.

    Example usage:
        client = TagHierarchyClient()
        tree = await client.get_tree()
        await client.add_parent(child_id=2, parent_id=1)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API root including the prefix (e.g. http://host/api).
                If None, loaded from settings.
            token: API key sent as a bearer token. If None, loaded from settings.
            timeout: Request timeout in seconds. If None, loaded from settings.
            transport: Optional httpx transport, used to route requests
                somewhere other than the network.
        """
        from ..config import settings

        self.base_url = (base_url or settings.base_url).rstrip("/")
        self.token = token if token is not None else settings.api_key
        self.timeout = timeout if timeout is not None else settings.timeout
        self._transport = transport

        logger.debug(f"TagHierarchyClient initialized with base_url={self.base_url}")

    def _headers(self) -> Dict[str, str]:
        """Get request headers with auth token."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path below the API root (e.g. "/tags/tree").
            action: Short description used in fallback error messages.
            json: Optional JSON body.

        Returns:
            Decoded JSON body.

        Raises:
            NetworkError: No response was received.
            ServerError: Non-2xx status or a `success: false` envelope.
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, json=json, headers=self._headers())
        except httpx.TimeoutException as e:
            logger.warning(f"Timed out trying to {action}: {e}")
            raise NetworkError(f"Request timed out while trying to {action}", {"url": url}) from e
        except httpx.RequestError as e:
            logger.warning(f"Network failure trying to {action}: {e}")
            raise NetworkError(str(e) or NetworkError.DEFAULT_MESSAGE, {"url": url}) from e

        body = self._parse_body(response)
        error = body.get("error") if isinstance(body, dict) else None

        if response.is_error:
            message = error or f"Failed to {action}: {response.reason_phrase}"
            logger.warning(f"{method} {url} -> {response.status_code}: {message}")
            raise ServerError(message, status_code=response.status_code, details={"url": url})

        if isinstance(body, dict) and body.get("success") is False:
            message = error or "Unknown error occurred"
            logger.warning(f"{method} {url} reported failure: {message}")
            raise ServerError(message, status_code=response.status_code, details={"url": url})

        return body

    @staticmethod
    def _extract(body: Any, key: str, action: str) -> Any:
        """Find `key` in a bare payload or inside an envelope's `data`."""
        if isinstance(body, dict):
            if key in body:
                return body[key]
            data = body.get("data")
            if isinstance(data, dict) and key in data:
                return data[key]
            if isinstance(data, list):
                return data
        raise MalformedResponseError(f"Unexpected response while trying to {action}")

    @staticmethod
    def _to_tags(items: Any, action: str) -> List[Tag]:
        try:
            return [Tag.model_validate(item) for item in items]
        except (PydanticValidationError, TypeError) as e:
            raise MalformedResponseError(f"Unexpected response while trying to {action}") from e

    # ========================================
    # Read operations
    # ========================================

    async def get_tree(self) -> List[TreeNode]:
        """Fetch the tag forest."""
        action = "fetch tag tree"
        body = await self._request("GET", "/tags/tree", action)
        items = self._extract(body, "tree", action)
        try:
            return [TreeNode.model_validate(item) for item in items]
        except (PydanticValidationError, TypeError) as e:
            logger.error(f"Tag tree payload did not validate: {e}")
            raise MalformedResponseError(f"Unexpected response while trying to {action}") from e

    async def get_ancestors(self, tag_id: int) -> List[Tag]:
        action = "fetch ancestors"
        body = await self._request("GET", f"/tags/{tag_id}/ancestors", action)
        return self._to_tags(self._extract(body, "ancestors", action), action)

    async def get_descendants(self, tag_id: int) -> List[Tag]:
        action = "fetch descendants"
        body = await self._request("GET", f"/tags/{tag_id}/descendants", action)
        return self._to_tags(self._extract(body, "descendants", action), action)

    async def get_parents(self, tag_id: int) -> List[Tag]:
        action = "fetch parents"
        body = await self._request("GET", f"/tags/{tag_id}/parents", action)
        return self._to_tags(self._extract(body, "parents", action), action)

    async def get_children(self, tag_id: int) -> List[Tag]:
        action = "fetch children"
        body = await self._request("GET", f"/tags/{tag_id}/children", action)
        return self._to_tags(self._extract(body, "children", action), action)

    # ========================================
    # Edge mutations
    # ========================================

    async def add_parent(self, child_id: int, parent_id: int) -> None:
        await self._request(
            "POST",
            f"/tags/{child_id}/parent",
            "add parent",
            json={"parent_tag_id": parent_id},
        )

    async def remove_parent(self, child_id: int, parent_id: int) -> None:
        await self._request(
            "DELETE",
            f"/tags/{child_id}/parent/{parent_id}",
            "remove parent",
        )

    async def create_with_parent(self, child_name: str, parent_name: str) -> LinkedPairResult:
        """Resolve or create both tags and link them.

        Returns:
            LinkedPairResult with the resolved tags. `message` is the
            server's message, or empty when the server sent none.
        """
        action = "create tags with parent"
        body = await self._request(
            "POST",
            "/tags/create-with-parent",
            action,
            json={"child_tag_name": child_name, "parent_tag_name": parent_name},
        )
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise MalformedResponseError(f"Unexpected response while trying to {action}")

        try:
            return LinkedPairResult(
                child_tag=Tag.model_validate(data.get("child_tag")),
                parent_tag=Tag.model_validate(data.get("parent_tag")),
                created_child=data.get("created_child"),
                created_parent=data.get("created_parent"),
                relationship_created=data.get("relationship_created"),
                message=body.get("message") or "",
            )
        except PydanticValidationError as e:
            raise MalformedResponseError(f"Unexpected response while trying to {action}") from e
