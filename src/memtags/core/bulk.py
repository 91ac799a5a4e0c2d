"""Bulk parent assignment.

Applies one parent to many child tags. Children are processed one at a time,
in order; a failure for one child is recorded and processing continues.
Nothing is rolled back and nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .errors import SelfParentError, TagHierarchyError, ValidationError
from .hierarchy import TagHierarchyService
from .models import BulkFailure, BulkReport

logger = logging.getLogger(__name__)


async def bulk_add_parent(
    service: TagHierarchyService,
    parent_id: Optional[int],
    child_ids: Iterable[int],
) -> BulkReport:
    """Add `parent_id` as a parent of every tag in `child_ids`.

    A child equal to the parent is rejected locally without a request.
    Duplicate child ids are attempted once. The graph is reloaded once at
    the end if any edge was added. Failures carry the child's name when the
    graph is already loaded.

    Args:
        service: Service used to send each edge.
        parent_id: Parent tag for the whole batch.
        child_ids: Child tags, in processing order.

    Returns:
        BulkReport listing successes and per-child failures.

    Raises:
        ValidationError: No parent selected or no children given.
    """
    if parent_id is None:
        raise ValidationError("Select a parent tag before running a bulk operation")

    children: List[int] = list(dict.fromkeys(child_ids))
    if not children:
        raise ValidationError("Select at least one child tag", {"parent_id": parent_id})

    report = BulkReport(parent_id=parent_id)
    logger.info(f"Bulk add parent {parent_id} to {len(children)} tags")

    def name_of(child_id: int) -> Optional[str]:
        node = service.graph.find_node(child_id) if service.graph.loaded else None
        return node.name if node else None

    for child_id in children:
        if child_id == parent_id:
            report.failed.append(
                BulkFailure(child_id=child_id, message=SelfParentError().message, name=name_of(child_id))
            )
            continue
        try:
            await service.add_parent(child_id, parent_id, reload=False)
        except TagHierarchyError as e:
            report.failed.append(BulkFailure(child_id=child_id, message=e.message, name=name_of(child_id)))
            continue
        report.succeeded_ids.append(child_id)

    if report.succeeded_ids:
        try:
            await service.refresh()
        except TagHierarchyError as e:
            report.reload_error = e.message

    logger.info(report.summary())
    return report
