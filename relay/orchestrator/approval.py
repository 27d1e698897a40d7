"""
Approval Flow

Writes an approved ProposedTask to the tracker (one task plus one subtask per
subtask title) and archives the originating signal. Archiving is idempotent,
so retrying an approval after a partial subtask failure never duplicates the
exclude-list entry.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..common.schemas import ProposedTask
from ..tracker import AsanaAdapter
from .exclude_list import ARCHIVED, ExcludeList

logger = logging.getLogger("relay.orchestrator.approval")


@dataclass
class ApprovalResult:
    """Outcome of one approval"""
    task_id: Optional[str]
    subtasks_created: int = 0
    subtasks_failed: List[str] = field(default_factory=list)
    archived: bool = False  # newly archived by this call

    @property
    def ok(self) -> bool:
        return self.task_id is not None and not self.subtasks_failed


def build_notes(task: ProposedTask) -> str:
    """Task description: justification, citations, and source links."""
    parts = []
    if task.justification:
        parts.append(task.justification)
    if task.citations:
        parts.append("Citations:\n" + "\n".join(f"- {c}" for c in task.citations))
    if task.source_links:
        parts.append(
            "Sources:\n" + "\n".join(f"- {link.text}: {link.url}" for link in task.source_links)
        )
    return "\n\n".join(parts)


async def approve_task(
    tracker: AsanaAdapter,
    exclude_list: ExcludeList,
    signal_id: str,
    task: ProposedTask,
) -> ApprovalResult:
    """
    Create the task and its subtasks, then archive the signal.

    The signal is archived only when the parent task was created.
    """
    task_id = await tracker.create_item(task.title, task.project, build_notes(task))
    if not task_id:
        logger.error("Could not create task %r for signal %s", task.title, signal_id)
        return ApprovalResult(task_id=None)

    result = ApprovalResult(task_id=task_id)
    for subtask in task.subtasks:
        if await tracker.create_sub_item(task_id, subtask):
            result.subtasks_created += 1
        else:
            result.subtasks_failed.append(subtask)

    if result.subtasks_failed:
        logger.warning(
            "Task %s created with %d failed subtask(s)", task_id, len(result.subtasks_failed)
        )

    result.archived = exclude_list.add(ARCHIVED, signal_id)
    return result
