"""
Relay Orchestrator

Host-side collaborators of the ingestion core: exclude lists, the approval
flow, and the FastAPI server (relay.orchestrator.server).
"""

from .exclude_list import ExcludeList, ARCHIVED, BLOCKED
from .approval import ApprovalResult, approve_task, build_notes

__all__ = [
    "ExcludeList",
    "ARCHIVED",
    "BLOCKED",
    "ApprovalResult",
    "approve_task",
    "build_notes",
]
