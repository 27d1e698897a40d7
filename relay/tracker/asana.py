"""
Asana Adapter

Narrow read/write access to Asana: assigned tasks, projects, completion,
task and subtask creation. Every failure is logged and mapped to an empty or
negative result; nothing here raises on a remote 4xx/5xx.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..common.schemas import (
    NormalizedSignal,
    SignalMetadata,
    SignalStatus,
    SourceProvider,
    SourceType,
)

logger = logging.getLogger("relay.tracker.asana")

ASANA_API_URL = "https://app.asana.com/api/1.0"
DEFAULT_PROJECT = "My Tasks"
UNTITLED_TASK = "Untitled Task"

TASK_FIELDS = "name,permalink_url,due_on,projects.name,assignee_status,created_at,completed"

# assignee_status -> status; "today" and "overdue" mean work is under way
ASSIGNEE_STATUS_MAP = {
    "today": SignalStatus.IN_PROGRESS,
    "overdue": SignalStatus.IN_PROGRESS,
    "upcoming": SignalStatus.TODO,
    "later": SignalStatus.TODO,
    "inbox": SignalStatus.TODO,
}


class AsanaAdapter:
    """
    Async client for the Asana REST API.

    The workspace id is resolved once per adapter and cached on the instance.

    Usage:
        async with AsanaAdapter(token="...") as asana:
            projects = await asana.list_categories()
            task_id = await asana.create_item("Send deck", "Sales", "from Slack")
    """

    def __init__(
        self,
        token: str,
        *,
        timeout: float = 30.0,
        base_url: str = ASANA_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._workspace_id: Optional[str] = None
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "AsanaAdapter":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[Any]:
        """Perform one call and return its ``data`` member, or None on failure."""
        try:
            response = await self._http.request(
                method,
                path,
                params=params,
                json={"data": data} if data is not None else None,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Asana %s %s failed: HTTP %d", method, path, e.response.status_code)
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Asana %s %s failed: %s", method, path, e)
            return None

        if not isinstance(body, dict):
            logger.error("Asana %s %s returned an unexpected body", method, path)
            return None
        return body.get("data")

    async def workspace_id(self) -> Optional[str]:
        if self._workspace_id:
            return self._workspace_id
        me = await self._request("GET", "/users/me")
        workspaces = me.get("workspaces") if isinstance(me, dict) else None
        if not workspaces or not isinstance(workspaces, list):
            logger.warning("No Asana workspace found")
            return None
        self._workspace_id = workspaces[0].get("gid")
        return self._workspace_id

    async def list_assigned_items(self) -> List[NormalizedSignal]:
        """Incomplete tasks assigned to the account, as tracker-item signals."""
        workspace = await self.workspace_id()
        if not workspace:
            return []

        tasks = await self._request(
            "GET",
            "/tasks",
            params={
                "assignee": "me",
                "workspace": workspace,
                "completed_since": "now",
                "opt_fields": TASK_FIELDS,
            },
        )
        if not isinstance(tasks, list):
            return []

        signals = []
        for task in tasks:
            signal = self.task_to_signal(task)
            if signal:
                signals.append(signal)
        return signals

    @staticmethod
    def task_to_signal(task: Dict[str, Any]) -> Optional[NormalizedSignal]:
        if not isinstance(task, dict) or not task.get("gid") or not task.get("created_at"):
            return None

        projects = task.get("projects") or []
        project = projects[0].get("name") if projects and isinstance(projects[0], dict) else None
        status = ASSIGNEE_STATUS_MAP.get(task.get("assignee_status"), SignalStatus.TODO)
        if task.get("completed"):
            status = SignalStatus.DONE

        return NormalizedSignal(
            id=f"asana-{task['gid']}",
            external_id=task["gid"],
            source_provider=SourceProvider.TRACKER_ITEM,
            title=task.get("name") or UNTITLED_TASK,
            url=task.get("permalink_url") or "",
            status=status,
            created_at=task["created_at"],
            metadata=SignalMetadata(
                author="Asana",
                source_label=project or DEFAULT_PROJECT,
                source_type=SourceType.PROJECT,
                project=project,
                due=task.get("due_on") or None,
            ),
        )

    async def _projects(self) -> Optional[List[Dict[str, Any]]]:
        workspace = await self.workspace_id()
        if not workspace:
            return None
        projects = await self._request(
            "GET",
            "/projects",
            params={"workspace": workspace, "archived": "false", "opt_fields": "name,gid"},
        )
        return projects if isinstance(projects, list) else None

    async def list_categories(self) -> List[str]:
        """Project names of the workspace, or ["My Tasks"] when unavailable or empty."""
        projects = await self._projects()
        if projects is None:
            return [DEFAULT_PROJECT]
        names = [p["name"] for p in projects if isinstance(p, dict) and isinstance(p.get("name"), str)]
        return names or [DEFAULT_PROJECT]

    async def complete_item(self, item_id: str) -> bool:
        if not item_id:
            logger.error("complete_item: no task id given")
            return False
        return await self._request("PUT", f"/tasks/{item_id}", data={"completed": True}) is not None

    async def create_item(self, title: str, category: str, notes: str = "") -> Optional[str]:
        """
        Create a task assigned to the account.

        The task is added to the project named ``category`` when one exists,
        otherwise it lands in My Tasks only.

        Returns:
            The new task gid, or None on failure
        """
        if not title or not isinstance(title, str):
            logger.error("create_item: invalid title")
            return None

        workspace = await self.workspace_id()
        if not workspace:
            return None

        body: Dict[str, Any] = {
            "workspace": workspace,
            "name": title,
            "notes": notes or "",
            "assignee": "me",
        }
        projects = await self._projects() or []
        match = next((p for p in projects if isinstance(p, dict) and p.get("name") == category), None)
        if match and match.get("gid"):
            body["projects"] = [match["gid"]]

        created = await self._request("POST", "/tasks", data=body)
        return created.get("gid") if isinstance(created, dict) else None

    async def create_sub_item(self, parent_id: str, title: str, notes: str = "") -> bool:
        if not parent_id or not title:
            logger.error("create_sub_item: missing parent id or title")
            return False
        created = await self._request(
            "POST",
            f"/tasks/{parent_id}/subtasks",
            data={"name": title, "assignee": "me", "notes": notes or ""},
        )
        return created is not None
