"""Read-only Project Online (ProjectData OData) adapter implementing SourceSystem.

The reporting service answers either in JSON light ({"value": [...],
"@odata.nextLink": ...}) or in verbose JSON ({"d": {"results": [...],
"__next": ...}}) depending on the tenant and the Accept header. Both are
handled, and so are the short (Id, Name) and long (ProjectId, ProjectName)
property names.
"""

from __future__ import annotations

import logging
from typing import Any, Final
from urllib.parse import urljoin

import requests

from .exceptions import MigrationError, RemoteError
from .models import Assignment, Project, ProjectData, Resource, Task
from .retry import TRANSIENT_TRANSPORT_ERRORS

logger: logging.Logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT: Final[int] = 30
_RESOURCE_TYPES: Final[dict[int, str]] = {1: "Work", 2: "Material", 3: "Cost"}


def _field(record: dict[str, Any], *names: str, default: Any = None) -> Any:
    """First non-null value among the given property names."""
    for name in names:
        value = record.get(name)
        if value is not None:
            return value
    return default


def _entity(payload: dict[str, Any]) -> dict[str, Any]:
    if "d" in payload and isinstance(payload["d"], dict):
        return payload["d"]
    return payload


def _resource_type(value: Any) -> str:
    if isinstance(value, int):
        return _RESOURCE_TYPES.get(value, "Work")
    if value in ("Work", "Material", "Cost"):
        return value
    return "Work"


def _guid_filter(project_id: str) -> str:
    return f"ProjectId eq guid'{project_id}'"


def project_from_odata(record: dict[str, Any]) -> Project:
    return Project(
        id=str(_field(record, "Id", "ProjectId")),
        name=_field(record, "Name", "ProjectName", default=""),
        description=_field(record, "Description", "ProjectDescription", default=""),
        owner=_field(record, "Owner", "ProjectOwnerName", default=""),
        owner_email=_field(record, "OwnerEmail", "ProjectOwnerEmail", default=""),
        start=_field(record, "StartDate", "ProjectStartDate"),
        finish=_field(record, "FinishDate", "ProjectFinishDate"),
        status=_field(record, "ProjectStatus"),
        priority=_field(record, "Priority", "ProjectPriority"),
        percent_complete=_field(record, "PercentComplete", "ProjectPercentCompleted"),
    )


def task_from_odata(record: dict[str, Any]) -> Task:
    parent_id = _field(record, "ParentTaskId")
    return Task(
        id=str(_field(record, "Id", "TaskId")),
        name=_field(record, "TaskName", "Name", default=""),
        outline_level=int(_field(record, "OutlineLevel", "TaskOutlineLevel", default=1)),
        index=int(_field(record, "TaskIndex", default=0)),
        parent_id=str(parent_id) if parent_id else None,
        start=_field(record, "Start", "TaskStartDate"),
        finish=_field(record, "Finish", "TaskFinishDate"),
        duration=_field(record, "Duration", "TaskDuration"),
        percent_complete=_field(record, "PercentComplete", "TaskPercentCompleted"),
        priority=_field(record, "Priority", "TaskPriority"),
        is_milestone=bool(_field(record, "IsMilestone", "TaskIsMilestone", default=False)),
        notes=_field(record, "TaskNotes", default=""),
        constraint_type=_field(record, "ConstraintType", "TaskConstraintType"),
    )


def resource_from_odata(record: dict[str, Any]) -> Resource:
    return Resource(
        id=str(_field(record, "Id", "ResourceId")),
        name=_field(record, "Name", "ResourceName", default=""),
        email=_field(record, "Email", "ResourceEmailAddress", default=""),
        resource_type=_resource_type(_field(record, "ResourceType")),  # pyright: ignore[reportArgumentType]
        department=_field(record, "Department", "ResourceDepartments", default=""),
        is_active=bool(_field(record, "IsActive", "ResourceIsActive", default=True)),
        is_generic=bool(_field(record, "IsGeneric", "ResourceIsGeneric", default=False)),
    )


def assignment_from_odata(record: dict[str, Any]) -> Assignment:
    return Assignment(
        id=str(_field(record, "Id", "AssignmentId")),
        task_id=str(_field(record, "TaskId")),
        resource_id=str(_field(record, "ResourceId")),
    )


class ProjectOnlineSource:
    """SourceSystem reading the ProjectData reporting service of a PWA site."""

    def __init__(self, site_url: str, token: str, *, session: requests.Session | None = None) -> None:
        self._base_url: str = f"{site_url.rstrip('/')}/_api/ProjectData"
        self._session: requests.Session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {token}", "Accept": "application/json"})

    def _get(self, url: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        if not url.startswith("http"):
            url = f"{self._base_url}{url}"
        try:
            response = self._session.get(url, params=params, timeout=_REQUEST_TIMEOUT)
            payload: Any = response.json() if response.ok else None
        except TRANSIENT_TRANSPORT_ERRORS:
            raise
        except requests.RequestException as e:
            msg = f"GET {url} failed: {e}"
            raise MigrationError(msg) from e
        if not response.ok:
            message = response.reason or "Request failed"
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                error = body.get("error") or body.get("odata.error") or {}
                detail = error.get("message") if isinstance(error, dict) else None
                if isinstance(detail, dict):
                    detail = detail.get("value")
                message = detail or message
            msg = f"GET {url}: {message}"
            raise RemoteError(response.status_code, msg)
        return payload

    def _get_all(self, path: str, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        """Fetch a collection, following next links until the last page."""
        items: list[dict[str, Any]] = []
        next_url: str | None = path
        while next_url:
            payload = self._get(next_url, params)
            # Next links already carry the query
            params = None
            if "d" in payload:
                page = payload["d"]
                items.extend(page.get("results", []) if isinstance(page, dict) else page)
                next_url = page.get("__next") if isinstance(page, dict) else None
            else:
                items.extend(payload.get("value", []))
                next_url = payload.get("@odata.nextLink") or payload.get("odata.nextLink")
            if next_url and not next_url.startswith("http"):
                next_url = urljoin(f"{self._base_url}/", next_url)
        logger.debug(f"Fetched {len(items)} items from {path}")
        return items

    def get_project(self, project_id: str) -> Project:
        return project_from_odata(_entity(self._get(f"/Projects(guid'{project_id}')")))

    def get_tasks(self, project_id: str) -> list[Task]:
        records = self._get_all("/Tasks", {"$filter": _guid_filter(project_id)})
        return sorted((task_from_odata(record) for record in records), key=lambda task: task.index)

    def get_resources(self) -> list[Resource]:
        return [resource_from_odata(record) for record in self._get_all("/Resources")]

    def get_assignments(self, project_id: str) -> list[Assignment]:
        records = self._get_all("/Assignments", {"$filter": _guid_filter(project_id)})
        return [assignment_from_odata(record) for record in records]

    def extract_project_data(self, project_id: str) -> ProjectData:
        project = self.get_project(project_id)
        tasks = self.get_tasks(project_id)
        assignments = self.get_assignments(project_id)
        assigned = {assignment.resource_id for assignment in assignments}
        resources = [resource for resource in self.get_resources() if resource.id in assigned]
        logger.info(
            f"Extracted project '{project.name}': {len(tasks)} tasks, "
            f"{len(resources)} resources, {len(assignments)} assignments"
        )
        return ProjectData(project, tasks, resources, assignments)
