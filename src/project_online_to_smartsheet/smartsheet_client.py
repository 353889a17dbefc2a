"""Smartsheet REST API 2.0 adapter implementing TargetSystem.

The API wraps results differently depending on the endpoint: creates answer
{"message": "SUCCESS", "result": ...}, listings answer {"data": [...]} and
single-object reads answer with the bare object. This adapter unwraps all
three and hands out ResourceHandle / RowRecord objects only.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Final

import requests

from .exceptions import MigrationError, RemoteError
from .models import ResourceHandle, ResourceKind, RowRecord
from .retry import TRANSIENT_TRANSPORT_ERRORS

if TYPE_CHECKING:
    from .models import ColumnSpec, RowSpec, SheetSpec

logger: logging.Logger = logging.getLogger(__name__)

API_BASE_URL: Final[str] = "https://api.smartsheet.com/2.0"
_REQUEST_TIMEOUT: Final[int] = 30


def unwrap(payload: Any) -> Any:
    """Strip the {"result": ...} or {"data": ...} envelope, if any."""
    if isinstance(payload, dict):
        if "result" in payload:
            return payload["result"]
        if "data" in payload:
            return payload["data"]
    return payload


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _column_payload(spec: ColumnSpec) -> dict[str, Any]:
    payload: dict[str, Any] = {"title": spec.title, "type": spec.type}
    if spec.primary:
        payload["primary"] = True
    if spec.options:
        payload["options"] = list(spec.options)
    return payload


class SmartsheetTarget:
    """TargetSystem backed by the Smartsheet REST API."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = API_BASE_URL,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url: str = base_url.rstrip("/")
        self._session: requests.Session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            RemoteError: For any non-2xx response
            MigrationError: For a request that cannot succeed, such as an invalid URL or body
            requests.RequestException: For transient transport failures, left to the retry executor
        """
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=_REQUEST_TIMEOUT, **kwargs)
            if not response.ok:
                raise self._error_from(response, f"{method} {path}")
            if not response.content:
                return None
            return response.json()
        except TRANSIENT_TRANSPORT_ERRORS:
            raise
        except requests.RequestException as e:
            msg = f"{method} {path} failed: {e}"
            raise MigrationError(msg) from e

    @staticmethod
    def _error_from(response: requests.Response, context: str) -> RemoteError:
        message = response.reason or "Request failed"
        error_code: int | None = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = str(body.get("message") or message)
            code = body.get("errorCode")
            error_code = code if isinstance(code, int) else None
        return RemoteError(response.status_code, f"{context}: {message}", error_code)

    # Workspaces

    @staticmethod
    def _workspace_handle(payload: dict[str, Any]) -> ResourceHandle:
        return ResourceHandle(
            id=int(payload["id"]),
            name=payload["name"],
            kind=ResourceKind.WORKSPACE,
            permalink=payload.get("permalink", ""),
        )

    def find_workspace(self, name: str) -> ResourceHandle | None:
        workspaces = _as_list(unwrap(self._request("GET", "/workspaces", params={"includeAll": "true"})))
        for workspace in workspaces:
            if workspace.get("name") == name:
                return self._workspace_handle(workspace)
        return None

    def get_workspace(self, workspace_id: int) -> ResourceHandle:
        return self._workspace_handle(unwrap(self._request("GET", f"/workspaces/{workspace_id}")))

    def create_workspace(self, name: str) -> ResourceHandle:
        return self._workspace_handle(unwrap(self._request("POST", "/workspaces", json={"name": name})))

    # Sheets

    @staticmethod
    def _sheet_handle(workspace_id: int, payload: dict[str, Any]) -> ResourceHandle:
        return ResourceHandle(
            id=int(payload["id"]),
            name=payload["name"],
            kind=ResourceKind.SHEET,
            scope=workspace_id,
            permalink=payload.get("permalink", ""),
        )

    def find_sheet(self, workspace_id: int, name: str) -> ResourceHandle | None:
        workspace = unwrap(self._request("GET", f"/workspaces/{workspace_id}"))
        for sheet in _as_list(workspace.get("sheets")):
            if sheet.get("name") == name:
                return self._sheet_handle(workspace_id, sheet)
        return None

    def create_sheet(self, workspace_id: int, spec: SheetSpec) -> ResourceHandle:
        body = {"name": spec.name, "columns": [_column_payload(column) for column in spec.columns]}
        payload = unwrap(self._request("POST", f"/workspaces/{workspace_id}/sheets", json=body))
        return self._sheet_handle(workspace_id, payload)

    # Columns

    @staticmethod
    def _column_handle(sheet_id: int, payload: dict[str, Any]) -> ResourceHandle:
        return ResourceHandle(
            id=int(payload["id"]),
            name=payload["title"],
            kind=ResourceKind.COLUMN,
            scope=sheet_id,
            column_type=payload.get("type"),
            options=tuple(payload.get("options") or ()),
            primary=bool(payload.get("primary", False)),
        )

    def list_columns(self, sheet_id: int) -> list[ResourceHandle]:
        columns = _as_list(unwrap(self._request("GET", f"/sheets/{sheet_id}/columns", params={"includeAll": "true"})))
        return [self._column_handle(sheet_id, column) for column in columns]

    def find_column(self, sheet_id: int, title: str) -> ResourceHandle | None:
        for column in self.list_columns(sheet_id):
            if column.name == title:
                return column
        return None

    def create_columns(self, sheet_id: int, specs: Sequence[ColumnSpec], index: int) -> list[ResourceHandle]:
        # Every column of one request shares the insertion index; they land in request order
        body = [_column_payload(spec) | {"index": index} for spec in specs]
        for column in body:
            _ = column.pop("primary", None)
        created = _as_list(unwrap(self._request("POST", f"/sheets/{sheet_id}/columns", json=body)))
        return [self._column_handle(sheet_id, column) for column in created]

    # Rows

    def write_rows(self, sheet_id: int, rows: Sequence[RowSpec]) -> list[int]:
        body: list[dict[str, Any]] = []
        for row in rows:
            payload: dict[str, Any] = {
                "toBottom": True,
                "cells": [{"columnId": column_id, "value": value} for column_id, value in row.cells.items()],
            }
            if row.parent_id is not None:
                payload["parentId"] = row.parent_id
            body.append(payload)
        created = _as_list(unwrap(self._request("POST", f"/sheets/{sheet_id}/rows", json=body)))
        return [int(row["id"]) for row in created]

    def list_rows(self, sheet_id: int) -> list[RowRecord]:
        sheet = unwrap(self._request("GET", f"/sheets/{sheet_id}"))
        records: list[RowRecord] = []
        for row in _as_list(sheet.get("rows")):
            cells = {int(cell["columnId"]): cell.get("value") for cell in row.get("cells", []) if "columnId" in cell}
            parent_id = row.get("parentId")
            records.append(RowRecord(int(row["id"]), cells, int(parent_id) if parent_id is not None else None))
        logger.debug(f"Read {len(records)} rows from sheet {sheet_id}")
        return records
