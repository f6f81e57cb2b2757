"""CRM REST API client — contacts, tasks and third-party sync triggers.

Thin async wrapper over the CRM backend's HTTP API. Entities come back as
validated models; failures are raised as CrmApiError so that explicit user
actions can surface them. The real-time layer never depends on these calls
succeeding.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from crmsync.data.models import Contact, Task, TaskSource
from crmsync.ports.crm_port import AuthenticationError, CrmApiError

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_RETRY_DELAY_SECONDS = 2.0


def _is_retryable(resp: httpx.Response) -> bool:
    """A 503 marked `retryable` means the server is still starting up."""
    try:
        body = resp.json()
    except ValueError:
        return False
    return isinstance(body, dict) and bool(body.get("retryable"))


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {resp.status_code}"


def _source_param(source: TaskSource | None) -> str:
    return (source or TaskSource.GLOBAL).value


class CrmApiClient:
    """Implements CrmBackend over httpx."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        sync_timeout: float | None = None,
    ) -> None:
        if base_url is None or token is None or timeout is None or sync_timeout is None:
            from crmsync.config import settings
            base_url = base_url or settings.CRM_API_URL
            token = token or settings.CRM_API_TOKEN
            timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS
            sync_timeout = sync_timeout or settings.SYNC_TIMEOUT_SECONDS

        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._sync_timeout = sync_timeout

    def set_token(self, token: str) -> None:
        self._token = token

    async def _request(
        self,
        method: str,
        path: str,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> Any:
        attempt = 0
        while True:
            try:
                async with httpx.AsyncClient(
                    base_url=self._base_url,
                    timeout=timeout or self._timeout,
                    headers={"Authorization": f"Bearer {self._token}"},
                ) as client:
                    resp = await client.request(method, path, **kwargs)
            except httpx.HTTPError as exc:
                raise CrmApiError(f"{method} {path} failed: {exc}") from exc

            if resp.status_code == 503 and attempt < _MAX_RETRIES and _is_retryable(resp):
                attempt += 1
                logger.warning(
                    "%s %s: server starting up, retry %d/%d in %.0fs",
                    method, path, attempt, _MAX_RETRIES, _RETRY_DELAY_SECONDS,
                )
                await asyncio.sleep(_RETRY_DELAY_SECONDS)
                continue

            if resp.status_code in (401, 403):
                raise AuthenticationError(_error_message(resp), resp.status_code)
            if resp.status_code >= 400:
                raise CrmApiError(_error_message(resp), resp.status_code)
            if not resp.content:
                return None
            return resp.json()

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    async def list_contacts(self) -> list[Contact]:
        data = await self._request("GET", "/api/contacts")
        return [Contact.model_validate(c) for c in data or []]

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def list_tasks(self) -> list[Task]:
        data = await self._request("GET", "/api/tasks")
        return [Task.model_validate(t) for t in data or []]

    async def get_task(self, task_id: str) -> Task:
        data = await self._request("GET", f"/api/tasks/{task_id}")
        return Task.model_validate(data)

    async def create_task(self, fields: dict[str, Any]) -> list[Task]:
        """Create a task. One creation may fan out into one row per contact.

        Returns every persisted task, whether the server answered with a
        single entity or with `{"tasks": [...]}`.
        """
        data = await self._request("POST", "/api/tasks", json=fields)
        if isinstance(data, dict) and isinstance(data.get("tasks"), list):
            return [Task.model_validate(t) for t in data["tasks"]]
        return [Task.model_validate(data)]

    async def update_task(
        self,
        task_id: str,
        fields: dict[str, Any],
        source: TaskSource | None = None,
    ) -> Task:
        body = {**fields, "source": _source_param(source)}
        data = await self._request("PUT", f"/api/tasks/{task_id}", json=body)
        return Task.model_validate(data)

    async def delete_task(self, task_id: str, source: TaskSource | None = None) -> None:
        await self._request(
            "DELETE", f"/api/tasks/{task_id}", params={"source": _source_param(source)},
        )

    # ------------------------------------------------------------------
    # Third-party sync (slow: minutes, not seconds)
    # ------------------------------------------------------------------

    async def sync_google_calendar(self) -> dict:
        data = await self._request(
            "POST", "/api/google-calendar/sync", timeout=self._sync_timeout,
        )
        return data or {}

    async def sync_google_tasks(self) -> dict:
        data = await self._request(
            "POST", "/api/google-tasks/sync", timeout=self._sync_timeout,
        )
        return data or {}
