"""CRM backend port — abstract interface for the REST collaborator.

Core modules depend on this protocol, never on a specific HTTP client.
"""

from __future__ import annotations

from typing import Any, Protocol

from crmsync.data.models import Contact, Task, TaskSource


class CrmApiError(Exception):
    """Raised when any CRM REST call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(CrmApiError):
    """Raised on 401/403: the session token is no longer valid."""


class CrmBackend(Protocol):
    """Abstract CRM REST interface used by core modules."""

    def set_token(self, token: str) -> None: ...

    async def list_contacts(self) -> list[Contact]: ...

    async def list_tasks(self) -> list[Task]: ...

    async def get_task(self, task_id: str) -> Task: ...

    async def create_task(self, fields: dict[str, Any]) -> list[Task]: ...

    async def update_task(
        self, task_id: str, fields: dict[str, Any], source: TaskSource | None = None
    ) -> Task: ...

    async def delete_task(self, task_id: str, source: TaskSource | None = None) -> None: ...

    async def sync_google_calendar(self) -> dict: ...

    async def sync_google_tasks(self) -> dict: ...
