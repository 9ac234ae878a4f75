"""
ClickUp connector – fetches every task of one list via the REST API v2.

Read-only: the dashboard never writes back. Pages are requested strictly in
order, one at a time, and the whole list is re-fetched on every refresh.

ClickUp API docs: https://clickup.com/api/clickupreference/operation/GetTasks/
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from config import DashboardConfig
from connectors.base import (
    BaseConnector,
    CancellationToken,
    TransportError,
    UpstreamError,
)
from connectors.custom_fields import CustomFieldIds
from connectors.models import TaskRecord
from connectors.task_normalizer import normalize_tasks

logger = logging.getLogger(__name__)

# Upper bound on pages per cycle in case upstream never signals the end.
DEFAULT_MAX_PAGES: int = 500


class ClickUpConnector(BaseConnector):
    """Connector for a single ClickUp list."""

    source_system: str = "clickup"

    def __init__(
        self,
        config: DashboardConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> None:
        super().__init__(config)
        self._transport = transport
        self._max_pages = max_pages
        self._field_ids = CustomFieldIds(
            tags=config.tags_field_id,
            project=config.project_field_id,
            deadline=config.deadline_field_id,
        )

    # ── REST helpers ─────────────────────────────────────────────────────

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": self.config.api_token or "",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        # No request timeout: a stuck request is superseded by the next cycle.
        return httpx.AsyncClient(
            headers=self._get_headers(),
            timeout=None,
            transport=self._transport,
        )

    async def _get(
        self,
        client: httpx.AsyncClient,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute a GET request against the ClickUp REST API."""
        url: str = f"{self.config.api_base}{path}"

        try:
            resp: httpx.Response = await client.get(url, params=params)
        except httpx.TransportError as exc:
            logger.warning("ClickUp request to %s failed: %s", path, exc)
            raise TransportError(f"Unable to reach ClickUp: {exc}") from exc

        if not resp.is_success:
            body: str = resp.text
            logger.error("ClickUp API error %d on GET %s: %s", resp.status_code, path, body[:500])
            raise UpstreamError(resp.status_code, body)

        try:
            result: Any = resp.json()
        except ValueError as exc:
            raise UpstreamError(resp.status_code, f"invalid JSON body: {resp.text[:500]}") from exc

        if not isinstance(result, dict):
            raise UpstreamError(resp.status_code, "unexpected response shape")

        return result

    # ── Fetch ────────────────────────────────────────────────────────────

    async def fetch_all(self, token: CancellationToken) -> list[dict[str, Any]]:
        """
        Page through the list's tasks (page-number based).

        ClickUp returns:
          { tasks: [...], last_page: bool }

        Stops on an empty page, a short page, or ``last_page``.
        """
        page_size: int = self.config.page_size
        path: str = f"/list/{self.config.list_id}/task"
        all_tasks: list[dict[str, Any]] = []

        async with self._client() as client:
            for page in range(self._max_pages):
                self.ensure_fetch_active(token, f"before_page:{page}")
                params: dict[str, Any] = {
                    "include_closed": "true",
                    "subtasks": "true",
                    "order_by": "updated",
                    "page": page,
                    "page_size": page_size,
                }
                logger.debug("Requesting ClickUp page %d of list %s", page, self.config.list_id)
                result: dict[str, Any] = await self._get(client, path, params)
                self.ensure_fetch_active(token, f"after_page:{page}")

                tasks: Any = result.get("tasks")
                if not isinstance(tasks, list) or not tasks:
                    break
                all_tasks.extend(tasks)

                if len(tasks) != page_size or result.get("last_page") is True:
                    break
            else:
                logger.warning(
                    "Stopped paging ClickUp list %s after %d pages",
                    self.config.list_id,
                    self._max_pages,
                )

        return all_tasks

    async def fetch_tasks(self, token: CancellationToken) -> tuple[TaskRecord, ...]:
        """Fetch all pages and normalize every record."""
        raw_tasks: list[dict[str, Any]] = await self.fetch_all(token)
        tasks: tuple[TaskRecord, ...] = normalize_tasks(raw_tasks, self._field_ids)
        logger.info(
            "Fetched %d ClickUp tasks (%d closed) for list %s",
            len(tasks),
            sum(1 for task in tasks if task.is_closed),
            self.config.list_id,
        )
        return tasks
