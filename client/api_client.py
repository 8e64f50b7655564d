"""HTTP client for the test sheet persistence API"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from config import settings
from core.exceptions import PersistenceError, StaleRevisionError
from core.interfaces import SaveTransport
from core.models import TestSheet, TestSheetUpdate
from utils.logging import get_logger

logger = get_logger(__name__)


class SheetApiClient(SaveTransport):
    """Writes sheets through ``PUT /api/test-sheets/{id}``.

    Pass ``client`` to reuse a configured ``httpx.AsyncClient``; otherwise a
    short-lived client is opened per request.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_id: Optional[int] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url or settings.API_BASE_URL
        self.timeout = timeout or settings.AUTOSAVE_TIMEOUT_SECONDS
        self.headers = {"Content-Type": "application/json"}
        if user_id is not None:
            self.headers["X-User-Id"] = str(user_id)
        self._client = client

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
            yield client

    async def save_sheet(self, sheet_id: int, changes: TestSheetUpdate) -> TestSheet:
        try:
            async with self._session() as client:
                response = await client.put(
                    f"/api/test-sheets/{sheet_id}",
                    json=changes.to_wire(),
                    headers=self.headers,
                )
        except httpx.HTTPError as e:
            raise PersistenceError(f"Failed to save test sheet: {e}", sheet_id=sheet_id) from e

        if response.status_code == 409:
            try:
                body = response.json()
            except ValueError:
                body = None
            if not isinstance(body, dict):
                body = {}
            revision = changes.metadata.version if changes.metadata else 0
            raise StaleRevisionError(sheet_id, revision, body.get("current", revision))
        if response.status_code >= 400:
            logger.warning(
                "Save rejected", sheet_id=sheet_id, status=response.status_code, body=response.text
            )
            raise PersistenceError(
                f"Failed to save test sheet: HTTP {response.status_code}",
                sheet_id=sheet_id,
                status_code=response.status_code,
            )
        try:
            return TestSheet.model_validate(response.json())
        except ValueError as e:
            # non-JSON body or a document that is not a test sheet
            logger.warning(
                "Unreadable save response", sheet_id=sheet_id, status=response.status_code, error=str(e)
            )
            raise PersistenceError(
                f"Failed to save test sheet: unreadable response ({e.__class__.__name__})",
                sheet_id=sheet_id,
                status_code=response.status_code,
            ) from e
