"""In-memory test sheet storage"""

from typing import Dict, Optional

from pydantic import BaseModel

from core.exceptions import SheetNotFoundError, StaleRevisionError
from core.interfaces import SheetRepository
from core.models import TestSheet, TestSheetCreate, TestSheetUpdate, utcnow
from utils.logging import get_logger

logger = get_logger(__name__)


class InMemorySheetRepository(SheetRepository):
    """Dict-backed repository with sequential ids.

    Sheets are copied on the way in and out so callers never hold a
    reference to stored state.
    """

    def __init__(self):
        self._sheets: Dict[int, TestSheet] = {}
        self._next_id = 1

    def reset(self) -> None:
        """Drop all sheets and restart id sequencing"""
        self._sheets.clear()
        self._next_id = 1

    async def create_sheet(self, payload: TestSheetCreate) -> TestSheet:
        now = utcnow()
        sheet = TestSheet(
            id=self._next_id,
            created_at=now,
            updated_at=now,
            **payload.model_dump(),
        )
        self._next_id += 1
        self._sheets[sheet.id] = sheet
        logger.info("Test sheet created", sheet_id=sheet.id, project_id=sheet.project_id)
        return sheet.model_copy(deep=True)

    async def get_sheet(self, sheet_id: int) -> Optional[TestSheet]:
        sheet = self._sheets.get(sheet_id)
        return sheet.model_copy(deep=True) if sheet else None

    async def list_sheets(self, project_id: Optional[int] = None) -> list[TestSheet]:
        return [
            sheet.model_copy(deep=True)
            for sheet_id, sheet in sorted(self._sheets.items())
            if project_id is None or sheet.project_id == project_id
        ]

    async def update_sheet(self, sheet_id: int, changes: TestSheetUpdate) -> Optional[TestSheet]:
        """Merge set fields onto the stored sheet.

        A metadata version older than the stored one is a stale write and
        raises StaleRevisionError.
        """
        sheet = self._sheets.get(sheet_id)
        if sheet is None:
            return None

        if changes.metadata is not None and changes.metadata.version < sheet.metadata.version:
            raise StaleRevisionError(sheet_id, changes.metadata.version, sheet.metadata.version)

        update = {}
        for field in changes.model_fields_set:
            value = getattr(changes, field)
            if value is None:
                continue
            update[field] = value.model_copy(deep=True) if isinstance(value, BaseModel) else value
        update["updated_at"] = utcnow()
        updated = sheet.model_copy(update=update)
        self._sheets[sheet_id] = updated
        logger.info("Test sheet updated", sheet_id=sheet_id, fields=sorted(update))
        return updated.model_copy(deep=True)

    async def delete_sheet(self, sheet_id: int) -> bool:
        removed = self._sheets.pop(sheet_id, None) is not None
        if removed:
            logger.info("Test sheet deleted", sheet_id=sheet_id)
        return removed

    async def duplicate_sheet(self, sheet_id: int, name: str, user_id: int) -> TestSheet:
        """Copy data, charts and named ranges; version restarts at 1."""
        source = self._sheets.get(sheet_id)
        if source is None:
            raise SheetNotFoundError(sheet_id)

        metadata = source.metadata.model_copy(
            deep=True,
            update={"version": 1, "last_modified_by": user_id, "collaborators": [user_id]},
        )
        payload = TestSheetCreate(
            name=name,
            project_id=source.project_id,
            data=source.data.model_copy(deep=True),
            metadata=metadata,
            created_by_id=user_id,
        )
        duplicate = await self.create_sheet(payload)
        logger.info("Test sheet duplicated", sheet_id=duplicate.id, source_id=sheet_id)
        return duplicate
