"""Abstract base classes for test sheet components"""

from abc import ABC, abstractmethod
from typing import Optional

from .models import TestSheet, TestSheetCreate, TestSheetUpdate


class SheetRepository(ABC):
    """Abstract storage for test sheet documents"""

    @abstractmethod
    async def create_sheet(self, payload: TestSheetCreate) -> TestSheet:
        """Store a new sheet and assign its id"""
        pass

    @abstractmethod
    async def get_sheet(self, sheet_id: int) -> Optional[TestSheet]:
        """Fetch a sheet, or None if missing"""
        pass

    @abstractmethod
    async def list_sheets(self, project_id: Optional[int] = None) -> list[TestSheet]:
        """List sheets, optionally restricted to one project"""
        pass

    @abstractmethod
    async def update_sheet(self, sheet_id: int, changes: TestSheetUpdate) -> Optional[TestSheet]:
        """Merge changes onto a stored sheet"""
        pass

    @abstractmethod
    async def delete_sheet(self, sheet_id: int) -> bool:
        """Remove a sheet; False if it did not exist"""
        pass

    @abstractmethod
    async def duplicate_sheet(self, sheet_id: int, name: str, user_id: int) -> TestSheet:
        """Copy a sheet under a new name for the given user"""
        pass


class SaveTransport(ABC):
    """Outbound write of a sheet document to the persistence API"""

    @abstractmethod
    async def save_sheet(self, sheet_id: int, changes: TestSheetUpdate) -> TestSheet:
        """Send changes; raise PersistenceError on failure"""
        pass
