"""Debounced auto-save with revision ordering.

Every scheduled save gets the next revision number, sent as
``metadata.version``. The server refuses versions older than the one it
stores, and the saver ignores responses older than the last one it applied,
so a slow early save can never overwrite a later one.
"""

import asyncio
from typing import Callable, Optional, Set, Tuple

from config import settings
from core.exceptions import PersistenceError, StaleRevisionError
from core.interfaces import SaveTransport
from core.models import SheetData, SheetMetadata, TestSheet, TestSheetUpdate
from utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class SheetAutoSaver:
    """Persists the latest grid state after a quiet period.

    A failed save is reported through ``on_error`` and kept in
    ``last_error``; the in-memory grid is left untouched and the next
    ``schedule`` sends the full state again.
    """

    def __init__(
        self,
        sheet_id: int,
        transport: SaveTransport,
        metadata: Optional[SheetMetadata] = None,
        debounce_seconds: Optional[float] = None,
        user_id: Optional[int] = None,
        on_error: Optional[Callable[[PersistenceError], None]] = None,
        on_saved: Optional[Callable[[TestSheet], None]] = None,
    ):
        self.sheet_id = sheet_id
        self.transport = transport
        self.metadata = (metadata or SheetMetadata()).model_copy(deep=True)
        self.debounce_seconds = (
            settings.AUTOSAVE_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self.user_id = user_id
        self.on_error = on_error
        self.on_saved = on_saved

        self.revision = self.metadata.version
        self.last_applied_revision = self.metadata.version
        self.last_error: Optional[PersistenceError] = None

        self._pending: Optional[Tuple[int, SheetData]] = None
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def schedule(self, data: SheetData) -> int:
        """Queue ``data`` for saving and restart the debounce timer.

        Must be called from a running event loop. Returns the revision
        assigned to this state.
        """
        self.revision += 1
        self._pending = (self.revision, data.model_copy(deep=True))
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._debounce())
        return self.revision

    async def _debounce(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        # The save runs as its own task so a later schedule() cannot cancel it mid-request.
        task = asyncio.get_running_loop().create_task(self.flush())
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def flush(self) -> Optional[TestSheet]:
        """Send pending state now; returns the saved sheet if it was applied."""
        if self._pending is None:
            return None
        revision, data = self._pending
        self._pending = None
        return await self._save(revision, data)

    async def _save(self, revision: int, data: SheetData) -> Optional[TestSheet]:
        metadata = self.metadata.model_copy(update={"version": revision})
        if self.user_id is not None:
            metadata = metadata.model_copy(update={"last_modified_by": self.user_id})
        changes = TestSheetUpdate(data=data, metadata=metadata)

        with LogContext(sheet_id=self.sheet_id):
            try:
                saved = await self.transport.save_sheet(self.sheet_id, changes)
            except StaleRevisionError as e:
                logger.info("Save superseded by newer revision", revision=revision, current=e.current)
                return None
            except PersistenceError as e:
                self.last_error = e
                logger.warning("Auto-save failed", revision=revision, error=e.message)
                if self.on_error is not None:
                    self.on_error(e)
                return None

            if revision < self.last_applied_revision:
                logger.info(
                    "Discarding out-of-order save response",
                    revision=revision,
                    applied=self.last_applied_revision,
                )
                return None

            self.last_applied_revision = revision
            self.last_error = None
            logger.debug("Auto-save applied", revision=revision)
            if self.on_saved is not None:
                self.on_saved(saved)
            return saved

    async def drain(self) -> None:
        """Wait for the running timer and any in-flight saves."""
        if self._timer is not None:
            await asyncio.gather(self._timer, return_exceptions=True)
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def close(self, flush: bool = False) -> None:
        """Stop the timer; optionally send pending state first."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
            await asyncio.gather(self._timer, return_exceptions=True)
        if flush:
            await self.flush()
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
