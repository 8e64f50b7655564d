"""FastAPI application for test sheets"""

import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from config import settings
from core.enums import ExportFormat
from core.exceptions import (
    EvalError,
    InvalidAddressError,
    SheetError,
    SheetNotFoundError,
    StaleRevisionError,
)
from core.interfaces import SheetRepository
from core.models import (
    CellUpdate,
    DuplicateRequest,
    SheetData,
    TestSheet,
    TestSheetCreate,
    TestSheetUpdate,
)
from db.memory import InMemorySheetRepository
from engine.export import export_csv, export_xlsx
from engine.grid import Grid
from engine.references import CellRange
from utils.logging import LogContext, configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    logger.info("Test Sheets API starting", log_level=settings.LOG_LEVEL)
    try:
        yield
    finally:
        logger.info("Test Sheets API stopped")


app = FastAPI(
    title="Test Sheets API",
    description="Spreadsheet-style test sheets with formula evaluation",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

repository: SheetRepository = InMemorySheetRepository()


def get_repository() -> SheetRepository:
    return repository


def get_user_id(x_user_id: Optional[int] = Header(default=None)) -> int:
    """Acting user; authentication happens upstream of this service"""
    return x_user_id or settings.DEFAULT_USER_ID


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex[:12]
    with LogContext(request_id=request_id):
        response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    return response


@app.exception_handler(SheetError)
async def sheet_error_handler(request: Request, exc: SheetError) -> JSONResponse:
    body: Dict[str, Any] = {"detail": exc.message}
    if isinstance(exc, StaleRevisionError):
        body.update(revision=exc.revision, current=exc.current)
    if isinstance(exc, EvalError):
        body["code"] = exc.code.value
    return JSONResponse(status_code=exc.http_status, content=body)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid test sheet data", "errors": errors},
    )


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────

async def _load_sheet(repo: SheetRepository, sheet_id: int) -> TestSheet:
    sheet = await repo.get_sheet(sheet_id)
    if sheet is None:
        raise SheetNotFoundError(sheet_id)
    return sheet


def _grid_from(data: SheetData) -> Grid:
    """Load a document, rejecting cells outside its bounds as bad input."""
    try:
        return Grid.from_data(data)
    except (EvalError, InvalidAddressError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid test sheet data: {e}") from e


async def _store_grid(repo: SheetRepository, sheet: TestSheet, grid: Grid, user_id: int) -> TestSheet:
    metadata = sheet.metadata.model_copy(
        update={"version": sheet.metadata.version + 1, "last_modified_by": user_id}
    )
    updated = await repo.update_sheet(
        sheet.id, TestSheetUpdate(data=grid.to_data(), metadata=metadata)
    )
    if updated is None:
        raise SheetNotFoundError(sheet.id)
    return updated


def _changed(before: Dict[str, Any], after: Dict[str, Any]) -> List[str]:
    addresses = set(before) | set(after)
    return sorted(a for a in addresses if a not in before or a not in after or before[a] != after[a])


# ─────────────────────────────────────────────────────────────
# Sheets
# ─────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.get("/api/test-sheets")
async def list_test_sheets(
    project_id: Optional[int] = Query(default=None, alias="projectId"),
    repo: SheetRepository = Depends(get_repository),
):
    sheets = await repo.list_sheets(project_id)
    return [sheet.to_wire() for sheet in sheets]


@app.get("/api/test-sheets/{sheet_id}")
async def get_test_sheet(sheet_id: int, repo: SheetRepository = Depends(get_repository)):
    sheet = await _load_sheet(repo, sheet_id)
    return sheet.to_wire()


@app.post("/api/test-sheets", status_code=201)
async def create_test_sheet(
    payload: TestSheetCreate,
    repo: SheetRepository = Depends(get_repository),
    user_id: int = Depends(get_user_id),
):
    _grid_from(payload.data)
    payload = payload.model_copy(update={"created_by_id": user_id})
    sheet = await repo.create_sheet(payload)
    return sheet.to_wire()


@app.put("/api/test-sheets/{sheet_id}")
async def update_test_sheet(
    sheet_id: int,
    changes: TestSheetUpdate,
    repo: SheetRepository = Depends(get_repository),
):
    await _load_sheet(repo, sheet_id)
    if changes.data is not None:
        _grid_from(changes.data)
    updated = await repo.update_sheet(sheet_id, changes)
    if updated is None:
        raise SheetNotFoundError(sheet_id)
    return updated.to_wire()


@app.delete("/api/test-sheets/{sheet_id}")
async def delete_test_sheet(sheet_id: int, repo: SheetRepository = Depends(get_repository)):
    await _load_sheet(repo, sheet_id)
    success = await repo.delete_sheet(sheet_id)
    return {"success": success}


@app.post("/api/test-sheets/{sheet_id}/duplicate", status_code=201)
async def duplicate_test_sheet(
    sheet_id: int,
    request: DuplicateRequest,
    repo: SheetRepository = Depends(get_repository),
    user_id: int = Depends(get_user_id),
):
    if not request.name:
        raise HTTPException(status_code=400, detail="Sheet name is required")
    duplicate = await repo.duplicate_sheet(sheet_id, request.name, user_id)
    return duplicate.to_wire()


@app.post("/api/test-sheets/{sheet_id}/recalculate")
async def recalculate_test_sheet(
    sheet_id: int,
    repo: SheetRepository = Depends(get_repository),
    user_id: int = Depends(get_user_id),
):
    sheet = await _load_sheet(repo, sheet_id)
    grid = _grid_from(sheet.data)
    with LogContext(sheet_id=sheet_id):
        grid.recalculate_all()
        logger.info("Sheet recalculated", cells=len(grid))
    updated = await _store_grid(repo, sheet, grid, user_id)
    return updated.to_wire()


@app.get("/api/test-sheets/{sheet_id}/export")
async def export_test_sheet(
    sheet_id: int,
    format: ExportFormat = Query(default=ExportFormat.CSV),
    repo: SheetRepository = Depends(get_repository),
):
    sheet = await _load_sheet(repo, sheet_id)
    grid = _grid_from(sheet.data)
    filename = f"{sheet.name or 'sheet'}.{format.value}"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    if format == ExportFormat.XLSX:
        return Response(
            content=export_xlsx(grid, title=sheet.name),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers=headers,
        )
    return Response(content=export_csv(grid), media_type="text/csv", headers=headers)


# ─────────────────────────────────────────────────────────────
# Cells
# ─────────────────────────────────────────────────────────────

@app.get("/api/test-sheets/{sheet_id}/cells/{address}")
async def get_cell(sheet_id: int, address: str, repo: SheetRepository = Depends(get_repository)):
    sheet = await _load_sheet(repo, sheet_id)
    cell = _grid_from(sheet.data).get_cell(address)
    if cell is None:
        raise HTTPException(status_code=404, detail="Cell not found")
    return cell.to_wire()


@app.put("/api/test-sheets/{sheet_id}/cells/{address}")
async def set_cell(
    sheet_id: int,
    address: str,
    update: CellUpdate,
    repo: SheetRepository = Depends(get_repository),
    user_id: int = Depends(get_user_id),
):
    sheet = await _load_sheet(repo, sheet_id)
    grid = _grid_from(sheet.data)
    before = grid.resolved_values()
    with LogContext(sheet_id=sheet_id):
        cell = grid.set_cell(address, update.raw)
        logger.info("Cell updated", address=cell.address, type=cell.type.value)
    updated = await _store_grid(repo, sheet, grid, user_id)
    return {
        "cell": cell.to_wire(),
        "changed": _changed(before, grid.resolved_values()),
        "version": updated.metadata.version,
    }


@app.delete("/api/test-sheets/{sheet_id}/cells/{address}")
async def clear_cell(
    sheet_id: int,
    address: str,
    repo: SheetRepository = Depends(get_repository),
    user_id: int = Depends(get_user_id),
):
    sheet = await _load_sheet(repo, sheet_id)
    grid = _grid_from(sheet.data)
    before = grid.resolved_values()
    success = grid.clear_cell(address)
    version = sheet.metadata.version
    if success:
        version = (await _store_grid(repo, sheet, grid, user_id)).metadata.version
    return {
        "success": success,
        "changed": _changed(before, grid.resolved_values()),
        "version": version,
    }


@app.get("/api/test-sheets/{sheet_id}/range/{cell_range}")
async def get_range(sheet_id: int, cell_range: str, repo: SheetRepository = Depends(get_repository)):
    sheet = await _load_sheet(repo, sheet_id)
    parsed = CellRange.parse(cell_range)
    cells = _grid_from(sheet.data).get_range(parsed.top_left, parsed.bottom_right)
    return {
        "range": str(parsed),
        "cells": [cell.to_wire() if cell is not None else None for cell in cells],
    }
