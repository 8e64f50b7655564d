"""Core data models for test sheets"""

from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from config import settings
from .enums import (
    CellType, ChartType, ErrorCode, FontStyle, FontWeight, TextAlign, ValidationType
)


CellValue = Union[bool, int, float, str, None]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """Base for models exchanged with the editor (camelCase on the wire)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys and unset optionals dropped"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ─────────────────────────────────────────────────────────────
# Cells
# ─────────────────────────────────────────────────────────────

class BorderStyle(WireModel):
    top: Optional[str] = None
    right: Optional[str] = None
    bottom: Optional[str] = None
    left: Optional[str] = None


class CellStyle(WireModel):
    """Presentation attributes only; never read by evaluation"""
    font_weight: Optional[FontWeight] = None
    font_style: Optional[FontStyle] = None
    text_align: Optional[TextAlign] = None
    background_color: Optional[str] = None
    color: Optional[str] = None
    font_size: Optional[float] = None
    border: Optional[BorderStyle] = None


class CellValidation(WireModel):
    type: ValidationType
    criteria: Any = None
    error_message: Optional[str] = None


class CellData(WireModel):
    """Wire shape of a single cell"""
    value: CellValue = None
    type: CellType = CellType.TEXT
    formula: Optional[str] = None
    style: Optional[CellStyle] = None
    validation: Optional[CellValidation] = None
    error: Optional[ErrorCode] = None  # set when a formula failed

    @model_validator(mode="after")
    def _formula_has_text(self) -> "CellData":
        if self.type == CellType.FORMULA and not self.formula:
            raise ValueError("formula cells must carry their formula text")
        return self


class Cell(CellData):
    """A stored grid entry"""
    address: str

    @property
    def is_formula(self) -> bool:
        return self.type == CellType.FORMULA

    @property
    def has_error(self) -> bool:
        return self.error is not None

    def to_data(self) -> CellData:
        return CellData(**self.model_dump(exclude={"address"}))

    @classmethod
    def from_data(cls, address: str, data: CellData) -> "Cell":
        return cls(address=address, **data.model_dump())


class SheetData(WireModel):
    """Persisted grid document: address -> cell plus bounds"""
    cells: dict[str, CellData] = Field(default_factory=dict)
    rows: int = Field(default_factory=lambda: settings.SHEET_DEFAULT_ROWS, ge=1)
    cols: int = Field(default_factory=lambda: settings.SHEET_DEFAULT_COLS, ge=1)


# ─────────────────────────────────────────────────────────────
# Sheet documents
# ─────────────────────────────────────────────────────────────

class ChartPosition(WireModel):
    x: float = 0
    y: float = 0
    width: float = 400
    height: float = 300


class ChartConfig(WireModel):
    id: str
    type: ChartType
    title: str = ""
    data_range: str
    position: ChartPosition = Field(default_factory=ChartPosition)


class NamedRange(WireModel):
    name: str
    range: str
    description: Optional[str] = None


class SheetMetadata(WireModel):
    version: int = Field(default=1, ge=1)
    last_modified_by: Optional[int] = None
    collaborators: list[int] = Field(default_factory=list)
    chart_configs: list[ChartConfig] = Field(default_factory=list)
    named_ranges: list[NamedRange] = Field(default_factory=list)


class TestSheet(WireModel):
    """A stored test sheet"""
    __test__ = False  # keep pytest from collecting this class

    id: int
    name: str
    project_id: int
    data: SheetData = Field(default_factory=SheetData)
    metadata: SheetMetadata = Field(default_factory=SheetMetadata)
    created_by_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class TestSheetCreate(WireModel):
    """Payload for creating a sheet"""
    __test__ = False

    name: str = Field(min_length=1)
    project_id: int
    data: SheetData = Field(default_factory=SheetData)
    metadata: SheetMetadata = Field(default_factory=SheetMetadata)
    created_by_id: Optional[int] = None


class TestSheetUpdate(WireModel):
    """Partial update; unset fields keep their stored value"""
    __test__ = False

    name: Optional[str] = Field(default=None, min_length=1)
    project_id: Optional[int] = None
    data: Optional[SheetData] = None
    metadata: Optional[SheetMetadata] = None


class CellUpdate(WireModel):
    """Payload for writing raw input into a cell"""
    raw: str


class DuplicateRequest(WireModel):
    name: Optional[str] = None
