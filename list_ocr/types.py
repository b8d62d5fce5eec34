from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


ROW_FIELDS = ("item", "quantity", "unit", "note")


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


@dataclass(frozen=True)
class TableRow:
    """One line of the shopping/inventory list."""

    item: str = ""
    quantity: str = ""
    unit: str = ""
    note: str = ""

    @classmethod
    def from_cells(cls, cells: list) -> "TableRow":
        # Short rows are padded, extra cells dropped.
        padded = [_cell(c) for c in list(cells)[: len(ROW_FIELDS)]]
        padded += [""] * (len(ROW_FIELDS) - len(padded))
        return cls(*padded)

    def as_list(self) -> list[str]:
        return [self.item, self.quantity, self.unit, self.note]


@dataclass(frozen=True)
class RecognitionRequest:
    """A validated /api/ocr request, read-only to the core."""

    image: str  # data URL
    concurrency: int
    reasoning: bool
    received_at: float = 0.0


@dataclass(frozen=True)
class RecognitionAttempt:
    index: int
    raw_text: str
    parsed: Optional[list[list]] = None

    @property
    def valid(self) -> bool:
        return self.parsed is not None


@dataclass(frozen=True)
class ResultMetadata:
    concurrency_used: int
    valid_attempts: int
    processing_time_seconds: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "concurrencyUsed": self.concurrency_used,
            "validAttempts": self.valid_attempts,
            "processingTimeSeconds": self.processing_time_seconds,
        }


@dataclass(frozen=True)
class ProgressUpdate:
    percent: int
    message: str
    type: str = field(default="progress", init=False)
    terminal: bool = field(default=False, init=False)


@dataclass(frozen=True)
class ErrorEvent:
    code: str
    message: str
    type: str = field(default="error", init=False)
    terminal: bool = field(default=True, init=False)


@dataclass(frozen=True)
class ResultEvent:
    rows: tuple[TableRow, ...]
    metadata: ResultMetadata
    type: str = field(default="result", init=False)
    terminal: bool = field(default=True, init=False)
