"""
Data structures shared by the decoder, resolver, normalizer and KPI engine.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

import numpy as np
import pandas as pd

UNKNOWN_PERIOD = "Unknown Period"


# ── Decoder boundary ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Cell:
    """
    A single untyped spreadsheet cell, tagged as 'number', 'text' or 'empty'.
    Only the normalizer turns a cell into a definite number.
    """
    kind: str                # 'number', 'text', 'empty'
    value: Any = None

    @classmethod
    def from_value(cls, value: Any) -> "Cell":
        if value is None or value is pd.NaT:
            return EMPTY_CELL
        if isinstance(value, bool):
            return cls("text", str(value))
        if isinstance(value, (int, float, np.integer, np.floating)):
            if isinstance(value, (float, np.floating)) and math.isnan(value):
                return EMPTY_CELL
            return cls("number", value.item() if isinstance(value, np.generic) else value)
        if isinstance(value, (datetime, date)):
            if isinstance(value, datetime) and (value.hour, value.minute, value.second) != (0, 0, 0):
                return cls("text", value.isoformat())
            return cls("text", value.strftime("%Y-%m-%d"))
        text = str(value)
        if not text.strip():
            return EMPTY_CELL
        return cls("text", text)

    @property
    def is_empty(self) -> bool:
        return self.kind == "empty"

    def as_text(self) -> str:
        if self.kind == "empty":
            return ""
        if self.kind == "number" and isinstance(self.value, float) and self.value.is_integer():
            return str(int(self.value))
        return str(self.value)


# Shared by every empty cell; padded grids hold references, not copies
EMPTY_CELL = Cell("empty")

ColumnKey = str | int
RawRow = dict  # ColumnKey -> Cell, in column order


# ── Canonical output ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PeriodRecord:
    """Normalized financial snapshot for one reporting period."""
    period: str
    revenue: float
    cogs: float
    operating_expenses: float
    expense_breakdown: dict[str, float] | None = None

    @property
    def gross_profit(self) -> float:
        return self.revenue - self.cogs

    @property
    def operating_income(self) -> float:
        return self.gross_profit - self.operating_expenses

    @property
    def net_income(self) -> float:
        # No interest/tax lines are extracted, so net income is operating income
        return self.operating_income

    def to_dict(self) -> dict:
        """External (camelCase) shape handed to the narrative generator."""
        out = {
            "period": self.period,
            "revenue": self.revenue,
            "cogs": self.cogs,
            "operatingExpenses": self.operating_expenses,
        }
        if self.expense_breakdown:
            out["expenseBreakdown"] = dict(self.expense_breakdown)
        return out

    def to_storage_row(self) -> dict:
        """Decimal-stringified fields as the persistence layer stores them."""
        return {
            "period": self.period,
            "revenue": _decimal_str(self.revenue),
            "cogs": _decimal_str(self.cogs),
            "grossProfit": _decimal_str(self.gross_profit),
            "operatingExpenses": _decimal_str(self.operating_expenses),
            "operatingIncome": _decimal_str(self.operating_income),
            "netIncome": _decimal_str(self.net_income),
            "expenseBreakdown": dict(self.expense_breakdown) if self.expense_breakdown else None,
        }


def _decimal_str(value: float) -> str:
    return f"{value:.2f}"


@dataclass(frozen=True)
class LedgerItem:
    """One classified line of an irregular (row-as-array) ledger."""
    category: str
    amount: float
    type: str                # 'income' or 'expense'
    expense_code: str = ""
    subcategory: str = ""
    is_total: bool = False
    raw_row: tuple = ()


# ── Pipeline boundary ─────────────────────────────────────────────────────────

@dataclass
class ProcessingResult:
    success: bool
    data: list[PeriodRecord] | None = None
    error: str | None = None
    error_kind: str | None = None
    mode: str | None = None       # 'record' or 'array'
    role_map: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": [r.to_dict() for r in self.data or []]}
        return {"success": False, "error": self.error}
