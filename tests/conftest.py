# Shared pytest fixtures
from __future__ import annotations

import io

import pandas as pd
import pytest

from pnlsight.errors import StructureInferenceUnavailable
from pnlsight.models import Cell


class FakeInferrer:
    """Deterministic stand-in for the AI structure-inference service."""

    def __init__(self, hint=None, error: Exception | None = None):
        self.hint = hint
        self.error = error
        self.samples: list[list[list]] = []

    def infer_structure(self, sample):
        self.samples.append(sample)
        if self.error is not None:
            raise self.error
        return self.hint


@pytest.fixture()
def fake_inferrer():
    def _make(hint=None, error: Exception | None = None) -> FakeInferrer:
        return FakeInferrer(hint=hint, error=error)
    return _make


@pytest.fixture()
def unavailable_inferrer() -> FakeInferrer:
    return FakeInferrer(error=StructureInferenceUnavailable("Cannot connect to Ollama"))


@pytest.fixture()
def make_xlsx():
    def _make(sheets: dict[str, list[list[object]]]) -> bytes:
        buf = io.BytesIO()
        with pd.ExcelWriter(buf, engine="openpyxl") as writer:
            for sheet, rows in sheets.items():
                pd.DataFrame(rows).to_excel(writer, sheet_name=sheet, header=False, index=False)
        return buf.getvalue()
    return _make


@pytest.fixture()
def make_xls():
    """Legacy BIFF (.xls) workbook bytes, written with xlwt."""
    xlwt = pytest.importorskip("xlwt")

    def _make(rows: list[list[object]], sheet: str = "Sheet1") -> bytes:
        book = xlwt.Workbook()
        ws = book.add_sheet(sheet)
        for r, row in enumerate(rows):
            for c, value in enumerate(row):
                if value is not None:
                    ws.write(r, c, value)
        buf = io.BytesIO()
        book.save(buf)
        return buf.getvalue()
    return _make


@pytest.fixture()
def ledger_rows() -> list[list[object]]:
    """An irregular ledger: title line, header on the second row, columns D-H used."""
    return [
        ["ACME Ltd Profit and Loss", "", "", "", "", "", "", ""],
        ["", "", "", "Type", "Category", "Code", "Subcategory", "Amount"],
        ["", "", "", "Income", "Sales", "4000", "Product sales", "$10,000"],
        ["", "", "", "Expense", "Cost of Goods Sold", "5000", "Stock", "4,000"],
        ["", "", "", "Expense", "Raw materials", "5100", "Timber", "1000"],
        ["", "", "", "Expense", "Rent", "6000", "Office", "2000"],
        ["", "", "", "Expense", "Utilities", "6100", "Power", ""],
        ["", "", "", "Income", "", "4100", "", "500"],
    ]


@pytest.fixture()
def ledger_csv(ledger_rows) -> bytes:
    lines = []
    for row in ledger_rows:
        lines.append(",".join(f'"{v}"' if "," in str(v) else str(v) for v in row))
    return ("\n".join(lines) + "\n").encode("utf-8")


def as_array_rows(rows: list[list[object]]) -> list[dict]:
    return [{i: Cell.from_value(v) for i, v in enumerate(row)} for row in rows]


@pytest.fixture()
def array_rows():
    return as_array_rows
