"""
Record normalizer: resolved rows -> canonical PeriodRecords.

Record mode turns every decoded row into one PeriodRecord using the role map
from direct synonym matching. Array mode classifies ledger lines as income or
expense, splits expenses into COGS and operating expenses by keyword, and
sums them per period.

A malformed row is logged and skipped; only an empty result is fatal.
"""

import math
import numbers
import re
import logging
from typing import Any

from pnlsight.errors import NoValidRows
from pnlsight.models import Cell, LedgerItem, PeriodRecord, RawRow, UNKNOWN_PERIOD
from pnlsight.parser.column_resolver import (
    AMOUNT, CATEGORY, COGS, EXPENSE_CODE, HEADER_ROW, INCOME_EXPENSE_FLAG,
    OPERATING_EXPENSES, PERIOD, PERIOD_LABELS, REVENUE, SUBCATEGORY,
)

logger = logging.getLogger(__name__)

ANALYZED_PERIOD = "Analyzed Period"

COGS_KEYWORDS = ["cost of goods", "cogs", "direct cost", "materials", "inventory"]

_STRIP_CHARS = re.compile(r"[$,()]")
_FLOAT_PREFIX = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")

NO_VALID_ROWS_MESSAGE = (
    "No valid P&L data found. Please ensure your file contains Revenue, COGS, "
    "and Operating Expenses columns."
)


# ── Numeric cleansing ─────────────────────────────────────────────────────────

def parse_number(value: Any) -> float:
    """
    Turn a cell into a finite float.

    Numbers pass through. Text has '$', ',' and parentheses removed and its
    leading decimal is parsed. Parenthesised amounts are NOT negated:
    "(500)" parses as 500. Anything unparsable, empty or non-finite is 0.
    """
    if isinstance(value, Cell):
        value = None if value.is_empty else value.value
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, numbers.Real):
        number = float(value)
        return number if math.isfinite(number) else 0.0
    if isinstance(value, str):
        cleaned = _STRIP_CHARS.sub("", value).strip()
        m = _FLOAT_PREFIX.match(cleaned)
        if not m:
            return 0.0
        number = float(m.group(0))
        return number if math.isfinite(number) else 0.0
    return 0.0


def _is_cogs(category: str) -> bool:
    label = category.lower()
    return any(kw in label for kw in COGS_KEYWORDS)


def _cell(row: RawRow, key) -> Cell:
    cell = row.get(key) if key is not None else None
    return cell if isinstance(cell, Cell) else Cell.from_value(cell)


def _cell_text(row: RawRow, key) -> str:
    return _cell(row, key).as_text().strip()


# ── Record mode ───────────────────────────────────────────────────────────────

def extract_period(row: RawRow, role_map: dict | None = None) -> str:
    """First non-empty period-like cell, else 'Unknown Period'."""
    keys = []
    if role_map and role_map.get(PERIOD) is not None:
        keys.append(role_map[PERIOD])
    keys.extend(k for k in PERIOD_LABELS if k not in keys)

    for key in keys:
        cell = _cell(row, key)
        if cell.is_empty:
            continue
        if cell.kind == "number" and cell.value == 0:
            continue
        return cell.as_text()
    return UNKNOWN_PERIOD


def extract_expense_breakdown(row: RawRow) -> dict[str, float] | None:
    """Columns named like an expense (but not a total) with a positive value."""
    breakdown = {}
    for label, cell in row.items():
        if not isinstance(label, str):
            continue
        lower = label.lower()
        if "expense" in lower and "total" not in lower:
            value = parse_number(cell)
            if value > 0:
                breakdown[label] = value
    return breakdown or None


def _monetary(row: RawRow, role_map: dict, role: str) -> float:
    if role not in role_map:
        return 0.0
    return parse_number(_cell(row, role_map[role]))


def normalize_row(row: RawRow, role_map: dict) -> PeriodRecord:
    return PeriodRecord(
        period=extract_period(row, role_map),
        revenue=_monetary(row, role_map, REVENUE),
        cogs=_monetary(row, role_map, COGS),
        operating_expenses=_monetary(row, role_map, OPERATING_EXPENSES),
        expense_breakdown=extract_expense_breakdown(row),
    )


def normalize(rows: list[RawRow], role_map: dict) -> list[PeriodRecord]:
    """One PeriodRecord per row, in input order. Raises NoValidRows if none."""
    records = []
    for i, row in enumerate(rows):
        try:
            records.append(normalize_row(row, role_map))
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning(f"Skipping invalid row {i + 1}: {exc}")

    if not records:
        raise NoValidRows(NO_VALID_ROWS_MESSAGE)
    logger.info(f"Normalized {len(records)} period records")
    return records


# ── Array mode (irregular ledgers) ────────────────────────────────────────────

def classify_row(row: RawRow, role_map: dict) -> LedgerItem | None:
    """Classify one ledger line; None when it has no category or no amount."""
    category = _cell_text(row, role_map.get(CATEGORY, 0))
    amount = parse_number(_cell(row, role_map.get(AMOUNT, 0)))
    if not category or amount == 0:
        return None

    flag = _cell_text(row, role_map.get(INCOME_EXPENSE_FLAG, 0))
    return LedgerItem(
        category=category,
        amount=amount,
        type="income" if "income" in flag.lower() else "expense",
        expense_code=_cell_text(row, role_map.get(EXPENSE_CODE, 0)),
        subcategory=_cell_text(row, role_map.get(SUBCATEGORY, 0)),
        # Carried for downstream consumers; totals are not excluded from sums
        is_total="total" in category.lower(),
        raw_row=tuple(None if c.is_empty else c.value for c in row.values()),
    )


def extract_ledger_items(rows: list[RawRow], role_map: dict) -> list[LedgerItem]:
    header_row = role_map.get(HEADER_ROW, 0)
    items = []
    for i in range(header_row + 1, len(rows)):
        row = rows[i]
        if not row:
            continue
        try:
            item = classify_row(row, role_map)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning(f"Error parsing ledger row {i}: {exc}")
            continue
        if item is not None:
            items.append(item)
    logger.info(f"Classified {len(items)} ledger lines below header row {header_row}")
    return items


def group_by_period(items: list[LedgerItem]) -> dict[str, list[LedgerItem]]:
    """Group ledger lines into reporting periods."""
    # TODO: split by the resolved period column once multi-period ledgers are supported
    if not items:
        return {}
    return {ANALYZED_PERIOD: items}


def _expense_breakdown(expenses: list[LedgerItem]) -> dict[str, float] | None:
    sums: dict[str, float] = {}
    for item in expenses:
        category = item.category or "Other"
        sums[category] = sums.get(category, 0.0) + item.amount
    breakdown = {k: v for k, v in sums.items() if v > 0}
    return breakdown or None


def summarize_period(period: str, items: list[LedgerItem]) -> PeriodRecord:
    income = [item for item in items if item.type == "income"]
    expenses = [item for item in items if item.type == "expense"]

    revenue = sum(item.amount for item in income)
    total_expenses = sum(item.amount for item in expenses)
    cogs = sum(item.amount for item in expenses if _is_cogs(item.category))

    return PeriodRecord(
        period=period,
        revenue=float(revenue),
        cogs=float(cogs),
        operating_expenses=float(total_expenses - cogs),
        expense_breakdown=_expense_breakdown(expenses),
    )


def normalize_ledger(rows: list[RawRow], role_map: dict) -> list[PeriodRecord]:
    """PeriodRecords for an irregular ledger. Raises NoValidRows if none."""
    items = extract_ledger_items(rows, role_map)
    records = [summarize_period(period, group) for period, group in group_by_period(items).items()]
    if not records:
        raise NoValidRows(NO_VALID_ROWS_MESSAGE)
    return records
