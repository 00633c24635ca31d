"""
Column resolver: decides which column plays which financial role.

Two strategies:
1. Direct synonym matching for simple "record" mode files. Exact,
   case-sensitive labels; first synonym found in the header wins.
2. Heuristic structural inference for irregular "array" mode ledgers.
   A bounded sample is scanned for the header row and role columns. An
   optional AI structure inferrer may contribute a hint that overrides the
   local guesses role by role.

resolve() never raises. Roles that cannot be resolved are left out of the map
and the normalizer applies its own defaults.
"""

import re
import logging
from typing import Any, Protocol

from pnlsight.errors import StructureInferenceUnavailable
from pnlsight.models import Cell, RawRow
from pnlsight.parser.tabular_decoder import ARRAY_MODE, RECORD_MODE

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_ROWS = 10

# ── Roles ─────────────────────────────────────────────────────────────────────
PERIOD = "period"
REVENUE = "revenue"
COGS = "cogs"
OPERATING_EXPENSES = "operatingExpenses"
CATEGORY = "category"
AMOUNT = "amount"
INCOME_EXPENSE_FLAG = "incomeExpenseFlag"
EXPENSE_CODE = "expenseCode"
SUBCATEGORY = "subcategory"
HEADER_ROW = "headerRow"

MONETARY_ROLES = (REVENUE, COGS, OPERATING_EXPENSES)

# ── Direct synonyms (record mode) ─────────────────────────────────────────────
PERIOD_LABELS = ["Period", "period", "Date", "date", "Month", "month", "Quarter", "quarter"]

ROLE_SYNONYMS = {
    PERIOD: PERIOD_LABELS,
    REVENUE: ["Revenue", "revenue", "Total Revenue"],
    COGS: ["COGS", "cogs", "Cost of Goods Sold"],
    OPERATING_EXPENSES: ["Operating Expenses", "operatingExpenses", "Total Operating Expenses"],
}

# ── Structural heuristics (array mode) ────────────────────────────────────────
HEADER_KEYWORDS = [
    "category", "amount", "type", "income", "expense", "code", "subcategory",
    "description", "account", "date", "period", "month", "value",
]

# Checked in order; more specific roles claim their column first
# (subcategory before category, expense code before the income/expense flag).
ROLE_KEYWORDS = [
    (SUBCATEGORY, ["subcategory", "sub-category", "sub category"]),
    (EXPENSE_CODE, ["expense code", "account code", "gl code", "code"]),
    (INCOME_EXPENSE_FLAG, [
        "income/expense", "income / expense", "income or expense",
        "income vs expense", "type", "class",
    ]),
    (CATEGORY, ["category", "account", "description", "line item", "item"]),
    (AMOUNT, ["amount", "value", "total", "balance", "net"]),
    (PERIOD, ["date", "period", "month", "quarter"]),
]

# Hint keys returned by the structure-inference service
HINT_KEYS = {
    PERIOD: "dateColumn",
    INCOME_EXPENSE_FLAG: "incomeExpenseColumn",
    CATEGORY: "categoryColumn",
    EXPENSE_CODE: "expenseCodeColumn",
    SUBCATEGORY: "subcategoryColumn",
    AMOUNT: "amountColumn",
}

_NUMERIC_TEXT = re.compile(r"^\(?\s*-?\s*\$?\s*-?[\d,]*\.?\d+\s*\)?$")


class StructureInferrer(Protocol):
    """Anything that can suggest a column layout from a sample of raw rows."""

    def infer_structure(self, sample: list[list]) -> dict:
        ...


# ── Helpers ───────────────────────────────────────────────────────────────────

def column_index(column: Any) -> int:
    """
    Map a column reference from a structure hint to a 0-based index.
    Numbers and numeric strings are used directly, a single letter maps
    A=0, B=1, ...; anything else is 0.
    """
    if column is None or isinstance(column, bool):
        return 0
    if isinstance(column, int):
        return column if column >= 0 else 0
    if isinstance(column, float):
        return int(column) if column.is_integer() and column >= 0 else 0
    s = str(column).strip()
    if not s:
        return 0
    try:
        value = float(s)
    except ValueError:
        value = None
    if value is not None:
        return int(value) if value.is_integer() and value >= 0 else 0
    if len(s) == 1 and s.isascii() and s.isalpha():
        return ord(s.upper()) - ord("A")
    return 0


def _looks_numeric(cell: Cell) -> bool:
    if cell.kind == "number":
        return True
    if cell.kind == "text":
        return bool(_NUMERIC_TEXT.match(str(cell.value).strip()))
    return False


def _row_cells(row: RawRow) -> list:
    if not row:
        return []
    width = max(row) + 1
    return [row.get(i, Cell("empty")) for i in range(width)]


def _plain_sample(sample: list[list]) -> list[list]:
    return [[None if c.is_empty else c.value for c in row] for row in sample]


def is_resolved(role_map: dict) -> bool:
    """True when direct matching found at least one monetary column."""
    return any(role in role_map for role in MONETARY_ROLES)


# ── Strategy 1: direct synonyms ───────────────────────────────────────────────

def _resolve_by_synonyms(rows: list[RawRow]) -> dict:
    header = list(rows[0].keys()) if rows else []
    role_map = {}
    for role, synonyms in ROLE_SYNONYMS.items():
        for label in synonyms:
            if label in header:
                role_map[role] = label
                break
    logger.info(f"Direct column matching: {role_map or 'no known labels'}")
    return role_map


# ── Strategy 2: structural inference ──────────────────────────────────────────

def detect_header_row(sample: list[list]) -> int:
    """
    Return the index of the header row within the sample.
    Prefers a row of labels naming ledger headings; otherwise the first row of
    two or more labels with no numbers; -1 when every row carries numbers.
    """
    fallback = None
    for i, row in enumerate(sample):
        texts = [c.as_text().lower() for c in row if c.kind == "text" and not _looks_numeric(c)]
        has_numbers = any(_looks_numeric(c) for c in row)
        if has_numbers:
            continue
        hits = sum(1 for t in texts if any(kw in t for kw in HEADER_KEYWORDS))
        if hits >= 2:
            return i
        if fallback is None and len(texts) >= 2:
            fallback = i
    return fallback if fallback is not None else -1


def _guess_roles_from_labels(header: list) -> dict:
    labels = {i: c.as_text().lower().strip() for i, c in enumerate(header) if not c.is_empty}
    roles = {}
    taken = set()
    for role, keywords in ROLE_KEYWORDS:
        for i, label in labels.items():
            if i in taken:
                continue
            if any(kw in label for kw in keywords):
                roles[role] = i
                taken.add(i)
                break
    return roles


def _guess_roles_from_values(body: list[list], roles: dict) -> dict:
    roles = dict(roles)
    width = max((len(r) for r in body), default=0)
    taken = set(roles.values())

    numeric_counts = {}
    flag_counts = {}
    distinct_text = {}
    for i in range(width):
        if i in taken:
            continue
        cells = [r[i] for r in body if i < len(r) and not r[i].is_empty]
        numeric_counts[i] = sum(1 for c in cells if _looks_numeric(c))
        texts = [c.as_text().strip().lower() for c in cells if not _looks_numeric(c)]
        flag_counts[i] = sum(1 for t in texts if "income" in t or "expense" in t)
        distinct_text[i] = len(set(texts))

    if AMOUNT not in roles:
        candidates = [i for i, n in numeric_counts.items() if n > 0]
        if candidates:
            # Rightmost wins ties; ledgers put amounts at the end
            best = max(candidates, key=lambda i: (numeric_counts[i], i))
            roles[AMOUNT] = best
            taken.add(best)

    if INCOME_EXPENSE_FLAG not in roles:
        candidates = [i for i, n in flag_counts.items() if i not in taken and n > 0]
        if candidates:
            best = max(candidates, key=lambda i: (flag_counts[i], -i))
            roles[INCOME_EXPENSE_FLAG] = best
            taken.add(best)

    if CATEGORY not in roles:
        candidates = [i for i, n in distinct_text.items() if i not in taken and n > 0]
        if candidates:
            best = max(candidates, key=lambda i: (distinct_text[i], -i))
            roles[CATEGORY] = best
            taken.add(best)

    return roles


def infer_structure_locally(sample: list[list]) -> dict:
    """Deterministic best-effort layout guess for an irregular ledger sample."""
    if not sample:
        return {}
    header_row = detect_header_row(sample)
    roles = _guess_roles_from_labels(sample[header_row]) if header_row >= 0 else {}
    roles = _guess_roles_from_values(sample[header_row + 1:], roles)
    roles[HEADER_ROW] = header_row
    return roles


def _hint_header_row(hint: dict) -> int | None:
    value = hint.get("headerRow")
    if isinstance(value, bool):
        return None
    if isinstance(value, int) and value >= 0:
        return value
    if isinstance(value, float) and value.is_integer() and value >= 0:
        return int(value)
    return None


def _request_hint(inferrer: StructureInferrer, sample: list[list]) -> dict | None:
    try:
        hint = inferrer.infer_structure(_plain_sample(sample))
    except (StructureInferenceUnavailable, ValueError) as exc:
        logger.warning(f"Structure inference unavailable, using local guesses: {exc}")
        return None
    if not isinstance(hint, dict):
        logger.warning(f"Ignoring malformed structure hint of type {type(hint).__name__}")
        return None
    logger.info(f"Structure hint received: {hint}")
    return hint


def _resolve_structure(
    rows: list[RawRow], inferrer: StructureInferrer | None, sample_rows: int
) -> dict:
    """
    Local guesses first, then the hint overrides them role by role.

    A role the hint omits keeps its local guess rather than dropping to
    column 0; only a role with neither a hint nor a guess is left out, and the
    normalizer then reads column 0 for it. A hint value that names no usable
    column still maps to 0 through column_index().
    """
    sample = [_row_cells(r) for r in rows[:sample_rows]]
    local = infer_structure_locally(sample)
    role_map = dict(local)

    hint = _request_hint(inferrer, sample) if inferrer is not None else None
    if hint:
        header_row = _hint_header_row(hint)
        if header_row is not None:
            role_map[HEADER_ROW] = header_row
        for role, key in HINT_KEYS.items():
            if key in hint and hint[key] not in (None, ""):
                role_map[role] = column_index(hint[key])

    role_map.setdefault(HEADER_ROW, 0)
    logger.info(f"Structural column resolution: {role_map}")
    return role_map


# ── Public API ────────────────────────────────────────────────────────────────

def resolve(
    sample_rows: list[RawRow],
    mode: str = RECORD_MODE,
    inferrer: StructureInferrer | None = None,
    sample_size: int = DEFAULT_SAMPLE_ROWS,
) -> dict:
    """
    Build the ColumnRoleMap for a decoded document.

    Record mode returns label keys for period/revenue/cogs/operatingExpenses.
    Array mode returns column indices for category/amount/incomeExpenseFlag/
    expenseCode/subcategory/period plus the detected headerRow.
    """
    if not sample_rows:
        return {}
    try:
        if mode == ARRAY_MODE:
            return _resolve_structure(sample_rows, inferrer, sample_size)
        return _resolve_by_synonyms(sample_rows)
    except Exception as exc:
        logger.warning(f"Column resolution failed, continuing with defaults: {exc}")
        return {}
