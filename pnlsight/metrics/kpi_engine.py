"""
KPI engine.
Derives point-in-time margins from the latest PeriodRecord and, when a
previous period exists, revenue growth and trend direction.

Percentages are plain numbers (42.0 means 42%) and are never clamped.
"""

import logging

from pnlsight.models import PeriodRecord

logger = logging.getLogger(__name__)

KpiValue = float | str

# name -> (label, format_type)
KPI_DEFINITIONS = {
    "grossProfitMargin": ("Gross Profit Margin", "percentage"),
    "operatingMargin": ("Operating Margin", "percentage"),
    "netProfitMargin": ("Net Profit Margin", "percentage"),
    "totalRevenue": ("Revenue", "currency"),
    "totalCogs": ("Cost of Goods Sold", "currency"),
    "totalOperatingExpenses": ("Operating Expenses", "currency"),
    "grossProfit": ("Gross Profit", "currency"),
    "operatingIncome": ("Operating Income", "currency"),
    "revenueGrowth": ("Revenue Growth", "growth"),
    "trend": ("Trend", "trend"),
}


# ── Helper functions ──────────────────────────────────────────────────────────

def _pct_of_revenue(amount: float, revenue: float) -> float:
    # Zero (or negative) revenue gives 0 rather than a division error
    if revenue <= 0:
        return 0.0
    return amount * 100 / revenue


def _growth(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return (current - previous) * 100 / previous


def _trend(growth: float) -> str:
    if growth > 0:
        return "positive"
    if growth < 0:
        return "negative"
    return "stable"


# ── Public API ────────────────────────────────────────────────────────────────

def compute_kpis(records: list[PeriodRecord]) -> dict[str, KpiValue]:
    """
    Compute the KPI map for an ordered sequence of PeriodRecords.
    The last record is the current period, the one before it the previous.
    Returns {} for an empty sequence.
    """
    if not records:
        return {}

    latest = records[-1]
    gross_profit = latest.revenue - latest.cogs
    operating_income = gross_profit - latest.operating_expenses

    kpis: dict[str, KpiValue] = {}
    kpis["grossProfitMargin"] = _pct_of_revenue(gross_profit, latest.revenue)
    kpis["operatingMargin"] = _pct_of_revenue(operating_income, latest.revenue)
    # No interest/tax lines are extracted, so net margin equals operating margin
    kpis["netProfitMargin"] = kpis["operatingMargin"]
    kpis["totalRevenue"] = latest.revenue
    kpis["totalCogs"] = latest.cogs
    kpis["totalOperatingExpenses"] = latest.operating_expenses
    kpis["grossProfit"] = gross_profit
    kpis["operatingIncome"] = operating_income

    if len(records) > 1:
        previous = records[-2]
        growth = _growth(latest.revenue, previous.revenue)
        kpis["revenueGrowth"] = growth
        kpis["trend"] = _trend(growth)
        logger.info(f"Revenue growth {previous.period} -> {latest.period}: {growth:+.1f}%")

    return kpis


def describe_kpis(kpis: dict[str, KpiValue]) -> list[tuple[str, KpiValue, str]]:
    """(label, value, format_type) for every KPI present, in definition order."""
    rows = []
    for name, (label, format_type) in KPI_DEFINITIONS.items():
        if name in kpis:
            rows.append((label, kpis[name], format_type))
    return rows
