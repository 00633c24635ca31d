"""
Display formatting for the command-line KPI summary.

Each KPI declares a format type in metrics.kpi_engine.KPI_DEFINITIONS:
  currency    ->  $40,000 / -$1,250   (whole dollars, sign before the symbol)
  percentage  ->  60.0%
  growth      ->  +20.0% / -9.1%      (always signed)
  trend       ->  ↑ positive
"""

TREND_MARKERS = {"positive": "↑", "negative": "↓", "stable": "→"}


def format_currency(v) -> str:
    try:
        amount = round(float(v))
    except (TypeError, ValueError):
        return "N/A"
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,}"


def format_percent(v) -> str:
    try:
        return f"{float(v):.1f}%"
    except (TypeError, ValueError):
        return "N/A"


def format_growth(v) -> str:
    """Period-over-period change; the sign is shown even when positive."""
    try:
        return f"{float(v):+.1f}%"
    except (TypeError, ValueError):
        return "N/A"


def format_trend(v) -> str:
    marker = TREND_MARKERS.get(v)
    return f"{marker} {v}" if marker else str(v)


FORMATTERS = {
    "currency": format_currency,
    "percentage": format_percent,
    "growth": format_growth,
    "trend": format_trend,
}


def format_metric(v, format_type: str) -> str:
    """Format a KPI value by its declared type; unknown types fall back to str()."""
    if v is None:
        return "N/A"
    return FORMATTERS.get(format_type, str)(v)
