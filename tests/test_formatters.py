import pytest

from pnlsight.utils.formatters import format_currency, format_metric


@pytest.mark.parametrize(
    "value, expected",
    [
        (40000, "$40,000"),
        (1234567.89, "$1,234,568"),
        (-1250.0, "-$1,250"),
        (-0.4, "$0"),
        (None, "N/A"),
        ("abc", "N/A"),
    ],
)
def test_format_currency(value, expected):
    assert format_currency(value) == expected


@pytest.mark.parametrize(
    "value, format_type, expected",
    [
        (60.0, "percentage", "60.0%"),
        (-9.0909, "percentage", "-9.1%"),
        (20.0, "growth", "+20.0%"),
        (-9.0909, "growth", "-9.1%"),
        (0.0, "growth", "+0.0%"),
        ("positive", "trend", "↑ positive"),
        ("negative", "trend", "↓ negative"),
        ("stable", "trend", "→ stable"),
        ("sideways", "trend", "sideways"),
        (100000.0, "currency", "$100,000"),
        (None, "currency", "N/A"),
        ("n/a", "unknown", "n/a"),
    ],
)
def test_format_metric(value, format_type, expected):
    assert format_metric(value, format_type) == expected
