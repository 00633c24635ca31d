import pytest

from pnlsight.config import Settings
from pnlsight.parser.record_normalizer import ANALYZED_PERIOD, NO_VALID_ROWS_MESSAGE
from pnlsight.pipeline import build_storage_payload, calculate_kpis, process_file

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SIMPLE_CSV = b'Revenue,COGS,Operating Expenses\n"$100,000","$40,000","$20,000"\n'
QUARTERLY_CSV = b"Period,Revenue,COGS,Operating Expenses\nQ1,100,40,20\nQ2,120,50,20\n"


# ── Record mode ───────────────────────────────────────────────────────────────

def test_simple_csv_end_to_end():
    result = process_file(SIMPLE_CSV, "pl.csv", "text/csv")
    assert result.success
    assert result.mode == "record"
    (record,) = result.data
    assert record.period == "Unknown Period"
    assert record.revenue == 100000.0
    assert record.cogs == 40000.0
    assert record.operating_expenses == 20000.0
    assert record.expense_breakdown == {"Operating Expenses": 20000.0}

    kpis = calculate_kpis(result.data)
    assert kpis["grossProfitMargin"] == 60.0
    assert kpis["operatingMargin"] == 40.0


def test_processing_is_repeatable():
    assert process_file(SIMPLE_CSV, "pl.csv", "text/csv") == process_file(SIMPLE_CSV, "pl.csv", "text/csv")


def test_multi_period_csv_keeps_row_order():
    result = process_file(QUARTERLY_CSV, "q.csv", "text/csv")
    assert [r.period for r in result.data] == ["Q1", "Q2"]
    assert result.role_map["period"] == "Period"

    kpis = calculate_kpis(result.data)
    assert kpis["revenueGrowth"] == 20.0
    assert kpis["trend"] == "positive"


def test_xlsx_end_to_end(make_xlsx):
    data = make_xlsx({"Sheet1": [
        ["Month", "Revenue", "COGS", "Operating Expenses"],
        ["Jan 2024", 1000, 400, 200],
        ["Feb 2024", 1500, 600, 300],
    ]})
    result = process_file(data, "pl.xlsx", XLSX_MIME)
    assert result.success
    assert [r.period for r in result.data] == ["Jan 2024", "Feb 2024"]
    assert result.data[1].revenue == 1500.0
    assert result.data[1].gross_profit == 900.0


def test_legacy_xls_end_to_end(make_xls):
    data = make_xls([
        ["Period", "Revenue", "COGS", "Operating Expenses"],
        ["Q1", 1000, 400, 200],
    ])
    result = process_file(data, "pl.xls", "application/vnd.ms-excel")
    assert result.success
    (record,) = result.data
    assert record.period == "Q1"
    assert record.revenue == 1000.0
    assert calculate_kpis(result.data)["grossProfitMargin"] == 60.0


def test_unparsable_amounts_become_zero():
    result = process_file(b"Revenue,COGS,Operating Expenses\nabc,,n/a\n", "pl.csv", "text/csv")
    assert result.success
    (record,) = result.data
    assert (record.revenue, record.cogs, record.operating_expenses) == (0.0, 0.0, 0.0)
    assert record.expense_breakdown is None
    assert calculate_kpis(result.data)["grossProfitMargin"] == 0.0


# ── Irregular ledgers ─────────────────────────────────────────────────────────

def test_ledger_falls_back_to_structural_resolution(ledger_csv):
    result = process_file(ledger_csv, "ledger.csv", "text/csv")
    assert result.success
    assert result.mode == "array"
    assert result.role_map["headerRow"] == 1
    (record,) = result.data
    assert record.period == ANALYZED_PERIOD
    assert record.revenue == 10000.0
    assert record.cogs == 5000.0
    assert record.operating_expenses == 2000.0


def test_ledger_uses_inferrer_hint(ledger_csv, fake_inferrer):
    inferrer = fake_inferrer({
        "headerRow": 1,
        "incomeExpenseColumn": "D",
        "categoryColumn": "E",
        "amountColumn": "H",
    })
    result = process_file(ledger_csv, "ledger.csv", "text/csv", inferrer=inferrer)
    assert result.success
    assert len(inferrer.samples) == 1
    assert result.role_map["category"] == 4
    assert result.data[0].revenue == 10000.0


def test_ledger_sample_size_comes_from_settings(ledger_csv, fake_inferrer):
    inferrer = fake_inferrer({})
    process_file(ledger_csv, "ledger.csv", "text/csv", inferrer=inferrer, settings=Settings(sample_rows=3))
    (sample,) = inferrer.samples
    assert len(sample) == 3


def test_unavailable_inferrer_still_succeeds(ledger_csv, unavailable_inferrer):
    result = process_file(ledger_csv, "ledger.csv", "text/csv", inferrer=unavailable_inferrer)
    assert result.success
    assert result.data == process_file(ledger_csv, "ledger.csv", "text/csv").data


def test_ledger_spreadsheet(make_xlsx, ledger_rows):
    result = process_file(make_xlsx({"Ledger": ledger_rows}), "ledger.xlsx", XLSX_MIME)
    assert result.success
    assert result.mode == "array"
    assert result.data[0].operating_expenses == 2000.0


# ── Failures ──────────────────────────────────────────────────────────────────

def test_pdf_is_reported_verbatim():
    result = process_file(b"%PDF-1.4", "report.pdf", "application/pdf")
    assert not result.success
    assert result.error == "Unsupported file format. Please upload CSV or Excel files."
    assert result.error_kind == "UnsupportedFormat"
    assert result.data is None


@pytest.mark.parametrize(
    "data, filename, mime, kind",
    [
        (b"", "empty.csv", "text/csv", "EmptyDocument"),
        (b"Revenue,COGS,Operating Expenses\n", "header.csv", "text/csv", "EmptyDocument"),
        (b"not a workbook", "broken.xlsx", XLSX_MIME, "UnreadableDocument"),
        (b"Name,Notes\nfoo,bar\n", "notes.csv", "text/csv", "NoValidRows"),
    ],
)
def test_failures_are_prefixed(data, filename, mime, kind):
    result = process_file(data, filename, mime)
    assert not result.success
    assert result.error.startswith("File processing failed: ")
    assert result.error_kind == kind


def test_no_valid_rows_message():
    result = process_file(b"Name,Notes\nfoo,bar\n", "notes.csv", "text/csv")
    assert result.error == f"File processing failed: {NO_VALID_ROWS_MESSAGE}"


def test_size_ceiling():
    result = process_file(SIMPLE_CSV, "pl.csv", "text/csv", settings=Settings(max_upload_bytes=16))
    assert not result.success
    assert result.error_kind == "SizeExceeded"


# ── Persistence payload ───────────────────────────────────────────────────────

def test_storage_payload():
    result = process_file(QUARTERLY_CSV, "q.csv", "text/csv")
    kpis = calculate_kpis(result.data)
    payload = build_storage_payload(result.data, kpis)
    assert payload["kpis"] == kpis
    assert payload["plData"][1] == {
        "period": "Q2",
        "revenue": "120.00",
        "cogs": "50.00",
        "grossProfit": "70.00",
        "operatingExpenses": "20.00",
        "operatingIncome": "50.00",
        "netIncome": "50.00",
        "expenseBreakdown": {"Operating Expenses": 20.0},
    }
