"""
Pipeline boundary: upload bytes in, PeriodRecords (and KPIs) out.

Decoder -> Resolver -> Normalizer -> KPI engine. Simple files are matched by
column label; when no revenue/COGS/operating-expense label is found the same
rows are treated as an irregular ledger and resolved structurally.

process_file never raises for bad input: every pipeline failure comes back as
a ProcessingResult with success=False.
"""

import logging

from pnlsight.config import Settings
from pnlsight.errors import EmptyDocument, PnLSightError, UnsupportedFormat
from pnlsight.metrics.kpi_engine import compute_kpis
from pnlsight.models import PeriodRecord, ProcessingResult
from pnlsight.parser.column_resolver import StructureInferrer, is_resolved, resolve
from pnlsight.parser.record_normalizer import normalize, normalize_ledger
from pnlsight.parser.tabular_decoder import ARRAY_MODE, RECORD_MODE, decode, to_records

logger = logging.getLogger(__name__)


def _failure(exc: PnLSightError, message: str) -> ProcessingResult:
    logger.warning(f"Pipeline failed ({type(exc).__name__}): {exc}")
    return ProcessingResult(success=False, error=message, error_kind=type(exc).__name__)


def process_file(
    data: bytes,
    filename: str,
    mime_type: str,
    inferrer: StructureInferrer | None = None,
    settings: Settings | None = None,
) -> ProcessingResult:
    """
    Run the ingestion pipeline on one uploaded file.

    inferrer is the optional AI structure-inference collaborator used for
    irregular ledgers; without it only local heuristics are applied.
    """
    settings = settings or Settings()
    try:
        arrays = decode(data, mime_type, filename, ARRAY_MODE, settings)

        records_rows = to_records(arrays)
        if not records_rows:
            # A lone header line carries no data in either mode
            raise EmptyDocument("File is empty or contains no valid data")

        role_map = resolve(records_rows, RECORD_MODE)
        if is_resolved(role_map):
            mode = RECORD_MODE
            records = normalize(records_rows, role_map)
        else:
            logger.info(f"No known P&L column labels in {filename}; inferring ledger structure")
            mode = ARRAY_MODE
            role_map = resolve(arrays, ARRAY_MODE, inferrer, settings.sample_rows)
            records = normalize_ledger(arrays, role_map)
    except UnsupportedFormat as exc:
        return _failure(exc, str(exc))
    except PnLSightError as exc:
        return _failure(exc, f"File processing failed: {exc}")

    logger.info(f"Processed {filename}: {len(records)} period(s) via {mode} mode")
    return ProcessingResult(success=True, data=records, mode=mode, role_map=role_map)


def calculate_kpis(records: list[PeriodRecord]) -> dict:
    """KPI map for the processed records (see metrics.kpi_engine)."""
    return compute_kpis(records)


def build_storage_payload(records: list[PeriodRecord], kpis: dict) -> dict:
    """
    What the persistence layer receives: one decimal-stringified row per
    period plus the KPI map as an opaque blob.
    """
    return {
        "plData": [record.to_storage_row() for record in records],
        "kpis": dict(kpis),
    }
