"""
PnLSight command line.

    python -m pnlsight statements.xlsx
    python -m pnlsight ledger.csv --json --ai-structure
"""

import argparse
import json
import logging
import mimetypes
import sys
from dataclasses import replace
from pathlib import Path

from pnlsight.config import load_settings
from pnlsight.metrics.kpi_engine import describe_kpis
from pnlsight.pipeline import build_storage_payload, calculate_kpis, process_file
from pnlsight.structure.ollama_inference import build_inferrer, check_ollama_status
from pnlsight.utils.formatters import format_currency, format_metric

logger = logging.getLogger("pnlsight")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pnlsight",
        description="Extract period records and KPIs from a P&L spreadsheet or CSV.",
    )
    parser.add_argument("file", type=Path, help="CSV, XLSX or XLS file to analyse")
    parser.add_argument("--mime", default=None, help="MIME type hint (guessed from the name if omitted)")
    parser.add_argument("--json", action="store_true", help="Print the storage payload as JSON")
    parser.add_argument(
        "--ai-structure", action="store_true",
        help="Ask the local Ollama model for the layout of irregular ledgers",
    )
    parser.add_argument("--env-file", type=Path, default=None, help="Path to a .env file")
    return parser


def _print_summary(records, kpis) -> None:
    print("PERIODS:")
    for r in records:
        print(
            f"  {r.period}: revenue {format_currency(r.revenue)}, "
            f"COGS {format_currency(r.cogs)}, "
            f"operating expenses {format_currency(r.operating_expenses)}"
        )
        for label, value in (r.expense_breakdown or {}).items():
            print(f"    - {label}: {format_currency(value)}")
    print("KPIS:")
    for label, value, format_type in describe_kpis(kpis):
        print(f"  {label}: {format_metric(value, format_type)}")


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    settings = load_settings(args.env_file)
    if args.ai_structure:
        settings = replace(settings, ai_structure_enabled=True)
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    inferrer = build_inferrer(settings)
    if inferrer is not None:
        ready, status = check_ollama_status(settings.ollama_base_url, settings.structure_model)
        log = logger.info if ready else logger.warning
        log(f"Ollama: {status}")

    try:
        data = args.file.read_bytes()
    except OSError as exc:
        print(f"error: cannot read {args.file}: {exc}", file=sys.stderr)
        return 1

    mime_type = args.mime or mimetypes.guess_type(args.file.name)[0] or ""
    result = process_file(data, args.file.name, mime_type, inferrer=inferrer, settings=settings)
    if not result.success:
        print(f"error: {result.error}", file=sys.stderr)
        return 1

    kpis = calculate_kpis(result.data)
    if args.json:
        print(json.dumps(build_storage_payload(result.data, kpis), indent=2))
    else:
        _print_summary(result.data, kpis)
    return 0


if __name__ == "__main__":
    sys.exit(main())
