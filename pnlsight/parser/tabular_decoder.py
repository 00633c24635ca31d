"""
Tabular decoder: raw upload bytes -> rows of tagged cells.

Spreadsheets (.xlsx/.xls) are read from the first sheet only; legacy BIFF
workbooks go through xlrd, everything else through openpyxl. CSV is read in
fixed-size chunks so large uploads never materialise more than one chunk of
parser state at a time. No semantic interpretation happens here.

Two output modes:
- "record": the first row is the header; each later row maps label -> Cell
- "array":  no header assumption; each row maps 0-based column index -> Cell

Ragged rows are padded to the widest row. The padded grid is capped by
Settings.max_columns and Settings.max_cells; beyond either cap the upload is
rejected with SizeExceeded.
"""

import csv
import io
import logging
from typing import Iterator

import pandas as pd

from pnlsight.config import Settings
from pnlsight.errors import EmptyDocument, SizeExceeded, UnreadableDocument, UnsupportedFormat
from pnlsight.models import Cell, EMPTY_CELL, RawRow

logger = logging.getLogger(__name__)

SPREADSHEET = "spreadsheet"
CSV = "csv"

RECORD_MODE = "record"
ARRAY_MODE = "array"

SPREADSHEET_EXTENSIONS = (".xlsx", ".xls")
CSV_EXTENSIONS = (".csv",)
LEGACY_EXCEL_MIME = "application/vnd.ms-excel"

# utf-8-sig also reads plain UTF-8; it only strips a leading BOM
CSV_ENCODINGS = ["utf-8-sig", "latin1"]

OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"   # BIFF .xls container
ZIP_MAGIC = b"PK\x03\x04"                         # OOXML .xlsx container


# ── Format dispatch ───────────────────────────────────────────────────────────

def detect_format(mime_type: str | None, filename: str | None) -> str:
    """
    Decide between spreadsheet and CSV decoding.
    The MIME type is consulted first, the filename extension second.
    """
    mime = (mime_type or "").lower().strip()
    name = (filename or "").lower().strip()

    if "sheet" in mime:
        return SPREADSHEET
    if "csv" in mime:
        return CSV
    # Browsers often label CSV uploads as the legacy Excel type
    if mime == LEGACY_EXCEL_MIME and not name.endswith(CSV_EXTENSIONS):
        return SPREADSHEET

    if name.endswith(SPREADSHEET_EXTENSIONS):
        return SPREADSHEET
    if name.endswith(CSV_EXTENSIONS):
        return CSV

    raise UnsupportedFormat("Unsupported file format. Please upload CSV or Excel files.")


def excel_engine(data: bytes, mime_type: str | None, filename: str | None) -> str:
    """
    pandas engine for a spreadsheet upload: "xlrd" for legacy BIFF workbooks,
    "openpyxl" otherwise. The container signature wins over the name, since
    exported .xls files are often OOXML in disguise.
    """
    if data.startswith(OLE_MAGIC):
        return "xlrd"
    if data.startswith(ZIP_MAGIC):
        return "openpyxl"
    name = (filename or "").lower().strip()
    mime = (mime_type or "").lower().strip()
    if name.endswith(".xls") or mime == LEGACY_EXCEL_MIME:
        return "xlrd"
    return "openpyxl"


# ── Raw readers ───────────────────────────────────────────────────────────────

def _trim_row(cells: list[Cell]) -> list[Cell]:
    end = len(cells)
    while end and cells[end - 1].is_empty:
        end -= 1
    return cells[:end]


def _iter_spreadsheet_rows(data: bytes, engine: str) -> Iterator[list]:
    try:
        df = pd.read_excel(io.BytesIO(data), sheet_name=0, header=None, engine=engine)
    except Exception as exc:
        raise UnreadableDocument(f"Could not read spreadsheet: {exc}") from exc

    logger.info(f"Spreadsheet first sheet ({engine}): {len(df)} rows x {len(df.columns)} columns")
    for values in df.itertuples(index=False, name=None):
        yield _trim_row([Cell.from_value(v) for v in values])


def _decode_text(data: bytes) -> str:
    for enc in CSV_ENCODINGS:
        try:
            return data.decode(enc)
        except UnicodeDecodeError:
            continue
    raise UnreadableDocument("Could not read CSV file")


def _max_field_count(text: str) -> int:
    """Widest record, split with the same quoting rules pandas applies."""
    try:
        return max((len(fields) for fields in csv.reader(io.StringIO(text))), default=1)
    except csv.Error as exc:
        raise UnreadableDocument(f"Could not read CSV file: {exc}") from exc


def _iter_csv_rows(data: bytes, settings: Settings) -> Iterator[list]:
    text = _decode_text(data)
    if not text.strip():
        return

    # Ragged rows are normal in exported ledgers, so every column is named up front
    width = _max_field_count(text)
    if width > settings.max_columns:
        raise SizeExceeded(f"CSV has {width:,} columns; the limit is {settings.max_columns:,}")

    try:
        reader = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            chunksize=settings.csv_chunk_rows,
        )
        with reader:
            for chunk in reader:
                for values in chunk.itertuples(index=False, name=None):
                    # Padding is dropped here so it never outlives the chunk
                    yield _trim_row([Cell.from_value(v) for v in values])
    except pd.errors.EmptyDataError:
        return
    except (pd.errors.ParserError, ValueError) as exc:
        raise UnreadableDocument(f"Could not read CSV file: {exc}") from exc


# ── Row shaping ───────────────────────────────────────────────────────────────

def _pad_rows(rows: list[list], settings: Settings) -> list[list]:
    width = max((len(row) for row in rows), default=0)
    if width > settings.max_columns:
        raise SizeExceeded(f"File has {width:,} columns; the limit is {settings.max_columns:,}")
    if width * len(rows) > settings.max_cells:
        raise SizeExceeded(
            f"File decodes to {len(rows):,} rows x {width:,} columns; "
            f"the limit is {settings.max_cells:,} cells"
        )
    return [row + [EMPTY_CELL] * (width - len(row)) for row in rows]


def _header_labels(header: list) -> list[str]:
    """Turn the header row into unique column labels, pandas style."""
    labels = []
    seen: dict[str, int] = {}
    for i, cell in enumerate(header):
        label = cell.as_text().strip() or f"Unnamed: {i}"
        if label in seen:
            seen[label] += 1
            label = f"{label}.{seen[label]}"
        else:
            seen[label] = 0
        labels.append(label)
    return labels


def _as_records(rows: list[list]) -> list[RawRow]:
    header, body = rows[0], rows[1:]
    labels = _header_labels(header)
    records = []
    for row in body:
        records.append({
            label: (row[i] if i < len(row) else EMPTY_CELL)
            for i, label in enumerate(labels)
        })
    return records


def _as_arrays(rows: list[list]) -> list[RawRow]:
    return [{i: cell for i, cell in enumerate(row)} for row in rows]


def to_records(array_rows: list[RawRow]) -> list[RawRow]:
    """Re-shape array-mode rows into record-mode rows (first row = header)."""
    rows = [list(row.values()) for row in array_rows]
    return _as_records(rows) if rows else []


# ── Public API ────────────────────────────────────────────────────────────────

def decode(
    data: bytes,
    mime_type: str | None,
    filename: str | None,
    mode: str = RECORD_MODE,
    settings: Settings | None = None,
) -> list[RawRow]:
    """
    Decode an uploaded file into rows of Cells.

    Raises SizeExceeded, UnsupportedFormat, UnreadableDocument or EmptyDocument.
    """
    settings = settings or Settings()
    if mode not in (RECORD_MODE, ARRAY_MODE):
        raise ValueError(f"Unknown decode mode: {mode}")

    if len(data) > settings.max_upload_bytes:
        raise SizeExceeded(
            f"File is {len(data):,} bytes; the limit is {settings.max_upload_bytes:,} bytes"
        )

    fmt = detect_format(mime_type, filename)
    if fmt == SPREADSHEET:
        raw_rows = _iter_spreadsheet_rows(data, excel_engine(data, mime_type, filename))
    else:
        raw_rows = _iter_csv_rows(data, settings)

    # Rows arrive trimmed, so an all-empty row is an empty list
    rows = _pad_rows([row for row in raw_rows if row], settings)

    decoded = _as_arrays(rows)
    if mode == RECORD_MODE:
        decoded = to_records(decoded)

    if not decoded:
        raise EmptyDocument("File is empty or contains no valid data")

    logger.info(f"Decoded {filename or 'upload'} as {fmt} ({mode} mode): {len(decoded)} rows")
    return decoded
