"""
Runtime settings.

Values come from the environment, optionally seeded from a .env file via
python-dotenv. Settings are built once at process start and passed down
explicitly; no module reads the environment on its own.
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_SAMPLE_ROWS = 10
DEFAULT_CSV_CHUNK_ROWS = 1000
# Decoded grids are capped so a ragged upload cannot expand far beyond its byte size
MAX_COLUMNS = 1000
MAX_CELLS = 2_000_000
OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_STRUCTURE_MODEL = "llama3.2"
DEFAULT_STRUCTURE_TIMEOUT = 30

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    sample_rows: int = DEFAULT_SAMPLE_ROWS
    csv_chunk_rows: int = DEFAULT_CSV_CHUNK_ROWS
    max_columns: int = MAX_COLUMNS
    max_cells: int = MAX_CELLS
    ollama_base_url: str = OLLAMA_BASE_URL
    structure_model: str = DEFAULT_STRUCTURE_MODEL
    structure_timeout: int = DEFAULT_STRUCTURE_TIMEOUT
    ai_structure_enabled: bool = False
    log_level: str = "INFO"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def load_settings(env_file: Path | None = None) -> Settings:
    """Load settings from the environment (and a .env file if present)."""
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()

    settings = Settings(
        max_upload_bytes=_env_int("PNLSIGHT_MAX_UPLOAD_BYTES", MAX_UPLOAD_BYTES),
        sample_rows=_env_int("PNLSIGHT_SAMPLE_ROWS", DEFAULT_SAMPLE_ROWS),
        csv_chunk_rows=_env_int("PNLSIGHT_CSV_CHUNK_ROWS", DEFAULT_CSV_CHUNK_ROWS),
        max_columns=_env_int("PNLSIGHT_MAX_COLUMNS", MAX_COLUMNS),
        max_cells=_env_int("PNLSIGHT_MAX_CELLS", MAX_CELLS),
        ollama_base_url=os.getenv("OLLAMA_BASE_URL", OLLAMA_BASE_URL).rstrip("/"),
        structure_model=os.getenv("PNLSIGHT_STRUCTURE_MODEL", DEFAULT_STRUCTURE_MODEL),
        structure_timeout=_env_int("PNLSIGHT_STRUCTURE_TIMEOUT", DEFAULT_STRUCTURE_TIMEOUT),
        ai_structure_enabled=_env_bool("PNLSIGHT_AI_STRUCTURE", False),
        log_level=os.getenv("PNLSIGHT_LOG_LEVEL", "INFO").upper(),
    )
    logger.debug(f"Loaded settings: {settings}")
    return settings
