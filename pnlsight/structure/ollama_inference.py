"""
AI structure inference using an Ollama local LLM.
Given the first rows of an irregular ledger, asks the model which columns hold
the date, income/expense flag, category, expense code, subcategory and amount.

The inferrer is built once at process start from Settings and passed to the
column resolver explicitly. Any failure raises StructureInferenceUnavailable,
which the resolver treats as "no hint".

Usage:
  1. Install Ollama: https://ollama.com
  2. Pull a model: ollama pull llama3.2
  3. Ensure Ollama is running: ollama serve
  4. Set PNLSIGHT_AI_STRUCTURE=1
"""

import json
import logging

import requests

from pnlsight.config import Settings
from pnlsight.errors import StructureInferenceUnavailable

logger = logging.getLogger(__name__)

STRUCTURE_PROMPT = """
Analyze this spreadsheet data and identify the structure. Based on the description:
- First or second row has dates
- Column D is header for income vs expense
- Column E is category
- Column F is expense code in those categories
- Column G is subcategory
- Some rows in E have 'total' in them (sum of items above since previous total)

Sample data:
{sample}

Respond with JSON only:
{{
  "headerRow": number (0-based index of header row),
  "dateColumn": "column letter or index",
  "incomeExpenseColumn": "column letter or index",
  "categoryColumn": "column letter or index",
  "expenseCodeColumn": "column letter or index",
  "subcategoryColumn": "column letter or index",
  "amountColumn": "column letter or index"
}}"""


# ── Ollama connectivity ────────────────────────────────────────────────────

def check_ollama_status(base_url: str, model: str, timeout: int = 3) -> tuple[bool, str]:
    """Whether Ollama answers at base_url and has the structure model pulled."""
    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=timeout)
        resp.raise_for_status()
        pulled = {m.get("name", "").split(":")[0] for m in resp.json().get("models", [])}
    except requests.exceptions.ConnectionError:
        return False, f"not reachable at {base_url} (start it with: ollama serve)"
    except (requests.exceptions.RequestException, ValueError) as exc:
        return False, f"status check failed: {exc}"
    if model.split(":")[0] not in pulled:
        return False, f"model {model} is not pulled (run: ollama pull {model})"
    return True, f"ready with {model}"


# ── Prompt builder ─────────────────────────────────────────────────────────

def build_structure_prompt(sample: list[list]) -> str:
    """Fill the fixed instruction prompt with a JSON dump of the sample rows."""
    return STRUCTURE_PROMPT.format(sample=json.dumps(sample, indent=2, default=str))


# ── Inferrer ───────────────────────────────────────────────────────────────

class OllamaStructureInferrer:
    """Column-layout hints from an Ollama model (blocking, non-streaming)."""

    def __init__(self, base_url: str, model: str, timeout: int):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    def infer_structure(self, sample: list[list]) -> dict:
        """
        Return the model's role-to-column mapping for the sample.

        Raises StructureInferenceUnavailable if Ollama is unreachable, times
        out, or answers with anything other than a JSON object.
        """
        payload = {
            "model": self.model,
            "prompt": build_structure_prompt(sample),
            "format": "json",
            "stream": False,
        }
        try:
            resp = requests.post(
                f"{self.base_url}/api/generate",
                json=payload,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            text = resp.json()["response"]
        except requests.exceptions.ConnectionError as exc:
            raise StructureInferenceUnavailable(
                "Cannot connect to Ollama. Ensure it is running: ollama serve"
            ) from exc
        except requests.exceptions.Timeout as exc:
            raise StructureInferenceUnavailable(
                f"Ollama request timed out after {self.timeout} s"
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise StructureInferenceUnavailable(f"Ollama request failed: {exc}") from exc
        except (KeyError, ValueError) as exc:
            raise StructureInferenceUnavailable(
                f"Unexpected response format from Ollama: {exc}"
            ) from exc

        try:
            structure = json.loads(text or "{}")
        except (TypeError, json.JSONDecodeError) as exc:
            raise StructureInferenceUnavailable(f"Model did not return JSON: {exc}") from exc
        if not isinstance(structure, dict):
            raise StructureInferenceUnavailable(
                f"Model returned {type(structure).__name__}, expected a JSON object"
            )
        logger.info(f"Ollama ({self.model}) structure hint: {structure}")
        return structure


def build_inferrer(settings: Settings) -> OllamaStructureInferrer | None:
    """The configured inferrer, or None when AI structure inference is disabled."""
    if not settings.ai_structure_enabled:
        return None
    return OllamaStructureInferrer(
        base_url=settings.ollama_base_url,
        model=settings.structure_model,
        timeout=settings.structure_timeout,
    )
