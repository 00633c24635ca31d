"""
Failure taxonomy for the ingestion pipeline.

Every module raises one of these; pipeline.process_file turns them into a
failed ProcessingResult so nothing escapes the pipeline boundary.
"""


class PnLSightError(Exception):
    """Base class for all pipeline failures."""


class UnsupportedFormat(PnLSightError):
    """Neither the MIME type nor the filename extension is CSV or a spreadsheet."""


class EmptyDocument(PnLSightError):
    """Decoding produced zero rows."""


class UnreadableDocument(PnLSightError):
    """The file has a supported type but its contents could not be parsed."""


class NoValidRows(PnLSightError):
    """Rows were decoded but none survived normalization."""


class SizeExceeded(PnLSightError):
    """The upload is larger than the configured ceiling."""


class StructureInferenceUnavailable(PnLSightError):
    """
    The AI structure-inference service could not be reached or answered with
    something unusable. Non-fatal: the resolver falls back to local guesses.
    """
