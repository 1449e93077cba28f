"""Exceptions raised by the PDF filling pipeline."""


class PdfFillerError(Exception):
    """Base class for all pipeline errors."""


class PdfLoadError(PdfFillerError):
    """The template bytes could not be parsed as a PDF document."""


class PdfSaveError(PdfFillerError):
    """Every save strategy failed; there is no filled document to return."""


class InvalidPdfDataError(PdfFillerError):
    """A base64 / data URI payload could not be decoded."""


class MappingParseError(PdfFillerError):
    """The model output could not be recovered as a JSON object."""


class GeminiError(PdfFillerError):
    """The Gemini call failed or returned no text."""
