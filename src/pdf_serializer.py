"""
Document serialization and data-URI transport encoding.
"""

import base64
import binascii
import logging
import re

from errors import InvalidPdfDataError, PdfSaveError
from pdf_form import PdfDocument

# Logger Setup
logger = logging.getLogger("pdf_serializer")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

PDF_DATA_URI_PREFIX = "data:application/pdf;base64,"

# Chunk sizes are multiples of 3 so concatenated base64 chunks carry no padding
ENCODE_CHUNK_SIZE = 3 * 8192
FALLBACK_CHUNK_SIZE = 3 * 64

_DATA_URI_RE = re.compile(r"^data:[^,]*?;base64,", re.IGNORECASE)


def serialize_document(document: PdfDocument) -> bytes:
    """
    Save a filled document.

    Tries a save that regenerates field appearances first, then a plain save.

    Raises:
        PdfSaveError: when both strategies fail
    """
    try:
        return document.save(update_field_appearances=True)
    except Exception as e:
        logger.warning(f"Primary save failed, retrying with default options: {e}")

    try:
        return document.save(update_field_appearances=False)
    except Exception as e:
        logger.error(f"Fallback save failed: {e}")
        raise PdfSaveError("Unable to save the filled PDF") from e


def _encode_chunked(pdf_bytes: bytes, chunk_size: int) -> str:
    view = memoryview(pdf_bytes)
    return "".join(
        base64.b64encode(view[i:i + chunk_size]).decode("ascii")
        for i in range(0, len(view), chunk_size)
    )


def encode_base64(pdf_bytes: bytes) -> str:
    """Base64-encode in chunks, falling back to small chunks if the bulk path fails."""
    try:
        return _encode_chunked(pdf_bytes, ENCODE_CHUNK_SIZE)
    except (MemoryError, ValueError, TypeError) as e:
        logger.warning(f"Bulk base64 encoding failed, using small chunks: {e}")
        return _encode_chunked(bytes(pdf_bytes), FALLBACK_CHUNK_SIZE)


def encode_pdf_data_uri(pdf_bytes: bytes) -> str:
    return PDF_DATA_URI_PREFIX + encode_base64(pdf_bytes)


def decode_pdf_data_uri(data: str) -> bytes:
    """
    Decode a ``data:application/pdf;base64,...`` URI or a bare base64 string.

    Raises:
        InvalidPdfDataError: if the payload is empty or not valid base64
    """
    if not isinstance(data, str) or not data.strip():
        raise InvalidPdfDataError("PDF data is empty")

    payload = _DATA_URI_RE.sub("", data.strip(), count=1)
    payload = re.sub(r"\s+", "", payload)
    try:
        decoded = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidPdfDataError(f"Invalid base64 PDF data: {e}") from e

    if not decoded:
        raise InvalidPdfDataError("PDF data is empty")
    return decoded
