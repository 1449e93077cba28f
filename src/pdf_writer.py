"""
PDF Form Filling Pipeline.

Fills an enrolment PDF template with applicant data:
1. Flattens the applicant data into indexed string keys
2. Reads the template's form field names
3. Maps field names to values (precomputed clean -> original mappings, or one AI call)
4. Writes values by widget type, tallying successes and errors
5. Saves the document, falling back to a plain save

Unreadable templates and templates without fields come back unchanged; the only
hard failure is a document that cannot be saved (PdfSaveError).
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from errors import PdfLoadError
from field_mapping import get_field_mappings, map_with_clean_to_original
from field_writer import WriteStats, write_fields
from form_data import flatten_form_data
from gemini_client import Completer
from pdf_form import PdfDocument
from pdf_inspector import PdfAnalysisResult, analyze_pdf
from pdf_serializer import decode_pdf_data_uri, encode_pdf_data_uri, serialize_document
from template_profile import DEFAULT_PROFILE, TemplateProfile

# Logger Setup
logger = logging.getLogger("pdf_writer")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)


# ============================================================================
# Result Classes
# ============================================================================

@dataclass
class FillResult:
    """Filled document plus diagnostic counts."""
    pdf_bytes: bytes
    total_fields: int = 0
    fields_mapped: int = 0
    stats: WriteStats = field(default_factory=WriteStats)
    unchanged: bool = False
    used_fallback: bool = False
    mapping_source: str = "none"  # "provided", "ai", "fallback" or "none"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_fields": self.total_fields,
            "fields_mapped": self.fields_mapped,
            **self.stats.to_dict(),
            "unchanged": self.unchanged,
            "used_fallback": self.used_fallback,
            "mapping_source": self.mapping_source,
        }


@dataclass
class ProcessAndFillResult:
    """Result of analyse-then-fill."""
    fill: FillResult
    analysis: PdfAnalysisResult

    @property
    def debug_info(self) -> Dict[str, int]:
        return {
            "total_fields": self.analysis.total_fields,
            "fields_mapped": len(self.analysis.clean_to_original),
        }


# ============================================================================
# Pipeline
# ============================================================================

def fill_pdf(
    template_bytes: bytes,
    applicant_data: Dict[str, Any],
    clean_to_original: Optional[Dict[str, str]] = None,
    completer: Optional[Completer] = None,
    profile: TemplateProfile = DEFAULT_PROFILE,
) -> FillResult:
    """
    Fill a PDF template with applicant data.

    Args:
        template_bytes: Raw bytes of the fillable template
        applicant_data: Nested applicant data (scalars, dependents, beneficiaries, spouse fields)
        clean_to_original: Precomputed clean name -> PDF field name mapping; when given,
            the AI is not called
        completer: Prompt -> text callable for the AI mapping (defaults to Gemini)
        profile: Template profile for the template-specific rules

    Returns:
        FillResult. ``unchanged`` is set (and the template bytes returned as-is)
        when the template is unreadable or has no form fields.

    Raises:
        PdfSaveError: if the filled document cannot be saved
    """
    flat_data = flatten_form_data(applicant_data, profile)
    logger.info(f"Flattened applicant data into {len(flat_data)} keys")

    try:
        document = PdfDocument.load(template_bytes)
        form = document.get_form()
        field_names = form.get_field_names()
    except PdfLoadError as e:
        logger.warning(f"Template is not a readable PDF, returning it unchanged: {e}")
        return FillResult(pdf_bytes=template_bytes, unchanged=True)
    except Exception as e:
        logger.warning(f"Could not read the template's form, returning it unchanged: {e}")
        return FillResult(pdf_bytes=template_bytes, unchanged=True)

    if not field_names:
        logger.info("Template has no form fields, returning it unchanged")
        return FillResult(pdf_bytes=template_bytes, unchanged=True)
    logger.info(f"Template has {len(field_names)} form fields")

    used_fallback = False
    if clean_to_original is not None:
        logger.info("Using provided field mappings")
        mapping = map_with_clean_to_original(flat_data, clean_to_original, field_names)
        mapping_source = "provided"
    else:
        mapping, used_fallback = get_field_mappings(field_names, flat_data, completer, profile)
        mapping_source = "fallback" if used_fallback else "ai"

    stats = write_fields(form, mapping, flat_data, profile)
    pdf_bytes = serialize_document(document)
    logger.info(f"Filled PDF ({len(pdf_bytes):,} bytes): {stats}")

    return FillResult(
        pdf_bytes=pdf_bytes,
        total_fields=len(field_names),
        fields_mapped=len(mapping),
        stats=stats,
        used_fallback=used_fallback,
        mapping_source=mapping_source,
    )


def fill_pdf_data_uri(
    template_data_uri: str,
    applicant_data: Dict[str, Any],
    clean_to_original: Optional[Dict[str, str]] = None,
    completer: Optional[Completer] = None,
    profile: TemplateProfile = DEFAULT_PROFILE,
) -> Tuple[str, FillResult]:
    """
    Data-URI variant of ``fill_pdf`` for transport callers.

    Raises:
        InvalidPdfDataError: if the template payload is not valid base64
        PdfSaveError: if the filled document cannot be saved
    """
    template_bytes = decode_pdf_data_uri(template_data_uri)
    result = fill_pdf(template_bytes, applicant_data, clean_to_original, completer, profile)
    return encode_pdf_data_uri(result.pdf_bytes), result


def process_and_fill_pdf(
    template_bytes: bytes,
    applicant_data: Dict[str, Any],
    skip_processing: bool = False,
    existing_analysis: Optional[Union[PdfAnalysisResult, Dict[str, Any]]] = None,
    completer: Optional[Completer] = None,
    profile: TemplateProfile = DEFAULT_PROFILE,
) -> ProcessAndFillResult:
    """
    Analyze a template, then fill it through the analysis's clean -> original mapping.

    Args:
        template_bytes: Raw template bytes
        applicant_data: Nested applicant data
        skip_processing: Reuse ``existing_analysis`` instead of analysing again
        existing_analysis: A previous PdfAnalysisResult (or its dict form)
        completer: Prompt -> text callable (defaults to Gemini)
        profile: Template profile

    Returns:
        ProcessAndFillResult with the fill result and the analysis used
    """
    if skip_processing and existing_analysis is not None:
        logger.info("Skipping analysis, using existing mappings")
        analysis = (
            existing_analysis if isinstance(existing_analysis, PdfAnalysisResult)
            else PdfAnalysisResult.model_validate(existing_analysis)
        )
    else:
        analysis = analyze_pdf(template_bytes, completer)

    # An empty analysis carries no mappings; map with the AI instead
    clean_to_original = analysis.clean_to_original or None
    fill = fill_pdf(template_bytes, applicant_data, clean_to_original, completer, profile)
    return ProcessAndFillResult(fill=fill, analysis=analysis)


# ============================================================================
# CLI Entry Point
# ============================================================================

def _load_mappings(path: str) -> Dict[str, str]:
    with open(path, "r") as f:
        data = json.load(f)
    # Accept a bare mapping, an analysis result, or an API-style payload
    for key in ("clean_to_original", "cleanToOriginal"):
        if isinstance(data, dict) and isinstance(data.get(key), dict):
            return data[key]
    return data


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Fill a PDF form template with applicant data")
    parser.add_argument("--template", required=True, help="Path to the fillable PDF template")
    parser.add_argument("--data", help="JSON file with applicant data")
    parser.add_argument("--output", help="Path for the filled PDF")
    parser.add_argument("--mappings", help="JSON file with clean -> original field mappings")
    parser.add_argument("--analyze", action="store_true", help="Print the template analysis and exit")

    args = parser.parse_args()
    template = Path(args.template).read_bytes()

    if args.analyze:
        print(json.dumps(analyze_pdf(template).model_dump(), indent=2))
        raise SystemExit(0)

    if not args.data or not args.output:
        parser.error("--data and --output are required unless --analyze is given")

    with open(args.data, "r") as f:
        applicant = json.load(f)

    mappings = _load_mappings(args.mappings) if args.mappings else None
    result = fill_pdf(template, applicant, clean_to_original=mappings)

    Path(args.output).write_bytes(result.pdf_bytes)
    print(json.dumps(result.to_dict(), indent=2))
