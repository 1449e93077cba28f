"""
PDF form inspection and standalone template analysis.

``get_pdf_field_names`` is what the fill pipeline needs; ``analyze_pdf`` adds
widget types, clean names, categories and a section summary so a person can
review the clean -> original mapping before filling.
"""

import json
import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from errors import PdfLoadError
from field_mapping import get_clean_field_names
from gemini_client import Completer
from pdf_form import PdfDocument, PdfForm

# Logger Setup
logger = logging.getLogger("pdf_inspector")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# First match wins; matched against the lowercased clean name
CATEGORY_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("dependent", ["spouse", "dependent"]),
    ("beneficiary", ["beneficiary"]),
    ("employment", ["employment", "job", "salary", "earnings", "hours"]),
    ("personal", ["name", "address", "birth", "email", "phone", "gender"]),
    ("coverage", ["coverage", "waiver", "benefit", "plan"]),
]
DEFAULT_CATEGORY = "other"


# ============================================================================
# Pydantic Schemas
# ============================================================================

class FormFieldInfo(BaseModel):
    """One interactive field discovered in a template."""
    original_name: str = Field(description="Fully qualified field name as stored in the PDF.")
    clean_name: str = Field(description="Normalized camelCase name used as the applicant-data key.")
    widget_type: str = Field(description="Widget type: 'text', 'checkbox', 'radio', 'dropdown' or 'unknown'.")
    is_required: bool = Field(default=False, description="True if the field carries the Required flag.")
    category: str = Field(description="personal, dependent, beneficiary, employment, coverage or other.")
    options: Optional[List[str]] = Field(default=None, description="Option labels for radio groups and dropdowns.")


class FormStructureSummary(BaseModel):
    """Sections found in the template, in first-seen order, with their fields' clean names."""
    sections: List[str] = Field(default_factory=list)
    field_groups: Dict[str, List[str]] = Field(default_factory=dict)


class PdfAnalysisResult(BaseModel):
    """Standalone analysis of one template."""
    original_to_clean: Dict[str, str] = Field(default_factory=dict)
    clean_to_original: Dict[str, str] = Field(default_factory=dict)
    field_metadata: List[FormFieldInfo] = Field(default_factory=list)
    total_fields: int = 0
    form_structure: FormStructureSummary = Field(default_factory=FormStructureSummary)
    used_fallback_names: bool = Field(default=False, description="True if clean names were derived without the AI.")


# ============================================================================
# Field Discovery
# ============================================================================

def load_form(pdf_bytes: bytes) -> Optional[PdfForm]:
    """Load a template's form, or None when the bytes are not a readable PDF."""
    try:
        return PdfDocument.load(pdf_bytes).get_form()
    except PdfLoadError as e:
        logger.warning(f"Cannot inspect PDF: {e}")
        return None


def get_pdf_field_names(pdf_bytes: bytes) -> List[str]:
    """
    Get the field names of a PDF form.

    Args:
        pdf_bytes: Raw PDF bytes

    Returns:
        List of field names; empty for unreadable PDFs and PDFs without a form
    """
    form = load_form(pdf_bytes)
    if form is None:
        return []
    names = form.get_field_names()
    logger.info(f"Found {len(names)} form fields in the PDF")
    return names


def categorize_field(clean_name: str) -> str:
    lowered = clean_name.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return category
    return DEFAULT_CATEGORY


def extract_pdf_form_fields(form: PdfForm, original_to_clean: Dict[str, str]) -> List[FormFieldInfo]:
    fields = []
    for form_field in form.get_fields():
        clean_name = original_to_clean.get(form_field.name) or form_field.name
        options = form_field.get_options()
        fields.append(FormFieldInfo(
            original_name=form_field.name,
            clean_name=clean_name,
            widget_type=form_field.widget_type.value,
            is_required=form_field.is_required,
            category=categorize_field(clean_name),
            options=options or None,
        ))
    return fields


def summarize_structure(fields: List[FormFieldInfo]) -> FormStructureSummary:
    summary = FormStructureSummary()
    for info in fields:
        if info.category not in summary.field_groups:
            summary.sections.append(info.category)
            summary.field_groups[info.category] = []
        summary.field_groups[info.category].append(info.clean_name)
    return summary


# ============================================================================
# Analysis
# ============================================================================

def analyze_pdf(pdf_bytes: bytes, completer: Optional[Completer] = None) -> PdfAnalysisResult:
    """
    Analyze a template: field list, clean names, categories and sections.

    Args:
        pdf_bytes: Raw PDF bytes
        completer: Prompt -> text callable for clean names (defaults to Gemini)

    Returns:
        PdfAnalysisResult; empty when the PDF is unreadable, has no fields,
        or analysis fails
    """
    try:
        form = load_form(pdf_bytes)
        if form is None:
            return PdfAnalysisResult()

        field_names = form.get_field_names()
        if not field_names:
            logger.info("No form fields found in the PDF")
            return PdfAnalysisResult()
        logger.info(f"Analyzing {len(field_names)} form fields")

        original_to_clean, used_fallback = get_clean_field_names(field_names, completer)

        clean_to_original: Dict[str, str] = {}
        for original, clean in original_to_clean.items():
            if clean in clean_to_original:
                logger.debug(f"Clean name {clean!r} already maps to {clean_to_original[clean]!r}, ignoring {original!r}")
                continue
            clean_to_original[clean] = original

        fields = extract_pdf_form_fields(form, original_to_clean)
        structure = summarize_structure(fields)
        logger.info(f"Analysis complete: {len(fields)} fields in sections {structure.sections}")

        return PdfAnalysisResult(
            original_to_clean=original_to_clean,
            clean_to_original=clean_to_original,
            field_metadata=fields,
            total_fields=len(field_names),
            form_structure=structure,
            used_fallback_names=used_fallback,
        )
    except Exception as e:
        logger.exception(f"Error analyzing PDF: {e}")
        return PdfAnalysisResult()


if __name__ == "__main__":
    import argparse
    from pathlib import Path

    parser = argparse.ArgumentParser(description="Analyze the form fields of a PDF template")
    parser.add_argument("pdf", help="Path to the PDF template")
    parser.add_argument("--names-only", action="store_true", help="Only list field names (no AI call)")
    args = parser.parse_args()

    data = Path(args.pdf).read_bytes()
    if args.names_only:
        for name in get_pdf_field_names(data):
            print(name)
    else:
        print(json.dumps(analyze_pdf(data).model_dump(), indent=2))
