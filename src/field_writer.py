"""
Field writer: applies a field -> value mapping to a loaded form.

Each field's widget type is known from the form model, so dispatch is one
lookup per field. When the primary type rejects a value, the compatible types
listed in ``WRITE_ATTEMPTS`` are tried before the field is counted as an
error. No single field failure aborts the batch.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from form_data import format_name
from pdf_form import FormField, PdfForm, WidgetType
from template_profile import DEFAULT_PROFILE, TemplateProfile

# Logger Setup
logger = logging.getLogger("field_writer")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

TRUE_TOKENS = {"yes", "true", "on", "1", "t", "y"}
FALSE_TOKENS = {"no", "false", "off", "0", "f", "n"}
CHECKED_TOKENS = TRUE_TOKENS | {"checked"}

YES_LABELS = {"yes", "y"}
NO_LABELS = {"no", "n"}

# Widget types tried for a field, primary type first
WRITE_ATTEMPTS = {
    WidgetType.TEXT: [WidgetType.TEXT],
    WidgetType.RADIO: [WidgetType.RADIO, WidgetType.CHECKBOX],
    WidgetType.CHECKBOX: [WidgetType.CHECKBOX, WidgetType.RADIO],
    WidgetType.DROPDOWN: [WidgetType.DROPDOWN, WidgetType.TEXT],
    WidgetType.UNKNOWN: [],
}

_DEPENDENT_KEY_RE = re.compile(r"dependent(\d+)_(.*)$", re.IGNORECASE)


@dataclass
class WriteStats:
    """Tallies for one write pass. Informational, not a failure signal."""
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    marriage_field_errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "success_count": self.success_count,
            "error_count": self.error_count,
            "skipped_count": self.skipped_count,
            "marriage_field_errors": self.marriage_field_errors,
        }

    def __str__(self) -> str:
        return (
            f"{self.success_count} written, {self.error_count} errors, "
            f"{self.skipped_count} skipped"
        )


# ============================================================================
# Option Matching
# ============================================================================

def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)


def match_option(value: str, options: List[str], boolean_pairs: bool = True) -> Optional[str]:
    """
    Pick the option that best matches a value.

    Exact (case-insensitive), then substring in either direction, then for a
    two-option group a boolean-ish value selects the first or second option,
    then the first option as last resort. Returns None only for no options.
    """
    if not options:
        return None
    lowered = value.strip().lower()

    for option in options:
        if option.lower() == lowered:
            return option

    if lowered:
        for option in options:
            option_lower = option.lower()
            if option_lower and (lowered in option_lower or option_lower in lowered):
                return option

    if boolean_pairs and len(options) == 2:
        if lowered in TRUE_TOKENS:
            return options[0]
        if lowered in FALSE_TOKENS:
            return options[1]

    return options[0]


def _write_text(field: FormField, value: str) -> None:
    field.set_text(value)


def _write_radio(field: FormField, value: str) -> None:
    option = match_option(value, field.get_options())
    if option is None:
        raise ValueError(f"Radio group {field.name!r} has no options")
    field.select(option)


def _write_checkbox(field: FormField, value: str) -> None:
    if value.strip().lower() in CHECKED_TOKENS:
        field.check()
    else:
        field.uncheck()


def _write_dropdown(field: FormField, value: str) -> None:
    option = match_option(value, field.get_options(), boolean_pairs=False)
    if option is None:
        raise ValueError(f"Dropdown {field.name!r} has no options")
    field.select(option)


WRITERS = {
    WidgetType.TEXT: _write_text,
    WidgetType.RADIO: _write_radio,
    WidgetType.CHECKBOX: _write_checkbox,
    WidgetType.DROPDOWN: _write_dropdown,
}


def write_field(field: FormField, value: str) -> bool:
    """Write one value, trying compatible widget types in order. True on success."""
    for widget_type in WRITE_ATTEMPTS.get(field.widget_type, []):
        try:
            WRITERS[widget_type](field, value)
            return True
        except Exception as e:
            logger.debug(f"Writing {field.name!r} as {widget_type.value} failed: {e}")
    return False


# ============================================================================
# Template Passes
# ============================================================================

def is_combined_name_field(field_name: str) -> bool:
    """
    A field holding a whole person name: mentions "name" and either both or
    neither of "first"/"last" (e.g. "...last name first name2", "name").
    """
    match = _DEPENDENT_KEY_RE.search(field_name)
    part = (match.group(2) if match else field_name).lower()
    if "name" not in part:
        return False
    return ("first" in part) == ("last" in part)


def _person_index(field_name: str, spouse_present: bool, profile: TemplateProfile) -> int:
    """Flattened dependent index for a name field; 0 when its row holds nobody."""
    match = _DEPENDENT_KEY_RE.search(field_name)
    if match:
        return int(match.group(1))
    suffix = re.search(profile.name_row_suffix, field_name)
    row = int(suffix.group(1)) if suffix else 1
    return profile.dependent_for_row(row, spouse_present)


def correct_name_order(
    mapping: Dict[str, str],
    flat_data: Dict[str, str],
    profile: TemplateProfile = DEFAULT_PROFILE,
) -> Dict[str, str]:
    """
    Force "firstName lastName" in every dependent/spouse combined-name field,
    whatever order the field's label suggests.

    Template rows are matched to dependents the same way as the relationship
    cells, so a row's name and relationship always describe the same person.
    A row with no matching dependent is cleared.
    """
    spouse_present = profile.has_spouse(flat_data)
    corrected = dict(mapping)
    for field_name in mapping:
        if not (profile.is_person_field(field_name) and is_combined_name_field(field_name)):
            continue
        index = _person_index(field_name, spouse_present, profile)
        first_name = flat_data.get(f"dependent{index}_firstName", "") if index else ""
        last_name = flat_data.get(f"dependent{index}_lastName", "") if index else ""
        full_name = format_name(first_name, last_name)
        if corrected[field_name] != full_name:
            logger.info(f"Name order correction: {field_name} = {full_name!r}")
        corrected[field_name] = full_name
    return corrected


def _pick_yes_no(options: List[str], married: bool) -> Optional[str]:
    wanted = YES_LABELS if married else NO_LABELS
    for option in options:
        if option.strip().lower() in wanted:
            return option
    if len(options) == 2:
        return options[0] if married else options[1]
    return None


def set_marriage_field(
    form: PdfForm,
    flat_data: Dict[str, str],
    stats: WriteStats,
    profile: TemplateProfile = DEFAULT_PROFILE,
) -> Optional[str]:
    """
    Answer the "are you married" radio group from the marital status.

    Failures are tallied in ``stats.marriage_field_errors`` only.

    Returns:
        The field name when it was set, else None
    """
    field_name = profile.find_marriage_field(form.get_field_names())
    if not field_name:
        return None

    field = form.get_field(field_name)
    if field is None or field.widget_type != WidgetType.RADIO:
        return None

    try:
        married = profile.is_married(flat_data.get("maritalStatus"))
        option = _pick_yes_no(field.get_options(), married)
        if option is None:
            raise ValueError(f"No yes/no option among {field.get_options()}")
        field.select(option)
        logger.info(f"Marriage field {field_name!r} set to {option!r}")
        stats.success_count += 1
        return field_name
    except Exception as e:
        logger.warning(f"Could not set marriage field {field_name!r}: {e}")
        stats.marriage_field_errors += 1
        return None


# ============================================================================
# Write Pass
# ============================================================================

def write_fields(
    form: PdfForm,
    mapping: Dict[str, Any],
    flat_data: Optional[Dict[str, str]] = None,
    profile: TemplateProfile = DEFAULT_PROFILE,
) -> WriteStats:
    """
    Apply a field -> value mapping to a form.

    Args:
        form: Loaded form (mutated in place)
        mapping: PDF field name -> value
        flat_data: Flattened applicant data, used by the marriage, name-order
            and suppression rules (omit to write the mapping as-is)
        profile: Template profile with those rules' field patterns

    Returns:
        WriteStats with success/error/skipped tallies
    """
    stats = WriteStats()
    values = {name: _as_text(v) for name, v in mapping.items()}
    values = {name: v for name, v in values.items() if v.strip()}
    logger.info(f"Writing {len(values)} fields ({len(mapping) - len(values)} blank values dropped)")

    handled = set()
    married = True
    if flat_data is not None:
        married = profile.is_married(flat_data.get("maritalStatus"))
        marriage_field = set_marriage_field(form, flat_data, stats, profile)
        if marriage_field:
            handled.add(marriage_field)
        values = correct_name_order(values, flat_data, profile)
        values = {name: v for name, v in values.items() if v.strip()}

    for field_name, value in values.items():
        if field_name in handled:
            continue

        if not married and profile.is_spouse_row_field(field_name):
            logger.debug(f"Skipping spouse-row field {field_name!r} (applicant not married)")
            stats.skipped_count += 1
            continue

        field = form.get_field(field_name)
        if field is None:
            logger.debug(f"No field named {field_name!r} in form")
            stats.error_count += 1
            continue

        if write_field(field, value):
            stats.success_count += 1
        else:
            logger.debug(f"Field {field_name!r} ({field.widget_type.value}) rejected value {value!r}")
            stats.error_count += 1

    logger.info(f"Write pass complete: {stats}")
    return stats
