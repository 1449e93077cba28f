"""
Applicant data flattening.

Turns the nested enrolment payload (scalars, a spouse described by top-level
fields, and dependent / beneficiary lists) into a flat string-to-string map
whose keys can be matched against PDF field names, e.g.::

    {"dependents": [{"firstName": "Sam", ...}]}  ->  {"dependent1_firstName": "Sam", ...}

When the applicant has a spouse, the spouse always takes dependent row 1 and
the listed dependents follow from row 2, oldest first.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from template_profile import DEFAULT_PROFILE, TemplateProfile

# Logger Setup
logger = logging.getLogger("form_data")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

DATE_FORMAT = "%Y/%m/%d"
DATE_INPUT_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%Y%m%d", "%m/%d/%Y", "%d/%m/%Y")

DEPENDENTS_KEY = "dependents"
SKIPPED_ITEM_KEYS = {"id"}


# ============================================================================
# Value Helpers
# ============================================================================

def stringify_value(value: Any) -> str:
    """Convert a scalar form value to the string written into the PDF."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.strftime(DATE_FORMAT)
    return str(value)


def format_name(first_name: Any, last_name: Any) -> str:
    """Always "first last", never reversed."""
    first = stringify_value(first_name).strip()
    last = stringify_value(last_name).strip()
    return f"{first} {last}".strip()


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a date of birth for ordering purposes.

    Returns None for missing or unparseable values; callers treat those as
    "keep current position".
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in DATE_INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def sort_by_birth_date(items: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Order items oldest first by ``dateOfBirth``.

    Only items with a parseable date are reordered among themselves; items
    without one stay in the slot they were given.
    """
    parsed = [parse_date(item.get("dateOfBirth")) for item in items]
    slots = [i for i, d in enumerate(parsed) if d is not None]
    ordered = sorted(slots, key=lambda i: parsed[i])

    result = list(items)
    for slot, source in zip(slots, ordered):
        result[slot] = items[source]
    return result


def singularize(key: str) -> str:
    """'beneficiaries' -> 'beneficiary', 'dependents' -> 'dependent'."""
    if key.endswith("ies"):
        return key[:-3] + "y"
    return key[:-1] if key.endswith("s") else key


def _add_name_keys(result: Dict[str, str], prefix: str, first_name: Any, last_name: Any) -> None:
    full_name = format_name(first_name, last_name)
    result[f"{prefix}_formattedName"] = full_name
    result[f"{prefix}_name"] = full_name
    result[f"{prefix}_fullName"] = full_name


# ============================================================================
# Flattening
# ============================================================================

def _flatten_dependents(
    result: Dict[str, str],
    dependents: Sequence[Any],
    form_data: Dict[str, Any],
    profile: TemplateProfile,
) -> None:
    """Write the dependent key family, spouse first when present."""
    start_index = 1

    if profile.has_spouse(form_data):
        first_name = form_data.get("spouseFirstName")
        last_name = form_data.get("spouseLastName")
        logger.info("Applicant has a spouse, placing spouse in dependent row 1")

        result["dependent1_firstName"] = stringify_value(first_name)
        result["dependent1_lastName"] = stringify_value(last_name)
        result["dependent1_dateOfBirth"] = stringify_value(form_data.get("spouseDateOfBirth"))
        result["dependent1_gender"] = stringify_value(form_data.get("spouseGender"))
        result["dependent1_relationship"] = "Spouse"
        _add_name_keys(result, "dependent1", first_name, last_name)
        start_index = 2

    items = [d for d in dependents if isinstance(d, dict)]
    for offset, dependent in enumerate(sort_by_birth_date(items)):
        prefix = f"dependent{start_index + offset}"
        for prop, value in dependent.items():
            if prop in SKIPPED_ITEM_KEYS:
                continue
            result[f"{prefix}_{prop}"] = stringify_value(value)

        if dependent.get("firstName") or dependent.get("lastName"):
            _add_name_keys(result, prefix, dependent.get("firstName"), dependent.get("lastName"))

    logger.debug(f"Flattened {len(items)} dependents starting at row {start_index}")


def _flatten_collection(result: Dict[str, str], key: str, items: Sequence[Any]) -> None:
    """Generic list flattening (beneficiaries and any other list-valued key)."""
    prefix_base = singularize(key)
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        prefix = f"{prefix_base}{index + 1}"
        for prop, value in item.items():
            result[f"{prefix}_{prop}"] = stringify_value(value)

        if item.get("firstName") or item.get("lastName"):
            result[f"{prefix}_formattedName"] = format_name(item.get("firstName"), item.get("lastName"))


def flatten_form_data(
    form_data: Dict[str, Any],
    profile: TemplateProfile = DEFAULT_PROFILE,
) -> Dict[str, str]:
    """
    Flatten applicant data into indexed string keys.

    Args:
        form_data: Applicant data (scalars, ``dependents``, ``beneficiaries``,
            spouse fields, ``maritalStatus``)
        profile: Template profile deciding which marital statuses imply a spouse

    Returns:
        Dict of flat key -> string value. Never raises on malformed values.
    """
    result: Dict[str, str] = {}

    for key, value in form_data.items():
        if key == DEPENDENTS_KEY:
            _flatten_dependents(result, value if isinstance(value, (list, tuple)) else [], form_data, profile)
        elif isinstance(value, (list, tuple)):
            _flatten_collection(result, key, value)
        elif isinstance(value, dict):
            for sub_key, sub_value in value.items():
                result[f"{key}_{sub_key}"] = stringify_value(sub_value)
        else:
            result[key] = stringify_value(value)

    if DEPENDENTS_KEY not in form_data:
        _flatten_dependents(result, [], form_data, profile)

    return result
