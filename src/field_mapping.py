"""
Semantic field mapping: PDF field names -> values to write.

The AI completer receives the raw field names and the flattened applicant data
and answers with a JSON object ``{"<pdf field name>": "<value>"}``. Its output
goes through a recovery cascade (direct JSON, fenced block, first ``{...}``,
textual repair), then through template corrections that are never left to the
model. When the call or the parse fails, a substring matcher produces the
mapping instead, so ``get_field_mappings`` always returns something.
"""

import json
import logging
import re
from typing import Any, Dict, Optional, Sequence, Tuple

from errors import MappingParseError
from form_data import format_name, stringify_value
from gemini_client import Completer, generate_text, repair_truncated_json
from template_profile import DEFAULT_PROFILE, TemplateProfile

# Logger Setup
logger = logging.getLogger("field_mapping")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_PERSON_PREFIX_RE = re.compile(r"^((?:dependent|beneficiary)\d+)_")

# Fields the model must pay attention to when they exist in the template
KEY_EMPLOYMENT_FIELDS = [
    "Personal Identification Number",
    "Member Number",
    "Annual Earnings",
    "Dept/Div/Location",
    "Department/Division/Location",
    "Hours Per Week",
    "Hours/Week",
    "# of hours per week",
    "Class",
]


# ============================================================================
# JSON Recovery
# ============================================================================

def _load_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_json_mapping(response_text: str) -> Dict[str, Any]:
    """
    Recover a JSON object from model output.

    Stages, first success wins:
        1. the whole text as JSON
        2. the content of a ```json fenced block
        3. the first-to-last brace span
        4. textual repair (collapsed whitespace, trailing commas, unclosed brackets)

    Raises:
        MappingParseError: if no stage yields a JSON object
    """
    if not response_text or not response_text.strip():
        raise MappingParseError("Empty model response")

    text = response_text.strip()
    parsed = _load_object(text)
    if parsed is not None:
        return parsed

    candidate = text
    fenced = _FENCED_BLOCK_RE.search(text)
    if fenced:
        candidate = fenced.group(1).strip()
        parsed = _load_object(candidate)
        if parsed is not None:
            logger.info("Recovered JSON mapping from fenced code block")
            return parsed

    braces = _OBJECT_RE.search(candidate) or _OBJECT_RE.search(text)
    if braces:
        candidate = braces.group(0)
        parsed = _load_object(candidate)
        if parsed is not None:
            logger.info("Recovered JSON mapping from brace-delimited object")
            return parsed
    elif "{" in candidate:
        # Truncated output: no closing brace at all
        candidate = candidate[candidate.index("{"):]

    cleaned = re.sub(r"\s+", " ", candidate)
    cleaned = re.sub(r",\s*([\}\]])", r"\1", cleaned)
    parsed = _load_object(cleaned)
    if parsed is not None:
        logger.info("Recovered JSON mapping after whitespace/trailing-comma cleanup")
        return parsed

    repaired = repair_truncated_json(cleaned)
    if repaired:
        parsed = _load_object(repaired)
        if parsed is not None:
            logger.info("Recovered JSON mapping after truncation repair")
            return parsed

    logger.error(f"Unparseable model response (last 500 chars): ...{text[-500:]}")
    raise MappingParseError("Failed to parse model response as a JSON object")


def normalize_mapping(raw: Dict[str, Any]) -> Dict[str, str]:
    """Stringify scalar values; nested values cannot be written to a field and are dropped."""
    mapping: Dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(value, (dict, list)):
            logger.debug(f"Dropping non-scalar mapping value for {key!r}")
            continue
        mapping[str(key)] = stringify_value(value)
    return mapping


# ============================================================================
# Prompt Building
# ============================================================================

def enrich_prompt_data(flat_data: Dict[str, str], profile: TemplateProfile = DEFAULT_PROFILE) -> Dict[str, str]:
    """
    Add derived name keys for every dependent/beneficiary row and pin the
    spouse row's relationship, so the model only has to copy values.
    """
    enriched = dict(flat_data)

    prefixes = []
    for key in flat_data:
        match = _PERSON_PREFIX_RE.match(key)
        if match and match.group(1) not in prefixes:
            prefixes.append(match.group(1))

    for prefix in prefixes:
        first_name = enriched.get(f"{prefix}_firstName", "")
        last_name = enriched.get(f"{prefix}_lastName", "")
        if first_name or last_name:
            full_name = format_name(first_name, last_name)
            enriched[f"{prefix}_formattedName"] = full_name
            enriched[f"{prefix}_name"] = full_name
            enriched[f"{prefix}_fullName"] = full_name

    if profile.has_spouse(enriched):
        enriched["dependent1_relationship"] = "Spouse"

    return enriched


def build_mapping_prompt(field_names: Sequence[str], form_data: Dict[str, str]) -> str:
    """
    Build the field -> value prompt for one template fill.

    Args:
        field_names: Raw PDF field names, verbatim
        form_data: Enriched flat applicant data

    Returns:
        Prompt string for the completer
    """
    field_section = "\n".join(field_names)
    data_section = "\n".join(f"{key}: {value}" for key, value in form_data.items())
    key_fields = "\n".join(f"- {name}" for name in KEY_EMPLOYMENT_FIELDS)

    return f"""You are an expert in reading PDF forms and matching form field names with provided data.

## PDF Form Field Names
{field_section}

## Applicant Data
{data_section}

## Task
Create a mapping of PDF form field names to the appropriate data values.
Use the exact field names from the PDF as keys and the data values as values.

## Key Fields
These fields must be mapped correctly if they exist in the PDF:
{key_fields}

## Rules
1. "are you married or in a common law relationship" has "yes" and "no" options. Choose "yes" when
   "maritalStatus" is "Married" or "Common-law", otherwise "no".
2. When "maritalStatus" is "Common-law", map the date of cohabitation field to "cohabitationDate".
3. Dependent rows: each row holds a name, gender, date of birth and, in its last cell, the relationship.
   If the spouse fields are not empty, the spouse takes the first dependent row (dependent1 in the data)
   and dependentN goes on row N. If the spouse fields are empty, leave the first row empty: the dependents
   list starts on the second row (e.g. "list of dependents spouse then dependents oldest first last naMe
   first naMe2_2"), with dependent1 on row 2 and dependentN on row N+1. Dependents are listed oldest first.
4. NAME ORDER: every dependent, spouse and beneficiary name is written "firstName lastName"
   (e.g. "John Smith", never "Smith John"), even when the field name reads "last name first name".
   Use the provided "formattedName" values.
5. Fields containing "Extended Health Care" take "waiveEHC"; fields containing "Dental Care" take
   "waiveDental". These hold "Y" or "N".
6. Coverage level Yes/No fields in the Extended Health Care section take "otherEHCCoverage", those in the
   Dental Care section take "otherDentalCoverage". A combined "EXTENDED HEALTH CARE EHC DENTAL CARE" field
   takes "coverageLevel".
7. When "coverageLevel" is "O", fill the alternate coverage details: employer/plan sponsor from
   "alternativePlanSponsor", insurer from "alternativeInsurer", group/policy number from
   "alternativeGroupNumber".
8. When "spouseBeneficiaryDesignation" is set, check ONLY the matching "revocable" or "irrevocable" box.

## Output
Return ONLY a valid JSON object like {{"Field1": "Value1", "Field2": "Value2"}}.
No explanations, no markdown formatting, no code fences."""


def build_clean_names_prompt(field_names: Sequence[str]) -> str:
    field_section = "\n".join(field_names)

    return f"""I have a PDF form with the following field names:

{field_section}

Create a mapping of the original field names to cleaner, standardized camelCase names:
1. Remove special characters and numbers that aren't part of the actual name
2. Convert names to meaningful camelCase (e.g. "First Name" -> "firstName")
3. Standardize common fields (e.g. every date of birth field -> "dateOfBirth")
4. Group related fields with common prefixes (e.g. "spouseFirstName")
5. Map checkbox/radio fields to meaningful boolean or enum names
6. Preserve the semantic meaning of each field

Preferred names for insurance enrolment forms:
- Personal: firstName, lastName, dateOfBirth, gender, email, phone, address, city, province, postalCode
- Employment: employeeId, employeeNumber, annualEarnings, hoursPerWeek, jobTitle, department, employmentDate
- Spouse fields use the 'spouse' prefix (spouseFirstName); children use 'dependent' with an index (dependentFirstName1)
- Beneficiaries: beneficiaryName, beneficiaryRelationship, beneficiaryPercentage
- Coverage: coverageType, coverageLevel; waiver fields use the 'waiver' prefix

Make sure the marriage question options and the revocable / irrevocable beneficiary designation boxes are included.

Return ONLY a valid JSON object with the original field names as keys and the clean names as values.
No explanations, no markdown formatting, no code fences."""


# ============================================================================
# Template Corrections and Fallback
# ============================================================================

def apply_relationship_corrections(
    mapping: Dict[str, str],
    flat_data: Dict[str, str],
    field_names: Sequence[str],
    profile: TemplateProfile = DEFAULT_PROFILE,
) -> Dict[str, str]:
    """
    Reassign the template's relationship cells from the flattened data.

    The relationship cells are named after the spouse field family but hold
    the rows after the spouse row (cell i sits on row i+2). Any model-assigned
    value is cleared first. With a spouse, cell i takes dependent{i+2};
    without one, dependent{i+1}.
    """
    present = set(field_names)
    spouse_present = profile.has_spouse(flat_data)

    corrected = dict(mapping)
    for index, field_name in enumerate(profile.relationship_fields):
        if field_name not in present:
            continue
        dependent = profile.dependent_for_row(index + 2, spouse_present)
        relationship = flat_data.get(f"dependent{dependent}_relationship", "")
        corrected[field_name] = relationship
        if relationship:
            logger.info(f"Relationship correction: {field_name} = {relationship} (dependent{dependent})")

    return corrected


def create_fallback_mapping(
    field_names: Sequence[str],
    form_data: Dict[str, str],
    profile: TemplateProfile = DEFAULT_PROFILE,
) -> Dict[str, str]:
    """
    Substring matcher used when the AI mapping is unavailable.

    Exact case-insensitive name matches always assign; containment matches
    only fill fields that are still empty.
    """
    mapping: Dict[str, str] = {}
    lowered_names = [(name, name.lower()) for name in field_names]

    for key, value in form_data.items():
        lowered_key = key.lower()
        if not lowered_key:
            continue
        for name, lowered in lowered_names:
            if lowered == lowered_key:
                mapping[name] = value
        for name, lowered in lowered_names:
            if lowered_key in lowered and not mapping.get(name):
                mapping[name] = value

    marital_status = form_data.get("maritalStatus", "")
    if marital_status:
        marriage_field = profile.find_marriage_field(list(field_names), profile.fallback_marriage_patterns)
        if marriage_field:
            mapping[marriage_field] = "YES" if profile.is_married(marital_status) else "NO"
            logger.info(f"Fallback marriage field: {marriage_field} = {mapping[marriage_field]}")

    logger.info(f"Fallback mapping assigned {len(mapping)} fields")
    return mapping


# ============================================================================
# Mapping Functions
# ============================================================================

def get_field_mappings(
    field_names: Sequence[str],
    flat_data: Dict[str, str],
    completer: Optional[Completer] = None,
    profile: TemplateProfile = DEFAULT_PROFILE,
) -> Tuple[Dict[str, str], bool]:
    """
    Map PDF field names to values with one AI call.

    Args:
        field_names: Raw PDF field names
        flat_data: Flattened applicant data
        completer: Prompt -> text callable (defaults to Gemini)
        profile: Template profile for the relationship corrections

    Returns:
        Tuple of (field name -> value mapping, used_fallback). Never raises.
    """
    completer = completer or generate_text
    try:
        prompt_data = enrich_prompt_data(flat_data, profile)
        prompt = build_mapping_prompt(field_names, prompt_data)
        response_text = completer(prompt)
        mapping = normalize_mapping(parse_json_mapping(response_text))
        mapping = apply_relationship_corrections(mapping, flat_data, field_names, profile)
        logger.info(f"AI mapping produced {len(mapping)} field values")
        return mapping, False
    except Exception as e:
        logger.warning(f"AI field mapping failed, using fallback matcher: {e}")
        return create_fallback_mapping(field_names, flat_data, profile), True


def to_camel_case(name: str) -> str:
    """Deterministic clean name: 'First Name (2)' -> 'firstName2'."""
    words = re.findall(r"[A-Za-z0-9]+", name)
    if not words:
        return "field"
    head, tail = words[0], words[1:]
    return head[:1].lower() + head[1:] + "".join(w[:1].upper() + w[1:] for w in tail)


def get_clean_field_names(
    field_names: Sequence[str],
    completer: Optional[Completer] = None,
) -> Tuple[Dict[str, str], bool]:
    """
    Map original field names to clean camelCase names.

    Fields the model leaves out (or every field, when the call fails) get a
    camelCase name derived from the original.

    Returns:
        Tuple of (original -> clean mapping, used_fallback)
    """
    completer = completer or generate_text
    used_fallback = False
    try:
        response_text = completer(build_clean_names_prompt(field_names))
        ai_names = normalize_mapping(parse_json_mapping(response_text))
    except Exception as e:
        logger.warning(f"AI clean-name mapping failed, deriving names locally: {e}")
        ai_names = {}
        used_fallback = True

    original_to_clean: Dict[str, str] = {}
    for name in field_names:
        clean = ai_names.get(name, "").strip()
        original_to_clean[name] = clean or to_camel_case(name)
    return original_to_clean, used_fallback


def map_with_clean_to_original(
    flat_data: Dict[str, str],
    clean_to_original: Dict[str, str],
    field_names: Sequence[str],
) -> Dict[str, str]:
    """Translate flat data keys through a precomputed clean -> original mapping."""
    valid_names = set(field_names)
    mapping: Dict[str, str] = {}
    for clean_name, value in flat_data.items():
        original = clean_to_original.get(clean_name)
        if original and original in valid_names:
            mapping[original] = value
    logger.info(f"Precomputed mappings matched {len(mapping)} fields")
    return mapping
