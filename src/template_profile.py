"""
Template-specific field rules.

The enrolment template this service was built against names its fields
inconsistently (dependent relationship cells live in a "SPOUSE2" field family,
dependent rows are labelled "last name first name", and so on). Those quirks
are kept here as data so another template can ship its own profile instead of
patching the mapper or the writer.
"""

import re
from typing import List, Optional

from pydantic import BaseModel, Field


class TemplateProfile(BaseModel):
    """Keyword and field-name configuration for one PDF template family."""

    married_statuses: List[str] = Field(
        default_factory=lambda: ["Married", "Common-law"],
        description="maritalStatus values that mean the applicant has a spouse.",
    )
    relationship_fields: List[str] = Field(
        default_factory=lambda: ["SPOUSE2", "SPOUSE2_2", "SPOUSE2_3", "SPOUSE2_4"],
        description="Template fields holding dependent relationships, one per dependent row after the spouse row.",
    )
    marriage_field_patterns: List[str] = Field(
        default_factory=lambda: ["are you married", "common law relationship", "marital status"],
        description="Substrings identifying the 'are you married' radio group.",
    )
    fallback_marriage_patterns: List[str] = Field(
        default_factory=lambda: ["are you married", "are you married or in a common law relationship"],
        description="Substrings the fallback mapper uses to answer the marriage question.",
    )
    spouse_row_patterns: List[str] = Field(
        default_factory=lambda: [r"spouse", r"dependent1(?!\d)"],
        description="Regexes (case-insensitive) for fields that belong to the spouse / first dependent row.",
    )
    suppression_exempt_patterns: List[str] = Field(
        default_factory=lambda: [r"^spouse2(_\d+)?$", r"list of dependents"],
        description="Regexes for fields that match a spouse pattern by name only but hold dependent rows.",
    )
    person_field_keywords: List[str] = Field(
        default_factory=lambda: ["dependent", "spouse"],
        description="Keywords marking a field as describing a dependent or spouse.",
    )
    name_row_suffix: str = Field(
        default=r"_(\d+)$",
        description="Regex capturing the row number of a template row field (no suffix means row 1).",
    )

    def is_married(self, marital_status: Optional[str]) -> bool:
        return (marital_status or "") in self.married_statuses

    def has_spouse(self, data: dict) -> bool:
        """A spouse is present only with a married status AND both spouse names."""
        return self.is_married(data.get("maritalStatus")) and bool(
            data.get("spouseFirstName") and data.get("spouseLastName")
        )

    def find_marriage_field(self, field_names: List[str], patterns: Optional[List[str]] = None) -> Optional[str]:
        patterns = patterns if patterns is not None else self.marriage_field_patterns
        for name in field_names:
            lowered = name.lower()
            if any(p.lower() in lowered for p in patterns):
                return name
        return None

    def is_spouse_row_field(self, field_name: str) -> bool:
        """True when the field belongs to the spouse or first-dependent row."""
        if any(re.search(p, field_name, re.IGNORECASE) for p in self.suppression_exempt_patterns):
            return False
        return any(re.search(p, field_name, re.IGNORECASE) for p in self.spouse_row_patterns)

    def dependent_for_row(self, row: int, spouse_present: bool) -> int:
        """
        Flattened dependent index shown on a template dependent row.

        Row 1 is the spouse row. With a spouse it holds dependent1 (the
        spouse) and row N holds dependentN; without one row 1 stays empty
        and the dependents start on row 2. Returns 0 for an empty row.
        """
        index = row if spouse_present else row - 1
        return max(index, 0)

    def is_person_field(self, field_name: str) -> bool:
        lowered = field_name.lower()
        return any(k in lowered for k in self.person_field_keywords)


DEFAULT_PROFILE = TemplateProfile()
