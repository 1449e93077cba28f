import pytest

from errors import GeminiError, MappingParseError
from field_mapping import (
    apply_relationship_corrections,
    create_fallback_mapping,
    enrich_prompt_data,
    get_clean_field_names,
    get_field_mappings,
    map_with_clean_to_original,
    normalize_mapping,
    parse_json_mapping,
    to_camel_case,
)
from form_data import flatten_form_data

RELATIONSHIP_FIELDS = ["SPOUSE2", "SPOUSE2_2", "SPOUSE2_3", "SPOUSE2_4"]


# ============================================================================
# JSON recovery
# ============================================================================

def test_parse_plain_json():
    assert parse_json_mapping('{"First Name": "John"}') == {"First Name": "John"}


def test_parse_fenced_block():
    text = 'Here you go:\n```json\n{"First Name": "John"}\n```\nLet me know!'
    assert parse_json_mapping(text) == {"First Name": "John"}


def test_parse_fenced_block_without_language():
    assert parse_json_mapping('```\n{"a": "1"}\n```') == {"a": "1"}


def test_parse_object_inside_unparseable_fence():
    text = '```json\nMapping: {"a": "1"} (done)\n```'
    assert parse_json_mapping(text) == {"a": "1"}


def test_parse_object_after_empty_fence():
    text = '```\nsee below\n```\n{"a": "1"}'
    assert parse_json_mapping(text) == {"a": "1"}


def test_parse_object_inside_prose():
    text = 'The mapping is {"a": "1", "b": "2"} as requested.'
    assert parse_json_mapping(text) == {"a": "1", "b": "2"}


def test_parse_trailing_comma_and_newlines():
    text = '{\n  "a": "1",\n  "b": "2",\n}'
    assert parse_json_mapping(text) == {"a": "1", "b": "2"}


def test_parse_truncated_output():
    text = '{"a": "1", "b": "2", "c": "trunc'
    assert parse_json_mapping(text) == {"a": "1", "b": "2"}


@pytest.mark.parametrize("text", ["", "   ", "no json here", '["a", "b"]', "{not: json at all}"])
def test_parse_failures_raise(text):
    with pytest.raises(MappingParseError):
        parse_json_mapping(text)


def test_normalize_mapping():
    assert normalize_mapping({"a": True, "b": None, "c": 3, "d": {"x": 1}, "e": [1]}) == {
        "a": "true",
        "b": "",
        "c": "3",
    }


# ============================================================================
# Prompt data and template corrections
# ============================================================================

def test_enrich_prompt_data_adds_names_and_spouse_relationship():
    flat = {
        "maritalStatus": "Married",
        "spouseFirstName": "Jane",
        "spouseLastName": "Doe",
        "dependent1_firstName": "Jane",
        "dependent1_lastName": "Doe",
        "dependent1_relationship": "Wife",
        "beneficiary1_firstName": "John",
        "beneficiary1_lastName": "Smith",
    }
    enriched = enrich_prompt_data(flat)

    assert enriched["dependent1_relationship"] == "Spouse"
    assert enriched["beneficiary1_fullName"] == "John Smith"
    assert enriched["dependent1_name"] == "Jane Doe"
    assert flat["dependent1_relationship"] == "Wife"


def test_enrich_prompt_data_names_flattened_beneficiaries():
    flat = flatten_form_data({"beneficiaries": [{"firstName": "Ann", "lastName": "Lee"}]})
    enriched = enrich_prompt_data(flat)

    assert enriched["beneficiary1_name"] == "Ann Lee"
    assert enriched["beneficiary1_fullName"] == "Ann Lee"


def test_relationship_corrections_with_spouse(married_applicant):
    flat = flatten_form_data(married_applicant)
    ai_mapping = {"SPOUSE2": "Spouse", "SPOUSE2_2": "Son", "firstName": "John"}

    corrected = apply_relationship_corrections(ai_mapping, flat, ["firstName"] + RELATIONSHIP_FIELDS)

    assert corrected["SPOUSE2"] == "Son"
    assert corrected["SPOUSE2_2"] == "Daughter"
    assert corrected["SPOUSE2_3"] == ""
    assert corrected["SPOUSE2_4"] == ""
    assert corrected["firstName"] == "John"


def test_relationship_corrections_without_spouse(single_applicant):
    flat = flatten_form_data(single_applicant)
    corrected = apply_relationship_corrections({}, flat, RELATIONSHIP_FIELDS)

    assert corrected["SPOUSE2"] == "Son"
    assert corrected["SPOUSE2_2"] == "Daughter"
    assert corrected["SPOUSE2_3"] == ""


def test_relationship_corrections_skip_fields_missing_from_template(married_applicant):
    flat = flatten_form_data(married_applicant)
    assert apply_relationship_corrections({"a": "b"}, flat, ["a"]) == {"a": "b"}


def test_fallback_mapping_exact_and_substring():
    fields = ["FirstName", "spouse firstName", "Employee lastName", "Other"]
    data = {"firstName": "John", "lastName": "Smith"}

    mapping = create_fallback_mapping(fields, data)

    assert mapping["FirstName"] == "John"
    assert mapping["spouse firstName"] == "John"
    assert mapping["Employee lastName"] == "Smith"
    assert "Other" not in mapping


def test_fallback_substring_does_not_overwrite():
    mapping = create_fallback_mapping(["employee name"], {"name": "John Smith", "employee": "E-1"})
    assert mapping["employee name"] == "John Smith"


def test_fallback_marriage_field():
    fields = ["ARE YOU MARRIED or in a common law relationship", "firstName"]

    assert create_fallback_mapping(fields, {"maritalStatus": "Married"})[fields[0]] == "YES"
    assert create_fallback_mapping(fields, {"maritalStatus": "Single"})[fields[0]] == "NO"
    assert fields[0] not in create_fallback_mapping(fields, {"firstName": "John"})


# ============================================================================
# Mapping calls
# ============================================================================

def test_get_field_mappings_uses_completer(make_completer, married_applicant):
    flat = flatten_form_data(married_applicant)
    completer = make_completer({"First Name": "John", "SPOUSE2": "Spouse", "Age": 40})
    fields = ["First Name", "Age", "SPOUSE2"]

    mapping, used_fallback = get_field_mappings(fields, flat, completer)

    assert used_fallback is False
    assert completer.calls == 1
    assert mapping == {"First Name": "John", "Age": "40", "SPOUSE2": "Son"}
    prompt = completer.prompts[0]
    assert "First Name" in prompt
    assert "dependent1_formattedName: Jane Doe" in prompt
    assert "firstName lastName" in prompt


def test_get_field_mappings_falls_back_on_ai_error(make_completer):
    completer = make_completer(error=GeminiError("quota"))
    mapping, used_fallback = get_field_mappings(["firstName"], {"firstName": "John"}, completer)

    assert used_fallback is True
    assert mapping == {"firstName": "John"}


def test_get_field_mappings_falls_back_on_unparseable_output(make_completer):
    completer = make_completer("I could not find any fields, sorry.")
    mapping, used_fallback = get_field_mappings(["firstName"], {"firstName": "John"}, completer)

    assert used_fallback is True
    assert mapping == {"firstName": "John"}


def test_default_completer_failure_falls_back():
    mapping, used_fallback = get_field_mappings(["firstName"], {"firstName": "John"})
    assert used_fallback is True
    assert mapping == {"firstName": "John"}


def test_clean_field_names_fill_gaps_locally(make_completer):
    completer = make_completer({"First Name (1)": "firstName"})
    names, used_fallback = get_clean_field_names(["First Name (1)", "Date of Birth"], completer)

    assert used_fallback is False
    assert names == {"First Name (1)": "firstName", "Date of Birth": "dateOfBirth"}


def test_clean_field_names_without_ai(make_completer):
    names, used_fallback = get_clean_field_names(["Hours/Week", "???"], make_completer(error=GeminiError("down")))

    assert used_fallback is True
    assert names == {"Hours/Week": "hoursWeek", "???": "field"}


def test_to_camel_case():
    assert to_camel_case("First Name") == "firstName"
    assert to_camel_case("date of birth yyyymmdd2_2") == "dateOfBirthYyyymmdd22"


def test_map_with_clean_to_original():
    flat = {"firstName": "John", "lastName": "Smith", "unmapped": "x"}
    clean_to_original = {"firstName": "First Name", "lastName": "Not In Template"}

    assert map_with_clean_to_original(flat, clean_to_original, ["First Name"]) == {"First Name": "John"}
