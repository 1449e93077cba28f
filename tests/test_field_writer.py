import pytest

from conftest import MARRIAGE_FIELD
from field_writer import (
    WriteStats,
    correct_name_order,
    is_combined_name_field,
    match_option,
    write_fields,
)
from form_data import flatten_form_data
from pdf_form import PdfDocument

ROW1_NAME = "list of dependents spouse then dependents oldest first last naMe first naMe2"
ROW2_NAME = "list of dependents spouse then dependents oldest first last naMe first naMe2_2"
ROW3_NAME = "list of dependents spouse then dependents oldest first last naMe first naMe2_3"


def load_form(pdf_bytes):
    return PdfDocument.load(pdf_bytes).get_form()


def test_nine_successes_one_missing_field(form_pdf):
    names = [f"field{i}" for i in range(9)]
    form = load_form(form_pdf(text_fields=names))
    mapping = {name: f"value {i}" for i, name in enumerate(names)}
    mapping["does not exist"] = "x"

    stats = write_fields(form, mapping)

    assert (stats.success_count, stats.error_count) == (9, 1)
    for i, name in enumerate(names):
        assert form.get_field(name).get_value() == f"value {i}"


def test_blank_values_are_dropped_not_errors(form_pdf):
    form = load_form(form_pdf(text_fields=["a", "b"]))
    stats = write_fields(form, {"a": "  ", "b": None, "missing": ""})

    assert stats.to_dict() == {
        "success_count": 0,
        "error_count": 0,
        "skipped_count": 0,
        "marriage_field_errors": 0,
    }


def test_non_string_values_are_written_as_text(form_pdf):
    form = load_form(form_pdf(text_fields=["Hours", "Smoker"]))
    write_fields(form, {"Hours": 37.5, "Smoker": False})

    assert form.get_field("Hours").get_value() == "37.5"
    assert form.get_field("Smoker").get_value() == "false"


def test_enumerated_widgets(form_pdf):
    form = load_form(form_pdf(
        checkboxes=["Smoker", "Waive"],
        radios={"Gender": ["Male", "Female"], "Coverage": ["Single", "Couple", "Family"]},
        dropdowns={"Province": ["Ontario", "Quebec"]},
    ))

    stats = write_fields(form, {
        "Smoker": "Yes",
        "Waive": "no",
        "Gender": "female",
        "Coverage": "Fam",
        "Province": "Atlantis",
    })

    assert stats.success_count == 5
    assert form.get_field("Smoker").is_checked()
    assert not form.get_field("Waive").is_checked()
    assert form.get_field("Gender").get_value() == "Female"
    assert form.get_field("Coverage").get_value() == "Family"
    # No match: first option
    assert form.get_field("Province").get_value() == "Ontario"


@pytest.mark.parametrize("value, options, expected", [
    ("female", ["Male", "Female"], "Female"),
    ("Single coverage", ["Single", "Family"], "Single"),
    ("Fam", ["Single", "Family"], "Family"),
    ("true", ["Oui", "Non"], "Oui"),
    ("0", ["Oui", "Non"], "Non"),
    ("maybe", ["A", "B", "C"], "A"),
])
def test_match_option(value, options, expected):
    assert match_option(value, options) == expected


def test_match_option_without_options():
    assert match_option("x", []) is None


def test_marriage_radio_follows_marital_status(enrolment_pdf, married_applicant, single_applicant):
    form = load_form(enrolment_pdf)
    write_fields(form, {}, flatten_form_data(married_applicant))
    assert form.get_field(MARRIAGE_FIELD).get_value() == "Yes"

    form = load_form(enrolment_pdf)
    stats = write_fields(form, {MARRIAGE_FIELD: "Yes"}, flatten_form_data(single_applicant))
    assert form.get_field(MARRIAGE_FIELD).get_value() == "No"
    # The mapped value for the marriage field is not written a second time
    assert stats.success_count == 1


def test_marriage_radio_failures_are_counted_separately(form_pdf):
    form = load_form(form_pdf(radios={"Marital Status": ["Maybe", "Unsure", "Other"]}))
    stats = write_fields(form, {}, {"maritalStatus": "Married"})

    assert stats.marriage_field_errors == 1
    assert stats.error_count == 0


def test_spouse_row_fields_skipped_when_not_married(enrolment_pdf, single_applicant):
    form = load_form(enrolment_pdf)
    flat = flatten_form_data(single_applicant)

    stats = write_fields(form, {"spouseFirstName": "Jane", "SPOUSE2": "Son", "firstName": "John"}, flat)

    assert stats.skipped_count == 1
    assert form.get_field("spouseFirstName").get_value() in (None, "")
    assert form.get_field("SPOUSE2").get_value() == "Son"


def test_spouse_row_fields_written_when_married(enrolment_pdf, married_applicant):
    form = load_form(enrolment_pdf)
    stats = write_fields(form, {"spouseFirstName": "Jane"}, flatten_form_data(married_applicant))

    assert stats.skipped_count == 0
    assert form.get_field("spouseFirstName").get_value() == "Jane"


def test_dependent_names_are_never_reversed(enrolment_pdf, married_applicant):
    form = load_form(enrolment_pdf)
    flat = flatten_form_data(married_applicant)

    write_fields(form, {ROW1_NAME: "Doe Jane", ROW2_NAME: "Smith Old"}, flat)

    assert form.get_field(ROW1_NAME).get_value() == "Jane Doe"
    assert form.get_field(ROW2_NAME).get_value() == "Old Smith"


def test_correct_name_order_ignores_single_name_parts():
    flat = {"dependent1_firstName": "Jane", "dependent1_lastName": "Doe"}
    mapping = {"dependent1_firstName": "Jane", "spouse last name": "Doe", "dependent1_name": "Doe Jane"}

    corrected = correct_name_order(mapping, flat)

    assert corrected == {"dependent1_firstName": "Jane", "spouse last name": "Doe", "dependent1_name": "Jane Doe"}


def test_correct_name_order_without_spouse_starts_on_second_row(single_applicant):
    flat = flatten_form_data(single_applicant)
    mapping = {ROW1_NAME: "Smith Old", ROW2_NAME: "Smith Old", ROW3_NAME: "Smith Young"}

    corrected = correct_name_order(mapping, flat)

    assert corrected == {ROW1_NAME: "", ROW2_NAME: "Old Smith", ROW3_NAME: "Young Smith"}


def test_correct_name_order_clears_rows_past_the_last_dependent(married_applicant):
    flat = flatten_form_data(married_applicant)
    row4 = ROW1_NAME + "_4"

    assert correct_name_order({row4: "Someone Else"}, flat) == {row4: ""}


@pytest.mark.parametrize("name, expected", [
    (ROW1_NAME, True),
    ("dependent2_formattedName", True),
    ("dependent2_firstName", False),
    ("Spouse Last Name", False),
    ("Gender2_2", False),
])
def test_is_combined_name_field(name, expected):
    assert is_combined_name_field(name) is expected


def test_write_stats_str():
    assert str(WriteStats(success_count=2, error_count=1)) == "2 written, 1 errors, 0 skipped"
