"""Shared fixtures: fillable PDFs built with reportlab and fake AI completers."""

import json
from io import BytesIO
from typing import Dict, Iterable, List, Optional

import pytest
from reportlab.pdfgen import canvas

import field_mapping
from errors import GeminiError

MARRIAGE_FIELD = "are you Married or in a coMMon laW relationship"


def build_form_pdf(
    text_fields: Iterable[str] = (),
    checkboxes: Iterable[str] = (),
    radios: Optional[Dict[str, List[str]]] = None,
    dropdowns: Optional[Dict[str, List[str]]] = None,
    required: Iterable[str] = (),
) -> bytes:
    """Build a one-or-more page PDF with the given AcroForm fields, one per row."""
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer)
    form = pdf.acroForm
    required = set(required)
    y = 780
    # A page with no drawn content is never emitted, and its widgets dangle
    pdf.drawString(50, 800, "Enrolment form")

    def row(label: str) -> int:
        nonlocal y
        if y < 60:
            pdf.showPage()
            y = 780
        y -= 36
        pdf.drawString(360, y + 8, label)
        return y

    for name in text_fields:
        form.textfield(
            name=name, x=50, y=row(name), width=300, height=24, value="",
            fieldFlags="required" if name in required else "",
        )
    for name in checkboxes:
        form.checkbox(name=name, x=50, y=row(name), size=18, checked=False)
    for name, options in (radios or {}).items():
        top = row(name)
        for index, option in enumerate(options):
            form.radio(name=name, value=option, selected=False, x=50 + 60 * index, y=top, size=18)
    for name, options in (dropdowns or {}).items():
        form.choice(name=name, options=options, value=options[0], x=50, y=row(name), width=200, height=24)

    pdf.save()
    return buffer.getvalue()


def build_plain_pdf() -> bytes:
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer)
    pdf.drawString(72, 720, "No form fields here")
    pdf.save()
    return buffer.getvalue()


class FakeCompleter:
    """Prompt -> text stand-in that records prompts."""

    def __init__(self, response: Optional[str] = None, error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.prompts: List[str] = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response

    @property
    def calls(self) -> int:
        return len(self.prompts)


@pytest.fixture(autouse=True)
def no_gemini(monkeypatch):
    """The default completer never reaches the network in tests."""
    def offline(prompt):
        raise GeminiError("Gemini disabled in tests")
    monkeypatch.setattr(field_mapping, "generate_text", offline)


@pytest.fixture
def make_completer():
    def factory(response=None, error=None):
        if isinstance(response, dict):
            response = json.dumps(response)
        return FakeCompleter(response, error)
    return factory


@pytest.fixture
def form_pdf():
    return build_form_pdf


@pytest.fixture
def plain_pdf():
    return build_plain_pdf()


@pytest.fixture
def enrolment_pdf():
    """A cut-down enrolment template with the real template's quirky field names."""
    return build_form_pdf(
        text_fields=[
            "firstName",
            "lastName",
            "Annual Earnings",
            "list of dependents spouse then dependents oldest first last naMe first naMe2",
            "list of dependents spouse then dependents oldest first last naMe first naMe2_2",
            "list of dependents spouse then dependents oldest first last naMe first naMe2_3",
            "SPOUSE2",
            "SPOUSE2_2",
            "spouseFirstName",
        ],
        radios={MARRIAGE_FIELD: ["Yes", "No"]},
        required=["firstName"],
    )


@pytest.fixture
def married_applicant():
    return {
        "firstName": "John",
        "lastName": "Smith",
        "maritalStatus": "Married",
        "spouseFirstName": "Jane",
        "spouseLastName": "Doe",
        "spouseDateOfBirth": "1985-03-04",
        "spouseGender": "F",
        "dependents": [
            {"id": "d2", "firstName": "Young", "lastName": "Smith", "dateOfBirth": "2015-01-01", "relationship": "Daughter"},
            {"id": "d1", "firstName": "Old", "lastName": "Smith", "dateOfBirth": "2010-01-01", "relationship": "Son"},
        ],
    }


@pytest.fixture
def single_applicant(married_applicant):
    data = dict(married_applicant)
    data["maritalStatus"] = "Single"
    return data
