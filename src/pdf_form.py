"""
AcroForm object model on top of pypdf.

Loads a template into an owned, mutable ``PdfDocument`` and exposes its
interactive fields as ``FormField`` objects whose widget type is decided once
from the field dictionary (/FT and /Ff), so callers can dispatch on
``WidgetType`` instead of probing each field.
"""

import logging
from enum import Enum
from io import BytesIO
from typing import Any, Dict, List, Optional, Set, Tuple

from pypdf import PdfReader, PdfWriter
from pypdf.generic import ArrayObject, DictionaryObject, NameObject, TextStringObject

from errors import PdfLoadError

# Logger Setup
logger = logging.getLogger("pdf_form")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Field flag bits (PDF 32000-1:2008, tables 221, 226, 228)
FLAG_REQUIRED = 1 << 1
FLAG_RADIO = 1 << 15
FLAG_PUSHBUTTON = 1 << 16
FLAG_COMBO = 1 << 17

OFF_STATE = "/Off"
DEFAULT_ON_STATE = "/Yes"


class WidgetType(str, Enum):
    TEXT = "text"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    DROPDOWN = "dropdown"
    UNKNOWN = "unknown"


def _resolve(obj: Any) -> Any:
    return obj.get_object() if hasattr(obj, "get_object") else obj


def _inherited(node: DictionaryObject, key: str) -> Any:
    """Look up an inheritable field attribute, walking /Parent links."""
    seen: Set[int] = set()
    while isinstance(node, DictionaryObject) and id(node) not in seen:
        seen.add(id(node))
        if key in node:
            return _resolve(node[key])
        node = _resolve(node.get("/Parent"))
    return None


def _normal_states(widget: DictionaryObject) -> List[str]:
    """Names of a widget's normal appearance states, e.g. ['/Yes', '/Off']."""
    appearance = _resolve(widget.get("/AP"))
    if not isinstance(appearance, DictionaryObject):
        return []
    normal = _resolve(appearance.get("/N"))
    if not isinstance(normal, DictionaryObject):
        return []
    return [str(k) for k in normal.keys()]


def _on_state(widget: DictionaryObject) -> Optional[str]:
    for state in _normal_states(widget):
        if state != OFF_STATE:
            return state
    return None


def classify_widget(field_type: Optional[str], flags: int) -> WidgetType:
    if field_type == "/Tx":
        return WidgetType.TEXT
    if field_type == "/Btn":
        if flags & FLAG_PUSHBUTTON:
            return WidgetType.UNKNOWN
        if flags & FLAG_RADIO:
            return WidgetType.RADIO
        return WidgetType.CHECKBOX
    if field_type == "/Ch":
        return WidgetType.DROPDOWN
    return WidgetType.UNKNOWN


# ============================================================================
# Form Field
# ============================================================================

class FormField:
    """One terminal form field and the widget annotations that display it."""

    def __init__(self, name: str, field: DictionaryObject, widgets: List[DictionaryObject]):
        self.name = name
        self.field = field
        self.widgets = widgets
        self.flags = int(_inherited(field, "/Ff") or 0)
        self.field_type = _inherited(field, "/FT")
        self.widget_type = classify_widget(self.field_type, self.flags)
        self.dirty = False

    def __repr__(self) -> str:
        return f"FormField({self.name!r}, {self.widget_type.value})"

    @property
    def is_required(self) -> bool:
        return bool(self.flags & FLAG_REQUIRED)

    # -- option discovery ---------------------------------------------------

    def _radio_options(self) -> List[Tuple[str, str]]:
        """(label, appearance state) pairs, one per distinct radio button."""
        opt = _inherited(self.field, "/Opt")
        labels = [str(_resolve(o)) for o in opt] if isinstance(opt, ArrayObject) else []

        options: List[Tuple[str, str]] = []
        seen = set()
        for index, widget in enumerate(self.widgets):
            state = _on_state(widget)
            if state is None or state in seen:
                continue
            seen.add(state)
            label = labels[index] if index < len(labels) else state[1:]
            options.append((label, state))
        return options

    def _choice_options(self) -> List[Tuple[str, str]]:
        """(display, export) pairs from /Opt."""
        opt = _inherited(self.field, "/Opt")
        if not isinstance(opt, ArrayObject):
            return []
        options = []
        for item in opt:
            item = _resolve(item)
            if isinstance(item, ArrayObject) and len(item) >= 2:
                options.append((str(_resolve(item[1])), str(_resolve(item[0]))))
            else:
                options.append((str(item), str(item)))
        return options

    def get_options(self) -> List[str]:
        if self.widget_type == WidgetType.RADIO:
            return [label for label, _ in self._radio_options()]
        if self.widget_type == WidgetType.DROPDOWN:
            return [display for display, _ in self._choice_options()]
        return []

    # -- writes -------------------------------------------------------------

    def set_text(self, value: str) -> None:
        if self.widget_type not in (WidgetType.TEXT, WidgetType.DROPDOWN):
            raise TypeError(f"Field {self.name!r} is a {self.widget_type.value} field, not text")
        self.field[NameObject("/V")] = TextStringObject(value)
        self.dirty = True

    def select(self, option: str) -> None:
        """Select a radio button or dropdown option by its label."""
        if self.widget_type == WidgetType.RADIO:
            states = dict(self._radio_options())
            if option not in states:
                raise ValueError(f"{option!r} is not an option of radio group {self.name!r}")
            self._set_state(states[option])
        elif self.widget_type == WidgetType.DROPDOWN:
            for display, export in self._choice_options():
                if option in (display, export):
                    self.field[NameObject("/V")] = TextStringObject(export)
                    if "/I" in self.field:
                        del self.field["/I"]
                    self.dirty = True
                    return
            raise ValueError(f"{option!r} is not an option of dropdown {self.name!r}")
        else:
            raise TypeError(f"Field {self.name!r} is a {self.widget_type.value} field, not a choice")

    def check(self) -> None:
        self._require_button()
        state = None
        for widget in self.widgets:
            state = _on_state(widget)
            if state:
                break
        self._set_state(state or DEFAULT_ON_STATE)

    def uncheck(self) -> None:
        self._require_button()
        self._set_state(OFF_STATE)

    def _require_button(self) -> None:
        if self.widget_type not in (WidgetType.CHECKBOX, WidgetType.RADIO):
            raise TypeError(f"Field {self.name!r} is a {self.widget_type.value} field, not a button")

    def _set_state(self, state: str) -> None:
        self.field[NameObject("/V")] = NameObject(state)
        self.dirty = True
        self.update_appearances()

    def update_appearances(self) -> None:
        """Point each button widget's /AS at the state matching /V."""
        if self.field_type != "/Btn":
            return
        value = str(self.field.get("/V", OFF_STATE))
        for widget in self.widgets:
            shown = value if value in _normal_states(widget) else OFF_STATE
            widget[NameObject("/AS")] = NameObject(shown)

    # -- reads --------------------------------------------------------------

    def get_value(self) -> Optional[str]:
        value = _inherited(self.field, "/V")
        if value is None:
            return None
        if self.widget_type == WidgetType.RADIO:
            for label, state in self._radio_options():
                if state == str(value):
                    return label
            return None
        if self.widget_type == WidgetType.DROPDOWN:
            for display, export in self._choice_options():
                if export == str(value):
                    return display
        return str(value)

    def is_checked(self) -> bool:
        value = _inherited(self.field, "/V")
        return value is not None and str(value) != OFF_STATE


# ============================================================================
# Form and Document
# ============================================================================

class PdfForm:
    """The interactive form (AcroForm) of a loaded document."""

    def __init__(self, root: DictionaryObject):
        self._fields: Dict[str, FormField] = {}
        acro_form = _resolve(root.get("/AcroForm"))
        if not isinstance(acro_form, DictionaryObject):
            return
        fields = _resolve(acro_form.get("/Fields"))
        if not isinstance(fields, ArrayObject):
            return
        visited: Set[int] = set()
        for ref in fields:
            self._collect(_resolve(ref), None, visited)

    def _collect(self, node: Any, parent_name: Optional[str], visited: Set[int]) -> None:
        if not isinstance(node, DictionaryObject) or id(node) in visited:
            return
        visited.add(id(node))

        partial = node.get("/T")
        if partial is None:
            name = parent_name or ""
        elif parent_name:
            name = f"{parent_name}.{partial}"
        else:
            name = str(partial)

        kids = [_resolve(k) for k in (_resolve(node.get("/Kids")) or [])]
        child_fields = [k for k in kids if isinstance(k, DictionaryObject) and "/T" in k]

        if child_fields:
            for child in child_fields:
                self._collect(child, name, visited)
            return

        widgets = [k for k in kids if isinstance(k, DictionaryObject)] or [node]
        if name and name not in self._fields:
            self._fields[name] = FormField(name, node, widgets)

    def get_fields(self) -> List[FormField]:
        return list(self._fields.values())

    def get_field_names(self) -> List[str]:
        return list(self._fields.keys())

    def get_field(self, name: str) -> Optional[FormField]:
        return self._fields.get(name)

    def dirty_text_values(self) -> Dict[str, str]:
        """Values of modified text/choice fields, for appearance regeneration."""
        return {
            f.name: str(f.field.get("/V", ""))
            for f in self._fields.values()
            if f.dirty and f.widget_type in (WidgetType.TEXT, WidgetType.DROPDOWN)
        }


class PdfDocument:
    """A template loaded for one fill operation."""

    def __init__(self, writer: PdfWriter):
        self.writer = writer
        self._form: Optional[PdfForm] = None

    @classmethod
    def load(cls, pdf_bytes: bytes) -> "PdfDocument":
        """
        Load PDF bytes, tolerating encryption with an empty user password and
        malformed trailing objects (non-strict parsing).

        Raises:
            PdfLoadError: if the bytes cannot be parsed at all
        """
        try:
            reader = PdfReader(BytesIO(pdf_bytes), strict=False)
            writer = PdfWriter(clone_from=reader)
        except Exception as e:
            raise PdfLoadError(f"Unable to read PDF: {e}") from e
        return cls(writer)

    def get_form(self) -> PdfForm:
        if self._form is None:
            self._form = PdfForm(self.writer.root_object)
        return self._form

    def save(self, update_field_appearances: bool = True) -> bytes:
        """
        Serialize the document.

        pypdf writes a classic cross-reference table without object streams.
        With ``update_field_appearances`` the appearance streams of every
        modified text/choice field are regenerated; in both modes the
        NeedAppearances flag asks viewers to refresh the rest.
        """
        self.writer.set_need_appearances_writer(True)
        if update_field_appearances:
            form = self.get_form()
            values = form.dirty_text_values()
            if values:
                # Appearance streams may be shared between widgets; pypdf
                # regenerates in place, so each modified widget gets its own
                removed = []
                for name in values:
                    for widget in form.get_field(name).widgets:
                        if "/AP" in widget:
                            removed.append((widget, widget["/AP"]))
                            del widget["/AP"]
                try:
                    self.writer.update_page_form_field_values(None, values, auto_regenerate=True)
                except Exception:
                    for widget, appearance in removed:
                        widget[NameObject("/AP")] = appearance
                    raise

        buffer = BytesIO()
        self.writer.write(buffer)
        return buffer.getvalue()
