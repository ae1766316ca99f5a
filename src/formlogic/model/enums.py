"""
model/enums.py

EN: Domain enums for the form engine: field types, rule operators, rule actions,
field states and resolution modes. Parsing is tolerant of the spellings found in
persisted form documents (camelCase, hyphenated, and the Portuguese field type
values of the original builder), strict about everything else.

NO evaluation logic here!

See Also:
    - formlogic.form.conditions (operator semantics)
    - formlogic.form.visibility (action semantics)
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Final, Literal, Optional

_logger: Final[logging.Logger] = logging.getLogger(__name__)


def _normalize_key(raw: str) -> str:
    """'notEquals' / 'not-equals' / 'NOT_EQUALS' -> 'not_equals'."""
    text = raw.strip()
    out = []
    for i, ch in enumerate(text):
        if ch.isupper() and i and text[i - 1].islower():
            out.append("_")
        out.append(ch.lower())
    return "".join(out).replace("-", "_").replace(" ", "_")


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    TEXTAREA = "textarea"
    SELECT = "select"
    CHECKBOX = "checkbox"
    DATE = "date"
    SIGNATURE = "signature"
    FILE_UPLOAD = "file_upload"

    @property
    def has_options(self) -> bool:
        return self in {FieldType.SELECT, FieldType.CHECKBOX}

    @property
    def is_textual(self) -> bool:
        return self in {FieldType.TEXT, FieldType.TEXTAREA}

    @classmethod
    def parse(cls, raw: "FieldType | str") -> FieldType:
        if isinstance(raw, FieldType):
            return raw
        if not isinstance(raw, str) or not raw.strip():
            raise ValueError(f"Field type must be a non-empty string, got {raw!r}")
        legacy = _LEGACY_FIELD_TYPES.get(raw.strip().upper())
        if legacy is not None:
            return legacy
        key = _normalize_key(raw)
        key = _FIELD_TYPE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown field type: {raw!r}") from None

    def localized_name(self, lang: Literal["en", "pt"] = "en") -> str:
        names_pt = {
            self.TEXT: "Texto",
            self.NUMBER: "Número",
            self.TEXTAREA: "Área de texto",
            self.SELECT: "Seleção",
            self.CHECKBOX: "Caixa de seleção",
            self.DATE: "Data",
            self.SIGNATURE: "Assinatura",
            self.FILE_UPLOAD: "Arquivo",
        }
        names_en = {
            self.TEXT: "Text",
            self.NUMBER: "Number",
            self.TEXTAREA: "Multiline text",
            self.SELECT: "Single select",
            self.CHECKBOX: "Checkbox group",
            self.DATE: "Date",
            self.SIGNATURE: "Signature",
            self.FILE_UPLOAD: "File upload",
        }
        return names_pt[self] if lang == "pt" else names_en[self]


# Values persisted by the original builder (FieldType enum of the web app).
_LEGACY_FIELD_TYPES: Final[Dict[str, FieldType]] = {
    "TEXTO": FieldType.TEXT,
    "NUMERO": FieldType.NUMBER,
    "AREA_TEXTO": FieldType.TEXTAREA,
    "SELECAO": FieldType.SELECT,
    "CAIXA_SELECAO": FieldType.CHECKBOX,
    "DATA": FieldType.DATE,
    "ASSINATURA": FieldType.SIGNATURE,
    "ARQUIVO": FieldType.FILE_UPLOAD,
}

_FIELD_TYPE_ALIASES: Final[Dict[str, str]] = {
    "multiline_text": "textarea",
    "single_select": "select",
    "multi_select": "checkbox",
    "checkbox_group": "checkbox",
    "file": "file_upload",
}


class Condition(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"

    @property
    def is_numeric(self) -> bool:
        return self in {Condition.GREATER_THAN, Condition.LESS_THAN}

    @classmethod
    def parse(cls, raw: "Condition | str | None") -> Optional[Condition]:
        """Returns None for operators the engine does not know."""
        if isinstance(raw, Condition):
            return raw
        if not isinstance(raw, str) or not raw.strip():
            return None
        try:
            return cls(_normalize_key(raw))
        except ValueError:
            _logger.debug("Unknown condition operator: %r", raw)
            return None


class RuleAction(str, Enum):
    SHOW = "show"
    HIDE = "hide"
    ENABLE = "enable"
    DISABLE = "disable"

    @classmethod
    def parse(cls, raw: "RuleAction | str | None") -> RuleAction:
        if raw is None or raw == "":
            return cls.SHOW
        if isinstance(raw, RuleAction):
            return raw
        try:
            return cls(_normalize_key(str(raw)))
        except ValueError:
            raise ValueError(f"Unknown rule action: {raw!r}") from None


class Visibility(str, Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"
    DISABLED = "disabled"

    @property
    def is_collected(self) -> bool:
        """Only visible fields are collected and validated."""
        return self is Visibility.VISIBLE


class ConditionMode(str, Enum):
    # only `equals` dependencies change visibility (historical behaviour)
    LEGACY = "legacy"
    # every declared condition governs visibility
    GENERALIZED = "generalized"

    @classmethod
    def parse(cls, raw: "ConditionMode | str") -> ConditionMode:
        if isinstance(raw, ConditionMode):
            return raw
        try:
            return cls(_normalize_key(str(raw)))
        except ValueError:
            raise ValueError(f"Unknown condition mode: {raw!r}") from None
