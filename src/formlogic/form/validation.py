"""
validation.py: per-field validator covering required-ness and type-specific checks
(pattern, length, numeric range, calendar date, option membership, file size),
with an extensible registry of checks per field type.

Validation failures are returned, never raised.
"""

import logging
import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Callable, Dict, Final, List, Optional, Pattern, Protocol, Tuple

from formlogic.form.conditions import as_text, to_number
from formlogic.form.form_elements import FieldDefinition
from formlogic.model.enums import FieldType

logger = logging.getLogger(__name__)

DEFAULT_LOCALE: Final[str] = "en"

MESSAGES: Final[Dict[str, Dict[str, str]]] = {
    "en": {
        "required": "{label} is required",
        "invalid_format": "{label} has an invalid format",
        "min_length": "{label} must be at least {limit} characters",
        "max_length": "{label} must be at most {limit} characters",
        "not_number": "{label} must be a number",
        "min_value": "{label} must be at least {limit}",
        "max_value": "{label} must be at most {limit}",
        "invalid_date": "{label} must be a valid date",
        "invalid_option": "{label} has an invalid option",
        "file_too_large": "{label} must be smaller than {limit}MB",
    },
    "pt": {
        "required": "{label} é obrigatório",
        "invalid_format": "{label} tem formato inválido",
        "min_length": "{label} deve ter no mínimo {limit} caracteres",
        "max_length": "{label} deve ter no máximo {limit} caracteres",
        "not_number": "{label} deve ser um número",
        "min_value": "{label} deve ser no mínimo {limit}",
        "max_value": "{label} deve ser no máximo {limit}",
        "invalid_date": "{label} deve ser uma data válida",
        "invalid_option": "{label} tem uma opção inválida",
        "file_too_large": "{label} deve ser menor que {limit}MB",
    },
}

PATTERNS: Final[Dict[str, Pattern[str]]] = {
    "email": re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
    "phone": re.compile(r"^\d{10,15}$"),
    "url": re.compile(
        r"^(https?://)?(www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
        r"([-a-zA-Z0-9()@:%_+.~#?&/=]*)$"
    ),
    "zipcode": re.compile(r"^\d{5}(-\d{4})?$"),
    "cpf": re.compile(r"^\d{3}\.\d{3}\.\d{3}-\d{2}$"),
    "cnpj": re.compile(r"^\d{2}\.\d{3}\.\d{3}/\d{4}-\d{2}$"),
    "ip_address": re.compile(r"^(\d{1,3}\.){3}\d{1,3}$"),
    "credit_card": re.compile(r"^\d{13,19}$"),
}

_BYTES_PER_MB: Final[int] = 1024 * 1024


class ValidationResult:
    """
    Outcome of validating one field or a whole answer set.
    errors: messages in field order; field_errors: the same messages keyed by field id.
    """

    def __init__(self) -> None:
        self.errors: List[str] = []
        self.field_errors: Dict[str, List[str]] = {}

    def add(self, message: str, field: Optional[str] = None) -> None:
        self.errors.append(message)
        if field is not None:
            self.field_errors.setdefault(field, []).append(message)

    def extend(self, other: "ValidationResult") -> None:
        self.errors.extend(other.errors)
        for fid, msgs in other.field_errors.items():
            self.field_errors.setdefault(fid, []).extend(msgs)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def as_dict(self) -> Dict[str, Any]:
        return {"isValid": self.is_valid, "errors": list(self.errors)}

    def __repr__(self) -> str:
        return f"ValidationResult(is_valid={self.is_valid}, errors={self.errors!r})"


def message(key: str, locale: str = DEFAULT_LOCALE, **params: Any) -> str:
    catalog = MESSAGES.get(locale)
    if catalog is None:
        logger.debug("No message catalog for locale %r, using %r", locale, DEFAULT_LOCALE)
        catalog = MESSAGES[DEFAULT_LOCALE]
    return catalog[key].format(**params)


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def validate_with_regex(value: str, pattern: str) -> bool:
    try:
        return re.search(pattern, value) is not None
    except re.error as ex:
        logger.warning("Invalid regex pattern %r: %s", pattern, ex)
        return False


def matches_format(value: str, name: str) -> bool:
    """Checks ``value`` against one of the builtin named PATTERNS."""
    try:
        return PATTERNS[name].search(value) is not None
    except KeyError:
        raise ValueError(f"Unknown format: {name!r}") from None


class FieldCheck(Protocol):
    """Type-specific check; returns error messages for a non-empty value."""

    def __call__(self, value: Any, field: FieldDefinition, locale: str) -> List[str]: ...


class FieldCheckRegistry:
    """Registry of type-specific checks, applied in ``order``."""

    _registry: Dict[FieldType, List[Tuple[FieldCheck, int]]] = {}

    @classmethod
    def register(cls, field_type: FieldType, check: FieldCheck, order: int = 100) -> None:
        field_type = FieldType.parse(field_type)
        checks = cls._registry.setdefault(field_type, [])
        if any(c is check for c, _ in checks):
            logger.warning("Re-registering check %r for %s", check, field_type.value)
            checks[:] = [(c, o) for c, o in checks if c is not check]
        checks.append((check, order))
        checks.sort(key=lambda pair: pair[1])

    @classmethod
    def unregister(cls, field_type: FieldType, check: FieldCheck) -> None:
        field_type = FieldType.parse(field_type)
        checks = cls._registry.get(field_type, [])
        checks[:] = [(c, o) for c, o in checks if c is not check]

    @classmethod
    def get(cls, field_type: FieldType) -> List[FieldCheck]:
        return [c for c, _ in cls._registry.get(FieldType.parse(field_type), [])]

    @classmethod
    def all_types(cls) -> List[FieldType]:
        return [t for t, checks in cls._registry.items() if checks]


def field_check(*field_types: FieldType, order: int = 100) -> Callable[[FieldCheck], FieldCheck]:
    """Decorator registering a check for one or more field types."""

    def wrapper(check: FieldCheck) -> FieldCheck:
        for field_type in field_types:
            FieldCheckRegistry.register(field_type, check, order=order)
        return check

    return wrapper


register_field_check = FieldCheckRegistry.register


# ----- Builtin checks -----


@field_check(FieldType.TEXT, FieldType.TEXTAREA, order=10)
def check_text(value: Any, field: FieldDefinition, locale: str) -> List[str]:
    errors: List[str] = []
    rules = field.validations
    text = as_text(value)
    label = field.display_name
    if rules.pattern and not validate_with_regex(text, rules.pattern):
        errors.append(message("invalid_format", locale, label=label))
    if rules.format:
        if rules.format not in PATTERNS:
            logger.warning("Field %r: unknown format %r ignored", field.id, rules.format)
        elif not matches_format(text, rules.format):
            errors.append(message("invalid_format", locale, label=label))
    if rules.min_length is not None and len(text) < rules.min_length:
        errors.append(message("min_length", locale, label=label, limit=rules.min_length))
    if rules.max_length is not None and len(text) > rules.max_length:
        errors.append(message("max_length", locale, label=label, limit=rules.max_length))
    return errors


@field_check(FieldType.NUMBER, order=10)
def check_number(value: Any, field: FieldDefinition, locale: str) -> List[str]:
    label = field.display_name
    num = to_number(value)
    if num is None:
        return [message("not_number", locale, label=label)]
    errors: List[str] = []
    lo, hi = field.validations.min, field.validations.max
    if lo is not None and num < lo:
        errors.append(message("min_value", locale, label=label, limit=as_text(lo)))
    if hi is not None and num > hi:
        errors.append(message("max_value", locale, label=label, limit=as_text(hi)))
    return errors


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


@field_check(FieldType.DATE, order=10)
def check_date(value: Any, field: FieldDefinition, locale: str) -> List[str]:
    if parse_date(value) is None:
        return [message("invalid_date", locale, label=field.display_name)]
    return []


@field_check(FieldType.SELECT, FieldType.CHECKBOX, order=10)
def check_options(value: Any, field: FieldDefinition, locale: str) -> List[str]:
    if field.options is None:
        return []
    items = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
    if all(as_text(item) in field.options for item in items):
        return []
    return [message("invalid_option", locale, label=field.display_name)]


def file_size_bytes(value: Any) -> Optional[float]:
    """Size of an uploaded file value, None when the value carries no size."""
    if isinstance(value, Mapping):
        size = value.get("size")
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        size = value
    else:
        size = getattr(value, "size", None)
    return to_number(size)


@field_check(FieldType.FILE_UPLOAD, order=10)
def check_file(value: Any, field: FieldDefinition, locale: str) -> List[str]:
    limit = field.validations.max_file_size
    if limit is None:
        return []
    size = file_size_bytes(value)
    if size is None:
        logger.debug("Field %r: upload value carries no size, limit not checked", field.id)
        return []
    if size / _BYTES_PER_MB > limit:
        return [message("file_too_large", locale, label=field.display_name, limit=as_text(limit))]
    return []


# signature: presence is the only requirement, nothing registered


def validate_field(value: Any, field: FieldDefinition, locale: str = DEFAULT_LOCALE) -> ValidationResult:
    """
    Validates one answer against its field definition.

    A required empty value yields exactly one error and nothing else is checked;
    an optional empty value is always valid. Otherwise every registered check for
    the field type runs and all their errors are returned.
    """
    result = ValidationResult()
    if is_empty(value):
        if field.required:
            result.add(message("required", locale, label=field.display_name), field=field.id)
        return result
    for check in FieldCheckRegistry.get(field.type):
        for msg in check(value, field, locale):
            result.add(msg, field=field.id)
    return result
