"""Field definitions of a form: typed fields, their validation constraints and the
conditional rules that govern their visibility.

Plain data only. Documents persisted by the editor use camelCase keys
(``dependsOnId``, ``minLength``, ``targetFieldId``); ``from_dict`` accepts both
those and the snake_case names used here.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field, fields as dc_fields
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from formlogic.form.conditions import to_number
from formlogic.model.enums import Condition, FieldType, RuleAction

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="FieldDefinition")

__all__ = [
    "SchemaError",
    "FieldValidations",
    "DependencyRule",
    "ConditionalRule",
    "FieldDefinition",
    "fields_from_dicts",
    "rules_from_dicts",
    "rules_from_fields",
]

_ID_RE = re.compile(r"^[a-zA-Z0-9_\-]+$")


class SchemaError(Exception):
    """A form schema the engine cannot work with (broken references, cycles)."""

    def __init__(self, message: str, problems: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.problems: List[str] = list(problems or [])


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


def _condition_value(raw: Any) -> Any:
    # unknown operators are kept verbatim; the evaluator decides what they mean
    parsed = Condition.parse(raw)
    return parsed if parsed is not None else raw


@dataclass(frozen=True)
class FieldValidations:
    """Optional constraints; only the ones relevant to the field type are applied."""

    pattern: Optional[str] = None
    format: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min: Optional[float] = None
    max: Optional[float] = None
    max_file_size: Optional[float] = None  # MB

    _KEYS = {
        "pattern": ("pattern",),
        "format": ("format",),
        "min_length": ("min_length", "minLength"),
        "max_length": ("max_length", "maxLength"),
        "min": ("min",),
        "max": ("max",),
        "max_file_size": ("max_file_size", "maxFileSize"),
    }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> FieldValidations:
        if not data:
            return cls()
        raw = {name: _pick(data, *keys) for name, keys in cls._KEYS.items()}
        for name in ("min", "max", "max_file_size", "min_length", "max_length"):
            if raw[name] is not None:
                num = to_number(raw[name])
                if num is None:
                    raise ValueError(f"Validation {name!r} must be numeric, got {raw[name]!r}")
                raw[name] = int(num) if name.endswith("_length") else num
        return cls(**raw)

    def as_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def configured(self) -> List[str]:
        return list(self.as_dict().keys())


@dataclass(frozen=True)
class ConditionalRule:
    """One rule of the multi-rule model: when ``field_id`` matches, apply ``action`` to the target."""

    field_id: str
    operator: Any
    value: Any
    target_field_id: str
    action: RuleAction = RuleAction.SHOW

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ConditionalRule:
        return cls(
            field_id=_pick(data, "field_id", "fieldId", "field", default=""),
            operator=_condition_value(_pick(data, "operator", "condition")),
            value=data.get("value"),
            target_field_id=_pick(data, "target_field_id", "targetFieldId", "target", default=""),
            action=RuleAction.parse(data.get("action")),
        )

    def as_dict(self) -> Dict[str, Any]:
        op = self.operator.value if isinstance(self.operator, Condition) else self.operator
        return {
            "field_id": self.field_id,
            "operator": op,
            "value": self.value,
            "target_field_id": self.target_field_id,
            "action": self.action.value,
        }


@dataclass(frozen=True)
class DependencyRule:
    """The single inbound dependency a field may declare."""

    depends_on: str
    condition: Any = Condition.EQUALS
    value: Any = None
    action: RuleAction = RuleAction.SHOW

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DependencyRule:
        return cls(
            depends_on=_pick(data, "depends_on", "dependsOnFieldId", "dependsOnId", default=""),
            condition=_condition_value(_pick(data, "condition", "operator", default="equals")),
            value=data.get("value"),
            action=RuleAction.parse(data.get("action")),
        )

    def to_rule(self, target_field_id: str) -> ConditionalRule:
        return ConditionalRule(
            field_id=self.depends_on,
            operator=self.condition,
            value=self.value,
            target_field_id=target_field_id,
            action=self.action,
        )

    def as_dict(self) -> Dict[str, Any]:
        cond = self.condition.value if isinstance(self.condition, Condition) else self.condition
        return {
            "depends_on": self.depends_on,
            "condition": cond,
            "value": self.value,
            "action": self.action.value,
        }


@dataclass
class FieldDefinition:
    """A single form field as authored in the editor."""

    id: str
    type: FieldType
    label: str = ""
    required: bool = False
    options: Optional[List[str]] = None
    dependency: Optional[DependencyRule] = None
    validations: FieldValidations = field(default_factory=FieldValidations)
    placeholder: Optional[str] = None
    _unknown_attrs: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.type = FieldType.parse(self.type)
        if self.options is not None:
            self.options = [str(o) for o in self.options]

    @property
    def display_name(self) -> str:
        return self.label or self.id

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "label": self.label,
            "required": self.required,
        }
        if self.options is not None:
            d["options"] = list(self.options)
        if self.dependency is not None:
            d["dependency"] = self.dependency.as_dict()
        if self.validations.configured():
            d["validations"] = self.validations.as_dict()
        if self.placeholder is not None:
            d["placeholder"] = self.placeholder
        if self._unknown_attrs:
            d["_unknown_attrs"] = dict(self._unknown_attrs)
        return d

    def validate(self) -> None:
        if not isinstance(self.id, str) or not _ID_RE.fullmatch(self.id):
            raise ValueError(
                f"Field id must be an alphanumeric string (a-zA-Z0-9_-), got {self.id!r}"
            )
        if not isinstance(self.required, bool):
            raise ValueError(f"Field {self.id!r}: 'required' must be a boolean")
        if self.options is not None and not self.type.has_options:
            logger.debug("Field %r declares options but is of type %s", self.id, self.type.value)
        if self.dependency is not None:
            if not isinstance(self.dependency.depends_on, str) or not self.dependency.depends_on:
                raise ValueError(f"Field {self.id!r}: dependency must name a field id")
        v = self.validations
        for lo, hi in ((v.min_length, v.max_length), (v.min, v.max)):
            if lo is not None and hi is not None and lo > hi:
                raise ValueError(f"Field {self.id!r}: lower bound {lo} exceeds upper bound {hi}")

    @classmethod
    def from_dict(cls: Type[T], data: Dict[str, Any], collect_unused: bool = False) -> T:
        dep_raw = _pick(data, "dependency", "logic")
        allowed = {f.name for f in dc_fields(cls) if f.init} | {"logic"}
        obj = cls(
            id=data.get("id", ""),
            type=data.get("type", ""),
            label=data.get("label") or "",
            required=bool(data.get("required", False)),
            options=data.get("options"),
            dependency=DependencyRule.from_dict(dep_raw) if dep_raw else None,
            validations=FieldValidations.from_dict(data.get("validations")),
            placeholder=data.get("placeholder"),
        )
        if collect_unused:
            unknown = {k: v for k, v in data.items() if k not in allowed}
            obj._unknown_attrs.update(unknown)
        return obj


def fields_from_dicts(items: Iterable[Dict[str, Any]]) -> List[FieldDefinition]:
    return [FieldDefinition.from_dict(item) for item in items]


def rules_from_dicts(items: Optional[Iterable[Dict[str, Any]]]) -> List[ConditionalRule]:
    return [ConditionalRule.from_dict(item) for item in items or []]


def rules_from_fields(fields: Iterable[FieldDefinition]) -> List[ConditionalRule]:
    """Migrates per-field dependencies into the multi-rule model, in schema order."""
    return [f.dependency.to_rule(f.id) for f in fields if f.dependency is not None]
