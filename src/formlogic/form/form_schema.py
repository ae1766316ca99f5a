"""Save-time checks for form documents: field types, ids, options, allowed
validation keys, dependency references, cycles and depth.

The evaluation path never raises for a broken schema (it fails open); this is
where broken schemas get rejected, before they are published.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import copy
import logging

from formlogic.form.form_elements import (
    ConditionalRule,
    FieldDefinition,
    SchemaError,
    fields_from_dicts,
    rules_from_dicts,
    rules_from_fields,
)
from formlogic.form.visibility import dependency_order, find_dependency_cycles
from formlogic.model.enums import Condition, FieldType

logger = logging.getLogger(__name__)

__all__ = ["FORM_SCHEMA_DEFAULT", "FormSchema", "SchemaError", "load_fields"]

_TEXT_VALIDATIONS = ["pattern", "format", "min_length", "max_length"]

FORM_SCHEMA_DEFAULT: Dict[str, Any] = {
    "version": "1.0",
    "required_keys": ["elements"],
    "field_types": {
        "text": {
            "validations": _TEXT_VALIDATIONS,
            "options": False,
            "i18n": {"en": "Text", "pt": "Texto"},
        },
        "textarea": {
            "validations": _TEXT_VALIDATIONS,
            "options": False,
            "i18n": {"en": "Multiline text", "pt": "Área de texto"},
        },
        "number": {
            "validations": ["min", "max"],
            "options": False,
            "i18n": {"en": "Number", "pt": "Número"},
        },
        "select": {
            "validations": [],
            "options": True,
            "i18n": {"en": "Single select", "pt": "Seleção"},
        },
        "checkbox": {
            "validations": [],
            "options": True,
            "i18n": {"en": "Checkbox group", "pt": "Caixa de seleção"},
        },
        "date": {
            "validations": [],
            "options": False,
            "i18n": {"en": "Date", "pt": "Data"},
        },
        "signature": {
            "validations": [],
            "options": False,
            "i18n": {"en": "Signature", "pt": "Assinatura"},
        },
        "file_upload": {
            "validations": ["max_file_size"],
            "options": False,
            "i18n": {"en": "File upload", "pt": "Arquivo"},
        },
    },
    "max_dependency_depth": 50,
}


def load_fields(document: Dict[str, Any]) -> Tuple[List[FieldDefinition], List[ConditionalRule]]:
    """Field definitions and explicit conditional rules of a form document."""
    elements = document.get("elements", [])
    if not isinstance(elements, list):
        raise SchemaError("Form 'elements' must be a list.", problems=["elements: not a list"])
    try:
        fields = fields_from_dicts(elements)
        rules = rules_from_dicts(document.get("conditionalRules") or document.get("rules"))
    except ValueError as ex:
        raise SchemaError(f"Malformed form document: {ex}", problems=[str(ex)]) from ex
    return fields, rules


class FormSchema:
    """
    Schema checker for form documents.

    Example usage:
        schema = FormSchema()
        fields, rules = schema.validate_form(document)
        schema.unregister_field_type("signature")  # forms may no longer collect signatures
    """

    def __init__(self, spec: Optional[Dict[str, Any]] = None) -> None:
        self.spec: Dict[str, Any] = copy.deepcopy(spec if spec is not None else FORM_SCHEMA_DEFAULT)
        self.field_validators: Dict[str, List[Callable[[FieldDefinition], Optional[str]]]] = {}

    @property
    def max_dependency_depth(self) -> int:
        return int(self.spec.get("max_dependency_depth", 50))

    def validate_form(
        self, document: Dict[str, Any]
    ) -> Tuple[List[FieldDefinition], List[ConditionalRule]]:
        """Checks a whole document; returns its fields and rules or raises SchemaError."""
        problems: List[str] = []
        missing = set(self.spec.get("required_keys", [])) - set(document.keys())
        if missing:
            problems.append(f"Missing required form keys: {sorted(missing)}")
        elements = document.get("elements", [])
        if not isinstance(elements, list):
            raise SchemaError("Form 'elements' must be a list.", problems=["elements: not a list"])
        for i, el in enumerate(elements):
            raw_type = el.get("type") if isinstance(el, dict) else None
            if not self._known_type(raw_type):
                problems.append(f"Element {i}: unknown field type {raw_type!r}")
        if problems:
            self._reject(problems)
        fields, rules = load_fields(document)
        self.check_fields(fields, rules)
        logger.info("Form passed schema validation (%d fields, %d rules).", len(fields), len(rules))
        return fields, rules

    def check_fields(
        self, fields: Sequence[FieldDefinition], rules: Sequence[ConditionalRule] = ()
    ) -> bool:
        problems: List[str] = []
        ids: Dict[str, int] = {}
        for i, f in enumerate(fields):
            try:
                f.validate()
            except ValueError as ex:
                problems.append(f"Element {i}: {ex}")
            if f.id in ids:
                problems.append(f"Duplicate field id: {f.id!r}")
            ids.setdefault(f.id, i)
            problems.extend(self._check_field_spec(f))
            for validator in self.field_validators.get(f.type.value, []):
                msg = validator(f)
                if msg:
                    problems.append(f"Field {f.id!r}: {msg}")

        for rule in rules_from_fields(fields) + list(rules):
            problems.extend(self._check_rule(rule, ids))

        for cycle in find_dependency_cycles(fields, rules):
            problems.append(f"Dependency cycle: {' -> '.join(cycle + cycle[:1])}")
        if not problems:
            depth = self.dependency_depth(fields, rules)
            if depth > self.max_dependency_depth:
                problems.append(
                    f"Dependency chain depth {depth} > {self.max_dependency_depth}"
                )
        if problems:
            self._reject(problems)
        return True

    def dependency_depth(
        self, fields: Sequence[FieldDefinition], rules: Sequence[ConditionalRule] = ()
    ) -> int:
        """Longest source -> target chain; raises SchemaError on a cyclic schema."""
        sources: Dict[str, List[str]] = {f.id: [] for f in fields}
        for rule in rules_from_fields(fields) + list(rules):
            if rule.target_field_id in sources and rule.field_id in sources:
                sources[rule.target_field_id].append(rule.field_id)
        depth: Dict[str, int] = {}
        # sources come first in dependency order
        for fid in dependency_order(fields, rules):
            depth[fid] = 1 + max((depth[s] for s in sources[fid] if s != fid), default=-1)
        return max(depth.values(), default=0)

    def _known_type(self, raw_type: Any) -> bool:
        if not isinstance(raw_type, str):
            return False
        try:
            return FieldType.parse(raw_type).value in self.spec.get("field_types", {})
        except ValueError:
            return False

    def _check_field_spec(self, f: FieldDefinition) -> List[str]:
        tspec = self.get_field_type_schema(f.type.value)
        if tspec is None:
            return [f"Field {f.id!r}: type {f.type.value!r} is not enabled"]
        problems = []
        if tspec.get("options") and not f.options:
            problems.append(f"Field {f.id!r}: {f.type.value} field needs options")
        allowed = set(tspec.get("validations", []))
        for key in f.validations.configured():
            if key not in allowed:
                problems.append(f"Field {f.id!r}: validation {key!r} not allowed for {f.type.value}")
        return problems

    def _check_rule(self, rule: ConditionalRule, ids: Dict[str, int]) -> List[str]:
        problems = []
        if rule.target_field_id not in ids:
            problems.append(f"Rule targets unknown field {rule.target_field_id!r}")
        if rule.field_id not in ids:
            problems.append(
                f"Field {rule.target_field_id!r} depends on unknown field {rule.field_id!r}"
            )
        elif rule.field_id == rule.target_field_id:
            problems.append(f"Field {rule.field_id!r} depends on itself")
        if Condition.parse(rule.operator) is None:
            # accepted: unknown operators fail open at evaluation time
            logger.warning(
                "Field %r uses unknown condition %r", rule.target_field_id, rule.operator
            )
        return problems

    def _reject(self, problems: List[str]) -> None:
        logger.warning("Form rejected: %s", problems)
        raise SchemaError(f"Schema validation failed: {problems}", problems=problems)

    def get_field_type_schema(self, type_name: str) -> Optional[Dict[str, Any]]:
        tspec = self.spec.get("field_types", {}).get(type_name)
        if isinstance(tspec, dict):
            return tspec
        return None

    def list_supported_field_types(self) -> List[str]:
        return sorted(self.spec.get("field_types", {}).keys())

    def describe(self, include_i18n: bool = False) -> Dict[str, Any]:
        sd = copy.deepcopy(self.spec)
        if not include_i18n:
            for tspec in sd.get("field_types", {}).values():
                tspec.pop("i18n", None)
        return sd

    def register_field_type(self, type_name: str, schema: Dict[str, Any]) -> None:
        """Enables (or overrides) the schema entry of a field type."""
        self.spec.setdefault("field_types", {})[type_name] = schema
        logger.info("Registered field type schema: %r", type_name)

    def unregister_field_type(self, type_name: str) -> None:
        ft = self.spec.get("field_types", {})
        if type_name in ft:
            del ft[type_name]
            logger.info("Unregistered field type schema: %r", type_name)

    def register_field_validator(
        self, type_name: str, validator: Callable[[FieldDefinition], Optional[str]]
    ) -> None:
        """Custom save-time check for every field of ``type_name``."""
        self.field_validators.setdefault(type_name, []).append(validator)
        logger.info("Registered schema validator for %r", type_name)
