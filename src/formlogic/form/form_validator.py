"""
form_validator.py: whole-form validation: resolves visibility, validates every
visible field in schema order, then runs the cross-field validators supplied by
the form author.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from formlogic.form.conditions import as_text, evaluate, to_number
from formlogic.form.form_elements import ConditionalRule, FieldDefinition
from formlogic.form.form_schema import FORM_SCHEMA_DEFAULT, FormSchema, load_fields
from formlogic.form.validation import DEFAULT_LOCALE, ValidationResult, is_empty, validate_field
from formlogic.form.visibility import VisibilityMap, resolve_visibility
from formlogic.model.enums import Condition, ConditionMode, Visibility

logger = logging.getLogger(__name__)

CrossFieldValidator = Callable[[Mapping[str, Any]], Iterable[str]]


def _is_collected(field_id: str, visibility: Mapping[str, Any]) -> bool:
    state = visibility.get(field_id, Visibility.VISIBLE)
    if isinstance(state, Visibility):
        return state.is_collected
    # caller-built maps may use other states ("enabled"); only hidden/disabled drop a field
    return str(state).strip().lower() not in (Visibility.HIDDEN.value, Visibility.DISABLED.value)


def validate_form(
    fields: Sequence[FieldDefinition],
    answers: Mapping[str, Any],
    visibility: Mapping[str, Any],
    cross_field_validators: Iterable[CrossFieldValidator] = (),
    locale: str = DEFAULT_LOCALE,
) -> ValidationResult:
    """
    Validates ``answers`` against the visible fields of ``fields``.

    Hidden and disabled fields are skipped entirely. A field missing from
    ``visibility`` counts as visible. Cross-field validators see the raw answers
    regardless of visibility; their messages follow the per-field ones.
    """
    result = ValidationResult()
    skipped = 0
    for f in fields:
        if not _is_collected(f.id, visibility):
            skipped += 1
            continue
        result.extend(validate_field(answers.get(f.id), f, locale=locale))
    for validator in cross_field_validators:
        for msg in validator(answers):
            result.add(msg)
    logger.debug(
        "Form validated: %d fields, %d skipped, %d errors",
        len(fields),
        skipped,
        len(result.errors),
    )
    return result


def get_validation_summary(
    fields: Sequence[FieldDefinition],
    answers: Mapping[str, Any],
    visibility: Optional[Mapping[str, Any]] = None,
    locale: str = DEFAULT_LOCALE,
) -> List[Dict[str, Any]]:
    """Per-field pass/fail counts, for completion reports. Hidden fields count as valid."""
    summary: List[Dict[str, Any]] = []
    for f in fields:
        ok = True
        if visibility is None or _is_collected(f.id, visibility):
            ok = validate_field(answers.get(f.id), f, locale=locale).is_valid
        summary.append(
            {"field": f.label or f.id, "valid_count": int(ok), "invalid_count": int(not ok)}
        )
    return summary


# ----- Cross-field validator factories -----


def greater_than(field_id: str, other_id: str, message: Optional[str] = None) -> CrossFieldValidator:
    """``field_id`` must be numerically greater than ``other_id`` when both are answered."""

    def validator(answers: Mapping[str, Any]) -> List[str]:
        value, other = answers.get(field_id), answers.get(other_id)
        if is_empty(value) or is_empty(other):
            return []
        if evaluate(Condition.GREATER_THAN, other, value):
            return []
        if to_number(value) is None or to_number(other) is None:
            return []
        return [message or f"{field_id} must be greater than {other_id} ({as_text(other)})"]

    return validator


def required_if(
    field_id: str,
    condition: Union[Condition, str],
    value: Any,
    required_id: str,
    message: Optional[str] = None,
) -> CrossFieldValidator:
    """When the answer of ``field_id`` satisfies the condition, ``required_id`` must be answered."""

    def validator(answers: Mapping[str, Any]) -> List[str]:
        if evaluate(condition, value, answers.get(field_id)) and is_empty(answers.get(required_id)):
            return [message or f"{required_id} is required when {field_id} is answered so"]
        return []

    return validator


def mutually_exclusive(*field_ids: str, message: Optional[str] = None) -> CrossFieldValidator:
    """At most one of ``field_ids`` may be answered."""

    def validator(answers: Mapping[str, Any]) -> List[str]:
        answered = [fid for fid in field_ids if not is_empty(answers.get(fid))]
        if len(answered) > 1:
            return [message or f"Only one of {', '.join(answered)} may be answered"]
        return []

    return validator


def fields_match(field_id: str, other_id: str, message: Optional[str] = None) -> CrossFieldValidator:
    """Both answers must be equal (e-mail / password confirmation)."""

    def validator(answers: Mapping[str, Any]) -> List[str]:
        value, other = answers.get(field_id), answers.get(other_id)
        if is_empty(value) and is_empty(other):
            return []
        if evaluate(Condition.EQUALS, other, value):
            return []
        return [message or f"{field_id} does not match {other_id}"]

    return validator


class FormValidator:
    """
    Resolve-then-validate facade over one form schema.

    Holds no answer state: every call works on the answers it is given, so one
    instance can serve many concurrent submissions of the same form.
    """

    def __init__(
        self,
        fields: Sequence[FieldDefinition],
        rules: Iterable[ConditionalRule] = (),
        cross_field_validators: Iterable[CrossFieldValidator] = (),
        mode: Union[ConditionMode, str] = ConditionMode.LEGACY,
        strict: bool = False,
        cascade: bool = False,
        locale: str = DEFAULT_LOCALE,
        max_dependency_depth: int = FORM_SCHEMA_DEFAULT["max_dependency_depth"],
    ) -> None:
        self.fields: List[FieldDefinition] = list(fields)
        self.rules: List[ConditionalRule] = list(rules)
        self.cross_field_validators: List[CrossFieldValidator] = list(cross_field_validators)
        self.mode = ConditionMode.parse(mode)
        self.strict = strict
        self.cascade = cascade
        self.locale = locale
        self.max_dependency_depth = max_dependency_depth

    @classmethod
    def from_config(
        cls,
        fields: Sequence[FieldDefinition],
        config: Mapping[str, Any],
        rules: Iterable[ConditionalRule] = (),
        cross_field_validators: Iterable[CrossFieldValidator] = (),
    ) -> "FormValidator":
        return cls(
            fields,
            rules=rules,
            cross_field_validators=cross_field_validators,
            mode=config.get("condition_mode", ConditionMode.LEGACY),
            strict=bool(config.get("strict_conditions", False)),
            cascade=bool(config.get("cascade_hidden", False)),
            locale=config.get("locale", DEFAULT_LOCALE),
            max_dependency_depth=int(
                config.get("max_dependency_depth", FORM_SCHEMA_DEFAULT["max_dependency_depth"])
            ),
        )

    def add_cross_field_validator(self, validator: CrossFieldValidator) -> None:
        self.cross_field_validators.append(validator)

    def resolve(self, answers: Mapping[str, Any]) -> VisibilityMap:
        return resolve_visibility(
            self.fields,
            answers,
            self.rules,
            mode=self.mode,
            strict=self.strict,
            cascade=self.cascade,
        )

    def validate(self, answers: Mapping[str, Any]) -> ValidationResult:
        return validate_form(
            self.fields,
            answers,
            self.resolve(answers),
            self.cross_field_validators,
            locale=self.locale,
        )

    def summary(self, answers: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return get_validation_summary(
            self.fields, answers, self.resolve(answers), locale=self.locale
        )

    def check_schema(self, schema: Optional[FormSchema] = None) -> bool:
        """Save-time check of the held fields and rules; raises SchemaError."""
        if schema is None:
            schema = FormSchema(
                {**FORM_SCHEMA_DEFAULT, "max_dependency_depth": self.max_dependency_depth}
            )
        return schema.check_fields(self.fields, self.rules)

    @classmethod
    def from_document(
        cls,
        document: Dict[str, Any],
        config: Optional[Mapping[str, Any]] = None,
        cross_field_validators: Iterable[CrossFieldValidator] = (),
    ) -> "FormValidator":
        """Builds a validator from a persisted form document (``elements`` + ``conditionalRules``)."""
        fields, rules = load_fields(document)
        return cls.from_config(fields, config or {}, rules, cross_field_validators)
