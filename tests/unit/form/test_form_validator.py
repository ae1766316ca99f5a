from typing import Any, Dict, List, Mapping

import pytest

from formlogic.form.form_elements import ConditionalRule, FieldDefinition, SchemaError
from formlogic.form.form_validator import (
    FormValidator,
    fields_match,
    get_validation_summary,
    greater_than,
    mutually_exclusive,
    required_if,
    validate_form,
)
from formlogic.form.visibility import resolve_visibility
from formlogic.model.enums import Condition, ConditionMode, RuleAction, Visibility


def car_form() -> List[FieldDefinition]:
    return [
        FieldDefinition.from_dict(
            {"id": "f1", "type": "select", "label": "Has car", "options": ["Sim", "Não"], "required": True}
        ),
        FieldDefinition.from_dict(
            {
                "id": "f2",
                "type": "text",
                "label": "Plate",
                "required": True,
                "dependency": {"dependsOnFieldId": "f1", "condition": "equals", "value": "Sim"},
            }
        ),
    ]


def test_unanswered_dependency_hides_required_field() -> None:
    res = FormValidator(car_form()).validate({})
    assert res.errors == ["Has car is required"]


def test_non_matching_equals_keeps_field_out() -> None:
    fields = car_form()
    visibility = resolve_visibility(fields, {"f1": "Não"})
    assert visibility["f2"] is Visibility.HIDDEN
    assert validate_form(fields, {"f1": "Não"}, visibility).is_valid


def test_matching_dependency_and_answered() -> None:
    res = FormValidator(car_form()).validate({"f1": "Sim", "f2": "ok"})
    assert res.is_valid
    assert res.as_dict() == {"isValid": True, "errors": []}


def test_matching_dependency_unanswered() -> None:
    res = FormValidator(car_form()).validate({"f1": "Sim"})
    assert res.errors == ["Plate is required"]
    assert res.field_errors == {"f2": ["Plate is required"]}


def test_legacy_non_equals_dependency_stays_visible() -> None:
    fields = [
        FieldDefinition.from_dict({"id": "f1", "type": "select", "options": ["Sim", "Não"]}),
        FieldDefinition.from_dict(
            {
                "id": "f2",
                "type": "text",
                "label": "Reason",
                "required": True,
                "dependency": {"dependsOnFieldId": "f1", "condition": "not_equals", "value": "Sim"},
            }
        ),
    ]
    # only equals dependencies are honoured in legacy mode
    assert FormValidator(fields).validate({"f1": "Sim"}).errors == ["Reason is required"]
    generalized = FormValidator(fields, mode=ConditionMode.GENERALIZED)
    assert generalized.validate({"f1": "Sim"}).is_valid


def test_hidden_and_disabled_fields_never_reported() -> None:
    fields = [
        FieldDefinition(id="a", type="text", label="A", required=True),
        FieldDefinition(id="b", type="text", label="B", required=True),
        FieldDefinition(id="c", type="number", label="C", required=True),
    ]
    visibility = {"a": Visibility.HIDDEN, "b": Visibility.DISABLED}
    res = validate_form(fields, {"c": "nope"}, visibility)
    assert res.errors == ["C must be a number"]
    assert set(res.field_errors) == {"c"}


def test_errors_follow_schema_order() -> None:
    fields = [
        FieldDefinition(id="z", type="text", label="Z", required=True),
        FieldDefinition(id="a", type="text", label="A", required=True),
    ]
    answers: Dict[str, Any] = {}
    first = validate_form(fields, answers, {})
    second = validate_form(fields, answers, {})
    assert first.errors == second.errors == ["Z is required", "A is required"]


def test_cross_field_messages_follow_field_errors() -> None:
    fields = [
        FieldDefinition(id="start", type="number", label="Start", required=True),
        FieldDefinition.from_dict({"id": "end", "type": "number", "label": "End", "validations": {"max": 100}}),
    ]
    validator = FormValidator(fields, cross_field_validators=[greater_than("end", "start")])
    res = validator.validate({"start": "50", "end": "200"})
    assert res.errors == ["End must be at most 100"]
    res = validator.validate({"start": "50", "end": "10"})
    assert res.errors == ["end must be greater than start (50)"]


def test_cross_field_validator_sees_hidden_answers() -> None:
    seen: List[Mapping[str, Any]] = []

    def spy(answers: Mapping[str, Any]) -> List[str]:
        seen.append(answers)
        return []

    validator = FormValidator(car_form(), cross_field_validators=[spy])
    validator.validate({"f1": "Não", "f2": "stale"})
    assert seen == [{"f1": "Não", "f2": "stale"}]


def test_cross_field_validator_errors_propagate() -> None:
    def broken(answers: Mapping[str, Any]) -> List[str]:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        validate_form([], {}, {}, [broken])


def test_greater_than_skips_empty_and_non_numeric() -> None:
    check = greater_than("end", "start", message="End before start")
    assert check({"start": "", "end": "1"}) == []
    assert check({"start": "a", "end": "1"}) == []
    assert check({"start": 5, "end": 5}) == ["End before start"]
    assert check({"start": 5, "end": 6}) == []


def test_required_if() -> None:
    check = required_if("f1", Condition.EQUALS, "Sim", "f2")
    assert check({"f1": "Sim"}) == ["f2 is required when f1 is answered so"]
    assert check({"f1": "Sim", "f2": "x"}) == []
    assert check({"f1": "Não"}) == []
    over = required_if("age", "greater_than", 17, "id_card", message="ID needed")
    assert over({"age": "30"}) == ["ID needed"]


def test_mutually_exclusive() -> None:
    check = mutually_exclusive("phone", "email")
    assert check({"phone": "1"}) == []
    assert check({"phone": "1", "email": "a@b.c"}) == ["Only one of phone, email may be answered"]


def test_fields_match() -> None:
    check = fields_match("email2", "email")
    assert check({}) == []
    assert check({"email": "a@b.c", "email2": "a@b.c"}) == []
    assert check({"email": "a@b.c", "email2": "x@b.c"}) == ["email2 does not match email"]


def test_summary_counts() -> None:
    fields = car_form()
    summary = get_validation_summary(fields, {"f1": "Sim"}, resolve_visibility(fields, {"f1": "Sim"}))
    assert summary == [
        {"field": "Has car", "valid_count": 1, "invalid_count": 0},
        {"field": "Plate", "valid_count": 0, "invalid_count": 1},
    ]
    hidden = FormValidator(fields).summary({"f1": "Não"})
    assert hidden[1] == {"field": "Plate", "valid_count": 1, "invalid_count": 0}


def test_from_config() -> None:
    config = {
        "condition_mode": "generalized",
        "strict_conditions": True,
        "cascade_hidden": True,
        "locale": "pt",
    }
    validator = FormValidator.from_config(car_form(), config)
    assert validator.mode is ConditionMode.GENERALIZED
    assert validator.strict and validator.cascade
    assert validator.validate({}).errors == ["Has car é obrigatório"]


def test_explicit_rules() -> None:
    fields = [
        FieldDefinition(id="kind", type="select", options=["person", "company"]),
        FieldDefinition(id="tax_id", type="text", label="Tax id", required=True),
    ]
    rule = ConditionalRule("kind", Condition.EQUALS, "person", "tax_id", RuleAction.HIDE)
    validator = FormValidator(fields, rules=[rule], mode="generalized")
    assert validator.resolve({"kind": "person"})["tax_id"] is Visibility.HIDDEN
    assert validator.validate({"kind": "person"}).is_valid
    assert validator.validate({"kind": "company"}).errors == ["Tax id is required"]


def test_from_document_and_check_schema() -> None:
    document = {
        "elements": [f.as_dict() for f in car_form()],
        "conditionalRules": [
            {"fieldId": "f1", "operator": "equals", "value": "Não", "targetFieldId": "ghost", "action": "hide"}
        ],
    }
    validator = FormValidator.from_document(document, {"condition_mode": "generalized"})
    assert len(validator.rules) == 1
    # the broken rule is ignored at evaluation time
    assert validator.validate({"f1": "Sim", "f2": "ok"}).is_valid
    with pytest.raises(SchemaError) as exc:
        validator.check_schema()
    assert any("ghost" in p for p in exc.value.problems)


def test_add_cross_field_validator() -> None:
    validator = FormValidator(car_form())
    validator.add_cross_field_validator(lambda answers: ["always"])
    assert validator.validate({"f1": "Sim", "f2": "ok"}).errors == ["always"]


def test_configured_depth_limit_used_by_check_schema() -> None:
    fields = [FieldDefinition(id="f0", type="text")] + [
        FieldDefinition.from_dict(
            {"id": f"f{i}", "type": "text", "dependency": {"dependsOnFieldId": f"f{i - 1}", "value": "y"}}
        )
        for i in range(1, 4)
    ]
    limited = FormValidator.from_config(fields, {"max_dependency_depth": 2})
    assert limited.max_dependency_depth == 2
    with pytest.raises(SchemaError) as exc:
        limited.check_schema()
    assert exc.value.problems == ["Dependency chain depth 3 > 2"]
    assert FormValidator.from_config(fields, {}).check_schema()


def test_caller_visibility_states_fail_open() -> None:
    fields = [
        FieldDefinition(id=fid, type="text", label=fid.upper(), required=True)
        for fid in ("a", "b", "c", "d", "e")
    ]
    visibility = {"a": "enabled", "b": "hidden", "c": "bogus", "d": "DISABLED", "e": Visibility.VISIBLE}
    res = validate_form(fields, {}, visibility)
    assert res.errors == ["A is required", "C is required", "E is required"]
