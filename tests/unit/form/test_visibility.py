from typing import Any

import pytest

from formlogic.form.form_elements import (
    ConditionalRule,
    DependencyRule,
    FieldDefinition,
    SchemaError,
)
from formlogic.form.visibility import (
    dependency_order,
    find_dependency_cycles,
    get_dependent_fields,
    get_field_dependencies,
    resolve_visibility,
)
from formlogic.model.enums import Condition, ConditionMode, FieldType, RuleAction, Visibility

V, H, D = Visibility.VISIBLE, Visibility.HIDDEN, Visibility.DISABLED


def field(fid: str, dep: Any = None, ftype: FieldType = FieldType.TEXT) -> FieldDefinition:
    dependency = None
    if dep is not None:
        source, condition, value, *action = dep
        dependency = DependencyRule(
            depends_on=source,
            condition=condition,
            value=value,
            action=RuleAction.parse(action[0] if action else None),
        )
    return FieldDefinition(id=fid, type=ftype, label=fid.upper(), dependency=dependency)


def schema() -> list[FieldDefinition]:
    return [
        field("f1", ftype=FieldType.SELECT),
        field("f2", ("f1", "equals", "Sim")),
        field("f3", ("f1", "not_equals", "Sim")),
        field("f4", ("f1", "contains", "im")),
        field("f5"),
    ]


def test_all_visible_without_dependencies() -> None:
    fields = [field("a"), field("b"), field("c")]
    assert resolve_visibility(fields, {}) == {"a": V, "b": V, "c": V}


def test_output_keeps_schema_order() -> None:
    assert list(resolve_visibility(schema(), {})) == ["f1", "f2", "f3", "f4", "f5"]


def test_legacy_equals_drives_visibility() -> None:
    fields = schema()
    assert resolve_visibility(fields, {"f1": "Sim"})["f2"] is V
    assert resolve_visibility(fields, {"f1": "Não"})["f2"] is H
    assert resolve_visibility(fields, {})["f2"] is H


@pytest.mark.parametrize("answer", ["Sim", "Não", None, ""])
def test_legacy_other_conditions_never_hide(answer: Any) -> None:
    result = resolve_visibility(schema(), {"f1": answer})
    assert result["f3"] is V
    assert result["f4"] is V


def test_legacy_ignores_dependency_action() -> None:
    fields = [field("a"), field("b", ("a", "equals", "x", "hide"))]
    assert resolve_visibility(fields, {"a": "x"})["b"] is V
    assert resolve_visibility(fields, {"a": "y"})["b"] is H


def test_generalized_every_condition_governs() -> None:
    fields = schema()
    sim = resolve_visibility(fields, {"f1": "Sim"}, mode=ConditionMode.GENERALIZED)
    nao = resolve_visibility(fields, {"f1": "Não"}, mode="generalized")
    assert (sim["f2"], sim["f3"], sim["f4"]) == (V, H, V)
    assert (nao["f2"], nao["f3"], nao["f4"]) == (H, V, H)


def test_generalized_actions() -> None:
    fields = [
        field("a"),
        field("hide_me", ("a", "equals", "x", "hide")),
        field("enable_me", ("a", "equals", "x", "enable")),
        field("disable_me", ("a", "equals", "x", "disable")),
    ]
    on = resolve_visibility(fields, {"a": "x"}, mode="generalized")
    off = resolve_visibility(fields, {"a": "y"}, mode="generalized")
    assert (on["hide_me"], on["enable_me"], on["disable_me"]) == (H, V, D)
    assert (off["hide_me"], off["enable_me"], off["disable_me"]) == (V, D, V)


def test_generalized_show_rules_are_ored_and_hide_wins() -> None:
    fields = [field("a"), field("b"), field("t")]
    rules = [
        ConditionalRule("a", Condition.EQUALS, "1", "t", RuleAction.SHOW),
        ConditionalRule("b", Condition.EQUALS, "1", "t", RuleAction.SHOW),
        ConditionalRule("b", Condition.EQUALS, "stop", "t", RuleAction.HIDE),
    ]
    assert resolve_visibility(fields, {"b": "1"}, rules, mode="generalized")["t"] is V
    assert resolve_visibility(fields, {}, rules, mode="generalized")["t"] is H
    assert resolve_visibility(fields, {"a": "1", "b": "stop"}, rules, mode="generalized")["t"] is H


def test_legacy_explicit_rules_apply_in_order_on_match() -> None:
    fields = [field("a"), field("t")]
    rules = [
        ConditionalRule("a", Condition.GREATER_THAN, 10, "t", RuleAction.HIDE),
        ConditionalRule("a", Condition.GREATER_THAN, 100, "t", RuleAction.SHOW),
        ConditionalRule("a", Condition.EQUALS, "off", "t", RuleAction.DISABLE),
    ]
    assert resolve_visibility(fields, {"a": "5"}, rules)["t"] is V
    assert resolve_visibility(fields, {"a": "50"}, rules)["t"] is H
    assert resolve_visibility(fields, {"a": "500"}, rules)["t"] is V
    assert resolve_visibility(fields, {"a": "off"}, rules)["t"] is D


def test_unresolved_and_self_references_fail_open() -> None:
    fields = [field("a", ("ghost", "equals", "x")), field("b", ("b", "equals", "x"))]
    rules = [ConditionalRule("a", Condition.EQUALS, None, "ghost", RuleAction.HIDE)]
    for mode in ConditionMode:
        assert resolve_visibility(fields, {}, rules, mode=mode) == {"a": V, "b": V}


def test_unknown_operator_fails_open_unless_strict() -> None:
    fields = [field("a"), field("b", ("a", "matches", "x"))]
    assert resolve_visibility(fields, {}, mode="generalized")["b"] is V
    assert resolve_visibility(fields, {}, mode="generalized", strict=True)["b"] is H


def test_resolution_is_idempotent_and_pure() -> None:
    fields = schema()
    answers = {"f1": "Sim", "f2": "stale"}
    snapshot = dict(answers)
    first = resolve_visibility(fields, answers)
    second = resolve_visibility(fields, answers)
    assert first == second
    assert first is not second
    assert answers == snapshot


def test_hidden_answers_are_retained() -> None:
    answers = {"f1": "Não", "f2": "typed before f1 changed"}
    resolve_visibility(schema(), answers)
    assert answers["f2"] == "typed before f1 changed"


def test_chain_without_cascade_uses_raw_answers() -> None:
    fields = [field("a"), field("b", ("a", "equals", "x")), field("c", ("b", "equals", "y"))]
    result = resolve_visibility(fields, {"a": "nope", "b": "y"}, mode="generalized")
    assert result == {"a": V, "b": H, "c": V}


def test_cascade_hides_descendants_of_hidden_fields() -> None:
    fields = [field("c", ("b", "equals", "y")), field("b", ("a", "equals", "x")), field("a")]
    result = resolve_visibility(fields, {"a": "nope", "b": "y"}, mode="generalized", cascade=True)
    assert result == {"c": H, "b": H, "a": V}
    assert list(result) == ["c", "b", "a"]


def test_cascade_rejects_cycles() -> None:
    fields = [field("a", ("b", "equals", "1")), field("b", ("a", "equals", "1"))]
    # without cascade the cycle is harmless
    assert resolve_visibility(fields, {"a": "1", "b": "1"}, mode="generalized") == {"a": V, "b": V}
    with pytest.raises(SchemaError) as exc:
        resolve_visibility(fields, {}, mode="generalized", cascade=True)
    assert exc.value.problems


def test_dependency_queries() -> None:
    fields = schema()
    rules = [ConditionalRule("f5", Condition.EQUALS, "x", "f2", RuleAction.HIDE)]
    assert get_field_dependencies("f2", fields, rules) == ["f1", "f5"]
    assert get_field_dependencies("f1", fields, rules) == []
    assert get_dependent_fields("f1", fields, rules) == ["f2", "f3", "f4"]
    assert get_dependent_fields("f5", fields, rules) == ["f2"]


def test_find_dependency_cycles() -> None:
    acyclic = [field("a"), field("b", ("a", "equals", "1")), field("c", ("b", "equals", "1"))]
    assert find_dependency_cycles(acyclic) == []
    cyclic = [
        field("a", ("c", "equals", "1")),
        field("b", ("a", "equals", "1")),
        field("c", ("b", "equals", "1")),
        field("d"),
    ]
    cycles = find_dependency_cycles(cyclic)
    assert len(cycles) == 1
    assert set(cycles[0]) == {"a", "b", "c"}


def test_dependency_order() -> None:
    fields = [field("c", ("b", "equals", "1")), field("b", ("a", "equals", "1")), field("a"), field("z")]
    assert dependency_order(fields) == ["a", "b", "c", "z"]


def test_duplicate_ids_are_not_a_cycle() -> None:
    fields = [field("a"), field("a"), field("b", dep=("a", "equals", "x"))]
    assert dependency_order(fields) == ["a", "b"]
    states = resolve_visibility(fields, {"a": "x"}, mode="generalized", cascade=True)
    assert states == {"a": V, "b": V}


def test_long_chain_has_no_cycles() -> None:
    fields = [field("f0")] + [field(f"f{i}", dep=(f"f{i - 1}", "equals", "y")) for i in range(1, 1500)]
    assert find_dependency_cycles(fields) == []
    assert dependency_order(fields)[-1] == "f1499"
