"""
visibility.py: resolves which fields of a schema are visible, hidden or disabled
for a given answer set.

Two modes:

- ``ConditionMode.LEGACY`` (default): reproduces the historical viewer. Only an
  ``equals`` dependency shows/hides its field; other dependency conditions are
  accepted but never change visibility. Explicit rules are applied in order,
  each one only when it matches.
- ``ConditionMode.GENERALIZED``: every dependency and rule governs its target.
  Per target: if any ``show`` rule exists the target is hidden unless one of
  them matches, any matching ``hide`` hides, if any ``enable`` rule exists the
  target is disabled unless one of them matches, any matching ``disable``
  disables. HIDDEN wins over DISABLED wins over VISIBLE.

References to fields missing from the schema (and self references) are ignored,
so resolution never raises for a broken schema, except when ``cascade`` is
requested and the schema contains a dependency cycle.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

from formlogic.form.conditions import evaluate
from formlogic.form.form_elements import (
    ConditionalRule,
    FieldDefinition,
    SchemaError,
    rules_from_fields,
)
from formlogic.model.enums import Condition, ConditionMode, RuleAction, Visibility

logger = logging.getLogger(__name__)

VisibilityMap = Dict[str, Visibility]

_STATE_RANK = {Visibility.VISIBLE: 0, Visibility.DISABLED: 1, Visibility.HIDDEN: 2}

_ON_MATCH = {
    RuleAction.SHOW: Visibility.VISIBLE,
    RuleAction.ENABLE: Visibility.VISIBLE,
    RuleAction.HIDE: Visibility.HIDDEN,
    RuleAction.DISABLE: Visibility.DISABLED,
}


def _applicable(rule: ConditionalRule, ids: Set[str]) -> bool:
    if rule.target_field_id not in ids or rule.field_id not in ids:
        logger.debug(
            "Rule %s -> %s references an unknown field; not applied",
            rule.field_id,
            rule.target_field_id,
        )
        return False
    if rule.field_id == rule.target_field_id:
        logger.debug("Rule on %r references itself; not applied", rule.field_id)
        return False
    return True


def _all_rules(
    fields: Sequence[FieldDefinition], rules: Iterable[ConditionalRule]
) -> List[ConditionalRule]:
    return rules_from_fields(fields) + list(rules)


def _resolve_legacy(
    fields: Sequence[FieldDefinition],
    answers: Mapping[str, Any],
    rules: Iterable[ConditionalRule],
    ids: Set[str],
    strict: bool,
) -> VisibilityMap:
    result: VisibilityMap = {f.id: Visibility.VISIBLE for f in fields}
    for f in fields:
        dep = f.dependency
        if dep is None or not _applicable(dep.to_rule(f.id), ids):
            continue
        if Condition.parse(dep.condition) is not Condition.EQUALS:
            continue
        matched = evaluate(dep.condition, dep.value, answers.get(dep.depends_on), strict=strict)
        result[f.id] = Visibility.VISIBLE if matched else Visibility.HIDDEN
    for rule in rules:
        if not _applicable(rule, ids):
            continue
        if evaluate(rule.operator, rule.value, answers.get(rule.field_id), strict=strict):
            result[rule.target_field_id] = _ON_MATCH[rule.action]
    return result


def _state_for(
    target_rules: Sequence[ConditionalRule],
    answers: Mapping[str, Any],
    strict: bool,
    source_hidden: Set[str],
) -> Visibility:
    state = Visibility.VISIBLE
    by_action: Dict[RuleAction, List[bool]] = {}
    for rule in target_rules:
        if rule.field_id in source_hidden:
            return Visibility.HIDDEN
        matched = evaluate(rule.operator, rule.value, answers.get(rule.field_id), strict=strict)
        by_action.setdefault(rule.action, []).append(matched)

    def worse(a: Visibility, b: Visibility) -> Visibility:
        return a if _STATE_RANK[a] >= _STATE_RANK[b] else b

    if RuleAction.SHOW in by_action and not any(by_action[RuleAction.SHOW]):
        state = worse(state, Visibility.HIDDEN)
    if any(by_action.get(RuleAction.HIDE, [])):
        state = worse(state, Visibility.HIDDEN)
    if RuleAction.ENABLE in by_action and not any(by_action[RuleAction.ENABLE]):
        state = worse(state, Visibility.DISABLED)
    if any(by_action.get(RuleAction.DISABLE, [])):
        state = worse(state, Visibility.DISABLED)
    return state


def _resolve_generalized(
    fields: Sequence[FieldDefinition],
    answers: Mapping[str, Any],
    rules: Iterable[ConditionalRule],
    ids: Set[str],
    strict: bool,
    cascade: bool,
) -> VisibilityMap:
    applicable = [r for r in _all_rules(fields, rules) if _applicable(r, ids)]
    by_target: Dict[str, List[ConditionalRule]] = {}
    for rule in applicable:
        by_target.setdefault(rule.target_field_id, []).append(rule)

    order = [f.id for f in fields]
    if cascade:
        order = dependency_order(fields, applicable)

    states: VisibilityMap = {}
    hidden: Set[str] = set()
    for fid in order:
        state = _state_for(by_target.get(fid, []), answers, strict, hidden if cascade else set())
        states[fid] = state
        if state is Visibility.HIDDEN:
            hidden.add(fid)
    return {f.id: states[f.id] for f in fields}


def resolve_visibility(
    fields: Sequence[FieldDefinition],
    answers: Mapping[str, Any],
    rules: Iterable[ConditionalRule] = (),
    *,
    mode: Union[ConditionMode, str] = ConditionMode.LEGACY,
    strict: bool = False,
    cascade: bool = False,
) -> VisibilityMap:
    """
    Computes the visibility map for ``fields`` given ``answers``.

    Never mutates its inputs; the returned dict holds every field id in schema
    order. Stale answers of hidden fields are left alone.

    ``cascade`` (generalized mode only) hides a field whose governing field is
    itself hidden, and raises SchemaError on dependency cycles.
    """
    mode = ConditionMode.parse(mode)
    ids = {f.id for f in fields}
    rules = list(rules)
    if mode is ConditionMode.LEGACY:
        if cascade:
            logger.debug("cascade is ignored in legacy mode")
        result = _resolve_legacy(fields, answers, rules, ids, strict)
    else:
        result = _resolve_generalized(fields, answers, rules, ids, strict, cascade)
    logger.debug(
        "Resolved visibility (%s): %d hidden/disabled of %d",
        mode.value,
        sum(1 for v in result.values() if v is not Visibility.VISIBLE),
        len(result),
    )
    return result


# ----- Dependency graph queries -----


def _edges(
    fields: Sequence[FieldDefinition], rules: Iterable[ConditionalRule]
) -> List[ConditionalRule]:
    ids = {f.id for f in fields}
    return [r for r in _all_rules(fields, rules) if r.field_id in ids and r.target_field_id in ids]


def get_field_dependencies(
    field_id: str, fields: Sequence[FieldDefinition], rules: Iterable[ConditionalRule] = ()
) -> List[str]:
    """Ids of the fields whose answers govern ``field_id``."""
    out: List[str] = []
    for rule in _all_rules(fields, rules):
        if rule.target_field_id == field_id and rule.field_id not in out:
            out.append(rule.field_id)
    return out


def get_dependent_fields(
    field_id: str, fields: Sequence[FieldDefinition], rules: Iterable[ConditionalRule] = ()
) -> List[str]:
    """Ids of the fields governed by the answer of ``field_id``."""
    out: List[str] = []
    for rule in _all_rules(fields, rules):
        if rule.field_id == field_id and rule.target_field_id not in out:
            out.append(rule.target_field_id)
    return out


def find_dependency_cycles(
    fields: Sequence[FieldDefinition], rules: Iterable[ConditionalRule] = ()
) -> List[List[str]]:
    """Every cycle of the source -> target graph, as an ordered id list."""
    graph: Dict[str, List[str]] = {f.id: [] for f in fields}
    for rule in _edges(fields, rules):
        if rule.target_field_id not in graph[rule.field_id]:
            graph[rule.field_id].append(rule.target_field_id)

    cycles: List[List[str]] = []
    seen_cycles: Set[frozenset] = set()
    done: Set[str] = set()

    # iterative DFS; chains can be longer than the recursion limit
    for f in fields:
        if f.id in done:
            continue
        path = [f.id]
        on_path = {f.id}
        stack = [iter(graph[f.id])]
        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                node = path.pop()
                on_path.discard(node)
                done.add(node)
                stack.pop()
                continue
            if nxt in on_path:
                cycle = path[path.index(nxt) :]
                key = frozenset(cycle)
                if key not in seen_cycles:
                    seen_cycles.add(key)
                    cycles.append(cycle)
                continue
            if nxt in done:
                continue
            path.append(nxt)
            on_path.add(nxt)
            stack.append(iter(graph[nxt]))
    if cycles:
        logger.warning("Dependency cycles found: %s", cycles)
    return cycles


def dependency_order(
    fields: Sequence[FieldDefinition], rules: Optional[Iterable[ConditionalRule]] = None
) -> List[str]:
    """
    Field ids ordered so that every source comes before the fields it governs;
    ties keep schema order. Raises SchemaError when the graph has a cycle.
    """
    edges = _edges(fields, rules or ())
    indegree: Dict[str, int] = {f.id: 0 for f in fields}
    graph: Dict[str, List[str]] = {f.id: [] for f in fields}
    for rule in edges:
        if rule.field_id == rule.target_field_id:
            continue
        if rule.target_field_id not in graph[rule.field_id]:
            graph[rule.field_id].append(rule.target_field_id)
            indegree[rule.target_field_id] += 1

    position = {f.id: i for i, f in enumerate(fields)}
    ready = sorted((fid for fid, deg in indegree.items() if deg == 0), key=position.__getitem__)
    order: List[str] = []
    while ready:
        node = ready.pop(0)
        order.append(node)
        for nxt in graph[node]:
            indegree[nxt] -= 1
            if indegree[nxt] == 0:
                ready.append(nxt)
                ready.sort(key=position.__getitem__)
    if len(order) != len(indegree):
        stuck = [fid for fid in indegree if fid not in order]
        raise SchemaError(f"Dependency cycle among fields: {stuck}", problems=[f"cycle: {stuck}"])
    return order
