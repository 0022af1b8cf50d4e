"""
Dependency ordering for logic keys.

A logic key may reference other logic keys by name. Keys are ordered so
that every key comes after the keys it references; keys caught in (or
behind) a cycle are appended at the end and reported separately.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Mapping, Set, Union

from ..models import LogicExpression
from .parser import parse_expression


@dataclass
class TopologicalSortResult:
    """Logic keys in evaluation order."""

    sorted: List[str] = field(default_factory=list)
    cyclic_keys: List[str] = field(default_factory=list)

    @property
    def has_cycles(self) -> bool:
        return bool(self.cyclic_keys)


def _expressions(entry: Union[str, LogicExpression, None]) -> List[str]:
    if isinstance(entry, LogicExpression):
        return entry.expressions()
    return [entry] if entry else []


def logic_dependencies(logic: Mapping[str, Union[str, LogicExpression]]) -> Dict[str, Set[str]]:
    """
    Map each logic key to the logic keys its expression references.

    A property reference (``rent.amount``) depends on its root key. Field
    paths and unknown names are ignored. Each property expression of an
    object entry is read on its own, so an unparseable property adds no
    dependencies without hiding those of its siblings.
    """
    key_set = set(logic)
    dependencies: Dict[str, Set[str]] = {}
    for key, entry in logic.items():
        found: Set[str] = set()
        for expression in _expressions(entry):
            result = parse_expression(expression)
            if result.success:
                roots = (v.split(".", 1)[0] for v in result.variables)
                found.update(root for root in roots if root in key_set)
        dependencies[key] = found
    return dependencies


def topological_sort_logic_keys(
    logic: Mapping[str, Union[str, LogicExpression]],
) -> TopologicalSortResult:
    """
    Order logic keys so that dependencies are evaluated first.

    Every key appears in ``sorted`` exactly once. Keys that can never be
    reached because of a cycle are appended in declaration order and also
    listed in ``cyclic_keys``.
    """
    keys = list(logic)
    dependencies = logic_dependencies(logic)

    dependents: Dict[str, List[str]] = {key: [] for key in keys}
    for key in keys:
        for dep in dependencies[key]:
            dependents[dep].append(key)

    remaining = {key: len(dependencies[key]) for key in keys}
    queue: Deque[str] = deque(key for key in keys if remaining[key] == 0)
    visited: Set[str] = set()
    result = TopologicalSortResult()

    while queue:
        key = queue.popleft()
        if key in visited:
            continue
        visited.add(key)
        result.sorted.append(key)

        for dependent in dependents[key]:
            if dependent in visited:
                continue
            remaining[dependent] -= 1
            if remaining[dependent] == 0:
                queue.append(dependent)

    for key in keys:
        if key not in visited:
            result.cyclic_keys.append(key)
            result.sorted.append(key)

    return result
