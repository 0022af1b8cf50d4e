"""
Builds evaluation contexts from form definitions and data payloads.

The context mirrors the field tree:

    fields.age            -> FieldLeaf(value=25)
    fields.address        -> FieldGroup(street=FieldLeaf(...), city=FieldLeaf(...))
    parties.buyer         -> (PartyContextEntry(type="person", ...),)
    witnesses             -> (PartyContextEntry(...), ...)
    isAdult               -> True   (evaluated logic key)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..logic.context import (
    EvaluationContext,
    FieldEntry,
    FieldGroup,
    FieldLeaf,
    PartyContextEntry,
)
from ..logic.dependencies import topological_sort_logic_keys
from ..logic.evaluator import evaluate_expression_or_default
from ..models import FieldDef, Form, FormData, LogicEntry, LogicExpression, as_form, as_form_data

logger = logging.getLogger(__name__)

FormLike = Union[Form, Dict[str, Any]]
DataLike = Union[FormData, Dict[str, Any], None]


def build_fields_context(
    fields: Optional[Dict[str, FieldDef]],
    data: Optional[Mapping[str, Any]],
) -> FieldGroup:
    """
    Build the nested fields context for a field tree.

    Fieldset data may be a nested mapping (``{"address": {"city": ...}}``)
    or dot-prefixed flat keys (``{"address.city": ...}``).
    """
    data = data or {}
    children: Dict[str, FieldEntry] = {}

    for field_id, field_def in (fields or {}).items():
        if field_def.is_fieldset:
            nested = data.get(field_id)
            if not isinstance(nested, Mapping):
                prefix = f"{field_id}."
                nested = {
                    key[len(prefix):]: value
                    for key, value in data.items()
                    if key.startswith(prefix)
                }
            children[field_id] = build_fields_context(field_def.fields, nested)
        else:
            children[field_id] = FieldLeaf(data.get(field_id))

    return FieldGroup(children)


def infer_party_type(party: Mapping[str, Any]) -> str:
    """Explicit ``type`` if given, otherwise person when ``fullName`` is present."""
    declared = party.get("type")
    if declared in ("person", "organization"):
        return declared
    return "person" if "fullName" in party else "organization"


def _signature_count(signatures: Mapping[str, Any], role_id: str) -> int:
    found = signatures.get(role_id)
    if not found:
        return 0
    return len(found) if isinstance(found, list) else 1


def party_to_context_entry(party: Mapping[str, Any], signed: bool = False) -> PartyContextEntry:
    return PartyContextEntry(
        type=infer_party_type(party),
        data=dict(party),
        signed=signed or bool(party.get("signature")),
    )


def build_parties_context(
    parties: Mapping[str, Any],
    signatures: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Tuple[PartyContextEntry, ...]]:
    """Role id -> party entries; a single party becomes a one-element tuple."""
    signatures = signatures or {}
    result: Dict[str, Tuple[PartyContextEntry, ...]] = {}

    for role_id, party_data in parties.items():
        count = _signature_count(signatures, role_id)
        members = party_data if isinstance(party_data, list) else [party_data]
        result[role_id] = tuple(
            party_to_context_entry(party, index < count)
            for index, party in enumerate(members)
        )

    return result


def build_witnesses_context(witnesses: List[Mapping[str, Any]]) -> Tuple[PartyContextEntry, ...]:
    return tuple(party_to_context_entry(w) for w in witnesses)


def build_base_context(form: Form, data: FormData) -> EvaluationContext:
    """Context with fields, parties and witnesses but no logic values."""
    return EvaluationContext(
        fields=build_fields_context(form.fields, data.fields),
        parties=build_parties_context(data.parties, data.signatures),
        witnesses=build_witnesses_context(data.witnesses),
    )


def _evaluate_logic_entry(key: str, entry: LogicEntry, context: EvaluationContext) -> Any:
    if isinstance(entry, LogicExpression) and isinstance(entry.value, dict):
        return {
            prop: evaluate_expression_or_default(expr, context, None, path=["logic", key, prop])
            for prop, expr in entry.value.items()
        }
    expression = entry.value if isinstance(entry, LogicExpression) else entry
    return evaluate_expression_or_default(expression, context, None, path=["logic", key])


def evaluate_logic_keys(form: Form, base_context: EvaluationContext) -> Dict[str, Any]:
    """
    Evaluate logic keys in dependency order.

    Each key sees the values of every key evaluated before it. A key that
    fails to evaluate resolves to None.

    Keys caught in or behind a cycle only see the acyclic keys: a
    reference to another cyclic key is undefined, so such keys resolve
    independently of declaration order.
    """
    values: Dict[str, Any] = {}
    if not form.logic:
        return values

    order = topological_sort_logic_keys(form.logic)
    cyclic = set(order.cyclic_keys)
    if cyclic:
        logger.warning(
            "Logic keys involved in a dependency cycle resolve to defaults: %s",
            ", ".join(order.cyclic_keys),
        )

    context = base_context
    for key in order.sorted:
        entry = form.logic[key]
        if not entry:
            continue
        values[key] = _evaluate_logic_entry(key, entry, context)
        if key not in cyclic:
            context = base_context.with_logic_values(values)

    return values


def build_form_context(form: FormLike, data: DataLike = None) -> EvaluationContext:
    """
    Build the evaluation context for a form and its data.

    Example:
        >>> ctx = build_form_context(
        ...     {"fields": {"age": {"type": "number"}},
        ...      "logic": {"isAdult": "fields.age.value >= 18"}},
        ...     {"fields": {"age": 25}},
        ... )
        >>> ctx["isAdult"]
        True
    """
    form = as_form(form)
    base = build_base_context(form, as_form_data(data))
    return base.with_logic_values(evaluate_logic_keys(form, base))


def get_logic_values(form: FormLike, data: DataLike = None) -> Dict[str, Any]:
    """Evaluated logic key values, in evaluation order."""
    form = as_form(form)
    return evaluate_logic_keys(form, build_base_context(form, as_form_data(data)))
