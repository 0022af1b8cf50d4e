"""
Builds type environments from form definitions.

Built in two passes:
1. Register every field's value type at its full dotted path.
2. Infer logic key types in dependency order, so a key can reference
   the inferred type of a key evaluated before it.
"""

from __future__ import annotations

from typing import Dict, Optional, Union

from ..models import FieldDef, Form, LogicExpression, as_form
from .dependencies import topological_sort_logic_keys
from .inferrer import infer_expression_type
from .types import (
    LOGIC_TYPE_TO_VALUE_TYPE,
    Confidence,
    InferredType,
    TypeEnvironment,
    TypeInferenceResult,
    get_field_value_type,
)


def register_field_types(
    fields: Optional[Dict[str, FieldDef]],
    prefix: str,
    env: TypeEnvironment,
) -> None:
    """Register ``<prefix>.<id>.value`` for each field, recursing into fieldsets."""
    if not fields:
        return

    for field_id, field_def in fields.items():
        base_path = f"{prefix}.{field_id}"
        env.define(
            f"{base_path}.value",
            TypeInferenceResult.certain(get_field_value_type(field_def.type)),
        )
        if field_def.is_fieldset:
            register_field_types(field_def.fields, base_path, env)


def _infer_logic_entry(
    key: str,
    entry: Union[str, LogicExpression],
    env: TypeEnvironment,
) -> TypeInferenceResult:
    if not isinstance(entry, LogicExpression):
        return infer_expression_type(entry, env)

    declared = LOGIC_TYPE_TO_VALUE_TYPE.get(entry.type, InferredType.OBJECT)

    if isinstance(entry.value, dict):
        for prop, expr in entry.value.items():
            env.define(f"{key}.{prop}", infer_expression_type(expr, env))
        return TypeInferenceResult.certain(declared)

    inferred = infer_expression_type(entry.value, env)
    if inferred.is_unknown:
        return TypeInferenceResult(
            declared, Confidence.PROBABLE, f"Declared as {entry.type}"
        )
    return inferred


def build_form_type_environment(form: Union[Form, dict]) -> TypeEnvironment:
    """
    Build a type environment for a form.

    Example:
        >>> env = build_form_type_environment({
        ...     "fields": {"age": {"type": "number"}},
        ...     "logic": {"isAdult": "fields.age.value >= 18"},
        ... })
        >>> env.get_variable_type("isAdult").type
        <InferredType.BOOLEAN: 'boolean'>
    """
    form = as_form(form)
    env = TypeEnvironment()

    register_field_types(form.fields, "fields", env)

    if form.logic:
        for key in topological_sort_logic_keys(form.logic).sorted:
            entry = form.logic[key]
            if entry:
                env.define(key, _infer_logic_entry(key, entry, env))

    return env
