"""
Evaluation context types.

The context is the value bag expressions are evaluated against:

    fields      nested field values (FieldGroup of FieldLeaf/FieldGroup)
    parties     role id -> tuple of PartyContextEntry
    witnesses   tuple of PartyContextEntry
    <logic key> evaluated logic key values
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

RESERVED_NAMES = ("fields", "parties", "witnesses")


@dataclass(frozen=True)
class FieldLeaf:
    """A simple field's value."""

    value: Any = None


@dataclass(frozen=True)
class FieldGroup:
    """A fieldset (or the root ``fields`` object): child id -> entry."""

    children: Mapping[str, "FieldEntry"] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "children", MappingProxyType(dict(self.children)))

    def get(self, field_id: str) -> Optional["FieldEntry"]:
        return self.children.get(field_id)

    def to_plain(self) -> Dict[str, Any]:
        """Nested dict of raw values."""
        plain: Dict[str, Any] = {}
        for field_id, entry in self.children.items():
            plain[field_id] = entry.to_plain() if isinstance(entry, FieldGroup) else entry.value
        return plain


FieldEntry = Union[FieldLeaf, FieldGroup]


@dataclass(frozen=True)
class PartyContextEntry:
    """A party as seen by expressions."""

    type: str
    data: Any
    signed: bool = False


@dataclass(frozen=True)
class EvaluationContext:
    """
    Immutable evaluation context.

    Logic values are added by building a new context with
    ``with_logic_values``; existing contexts are never patched.
    """

    fields: FieldGroup = field(default_factory=FieldGroup)
    parties: Mapping[str, Tuple[PartyContextEntry, ...]] = field(default_factory=dict)
    witnesses: Tuple[PartyContextEntry, ...] = ()
    logic_values: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "parties",
            MappingProxyType({role: tuple(entries) for role, entries in self.parties.items()}),
        )
        object.__setattr__(self, "witnesses", tuple(self.witnesses))
        object.__setattr__(self, "logic_values", MappingProxyType(dict(self.logic_values)))

    def lookup(self, name: str) -> Tuple[bool, Any]:
        """Resolve a top-level name. Returns (found, value)."""
        if name == "fields":
            return True, self.fields
        if name == "parties":
            return True, self.parties
        if name == "witnesses":
            return True, self.witnesses
        if name in self.logic_values:
            return True, self.logic_values[name]
        return False, None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.lookup(name)[0]

    def __getitem__(self, name: str) -> Any:
        found, value = self.lookup(name)
        if not found:
            raise KeyError(name)
        return value

    def with_logic_values(self, values: Mapping[str, Any]) -> "EvaluationContext":
        """A new context carrying ``values`` as its logic key values."""
        return replace(self, logic_values=dict(values))

    def parties_for(self, role_id: str) -> Tuple[PartyContextEntry, ...]:
        return self.parties.get(role_id, ())


def get_field_value_from_context(fields: FieldGroup, path: str) -> Any:
    """
    Read a value from the fields context by dot path.

    ``address.street`` and ``address.street.value`` both return the raw
    street value; a fieldset path returns its nested values as a dict.
    Missing paths return None.
    """
    current: Any = fields
    for part in path.split("."):
        if isinstance(current, FieldGroup):
            if part == "value" and part not in current.children:
                current = current.to_plain()
            else:
                current = current.get(part)
        elif isinstance(current, FieldLeaf):
            if part != "value":
                return None
            current = current.value
        elif isinstance(current, Mapping):
            current = current.get(part)
        else:
            return None
        if current is None:
            return None

    if isinstance(current, FieldLeaf):
        return current.value
    if isinstance(current, FieldGroup):
        return current.to_plain()
    return current
