"""
Form schema and data payload models.

Pydantic models describing the parts of a form definition the logic engine
reads: the field/fieldset tree with its conditional expressions, annex
slots, party roles, and the logic section. ``FormData`` is the filled
payload evaluated against a form.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# A conditional expression: a literal boolean or an expression string.
CondExpr = Union[bool, str]

# Logic types whose value is a single expression string.
SCALAR_LOGIC_TYPES = frozenset({
    "boolean",
    "string",
    "number",
    "integer",
    "percentage",
    "rating",
    "date",
    "time",
    "datetime",
    "duration",
})


class FieldDef(BaseModel):
    """A field definition. Fieldsets carry nested ``fields``."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1)
    label: Optional[str] = None
    required: Optional[CondExpr] = None
    visible: Optional[CondExpr] = None
    disabled: Optional[CondExpr] = None
    fields: Optional[Dict[str, "FieldDef"]] = None

    @model_validator(mode="after")
    def check_fieldset_children(self) -> "FieldDef":
        if self.fields and self.type != "fieldset":
            raise ValueError(
                f"Only fieldset fields may declare nested fields, got type '{self.type}'"
            )
        return self

    @property
    def is_fieldset(self) -> bool:
        return self.type == "fieldset"


class AnnexDef(BaseModel):
    """An attachment slot on a form."""

    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    description: Optional[str] = None
    required: Optional[CondExpr] = None
    visible: Optional[CondExpr] = None


class SignatureRequirement(BaseModel):
    """Signature requirements for a party role."""

    required: bool = False
    witnesses: int = Field(default=0, ge=0)
    notarized: bool = False


class PartyRole(BaseModel):
    """Design-time party role definition."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    label: str
    description: Optional[str] = None
    party_type: str = Field(default="any", alias="partyType")
    min: int = Field(default=1, ge=0)
    max: int = Field(default=1, ge=1)
    required: Optional[CondExpr] = None
    signature: Optional[SignatureRequirement] = None

    @field_validator("party_type")
    @classmethod
    def validate_party_type(cls, v: str) -> str:
        if v not in ("person", "organization", "any"):
            raise ValueError(f"partyType must be person, organization or any, got '{v}'")
        return v


class LogicExpression(BaseModel):
    """
    A typed logic entry.

    Scalar types carry a single expression string in ``value``; object
    types (money, address, ...) map each property to an expression.
    """

    type: str
    label: Optional[str] = None
    value: Union[str, Dict[str, str]]

    @model_validator(mode="after")
    def check_value_shape(self) -> "LogicExpression":
        if self.is_scalar and not isinstance(self.value, str):
            raise ValueError(f"Logic type '{self.type}' requires an expression string value")
        if not self.is_scalar and not isinstance(self.value, dict):
            raise ValueError(f"Logic type '{self.type}' requires a mapping of property expressions")
        return self

    @property
    def is_scalar(self) -> bool:
        return self.type in SCALAR_LOGIC_TYPES

    def expressions(self) -> List[str]:
        """The scalar expression, or each non-empty property expression."""
        if isinstance(self.value, str):
            return [self.value]
        return [expr for expr in self.value.values() if expr]

    def dependency_expression(self) -> str:
        """Single expression whose variables cover every property expression."""
        if isinstance(self.value, str):
            return self.value
        return " and ".join(expr for expr in self.value.values() if expr)


LogicEntry = Union[str, LogicExpression]


class Form(BaseModel):
    """A form definition as consumed by the logic engine."""

    model_config = ConfigDict(extra="allow")

    kind: str = "form"
    name: Optional[str] = None
    version: Optional[str] = None
    title: Optional[str] = None
    fields: Dict[str, FieldDef] = Field(default_factory=dict)
    annexes: Dict[str, AnnexDef] = Field(default_factory=dict)
    parties: Dict[str, PartyRole] = Field(default_factory=dict)
    logic: Dict[str, LogicEntry] = Field(default_factory=dict)

    @field_validator("annexes", mode="before")
    @classmethod
    def annex_list_to_mapping(cls, v: Any) -> Any:
        """Accept annexes as a list of ``{id: ...}`` entries."""
        if isinstance(v, list):
            mapping = {}
            for item in v:
                if not isinstance(item, dict) or "id" not in item:
                    raise ValueError("Annex list entries must be mappings with an 'id'")
                entry = dict(item)
                mapping[entry.pop("id")] = entry
            return mapping
        return v

    @field_validator("logic")
    @classmethod
    def validate_logic_keys(cls, v: Dict[str, LogicEntry]) -> Dict[str, LogicEntry]:
        for key in v:
            if key in ("fields", "parties", "witnesses"):
                raise ValueError(f"Logic key '{key}' shadows a reserved context name")
        return v

    def logic_expressions(self) -> Dict[str, str]:
        """Logic section flattened to key -> expression string."""
        result = {}
        for key, entry in self.logic.items():
            if isinstance(entry, LogicExpression):
                result[key] = entry.dependency_expression()
            else:
                result[key] = entry
        return result


class FormData(BaseModel):
    """A filled data payload."""

    model_config = ConfigDict(extra="allow")

    fields: Dict[str, Any] = Field(default_factory=dict)
    annexes: Dict[str, Any] = Field(default_factory=dict)
    parties: Dict[str, Union[Dict[str, Any], List[Dict[str, Any]]]] = Field(default_factory=dict)
    witnesses: List[Dict[str, Any]] = Field(default_factory=list)
    signatures: Dict[str, Union[Dict[str, Any], List[Dict[str, Any]]]] = Field(default_factory=dict)


def as_form(form: Union[Form, Dict[str, Any]]) -> Form:
    """Coerce a mapping into a ``Form``."""
    if isinstance(form, Form):
        return form
    return Form.model_validate(form)


def as_form_data(data: Union[FormData, Dict[str, Any], None]) -> FormData:
    """Coerce a mapping (or None) into a ``FormData``."""
    if data is None:
        return FormData()
    if isinstance(data, FormData):
        return data
    return FormData.model_validate(data)
