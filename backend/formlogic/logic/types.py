"""
Type system for design-time expression checking.

Provides the inferred type lattice, confidence levels, the field type
mapping and the type environment used by the type inferrer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


class InferredType(str, Enum):
    """Type an expression is inferred to produce at runtime."""

    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    NULL = "null"
    # Composite field value types
    COORDINATE = "coordinate"
    MONEY = "money"
    ADDRESS = "address"
    PHONE = "phone"
    DURATION = "duration"
    DATE = "date"
    UNKNOWN = "unknown"


class Confidence(str, Enum):
    """How sure the inferrer is about a type."""

    UNKNOWN = "unknown"
    PROBABLE = "probable"
    CERTAIN = "certain"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]

    def at_least(self, other: "Confidence") -> bool:
        return self.rank >= other.rank


_CONFIDENCE_RANK = {
    Confidence.UNKNOWN: 0,
    Confidence.PROBABLE: 1,
    Confidence.CERTAIN: 2,
}


def weakest(*levels: Confidence) -> Confidence:
    """Lowest of the given confidence levels."""
    return min(levels, key=lambda c: c.rank)


@dataclass(frozen=True)
class TypeInferenceResult:
    """An inferred type with its confidence."""

    type: InferredType
    confidence: Confidence
    reason: Optional[str] = None

    @classmethod
    def certain(cls, type_: InferredType) -> "TypeInferenceResult":
        return cls(type_, Confidence.CERTAIN)

    @classmethod
    def unknown(cls, reason: Optional[str] = None) -> "TypeInferenceResult":
        return cls(InferredType.UNKNOWN, Confidence.UNKNOWN, reason)

    @property
    def is_unknown(self) -> bool:
        return self.type == InferredType.UNKNOWN

    def join(self, other: "TypeInferenceResult") -> "TypeInferenceResult":
        """
        Least upper bound of two branch types.

        Equal types keep the type at the weaker confidence. When one side
        is unknown the other side's type is kept as probable. Two different
        known types join to unknown.
        """
        if self.type == other.type:
            return TypeInferenceResult(self.type, weakest(self.confidence, other.confidence))
        if self.is_unknown:
            return TypeInferenceResult(other.type, weakest(other.confidence, Confidence.PROBABLE))
        if other.is_unknown:
            return TypeInferenceResult(self.type, weakest(self.confidence, Confidence.PROBABLE))
        return TypeInferenceResult.unknown(
            f"Branches disagree: {self.type.value} vs {other.type.value}"
        )


@dataclass
class TypeValidationResult:
    """Result of checking that an expression produces an expected type."""

    valid: bool
    severity: str = "warning"
    message: Optional[str] = None
    expected_type: Optional[InferredType] = None
    actual_type: Optional[InferredType] = None


# Field type -> runtime value type
FIELD_TYPE_TO_VALUE_TYPE: Dict[str, InferredType] = {
    "text": InferredType.STRING,
    "email": InferredType.STRING,
    "uuid": InferredType.STRING,
    "uri": InferredType.STRING,
    "enum": InferredType.STRING,
    "number": InferredType.NUMBER,
    "boolean": InferredType.BOOLEAN,
    "coordinate": InferredType.COORDINATE,
    "money": InferredType.MONEY,
    "address": InferredType.ADDRESS,
    "phone": InferredType.PHONE,
    "duration": InferredType.DURATION,
    "date": InferredType.DATE,
    "bbox": InferredType.OBJECT,
    "fieldset": InferredType.OBJECT,
}

# Declared logic entry type -> inferred type
LOGIC_TYPE_TO_VALUE_TYPE: Dict[str, InferredType] = {
    "boolean": InferredType.BOOLEAN,
    "string": InferredType.STRING,
    "number": InferredType.NUMBER,
    "integer": InferredType.NUMBER,
    "percentage": InferredType.NUMBER,
    "rating": InferredType.NUMBER,
    "date": InferredType.DATE,
    "time": InferredType.STRING,
    "datetime": InferredType.STRING,
    "duration": InferredType.DURATION,
    "money": InferredType.MONEY,
    "address": InferredType.ADDRESS,
    "phone": InferredType.PHONE,
    "coordinate": InferredType.COORDINATE,
}


def get_field_value_type(field_type: str) -> InferredType:
    """Runtime value type for a field type, unknown when unrecognised."""
    return FIELD_TYPE_TO_VALUE_TYPE.get(field_type, InferredType.UNKNOWN)


@dataclass(frozen=True)
class FunctionSignature:
    return_type: InferredType


BUILTIN_FUNCTIONS: Dict[str, FunctionSignature] = {
    # Boolean
    "contains": FunctionSignature(InferredType.BOOLEAN),
    "startsWith": FunctionSignature(InferredType.BOOLEAN),
    "endsWith": FunctionSignature(InferredType.BOOLEAN),
    "matches": FunctionSignature(InferredType.BOOLEAN),
    "isEmpty": FunctionSignature(InferredType.BOOLEAN),
    "isNotEmpty": FunctionSignature(InferredType.BOOLEAN),
    "allSigned": FunctionSignature(InferredType.BOOLEAN),
    "anySigned": FunctionSignature(InferredType.BOOLEAN),
    "allWitnessesSigned": FunctionSignature(InferredType.BOOLEAN),
    "anyWitnessSigned": FunctionSignature(InferredType.BOOLEAN),
    # String
    "upper": FunctionSignature(InferredType.STRING),
    "lower": FunctionSignature(InferredType.STRING),
    "trim": FunctionSignature(InferredType.STRING),
    "concat": FunctionSignature(InferredType.STRING),
    "partyType": FunctionSignature(InferredType.STRING),
    # Number
    "length": FunctionSignature(InferredType.NUMBER),
    "abs": FunctionSignature(InferredType.NUMBER),
    "min": FunctionSignature(InferredType.NUMBER),
    "max": FunctionSignature(InferredType.NUMBER),
    "ceil": FunctionSignature(InferredType.NUMBER),
    "floor": FunctionSignature(InferredType.NUMBER),
    "round": FunctionSignature(InferredType.NUMBER),
    "sqrt": FunctionSignature(InferredType.NUMBER),
    "pow": FunctionSignature(InferredType.NUMBER),
    "log": FunctionSignature(InferredType.NUMBER),
    "exp": FunctionSignature(InferredType.NUMBER),
    "sin": FunctionSignature(InferredType.NUMBER),
    "cos": FunctionSignature(InferredType.NUMBER),
    "tan": FunctionSignature(InferredType.NUMBER),
    "partyCount": FunctionSignature(InferredType.NUMBER),
    "signedCount": FunctionSignature(InferredType.NUMBER),
    "witnessCount": FunctionSignature(InferredType.NUMBER),
    # Depends on the arguments
    "coalesce": FunctionSignature(InferredType.UNKNOWN),
}


@dataclass
class TypeEnvironment:
    """
    Variable and function types known to the inferrer.

    ``variables`` maps paths such as ``fields.age.value`` or a logic key
    name to its inferred type.
    """

    variables: Dict[str, TypeInferenceResult] = field(default_factory=dict)
    functions: Dict[str, FunctionSignature] = field(
        default_factory=lambda: dict(BUILTIN_FUNCTIONS)
    )

    def get_variable_type(self, path: str) -> TypeInferenceResult:
        """Type of a variable path, unknown when not registered."""
        found = self.variables.get(path)
        if found is not None:
            return found
        return TypeInferenceResult.unknown(f'Variable "{path}" not found in environment')

    def get_function_signature(self, name: str) -> Optional[FunctionSignature]:
        return self.functions.get(name)

    def define(self, path: str, result: TypeInferenceResult) -> None:
        self.variables[path] = result
