"""
Design-time validation of form logic.
"""

from .field_paths import COMPLEX_TYPE_PROPERTIES, collect_field_ids, collect_field_paths
from .logic import (
    LogicValidationIssue,
    LogicValidationResult,
    LogicValidator,
    validate_form_file,
    validate_form_logic,
)

__all__ = [
    "COMPLEX_TYPE_PROPERTIES",
    "collect_field_ids",
    "collect_field_paths",
    "LogicValidationIssue",
    "LogicValidationResult",
    "LogicValidator",
    "validate_form_file",
    "validate_form_logic",
]
