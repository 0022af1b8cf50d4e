"""
YAML/JSON loading of form definitions and data payloads.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Union

import yaml

from .models import Form, FormData


class FormLoadError(ValueError):
    """A document could not be read as a form or payload."""


def _load_mapping(text: str, source: str) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise FormLoadError(f"YAML parse error in {source}: {e}") from e

    if data is None:
        raise FormLoadError(f"{source} is empty")
    if not isinstance(data, dict):
        raise FormLoadError(f"{source} must contain a mapping, got {type(data).__name__}")
    return data


def _read(path: Union[str, Path]) -> str:
    path = Path(path)
    if not path.exists():
        raise FormLoadError(f"File not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise FormLoadError(f"Cannot read {path}: {e}") from e


def parse_form(text: str) -> Form:
    """
    Parse a form definition from YAML (or JSON) text.

    Raises:
        FormLoadError: The text is not a YAML mapping.
        pydantic.ValidationError: The mapping is not a valid form.
    """
    return Form.model_validate(_load_mapping(text, "form definition"))


def load_form(path: Union[str, Path]) -> Form:
    """Load a form definition file."""
    return Form.model_validate(_load_mapping(_read(path), str(path)))


def parse_form_data(text: str) -> FormData:
    """Parse a data payload from YAML (or JSON) text."""
    return FormData.model_validate(_load_mapping(text, "form data"))


def load_form_data(path: Union[str, Path]) -> FormData:
    """Load a data payload file."""
    return FormData.model_validate(_load_mapping(_read(path), str(path)))
