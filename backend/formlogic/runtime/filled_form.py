"""
Filled form wrapper.

Pairs a form definition with a data payload and exposes the evaluated
runtime state. The wrapper is immutable, so the runtime state is computed
once on first access and cached for the wrapper's lifetime; changing the
data produces a new wrapper with its own cache.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..models import Form, FormData, as_form, as_form_data
from .context_builder import DataLike, FormLike
from .form_evaluator import (
    AnnexRuntimeState,
    FieldRuntimeState,
    FormRuntimeState,
    evaluate_form_logic,
)

logger = logging.getLogger(__name__)


class FilledForm:
    """A form together with the data filled into it."""

    __slots__ = ("_form", "_data", "_runtime_state")

    def __init__(self, form: FormLike, data: DataLike = None):
        self._form: Form = as_form(form)
        self._data: FormData = as_form_data(data)
        self._runtime_state: Optional[FormRuntimeState] = None

    @property
    def form(self) -> Form:
        return self._form

    @property
    def data(self) -> FormData:
        return self._data

    @property
    def runtime_state(self) -> FormRuntimeState:
        """Evaluated state, computed on first access."""
        if self._runtime_state is None:
            result = evaluate_form_logic(self._form, self._data)
            if result.value is not None:
                self._runtime_state = result.value
            else:
                logger.warning(
                    "Runtime state unavailable for form %s: %s",
                    self._form.name, "; ".join(i.message for i in result.issues),
                )
                self._runtime_state = FormRuntimeState()
        return self._runtime_state

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    def get_field_state(self, field_id: str) -> Optional[FieldRuntimeState]:
        return self.runtime_state.fields.get(field_id)

    def get_annex_state(self, annex_id: str) -> Optional[AnnexRuntimeState]:
        return self.runtime_state.annexes.get(annex_id)

    def get_logic_value(self, key: str) -> Any:
        return self.runtime_state.logic_values.get(key)

    def is_field_visible(self, field_id: str) -> bool:
        state = self.get_field_state(field_id)
        return state.visible if state else True

    def is_field_required(self, field_id: str) -> bool:
        state = self.get_field_state(field_id)
        return state.required if state else False

    def is_field_disabled(self, field_id: str) -> bool:
        state = self.get_field_state(field_id)
        return state.disabled if state else False

    def is_annex_visible(self, annex_id: str) -> bool:
        state = self.get_annex_state(annex_id)
        return state.visible if state else True

    def is_annex_required(self, annex_id: str) -> bool:
        state = self.get_annex_state(annex_id)
        return state.required if state else False

    def get_visible_fields(self) -> List[FieldRuntimeState]:
        return [s for s in self.runtime_state.fields.values() if s.visible]

    def get_required_visible_fields(self) -> List[FieldRuntimeState]:
        return [s for s in self.runtime_state.fields.values() if s.visible and s.required]

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def with_fields(self, **values: Any) -> "FilledForm":
        """New wrapper with the given top-level field values replaced."""
        return self.update({"fields": values})

    def update(self, changes: Dict[str, Any]) -> "FilledForm":
        """
        New wrapper with payload sections shallow-merged.

        ``changes`` maps payload sections (fields, parties, ...) to the
        entries to set in that section.
        """
        payload = self._data.model_dump()
        for section, entries in changes.items():
            current = payload.get(section)
            if isinstance(current, dict) and isinstance(entries, dict):
                payload[section] = {**current, **entries}
            else:
                payload[section] = entries
        return FilledForm(self._form, payload)

    def __repr__(self) -> str:
        return f"FilledForm(form={self._form.name!r}, fields={sorted(self._data.fields)!r})"
