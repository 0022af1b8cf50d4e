"""
Field path collection for variable reference checks.
"""

from __future__ import annotations

from typing import Dict, Optional, Set

from ..models import FieldDef

# Nested properties reachable through ``.value`` on composite field types.
COMPLEX_TYPE_PROPERTIES: Dict[str, tuple] = {
    "money": ("amount", "currency"),
    "address": ("line1", "line2", "locality", "region", "postalCode", "country"),
    "phone": ("number", "type", "extension"),
    "coordinate": ("lat", "lon"),
    "bbox": ("north", "south", "east", "west"),
    "duration": ("years", "months", "weeks", "days", "hours", "minutes", "seconds"),
    "person": ("fullName", "firstName", "middleName", "lastName", "suffix", "title"),
    "organization": ("name", "legalName", "entityType", "domicile"),
    "identification": ("idType", "idNumber", "issuingAuthority", "issuedDate", "expiryDate"),
}


def collect_field_paths(
    fields: Optional[Dict[str, FieldDef]],
    prefix: str = "fields",
) -> Set[str]:
    """
    Collect every variable path a field tree exposes.

    Args:
        fields: Field definitions, possibly containing fieldsets.
        prefix: Path prefix for this level.

    Returns:
        Paths such as ``fields.name.value``, ``fields.rent.value.amount``
        and ``fields.address.street.value``.
    """
    paths: Set[str] = set()
    for field_id, field_def in (fields or {}).items():
        base = f"{prefix}.{field_id}"
        value_path = f"{base}.value"
        paths.add(value_path)

        for prop in COMPLEX_TYPE_PROPERTIES.get(field_def.type, ()):
            paths.add(f"{value_path}.{prop}")

        if field_def.is_fieldset:
            paths |= collect_field_paths(field_def.fields, base)

    return paths


def collect_field_ids(fields: Optional[Dict[str, FieldDef]], prefix: str = "") -> Set[str]:
    """Dot-joined ids of every field, fieldset children included."""
    ids: Set[str] = set()
    for field_id, field_def in (fields or {}).items():
        full_id = f"{prefix}.{field_id}" if prefix else field_id
        ids.add(full_id)
        if field_def.is_fieldset:
            ids |= collect_field_ids(field_def.fields, full_id)
    return ids
