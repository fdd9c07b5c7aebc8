from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .enums import LifecycleTag
from .errors import ValidationError
from .models import PublicAttributes

MAX_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
MAX_LOCATION_LENGTH = 200

_KNOWN_FIELDS = {"name", "description", "lifecycle", "location", "public_value"}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_record_id(record_id: Any) -> str:
    if not isinstance(record_id, str) or not record_id.strip():
        raise ValidationError("Invalid record id", {"record_id": "must be a non-empty string"})
    if len(record_id) > 128:
        raise ValidationError("Invalid record id", {"record_id": "must be at most 128 characters"})
    return record_id


def validate_owner_id(owner_id: Any) -> str:
    if not isinstance(owner_id, str) or not owner_id.strip():
        raise ValidationError("Invalid owner", {"owner_id": "must be a non-empty string"})
    return owner_id


def validate_secret_value(value: Any, max_value: int) -> int:
    """The secret must be a non-negative integer representable by the provider."""
    if not _is_int(value):
        raise ValidationError("Invalid secret value", {"secret_value": "must be an integer"})
    if value < 0:
        raise ValidationError("Invalid secret value", {"secret_value": "must be non-negative"})
    if value > max_value:
        raise ValidationError(
            "Invalid secret value", {"secret_value": f"must be at most {max_value}"}
        )
    return value


def validate_public_attributes(
    data: Mapping[str, Any], *, base: Optional[PublicAttributes] = None
) -> PublicAttributes:
    """
    Build PublicAttributes from a mapping, collecting every field error.

    With `base`, the mapping is a partial update applied on top of it.
    """
    if not isinstance(data, Mapping):
        raise ValidationError("Invalid public attributes", {"public_attributes": "must be a mapping"})

    errors: Dict[str, str] = {}
    for key in data:
        if key not in _KNOWN_FIELDS:
            errors[str(key)] = "unknown field"

    merged: Dict[str, Any] = base.to_dict() if base is not None else {}
    merged.update({k: v for k, v in data.items() if k in _KNOWN_FIELDS})

    name = merged.get("name")
    if not isinstance(name, str) or not name.strip():
        errors["name"] = "is required"
    elif len(name) > MAX_NAME_LENGTH:
        errors["name"] = f"must be at most {MAX_NAME_LENGTH} characters"

    description = merged.get("description", "")
    if not isinstance(description, str):
        errors["description"] = "must be a string"
    elif len(description) > MAX_DESCRIPTION_LENGTH:
        errors["description"] = f"must be at most {MAX_DESCRIPTION_LENGTH} characters"

    location = merged.get("location", "")
    if not isinstance(location, str):
        errors["location"] = "must be a string"
    elif len(location) > MAX_LOCATION_LENGTH:
        errors["location"] = f"must be at most {MAX_LOCATION_LENGTH} characters"

    lifecycle: Optional[LifecycleTag] = None
    try:
        lifecycle = LifecycleTag.parse(merged.get("lifecycle", LifecycleTag.MANUFACTURED))
    except ValueError:
        errors["lifecycle"] = "must be one of: " + ", ".join(t.value for t in LifecycleTag)

    public_value = merged.get("public_value", 0)
    if not _is_int(public_value) or public_value < 0:
        errors["public_value"] = "must be a non-negative integer"

    if errors:
        raise ValidationError("Invalid public attributes", errors)

    return PublicAttributes(
        name=name.strip(),
        description=description,
        lifecycle=lifecycle,
        location=location,
        public_value=public_value,
    )
