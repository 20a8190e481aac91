"""Collectible metadata validation and document assembly."""

from __future__ import annotations

from datetime import datetime, timezone

from voxelcraft.models.errors import invalid_input


def metadata_errors(template: object) -> list[str]:
    """Problems with a metadata template, empty when it is valid.

    The ``image`` field is filled in after the image upload, so a template
    does not need one.
    """
    if not isinstance(template, dict):
        return ["metadata must be an object"]

    errors: list[str] = []
    for field in ("name", "description"):
        value = template.get(field)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"{field} is required")

    attributes = template.get("attributes", [])
    if not isinstance(attributes, list):
        errors.append("attributes must be a list")
        return errors
    for index, attr in enumerate(attributes, start=1):
        if not isinstance(attr, dict):
            errors.append(f"attribute {index}: must be an object")
            continue
        trait = attr.get("trait_type")
        if not isinstance(trait, str) or not trait:
            errors.append(f"attribute {index}: trait_type is required and must be a string")
        if attr.get("value") is None:
            errors.append(f"attribute {index}: value is required")
    return errors


def validate_metadata(template: object) -> dict:
    errors = metadata_errors(template)
    if errors:
        raise invalid_input("invalid metadata: " + "; ".join(errors))
    return template  # type: ignore[return-value]


def build_metadata_document(template: dict, image_url: str) -> dict:
    """Copy of the template with the uploaded image URL embedded."""
    document = dict(template)
    document.setdefault("attributes", [])
    document["image"] = image_url
    document["created_at"] = datetime.now(timezone.utc).isoformat()
    return document
