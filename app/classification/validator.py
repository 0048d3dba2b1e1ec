"""Validates the raw classifier JSON and builds an immutable Verdict."""

from datetime import date
from typing import Any

from app.classification.exceptions import ClassificationValidationError
from app.classification.models import DocumentKind, ExtractedData, Verdict
from app.logging.logger import Log

_VALID_DOCUMENT_TYPES = frozenset(kind.value for kind in DocumentKind)
_VALID_NORMAL_OR_NOT = frozenset({"Normal", "Abnormal", "Not Applicable"})
_DATE_FIELDS = frozenset({"visited_date", "delivery_date"})

# wire key -> ExtractedData attribute
_WIRE_FIELDS: dict[str, str] = {
    "department": "department",
    "doctor_name": "doctor_name",
    "visited_date": "visited_date",
    "test_name": "test_name",
    "deliveryDate": "delivery_date",
    "normal_or_not": "normal_or_not",
}


def validate_and_build(data: dict[str, Any]) -> Verdict:
    """Validate a parsed classifier response and build a Verdict.

    Raises:
        ClassificationValidationError: on any shape mismatch.
    """
    _require_top_level_fields(data)
    document_type = _build_document_type(data["documentType"])
    extracted = _build_extracted_data(data["extractedData"])
    reason = _build_reason(data.get("reason"))
    return Verdict(document_type=document_type, extracted=extracted, reason=reason)


def _require_top_level_fields(data: dict[str, Any]) -> None:
    for field in ("documentType", "extractedData"):
        if data.get(field) is None:
            raise ClassificationValidationError(f"Missing required top-level field: {field}")


def _build_document_type(raw: Any) -> DocumentKind:
    if not isinstance(raw, str) or raw not in _VALID_DOCUMENT_TYPES:
        raise ClassificationValidationError(
            f"'documentType' must be one of {sorted(_VALID_DOCUMENT_TYPES)}, got {raw!r}"
        )
    return DocumentKind(raw)


def _build_extracted_data(raw: Any) -> ExtractedData:
    if not isinstance(raw, dict):
        raise ClassificationValidationError("'extractedData' must be an object")
    values: dict[str, str | None] = {}
    for wire_key, attribute in _WIRE_FIELDS.items():
        value = raw.get(wire_key, raw.get(attribute))
        values[attribute] = _build_field_value(attribute, value)
    return ExtractedData(**values)


def _build_field_value(attribute: str, raw: Any) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ClassificationValidationError(
            f"'extractedData.{attribute}' must be a string or null"
        )
    value = raw.strip()
    if not value:
        return None
    if attribute in _DATE_FIELDS and not _is_iso_date(value):
        Log.warning(f"Dropping unparseable {attribute} value {value!r}")
        return None
    if attribute == "normal_or_not" and value not in _VALID_NORMAL_OR_NOT:
        Log.warning(f"Dropping unexpected normal_or_not value {value!r}")
        return None
    return value


def _build_reason(raw: Any) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ClassificationValidationError("'reason' must be a string or null")
    return raw.strip() or None


def _is_iso_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return len(value) == 10
