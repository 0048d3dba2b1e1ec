"""Shape validation for caller input, before anything touches storage."""

import re
from collections.abc import Mapping, Sequence
from datetime import date
from pathlib import PurePath
from typing import Any

from app.classification.models import DocumentKind
from app.ingestion.exceptions import ValidationError
from app.ingestion.fields import UNSET, DocumentFields, PrescriptionFields, ReportFields
from app.ingestion.models import ImageUpload

_ALLOWED_TYPES = re.compile(r"jpeg|jpg|png|webp")
_ALLOWED_NORMAL_OR_NOT = frozenset({"Normal", "Abnormal"})


def require_positive_id(value: Any, name: str) -> int:
    """Accept positive integers and their string forms, e.g. "7"."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid or missing {name}")
    if isinstance(value, str):
        value = value.strip()
        if not (value.isascii() and value.isdigit()):
            raise ValidationError(f"Invalid or missing {name}")
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise ValidationError(f"Invalid or missing {name}")
    return value


def require_document_kind(value: Any) -> DocumentKind:
    try:
        kind = DocumentKind(value)
    except ValueError:
        kind = None
    if kind not in (DocumentKind.PRESCRIPTION, DocumentKind.REPORT):
        raise ValidationError("Document kind must be 'prescription' or 'report'")
    return kind


def validate_batch(
    images: Sequence[ImageUpload],
    *,
    max_files: int,
    max_file_size_bytes: int,
) -> None:
    """Check count, size and type limits of an upload batch."""
    if not images:
        raise ValidationError("No files uploaded.")
    if len(images) > max_files:
        raise ValidationError(f"You can only upload a maximum of {max_files} files.")
    for upload in images:
        if len(upload.content) > max_file_size_bytes:
            limit_mb = max_file_size_bytes // (1024 * 1024)
            raise ValidationError(f"File size exceeds the limit ({limit_mb}MB per file).")
        extension = PurePath(upload.original_name).suffix.lower()
        if not (_ALLOWED_TYPES.search(extension) and _ALLOWED_TYPES.search(upload.media_type)):
            raise ValidationError(
                "Invalid file type. Only jpeg, jpg, png, webp files are allowed."
            )


def parse_fields(kind: DocumentKind, raw: Mapping[str, Any]) -> DocumentFields:
    """Build the explicit field record for a kind from loosely typed form values.

    Keys absent from raw stay UNSET. Unknown keys are ignored.
    """
    if kind is DocumentKind.PRESCRIPTION:
        return _parse_prescription_fields(raw)
    if kind is DocumentKind.REPORT:
        return _parse_report_fields(raw)
    raise ValidationError("Document kind must be 'prescription' or 'report'")


def _parse_prescription_fields(raw: Mapping[str, Any]) -> PrescriptionFields:
    return PrescriptionFields(
        title=_optional_string(raw, "title"),
        department=_optional_string(raw, "department"),
        doctor_name=_optional_string(raw, "doctor_name"),
        visited_date=_optional_date(raw, "visited_date"),
        shared=_optional_bool(raw, "shared"),
    )


def _parse_report_fields(raw: Mapping[str, Any]) -> ReportFields:
    title = _optional_string(raw, "title")
    if title is not UNSET and (title is None or not title.strip()):
        raise ValidationError("Invalid report title")
    prescription_id: Any = UNSET
    if raw.get("prescription_id") is not None:
        prescription_id = require_positive_id(raw["prescription_id"], "prescription_id")
    delivery_key = "deliveryDate" if "deliveryDate" in raw else "delivery_date"
    return ReportFields(
        title=title,
        prescription_id=prescription_id,
        test_name=_optional_string(raw, "test_name"),
        delivery_date=_optional_date(raw, delivery_key),
        normal_or_not=_optional_normal_or_not(raw),
        shared=_optional_bool(raw, "shared"),
    )


def _optional_string(raw: Mapping[str, Any], key: str) -> Any:
    if key not in raw:
        return UNSET
    value = raw[key]
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


def _optional_date(raw: Mapping[str, Any], key: str) -> Any:
    if key not in raw:
        return UNSET
    value = raw[key]
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError as exc:
        raise ValidationError(f"Invalid {key} format. Use YYYY-MM-DD") from exc


def _optional_bool(raw: Mapping[str, Any], key: str) -> Any:
    if key not in raw:
        return UNSET
    value = raw[key]
    if isinstance(value, bool):
        return value
    if value in ("true", "false"):
        return value == "true"
    raise ValidationError(f"Invalid {key} value. Must be true or false")


def _optional_normal_or_not(raw: Mapping[str, Any]) -> Any:
    if "normal_or_not" not in raw:
        return UNSET
    value = raw["normal_or_not"]
    if value in (None, "", "null"):
        return None
    if not isinstance(value, str) or value not in _ALLOWED_NORMAL_OR_NOT:
        raise ValidationError(
            'Invalid normal_or_not value. Must be "Normal", "Abnormal" or empty.'
        )
    return value
