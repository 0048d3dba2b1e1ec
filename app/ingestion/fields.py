"""Fixed per-kind field records and their storage layout.

Every optional field carries a presence marker: UNSET means the caller did not
supply it, while None is an explicit empty value. Only present fields reach the
INSERT statement, and only UNSET fields may be auto-filled.
"""

from dataclasses import dataclass, fields, replace
from typing import Any, ClassVar, Final

from app.classification.models import DocumentKind


class _Unset:
    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Final = _Unset()


@dataclass(frozen=True)
class DocumentFields:
    """Base for the explicit optional fields of a document record."""

    AUTO_FILL_FIELDS: ClassVar[tuple[str, ...]] = ()

    def present(self) -> dict[str, Any]:
        """Return the supplied fields, in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def with_auto_filled(self, aggregated: dict[str, str | None]) -> "DocumentFields":
        """Fill UNSET auto-fill fields from consensus values; explicit values win."""
        updates = {
            name: aggregated[name]
            for name in self.AUTO_FILL_FIELDS
            if getattr(self, name) is UNSET and aggregated.get(name) is not None
        }
        return replace(self, **updates) if updates else self

    def auto_fill_summary(self) -> dict[str, Any]:
        """Final values of the auto-fill fields, None when absent."""
        summary: dict[str, Any] = {}
        for name in self.AUTO_FILL_FIELDS:
            value = getattr(self, name)
            summary[name] = None if value is UNSET else value
        return summary


@dataclass(frozen=True)
class PrescriptionFields(DocumentFields):
    AUTO_FILL_FIELDS: ClassVar[tuple[str, ...]] = ("department", "doctor_name", "visited_date")

    title: Any = UNSET
    department: Any = UNSET
    doctor_name: Any = UNSET
    visited_date: Any = UNSET
    shared: Any = UNSET


@dataclass(frozen=True)
class ReportFields(DocumentFields):
    AUTO_FILL_FIELDS: ClassVar[tuple[str, ...]] = ("test_name", "delivery_date", "normal_or_not")

    title: Any = UNSET
    prescription_id: Any = UNSET
    test_name: Any = UNSET
    delivery_date: Any = UNSET
    normal_or_not: Any = UNSET
    shared: Any = UNSET


@dataclass(frozen=True)
class DocumentSchema:
    """Where and how one document kind is stored."""

    kind: DocumentKind
    label: str
    table: str
    image_table: str
    image_parent_column: str
    fields_type: type[DocumentFields]

    # image path columns as deployed
    normalized_column: str = "resiged"
    thumbnail_column: str = "thumb"


PRESCRIPTION_SCHEMA = DocumentSchema(
    kind=DocumentKind.PRESCRIPTION,
    label="medical prescription",
    table="prescriptions",
    image_table="prescription_images",
    image_parent_column="prescription_id",
    fields_type=PrescriptionFields,
)

REPORT_SCHEMA = DocumentSchema(
    kind=DocumentKind.REPORT,
    label="medical report",
    table="reports",
    image_table="report_images",
    image_parent_column="report_id",
    fields_type=ReportFields,
)

SCHEMAS: dict[DocumentKind, DocumentSchema] = {
    DocumentKind.PRESCRIPTION: PRESCRIPTION_SCHEMA,
    DocumentKind.REPORT: REPORT_SCHEMA,
}
