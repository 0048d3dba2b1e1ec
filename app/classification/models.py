from dataclasses import dataclass, field
from enum import Enum


class DocumentKind(str, Enum):
    """Document type tag assigned to an image by the classifier."""

    PRESCRIPTION = "prescription"
    REPORT = "report"
    OTHER = "other"


EXTRACTED_FIELD_NAMES: tuple[str, ...] = (
    "department",
    "doctor_name",
    "visited_date",
    "test_name",
    "delivery_date",
    "normal_or_not",
)


@dataclass(frozen=True)
class ExtractedData:
    """Metadata fields read from a document image. None means absent."""

    department: str | None = None
    doctor_name: str | None = None
    visited_date: str | None = None
    test_name: str | None = None
    delivery_date: str | None = None
    normal_or_not: str | None = None

    def get(self, name: str) -> str | None:
        if name not in EXTRACTED_FIELD_NAMES:
            raise KeyError(name)
        value: str | None = getattr(self, name)
        return value


@dataclass(frozen=True)
class Verdict:
    """Output of classifying one image."""

    document_type: DocumentKind
    extracted: ExtractedData = field(default_factory=ExtractedData)
    reason: str | None = None

    def matches(self, kind: DocumentKind) -> bool:
        return self.document_type is kind


def fallback_verdict(reason: str) -> Verdict:
    """Build the fail-closed verdict used whenever classification cannot be trusted."""
    return Verdict(document_type=DocumentKind.OTHER, extracted=ExtractedData(), reason=reason)
