from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from app.classification.models import DocumentKind, Verdict
from app.imaging.models import DerivativeSet


class IngestionState(str, Enum):
    RECEIVED = "received"
    PROCESSING = "processing"
    VALIDATING = "validating"
    AGGREGATING = "aggregating"
    PERSISTING = "persisting"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class ImageUpload:
    """One raw uploaded image as received from the caller."""

    content: bytes
    media_type: str
    original_name: str


@dataclass(frozen=True)
class ImageOutcome:
    """Result of processing one upload: its derivatives (None if undecodable) and verdict."""

    index: int
    upload: ImageUpload
    verdict: Verdict
    derivatives: DerivativeSet | None = None


@dataclass(frozen=True)
class InvalidFile:
    """One file that failed the admission policy."""

    index: int
    original_name: str
    classified_as: str
    reason: str


@dataclass(frozen=True)
class RejectionReport:
    """Every offending file of a rejected batch, in upload order."""

    kind: DocumentKind
    label: str
    invalid_files: list[InvalidFile] = field(default_factory=list)
    append: bool = False

    @property
    def message(self) -> str:
        if self.append:
            return f"Some images are not {self.label}s and were not appended."
        return (
            f"Some uploaded files are not recognized as {self.label}s. "
            "All files were rejected."
        )


@dataclass(frozen=True)
class NewDocumentResult:
    """Outcome of a committed new-document ingestion."""

    document_id: int
    kind: DocumentKind
    image_count: int
    fields: dict[str, Any]
    auto_filled_fields: dict[str, Any]


@dataclass(frozen=True)
class AppendResult:
    """Acknowledgement of images appended to an existing document."""

    document_id: int
    kind: DocumentKind
    image_count: int
