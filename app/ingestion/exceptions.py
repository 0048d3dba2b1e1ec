from app.ingestion.models import RejectionReport


class IngestionError(Exception):
    """Base exception for all ingestion-related errors."""


class ValidationError(IngestionError):
    """Raised when caller input is malformed. The message is safe to show to the caller."""


class NotFoundError(IngestionError):
    """Raised when a target document does not exist or was deleted."""


class OwnershipError(IngestionError):
    """Raised when a target document belongs to a different member."""


class RejectionError(IngestionError):
    """Raised when a batch fails the admission policy. Carries the per-file report."""

    def __init__(self, report: RejectionReport) -> None:
        super().__init__(report.message)
        self.report = report


class StorageError(IngestionError):
    """Raised when persisting a batch fails. The transaction and files were reverted."""

    PUBLIC_MESSAGE = "An unknown error occurred. Please try again later."

    def __init__(self, detail: str) -> None:
        super().__init__(self.PUBLIC_MESSAGE)
        self.detail = detail
