from dataclasses import dataclass, field

from app.database.models import SharedPrescription, SharedReport


@dataclass(frozen=True)
class SharedDocuments:
    """Everything a member shared, plus a file-access token valid until the share expires."""

    access_token: str
    expires_in_seconds: int
    prescriptions: list[SharedPrescription] = field(default_factory=list)
    standalone_reports: list[SharedReport] = field(default_factory=list)
