from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass(frozen=True)
class UserProfile:
    """Represents the subset of a users row needed by the pipeline."""

    user_id: int
    profile_image_url: str | None = None


@dataclass(frozen=True)
class ShareToken:
    """Represents a row from the token table."""

    user_id: int
    expires_at: datetime


@dataclass(frozen=True)
class SharedImage:
    id: int
    normalized_path: str
    thumbnail_path: str


@dataclass
class SharedReport:
    id: int
    title: str | None
    test_name: str | None
    delivery_date: date | None
    prescription_id: int | None
    created_at: datetime | date | None
    images: list[SharedImage] = field(default_factory=list)


@dataclass
class SharedPrescription:
    id: int
    title: str | None
    department: str | None
    doctor_name: str | None
    visited_date: date | None
    created_at: datetime | date | None
    images: list[SharedImage] = field(default_factory=list)
    reports: list[SharedReport] = field(default_factory=list)
