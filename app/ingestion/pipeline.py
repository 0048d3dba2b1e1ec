from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

import psycopg

from app.ingestion.fields import DocumentFields, DocumentSchema
from app.ingestion.models import ImageOutcome, ImageUpload, IngestionState


@dataclass(slots=True)
class IngestionContext:
    """State carried through the ingestion steps of one batch."""

    schema: DocumentSchema
    owner_id: int
    images: list[ImageUpload]
    conn: psycopg.Connection[Any]
    fields: DocumentFields | None = None
    document_id: int | None = None
    state: IngestionState = IngestionState.RECEIVED
    outcomes: list[ImageOutcome] = field(default_factory=list)
    aggregated: dict[str, str | None] = field(default_factory=dict)
    image_ids: list[int] = field(default_factory=list)

    @property
    def is_append(self) -> bool:
        return self.fields is None


class IngestionStep(ABC):
    state: ClassVar[IngestionState]

    @abstractmethod
    def run(self, context: IngestionContext) -> IngestionContext:
        raise NotImplementedError
