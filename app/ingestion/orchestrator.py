from collections.abc import Callable, Mapping, Sequence
from contextlib import AbstractContextManager
from typing import Any

import psycopg

from app.auth.authenticator import Authenticator
from app.classification.base import BaseClassifier
from app.classification.factory import ClassifierFactory
from app.classification.models import DocumentKind
from app.config.settings import Settings
from app.database.connection import get_connection
from app.database.repositories.document_repository import DocumentRepository
from app.database.repositories.user_repository import UserRepository
from app.imaging.derivatives import DerivativeGenerator
from app.ingestion.aggregator import MetadataAggregator
from app.ingestion.exceptions import (
    NotFoundError,
    OwnershipError,
    RejectionError,
    StorageError,
    ValidationError,
)
from app.ingestion.fields import SCHEMAS, UNSET, DocumentFields, DocumentSchema
from app.ingestion.models import AppendResult, ImageUpload, IngestionState, NewDocumentResult
from app.ingestion.pipeline import IngestionContext, IngestionStep
from app.ingestion.steps import (
    AdmissionStep,
    AggregateMetadataStep,
    PersistStep,
    ProcessImagesStep,
)
from app.ingestion.validation import (
    parse_fields,
    require_document_kind,
    require_positive_id,
    validate_batch,
)
from app.logging.logger import Log
from app.storage.file_store import DerivativeStore

ConnectionFactory = Callable[[], AbstractContextManager[psycopg.Connection[Any]]]


class IngestionOrchestrator:
    """Turns a batch of uploaded document images into a committed document, or nothing.

    Pipeline: received -> processing -> validating -> aggregating -> persisting
    -> committed. A rejected batch or a failed write ends in rolled_back with
    no rows and no files left behind.
    """

    def __init__(
        self,
        *,
        authenticator: Authenticator,
        doc_repo: DocumentRepository,
        process_step: ProcessImagesStep,
        admission_step: AdmissionStep,
        aggregate_step: AggregateMetadataStep,
        persist_step: PersistStep,
        connection_factory: ConnectionFactory = get_connection,
        max_files: int = 10,
        max_file_size_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self._authenticator = authenticator
        self._doc_repo = doc_repo
        self._new_document_steps: list[IngestionStep] = [
            process_step,
            admission_step,
            aggregate_step,
            persist_step,
        ]
        self._append_steps: list[IngestionStep] = [
            process_step,
            admission_step,
            persist_step,
        ]
        self._connection_factory = connection_factory
        self._max_files = max_files
        self._max_file_size_bytes = max_file_size_bytes

    def ingest_new_document(
        self,
        batch: Sequence[ImageUpload],
        target_kind: DocumentKind | str,
        explicit_fields: DocumentFields | Mapping[str, Any] | None,
        owner_id: int | str,
        *,
        access_token: str | None,
    ) -> NewDocumentResult:
        """Create a prescription or report from a batch of images.

        Raises:
            ValidationError: malformed input.
            AuthError: token or member check failed.
            NotFoundError, OwnershipError: a report's parent prescription is
                missing or belongs to another member.
            RejectionError: at least one image is not of the target kind.
            StorageError: the write failed and was fully reverted.
        """
        kind = require_document_kind(target_kind)
        schema = SCHEMAS[kind]
        member_id = require_positive_id(owner_id, "member_id")
        fields = self._coerce_fields(schema, explicit_fields)
        validate_batch(
            batch,
            max_files=self._max_files,
            max_file_size_bytes=self._max_file_size_bytes,
        )

        with self._connection_factory() as conn:
            self._authenticator.authenticate(conn, access_token, member_id)
            parent_id = getattr(fields, "prescription_id", UNSET)
            if parent_id is not UNSET and parent_id is not None:
                self._check_owner(
                    conn,
                    SCHEMAS[DocumentKind.PRESCRIPTION],
                    require_positive_id(parent_id, "prescription_id"),
                    member_id,
                )
            conn.commit()

            context = IngestionContext(
                schema=schema,
                owner_id=member_id,
                images=list(batch),
                conn=conn,
                fields=fields,
            )
            self._run(context, self._new_document_steps)

        if context.document_id is None or context.fields is None:
            raise StorageError("Pipeline committed without a document id")
        return NewDocumentResult(
            document_id=context.document_id,
            kind=kind,
            image_count=len(context.image_ids),
            fields=context.fields.present(),
            auto_filled_fields=context.fields.auto_fill_summary(),
        )

    def ingest_append_images(
        self,
        batch: Sequence[ImageUpload],
        target_kind: DocumentKind | str,
        existing_document_id: int | str,
        owner_id: int | str,
        *,
        access_token: str | None,
    ) -> AppendResult:
        """Add a batch of images to an existing document owned by the member.

        No metadata is aggregated. Raises the same errors as
        ingest_new_document, with NotFoundError/OwnershipError describing
        the target document.
        """
        kind = require_document_kind(target_kind)
        schema = SCHEMAS[kind]
        member_id = require_positive_id(owner_id, "member_id")
        document_id = require_positive_id(existing_document_id, f"{kind.value}_id")
        validate_batch(
            batch,
            max_files=self._max_files,
            max_file_size_bytes=self._max_file_size_bytes,
        )

        with self._connection_factory() as conn:
            self._authenticator.authenticate(conn, access_token, member_id)
            self._check_owner(conn, schema, document_id, member_id)
            conn.commit()

            context = IngestionContext(
                schema=schema,
                owner_id=member_id,
                images=list(batch),
                conn=conn,
                document_id=document_id,
            )
            self._run(context, self._append_steps)

        return AppendResult(
            document_id=document_id,
            kind=kind,
            image_count=len(context.image_ids),
        )

    def _run(self, context: IngestionContext, steps: list[IngestionStep]) -> None:
        Log.info(
            f"Ingesting {len(context.images)} images as {context.schema.kind.value} "
            f"for member {context.owner_id}"
            + (f" into document {context.document_id}" if context.is_append else "")
        )
        for step in steps:
            context.state = step.state
            Log.debug(f"Ingestion state -> {context.state.value}")
            try:
                step.run(context)
            except RejectionError as exc:
                context.state = IngestionState.ROLLED_BACK
                Log.warning(
                    f"Rejected batch for member {context.owner_id}: "
                    f"{len(exc.report.invalid_files)} invalid files"
                )
                raise
            except StorageError:
                context.state = IngestionState.ROLLED_BACK
                raise
        if context.state is not IngestionState.COMMITTED:
            raise StorageError(f"Pipeline ended in state {context.state.value}")

    def _check_owner(
        self,
        conn: psycopg.Connection[Any],
        schema: DocumentSchema,
        document_id: int,
        member_id: int,
    ) -> None:
        owner = self._doc_repo.find_owner(conn, schema, document_id)
        if owner is None:
            raise NotFoundError(f"{schema.kind.value.capitalize()} not found.")
        if owner != member_id:
            raise OwnershipError(
                f"{schema.kind.value.capitalize()} does not belong to this member."
            )

    @staticmethod
    def _coerce_fields(
        schema: DocumentSchema,
        explicit_fields: DocumentFields | Mapping[str, Any] | None,
    ) -> DocumentFields:
        if explicit_fields is None:
            return schema.fields_type()
        if isinstance(explicit_fields, DocumentFields):
            if not isinstance(explicit_fields, schema.fields_type):
                raise ValidationError(
                    f"Fields of type {type(explicit_fields).__name__} do not match "
                    f"document kind '{schema.kind.value}'"
                )
            return explicit_fields
        return parse_fields(schema.kind, explicit_fields)


def build_orchestrator(
    settings: Settings,
    classifier: BaseClassifier | None = None,
    connection_factory: ConnectionFactory = get_connection,
) -> IngestionOrchestrator:
    """Build an IngestionOrchestrator with all required adapters."""
    doc_repo = DocumentRepository()
    store = DerivativeStore(settings.uploads_dir, settings.uploads_url_prefix)
    process_step = ProcessImagesStep(
        generator=DerivativeGenerator(thumbnail_max_size=settings.thumbnail_max_size),
        classifier=classifier if classifier is not None else ClassifierFactory.create(settings),
        max_workers=settings.classification_max_workers,
    )
    return IngestionOrchestrator(
        authenticator=Authenticator(settings.jwt_secret, UserRepository()),
        doc_repo=doc_repo,
        process_step=process_step,
        admission_step=AdmissionStep(),
        aggregate_step=AggregateMetadataStep(MetadataAggregator()),
        persist_step=PersistStep(doc_repo=doc_repo, store=store),
        connection_factory=connection_factory,
        max_files=settings.max_files_per_batch,
        max_file_size_bytes=settings.max_file_size_bytes,
    )
