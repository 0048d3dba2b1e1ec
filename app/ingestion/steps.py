from concurrent.futures import ThreadPoolExecutor

from app.classification.base import BaseClassifier
from app.classification.models import fallback_verdict
from app.database.repositories.document_repository import DocumentRepository
from app.imaging.derivatives import DerivativeGenerator
from app.imaging.exceptions import DecodeError
from app.ingestion.aggregator import MetadataAggregator
from app.ingestion.exceptions import RejectionError, StorageError
from app.ingestion.models import (
    ImageOutcome,
    ImageUpload,
    IngestionState,
    InvalidFile,
    RejectionReport,
)
from app.ingestion.pipeline import IngestionContext, IngestionStep
from app.logging.logger import Log
from app.storage.file_store import DerivativeStore, StagedWrites


class ProcessImagesStep(IngestionStep):
    """Generates derivatives and classifies every upload, concurrently across images."""

    state = IngestionState.PROCESSING

    def __init__(
        self,
        generator: DerivativeGenerator,
        classifier: BaseClassifier,
        max_workers: int = 4,
    ) -> None:
        self._generator = generator
        self._classifier = classifier
        self._max_workers = max(1, max_workers)

    def run(self, context: IngestionContext) -> IngestionContext:
        workers = min(self._max_workers, len(context.images))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingest") as executor:
            futures = [
                executor.submit(self._process_one, index, upload, context.owner_id)
                for index, upload in enumerate(context.images)
            ]
            # gathered in upload order
            context.outcomes = [future.result() for future in futures]
        Log.info(
            f"Processed {len(context.outcomes)} images for "
            f"{context.schema.kind.value} of member {context.owner_id}"
        )
        return context

    def _process_one(self, index: int, upload: ImageUpload, owner_id: int) -> ImageOutcome:
        try:
            derivatives = self._generator.generate(
                upload.content, upload.media_type, owner_id, upload.original_name
            )
        except DecodeError as exc:
            Log.warning(f"Image {index} ({upload.original_name}) could not be decoded: {exc}")
            return ImageOutcome(
                index=index,
                upload=upload,
                verdict=fallback_verdict("File could not be decoded as an image."),
            )
        verdict = self._classifier.classify(upload.content, upload.media_type)
        return ImageOutcome(index=index, upload=upload, verdict=verdict, derivatives=derivatives)


class AdmissionStep(IngestionStep):
    """Rejects the whole batch unless every image matches the target kind."""

    state = IngestionState.VALIDATING

    def run(self, context: IngestionContext) -> IngestionContext:
        schema = context.schema
        invalid_files = [
            InvalidFile(
                index=outcome.index,
                original_name=outcome.upload.original_name,
                classified_as=outcome.verdict.document_type.value,
                reason=outcome.verdict.reason
                or (
                    f"Document classified as '{outcome.verdict.document_type.value}', "
                    f"not a {schema.label}."
                ),
            )
            for outcome in context.outcomes
            if not outcome.verdict.matches(schema.kind) or outcome.derivatives is None
        ]
        if invalid_files:
            raise RejectionError(
                RejectionReport(
                    kind=schema.kind,
                    label=schema.label,
                    invalid_files=invalid_files,
                    append=context.is_append,
                )
            )
        Log.info(f"All {len(context.outcomes)} images admitted as {schema.kind.value}")
        return context


class AggregateMetadataStep(IngestionStep):
    """Auto-fills unset fields from unanimous extracted values."""

    state = IngestionState.AGGREGATING

    def __init__(self, aggregator: MetadataAggregator) -> None:
        self._aggregator = aggregator

    def run(self, context: IngestionContext) -> IngestionContext:
        if context.fields is None:
            raise ValueError("IngestionContext.fields must be set before aggregation")
        field_names = context.fields.AUTO_FILL_FIELDS
        context.aggregated = self._aggregator.aggregate(
            (outcome.verdict for outcome in context.outcomes), field_names
        )
        context.fields = context.fields.with_auto_filled(context.aggregated)
        filled = [name for name, value in context.aggregated.items() if value is not None]
        Log.info(f"Consensus metadata found for {filled or 'no fields'}")
        return context


class PersistStep(IngestionStep):
    """Writes the document, its images and their files as one all-or-nothing unit.

    Order: document row, staged files and image rows, promote files, commit.
    Any failure rolls the transaction back and removes every file written.
    """

    state = IngestionState.PERSISTING

    def __init__(self, doc_repo: DocumentRepository, store: DerivativeStore) -> None:
        self._doc_repo = doc_repo
        self._store = store

    def run(self, context: IngestionContext) -> IngestionContext:
        writes: StagedWrites | None = None
        try:
            writes = self._store.begin()
            self._write(context, writes)
            writes.promote()
            context.conn.commit()
        except Exception as exc:
            self._revert(context, writes)
            Log.exception(
                f"Persisting {context.schema.kind.value} for member {context.owner_id} "
                f"failed, rolled back: {exc}"
            )
            raise StorageError(str(exc)) from exc
        context.state = IngestionState.COMMITTED
        Log.info(
            f"Committed {context.schema.kind.value} {context.document_id} "
            f"with {len(context.image_ids)} images"
        )
        return context

    def _write(self, context: IngestionContext, writes: StagedWrites) -> None:
        schema = context.schema
        if context.document_id is None:
            if context.fields is None:
                raise ValueError("IngestionContext.fields must be set for a new document")
            context.document_id = self._doc_repo.insert_document(
                context.conn, schema, context.owner_id, context.fields.present()
            )
        for outcome in context.outcomes:
            if outcome.derivatives is None:
                raise ValueError(f"Image {outcome.index} has no derivatives to persist")
            normalized = writes.stage(outcome.derivatives.normalized)
            thumbnail = writes.stage(outcome.derivatives.thumbnail)
            image_id = self._doc_repo.insert_image(
                context.conn,
                schema,
                context.document_id,
                normalized.public_path,
                thumbnail.public_path,
            )
            context.image_ids.append(image_id)

    @staticmethod
    def _revert(context: IngestionContext, writes: StagedWrites | None) -> None:
        try:
            context.conn.rollback()
        except Exception as exc:  # noqa: BLE001
            Log.error(f"Rollback failed: {exc}")
        if writes is not None:
            writes.discard()
