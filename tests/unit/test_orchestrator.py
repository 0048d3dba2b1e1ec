"""Tests for IngestionOrchestrator with a real image pipeline and mocked database."""

from collections.abc import Callable
from contextlib import nullcontext
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from app.auth.exceptions import AuthError
from app.classification.base import BaseClassifier
from app.classification.models import DocumentKind, ExtractedData, Verdict
from app.config.settings import Settings
from app.imaging.derivatives import DerivativeGenerator
from app.ingestion.aggregator import MetadataAggregator
from app.ingestion.exceptions import (
    NotFoundError,
    OwnershipError,
    RejectionError,
    StorageError,
    ValidationError,
)
from app.ingestion.fields import PRESCRIPTION_SCHEMA, REPORT_SCHEMA, PrescriptionFields, ReportFields
from app.ingestion.models import ImageUpload
from app.ingestion.orchestrator import IngestionOrchestrator, build_orchestrator
from app.ingestion.steps import (
    AdmissionStep,
    AggregateMetadataStep,
    PersistStep,
    ProcessImagesStep,
)
from app.storage.file_store import DerivativeStore

UploadFactory = Callable[..., ImageUpload]


class _ScriptedClassifier(BaseClassifier):
    """Returns a preset verdict per image buffer."""

    def __init__(self) -> None:
        self.verdicts: dict[bytes, Verdict] = {}
        self.calls = 0

    def add(self, upload: ImageUpload, kind: DocumentKind, **extracted: str) -> ImageUpload:
        self.verdicts[upload.content] = Verdict(
            document_type=kind, extracted=ExtractedData(**extracted)
        )
        return upload

    def classify(self, image_bytes: bytes, media_type: str) -> Verdict:
        self.calls += 1
        return self.verdicts[image_bytes]


class _Harness:
    def __init__(self, tmp_path: Path, upload_factory: UploadFactory) -> None:
        self.root = tmp_path / "uploads"
        self.upload_factory = upload_factory
        self.conn = MagicMock()
        self.authenticator = MagicMock()
        self.doc_repo = MagicMock()
        self.doc_repo.insert_document.return_value = 11
        self.doc_repo.insert_image.side_effect = iter(range(100, 200))
        self.doc_repo.find_owner.return_value = 7
        self.classifier = _ScriptedClassifier()
        self._colors = iter(range(10, 250, 10))
        self.orchestrator = IngestionOrchestrator(
            authenticator=self.authenticator,
            doc_repo=self.doc_repo,
            process_step=ProcessImagesStep(DerivativeGenerator(), self.classifier, max_workers=4),
            admission_step=AdmissionStep(),
            aggregate_step=AggregateMetadataStep(MetadataAggregator()),
            persist_step=PersistStep(
                doc_repo=self.doc_repo, store=DerivativeStore(self.root, "/uploads")
            ),
            connection_factory=lambda: nullcontext(self.conn),
        )

    def upload(self, kind: DocumentKind, name: str = "scan.jpg", **extracted: str) -> ImageUpload:
        color = next(self._colors)
        upload = self.upload_factory(name, color=(color, color, 255 - color))
        return self.classifier.add(upload, kind, **extracted)

    def stored_files(self) -> list[Path]:
        if not self.root.exists():
            return []
        return sorted(self.root.iterdir())


@pytest.fixture()
def harness(tmp_path: Path, upload_factory: UploadFactory) -> _Harness:
    return _Harness(tmp_path, upload_factory)


P = DocumentKind.PRESCRIPTION
R = DocumentKind.REPORT
OTHER = DocumentKind.OTHER


class TestIngestNewDocument:
    def test_unanimous_doctor_name_is_auto_filled(self, harness: _Harness) -> None:
        batch = [harness.upload(P, f"rx{i}.jpg", doctor_name="Dr. Rao") for i in range(3)]

        result = harness.orchestrator.ingest_new_document(
            batch, "prescription", None, 7, access_token="token"
        )

        assert result.document_id == 11
        assert result.kind is P
        assert result.image_count == 3
        assert result.auto_filled_fields["doctor_name"] == "Dr. Rao"
        assert result.fields == {"doctor_name": "Dr. Rao"}
        harness.doc_repo.insert_document.assert_called_once_with(
            harness.conn, PRESCRIPTION_SCHEMA, 7, {"doctor_name": "Dr. Rao"}
        )
        assert harness.doc_repo.insert_image.call_count == 3
        assert len(harness.stored_files()) == 6

    def test_images_are_inserted_in_upload_order(self, harness: _Harness) -> None:
        batch = [harness.upload(P, f"page{i}.jpg") for i in range(4)]
        harness.orchestrator.ingest_new_document(batch, "prescription", None, 7, access_token="t")
        paths = [c.args[3] for c in harness.doc_repo.insert_image.call_args_list]
        assert [p.split("/")[-1].split("-")[0] for p in paths] == [
            "page0", "page1", "page2", "page3"
        ]

    def test_one_other_image_rejects_whole_batch(self, harness: _Harness) -> None:
        batch = [harness.upload(R, "lab.jpg"), harness.upload(OTHER, "selfie.jpg")]

        with pytest.raises(RejectionError) as exc_info:
            harness.orchestrator.ingest_new_document(batch, "report", None, 7, access_token="t")

        invalid = exc_info.value.report.invalid_files
        assert len(invalid) == 1
        assert invalid[0].index == 1
        assert invalid[0].original_name == "selfie.jpg"
        assert invalid[0].classified_as == "other"
        harness.doc_repo.insert_document.assert_not_called()
        harness.doc_repo.insert_image.assert_not_called()
        assert harness.stored_files() == []

    def test_conflicting_department_stays_absent(self, harness: _Harness) -> None:
        batch = [
            harness.upload(P, department="Cardiology"),
            harness.upload(P, department="Neurology"),
        ]

        result = harness.orchestrator.ingest_new_document(
            batch, "prescription", {"title": "Follow-up"}, 7, access_token="t"
        )

        values = harness.doc_repo.insert_document.call_args.args[3]
        assert "department" not in values
        assert values == {"title": "Follow-up"}
        assert result.auto_filled_fields["department"] is None

    def test_explicit_values_beat_consensus(self, harness: _Harness) -> None:
        batch = [harness.upload(R, test_name="CBC", normal_or_not="Normal")]

        result = harness.orchestrator.ingest_new_document(
            batch,
            R,
            ReportFields(title="Blood", test_name="Lipid panel", normal_or_not=None),
            7,
            access_token="t",
        )

        assert harness.doc_repo.insert_document.call_args.args[1] is REPORT_SCHEMA
        assert result.fields == {
            "title": "Blood",
            "test_name": "Lipid panel",
            "normal_or_not": None,
        }

    def test_undecodable_file_is_rejected_without_classifier_call(self, harness: _Harness) -> None:
        good = harness.upload(P)
        broken = ImageUpload(content=b"not an image", media_type="image/png", original_name="x.png")

        with pytest.raises(RejectionError) as exc_info:
            harness.orchestrator.ingest_new_document(
                [good, broken], "prescription", None, 7, access_token="t"
            )

        assert exc_info.value.report.invalid_files[0].classified_as == "other"
        assert harness.classifier.calls == 1
        assert harness.stored_files() == []

    def test_storage_failure_reverts_everything(self, harness: _Harness) -> None:
        harness.doc_repo.insert_image.side_effect = [100, RuntimeError("disk quota")]
        batch = [harness.upload(P), harness.upload(P)]

        with pytest.raises(StorageError, match="unknown error"):
            harness.orchestrator.ingest_new_document(batch, "prescription", None, 7, access_token="t")

        harness.conn.rollback.assert_called_once()
        assert harness.stored_files() == []

    def test_report_parent_prescription_must_belong_to_member(self, harness: _Harness) -> None:
        harness.doc_repo.find_owner.return_value = 8
        batch = [harness.upload(R)]

        with pytest.raises(OwnershipError):
            harness.orchestrator.ingest_new_document(
                batch, "report", {"prescription_id": "3"}, 7, access_token="t"
            )

        harness.doc_repo.find_owner.assert_called_once_with(harness.conn, PRESCRIPTION_SCHEMA, 3)
        assert harness.classifier.calls == 0

    def test_report_parent_prescription_missing(self, harness: _Harness) -> None:
        harness.doc_repo.find_owner.return_value = None
        with pytest.raises(NotFoundError, match="Prescription not found"):
            harness.orchestrator.ingest_new_document(
                [harness.upload(R)], "report", {"prescription_id": 3}, 7, access_token="t"
            )

    def test_auth_failure_stops_before_processing(self, harness: _Harness) -> None:
        harness.authenticator.authenticate.side_effect = AuthError(AuthError.TOKEN_INVALID)
        with pytest.raises(AuthError):
            harness.orchestrator.ingest_new_document(
                [harness.upload(P)], "prescription", None, 7, access_token="bad"
            )
        assert harness.classifier.calls == 0

    def test_precheck_transaction_committed_before_processing(self, harness: _Harness) -> None:
        harness.orchestrator.ingest_new_document(
            [harness.upload(P)], "prescription", None, 7, access_token="t"
        )
        assert harness.conn.commit.call_count == 2

    def test_mismatched_field_record(self, harness: _Harness) -> None:
        with pytest.raises(ValidationError, match="do not match"):
            harness.orchestrator.ingest_new_document(
                [harness.upload(P)], "prescription", ReportFields(), 7, access_token="t"
            )

    def test_invalid_member_id(self, harness: _Harness) -> None:
        with pytest.raises(ValidationError, match="member_id"):
            harness.orchestrator.ingest_new_document(
                [harness.upload(P)], "prescription", PrescriptionFields(), "abc", access_token="t"
            )


class TestIngestAppendImages:
    def test_appends_to_owned_document(self, harness: _Harness) -> None:
        batch = [harness.upload(R), harness.upload(R)]

        result = harness.orchestrator.ingest_append_images(batch, "report", "5", 7, access_token="t")

        assert result.document_id == 5
        assert result.image_count == 2
        harness.doc_repo.find_owner.assert_called_once_with(harness.conn, REPORT_SCHEMA, 5)
        harness.doc_repo.insert_document.assert_not_called()
        assert {c.args[2] for c in harness.doc_repo.insert_image.call_args_list} == {5}
        assert len(harness.stored_files()) == 4

    def test_other_member_gets_ownership_error(self, harness: _Harness) -> None:
        harness.doc_repo.find_owner.return_value = 7

        with pytest.raises(OwnershipError):
            harness.orchestrator.ingest_append_images(
                [harness.upload(R)], "report", 5, 8, access_token="t"
            )

        assert harness.classifier.calls == 0
        assert harness.stored_files() == []

    def test_missing_document(self, harness: _Harness) -> None:
        harness.doc_repo.find_owner.return_value = None
        with pytest.raises(NotFoundError, match="Report not found"):
            harness.orchestrator.ingest_append_images(
                [harness.upload(R)], "report", 5, 7, access_token="t"
            )

    def test_rejection_uses_append_message(self, harness: _Harness) -> None:
        with pytest.raises(RejectionError, match="not appended"):
            harness.orchestrator.ingest_append_images(
                [harness.upload(P)], "report", 5, 7, access_token="t"
            )
        assert harness.stored_files() == []


class TestBuildOrchestrator:
    def test_builds_with_example_classifier(self, tmp_path: Path) -> None:
        settings = Settings(classification_provider="example", uploads_dir=tmp_path)
        assert isinstance(build_orchestrator(settings), IngestionOrchestrator)
