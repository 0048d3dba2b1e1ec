"""Tests for the Classifier (AI-powered image classification)."""

import json
from unittest.mock import MagicMock

import pytest

from app.classification.classifier import (
    REASON_CONTENT_FILTERED,
    REASON_INVALID_JSON,
    REASON_MALFORMED,
    REASON_PROVIDER_FAILURE,
    Classifier,
)
from app.classification.exceptions import (
    ClassificationContentFilteredError,
    ClassificationError,
    ClassificationNetworkError,
)
from app.classification.models import DocumentKind, ExtractedData

_ALL_ABSENT = ExtractedData()


def _make_classifier(client: MagicMock | None = None, temperature: float = 0.1) -> Classifier:
    if client is None:
        client = MagicMock()
    return Classifier(client=client, model="test-model", temperature=temperature)


def _mock_ai_response(client: MagicMock, content: str) -> None:
    client.create_vision_completion.return_value = content


def _valid_json_response(
    document_type: str = "prescription",
    extracted: dict[str, object] | None = None,
) -> str:
    data: dict[str, object] = {
        "department": "Cardiology",
        "doctor_name": "Dr. Rahman",
        "visited_date": "2024-05-01",
        "test_name": None,
        "deliveryDate": None,
        "normal_or_not": None,
    }
    data.update(extracted or {})
    return json.dumps({
        "documentType": document_type,
        "extractedData": data,
        "reason": "Rx header and drug list",
    })


class TestClassifySuccess:
    def test_returns_verdict(self) -> None:
        client = MagicMock()
        _mock_ai_response(client, _valid_json_response())
        verdict = _make_classifier(client).classify(b"img", "image/png")
        assert verdict.document_type is DocumentKind.PRESCRIPTION
        assert verdict.extracted.department == "Cardiology"
        assert verdict.extracted.visited_date == "2024-05-01"
        assert verdict.reason == "Rx header and drug list"

    def test_maps_delivery_date_wire_key(self) -> None:
        client = MagicMock()
        _mock_ai_response(
            client,
            _valid_json_response("report", {"test_name": "CBC", "deliveryDate": "2024-06-02"}),
        )
        verdict = _make_classifier(client).classify(b"img", "image/png")
        assert verdict.document_type is DocumentKind.REPORT
        assert verdict.extracted.delivery_date == "2024-06-02"

    def test_tolerates_markdown_fences(self) -> None:
        client = MagicMock()
        _mock_ai_response(client, "```json\n" + _valid_json_response() + "\n```")
        verdict = _make_classifier(client).classify(b"img", "image/png")
        assert verdict.document_type is DocumentKind.PRESCRIPTION

    def test_sends_image_and_schema(self) -> None:
        client = MagicMock()
        _mock_ai_response(client, _valid_json_response())
        _make_classifier(client).classify(b"raw-image", "image/webp")
        kwargs = client.create_vision_completion.call_args.kwargs
        assert kwargs["image_bytes"] == b"raw-image"
        assert kwargs["media_type"] == "image/webp"
        assert kwargs["model"] == "test-model"
        assert kwargs["json_schema"]["required"] == ["documentType", "extractedData", "reason"]

    def test_prompt_embeds_schema(self) -> None:
        client = MagicMock()
        _mock_ai_response(client, _valid_json_response())
        _make_classifier(client).classify(b"img", "image/png")
        user_prompt = client.create_vision_completion.call_args.kwargs["user_prompt"]
        assert '"documentType"' in user_prompt
        assert "{json_schema}" not in user_prompt

    @pytest.mark.parametrize(("configured", "expected"), [(0.1, 0.1), (0.9, 0.2), (-1.0, 0.0)])
    def test_temperature_is_clamped(self, configured: float, expected: float) -> None:
        client = MagicMock()
        _mock_ai_response(client, _valid_json_response())
        _make_classifier(client, temperature=configured).classify(b"img", "image/png")
        assert client.create_vision_completion.call_args.kwargs["temperature"] == expected


class TestClassifyFallback:
    def _assert_fallback(self, verdict: object, reason: str) -> None:
        assert verdict.document_type is DocumentKind.OTHER  # type: ignore[attr-defined]
        assert verdict.extracted == _ALL_ABSENT  # type: ignore[attr-defined]
        assert verdict.reason == reason  # type: ignore[attr-defined]

    def test_invalid_json(self) -> None:
        client = MagicMock()
        _mock_ai_response(client, "this is not json")
        self._assert_fallback(_make_classifier(client).classify(b"i", "image/png"), REASON_INVALID_JSON)

    def test_json_array_is_invalid(self) -> None:
        client = MagicMock()
        _mock_ai_response(client, "[1, 2]")
        self._assert_fallback(_make_classifier(client).classify(b"i", "image/png"), REASON_INVALID_JSON)

    def test_missing_document_type(self) -> None:
        client = MagicMock()
        _mock_ai_response(client, json.dumps({"extractedData": {}}))
        self._assert_fallback(_make_classifier(client).classify(b"i", "image/png"), REASON_MALFORMED)

    def test_unknown_document_type(self) -> None:
        client = MagicMock()
        _mock_ai_response(client, _valid_json_response("invoice"))
        self._assert_fallback(_make_classifier(client).classify(b"i", "image/png"), REASON_MALFORMED)

    def test_network_error(self) -> None:
        client = MagicMock()
        client.create_vision_completion.side_effect = ClassificationNetworkError("timeout")
        self._assert_fallback(
            _make_classifier(client).classify(b"i", "image/png"), REASON_PROVIDER_FAILURE
        )

    def test_content_filtered(self) -> None:
        client = MagicMock()
        client.create_vision_completion.side_effect = ClassificationContentFilteredError("blocked")
        self._assert_fallback(
            _make_classifier(client).classify(b"i", "image/png"), REASON_CONTENT_FILTERED
        )

    def test_empty_response(self) -> None:
        client = MagicMock()
        client.create_vision_completion.side_effect = ClassificationError("AI returned empty response")
        self._assert_fallback(
            _make_classifier(client).classify(b"i", "image/png"), REASON_PROVIDER_FAILURE
        )

    def test_unexpected_exception(self) -> None:
        client = MagicMock()
        client.create_vision_completion.side_effect = RuntimeError("boom")
        self._assert_fallback(
            _make_classifier(client).classify(b"i", "image/png"), REASON_PROVIDER_FAILURE
        )

    def test_failure_is_deterministic(self) -> None:
        client = MagicMock()
        client.create_vision_completion.side_effect = ClassificationNetworkError("down")
        classifier = _make_classifier(client)
        assert classifier.classify(b"i", "image/png") == classifier.classify(b"i", "image/png")
