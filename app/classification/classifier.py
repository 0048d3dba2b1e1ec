"""AI-powered document image classifier."""

import json
from pathlib import Path

from app.classification.base import BaseClassifier
from app.classification.client_base import BaseClassificationClient
from app.classification.exceptions import (
    ClassificationContentFilteredError,
    ClassificationError,
    ClassificationInvalidJsonError,
    ClassificationNetworkError,
    ClassificationValidationError,
)
from app.classification.models import Verdict, fallback_verdict
from app.classification.prompt_loader import load_json_schema, load_prompt_template
from app.classification.validator import validate_and_build
from app.logging.logger import Log

REASON_MALFORMED = "AI classification result malformed."
REASON_INVALID_JSON = "AI classification result was not valid JSON."
REASON_PROVIDER_FAILURE = "Error during AI processing or API call failed."
REASON_CONTENT_FILTERED = "AI classification was blocked by content filtering."

DEFAULT_SYSTEM_PROMPT = (
    "You classify photographed medical documents and extract factual metadata. "
    "Answer strictly with JSON."
)


class Classifier(BaseClassifier):
    """Classifies one document image per call through an AI vision provider.

    Every failure mode collapses into the fallback "other" verdict so that a
    broken or ambiguous answer can never pass as the requested document kind.
    """

    def __init__(
        self,
        *,
        client: BaseClassificationClient,
        model: str,
        temperature: float = 0.1,
        prompt_template_path: Path | None = None,
        json_schema_path: Path | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = max(0.0, min(0.2, temperature))
        self._system_prompt = system_prompt
        self._prompt_template = load_prompt_template(prompt_template_path)
        schema_str = load_json_schema(json_schema_path)
        self._json_schema = schema_str
        self._json_schema_dict = json.loads(schema_str)

    def classify(self, image_bytes: bytes, media_type: str) -> Verdict:
        """Classify one image, returning the fallback verdict on any failure."""
        try:
            verdict = self._classify(image_bytes, media_type)
        except ClassificationContentFilteredError as exc:
            Log.warning(f"Classification filtered: {exc}")
            return fallback_verdict(REASON_CONTENT_FILTERED)
        except ClassificationNetworkError as exc:
            Log.error(f"Classification provider failure: {exc}")
            return fallback_verdict(REASON_PROVIDER_FAILURE)
        except ClassificationInvalidJsonError as exc:
            Log.warning(f"Classification returned invalid JSON: {exc}")
            return fallback_verdict(REASON_INVALID_JSON)
        except ClassificationValidationError as exc:
            Log.warning(f"Classification returned unexpected structure: {exc}")
            return fallback_verdict(REASON_MALFORMED)
        except ClassificationError as exc:
            Log.error(f"Classification failed: {exc}")
            return fallback_verdict(REASON_PROVIDER_FAILURE)
        except Exception as exc:  # noqa: BLE001
            Log.exception(f"Unexpected classification failure: {exc}")
            return fallback_verdict(REASON_PROVIDER_FAILURE)

        Log.info(f"Classified image as {verdict.document_type.value}")
        return verdict

    def _classify(self, image_bytes: bytes, media_type: str) -> Verdict:
        prompt = self._build_prompt()
        Log.debug(f"Classification prompt:\n{prompt}")

        raw_response = self._call_ai(prompt, image_bytes, media_type)
        Log.debug(f"AI raw response:\n{raw_response}")

        parsed = self._parse_json(raw_response)
        return validate_and_build(parsed)

    def _build_prompt(self) -> str:
        return self._prompt_template.format(json_schema=self._json_schema)

    def _call_ai(self, prompt: str, image_bytes: bytes, media_type: str) -> str:
        return self._client.create_vision_completion(
            model=self._model,
            temperature=self._temperature,
            system_prompt=self._system_prompt,
            user_prompt=prompt,
            image_bytes=image_bytes,
            media_type=media_type,
            json_schema=self._json_schema_dict,
        )

    @staticmethod
    def _parse_json(raw: str) -> dict[str, object]:
        cleaned = raw.strip()
        if cleaned.startswith("```"):
            lines = cleaned.splitlines()
            if lines and lines[0].startswith("```"):
                lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            cleaned = "\n".join(lines)

        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise ClassificationInvalidJsonError(f"Invalid JSON response: {exc}") from exc

        if not isinstance(parsed, dict):
            raise ClassificationInvalidJsonError("JSON response must be an object")
        return parsed
