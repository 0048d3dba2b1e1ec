"""Example classification client adapter.

Use this module as a reference when implementing new provider adapters.
Implement BaseClassificationClient and register the provider in ClassifierFactory.
"""

import json

from app.classification.client_base import BaseClassificationClient


class ExampleClientAdapter(BaseClassificationClient):
    """Example adapter that labels every image with a fixed document type.

    No network calls. Useful for local development and integration tests.
    """

    def __init__(
        self,
        document_type: str = "prescription",
        extracted_data: dict[str, str | None] | None = None,
    ) -> None:
        self._document_type = document_type
        self._extracted_data = extracted_data or {}

    def create_vision_completion(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        image_bytes: bytes,
        media_type: str,
        json_schema: dict[str, object],
    ) -> str:
        _ = model, temperature, system_prompt, user_prompt, image_bytes, media_type, json_schema
        extracted: dict[str, str | None] = {
            "department": None,
            "doctor_name": None,
            "visited_date": None,
            "test_name": None,
            "deliveryDate": None,
            "normal_or_not": None,
        }
        extracted.update(self._extracted_data)
        return json.dumps({
            "documentType": self._document_type,
            "extractedData": extracted,
            "reason": f"classified as {self._document_type}",
        })
