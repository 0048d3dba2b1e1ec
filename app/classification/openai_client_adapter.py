import base64

import httpx
import openai

from app.classification.client_base import BaseClassificationClient
from app.classification.exceptions import (
    ClassificationContentFilteredError,
    ClassificationError,
    ClassificationNetworkError,
)


class OpenAIClientAdapter(BaseClassificationClient):
    """Vision classification client built on the OpenAI-compatible chat API."""

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
        extra_body: dict[str, object] | None = None,
    ) -> None:
        self._extra_body = extra_body or None
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
            max_retries=0,
        )

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
        image_url = self._to_data_url(image_bytes, media_type)
        try:
            response = self._client.chat.completions.create(
                model=model,
                temperature=temperature,
                extra_body=self._extra_body,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "classification_verdict",
                        "strict": True,
                        "schema": json_schema,
                    },
                },
                messages=[
                    {"role": "system", "content": system_prompt},
                    {
                        "role": "user",
                        "content": [
                            {"type": "image_url", "image_url": {"url": image_url}},
                            {"type": "text", "text": user_prompt},
                        ],
                    },
                ],
            )
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ClassificationNetworkError(
                f"AI provider network error: {exc}"
            ) from exc
        except openai.APIError as exc:
            raise ClassificationNetworkError(
                f"AI provider API error: {exc}"
            ) from exc

        if not response.choices:
            raise ClassificationError("AI returned no choices")
        choice = response.choices[0]
        if choice.finish_reason == "content_filter":
            raise ClassificationContentFilteredError("AI response blocked by content filter")
        refusal = getattr(choice.message, "refusal", None)
        if refusal:
            raise ClassificationContentFilteredError(f"AI refused the request: {refusal}")
        content = choice.message.content
        if content is None:
            raise ClassificationError("AI returned empty response")
        return content

    @staticmethod
    def _to_data_url(image_bytes: bytes, media_type: str) -> str:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        return f"data:{media_type};base64,{encoded}"
