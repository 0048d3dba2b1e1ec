from abc import ABC, abstractmethod


class BaseClassificationClient(ABC):
    """Contract for provider-specific vision AI clients."""

    @abstractmethod
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
        """Send one image with a prompt and return the provider response as plain text.

        Raises:
            ClassificationNetworkError: on transport, timeout or API failures.
            ClassificationContentFilteredError: when the provider refuses the content.
            ClassificationError: when the provider returns no usable content.
        """
