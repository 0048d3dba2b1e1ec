from typing import ClassVar

from app.classification.base import BaseClassifier
from app.classification.classifier import Classifier
from app.classification.example_client_adapter import ExampleClientAdapter
from app.classification.openai_client_adapter import OpenAIClientAdapter
from app.config.settings import Settings


class ClassifierFactory:
    """Creates the configured classifier adapter."""

    OPENAI_COMPATIBLE_BASE_URLS: ClassVar[dict[str, str]] = {
        "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/",
        "openrouter": "https://openrouter.ai/api/v1",
        "ollama": "http://localhost:11434/v1",
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseClassifier:
        """Create a configured classifier from application settings."""
        provider = settings.classification_provider.lower()
        if provider == "example":
            return Classifier(
                client=ExampleClientAdapter(),
                model="example",
                temperature=0.0,
            )
        client = OpenAIClientAdapter(
            api_key=settings.classification_api_key,
            timeout_seconds=settings.classification_timeout_seconds,
            base_url=cls._resolve_base_url(provider, settings),
            extra_body=settings.classification_extra_body or None,
        )
        return Classifier(
            client=client,
            model=settings.classification_model_name,
            temperature=settings.classification_temperature,
        )

    @classmethod
    def _resolve_base_url(cls, provider: str, settings: Settings) -> str | None:
        configured = settings.classification_base_url.strip()
        if provider == "openai":
            return configured or None
        if provider == "openai_compatible":
            if not configured:
                raise ValueError(
                    "classification_base_url is required for "
                    "classification_provider=openai_compatible"
                )
            return configured
        default_base_url = cls.OPENAI_COMPATIBLE_BASE_URLS.get(provider)
        if default_base_url is not None:
            return configured or default_base_url
        supported = [
            "example",
            "openai",
            "openai_compatible",
            *sorted(cls.OPENAI_COMPATIBLE_BASE_URLS),
        ]
        raise ValueError(
            f"Unknown classification provider '{provider}'. Choose from: {supported}"
        )
