from abc import ABC, abstractmethod

from app.classification.models import Verdict


class BaseClassifier(ABC):
    """Contract for document image classifiers."""

    @abstractmethod
    def classify(self, image_bytes: bytes, media_type: str) -> Verdict:
        """Classify one document image and extract its metadata.

        Args:
            image_bytes: Original uploaded image buffer.
            media_type: Declared MIME type of the buffer, e.g. "image/jpeg".

        Returns:
            Verdict. Never raises: every failure becomes an "other" verdict
            whose reason names the failure.
        """
