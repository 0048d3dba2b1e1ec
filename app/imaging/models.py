from collections.abc import Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class Derivative:
    """One generated image artifact, not yet written to storage."""

    role: str  # "normalized" or "thumbnail"
    filename: str
    content: bytes


@dataclass(frozen=True)
class DerivativeSet:
    """Normalized full-size image and bounded thumbnail generated from one upload."""

    normalized: Derivative
    thumbnail: Derivative

    def __iter__(self) -> Iterator[Derivative]:
        yield self.normalized
        yield self.thumbnail
