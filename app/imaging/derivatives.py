"""Derivative image generation with Pillow.

Every upload becomes two PNG artifacts: the full image re-encoded in the
canonical storage format, and a thumbnail that fits inside a square bounding
box. Nothing is written here; callers decide where the bytes go.
"""

import io
import re
import threading
import time
from datetime import datetime, timezone
from pathlib import PurePath

from PIL import Image, ImageOps, UnidentifiedImageError

from app.imaging.exceptions import DecodeError
from app.imaging.models import Derivative, DerivativeSet

ROLE_NORMALIZED = "normalized"
ROLE_THUMBNAIL = "thumbnail"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_PNG_MODES = frozenset({"1", "L", "LA", "P", "RGB", "RGBA", "I;16"})

# process-wide so every generator hands out distinct timestamps
_clock_lock = threading.Lock()
_last_micros = 0


class DerivativeGenerator:
    """Turns one raw image buffer into a normalized image and a thumbnail."""

    OUTPUT_FORMAT = "PNG"
    OUTPUT_EXTENSION = "png"

    def __init__(self, thumbnail_max_size: int = 200) -> None:
        self._thumbnail_box = (thumbnail_max_size, thumbnail_max_size)

    def generate(
        self,
        image_bytes: bytes,
        media_type: str,
        owner_id: int,
        original_name: str,
    ) -> DerivativeSet:
        """Decode the buffer and build both derivatives.

        Raises:
            DecodeError: if the buffer is not a decodable image or cannot be
                re-encoded as PNG.
        """
        image = self._decode(image_bytes, media_type)
        try:
            normalized_bytes = self._encode(image)
            thumbnail = image.copy()
            thumbnail.thumbnail(self._thumbnail_box, Image.Resampling.LANCZOS)
            thumbnail_bytes = self._encode(thumbnail)
        except (OSError, ValueError) as exc:
            raise DecodeError(f"Cannot re-encode {media_type} image: {exc}") from exc

        base_name = self._base_name(original_name)
        timestamp = _next_timestamp()
        return DerivativeSet(
            normalized=Derivative(
                role=ROLE_NORMALIZED,
                filename=self._filename(base_name, ROLE_NORMALIZED, owner_id, timestamp),
                content=normalized_bytes,
            ),
            thumbnail=Derivative(
                role=ROLE_THUMBNAIL,
                filename=self._filename(base_name, ROLE_THUMBNAIL, owner_id, timestamp),
                content=thumbnail_bytes,
            ),
        )

    @staticmethod
    def _decode(image_bytes: bytes, media_type: str) -> Image.Image:
        if not image_bytes:
            raise DecodeError("Empty image buffer")
        try:
            with Image.open(io.BytesIO(image_bytes)) as source:
                source.load()
                image = ImageOps.exif_transpose(source)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise DecodeError(f"Cannot decode {media_type} image: {exc}") from exc
        if image.mode == "I":
            image = image.convert("I;16")
        elif image.mode not in _PNG_MODES:
            image = image.convert("RGB")
        return image

    def _encode(self, image: Image.Image) -> bytes:
        buf = io.BytesIO()
        image.save(buf, format=self.OUTPUT_FORMAT, optimize=True)
        return buf.getvalue()

    @staticmethod
    def _base_name(original_name: str) -> str:
        stem = PurePath(original_name.replace("\\", "/")).stem
        safe = _UNSAFE_CHARS.sub("_", stem).strip("._")
        return safe or "image"

    def _filename(self, base_name: str, role: str, owner_id: int, timestamp: str) -> str:
        return f"{base_name}-{role}-{owner_id}-{timestamp}.{self.OUTPUT_EXTENSION}"


def _next_timestamp() -> str:
    """Return a UTC microsecond timestamp, strictly increasing within the process."""
    global _last_micros  # noqa: PLW0603
    with _clock_lock:
        micros = max(time.time_ns() // 1000, _last_micros + 1)
        _last_micros = micros
    moment = datetime.fromtimestamp(micros // 1_000_000, tz=timezone.utc)
    return f"{moment:%Y%m%dT%H%M%S}{micros % 1_000_000:06d}Z"
