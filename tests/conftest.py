import io
from collections.abc import Callable

import pytest
from PIL import Image

from app.ingestion.models import ImageUpload


def make_image_bytes(
    size: tuple[int, int] = (640, 480),
    color: tuple[int, int, int] = (200, 200, 200),
    fmt: str = "JPEG",
) -> bytes:
    """Render a solid-color image in the given format."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def make_upload(name: str = "scan.jpg", **kwargs: object) -> ImageUpload:
    media_type = "image/png" if name.endswith(".png") else "image/jpeg"
    return ImageUpload(
        content=make_image_bytes(**kwargs),  # type: ignore[arg-type]
        media_type=media_type,
        original_name=name,
    )


@pytest.fixture()
def jpeg_bytes() -> bytes:
    """A landscape 640x480 JPEG."""
    return make_image_bytes()


@pytest.fixture()
def png_bytes() -> bytes:
    """A portrait 300x900 PNG."""
    return make_image_bytes(size=(300, 900), fmt="PNG")


@pytest.fixture()
def rgba_png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (50, 50), (10, 20, 30, 128)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def not_an_image_bytes() -> bytes:
    return b"%PDF-1.4 definitely not an image"


@pytest.fixture()
def upload_factory() -> Callable[..., ImageUpload]:
    """Build ImageUpload objects backed by real encoded images."""
    return make_upload
