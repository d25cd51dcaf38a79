"""WebP transcoding of uploaded images.

Uploads only depend on the ``ImageTranscoder`` protocol; ``PillowTranscoder``
is the default implementation.
"""

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Tuple

from PIL import Image, ImageOps

WEBP_QUALITY = 75


@dataclass
class TranscodedImage:
    """Result of transcoding one source image.

    Attributes:
        image: WebP bytes of the (possibly downscaled) original
        image_size: "WIDTHxHEIGHT" of the original
        preview: WebP bytes of the preview
        preview_size: "WIDTHxHEIGHT" of the preview
    """

    image: bytes
    image_size: str
    preview: bytes
    preview_size: str


class ImageTranscoder(Protocol):
    def transcode(self, source: Path, size_max: int, preview_height: int) -> TranscodedImage: ...


def format_size(width: int, height: int) -> str:
    return f"{width}x{height}"


def fit_within(width: int, height: int, size_max: int) -> Tuple[int, int]:
    """Scale so the longest side is at most ``size_max``, keeping aspect ratio."""
    longest = max(width, height)
    if longest <= size_max:
        return width, height
    scale = size_max / longest
    return max(1, round(width * scale)), max(1, round(height * scale))


def scale_to_height(width: int, height: int, target_height: int) -> Tuple[int, int]:
    return max(1, round(width * target_height / height)), target_height


def read_image_size(data: bytes) -> str:
    """Return "WIDTHxHEIGHT" of encoded image bytes, honouring EXIF orientation."""
    with Image.open(io.BytesIO(data)) as img:
        img = ImageOps.exif_transpose(img)
        return format_size(*img.size)


class PillowTranscoder:
    """Transcode images to WebP with Pillow."""

    def _encode(self, img: Image.Image) -> bytes:
        buffer = io.BytesIO()
        img.save(buffer, format="WEBP", quality=WEBP_QUALITY)
        return buffer.getvalue()

    def transcode(self, source: Path, size_max: int, preview_height: int) -> TranscodedImage:
        with Image.open(source) as opened:
            img = ImageOps.exif_transpose(opened)
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA" if "A" in img.getbands() else "RGB")

            size = fit_within(img.width, img.height, size_max)
            if size != img.size:
                img = img.resize(size, Image.LANCZOS)

            preview = img.resize(scale_to_height(img.width, img.height, preview_height), Image.LANCZOS)

            return TranscodedImage(
                image=self._encode(img),
                image_size=format_size(*img.size),
                preview=self._encode(preview),
                preview_size=format_size(*preview.size),
            )
