"""Loading scan images and converting them to the encodings providers need."""

from __future__ import annotations

import base64
import binascii
import io
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .errors import InvalidInput

IMAGE_EXTENSIONS = {
    ".jpg",
    ".jpeg",
    ".png",
    ".webp",
    ".bmp",
    ".tiff",
    ".tif",
    ".gif",
}

DATA_URI_PREFIX = "data:image/jpeg;base64,"


def is_image_file(path: Path, *, extensions: Iterable[str] | None = None) -> bool:
    """Return True if the given path has a supported image extension."""
    exts = {ext.lower() for ext in (extensions or IMAGE_EXTENSIONS)}
    return path.suffix.lower() in exts


def normalize_data_uri(image_base64: str) -> str:
    """Return ``image_base64`` as a data URI, assuming JPEG for raw base64."""
    cleaned = image_base64.strip()
    if cleaned.startswith("data:"):
        return cleaned
    return f"{DATA_URI_PREFIX}{cleaned}"


def decode_data_uri(source: str) -> tuple[bytes, str]:
    """Decode a data URI (or raw base64 string) into ``(bytes, mime_type)``."""
    cleaned = source.strip()
    mime = "image/jpeg"
    if cleaned.startswith("data:"):
        try:
            header, cleaned = cleaned.split(",", 1)
        except ValueError as exc:
            raise InvalidInput("Malformed data URI: missing payload separator.") from exc
        mime = header.split(";", 1)[0].replace("data:", "") or "application/octet-stream"
    try:
        return base64.b64decode(cleaned, validate=True), mime
    except (binascii.Error, ValueError) as exc:
        raise InvalidInput("Image data is not valid base64.") from exc


def encode_jpeg(image: Image.Image, *, quality: int = 90) -> bytes:
    """Re-encode an image as JPEG bytes."""
    buffer = io.BytesIO()
    converted = image.convert("RGB")
    converted.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


@dataclass(slots=True)
class ScanImage:
    """An uploaded or captured scan image held in memory."""

    data: bytes
    mime_type: str = "image/jpeg"
    source: str = "upload"
    name: str | None = None
    _decoded: Image.Image | None = field(default=None, repr=False, compare=False)

    @classmethod
    def from_path(cls, path: Path) -> ScanImage:
        path = path.expanduser()
        if not path.is_file():
            raise InvalidInput(f"Image file not found: {path}")
        if not is_image_file(path):
            raise InvalidInput(f"Unsupported image type: {path.suffix or path.name}")
        mime = Image.MIME.get(_format_for_suffix(path.suffix), "application/octet-stream")
        return cls(data=path.read_bytes(), mime_type=mime, source="upload", name=path.name)

    @classmethod
    def from_data_uri(cls, source: str, *, name: str | None = None) -> ScanImage:
        data, mime = decode_data_uri(source)
        if not data:
            raise InvalidInput()
        return cls(data=data, mime_type=mime, source="upload", name=name)

    @classmethod
    def from_pil(
        cls, image: Image.Image, *, source: str = "camera", name: str | None = None
    ) -> ScanImage:
        """Wrap a captured frame, re-encoding it as JPEG."""
        return cls(
            data=encode_jpeg(image, quality=90), mime_type="image/jpeg", source=source, name=name
        )

    def open(self) -> Image.Image:
        """Decode the image, caching the decoded copy."""
        if self._decoded is None:
            if not self.data:
                raise InvalidInput()
            try:
                with Image.open(io.BytesIO(self.data)) as img:
                    img.load()
                    self._decoded = img.copy()
            except (UnidentifiedImageError, OSError) as exc:
                raise InvalidInput(f"Could not decode image data: {exc}") from exc
        return self._decoded

    def to_data_uri(self) -> str:
        """Return the image as a JPEG data URI, the format remote providers expect."""
        if self.mime_type == "image/jpeg" and self.data:
            payload = self.data
        else:
            payload = encode_jpeg(self.open(), quality=90)
        encoded = base64.b64encode(payload).decode("ascii")
        return f"{DATA_URI_PREFIX}{encoded}"


def _format_for_suffix(suffix: str) -> str:
    extension = suffix.lower()
    return Image.registered_extensions().get(extension, "")
