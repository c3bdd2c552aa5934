"""In-memory RGBA raster plus the Pillow decode/encode boundary."""

from __future__ import annotations

import base64
import io
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Union
from urllib.parse import unquote, urlparse

import numpy as np
from PIL import Image, UnidentifiedImageError

from .config import DimensionError, PixelSnapError


class RasterError(PixelSnapError):
    """Raised for malformed pixel buffers or undecodable image sources."""


ImageSource = Union[str, Path, bytes, bytearray, BinaryIO]


@dataclass(frozen=True)
class RasterImage:
    """Row-major RGBA buffer, 4 bytes per pixel."""

    width: int
    height: int
    data: bytes

    def __post_init__(self) -> None:
        for name in ("width", "height"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 0:
                raise DimensionError(f"Image {name} must be a non-negative integer, got {value!r}")
            object.__setattr__(self, name, int(value))
        data = bytes(self.data)
        expected = self.width * self.height * 4
        if len(data) != expected:
            raise RasterError(
                f"RGBA buffer has {len(data)} bytes, expected {expected} "
                f"for {self.width}x{self.height}"
            )
        object.__setattr__(self, "data", data)

    @property
    def size(self):
        return self.width, self.height

    def to_array(self) -> np.ndarray:
        """Return a writable ``(height, width, 4)`` uint8 copy of the pixels."""
        flat = np.frombuffer(self.data, dtype=np.uint8)
        return flat.reshape(self.height, self.width, 4).copy()

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "RasterImage":
        """Build from an ``(H, W, 4)`` or ``(H, W, 3)`` array; RGB gets opaque alpha."""
        arr = np.asarray(pixels)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise RasterError(f"Expected an (H, W, 3) or (H, W, 4) array, got shape {arr.shape}")
        if arr.dtype != np.uint8:
            if arr.size and (arr.min() < 0 or arr.max() > 255):
                raise RasterError("Pixel values must lie in 0..255")
            arr = arr.astype(np.uint8)
        if arr.shape[2] == 3:
            alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
            arr = np.concatenate([arr, alpha], axis=2)
        height, width = arr.shape[:2]
        return cls(width, height, np.ascontiguousarray(arr).tobytes())

    @classmethod
    def from_pil(cls, img: Image.Image) -> "RasterImage":
        rgba = img if img.mode == "RGBA" else img.convert("RGBA")
        return cls(rgba.width, rgba.height, rgba.tobytes())

    def to_pil(self) -> Image.Image:
        return Image.frombytes("RGBA", (self.width, self.height), self.data)


def as_raster(image: Union[RasterImage, np.ndarray, Image.Image]) -> RasterImage:
    """Coerce the supported in-memory image types to a ``RasterImage``."""
    if isinstance(image, RasterImage):
        return image
    if isinstance(image, Image.Image):
        return RasterImage.from_pil(image)
    if isinstance(image, np.ndarray):
        return RasterImage.from_array(image)
    raise RasterError(f"Unsupported image type: {type(image).__name__}")


def _read_source(source: ImageSource) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if hasattr(source, "read"):
        return source.read()
    if isinstance(source, Path):
        return source.read_bytes()

    text = str(source)
    if text.startswith("data:"):
        header, sep, payload = text.partition(",")
        if not sep:
            raise RasterError("Malformed data URL: missing ',' separator")
        if header.endswith(";base64"):
            try:
                return base64.b64decode(payload, validate=True)
            except ValueError as exc:
                raise RasterError(f"Malformed base64 payload in data URL: {exc}") from exc
        return unquote(payload).encode("latin-1")

    parsed = urlparse(text)
    if parsed.scheme in ("http", "https"):
        raise PixelSnapError(f"Remote image references are not supported: {text}")
    if parsed.scheme == "file":
        return Path(unquote(parsed.path)).read_bytes()
    return Path(text).read_bytes()


def load_raster(source: ImageSource) -> RasterImage:
    """Decode a path, ``data:``/``file://`` URL, bytes, or binary stream to RGBA."""
    payload = _read_source(source)
    try:
        with Image.open(io.BytesIO(payload)) as img:
            img.load()
            return RasterImage.from_pil(img)
    except (UnidentifiedImageError, OSError) as exc:
        raise RasterError(f"Could not decode image: {exc}") from exc


def encode_png(raster: RasterImage) -> bytes:
    buf = io.BytesIO()
    raster.to_pil().save(buf, format="PNG")
    return buf.getvalue()


def to_data_url(png_bytes: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")
