"""Image utilities: resize policy, format sniffing and export naming."""

import math
from fractions import Fraction
from pathlib import PurePath
from typing import Optional, Tuple

from .exceptions import InvalidDimensionsError
from .models import ImageFormat

# Input formats the codec accepts, keyed by the name Pillow reports.
SUPPORTED_INPUT_FORMATS = {
    "JPEG": "jpeg",
    "PNG": "png",
    "WEBP": "webp",
    "GIF": "gif",
    "BMP": "bmp",
    "TIFF": "tiff",
    "MPO": "jpeg",
}

_SIGNATURES = (
    (b"\xff\xd8\xff", "jpeg"),
    (b"\x89PNG\r\n\x1a\n", "png"),
    (b"GIF87a", "gif"),
    (b"GIF89a", "gif"),
    (b"BM", "bmp"),
    (b"II*\x00", "tiff"),
    (b"MM\x00*", "tiff"),
)


def compute_target_size(
    native_width: int,
    native_height: int,
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
    maintain_aspect_ratio: bool = True,
) -> Tuple[int, int]:
    """
    Compute output dimensions that fit within the given bounds.

    Images are never upscaled. A bound of ``None`` leaves that axis
    unconstrained. With ``maintain_aspect_ratio`` the native size is scaled
    by ``min(max_width / width, max_height / height)`` and floored to whole
    pixels (at least 1px per axis); otherwise each axis is clamped
    independently.

    Args:
        native_width: Width of the decoded image
        native_height: Height of the decoded image
        max_width: Optional width bound
        max_height: Optional height bound
        maintain_aspect_ratio: Scale both axes by the same factor

    Returns:
        ``(width, height)`` tuple

    Raises:
        InvalidDimensionsError: If a native dimension or a bound is not positive
    """
    if native_width <= 0 or native_height <= 0:
        raise InvalidDimensionsError(
            f"Invalid native dimensions {native_width}x{native_height}"
        )
    for name, bound in (("max_width", max_width), ("max_height", max_height)):
        if bound is not None and bound <= 0:
            raise InvalidDimensionsError(f"{name} must be positive, got {bound}")

    if not maintain_aspect_ratio:
        width = native_width if max_width is None else min(native_width, max_width)
        height = native_height if max_height is None else min(native_height, max_height)
        return width, height

    # Exact rationals so that e.g. 3000 * (1920 / 3000) floors to 1920, not 1919.
    scale = Fraction(1)
    if max_width is not None:
        scale = min(scale, Fraction(max_width, native_width))
    if max_height is not None:
        scale = min(scale, Fraction(max_height, native_height))

    if scale >= 1:
        return native_width, native_height

    width = max(1, math.floor(native_width * scale))
    height = max(1, math.floor(native_height * scale))
    return width, height


def sniff_image_format(data: bytes) -> Optional[str]:
    """
    Detect the raster format of ``data`` from its magic bytes.

    Returns:
        One of the values of ``SUPPORTED_INPUT_FORMATS`` or ``None``
    """
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    for signature, name in _SIGNATURES:
        if data.startswith(signature):
            return name
    return None


def mime_type_to_format(mime_type: Optional[str]) -> Optional[str]:
    """Map a declared MIME type such as ``image/jpg`` to a format name."""
    if not mime_type or not mime_type.lower().startswith("image/"):
        return None
    subtype = mime_type.lower().split("/", 1)[1].split(";", 1)[0].strip()
    aliases = {"jpg": "jpeg", "pjpeg": "jpeg", "x-png": "png", "x-ms-bmp": "bmp", "tif": "tiff"}
    return aliases.get(subtype, subtype)


def export_filename(
    original_filename: str, image_format: ImageFormat, index: Optional[int] = None
) -> str:
    """
    Build the download name for an optimized image.

    ``holiday.PNG`` exported as JPEG becomes ``optimized_holiday.jpg``; with
    ``index=3`` it becomes ``optimized_holiday_3.jpg``.
    """
    stem = PurePath(original_filename).stem or "image"
    suffix = f"_{index}" if index is not None else ""
    return f"optimized_{stem}{suffix}.{image_format.extension}"


def format_file_size(size_bytes: int) -> str:
    """
    Human readable byte size with one decimal, e.g. ``1.5 KB``.
    """
    if size_bytes <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    exponent = 0
    while size_bytes >= 1024 ** (exponent + 1) and exponent < len(units) - 1:
        exponent += 1
    value = round(size_bytes / 1024**exponent, 1)
    if value == int(value):
        return f"{int(value)} {units[exponent]}"
    return f"{value} {units[exponent]}"
