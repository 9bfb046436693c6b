"""Image normalization plugin: bounded-size, bounded-quality re-encoding with Pillow."""

import io
import logging
from pathlib import Path
from typing import BinaryIO, Optional, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from ..models.image import NormalizedImage, detect_mime_type
from ..utils.errors import ImageCaptureError

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, bytearray, str, Path, BinaryIO]

_FORMAT_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "PNG": "image/png",
}


def scaled_dimensions(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """
    Compute output dimensions that fit within max_dimension.

    scale = min(1, max_dimension / max(width, height)); both sides are
    multiplied by scale and rounded half-up. Images are never upscaled.

    Args:
        width: Source width in pixels
        height: Source height in pixels
        max_dimension: Maximum allowed length of the longer edge

    Returns:
        Tuple of (new_width, new_height)
    """
    longer = max(width, height)
    if longer <= 0:
        return width, height

    scale = min(1.0, max_dimension / longer)
    if scale >= 1.0:
        return width, height

    new_width = min(max_dimension, max(1, int(width * scale + 0.5)))
    new_height = min(max_dimension, max(1, int(height * scale + 0.5)))
    return new_width, new_height


class ImageNormalizer:
    """
    Re-encodes captured photos into a size-bounded upload payload.

    Decode and encode faults never fail the capture: the original payload
    is returned unmodified instead. Only an unreadable source is an error.
    """

    def __init__(
        self,
        max_dimension: int = 1280,
        quality: float = 0.8,
        output_format: str = "JPEG"
    ):
        """
        Initialize image normalizer.

        Args:
            max_dimension: Maximum length of the longer edge in pixels
            quality: Lossy quality factor between 0.0 and 1.0
            output_format: Pillow format name used for re-encoding
        """
        if max_dimension <= 0:
            raise ValueError("max_dimension must be positive")
        if not 0.0 < quality <= 1.0:
            raise ValueError("quality must be within (0, 1]")

        self.max_dimension = max_dimension
        self.quality = quality
        self.output_format = output_format.upper()
        self.mime_type = _FORMAT_MIME_TYPES.get(self.output_format, "image/jpeg")

        logger.info(
            f"Initialized ImageNormalizer: max_dimension={max_dimension}, "
            f"quality={quality}, format={self.output_format}"
        )

    def normalize(self, source: ImageSource) -> NormalizedImage:
        """
        Normalize a capture for upload.

        Args:
            source: Raw bytes, a filesystem path, a binary file-like object,
                or a data URL string

        Returns:
            NormalizedImage (normalized=False when the fallback was used)

        Raises:
            ImageCaptureError: If the source bytes cannot be read at all
        """
        raw = self._read_source(source)
        logger.debug(f"Read capture: {len(raw)} bytes")

        try:
            return self._reencode(raw)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            logger.warning(f"Image normalization failed, using original payload: {e}")
            return self._fallback(raw)

    def _read_source(self, source: ImageSource) -> bytes:
        """Load the capture bytes; any failure here is fatal to the scan."""
        if isinstance(source, (bytes, bytearray)):
            raw = bytes(source)
            label = "bytes"
        elif isinstance(source, str) and source.startswith("data:"):
            label = "data URL"
            try:
                raw = NormalizedImage.from_data_url(source).data
            except ValueError as e:
                raise ImageCaptureError.unreadable(label, e)
        elif isinstance(source, (str, Path)):
            label = str(source)
            try:
                raw = Path(source).read_bytes()
            except OSError as e:
                raise ImageCaptureError.unreadable(label, e)
        elif hasattr(source, "read"):
            label = getattr(source, "name", None) or "stream"
            try:
                raw = source.read()
            except (OSError, ValueError) as e:
                raise ImageCaptureError.unreadable(str(label), e)
            if not isinstance(raw, (bytes, bytearray)):
                raise ImageCaptureError.unreadable(str(label), TypeError("stream is not binary"))
            raw = bytes(raw)
        else:
            raise ImageCaptureError.unreadable(type(source).__name__, TypeError("unsupported source type"))

        if not raw:
            raise ImageCaptureError.unreadable(str(label), ValueError("empty payload"))
        return raw

    def _reencode(self, raw: bytes) -> NormalizedImage:
        with Image.open(io.BytesIO(raw)) as opened:
            opened.load()
            image = ImageOps.exif_transpose(opened)

        width, height = image.size
        new_width, new_height = scaled_dimensions(width, height, self.max_dimension)

        if (new_width, new_height) != (width, height):
            image = image.resize((new_width, new_height), Image.LANCZOS)
            logger.debug(f"Resized capture {width}x{height} -> {new_width}x{new_height}")

        image = self._flatten(image)

        buffer = io.BytesIO()
        image.save(buffer, format=self.output_format, quality=int(round(self.quality * 100)))
        encoded = buffer.getvalue()

        logger.info(
            f"Normalized capture: {width}x{height} -> {new_width}x{new_height}, "
            f"{len(raw)} -> {len(encoded)} bytes"
        )
        return NormalizedImage(
            data=encoded,
            mime_type=self.mime_type,
            width=new_width,
            height=new_height,
            normalized=True,
        )

    def _flatten(self, image: Image.Image) -> Image.Image:
        """Render onto an opaque RGB canvas; lossy formats carry no alpha."""
        if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
            rgba = image.convert("RGBA")
            canvas = Image.new("RGB", rgba.size, (255, 255, 255))
            canvas.paste(rgba, mask=rgba.split()[-1])
            return canvas
        if image.mode != "RGB":
            return image.convert("RGB")
        return image

    def _fallback(self, raw: bytes) -> NormalizedImage:
        width, height = self._read_size(raw)
        return NormalizedImage(
            data=raw,
            mime_type=detect_mime_type(raw),
            width=width,
            height=height,
            normalized=False,
        )

    @staticmethod
    def _read_size(raw: bytes) -> Tuple[Optional[int], Optional[int]]:
        try:
            with Image.open(io.BytesIO(raw)) as img:
                return img.size
        except (UnidentifiedImageError, OSError, ValueError):
            return None, None
