"""Captured image data models."""

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Optional, Tuple


_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w-]+=[\w.-]+)*;base64,", re.IGNORECASE)


def split_data_url(value: str) -> Tuple[Optional[str], str]:
    """
    Split a data URL into its mime type and base64 payload.

    A string without a data-URL header is returned unchanged as the payload.

    Args:
        value: Data URL or bare base64 string

    Returns:
        Tuple of (mime type or None, base64 payload)
    """
    match = _DATA_URL_PATTERN.match(value)
    if not match:
        return None, value.strip()
    return match.group("mime"), value[match.end():].strip()


def detect_mime_type(data: bytes) -> str:
    """
    Detect an image mime type from magic bytes.

    Args:
        data: Raw image bytes

    Returns:
        Mime type string, "image/jpeg" when unknown
    """
    if data.startswith(b'\xff\xd8\xff'):
        return "image/jpeg"
    elif data.startswith(b'\x89PNG\r\n\x1a\n'):
        return "image/png"
    elif data.startswith(b'GIF87a') or data.startswith(b'GIF89a'):
        return "image/gif"
    elif data.startswith(b'RIFF') and b'WEBP' in data[:12]:
        return "image/webp"
    elif data.startswith(b'BM'):
        return "image/bmp"
    elif data.startswith(b'II*\x00') or data.startswith(b'MM\x00*'):
        return "image/tiff"
    return "image/jpeg"


@dataclass(frozen=True)
class NormalizedImage:
    """
    An encoded image payload ready for upload and storage.

    Attributes:
        data: Encoded image bytes
        mime_type: Format tag (e.g., "image/jpeg")
        width: Pixel width, None if the payload could not be decoded
        height: Pixel height, None if the payload could not be decoded
        normalized: False when normalization fell back to the original payload
    """
    data: bytes
    mime_type: str
    width: Optional[int] = None
    height: Optional[int] = None
    normalized: bool = True

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    @classmethod
    def from_data_url(
        cls,
        value: str,
        width: Optional[int] = None,
        height: Optional[int] = None,
        normalized: bool = True
    ) -> "NormalizedImage":
        """
        Rebuild an image from its data-URL form.

        Raises:
            ValueError: If the payload is not valid base64
        """
        mime_type, payload = split_data_url(value)
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 image payload: {e}") from e
        return cls(
            data=data,
            mime_type=mime_type or detect_mime_type(data),
            width=width,
            height=height,
            normalized=normalized,
        )


@dataclass(frozen=True)
class AnalysisRequest:
    """
    A normalized image plus the fixed instruction pair sent to the model.

    Attributes:
        image: Image to analyze
        system_prompt: Behaviour contract
        user_prompt: Output schema contract and standing instructions
    """
    image: NormalizedImage
    system_prompt: str
    user_prompt: str
