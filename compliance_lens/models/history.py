"""Inspection history data models."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Any

from .analysis import AnalysisResult
from .image import NormalizedImage


@dataclass(frozen=True)
class HistoryItem:
    """
    One saved inspection.

    Attributes:
        id: Globally unique identifier, generated at save time
        timestamp: Capture time (timezone-aware, UTC)
        image: The exact image shown to the model
        result: The analysis returned for that image
    """
    id: str
    timestamp: datetime
    image: NormalizedImage
    result: AnalysisResult

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted record format."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "image": {
                "dataUrl": self.image.to_data_url(),
                "width": self.image.width,
                "height": self.image.height,
                "normalized": self.image.normalized,
            },
            "result": self.result.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryItem":
        """
        Deserialize a persisted record.

        Raises:
            KeyError, ValueError, TypeError: If the record is malformed
        """
        if not isinstance(data, dict):
            raise TypeError(f"history record must be an object, got {type(data).__name__}")
        for key in ("image", "result"):
            if not isinstance(data.get(key), dict):
                raise TypeError(f"history record field {key!r} must be an object")

        timestamp = datetime.fromisoformat(data["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        image_data = data["image"]
        image = NormalizedImage.from_data_url(
            image_data["dataUrl"],
            width=image_data.get("width"),
            height=image_data.get("height"),
            normalized=bool(image_data.get("normalized", True)),
        )

        return cls(
            id=str(data["id"]),
            timestamp=timestamp,
            image=image,
            result=AnalysisResult.from_dict(data["result"]),
        )
