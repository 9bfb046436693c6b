"""Maps violation bounding boxes onto the displayed image."""

from dataclasses import dataclass
from typing import Dict, Optional

from PIL import Image, ImageDraw

from ..models.analysis import AnalysisResult, Coordinates, ImageMetadata

SEVERITY_COLORS = {
    "High": (239, 68, 68),
    "Medium": (245, 158, 11),
    "Low": (59, 130, 246),
}
_DEFAULT_COLOR = (148, 163, 184)


@dataclass(frozen=True)
class OverlayBox:
    """Rectangle expressed in percent of the displayed image size."""
    left_pct: float
    top_pct: float
    width_pct: float
    height_pct: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "leftPct": self.left_pct,
            "topPct": self.top_pct,
            "widthPct": self.width_pct,
            "heightPct": self.height_pct,
        }


def map_to_overlay(
    coordinates: Optional[Coordinates],
    image_meta: Optional[ImageMetadata]
) -> Optional[OverlayBox]:
    """
    Convert a pixel-space box into a relative overlay rectangle.

    Args:
        coordinates: Violation box in source pixels
        image_meta: Dimensions reported with the analysis

    Returns:
        OverlayBox, or None when there is nothing to place (no box, or a
        missing/zero width or height)
    """
    if coordinates is None or image_meta is None or not image_meta.has_dimensions:
        return None

    width = image_meta.width
    height = image_meta.height
    return OverlayBox(
        left_pct=coordinates.x1 / width * 100,
        top_pct=coordinates.y1 / height * 100,
        width_pct=(coordinates.x2 - coordinates.x1) / width * 100,
        height_pct=(coordinates.y2 - coordinates.y1) / height * 100,
    )


def overlay_boxes(result: AnalysisResult) -> Dict[str, Optional[OverlayBox]]:
    """Map every violation id to its overlay rectangle (or None)."""
    return {
        violation.id: map_to_overlay(violation.coordinates, result.image)
        for violation in result.violations
    }


class ViolationSelection:
    """Exclusive selection of the highlighted violation."""

    def __init__(self, active_id: Optional[str] = None):
        self.active_id = active_id

    def toggle(self, violation_id: str) -> Optional[str]:
        """
        Select a violation, or clear the selection if it is already active.

        Returns:
            The active id after the toggle
        """
        if self.active_id == violation_id:
            self.active_id = None
        else:
            self.active_id = violation_id
        return self.active_id

    def clear(self) -> None:
        self.active_id = None

    def is_active(self, violation_id: str) -> bool:
        return self.active_id == violation_id


def draw_overlay(
    img: Image.Image,
    result: AnalysisResult,
    active_id: Optional[str] = None
) -> Image.Image:
    """
    Draw violation boxes over a photo.

    Boxes are placed through the same percentage mapping used by clients,
    so a photo rendered at any size lines up with the reported pixel space.
    The active violation is drawn thicker and filled; others are outlined.

    Args:
        img: Image the analysis was run on
        result: Analysis whose violations should be drawn
        active_id: Optional highlighted violation

    Returns:
        New RGBA image with the overlay applied
    """
    width, height = img.size
    overlay = img.convert("RGBA").copy()
    draw = ImageDraw.Draw(overlay, "RGBA")

    for index, violation in enumerate(result.violations, start=1):
        box = map_to_overlay(violation.coordinates, result.image)
        if box is None:
            continue

        # Inverted boxes (accepted by lenient validation) are drawn corner-sorted.
        x0, x1 = sorted((
            int(box.left_pct / 100 * width),
            int((box.left_pct + box.width_pct) / 100 * width),
        ))
        y0, y1 = sorted((
            int(box.top_pct / 100 * height),
            int((box.top_pct + box.height_pct) / 100 * height),
        ))

        color = SEVERITY_COLORS.get(violation.severity, _DEFAULT_COLOR)
        active = violation.id == active_id
        draw.rectangle(
            [x0, y0, x1, y1],
            outline=color + (255,),
            fill=color + (60,) if active else None,
            width=5 if active else 3,
        )

        label = str(index)
        label_top = max(0, y0 - 18)
        draw.rectangle(
            [x0, label_top, x0 + 8 + 8 * len(label), label_top + 18], fill=color + (200,)
        )
        draw.text((x0 + 4, label_top + 2), label, fill="white")

    return overlay
