"""Compliance analysis result data models."""

import math
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional


SCHEMA_VERSION = "1.0"
SEVERITIES = ("Low", "Medium", "High")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    # NaN and infinities ("NaN", "Infinity" or bare JSON NaN) count as missing.
    return number if math.isfinite(number) else None


@dataclass(frozen=True)
class Coordinates:
    """
    Axis-aligned bounding box in source-image pixel space.

    Attributes:
        x1: Left edge
        y1: Top edge
        x2: Right edge
        y2: Bottom edge
    """
    x1: float
    y1: float
    x2: float
    y2: float

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Coordinates"]:
        if not isinstance(data, dict):
            return None
        values = [_as_number(data.get(key)) for key in ("x1", "y1", "x2", "y2")]
        if any(value is None for value in values):
            return None
        return cls(*values)

    def to_dict(self) -> Dict[str, float]:
        return {"x1": self.x1, "y1": self.y1, "x2": self.x2, "y2": self.y2}


@dataclass(frozen=True)
class Violation:
    """
    A single AI-reported compliance finding.

    Attributes:
        id: Identifier, unique within one AnalysisResult
        title: Short title of the finding
        code: Code citation (e.g., "NFPA 10")
        severity: "Low" | "Medium" | "High"
        description: What is wrong and why it matters
        location: Free-text location in the scene
        coordinates: Pixel bounding box, None when the model omitted it
        confidence: Confidence score (0.0 to 1.0)
        remediation: How to fix it
        references: Short section citations
    """
    id: str
    title: str
    code: str
    severity: str  # "Low" | "Medium" | "High"
    description: str
    location: str
    coordinates: Optional[Coordinates]
    confidence: Optional[float]
    remediation: str
    references: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], fallback_id: str) -> "Violation":
        references = data.get("references")
        if not isinstance(references, list):
            references = []
        return cls(
            id=_as_text(data.get("id")) or fallback_id,
            title=_as_text(data.get("title")),
            code=_as_text(data.get("code")),
            severity=_as_text(data.get("severity")),
            description=_as_text(data.get("description")),
            location=_as_text(data.get("location")),
            coordinates=Coordinates.from_dict(data.get("coordinates")),
            confidence=_as_number(data.get("confidence")),
            remediation=_as_text(data.get("remediation")),
            references=[_as_text(ref) for ref in references],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "code": self.code,
            "severity": self.severity,
            "description": self.description,
            "location": self.location,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
            "confidence": self.confidence,
            "remediation": self.remediation,
            "references": list(self.references),
        }


@dataclass(frozen=True)
class Summary:
    """One-sentence scene description with an overall confidence."""
    text: str
    confidence: Optional[float]


@dataclass(frozen=True)
class ImageMetadata:
    """Pixel dimensions the model reports for the analyzed image."""
    width: Optional[float] = None
    height: Optional[float] = None

    @property
    def has_dimensions(self) -> bool:
        return bool(self.width) and bool(self.height) and self.width > 0 and self.height > 0


@dataclass(frozen=True)
class ChecklistItem:
    """An on-site verification item ("what to look for")."""
    item: str
    details: str


@dataclass(frozen=True)
class AnalysisResult:
    """
    Decoded compliance analysis returned by the remote model.

    Attributes:
        schema_version: Output contract version the model was asked to follow
        summary: Scene summary
        image: Reported image dimensions
        violations: Ordered findings
        what_to_look_for: Ordered on-site checklist
    """
    schema_version: str
    summary: Summary
    image: ImageMetadata
    violations: List[Violation] = field(default_factory=list)
    what_to_look_for: List[ChecklistItem] = field(default_factory=list)

    @property
    def has_violations(self) -> bool:
        return len(self.violations) > 0

    def get_violation(self, violation_id: str) -> Optional[Violation]:
        for violation in self.violations:
            if violation.id == violation_id:
                return violation
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisResult":
        """
        Build a result from the wire (camelCase) representation.

        Expects the structural checks (summary present, violations is a list)
        to have been done already; missing optional parts get empty defaults.
        """
        summary_data = data.get("summary")
        if isinstance(summary_data, dict):
            summary = Summary(
                text=_as_text(summary_data.get("text")),
                confidence=_as_number(summary_data.get("confidence")),
            )
        else:
            summary = Summary(text=_as_text(summary_data), confidence=None)

        image_data = data.get("image") if isinstance(data.get("image"), dict) else {}
        image = ImageMetadata(
            width=_as_number(image_data.get("width")),
            height=_as_number(image_data.get("height")),
        )

        violations = []
        for index, item in enumerate(data.get("violations") or [], start=1):
            if isinstance(item, dict):
                violations.append(Violation.from_dict(item, fallback_id=f"v{index}"))

        checklist = []
        for item in data.get("whatToLookFor") or []:
            if isinstance(item, dict):
                checklist.append(ChecklistItem(
                    item=_as_text(item.get("item")),
                    details=_as_text(item.get("details")),
                ))

        return cls(
            schema_version=_as_text(data.get("schemaVersion")) or SCHEMA_VERSION,
            summary=summary,
            image=image,
            violations=violations,
            what_to_look_for=checklist,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "summary": {"text": self.summary.text, "confidence": self.summary.confidence},
            "image": {"width": self.image.width, "height": self.image.height},
            "violations": [violation.to_dict() for violation in self.violations],
            "whatToLookFor": [
                {"item": entry.item, "details": entry.details}
                for entry in self.what_to_look_for
            ],
        }


def _confidence_ok(value: Optional[float]) -> bool:
    return value is not None and 0.0 <= value <= 1.0


def validate_analysis_result(result: AnalysisResult) -> List[str]:
    """
    List semantic problems in a decoded result.

    Missing image dimensions are not reported: such a result is still
    displayable, only without overlay boxes.

    Args:
        result: Decoded AnalysisResult

    Returns:
        List of human-readable issues, empty when the result is valid
    """
    issues: List[str] = []

    if not _confidence_ok(result.summary.confidence):
        issues.append(f"summary confidence {result.summary.confidence!r} is not within [0, 1]")

    seen_ids = set()
    for violation in result.violations:
        label = f"violation {violation.id!r}"

        if violation.id in seen_ids:
            issues.append(f"{label} has a duplicate id")
        seen_ids.add(violation.id)

        if violation.severity not in SEVERITIES:
            issues.append(f"{label} has invalid severity {violation.severity!r}")

        if not _confidence_ok(violation.confidence):
            issues.append(f"{label} confidence {violation.confidence!r} is not within [0, 1]")

        box = violation.coordinates
        if box is None:
            issues.append(f"{label} is missing coordinates")
            continue

        if box.x1 > box.x2 or box.y1 > box.y2:
            issues.append(f"{label} has inverted coordinates")
        if min(box.x1, box.y1, box.x2, box.y2) < 0:
            issues.append(f"{label} has negative coordinates")

        if result.image.has_dimensions:
            if box.x2 > result.image.width or box.y2 > result.image.height:
                issues.append(
                    f"{label} lies outside the {result.image.width:g}x{result.image.height:g} image"
                )

    return issues
