"""Shared fixtures for the Compliance Lens tests."""

import copy
import io
import json
from typing import Any, Dict, List, Optional

import pytest
from PIL import Image

from compliance_lens.models.analysis import AnalysisResult
from compliance_lens.models.image import NormalizedImage


SAMPLE_ANALYSIS: Dict[str, Any] = {
    "schemaVersion": "1.0",
    "summary": {"text": "Corridor with a fire extinguisher resting on the floor.", "confidence": 0.86},
    "image": {"width": 1280, "height": 960},
    "violations": [
        {
            "id": "v1",
            "title": "Unsecured Fire Extinguisher",
            "code": "NFPA 10",
            "severity": "High",
            "description": "Extinguisher is not in a bracket or cabinet (Section 6.1.3.8.1).",
            "location": "Floor, left of the door",
            "coordinates": {"x1": 100, "y1": 500, "x2": 260, "y2": 900},
            "confidence": 0.91,
            "remediation": "Mount the extinguisher in an approved bracket or cabinet.",
            "references": ["NFPA 10 6.1.3.8.1"],
        },
        {
            "id": "v2",
            "title": "Fire Door Label",
            "code": "NFPA 80",
            "severity": "Low",
            "description": "A fire rating label is visible on the door frame.",
            "location": "Door frame hinge side",
            "coordinates": {"x1": 640, "y1": 300, "x2": 700, "y2": 360},
            "confidence": 0.7,
            "remediation": "Verify the rating against the Life Safety plans.",
            "references": [],
        },
    ],
    "whatToLookFor": [
        {"item": "Proper Gaps & Clearances", "details": "Check door clearances against NFPA 80."},
        {"item": "Measure height to handle", "details": "ADA reach is often limited to 48 in."},
    ],
}


def encode_image(
    width: int,
    height: int,
    fmt: str = "JPEG",
    mode: str = "RGB",
    color: Any = (200, 30, 30)
) -> bytes:
    """Encode a solid-color test image."""
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeRuntime:
    """Stand-in for a boto3 bedrock-runtime client."""

    def __init__(self, text: Optional[str] = None, error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def converse(self, **params):
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        return {
            "output": {"message": {"role": "assistant", "content": [{"text": self.text}]}},
            "stopReason": "end_turn",
            "usage": {"inputTokens": 1200, "outputTokens": 400},
        }


@pytest.fixture
def analysis_payload() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_ANALYSIS)


@pytest.fixture
def analysis_json(analysis_payload) -> str:
    return json.dumps(analysis_payload)


@pytest.fixture
def analysis_result(analysis_payload) -> AnalysisResult:
    return AnalysisResult.from_dict(analysis_payload)


@pytest.fixture
def make_image_bytes():
    return encode_image


@pytest.fixture
def normalized_image() -> NormalizedImage:
    return NormalizedImage(
        data=encode_image(1280, 960),
        mime_type="image/jpeg",
        width=1280,
        height=960,
        normalized=True,
    )


@pytest.fixture
def fake_runtime_factory():
    return FakeRuntime


@pytest.fixture
def bedrock_api_key(monkeypatch):
    """Make BedrockClient see a bearer token so no AWS lookup happens."""
    monkeypatch.setenv("AWS_BEARER_TOKEN_BEDROCK", "test-token")
    return "test-token"
