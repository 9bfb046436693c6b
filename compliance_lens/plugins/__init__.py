"""Semantic Kernel plugins for image preparation and compliance analysis."""

from .image_normalizer import ImageNormalizer
from .compliance_analyzer import ComplianceAnalyzerPlugin

__all__ = [
    'ImageNormalizer',
    'ComplianceAnalyzerPlugin'
]
