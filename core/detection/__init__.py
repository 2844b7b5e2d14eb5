from .base import (
    DETECTOR_REGISTRY,
    DetectorParameter,
    EdgeDetector,
    create_detector,
    register_detector,
    split_edges,
)
from .derivative import CenteredDerivativeEdgeDetector

__all__ = [
    "EdgeDetector",
    "DetectorParameter",
    "DETECTOR_REGISTRY",
    "register_detector",
    "create_detector",
    "split_edges",
    "CenteredDerivativeEdgeDetector",
]
