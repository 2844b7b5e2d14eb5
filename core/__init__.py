"""Core detection utilities."""

from .detection import (
    DETECTOR_REGISTRY,
    CenteredDerivativeEdgeDetector,
    DetectorParameter,
    EdgeDetector,
    create_detector,
    register_detector,
)
from shared.models import Diagnostic, DiagnosticKind, Monitorables, TimingResult, Waveform, WaveformSample

__all__ = [
    "Waveform",
    "WaveformSample",
    "Monitorables",
    "Diagnostic",
    "DiagnosticKind",
    "TimingResult",
    "EdgeDetector",
    "DetectorParameter",
    "DETECTOR_REGISTRY",
    "register_detector",
    "create_detector",
    "CenteredDerivativeEdgeDetector",
]
