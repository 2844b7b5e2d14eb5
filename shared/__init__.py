"""
Shared data structures exchanged between the analysis back end and its callers.
"""

from .models import (
    INVALID_SETTING,
    Diagnostic,
    DiagnosticKind,
    Monitorables,
    PlateauLevels,
    TimingResult,
    Waveform,
    WaveformSample,
)

__all__ = [
    "INVALID_SETTING",
    "Diagnostic",
    "DiagnosticKind",
    "Monitorables",
    "PlateauLevels",
    "TimingResult",
    "Waveform",
    "WaveformSample",
]
