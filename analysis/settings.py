from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
import threading
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimingAnalysisSettings:
    """Tunable limits of the tick-mark analysis."""

    min_bins: int = 100             # shortest waveform accepted as a real timing scan
    min_range: float = 50.0         # ADC counts, max - min over populated bins
    min_separation: float = 50.0    # ADC counts, tick median - baseline median
    noise_factor: float = 5.0       # k * baseline rms for edges and post-edge floor
    validation_start: int = 10      # first bin offset checked after an edge
    validation_stop: int = 40       # exclusive end of the post-edge window
    fine_steps: int = 24            # PLL fine steps per coarse step
    edge_detector: str = "centered_derivative"

    def validate(self) -> None:
        if self.min_bins < 3:
            raise ValueError("min_bins must be at least 3")
        for name, value in (
            ("min_range", self.min_range),
            ("min_separation", self.min_separation),
            ("noise_factor", self.noise_factor),
        ):
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be a finite, non-negative number")
        if self.validation_start < 1:
            raise ValueError("validation_start must be positive")
        if self.validation_stop <= self.validation_start:
            raise ValueError("validation_stop must be greater than validation_start")
        if self.fine_steps <= 0:
            raise ValueError("fine_steps must be positive")

        from core.detection import DETECTOR_REGISTRY

        if self.edge_detector not in DETECTOR_REGISTRY:
            available = ", ".join(sorted(DETECTOR_REGISTRY))
            raise ValueError(f"Unknown edge detector {self.edge_detector!r}; available: {available}")


class AnalysisSettingsStore:
    """
    Thread-safe settings container that allows multiple producers/consumers to
    observe changes (e.g., a calibration run tuning limits between scans).
    """

    def __init__(self, initial: Optional[TimingAnalysisSettings] = None) -> None:
        settings = initial or TimingAnalysisSettings()
        settings.validate()
        self._settings = settings
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Callable[[TimingAnalysisSettings], None]] = {}
        self._next_token = 0

    def get(self) -> TimingAnalysisSettings:
        with self._lock:
            return self._settings

    def update(self, **kwargs) -> TimingAnalysisSettings:
        with self._lock:
            new_settings = replace(self._settings, **kwargs)
            new_settings.validate()
            self._settings = new_settings
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            try:
                callback(new_settings)
            except Exception as exc:
                # Best-effort notifications; a bad subscriber should not break updates.
                logger.debug("Analysis settings subscriber callback failed: %s", exc)
                continue
        return new_settings

    def subscribe(self, callback: Callable[[TimingAnalysisSettings], None], *, replay: bool = True) -> Callable[[], None]:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
            snapshot = self._settings
        if replay:
            callback(snapshot)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe


__all__ = ["TimingAnalysisSettings", "AnalysisSettingsStore"]
