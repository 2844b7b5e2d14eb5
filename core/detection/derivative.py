import numpy as np
from typing import Dict, List, Mapping

from .base import DetectorParameter, register_detector


@register_detector
class CenteredDerivativeEdgeDetector:
    name = "centered_derivative"
    display_name = "Centered Derivative (Tick Mark)"

    def __init__(self):
        self._factor: float = 5.0
        self._start: int = 10
        self._stop: int = 40

        self._params = {
            "noise_factor": DetectorParameter(
                name="noise_factor",
                default=5.0,
                min=0.0,
                help="Edge threshold and post-edge floor multiplier (x * baseline rms)"
            ),
            "validation_start": DetectorParameter(
                name="validation_start",
                default=10,
                min=1,
                help="First bin offset after an edge that must stay high"
            ),
            "validation_stop": DetectorParameter(
                name="validation_stop",
                default=40,
                min=2,
                help="Exclusive end of the post-edge window (bin offset)"
            ),
        }

    @property
    def parameters(self) -> Mapping[str, DetectorParameter]:
        return dict(self._params)

    def configure(self, **params) -> None:
        for name, value in params.items():
            spec = self._params.get(name)
            if spec is None:
                raise ValueError(f"Unknown parameter {name!r} for {self.name}")
            if spec.min is not None and value < spec.min:
                raise ValueError(f"{name} must be >= {spec.min}, got {value}")
            if spec.max is not None and value > spec.max:
                raise ValueError(f"{name} must be <= {spec.max}, got {value}")
        start = int(params.get("validation_start", self._start))
        stop = int(params.get("validation_stop", self._stop))
        if stop <= start:
            raise ValueError("validation_stop must be greater than validation_start")
        if "noise_factor" in params:
            self._factor = float(params["noise_factor"])
        self._start = start
        self._stop = stop

    def find_edges(self, values: np.ndarray, populated: np.ndarray, noise: float) -> Dict[int, float]:
        data = np.asarray(values, dtype=np.float64)
        mask = np.asarray(populated, dtype=bool)
        if data.size < 3:
            return {}

        # d[i] = x[i+1] - x[i-1] for interior bins whose neighbours both carry entries
        derivative = data[2:] - data[:-2]
        usable = mask[2:] & mask[:-2]
        hits = np.nonzero(usable & (derivative > self._factor * noise))[0]
        return {int(i) + 1: float(derivative[i]) for i in hits}

    def reject_edges(
        self,
        edges: Mapping[int, float],
        values: np.ndarray,
        populated: np.ndarray,
        baseline: float,
        noise: float,
    ) -> List[int]:
        data = np.asarray(values, dtype=np.float64)
        mask = np.asarray(populated, dtype=bool)
        floor = baseline + self._factor * noise
        rejected: List[int] = []
        for edge in sorted(edges):
            # Bins past the end of the waveform count as empty
            lo = min(edge + self._start, data.size)
            hi = min(edge + self._stop, data.size)
            window = data[lo:hi][mask[lo:hi]]
            if np.any(window < floor):
                rejected.append(edge)
        return rejected
