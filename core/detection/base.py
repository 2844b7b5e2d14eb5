from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Protocol, Tuple, Type

import numpy as np


@dataclass
class DetectorParameter:
    name: str
    default: float | int | bool
    min: float | None = None
    max: float | None = None
    help: str = ""


class EdgeDetector(Protocol):
    name: str
    display_name: str

    @property
    def parameters(self) -> Mapping[str, DetectorParameter]:
        ...

    def configure(self, **params) -> None:
        ...

    def find_edges(self, values: np.ndarray, populated: np.ndarray, noise: float) -> Dict[int, float]:
        """Return candidate rising edges as ``{bin: strength}`` in ascending bin order."""
        ...

    def reject_edges(
        self,
        edges: Mapping[int, float],
        values: np.ndarray,
        populated: np.ndarray,
        baseline: float,
        noise: float,
    ) -> List[int]:
        """Return the bins of edges not followed by a sustained high level."""
        ...


DETECTOR_REGISTRY: Dict[str, Type[EdgeDetector]] = {}


def register_detector(cls: Type[EdgeDetector]) -> Type[EdgeDetector]:
    if not hasattr(cls, "name"):
        raise ValueError(f"Detector {cls} must have a 'name' attribute")
    DETECTOR_REGISTRY[cls.name] = cls
    return cls


def create_detector(name: str, **params) -> EdgeDetector:
    try:
        cls = DETECTOR_REGISTRY[name]
    except KeyError:
        available = ", ".join(sorted(DETECTOR_REGISTRY))
        raise ValueError(f"Unknown edge detector {name!r}; available: {available}") from None
    detector = cls()
    if params:
        detector.configure(**params)
    return detector


def split_edges(edges: Mapping[int, float], rejected: List[int]) -> Tuple[Dict[int, float], Dict[int, float]]:
    """Partition `edges` into ``(kept, removed)`` without mutating the input."""
    removed_keys = set(rejected)
    kept = {b: d for b, d in sorted(edges.items()) if b not in removed_keys}
    removed = {b: d for b, d in sorted(edges.items()) if b in removed_keys}
    return kept, removed
