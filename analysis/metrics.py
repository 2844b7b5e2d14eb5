"""Level and noise statistics for tick-mark analysis.

This module provides the plateau statistics used by the timing analyzer:
- populated_min_max: Extremes over bins that carry entries
- classify: Split populated bins into baseline and tick samples
- median_level: Upper-middle element of the sorted samples
- baseline_rms: Spread of the baseline samples, clamped at zero
"""
import math
from typing import Tuple
import numpy as np

# Extremes reported when no bin is populated.
MAX_SENTINEL = -1.0e9
MIN_SENTINEL = 1.0e9


def populated_min_max(values: np.ndarray, entries: np.ndarray) -> Tuple[float, float]:
    arr = np.asarray(values, dtype=np.float64)
    mask = np.asarray(entries) > 0
    # NaN bins never raise either extreme.
    populated = arr[mask & ~np.isnan(arr)]
    if populated.size == 0:
        return MAX_SENTINEL, MIN_SENTINEL
    return float(np.max(populated)), float(np.min(populated))


def threshold_level(maximum: float, minimum: float) -> float:
    return minimum + (maximum - minimum) / 2.0


def classify(values: np.ndarray, entries: np.ndarray, threshold: float) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``(baseline, tick)`` samples; unpopulated bins belong to neither."""
    arr = np.asarray(values, dtype=np.float64)
    mask = np.asarray(entries) > 0
    populated = arr[mask]
    below = populated < threshold
    return populated[below], populated[~below]


def median_level(samples: np.ndarray) -> float:
    # Even-sized sets take the upper-middle element, never the average of the two.
    arr = np.sort(np.asarray(samples, dtype=np.float64))
    if arr.size == 0:
        return 0.0
    return float(arr[arr.size // 2])


def baseline_rms(samples: np.ndarray) -> float:
    arr = np.asarray(samples, dtype=np.float64)
    if arr.size == 0:
        return 0.0
    mean = float(np.mean(arr))
    mean2 = float(np.mean(arr * arr))
    variance = mean2 - mean * mean
    if not variance > 0.0:
        return 0.0
    return math.sqrt(variance)
