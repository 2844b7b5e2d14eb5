from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

# Value reported by the legacy [coarse, fine] projection for settings that were never determined.
INVALID_SETTING = 65535


def _freeze_array(array: np.ndarray, *, dtype, ndim: int | None = None) -> np.ndarray:
    """Return a read-only, C-contiguous copy of `array`, validating dimensions."""
    arr = np.array(array, dtype=dtype, copy=True, order="C")
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    arr.setflags(write=False)
    return arr


def _fit_length(array: np.ndarray, n_bins: int) -> np.ndarray:
    if array.size >= n_bins:
        return array[:n_bins]
    return np.concatenate([array, np.zeros(n_bins - array.size, dtype=array.dtype)])


# ----------------------------
# Waveform input
# ----------------------------

@dataclass(frozen=True)
class WaveformSample:
    """A single aggregated bin: mean value, error on the mean and number of entries."""

    value: float
    error: float = 0.0
    count: int = 0


@dataclass(frozen=True)
class Waveform:
    """Per-bin profile of an APV timing scan.

    Bin index is the time ordinate. Bins with ``entries == 0`` carry no data;
    they keep their slot but are ignored by every statistic.
    """

    values: np.ndarray
    errors: np.ndarray
    entries: np.ndarray

    def __post_init__(self) -> None:
        values = _freeze_array(self.values, dtype=np.float64, ndim=1)
        errors = _freeze_array(self.errors, dtype=np.float64, ndim=1)
        entries = _freeze_array(self.entries, dtype=np.float64, ndim=1)
        if not (values.shape == errors.shape == entries.shape):
            raise ValueError("values, errors and entries must have the same length")
        if np.any(entries < 0):
            raise ValueError("entries must be non-negative")

        object.__setattr__(self, "values", values)
        object.__setattr__(self, "errors", errors)
        object.__setattr__(self, "entries", entries)

    @classmethod
    def from_arrays(
        cls,
        values: Sequence[float],
        errors: Optional[Sequence[float]] = None,
        entries: Optional[Sequence[float]] = None,
        *,
        n_bins: Optional[int] = None,
    ) -> "Waveform":
        """Build a waveform padded with empty bins (or truncated) to `n_bins`.

        Missing `errors` default to zero; missing `entries` mark every supplied bin as populated.
        """
        vals = np.asarray(values, dtype=np.float64).ravel()
        errs = np.zeros_like(vals) if errors is None else np.asarray(errors, dtype=np.float64).ravel()
        ents = np.ones_like(vals) if entries is None else np.asarray(entries, dtype=np.float64).ravel()
        if not (vals.size == errs.size == ents.size):
            raise ValueError("values, errors and entries must have the same length")
        if n_bins is None:
            n_bins = vals.size
        if n_bins < 0:
            raise ValueError("n_bins must be non-negative")
        return cls(
            values=_fit_length(vals, n_bins),
            errors=_fit_length(errs, n_bins),
            entries=_fit_length(ents, n_bins),
        )

    @classmethod
    def from_records(
        cls,
        records: Iterable[Union[WaveformSample, Tuple[float, float, float]]],
        *,
        n_bins: Optional[int] = None,
    ) -> "Waveform":
        values: List[float] = []
        errors: List[float] = []
        entries: List[float] = []
        for record in records:
            if isinstance(record, WaveformSample):
                value, error, count = record.value, record.error, record.count
            else:
                value, error, count = record
            values.append(float(value))
            errors.append(float(error))
            entries.append(float(count))
        return cls.from_arrays(values, errors, entries, n_bins=n_bins)

    @property
    def n_bins(self) -> int:
        return int(self.values.size)

    @property
    def populated(self) -> np.ndarray:
        return self.entries > 0

    @property
    def n_populated(self) -> int:
        return int(np.count_nonzero(self.populated))


# ----------------------------
# Diagnostics
# ----------------------------

class DiagnosticKind(str, Enum):
    INSUFFICIENT_BINS = "insufficient_bins"
    RANGE_TOO_SMALL = "range_too_small"
    PLATEAU_SEPARATION_TOO_SMALL = "plateau_separation_too_small"
    INVALID_EDGE_REJECTED = "invalid_edge_rejected"
    NO_EDGES_FOUND = "no_edges_found"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_KINDS


_TERMINAL_KINDS = frozenset(
    {
        DiagnosticKind.INSUFFICIENT_BINS,
        DiagnosticKind.RANGE_TOO_SMALL,
        DiagnosticKind.PLATEAU_SEPARATION_TOO_SMALL,
    }
)


@dataclass(frozen=True)
class Diagnostic:
    """Advisory message emitted by one of the analysis checks."""

    kind: DiagnosticKind
    message: str
    bin: Optional[int] = None


# ----------------------------
# Analysis output
# ----------------------------

def _fmt(value) -> str:
    if value is None:
        return "n/a"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


@dataclass(frozen=True)
class Monitorables:
    """Timing settings and tick-mark levels extracted from one waveform.

    Fields left at ``None`` were not determined by the analysis.
    """

    pll_coarse: Optional[int] = None
    pll_fine: Optional[int] = None
    delay: Optional[int] = None
    error: Optional[float] = None
    base: Optional[float] = None
    peak: Optional[float] = None
    height: Optional[float] = None

    def __post_init__(self) -> None:
        for name, value in (("pll_coarse", self.pll_coarse), ("pll_fine", self.pll_fine), ("delay", self.delay)):
            if value is not None and value < 0:
                raise ValueError(f"{name} must be non-negative")

    @property
    def has_timing(self) -> bool:
        return self.delay is not None

    def render(self) -> str:
        return (
            "APV TIMING Monitorables:\n"
            f" PLL coarse setting : {_fmt(self.pll_coarse)}\n"
            f" PLL fine setting   : {_fmt(self.pll_fine)}\n"
            f" Timing delay   [ns]: {_fmt(self.delay)}\n"
            f" Error on delay [ns]: {_fmt(self.error)}\n"
            f" Baseline      [adc]: {_fmt(self.base)}\n"
            f" Tick peak     [adc]: {_fmt(self.peak)}\n"
            f" Tick height   [adc]: {_fmt(self.height)}\n"
        )

    def __str__(self) -> str:
        return self.render()

    def as_list(self) -> List[int]:
        """Legacy ``[coarse, fine]`` projection."""
        coarse = INVALID_SETTING if self.pll_coarse is None else int(self.pll_coarse)
        fine = INVALID_SETTING if self.pll_fine is None else int(self.pll_fine)
        return [coarse, fine]


@dataclass(frozen=True)
class PlateauLevels:
    """Intermediate statistics of the baseline/tick classification."""

    minimum: float
    maximum: float
    threshold: float
    baseline: float
    tick: float
    baseline_rms: float
    n_baseline: int
    n_tick: int
    n_populated: int

    @property
    def separation(self) -> float:
        return self.tick - self.baseline


@dataclass(frozen=True)
class TimingResult:
    """Outcome of analysing a single waveform.

    `monitorables` is ``None`` after a terminal failure and only carries the
    plateau levels when no valid edge survived.
    """

    monitorables: Optional[Monitorables] = None
    failure: Optional[DiagnosticKind] = None
    diagnostics: Tuple[Diagnostic, ...] = ()
    levels: Optional[PlateauLevels] = None
    candidate_edges: Dict[int, float] = field(default_factory=dict)
    valid_edges: Dict[int, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "diagnostics", tuple(self.diagnostics))
        object.__setattr__(self, "candidate_edges", dict(sorted(self.candidate_edges.items())))
        object.__setattr__(self, "valid_edges", dict(sorted(self.valid_edges.items())))

    @property
    def ok(self) -> bool:
        return self.failure is None and self.monitorables is not None and self.monitorables.has_timing

    @property
    def first_edge(self) -> Optional[int]:
        if not self.valid_edges:
            return None
        return next(iter(self.valid_edges))

    def diagnostics_of(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [diag for diag in self.diagnostics if diag.kind is kind]


__all__ = [
    "INVALID_SETTING",
    "WaveformSample",
    "Waveform",
    "DiagnosticKind",
    "Diagnostic",
    "Monitorables",
    "PlateauLevels",
    "TimingResult",
]
