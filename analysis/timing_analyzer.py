# analysis/timing_analyzer.py
from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence, Union

from core.detection import create_detector, split_edges
from shared.models import (
    Diagnostic,
    DiagnosticKind,
    Monitorables,
    PlateauLevels,
    TimingResult,
    Waveform,
)

from .metrics import baseline_rms, classify, median_level, populated_min_max, threshold_level
from .settings import AnalysisSettingsStore, TimingAnalysisSettings

logger = logging.getLogger(__name__)


def assemble_monitorables(
    edges: Mapping[int, float],
    baseline: float,
    tick: float,
    *,
    fine_steps: int = 24,
) -> Monitorables:
    """Timing settings from the earliest edge, or levels only when `edges` is empty."""
    if not edges:
        return Monitorables(base=baseline, peak=tick, height=tick - baseline)
    first = min(edges)
    return Monitorables(
        pll_coarse=first // fine_steps,
        pll_fine=first % fine_steps,
        delay=first,
        error=0.0,
        base=baseline,
        peak=tick,
        height=tick - baseline,
    )


class ApvTimingAnalyzer:
    """
    Locates the rising edge of the tick mark in an APV timing profile and
    derives the PLL delay settings from it.

    The analyzer keeps no per-waveform state; settings are snapshotted at the
    start of each call, so one instance can serve several threads.
    """

    def __init__(self, settings: Union[TimingAnalysisSettings, AnalysisSettingsStore, None] = None) -> None:
        if isinstance(settings, AnalysisSettingsStore):
            self._store = settings
        else:
            self._store = AnalysisSettingsStore(settings)

    @property
    def settings(self) -> TimingAnalysisSettings:
        return self._store.get()

    # ---------------- Public API ----------------

    def analyze(self, waveform: Waveform) -> TimingResult:
        cfg = self._store.get()
        diagnostics: List[Diagnostic] = []

        def report(kind: DiagnosticKind, message: str, bin_index: Optional[int] = None) -> None:
            logger.warning("[%s] %s", kind.value, message)
            diagnostics.append(Diagnostic(kind=kind, message=message, bin=bin_index))

        def fail(kind: DiagnosticKind, message: str, levels: Optional[PlateauLevels] = None) -> TimingResult:
            report(kind, message)
            return TimingResult(failure=kind, diagnostics=diagnostics, levels=levels)

        n_bins = waveform.n_bins
        if n_bins < cfg.min_bins:
            return fail(DiagnosticKind.INSUFFICIENT_BINS, f"Too few bins! Number of bins: {n_bins}")

        maximum, minimum = populated_min_max(waveform.values, waveform.entries)
        signal_range = maximum - minimum
        if signal_range < cfg.min_range:
            return fail(
                DiagnosticKind.RANGE_TOO_SMALL,
                f"Signal range (max - min) is too small: {signal_range:g}",
            )
        threshold = threshold_level(maximum, minimum)
        logger.debug(
            "ADC samples max/min/range/threshold: %g/%g/%g/%g (%d populated bins)",
            maximum, minimum, signal_range, threshold, waveform.n_populated,
        )

        base_samples, tick_samples = classify(waveform.values, waveform.entries, threshold)
        baseline = median_level(base_samples)
        tickmark = median_level(tick_samples)
        rms = baseline_rms(base_samples)
        levels = PlateauLevels(
            minimum=minimum,
            maximum=maximum,
            threshold=threshold,
            baseline=baseline,
            tick=tickmark,
            baseline_rms=rms,
            n_baseline=int(base_samples.size),
            n_tick=int(tick_samples.size),
            n_populated=waveform.n_populated,
        )
        logger.debug(
            "Tick mark level %g (%d samples), baseline level %g (%d samples), baseline rms %g",
            tickmark, tick_samples.size, baseline, base_samples.size, rms,
        )
        if levels.separation < cfg.min_separation:
            return fail(
                DiagnosticKind.PLATEAU_SEPARATION_TOO_SMALL,
                f"Range b/w tick mark height ({tickmark:g}) and baseline ({baseline:g}) "
                f"is too small ({levels.separation:g})",
                levels,
            )

        detector = create_detector(
            cfg.edge_detector,
            noise_factor=cfg.noise_factor,
            validation_start=cfg.validation_start,
            validation_stop=cfg.validation_stop,
        )
        populated = waveform.populated
        candidates = detector.find_edges(waveform.values, populated, rms)
        rejected = detector.reject_edges(candidates, waveform.values, populated, baseline, rms)
        valid, removed = split_edges(candidates, rejected)
        for edge in removed:
            report(
                DiagnosticKind.INVALID_EDGE_REJECTED,
                f"Found samples below threshold following a rising edge at bin {edge}",
                edge,
            )
        logger.debug("Identified %d of %d edges followed by tick: %s", len(valid), len(candidates), list(valid))

        failure: Optional[DiagnosticKind] = None
        if not valid:
            report(DiagnosticKind.NO_EDGES_FOUND, "No tick marks found!")
            failure = DiagnosticKind.NO_EDGES_FOUND

        return TimingResult(
            monitorables=assemble_monitorables(valid, baseline, tickmark, fine_steps=cfg.fine_steps),
            failure=failure,
            diagnostics=diagnostics,
            levels=levels,
            candidate_edges=candidates,
            valid_edges=valid,
        )

    def analyze_legacy(self, waveforms: Sequence[Waveform]) -> List[int]:
        """Old ``[pll_coarse, pll_fine]`` interface; only the first waveform is analysed."""
        if not waveforms:
            return Monitorables().as_list()
        result = self.analyze(waveforms[0])
        mons = result.monitorables or Monitorables()
        return mons.as_list()


def analyze_waveform(waveform: Waveform, settings: Optional[TimingAnalysisSettings] = None) -> TimingResult:
    return ApvTimingAnalyzer(settings).analyze(waveform)


__all__ = ["ApvTimingAnalyzer", "analyze_waveform", "assemble_monitorables"]
