import logging

import numpy as np
import pytest

from analysis.settings import AnalysisSettingsStore, TimingAnalysisSettings
from analysis.timing_analyzer import ApvTimingAnalyzer, analyze_waveform, assemble_monitorables
from shared.models import INVALID_SETTING, DiagnosticKind, Monitorables, Waveform
from test.fixtures.signal_generators import (
    make_flat_profile,
    make_noisy_step_profile,
    make_pulse_profile,
    make_step_profile,
)


def test_too_few_bins_is_terminal():
    waveform = make_step_profile(n_bins=99, step_bin=50)
    result = ApvTimingAnalyzer().analyze(waveform)

    assert result.failure is DiagnosticKind.INSUFFICIENT_BINS
    assert result.monitorables is None
    assert result.levels is None
    assert not result.ok
    assert [d.kind for d in result.diagnostics] == [DiagnosticKind.INSUFFICIENT_BINS]


def test_flat_waveform_reports_range_too_small():
    result = ApvTimingAnalyzer().analyze(make_flat_profile(200, 300.0))

    assert result.failure is DiagnosticKind.RANGE_TOO_SMALL
    assert result.monitorables is None


def test_nan_bin_does_not_open_range_gate():
    values = np.full(200, 100.0)
    values[50] = np.nan
    waveform = Waveform.from_arrays(values, np.zeros(200), np.full(200, 10.0))
    result = ApvTimingAnalyzer().analyze(waveform)

    assert result.failure is DiagnosticKind.RANGE_TOO_SMALL
    assert result.monitorables is None


def test_waveform_without_entries_reports_range_too_small():
    waveform = Waveform.from_arrays(np.linspace(0, 1000, 150), np.zeros(150), np.zeros(150))
    result = ApvTimingAnalyzer().analyze(waveform)

    assert result.failure is DiagnosticKind.RANGE_TOO_SMALL


def test_empty_bins_do_not_contribute_to_range():
    values = np.full(200, 100.0)
    values[10] = 5000.0  # outlier in an empty bin
    entries = np.full(200, 10)
    entries[10] = 0
    result = ApvTimingAnalyzer().analyze(Waveform.from_arrays(values, np.zeros(200), entries))

    assert result.failure is DiagnosticKind.RANGE_TOO_SMALL


def test_small_plateau_separation_is_terminal():
    # range 60 passes, but the tick median (40) sits only 40 counts above baseline
    values = np.zeros(200)
    values[100:190] = 40.0
    values[195] = 60.0
    waveform = Waveform.from_arrays(values, np.zeros(200), np.full(200, 5))
    result = ApvTimingAnalyzer().analyze(waveform)

    assert result.failure is DiagnosticKind.PLATEAU_SEPARATION_TOO_SMALL
    assert result.monitorables is None
    assert result.levels is not None
    assert result.levels.tick == pytest.approx(40.0)
    assert result.levels.baseline == pytest.approx(0.0)


def test_step_scenario_locates_rising_edge():
    waveform = make_step_profile(n_bins=200, step_bin=100, base=100.0, peak=500.0, ripple=2.0)
    result = ApvTimingAnalyzer().analyze(waveform)

    assert result.ok
    assert result.failure is None
    assert result.diagnostics == ()
    assert list(result.valid_edges) == [99, 100]
    mons = result.monitorables
    assert mons.pll_coarse == 4
    assert mons.pll_fine == 3
    assert mons.delay == 99
    assert mons.error == 0.0
    assert mons.base == pytest.approx(102.0)
    assert mons.peak == pytest.approx(502.0)
    assert mons.height == pytest.approx(400.0)
    assert result.levels.baseline_rms == pytest.approx(2.0)
    assert result.levels.threshold == pytest.approx(300.0)


@pytest.mark.parametrize("seed", [0, 1, 7, 42])
def test_noisy_step_scenario(seed: int):
    waveform = make_noisy_step_profile(200, 100, spread=2.0, seed=seed)
    result = analyze_waveform(waveform)

    assert result.ok
    assert not result.diagnostics_of(DiagnosticKind.NO_EDGES_FOUND)
    mons = result.monitorables
    assert mons.base == pytest.approx(100.0, abs=2.0)
    assert mons.peak == pytest.approx(500.0, abs=2.0)
    assert mons.height == pytest.approx(400.0, abs=4.0)
    assert mons.pll_coarse == 4
    assert mons.pll_fine in (3, 4)


def test_short_glitch_is_rejected_and_later_tick_is_used():
    waveform = make_pulse_profile(200, [(40, 43), (120, 200)])
    result = ApvTimingAnalyzer().analyze(waveform)

    assert list(result.candidate_edges) == [39, 40, 119, 120]
    rejected = result.diagnostics_of(DiagnosticKind.INVALID_EDGE_REJECTED)
    # Adjacent invalid edges must both be removed.
    assert [d.bin for d in rejected] == [39, 40]
    assert list(result.valid_edges) == [119, 120]
    assert result.ok
    assert result.monitorables.delay == 119
    assert result.monitorables.pll_coarse == 4
    assert result.monitorables.pll_fine == 23


def test_no_valid_edge_keeps_levels_only():
    waveform = make_pulse_profile(200, [(40, 43)])
    result = ApvTimingAnalyzer().analyze(waveform)

    assert result.failure is DiagnosticKind.NO_EDGES_FOUND
    assert not result.ok
    assert result.valid_edges == {}
    mons = result.monitorables
    assert mons is not None
    assert mons.pll_coarse is None
    assert mons.pll_fine is None
    assert mons.delay is None
    assert mons.error is None
    assert mons.base == pytest.approx(102.0)
    assert mons.peak == pytest.approx(498.0)
    assert mons.height == pytest.approx(396.0)
    kinds = [d.kind for d in result.diagnostics]
    assert kinds == [
        DiagnosticKind.INVALID_EDGE_REJECTED,
        DiagnosticKind.INVALID_EDGE_REJECTED,
        DiagnosticKind.NO_EDGES_FOUND,
    ]


def test_empty_neighbours_suppress_edge():
    # Bin 98 is empty, so neither bin 97 nor bin 99 can be evaluated.
    waveform = make_pulse_profile(200, [(100, 200)], empty_bins=[98])
    result = ApvTimingAnalyzer().analyze(waveform)

    assert 99 not in result.candidate_edges
    assert result.first_edge == 100
    assert result.monitorables.pll_fine == 4


def test_empty_bins_inside_validation_window_are_ignored():
    values = np.full(200, 100.0)
    values[1::2] = 104.0
    values[100:] = 500.0
    entries = np.full(200, 10)
    # Baseline-level samples after the edge, but without entries.
    values[115:120] = 100.0
    entries[115:120] = 0
    result = ApvTimingAnalyzer().analyze(Waveform.from_arrays(values, np.zeros(200), entries))

    assert result.ok
    assert result.first_edge == 99


def test_assemble_uses_smallest_edge():
    mons = assemble_monitorables({80: 300.0, 50: 250.0}, 100.0, 400.0)

    assert mons.delay == 50
    assert mons.pll_coarse == 2
    assert mons.pll_fine == 2
    assert mons.height == pytest.approx(300.0)


def test_assemble_decomposes_pll_setting():
    mons = assemble_monitorables({125: 400.0}, 0.0, 400.0)

    assert (mons.pll_coarse, mons.pll_fine, mons.delay) == (5, 5, 125)


def test_custom_settings_change_limits():
    waveform = make_step_profile(n_bins=80, step_bin=30)
    assert ApvTimingAnalyzer().analyze(waveform).failure is DiagnosticKind.INSUFFICIENT_BINS

    settings = TimingAnalysisSettings(min_bins=50, validation_stop=30)
    result = ApvTimingAnalyzer(settings).analyze(waveform)
    assert result.ok
    assert result.first_edge == 29


def test_analyzer_reads_settings_store_on_every_call():
    store = AnalysisSettingsStore()
    analyzer = ApvTimingAnalyzer(store)
    waveform = make_step_profile(n_bins=200, step_bin=100)

    assert analyzer.analyze(waveform).ok
    store.update(min_separation=1000.0)
    assert analyzer.analyze(waveform).failure is DiagnosticKind.PLATEAU_SEPARATION_TOO_SMALL
    assert analyzer.settings.min_separation == 1000.0


def test_diagnostics_are_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="analysis.timing_analyzer"):
        ApvTimingAnalyzer().analyze(make_flat_profile(200))

    assert any("Signal range" in rec.getMessage() for rec in caplog.records)


def test_legacy_adapter_returns_coarse_and_fine():
    analyzer = ApvTimingAnalyzer()
    first = make_step_profile(n_bins=200, step_bin=100)
    second = make_step_profile(n_bins=200, step_bin=150)

    assert analyzer.analyze_legacy([first, second]) == [4, 3]


def test_legacy_adapter_without_waveforms():
    assert ApvTimingAnalyzer().analyze_legacy([]) == [INVALID_SETTING, INVALID_SETTING]


def test_legacy_adapter_after_failure():
    result = ApvTimingAnalyzer().analyze_legacy([make_flat_profile(200)])
    assert result == Monitorables().as_list()
