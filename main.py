"""Run the APV timing analysis on a profile dumped as a text table.

Each row holds ``value error entries`` for one bin, in bin order. Columns may
be separated by whitespace or commas; ``#`` starts a comment.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np

from analysis.settings import TimingAnalysisSettings
from analysis.timing_analyzer import ApvTimingAnalyzer
from shared.models import Waveform

logger = logging.getLogger("apvtiming")


def _column_delimiter(text: str) -> Optional[str]:
    for line in text.splitlines():
        data = line.split("#", 1)[0].strip()
        if data:
            return "," if "," in data else None
    return None


def load_profile(path: Path, n_bins: Optional[int] = None) -> Waveform:
    delimiter = _column_delimiter(path.read_text())
    table = np.loadtxt(path, delimiter=delimiter, ndmin=2, comments="#")
    if table.shape[1] != 3:
        raise ValueError(f"expected 3 columns (value, error, entries), got {table.shape[1]}")
    return Waveform.from_arrays(table[:, 0], table[:, 1], table[:, 2], n_bins=n_bins)


def build_parser() -> argparse.ArgumentParser:
    defaults = TimingAnalysisSettings()
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("profile", type=Path, help="text table of value/error/entries per bin")
    parser.add_argument("--n-bins", type=int, default=None, help="pad or truncate the profile to this many bins")
    parser.add_argument("--min-bins", type=int, default=defaults.min_bins)
    parser.add_argument("--min-range", type=float, default=defaults.min_range)
    parser.add_argument("--min-separation", type=float, default=defaults.min_separation)
    parser.add_argument("--noise-factor", type=float, default=defaults.noise_factor)
    parser.add_argument("-v", "--verbose", action="store_true", help="log intermediate statistics")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        settings = TimingAnalysisSettings(
            min_bins=args.min_bins,
            min_range=args.min_range,
            min_separation=args.min_separation,
            noise_factor=args.noise_factor,
        )
        settings.validate()
        waveform = load_profile(args.profile, n_bins=args.n_bins)
    except (OSError, ValueError) as exc:
        logger.error("Cannot analyse %s: %s", args.profile, exc)
        return 2

    result = ApvTimingAnalyzer(settings).analyze(waveform)
    if result.monitorables is not None:
        sys.stdout.write(result.monitorables.render())
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
