"""Decide whether a set of spectral peaks sits on the 440 Hz or 432 Hz grid.

Two passes:

* a direct match of the strongest few peaks against the A (and E) notes of
  each standard, which wins immediately when it fires;
* otherwise every top peak votes for the grid whose nearest note is fewer
  cents away, weighted by loudness. One grid must beat the other by
  `margin` or the verdict falls back to the strongest peak's frequency.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

import numpy as np

from pitch432.config import ClassifierConfig
from pitch432.grids import a_series, e_series, nearest_cents, note_grid
from pitch432.peaks import Peak

logger = logging.getLogger("pitch432.tuning")

STANDARD_HZ = 440.0
ALTERNATE_HZ = 432.0


@dataclass(frozen=True)
class ExactMatch:
    reference_hz: float

    @property
    def numeric(self) -> float:
        return self.reference_hz


@dataclass(frozen=True)
class DominantFrequency:
    frequency_hz: float

    @property
    def numeric(self) -> float:
        return self.frequency_hz


@dataclass(frozen=True)
class Undetermined:
    @property
    def numeric(self) -> float:
        return 0.0


TuningVerdict = Union[ExactMatch, DominantFrequency, Undetermined]


def _reference_series(config: ClassifierConfig) -> List[Tuple[float, List[float]]]:
    # order matters: 432 is checked before 440 for every peak
    series = [(ALTERNATE_HZ, a_series(ALTERNATE_HZ)), (STANDARD_HZ, a_series(STANDARD_HZ))]
    if config.include_e_notes:
        series += [(ALTERNATE_HZ, e_series(ALTERNATE_HZ)), (STANDARD_HZ, e_series(STANDARD_HZ))]
    return series


def _matches(freq: float, ref: float, config: ClassifierConfig) -> bool:
    if config.tolerance_mode == "absolute":
        return abs(freq - ref) < config.tolerance_hz
    return abs(freq - ref) / ref < config.tolerance


def direct_match(peaks: Sequence[Peak], config: ClassifierConfig = ClassifierConfig()):
    """Reference frequency of the first strong peak sitting on an A/E note, else None."""
    series = _reference_series(config)
    for peak in peaks[: config.direct_peaks]:
        for standard, tones in series:
            if any(_matches(peak.frequency_hz, t, config) for t in tones):
                return standard
    return None


def peak_weights(peaks: Sequence[Peak], config: ClassifierConfig = ClassifierConfig()) -> np.ndarray:
    if config.weighting == "strongest":
        w = np.ones(len(peaks))
        if len(peaks):
            w[0] = 3.0
        return w
    db = np.array([p.amplitude_db for p in peaks], dtype=float)
    return np.minimum(config.weight_cap, 10.0 ** ((db + 100.0) / 20.0) / config.weight_norm)


def grid_scores(peaks: Sequence[Peak], config: ClassifierConfig = ClassifierConfig()) -> Tuple[float, float]:
    """(score440, score432) for `peaks`; ties on distance go to 432."""
    if not peaks:
        return 0.0, 0.0
    freqs = [p.frequency_hz for p in peaks]
    d440 = np.abs(nearest_cents(freqs, note_grid(STANDARD_HZ, config.grid_system, config.octaves)))
    d432 = np.abs(nearest_cents(freqs, note_grid(ALTERNATE_HZ, config.grid_system, config.octaves)))
    w = peak_weights(peaks, config)
    wins440 = d440 < d432
    return float(w[wins440].sum()), float(w[~wins440].sum())


def classify(peaks: Sequence[Peak], config: ClassifierConfig = ClassifierConfig()) -> TuningVerdict:
    if not peaks:
        return Undetermined()
    top = list(peaks[: min(config.top_peaks, len(peaks))])
    logger.debug("[TUNING] top frequencies: %s", ", ".join(f"{p.frequency_hz:.2f}" for p in top))

    direct = direct_match(top, config)
    if direct is not None:
        logger.info("[TUNING] direct match for %.0f Hz", direct)
        return ExactMatch(direct)

    score440, score432 = grid_scores(top, config)
    logger.info("[TUNING] scores 440Hz=%.2f 432Hz=%.2f", score440, score432)
    if score440 > score432 * config.margin:
        return ExactMatch(STANDARD_HZ)
    if score432 > score440 * config.margin:
        return ExactMatch(ALTERNATE_HZ)
    return DominantFrequency(round(top[0].frequency_hz, 2))


def describe_verdict(verdict: TuningVerdict) -> str:
    if isinstance(verdict, ExactMatch):
        return f"This audio is tuned to {verdict.reference_hz:g}Hz"
    if isinstance(verdict, DominantFrequency):
        return (f"Detected frequency: {verdict.frequency_hz:.2f} Hz. "
                "This audio is not tuned to either 440Hz or 432Hz")
    return "Could not determine the tuning of this audio"


def can_retune(verdict: TuningVerdict, target_hz: float = ALTERNATE_HZ) -> bool:
    return not (isinstance(verdict, ExactMatch) and verdict.reference_hz == target_hz)
