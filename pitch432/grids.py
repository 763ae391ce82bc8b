from __future__ import annotations
import math
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

# Pitch classes counted upward from A, the reference note of every grid.
A_NAMES = ["A", "A#", "B", "C", "C#", "D", "D#", "E", "F", "F#", "G", "G#"]

# A0 .. A7 relative to A4
A_OCTAVES = tuple(range(-4, 4))

# E sits a fourth below A (3:4)
E_RATIO = 3 / 4


def ratio_to_cents(ratio: float) -> float:
    return 1200.0 * math.log2(ratio)

def cents_to_ratio(cents: float) -> float:
    return 2.0 ** (cents / 1200.0)

def normalize_to_octave(ratio: float) -> float:
    if ratio <= 0:
        raise ValueError("Ratio must be positive")
    while ratio < 1.0:
        ratio *= 2.0
    while ratio >= 2.0:
        ratio /= 2.0
    return ratio

def canonicalize_scale(ratios: List[float], names: Optional[List[str]] = None) -> Dict:
    ratios = [normalize_to_octave(r) for r in ratios]
    cents = [(ratio_to_cents(r) % 1200.0) for r in ratios]
    order = sorted(range(len(ratios)), key=lambda i: cents[i])
    notes = []
    for idx, i in enumerate(order):
        nm = names[i] if names and i < len(names) else f"deg{idx}"
        notes.append({"name": nm, "ratio": ratios[i], "cents": cents[i]})
    return {"notes": notes, "period_cents": 1200.0}

def equal_temperament(n: int = 12) -> Dict:
    ratios = [cents_to_ratio(k * 1200.0 / n) for k in range(n)]
    names = A_NAMES if n == 12 else None
    return {"system": f"{n}-EDO", **canonicalize_scale(ratios, names)}

def pythagorean_12() -> Dict:
    # stack pure fifths up and down from A, keep the 12 closest pitch classes
    ratios = [1.0]
    for k in range(1, 7):
        ratios.append(normalize_to_octave((3 / 2) ** k))
        if k < 6:
            ratios.append(normalize_to_octave((3 / 2) ** (-k)))
    return {"system": "Pythagorean_12", **canonicalize_scale(ratios, None)}

def ji_chromatic_12() -> Dict:
    ratios = [1/1, 16/15, 9/8, 6/5, 5/4, 4/3, 45/32, 3/2, 8/5, 5/3, 9/5, 15/8]
    return {"system": "JI_5limit_chromatic_12", **canonicalize_scale(ratios, A_NAMES)}

def legacy_mixed_12() -> Dict:
    """The browser checker's grid: just ratios for the naturals, one 12-EDO
    semitone above each for the sharps, B as 9/8."""
    semitone = 2.0 ** (1 / 12)
    names = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
    ratios = [4/3, 4/3 * semitone, 3/2, 3/2 * semitone, 5/3, 16/9, 16/9 * semitone,
              9/5, 9/5 * semitone, 1.0, semitone, 9/8]
    return {"system": "Legacy_mixed_12", **canonicalize_scale(ratios, names)}

def available_systems() -> Dict[str, Dict]:
    systems = [equal_temperament(12), pythagorean_12(), ji_chromatic_12(), legacy_mixed_12()]
    return {s["system"]: s for s in systems}


@lru_cache(maxsize=32)
def _note_grid(a_ref: float, system: str, octaves: Tuple[int, ...]) -> np.ndarray:
    systems = available_systems()
    if system not in systems:
        raise ValueError(f"unknown grid system {system!r}, valid: {sorted(systems)}")
    ratios = np.array([n["ratio"] for n in systems[system]["notes"]], dtype=float)
    shifts = 2.0 ** np.array(octaves, dtype=float)
    grid = np.sort((a_ref * shifts[:, None] * ratios[None, :]).ravel())
    grid.setflags(write=False)
    return grid

def note_grid(a_ref: float, system: str = "12-EDO", octaves: Iterable[int] = range(-3, 4)) -> np.ndarray:
    """Every note of `system` rooted at A = `a_ref`, across `octaves`, ascending."""
    return _note_grid(float(a_ref), system, tuple(octaves))

def nearest_cents(freqs, grid: np.ndarray) -> np.ndarray:
    """Signed cents from each frequency to the closest note of `grid`."""
    f = np.atleast_1d(np.asarray(freqs, dtype=float))
    cents = 1200.0 * np.log2(f[:, None] / grid[None, :])
    idx = np.argmin(np.abs(cents), axis=1)
    return cents[np.arange(f.size), idx]


def a_series(a_ref: float) -> List[float]:
    return [a_ref * 2.0 ** k for k in A_OCTAVES]

def e_series(a_ref: float) -> List[float]:
    return [f * E_RATIO for f in a_series(a_ref)]
