from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Tuple

from pitch432.grids import available_systems

TOLERANCE_MODES = ("relative", "absolute")
WEIGHTINGS = ("amplitude", "strongest")
INTERPOLATIONS = ("linear", "nearest")


def _is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


@dataclass(frozen=True)
class AnalyserConfig:
    """Spectrum render + peak picking settings (one analyser "node").

    `fft_size` is only checked for being a power of two. Whether its bins are
    fine enough to tell neighbouring semitones apart depends on the sample
    rate; see `peaks.resolves_semitones`. At 44.1 kHz and an 80 Hz band
    floor that takes 16384 points or more.
    """
    fft_size: int = 32768
    min_db: float = -100.0
    max_db: float = -10.0
    smoothing: float = 0.0
    threshold_db: float = -70.0
    band_low_hz: float = 80.0
    band_high_hz: float = 5000.0

    def __post_init__(self) -> None:
        if not _is_power_of_two(self.fft_size) or self.fft_size < 32:
            raise ValueError(f"fft_size must be a power of two >= 32, got {self.fft_size}")
        if self.min_db >= self.max_db:
            raise ValueError(f"min_db ({self.min_db}) must be below max_db ({self.max_db})")
        if not 0.0 <= self.smoothing < 1.0:
            raise ValueError(f"smoothing must be in [0, 1), got {self.smoothing}")
        if not 0.0 <= self.band_low_hz < self.band_high_hz:
            raise ValueError(
                f"invalid band [{self.band_low_hz}, {self.band_high_hz}] Hz"
            )

    def to_dict(self): return asdict(self)


@dataclass(frozen=True)
class ClassifierConfig:
    top_peaks: int = 20
    direct_peaks: int = 5
    tolerance: float = 0.01
    tolerance_mode: str = "relative"
    tolerance_hz: float = 3.0
    include_e_notes: bool = True
    grid_system: str = "12-EDO"
    octaves: Tuple[int, ...] = (-3, -2, -1, 0, 1, 2, 3)
    weighting: str = "amplitude"
    weight_cap: float = 5.0
    weight_norm: float = 1000.0
    margin: float = 1.1

    def __post_init__(self) -> None:
        if self.top_peaks <= 0 or self.direct_peaks < 0:
            raise ValueError("top_peaks must be positive and direct_peaks non-negative")
        if self.tolerance_mode not in TOLERANCE_MODES:
            raise ValueError(f"tolerance_mode must be one of {TOLERANCE_MODES}, got {self.tolerance_mode!r}")
        if self.weighting not in WEIGHTINGS:
            raise ValueError(f"weighting must be one of {WEIGHTINGS}, got {self.weighting!r}")
        if self.margin < 1.0:
            raise ValueError(f"margin must be >= 1.0, got {self.margin}")
        if not self.octaves:
            raise ValueError("octaves must not be empty")
        systems = available_systems()
        if self.grid_system not in systems:
            raise ValueError(f"grid_system must be one of {sorted(systems)}, got {self.grid_system!r}")

    def to_dict(self): return asdict(self)


@dataclass(frozen=True)
class AnalysisConfig:
    analyser: AnalyserConfig = field(default_factory=AnalyserConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    segment_seconds: float = 5.0
    max_segments: int = 3

    def __post_init__(self) -> None:
        if self.segment_seconds <= 0:
            raise ValueError(f"segment_seconds must be positive, got {self.segment_seconds}")
        if self.max_segments < 1:
            raise ValueError(f"max_segments must be >= 1, got {self.max_segments}")

    def to_dict(self): return asdict(self)


@dataclass(frozen=True)
class RetuneConfig:
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    verify_analyser: AnalyserConfig = field(default_factory=AnalyserConfig)
    target_hz: float = 432.0
    fallback_hz: float = 440.0
    analysis_seconds: float = 5.0
    chunk_seconds: float = 10.0
    interpolation: str = "linear"
    verify: bool = True

    def __post_init__(self) -> None:
        if self.target_hz <= 0 or self.fallback_hz <= 0:
            raise ValueError("target_hz and fallback_hz must be positive")
        if self.analysis_seconds <= 0 or self.chunk_seconds <= 0:
            raise ValueError("analysis_seconds and chunk_seconds must be positive")
        if self.interpolation not in INTERPOLATIONS:
            raise ValueError(f"interpolation must be one of {INTERPOLATIONS}, got {self.interpolation!r}")

    def to_dict(self): return asdict(self)


# Presets. The two analyser flavours mirror the two tunings of the browser
# analyser: a smoothed, -90 dB floored one for detection and an unsmoothed
# -100 dB one for verifying a conversion.

DETECTION_ANALYSER = AnalyserConfig(min_db=-90.0, smoothing=0.3)
VERIFY_ANALYSER = AnalyserConfig(min_db=-100.0, smoothing=0.0)
COARSE_ANALYSER = AnalyserConfig(threshold_db=-60.0, band_low_hz=20.0, band_high_hz=10000.0)

DEFAULT_CLASSIFIER = ClassifierConfig()
COARSE_CLASSIFIER = ClassifierConfig(
    tolerance_mode="absolute", include_e_notes=False, weighting="strongest",
)

DETAILED_ANALYSIS = AnalysisConfig(analyser=DETECTION_ANALYSER, classifier=DEFAULT_CLASSIFIER)
COARSE_ANALYSIS = AnalysisConfig(analyser=COARSE_ANALYSER, classifier=COARSE_CLASSIFIER)

DEFAULT_RETUNE = RetuneConfig(analysis=DETAILED_ANALYSIS, verify_analyser=VERIFY_ANALYSER)

PRESETS = {
    "Detailed": DETAILED_ANALYSIS,
    "Coarse": COARSE_ANALYSIS,
}
