"""
Tests for pitch432/config.py — validation and presets.
"""

import pytest

from pitch432.config import (
    COARSE_ANALYSIS,
    DEFAULT_RETUNE,
    DETECTION_ANALYSER,
    PRESETS,
    VERIFY_ANALYSER,
    AnalyserConfig,
    AnalysisConfig,
    ClassifierConfig,
    RetuneConfig,
)


class TestAnalyserConfig:
    def test_defaults(self):
        """Reference analyser: 32768-point FFT, -100..-10 dB, -70 dB threshold, 80-5000 Hz."""
        cfg = AnalyserConfig()
        assert cfg.fft_size == 32768
        assert (cfg.min_db, cfg.max_db) == (-100.0, -10.0)
        assert cfg.threshold_db == -70.0
        assert (cfg.band_low_hz, cfg.band_high_hz) == (80.0, 5000.0)

    @pytest.mark.parametrize("fft_size", [0, 16, 1000, 32767])
    def test_fft_size_must_be_power_of_two(self, fft_size):
        with pytest.raises(ValueError, match="fft_size"):
            AnalyserConfig(fft_size=fft_size)

    def test_floor_below_ceiling(self):
        with pytest.raises(ValueError, match="min_db"):
            AnalyserConfig(min_db=-10.0, max_db=-10.0)

    def test_smoothing_range(self):
        with pytest.raises(ValueError, match="smoothing"):
            AnalyserConfig(smoothing=1.0)

    def test_band_order(self):
        with pytest.raises(ValueError, match="band"):
            AnalyserConfig(band_low_hz=5000.0, band_high_hz=80.0)

    def test_frozen(self):
        cfg = AnalyserConfig()
        with pytest.raises((TypeError, AttributeError)):
            cfg.fft_size = 1024  # type: ignore[misc]

    def test_to_dict(self):
        assert AnalyserConfig().to_dict()["fft_size"] == 32768


class TestClassifierConfig:
    def test_defaults(self):
        cfg = ClassifierConfig()
        assert cfg.top_peaks == 20
        assert cfg.direct_peaks == 5
        assert cfg.margin == 1.1
        assert cfg.octaves == (-3, -2, -1, 0, 1, 2, 3)

    def test_unknown_tolerance_mode(self):
        with pytest.raises(ValueError, match="tolerance_mode"):
            ClassifierConfig(tolerance_mode="fuzzy")

    def test_unknown_weighting(self):
        with pytest.raises(ValueError, match="weighting"):
            ClassifierConfig(weighting="loudest")

    def test_unknown_grid_system(self):
        with pytest.raises(ValueError, match="grid_system"):
            ClassifierConfig(grid_system="24-EDO")

    @pytest.mark.parametrize("system", ["Pythagorean_12", "JI_5limit_chromatic_12", "Legacy_mixed_12"])
    def test_alternate_grid_systems(self, system):
        assert ClassifierConfig(grid_system=system).grid_system == system

    def test_margin_at_least_one(self):
        with pytest.raises(ValueError, match="margin"):
            ClassifierConfig(margin=0.9)


class TestCompositeConfigs:
    def test_segment_settings(self):
        with pytest.raises(ValueError):
            AnalysisConfig(segment_seconds=0)
        with pytest.raises(ValueError):
            AnalysisConfig(max_segments=0)

    def test_retune_interpolation(self):
        with pytest.raises(ValueError, match="interpolation"):
            RetuneConfig(interpolation="cubic")

    def test_retune_defaults(self):
        assert DEFAULT_RETUNE.target_hz == 432.0
        assert DEFAULT_RETUNE.fallback_hz == 440.0
        assert DEFAULT_RETUNE.chunk_seconds == 10.0
        assert DEFAULT_RETUNE.analysis_seconds == 5.0

    def test_nested_to_dict(self):
        d = DEFAULT_RETUNE.to_dict()
        assert d["analysis"]["analyser"]["smoothing"] == 0.3
        assert d["verify_analyser"]["min_db"] == -100.0


class TestPresets:
    def test_detection_and_verify_analysers(self):
        assert DETECTION_ANALYSER.min_db == -90.0
        assert DETECTION_ANALYSER.smoothing == 0.3
        assert VERIFY_ANALYSER.smoothing == 0.0

    def test_coarse_mode(self):
        assert COARSE_ANALYSIS.analyser.threshold_db == -60.0
        assert (COARSE_ANALYSIS.analyser.band_low_hz, COARSE_ANALYSIS.analyser.band_high_hz) == (20.0, 10000.0)
        assert COARSE_ANALYSIS.classifier.tolerance_mode == "absolute"
        assert COARSE_ANALYSIS.classifier.weighting == "strongest"

    def test_registry(self):
        assert set(PRESETS) == {"Detailed", "Coarse"}
