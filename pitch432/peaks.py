from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from scipy.fft import rfft
from scipy.signal import find_peaks, get_window

from pitch432.audio import SampleBuffer
from pitch432.config import AnalyserConfig
from pitch432.errors import AnalysisFailure

logger = logging.getLogger("pitch432.peaks")

# bins below this are DC / sub-audio rumble at any practical fft size
FIRST_BIN = 5


@dataclass(frozen=True)
class Peak:
    frequency_hz: float
    amplitude_db: float


@dataclass(frozen=True, eq=False)
class SpectralFrame:
    """dB magnitudes of one rendered analyser frame, indexed by bin."""
    magnitudes_db: np.ndarray
    sample_rate: int
    fft_size: int

    @property
    def bin_count(self) -> int:
        return int(self.magnitudes_db.shape[0])

    def bin_frequency(self, i):
        return i * self.sample_rate / self.fft_size


def amplitude_to_db(x, ref=1.0, amin=1e-12):
    x = np.maximum(x, amin)
    return 20.0 * np.log10(x / ref)


SEMITONE = 2.0 ** (1 / 12)


def resolves_semitones(sample_rate: float, fft_size: int, low_hz: float) -> bool:
    """True when one bin is narrower than the semitone step at `low_hz`."""
    return sample_rate / fft_size < low_hz * (SEMITONE - 1.0)


def check_resolution(sample_rate: int, config: AnalyserConfig) -> bool:
    ok = resolves_semitones(sample_rate, config.fft_size, config.band_low_hz)
    if not ok:
        logger.warning("[PEAKS] %d-point FFT at %d Hz (%.2f Hz bins) cannot separate semitones near %.0f Hz",
                       config.fft_size, sample_rate, sample_rate / config.fft_size, config.band_low_hz)
    return ok


def _frame_starts(n: int, fft_size: int) -> List[int]:
    # full frames laid back from the end of the block, oldest first
    if n <= fft_size:
        return [0]
    count = n // fft_size
    last = n - fft_size
    return [last - k * fft_size for k in range(count - 1, -1, -1)]


def render_spectrum(samples: np.ndarray, sample_rate: int, config: AnalyserConfig) -> SpectralFrame:
    """Render a mono block the way an analyser node sees it after playback.

    The block is cut into consecutive `fft_size` frames ending at the last
    sample. Each frame is Blackman-windowed, transformed and normalised by
    `fft_size`; magnitudes are blended frame to frame with `smoothing`
    (0 keeps only the final frame). A block shorter than one frame is
    windowed over its own length and zero-padded. The result is in dB,
    clamped to [min_db, max_db].
    """
    x = np.asarray(samples, dtype=np.float64)
    if x.ndim != 1 or x.size == 0:
        raise AnalysisFailure("cannot render an empty block")
    if sample_rate <= 0:
        raise AnalysisFailure(f"invalid sample rate {sample_rate}")
    if not np.all(np.isfinite(x)):
        raise AnalysisFailure("block contains non-finite samples")

    n_fft = config.fft_size
    frame_len = min(x.size, n_fft)
    win = get_window("blackman", frame_len, fftbins=True)
    mag = None
    for start in _frame_starts(x.size, n_fft):
        spec = np.abs(rfft(x[start:start + frame_len] * win, n=n_fft))[: n_fft // 2] / n_fft
        if mag is None:
            mag = spec
        else:
            mag = config.smoothing * mag + (1.0 - config.smoothing) * spec
    db = np.clip(amplitude_to_db(mag), config.min_db, config.max_db)
    return SpectralFrame(db, int(sample_rate), n_fft)


def find_peaks_in_frame(frame: SpectralFrame, threshold_db: float,
                        band_low_hz: float, band_high_hz: float) -> List[Peak]:
    """Strict local maxima above `threshold_db` inside the band, loudest first."""
    db = frame.magnitudes_db
    if db.size < FIRST_BIN + 2:
        return []
    pk, _ = find_peaks(db, height=threshold_db)
    pk = pk[pk >= FIRST_BIN]
    # find_peaks accepts plateaus and an inclusive height; keep strict maxima only
    pk = pk[(db[pk] > threshold_db) & (db[pk] > db[pk - 1]) & (db[pk] > db[pk + 1])]
    freqs = frame.bin_frequency(pk.astype(np.float64))
    inband = (freqs >= band_low_hz) & (freqs <= band_high_hz)
    pk, freqs = pk[inband], freqs[inband]
    order = np.argsort(-db[pk], kind="stable")
    peaks = [Peak(float(freqs[i]), float(db[pk[i]])) for i in order]
    logger.debug("[PEAKS] %d peaks in %.0f-%.0f Hz above %.1f dB",
                 len(peaks), band_low_hz, band_high_hz, threshold_db)
    return peaks


def extract_peaks_with(buffer: SampleBuffer, config: AnalyserConfig) -> List[Peak]:
    buffer.validate()
    check_resolution(buffer.sample_rate, config)
    frame = render_spectrum(buffer.mono(), buffer.sample_rate, config)
    return find_peaks_in_frame(frame, config.threshold_db, config.band_low_hz, config.band_high_hz)


def extract_peaks(buffer: SampleBuffer, fft_size: int, min_db: float,
                  band_low_hz: float, band_high_hz: float, *,
                  threshold_db: float = -70.0, max_db: float = -10.0,
                  smoothing: float = 0.0) -> List[Peak]:
    """Peaks of `buffer` with an explicit analyser setup.

    `min_db` is the spectrum floor; a bin must also clear `threshold_db` to
    count as a peak.
    """
    config = AnalyserConfig(
        fft_size=fft_size, min_db=min_db, max_db=max_db, smoothing=smoothing,
        threshold_db=threshold_db, band_low_hz=band_low_hz, band_high_hz=band_high_hz,
    )
    return extract_peaks_with(buffer, config)


def dominant_frequency(buffer: SampleBuffer, config: AnalyserConfig) -> Optional[float]:
    """Frequency of the strongest in-band peak, or None when there is none."""
    peaks = extract_peaks_with(buffer, config)
    if not peaks:
        return None
    logger.info("[PEAKS] strongest peaks: %s",
                ", ".join(f"{p.frequency_hz:.2f}" for p in peaks[:5]))
    return peaks[0].frequency_hz
