"""Playback-rate retuning: change pitch and duration together by one ratio.

Output sample k is read from the input at virtual position k * ratio, so
the output holds floor(n / ratio) samples. Long buffers are rendered in
fixed input windows into a pre-allocated output. Each window renders
exactly the output samples whose read position falls inside it and reads
one sample past its end for interpolation, so chunked and one-pass output
are identical.
"""
from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from pathlib import PurePath
from typing import Callable, Iterator, Optional, Tuple

import numpy as np

from pitch432.audio import SampleBuffer
from pitch432.config import DEFAULT_RETUNE, RetuneConfig
from pitch432.errors import AnalysisFailure, ConversionCancelled
from pitch432.peaks import dominant_frequency
from pitch432.segments import analyze_segment
from pitch432.tuning import DominantFrequency, ExactMatch, TuningVerdict, Undetermined

logger = logging.getLogger("pitch432.resample")

ProgressFn = Callable[[int, int], None]
StopFn = Callable[[], bool]


def output_length(sample_count: int, ratio: float) -> int:
    return int(math.floor(sample_count / ratio))


def _read_at(samples: np.ndarray, positions: np.ndarray, interpolation: str, offset: int = 0) -> np.ndarray:
    # positions are absolute; `samples` starts at input index `offset`
    n = samples.shape[-1]
    if interpolation == "nearest":
        idx = np.minimum(np.rint(positions).astype(np.int64) - offset, n - 1)
        return samples[..., idx]
    whole = np.floor(positions)
    frac = positions - whole
    base = np.clip(whole.astype(np.int64) - offset, 0, n - 1)
    nxt = np.minimum(base + 1, n - 1)
    return samples[..., base] * (1.0 - frac) + samples[..., nxt] * frac


def resample_by_ratio(samples: np.ndarray, ratio: float, interpolation: str = "linear") -> np.ndarray:
    """Re-render `samples` (1-D, or channels x frames) at playback rate `ratio`."""
    if ratio <= 0:
        raise ValueError(f"ratio must be positive, got {ratio}")
    x = np.asarray(samples, dtype=np.float64)
    n = x.shape[-1]
    out_len = output_length(n, ratio)
    if n == 0 or out_len == 0:
        return np.zeros(x.shape[:-1] + (0,))
    return _read_at(x, np.arange(out_len) * ratio, interpolation)


def _first_output_at(position: int, ratio: float, out_len: int) -> int:
    k = int(math.ceil(position / ratio))
    # guard against float rounding on either side of the boundary
    while k > 0 and (k - 1) * ratio >= position:
        k -= 1
    while k * ratio < position:
        k += 1
    return min(k, out_len)


def iter_resampled_chunks(samples: np.ndarray, ratio: float, chunk_size: int,
                          interpolation: str = "linear") -> Iterator[Tuple[int, np.ndarray]]:
    """Yield (dest_start, rendered) for each `chunk_size` input window in order.

    Nothing is rendered ahead of the consumer, so stopping the iteration
    between chunks stops the work.
    """
    if ratio <= 0:
        raise ValueError(f"ratio must be positive, got {ratio}")
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    x = np.asarray(samples, dtype=np.float64)
    n = x.shape[-1]
    out_len = output_length(n, ratio)
    for start in range(0, n, chunk_size):
        end = min(start + chunk_size, n)
        k0 = _first_output_at(start, ratio, out_len)
        k1 = _first_output_at(end, ratio, out_len) if end < n else out_len
        if k1 <= k0:
            continue
        lo = max(0, start - 1)
        window = x[..., lo:min(n, end + 1)]
        yield k0, _read_at(window, np.arange(k0, k1) * ratio, interpolation, offset=lo)


def resample_buffer(buffer: SampleBuffer, ratio: float, config: RetuneConfig = DEFAULT_RETUNE,
                    progress: Optional[ProgressFn] = None,
                    should_stop: Optional[StopFn] = None) -> SampleBuffer:
    buffer.validate()
    x = buffer.as_array()
    n = buffer.sample_count
    chunk_size = max(1, int(config.chunk_seconds * buffer.sample_rate))
    if n <= chunk_size:
        out = resample_by_ratio(x, ratio, config.interpolation)
        if progress is not None:
            progress(1, 1)
        return SampleBuffer.from_channels(list(out), buffer.sample_rate)

    total = math.ceil(n / chunk_size)
    logger.info("[RETUNE] processing %d chunks of %.1fs", total, config.chunk_seconds)
    out = np.zeros((buffer.channel_count, output_length(n, ratio)), dtype=np.float32)
    chunks = iter_resampled_chunks(x, ratio, chunk_size, config.interpolation)
    for done, (dest, rendered) in enumerate(chunks, 1):
        out[:, dest:dest + rendered.shape[-1]] = rendered
        logger.debug("[RETUNE] chunk %d/%d -> output[%d:%d]", done, total, dest, dest + rendered.shape[-1])
        if progress is not None:
            progress(done, total)
        if should_stop is not None and done < total and should_stop():
            chunks.close()
            raise ConversionCancelled(f"conversion stopped after chunk {done}/{total}")
    return SampleBuffer.from_channels(list(out), buffer.sample_rate)


def detect_source_tuning(buffer: SampleBuffer, config: RetuneConfig = DEFAULT_RETUNE) -> TuningVerdict:
    """Classify the leading `analysis_seconds` of the buffer."""
    lead = buffer.slice(0, int(config.analysis_seconds * buffer.sample_rate))
    return analyze_segment(lead, config.analysis)


def retune_ratio(source: TuningVerdict, target_hz: float = 432.0, fallback_hz: float = 440.0) -> float:
    if isinstance(source, (ExactMatch, DominantFrequency)) and source.numeric > 0:
        return target_hz / source.numeric
    return target_hz / fallback_hz


@dataclass(frozen=True, eq=False)
class RetuneResult:
    buffer: SampleBuffer
    source: TuningVerdict
    ratio: float
    resampled: bool
    verified_hz: Optional[float] = None


def retune_with_report(buffer: SampleBuffer, target_hz: Optional[float] = None,
                       config: RetuneConfig = DEFAULT_RETUNE,
                       progress: Optional[ProgressFn] = None,
                       should_stop: Optional[StopFn] = None) -> RetuneResult:
    target = config.target_hz if target_hz is None else float(target_hz)
    buffer.validate()
    try:
        source = detect_source_tuning(buffer, config)
    except AnalysisFailure as exc:
        logger.warning("[RETUNE] pre-analysis failed, assuming %.0f Hz source: %s", config.fallback_hz, exc)
        source = Undetermined()
    logger.info("[RETUNE] source appears tuned to %s", source.numeric or "an unknown reference")

    if isinstance(source, ExactMatch) and source.reference_hz == target:
        logger.info("[RETUNE] already at %.0f Hz, leaving audio unchanged", target)
        return RetuneResult(buffer, source, 1.0, resampled=False)

    ratio = retune_ratio(source, target, config.fallback_hz)
    logger.info("[RETUNE] applying ratio %.6f (%.2f Hz -> %.0f Hz)",
                ratio, source.numeric or config.fallback_hz, target)
    out = resample_buffer(buffer, ratio, config, progress=progress, should_stop=should_stop)

    verified = None
    if config.verify and out.sample_count:
        try:
            verified = dominant_frequency(out, config.verify_analyser)
        except AnalysisFailure as exc:
            logger.warning("[RETUNE] verification skipped: %s", exc)
        else:
            logger.info("[RETUNE] strongest peak after retune: %s Hz", verified)
    return RetuneResult(out, source, ratio, resampled=True, verified_hz=verified)


def retune(buffer: SampleBuffer, target_hz: Optional[float] = None,
           config: RetuneConfig = DEFAULT_RETUNE,
           progress: Optional[ProgressFn] = None,
           should_stop: Optional[StopFn] = None) -> SampleBuffer:
    return retune_with_report(buffer, target_hz, config, progress, should_stop).buffer


def tuned_filename(name: str, target_hz: float = 432.0) -> str:
    """"song.mp3" -> "song_432.wav"; the output is always WAV."""
    stem = PurePath(name).stem or "audio"
    return f"{stem}_{target_hz:g}.wav"
