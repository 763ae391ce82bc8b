from __future__ import annotations
import logging
from collections import Counter
from typing import List, Sequence, Tuple

from pitch432.audio import SampleBuffer
from pitch432.config import AnalysisConfig, DETAILED_ANALYSIS
from pitch432.errors import AnalysisFailure
from pitch432.peaks import check_resolution, find_peaks_in_frame, render_spectrum
from pitch432.tuning import (
    ALTERNATE_HZ, STANDARD_HZ, ExactMatch, TuningVerdict, Undetermined, classify,
)

logger = logging.getLogger("pitch432.segments")


def segment_bounds(sample_count: int, sample_rate: int,
                   segment_seconds: float = 5.0, max_segments: int = 3) -> List[Tuple[int, int]]:
    """[start, end) sample ranges of the analysis segments.

    At most `max_segments` windows of up to `segment_seconds`, spread evenly
    over the buffer. Anything shorter than one window is a single segment.
    """
    if sample_count <= 0:
        return []
    seg_len = min(sample_count, max(1, int(segment_seconds * sample_rate)))
    total = min(max_segments, sample_count // seg_len)
    stride = sample_count // total
    bounds = []
    for s in range(total):
        start = s * stride
        bounds.append((start, min(start + seg_len, sample_count)))
    return bounds


def analyze_segment(segment: SampleBuffer, config: AnalysisConfig = DETAILED_ANALYSIS) -> TuningVerdict:
    a = config.analyser
    frame = render_spectrum(segment.mono(), segment.sample_rate, a)
    peaks = find_peaks_in_frame(frame, a.threshold_db, a.band_low_hz, a.band_high_hz)
    return classify(peaks, config.classifier)


def analyze_segments(buffer: SampleBuffer, config: AnalysisConfig = DETAILED_ANALYSIS) -> List[TuningVerdict]:
    buffer.validate()
    bounds = segment_bounds(buffer.sample_count, buffer.sample_rate,
                            config.segment_seconds, config.max_segments)
    check_resolution(buffer.sample_rate, config.analyser)
    verdicts: List[TuningVerdict] = []
    for i, (start, end) in enumerate(bounds, 1):
        logger.info("[SEGMENTS] analysing segment %d/%d (%.2fs)",
                    i, len(bounds), (end - start) / buffer.sample_rate)
        try:
            verdict = analyze_segment(buffer.slice(start, end), config)
        except AnalysisFailure as exc:
            logger.warning("[SEGMENTS] segment %d failed, counting it as undetermined: %s", i, exc)
            verdict = Undetermined()
        verdicts.append(verdict)
    logger.info("[SEGMENTS] per-segment verdicts: %s", [v.numeric for v in verdicts])
    return verdicts


def reduce_verdicts(verdicts: Sequence[TuningVerdict]) -> TuningVerdict:
    """432 beats everything, then 440, then the most common verdict (first seen on ties)."""
    if not verdicts:
        return Undetermined()
    if ExactMatch(ALTERNATE_HZ) in verdicts:
        return ExactMatch(ALTERNATE_HZ)
    if ExactMatch(STANDARD_HZ) in verdicts:
        return ExactMatch(STANDARD_HZ)
    # Counter keeps insertion order among equal counts
    return Counter(verdicts).most_common(1)[0][0]


def analyze(buffer: SampleBuffer, config: AnalysisConfig = DETAILED_ANALYSIS) -> TuningVerdict:
    return reduce_verdicts(analyze_segments(buffer, config))
