from __future__ import annotations


class Pitch432Error(Exception):
    """Base class for every failure raised by the pitch432 core."""


class DecodeFailure(Pitch432Error):
    """The decoder could not turn the input bytes into a sample buffer."""


class AnalysisFailure(Pitch432Error):
    """A spectrum render failed (empty block, non-finite samples, bad FFT)."""


class EncodingPrecondition(Pitch432Error, ValueError):
    """The buffer is malformed: no channels, ragged channels or a bad rate."""


class ConversionCancelled(Pitch432Error):
    """The caller stopped a chunked conversion between two chunks."""
