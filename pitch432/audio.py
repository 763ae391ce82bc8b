from __future__ import annotations
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, Tuple, Union

import numpy as np
import soundfile as sf

from pitch432.errors import DecodeFailure, EncodingPrecondition


def _frozen(x: np.ndarray) -> np.ndarray:
    a = np.array(x, dtype=np.float32, copy=True)
    a.setflags(write=False)
    return a


@dataclass(frozen=True, eq=False)
class SampleBuffer:
    """Decoded PCM audio: one float array per channel, all the same length.

    Buffers are never mutated; every stage that changes audio returns a new
    buffer. `validate()` is the only place the invariants are checked so a
    malformed buffer can still be built and then refused by the encoder.
    """
    channels: Tuple[np.ndarray, ...]
    sample_rate: int

    def __post_init__(self) -> None:
        # whole-number rates become int; anything else is left for validate() to refuse
        rate = self.sample_rate
        whole_float = isinstance(rate, (float, np.floating)) and float(rate).is_integer()
        if whole_float or isinstance(rate, np.integer):
            object.__setattr__(self, "sample_rate", int(rate))

    @classmethod
    def from_channels(cls, channels: Sequence[np.ndarray], sample_rate: int) -> "SampleBuffer":
        return cls(tuple(_frozen(c) for c in channels), sample_rate)

    @classmethod
    def from_array(cls, y: np.ndarray, sample_rate: int) -> "SampleBuffer":
        """Build from soundfile's (frames, channels) layout or a 1-D mono array."""
        y = np.asarray(y)
        if y.ndim == 1:
            return cls.from_channels([y], sample_rate)
        if y.ndim != 2:
            raise EncodingPrecondition(f"expected a 1-D or 2-D sample array, got {y.ndim}-D")
        return cls.from_channels([y[:, c] for c in range(y.shape[1])], sample_rate)

    @property
    def channel_count(self) -> int:
        return len(self.channels)

    @property
    def sample_count(self) -> int:
        return int(self.channels[0].shape[0]) if self.channels else 0

    @property
    def duration(self) -> float:
        return self.sample_count / self.sample_rate if self.sample_rate > 0 else 0.0

    def validate(self) -> "SampleBuffer":
        if not self.channels:
            raise EncodingPrecondition("buffer has no channels")
        if isinstance(self.sample_rate, bool) or not isinstance(self.sample_rate, int):
            raise EncodingPrecondition(f"sample rate must be a whole number of Hz, got {self.sample_rate!r}")
        if self.sample_rate <= 0:
            raise EncodingPrecondition(f"sample rate must be positive, got {self.sample_rate}")
        lengths = {c.shape[0] if c.ndim == 1 else -1 for c in self.channels}
        if -1 in lengths:
            raise EncodingPrecondition("every channel must be a 1-D array")
        if len(lengths) != 1:
            raise EncodingPrecondition(f"channel lengths differ: {sorted(lengths)}")
        return self

    def as_array(self) -> np.ndarray:
        """Channels x frames, float64."""
        return np.stack([np.asarray(c, dtype=np.float64) for c in self.channels])

    def mono(self) -> np.ndarray:
        # same down-mix as an analyser node: plain channel average
        return self.as_array().mean(axis=0)

    def slice(self, start: int, end: int) -> "SampleBuffer":
        start = max(0, int(start))
        end = min(self.sample_count, int(end))
        return SampleBuffer.from_channels([c[start:end] for c in self.channels], self.sample_rate)


def decode_audio(raw: bytes) -> SampleBuffer:
    """Decode an audio file held in memory. Raises DecodeFailure."""
    try:
        y, sr = sf.read(io.BytesIO(raw), dtype='float32', always_2d=True)
    except (RuntimeError, ValueError, TypeError) as exc:
        raise DecodeFailure(f"could not decode audio: {exc}") from exc
    if y.shape[0] == 0:
        raise DecodeFailure("decoded audio contains no samples")
    return SampleBuffer.from_array(y, sr)


def load_audio(path: Union[str, Path]) -> SampleBuffer:
    path = Path(path)
    if not path.is_file():
        raise DecodeFailure(f"no such audio file: {path}")
    return decode_audio(path.read_bytes())
