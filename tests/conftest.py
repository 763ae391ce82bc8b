"""
Shared signal generators for the test suite.

Every fixture returns a factory so tests can pick frequency, rate and
duration inline. Signals stay at 0.9 peak amplitude unless noted.
"""

import numpy as np
import pytest

from pitch432.audio import SampleBuffer

SR = 44100


def sine(freq, duration=2.0, sr=SR, amplitude=0.9):
    t = np.arange(int(sr * duration)) / sr
    return amplitude * np.sin(2 * np.pi * freq * t)


@pytest.fixture
def make_sine():
    """Mono SampleBuffer holding a pure sine."""

    def _make(freq, duration=2.0, sr=SR, amplitude=0.9):
        return SampleBuffer.from_array(sine(freq, duration, sr, amplitude), sr)

    return _make


@pytest.fixture
def make_noisy_sine():
    """Sine plus white noise at `noise` times full scale (seeded)."""

    def _make(freq, duration=3.0, sr=SR, noise=0.1, seed=0):
        rng = np.random.default_rng(seed)
        y = sine(freq, duration, sr) + noise * rng.uniform(-1.0, 1.0, int(sr * duration))
        return SampleBuffer.from_array(np.clip(y, -1.0, 1.0), sr)

    return _make


@pytest.fixture
def make_stereo():
    """Stereo buffer with independent channels (frames x channels layout)."""

    def _make(left, right, sr=SR):
        return SampleBuffer.from_array(np.column_stack([left, right]), sr)

    return _make
