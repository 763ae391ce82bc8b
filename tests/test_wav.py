"""
Tests for pitch432/wav.py — byte layout, quantisation and preconditions.
"""

import base64
import io
import struct

import numpy as np
import pytest
import soundfile as sf

from pitch432.audio import SampleBuffer
from pitch432.errors import EncodingPrecondition
from pitch432.wav import HEADER_SIZE, encode, encode_to_base64, quantize


def _header(wav):
    return struct.unpack("<4sI4s4sIHHIIHH4sI", wav[:HEADER_SIZE])


class TestHeader:
    def test_single_max_sample(self):
        """One mono sample of 1.0 at 44.1 kHz: 46 bytes, ChunkSize 38, data 0x7FFF."""
        wav = encode(SampleBuffer.from_array(np.array([1.0]), 44100))
        assert len(wav) == 46
        assert struct.unpack("<I", wav[4:8])[0] == 38
        assert wav[44:46] == b"\xff\x7f"
        assert struct.unpack("<h", wav[44:46])[0] == 0x7FFF

    def test_stereo_fields(self, make_stereo):
        buf = make_stereo(np.zeros(10), np.zeros(10), sr=48000)
        riff, chunk, wave, fmt, fmt_size, fmt_tag, ch, rate, byte_rate, align, bits, data, size = _header(encode(buf))
        assert (riff, wave, fmt, data) == (b"RIFF", b"WAVE", b"fmt ", b"data")
        assert fmt_size == 16
        assert fmt_tag == 1
        assert ch == 2
        assert rate == 48000
        assert byte_rate == 48000 * 2 * 2
        assert align == 4
        assert bits == 16
        assert size == 10 * 2 * 2
        assert chunk == 36 + size

    def test_empty_buffer_is_header_only(self):
        wav = encode(SampleBuffer.from_array(np.zeros(0), 44100))
        assert len(wav) == HEADER_SIZE
        assert _header(wav)[-1] == 0


class TestQuantize:
    def test_asymmetric_scaling(self):
        assert quantize(np.array([1.0, -1.0, 0.0])).tolist() == [32767, -32768, 0]

    def test_clamps_out_of_range(self):
        assert quantize(np.array([2.5, -7.0])).tolist() == [32767, -32768]

    def test_truncates_toward_zero(self):
        # 0.5 * 32767 = 16383.5, -0.5 * 32768 = -16384 exactly
        assert quantize(np.array([0.5, -0.5, -0.00002])).tolist() == [16383, -16384, 0]


class TestInterleaving:
    def test_frames_are_interleaved(self, make_stereo):
        buf = make_stereo(np.array([1.0, 0.0]), np.array([-1.0, 0.5]))
        pcm = np.frombuffer(encode(buf)[HEADER_SIZE:], dtype="<i2")
        assert pcm.tolist() == [32767, -32768, 0, 16383]


class TestProperties:
    def test_idempotent(self, make_sine):
        buf = make_sine(440.0, duration=0.5)
        assert encode(buf) == encode(buf)

    def test_soundfile_round_trip(self, make_stereo):
        """soundfile decodes our bytes to the same int16 values and near the input floats."""
        rng = np.random.default_rng(3)
        left, right = rng.uniform(-1, 1, 2000), rng.uniform(-1, 1, 2000)
        buf = make_stereo(left, right, sr=22050)
        wav = encode(buf)

        ints, sr = sf.read(io.BytesIO(wav), dtype="int16", always_2d=True)
        assert sr == 22050
        assert np.array_equal(ints[:, 0], quantize(buf.channels[0]))
        assert np.array_equal(ints[:, 1], quantize(buf.channels[1]))

        floats, _ = sf.read(io.BytesIO(wav), dtype="float64", always_2d=True)
        # truncation plus the 32767/32768 scale mismatch bounds the error by two steps
        assert np.max(np.abs(floats.T - buf.as_array())) <= 2.0 / 32768

    def test_base64_wrapper(self):
        buf = SampleBuffer.from_array(np.array([0.0, 0.1]), 8000)
        assert base64.b64decode(encode_to_base64(buf)) == encode(buf)


class TestPreconditions:
    def test_ragged_channels_refused(self):
        buf = SampleBuffer.from_channels([np.zeros(3), np.zeros(4)], 44100)
        with pytest.raises(EncodingPrecondition):
            encode(buf)

    def test_zero_channels_refused(self):
        with pytest.raises(EncodingPrecondition):
            encode(SampleBuffer((), 44100))

    def test_bad_rate_refused(self):
        with pytest.raises(EncodingPrecondition):
            encode(SampleBuffer.from_array(np.zeros(3), 0))

    def test_fractional_rate_refused(self):
        buf = SampleBuffer((np.zeros(2, dtype=np.float32),), 44100.5)
        with pytest.raises(EncodingPrecondition, match="whole number"):
            encode(buf)

    def test_whole_float_rate_is_accepted(self):
        """A rate given as 44100.0 encodes exactly like the integer rate."""
        as_float = SampleBuffer((np.zeros(2, dtype=np.float32),), 44100.0)
        as_int = SampleBuffer((np.zeros(2, dtype=np.float32),), 44100)
        assert as_float.sample_rate == 44100
        assert isinstance(as_float.sample_rate, int)
        assert encode(as_float) == encode(as_int)

    def test_oversized_rate_refused(self):
        with pytest.raises(EncodingPrecondition, match="too large"):
            encode(SampleBuffer.from_array(np.zeros(2), 2 ** 32))

    def test_non_finite_refused(self):
        with pytest.raises(EncodingPrecondition, match="non-finite"):
            encode(SampleBuffer.from_array(np.array([0.0, np.nan]), 44100))
