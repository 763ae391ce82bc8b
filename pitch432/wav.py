from __future__ import annotations
import base64
import logging
import struct

import numpy as np

from pitch432.audio import SampleBuffer
from pitch432.errors import EncodingPrecondition

logger = logging.getLogger("pitch432.wav")

HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
PCM_FORMAT = 1

# RIFF id, chunk size, WAVE, "fmt ", fmt size, format, channels, rate,
# byte rate, block align, bits, "data", data size
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


def wav_header(channels: int, sample_rate: int, data_size: int) -> bytes:
    block_align = channels * BITS_PER_SAMPLE // 8
    return _HEADER.pack(
        b"RIFF", 36 + data_size, b"WAVE",
        b"fmt ", 16, PCM_FORMAT, channels, sample_rate,
        sample_rate * block_align, block_align, BITS_PER_SAMPLE,
        b"data", data_size,
    )


def quantize(samples: np.ndarray) -> np.ndarray:
    """Clamp to [-1, 1] and scale to int16: negatives by 32768, positives by 32767.

    Values are truncated toward zero, not rounded.
    """
    x = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(x < 0, x * 32768.0, x * 32767.0)
    return np.trunc(scaled).astype("<i2")


def encode(buffer: SampleBuffer) -> bytes:
    """Serialize `buffer` as a canonical 16-bit PCM WAV byte string."""
    buffer.validate()
    frames = buffer.as_array()
    if not np.all(np.isfinite(frames)):
        raise EncodingPrecondition("buffer contains non-finite samples")
    data_size = buffer.sample_count * buffer.channel_count * BITS_PER_SAMPLE // 8
    if 36 + data_size > 0xFFFFFFFF:
        raise EncodingPrecondition(f"{data_size} bytes of PCM data do not fit in a WAV file")
    byte_rate = buffer.sample_rate * buffer.channel_count * BITS_PER_SAMPLE // 8
    if byte_rate > 0xFFFFFFFF or buffer.channel_count > 0xFFFF:
        raise EncodingPrecondition("sample rate or channel count too large for a WAV header")
    # frames x channels, row-major == interleaved
    pcm = quantize(frames).T.tobytes()
    logger.debug("[WAV] %d frames, %d channels, %d Hz -> %d bytes",
                 buffer.sample_count, buffer.channel_count, buffer.sample_rate, HEADER_SIZE + data_size)
    return wav_header(buffer.channel_count, buffer.sample_rate, data_size) + pcm


def encode_to_base64(buffer: SampleBuffer) -> str:
    return base64.b64encode(encode(buffer)).decode('ascii')
