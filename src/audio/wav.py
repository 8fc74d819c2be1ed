"""
src/audio/wav.py
=================
Canonical Container Encoder — voxnorm

Responsibility:
    - Serialize 16 kHz mono int16 samples into the canonical WAV
      container (44-byte RIFF header + little-endian PCM payload)
    - Parse that header back for verification
    - Commit an encoded buffer to storage

Header layout (little-endian):
    0  "RIFF" | 4 36+dataSize | 8 "WAVE" | 12 "fmt " | 16 16 | 20 1 (PCM)
    22 1 ch   | 24 16000      | 28 32000 | 32 2      | 34 16 | 36 "data"
    40 dataSize | 44 samples
"""

import contextlib
import io
import logging
import os
import struct
import wave
from typing import NamedTuple

import numpy as np

from src.audio.errors import EncodeFailureError
from src.audio.types import TARGET_CHANNELS, TARGET_SAMPLE_RATE, TARGET_SAMPLE_WIDTH

logger = logging.getLogger("voxnorm.audio.wav")

WAV_HEADER_SIZE = 44

_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")


class WavHeader(NamedTuple):
    chunk_id: bytes
    chunk_size: int
    format: bytes
    subchunk1_id: bytes
    subchunk1_size: int
    audio_format: int
    num_channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    subchunk2_id: bytes
    subchunk2_size: int


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode_wav(samples: np.ndarray) -> bytes:
    """
    Wrap 16 kHz mono int16 samples in the canonical WAV container.

    Args:
        samples: 1-D int16 array (any length, including 0).

    Returns:
        ``44 + 2 * len(samples)`` bytes.
    """
    pcm = np.ascontiguousarray(np.asarray(samples, dtype=np.int16).astype("<i2", copy=False))
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(TARGET_CHANNELS)
        wf.setsampwidth(TARGET_SAMPLE_WIDTH)
        wf.setframerate(TARGET_SAMPLE_RATE)
        wf.writeframes(pcm.tobytes())
    return buf.getvalue()


def read_wav_header(data: bytes) -> WavHeader:
    """
    Parse the 44-byte canonical header at the start of *data*.

    Raises:
        ValueError: If *data* is too short or is not a RIFF/WAVE buffer.
    """
    if len(data) < WAV_HEADER_SIZE:
        raise ValueError(f"WAV buffer too short: {len(data)} bytes.")
    header = WavHeader(*_HEADER_STRUCT.unpack_from(data, 0))
    if header.chunk_id != b"RIFF" or header.format != b"WAVE":
        raise ValueError("Not a RIFF/WAVE buffer.")
    if header.subchunk1_id != b"fmt " or header.subchunk2_id != b"data":
        raise ValueError("Unexpected WAV chunk layout.")
    return header


def decode_wav_samples(data: bytes) -> np.ndarray:
    """Return the int16 payload of a canonical WAV buffer."""
    header = read_wav_header(data)
    payload = data[WAV_HEADER_SIZE:WAV_HEADER_SIZE + header.subchunk2_size]
    return np.frombuffer(payload, dtype="<i2").astype(np.int16)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


def write_wav_file(path: str | os.PathLike, data: bytes) -> None:
    """
    Write an encoded buffer to *path*.

    A partially written file is removed before the error is raised.

    Raises:
        EncodeFailureError: On any I/O failure.
    """
    try:
        with open(path, "wb") as fh:
            fh.write(data)
    except OSError as exc:
        logger.error("Failed to write WAV file %s: %s", path, exc)
        with contextlib.suppress(OSError):
            os.remove(path)
        raise EncodeFailureError(f"Failed to write WAV file '{path}': {exc}") from exc

    logger.info("WAV written: %s (%d bytes)", path, len(data))
