"""
src/audio/pcm.py
=================
PCM Sample Operations — voxnorm

Responsibility:
    - Downmix interleaved multi-channel 16-bit chunks to mono
    - Convert mono 16-bit samples from the native rate to 16 kHz

Resampling is deliberately simple: a floating-point cursor walks the
input in steps of ``src_rate / target_rate`` and picks the sample at
``floor(cursor)``. Downsampling therefore decimates (no anti-alias
filter) and upsampling duplicates samples (no interpolation). This is
adequate for speech-model input, not for general audio, and consumers
are calibrated to this exact output; do not swap in a band-limited
resampler here.

This module does NOT:
    - Decode compressed audio
    - Hold any state across conversions
"""

import logging

import numpy as np

from src.audio.types import TARGET_SAMPLE_RATE

logger = logging.getLogger("voxnorm.audio.pcm")


# ---------------------------------------------------------------------------
# Downmix
# ---------------------------------------------------------------------------


def downmix(chunk: np.ndarray, channels: int) -> np.ndarray:
    """
    Average interleaved channels into one mono sample per frame.

    Each frame's samples are summed in 32-bit and divided by *channels*
    with truncation toward zero (``3`` and ``-2`` average to ``0``).
    A trailing partial frame is dropped.

    Args:
        chunk:    1-D int16 array of interleaved samples.
        channels: Number of interleaved channels (>= 1).

    Returns:
        1-D int16 array of ``len(chunk) // channels`` mono samples, or
        *chunk* itself when ``channels == 1``.

    Raises:
        ValueError: If *channels* is less than 1.
    """
    if channels < 1:
        raise ValueError(f"channels must be >= 1, got {channels}")

    chunk = np.asarray(chunk, dtype=np.int16)
    if channels == 1:
        return chunk

    n_frames = len(chunk) // channels
    usable = n_frames * channels
    if usable != len(chunk):
        logger.warning(
            "Dropping %d trailing sample(s) of a partial %d-channel frame.",
            len(chunk) - usable, channels,
        )

    sums = chunk[:usable].reshape(n_frames, channels).sum(axis=1, dtype=np.int32)
    # numpy's // floors; average must truncate toward zero
    mono = np.sign(sums) * (np.abs(sums) // channels)
    return mono.astype(np.int16)


# ---------------------------------------------------------------------------
# Rate conversion
# ---------------------------------------------------------------------------


def _validate_rates(src_rate: int, target_rate: int) -> None:
    if src_rate <= 0 or target_rate <= 0:
        raise ValueError(
            f"Sample rates must be positive (src={src_rate}, target={target_rate})."
        )


def _cursor_positions(start: float, ratio: float, length: int) -> tuple[np.ndarray, float]:
    """
    Walk a cursor from *start* in steps of *ratio* over *length* samples.

    The cursor advances by repeated addition (a running sum), not by
    ``start + k * ratio``, so the picked indices match a sample-by-sample
    loop exactly.

    Returns:
        ``(positions, next_cursor)`` where *positions* are all cursor
        values below *length* and *next_cursor* is the first one that
        is not.
    """
    if start >= length:
        return np.zeros(0, dtype=np.float64), start

    steps = np.full(int((length - start) / ratio) + 3, ratio, dtype=np.float64)
    steps[0] = start
    cursor = np.cumsum(steps)
    while cursor[-1] < length:
        tail = np.cumsum(np.concatenate(([cursor[-1]], np.full(len(cursor), ratio))))
        cursor = np.concatenate((cursor, tail[1:]))

    count = int(np.searchsorted(cursor, length, side="left"))
    return cursor[:count], float(cursor[count])


def resample(mono: np.ndarray, src_rate: int, target_rate: int = TARGET_SAMPLE_RATE) -> np.ndarray:
    """
    Convert mono samples from *src_rate* to *target_rate*.

    Identity when the rates match. Otherwise emits ``mono[floor(i)]``
    for ``i = 0, r, 2r, ...`` while ``i < len(mono)``, with
    ``r = src_rate / target_rate``.

    Args:
        mono:        1-D int16 array of mono samples.
        src_rate:    Native sample rate in Hz.
        target_rate: Output sample rate in Hz (default 16000).

    Returns:
        1-D int16 array at *target_rate*.

    Raises:
        ValueError: If either rate is not positive.
    """
    _validate_rates(src_rate, target_rate)
    mono = np.asarray(mono, dtype=np.int16)
    if src_rate == target_rate:
        return mono

    positions, _ = _cursor_positions(0.0, src_rate / target_rate, len(mono))
    return mono[positions.astype(np.intp)]


class RateConverter:
    """
    Per-conversion rate converter.

    By default every chunk is resampled independently, restarting the
    cursor at 0.0. This leaves a small phase discontinuity at chunk
    boundaries for rates that are not an integer multiple of the target,
    and is the established output of the pipeline. With
    ``carry_phase=True`` the fractional cursor is carried from one chunk
    to the next, so a chunked track resamples exactly like the same
    track in one piece.
    """

    def __init__(
        self,
        src_rate: int,
        target_rate: int = TARGET_SAMPLE_RATE,
        *,
        carry_phase: bool = False,
    ) -> None:
        _validate_rates(src_rate, target_rate)
        self.src_rate = src_rate
        self.target_rate = target_rate
        self.carry_phase = carry_phase
        self._ratio = src_rate / target_rate
        # Absolute track position; the running sum is never rebased
        self._cursor = 0.0
        self._consumed = 0

    @property
    def is_identity(self) -> bool:
        return self.src_rate == self.target_rate

    def convert(self, mono: np.ndarray) -> np.ndarray:
        """Resample one mono chunk; chunks must be supplied in track order."""
        if self.is_identity or not self.carry_phase:
            return resample(mono, self.src_rate, self.target_rate)

        mono = np.asarray(mono, dtype=np.int16)
        end = self._consumed + len(mono)
        positions, self._cursor = _cursor_positions(self._cursor, self._ratio, end)
        indices = positions.astype(np.intp) - self._consumed
        self._consumed = end
        return mono[indices]
