"""
src/audio/accumulator.py
=========================
PCM Accumulator — voxnorm

Responsibility:
    - Collect converted 16 kHz mono samples across all decoded chunks
    - Enforce the maximum track duration so very long recordings fail
      with a clear error instead of exhausting memory

The whole track is buffered in memory before encoding; there is no
spill-to-disk or incremental encode path.
"""

import logging

import numpy as np

from src.audio.errors import CapacityExceededError
from src.audio.types import TARGET_SAMPLE_RATE

logger = logging.getLogger("voxnorm.audio.accumulator")


class PcmAccumulator:
    """Append-only int16 sample buffer owned by a single conversion."""

    def __init__(self, max_samples: int | None = None, sample_rate: int = TARGET_SAMPLE_RATE) -> None:
        if max_samples is not None and max_samples < 0:
            raise ValueError(f"max_samples must be >= 0, got {max_samples}")
        self.max_samples = max_samples
        self.sample_rate = sample_rate
        self._parts: list[np.ndarray] = []
        self._length = 0

    def __len__(self) -> int:
        return self._length

    @property
    def duration_seconds(self) -> float:
        return self._length / self.sample_rate

    def append(self, samples: np.ndarray) -> None:
        """
        Append *samples* (copied) to the end of the stream.

        Raises:
            CapacityExceededError: If the append would grow the stream
                past ``max_samples``. The stream is left unchanged.
        """
        n = len(samples)
        if self.max_samples is not None and self._length + n > self.max_samples:
            logger.error(
                "Capacity exceeded: %d + %d samples > limit %d.",
                self._length, n, self.max_samples,
            )
            raise CapacityExceededError(self.max_samples, self.sample_rate)
        if n == 0:
            return
        self._parts.append(np.array(samples, dtype=np.int16))
        self._length += n

    def to_array(self) -> np.ndarray:
        """Return a new contiguous int16 array of all accumulated samples."""
        if not self._parts:
            return np.zeros(0, dtype=np.int16)
        return np.concatenate(self._parts)
