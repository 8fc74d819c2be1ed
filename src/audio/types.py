"""
src/audio/types.py
===================
Shared audio types and canonical format constants — voxnorm
"""

from dataclasses import dataclass
from enum import Enum


# ---------------------------------------------------------------------------
# Canonical output format
# ---------------------------------------------------------------------------

TARGET_SAMPLE_RATE = 16000  # Hz
TARGET_CHANNELS = 1  # mono
TARGET_SAMPLE_WIDTH = 2  # bytes (16-bit signed PCM)

AUDIO_MEDIA_TYPE_PREFIX = "audio/"

# Used when a container does not report the track's rate or channel count
FALLBACK_SAMPLE_RATE = 48000
FALLBACK_CHANNELS = 2


# ---------------------------------------------------------------------------
# Track descriptor
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AudioTrackDescriptor:
    """The audio track selected from a source at decode-session start."""

    index: int
    media_type: str
    sample_rate: int
    channels: int

    def __post_init__(self) -> None:
        if not self.media_type.startswith(AUDIO_MEDIA_TYPE_PREFIX):
            raise ValueError(f"Not an audio media type: '{self.media_type}'")
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.channels <= 0:
            raise ValueError(f"channels must be positive, got {self.channels}")


# ---------------------------------------------------------------------------
# Conversion state machine
# ---------------------------------------------------------------------------


class ConversionState(str, Enum):
    """Lifecycle of one conversion."""

    IDLE = "idle"
    OPENED = "opened"
    DECODING = "decoding"
    DRAINING = "draining"
    ENCODED = "encoded"
    CLOSED = "closed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: dict[ConversionState, set[ConversionState]] = {
    ConversionState.IDLE: {ConversionState.OPENED},
    ConversionState.OPENED: {ConversionState.DECODING},
    ConversionState.DECODING: {ConversionState.DECODING, ConversionState.DRAINING},
    ConversionState.DRAINING: {ConversionState.ENCODED},
    ConversionState.ENCODED: {ConversionState.CLOSED},
    ConversionState.CLOSED: set(),
    ConversionState.FAILED: set(),
}


def can_transition(current: ConversionState, new: ConversionState) -> bool:
    """Return True if *current* → *new* is a legal transition."""
    if new is ConversionState.FAILED:
        return current not in (ConversionState.CLOSED, ConversionState.FAILED)
    return new in _ALLOWED_TRANSITIONS[current]
