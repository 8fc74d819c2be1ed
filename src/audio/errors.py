"""
src/audio/errors.py
====================
Audio Normalization Errors — voxnorm

Responsibility:
    - Define the complete failure taxonomy of a single conversion
    - Give callers one base class (AudioNormalizationError) to catch

Every error here is terminal for the conversion that raised it. No
partial output accompanies any of them.
"""


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class AudioNormalizationError(Exception):
    """Raised when audio normalization fails."""
    pass


class AudioValidationError(AudioNormalizationError):
    """Raised when the supplied audio is rejected before decoding starts."""
    pass


# ---------------------------------------------------------------------------
# Decode failures
# ---------------------------------------------------------------------------


class DecodeError(AudioNormalizationError):
    """Base class for failures raised by a decoder backend."""
    pass


class SourceUnreadableError(DecodeError):
    """The source could not be opened or its container could not be parsed."""
    pass


class NoAudioTrackError(DecodeError):
    """The container holds no track whose media type starts with ``audio/``."""
    pass


class UnsupportedCodecError(DecodeError):
    """No decoder is available for the selected track's codec."""

    def __init__(self, media_type: str, detail: str = ""):
        self.media_type = media_type
        message = f"No decoder available for '{media_type}'."
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)


class StreamFailureError(DecodeError):
    """Decoding failed part-way through the track."""
    pass


# ---------------------------------------------------------------------------
# Session-level failures
# ---------------------------------------------------------------------------


class EncodeFailureError(AudioNormalizationError):
    """Writing the encoded container to storage failed."""
    pass


class CapacityExceededError(AudioNormalizationError):
    """The decoded track is longer than the configured maximum duration."""

    def __init__(self, max_samples: int, sample_rate: int):
        self.max_samples = max_samples
        self.max_duration_seconds = max_samples / sample_rate
        super().__init__(
            f"Audio exceeds the maximum allowed duration "
            f"({self.max_duration_seconds:.1f}s)."
        )


class ConversionCancelledError(AudioNormalizationError):
    """The conversion was cancelled before it completed."""
    pass
