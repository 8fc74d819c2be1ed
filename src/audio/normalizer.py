"""
src/audio/normalizer.py
========================
Audio Normalizer — voxnorm

Responsibility:
    - Run one conversion: decode → downmix → resample → accumulate → encode
    - Drive the per-conversion state machine
      (idle → opened → decoding → draining → encoded → closed | failed)
    - Guarantee decoder resources are released on every exit path
    - Honour cooperative cancellation between decoder pulls
    - Stage sources and converted files in a cache directory

Output is always a complete canonical WAV buffer (16 kHz, mono, 16-bit)
or an exception. Nothing is retried here; retry policy belongs to the
caller.

This module does NOT:
    - Perform speech recognition or load models
    - Keep any state between conversions
"""

import io
import logging
import shutil
import threading
import uuid
from pathlib import Path
from typing import BinaryIO

from src.audio.accumulator import PcmAccumulator
from src.audio.decoder import AudioDecoder, AudioSource, create_decoder
from src.audio.errors import (
    AudioNormalizationError,
    AudioValidationError,
    ConversionCancelledError,
    SourceUnreadableError,
)
from src.audio.pcm import RateConverter, downmix
from src.audio.types import ConversionState, can_transition
from src.audio.wav import encode_wav, write_wav_file
from src.settings import NormalizerSettings

logger = logging.getLogger("voxnorm.audio.normalizer")


# ---------------------------------------------------------------------------
# Conversion session
# ---------------------------------------------------------------------------


class ConversionSession:
    """
    One conversion, start to finish.

    The session exclusively owns its decoder, rate converter and
    accumulator; sessions share nothing and a session cannot be reused.
    Chunks are processed strictly in decode order.
    """

    def __init__(
        self,
        decoder: AudioDecoder,
        *,
        carry_phase: bool = False,
        max_samples: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._decoder = decoder
        self._carry_phase = carry_phase
        self._max_samples = max_samples
        self._cancel_event = cancel_event
        self.state = ConversionState.IDLE
        self.track = None
        self.chunk_count = 0
        self.decoded_frames = 0
        self.sample_count = 0

    def _transition(self, new: ConversionState) -> None:
        if not can_transition(self.state, new):
            raise RuntimeError(f"Illegal state transition {self.state.value} → {new.value}")
        logger.debug("Conversion state: %s → %s", self.state.value, new.value)
        self.state = new

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise ConversionCancelledError(
                f"Conversion cancelled after {self.chunk_count} chunk(s)."
            )

    def run(self, source: AudioSource) -> bytes:
        """
        Convert *source* into a canonical WAV buffer.

        Raises:
            AudioNormalizationError: Any failure (decode, capacity,
                cancellation, ...). Unexpected exceptions are wrapped.
            RuntimeError: If the session has already been run.
        """
        if self.state is not ConversionState.IDLE:
            raise RuntimeError("ConversionSession instances are single-use.")

        try:
            with self._decoder:
                wav_bytes = self._convert(source)
        except AudioNormalizationError as exc:
            self._transition(ConversionState.FAILED)
            logger.error("Conversion failed (%s): %s", type(exc).__name__, exc)
            raise
        except Exception as exc:
            self._transition(ConversionState.FAILED)
            logger.error("Conversion failed unexpectedly: %s", exc, exc_info=True)
            raise AudioNormalizationError(f"Unexpected error converting audio: {exc}") from exc

        self._transition(ConversionState.CLOSED)
        return wav_bytes

    def _convert(self, source: AudioSource) -> bytes:
        self._check_cancelled()
        track = self._decoder.open(source)
        self.track = track
        self._transition(ConversionState.OPENED)

        converter = RateConverter(track.sample_rate, carry_phase=self._carry_phase)
        accumulator = PcmAccumulator(max_samples=self._max_samples)

        self._transition(ConversionState.DECODING)
        while True:
            self._check_cancelled()
            chunk = self._decoder.next_chunk()
            if chunk is None:
                break
            self.chunk_count += 1
            mono = downmix(chunk, track.channels)
            self.decoded_frames += len(mono)
            accumulator.append(converter.convert(mono))

        self._transition(ConversionState.DRAINING)
        samples = accumulator.to_array()
        self.sample_count = len(samples)
        wav_bytes = encode_wav(samples)
        self._transition(ConversionState.ENCODED)

        logger.info(
            "Converted %s | %d Hz %d ch → 16000 Hz mono | %d chunks | "
            "%d frames → %d samples (%.2fs) | %d bytes",
            track.media_type, track.sample_rate, track.channels, self.chunk_count,
            self.decoded_frames, self.sample_count, accumulator.duration_seconds,
            len(wav_bytes),
        )
        return wav_bytes


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def convert_to_canonical_wav(
    source: AudioSource,
    *,
    settings: NormalizerSettings | None = None,
    cancel_event: threading.Event | None = None,
    decoder: AudioDecoder | None = None,
) -> bytes:
    """
    Convert any decodable audio source to 16 kHz mono 16-bit WAV bytes.

    Args:
        source:       File path or readable binary file object.
        settings:     Runtime settings (defaults to ``from_env()``).
        cancel_event: Set it from another thread to abort the conversion.
        decoder:      Decoder to use instead of the configured backend.

    Returns:
        The canonical WAV buffer (``44 + 2 * samples`` bytes).

    Raises:
        AudioNormalizationError: Or one of its subclasses on any failure.
    """
    settings = settings or NormalizerSettings.from_env()
    if decoder is None:
        decoder = create_decoder(
            settings.decoder_backend,
            pydub_chunk_frames=settings.pydub_chunk_frames,
            max_duration_seconds=settings.max_duration_seconds,
        )
    session = ConversionSession(
        decoder,
        carry_phase=settings.carry_resample_phase,
        max_samples=settings.max_samples,
        cancel_event=cancel_event,
    )
    return session.run(source)


def validate_not_empty(audio_bytes: bytes) -> None:
    """
    Check that the uploaded file is not empty (zero bytes).

    Raises:
        AudioValidationError: If the file has no content.
    """
    if not audio_bytes:
        raise AudioValidationError("Audio file is empty.")


def validate_size(audio_bytes: bytes, max_bytes: int) -> None:
    """
    Check that the uploaded file does not exceed *max_bytes*.

    Raises:
        AudioValidationError: If the file is too large.
    """
    if len(audio_bytes) > max_bytes:
        raise AudioValidationError(
            f"Audio file size ({len(audio_bytes)} bytes) exceeds the "
            f"maximum allowed ({max_bytes} bytes)."
        )


def normalize(
    audio_bytes: bytes,
    filename: str,
    *,
    settings: NormalizerSettings | None = None,
    cancel_event: threading.Event | None = None,
) -> bytes:
    """
    Validate and normalize an in-memory audio file.

    Steps:
        1. Validate file is non-empty
        2. Validate file size
        3. Decode, downmix, resample and encode

    Args:
        audio_bytes: Raw bytes of the uploaded audio file.
        filename:    Original filename (used for logging only; the
                     container format is detected from content).

    Returns:
        Normalized audio as WAV bytes (mono, 16 kHz, 16-bit).

    Raises:
        AudioValidationError:    On any validation failure.
        AudioNormalizationError: On any conversion failure.
    """
    settings = settings or NormalizerSettings.from_env()

    validate_not_empty(audio_bytes)
    validate_size(audio_bytes, settings.max_upload_bytes)

    logger.info("Normalizing '%s' (%.2f KB)", filename, len(audio_bytes) / 1024)
    source = io.BytesIO(audio_bytes)
    source.name = filename
    return convert_to_canonical_wav(source, settings=settings, cancel_event=cancel_event)


# ---------------------------------------------------------------------------
# Cache staging
# ---------------------------------------------------------------------------


def copy_to_cache(stream: BinaryIO, cache_dir: str | Path) -> Path:
    """
    Copy a picked/recorded source stream into *cache_dir*.

    Returns:
        Path of the new ``input_audio_<uuid>`` file.

    Raises:
        SourceUnreadableError: If the stream cannot be read or copied.
    """
    target = Path(cache_dir) / f"input_audio_{uuid.uuid4()}"
    try:
        with open(target, "wb") as out:
            shutil.copyfileobj(stream, out)
    except OSError as exc:
        logger.error("Failed to copy source into cache: %s", exc)
        target.unlink(missing_ok=True)
        raise SourceUnreadableError(f"Failed to copy audio source: {exc}") from exc

    logger.debug("Source staged at %s", target)
    return target


def convert_to_wav_file(
    source: AudioSource,
    cache_dir: str | Path | None = None,
    *,
    settings: NormalizerSettings | None = None,
    cancel_event: threading.Event | None = None,
) -> Path:
    """
    Convert *source* and write the result as ``converted_<uuid>.wav``.

    Args:
        source:    File path or readable binary file object.
        cache_dir: Output directory (defaults to ``settings.cache_dir``).

    Returns:
        Path of the written WAV file.

    Raises:
        EncodeFailureError:      If writing the file fails.
        AudioNormalizationError: On any conversion failure.
    """
    settings = settings or NormalizerSettings.from_env()
    out_dir = Path(cache_dir) if cache_dir is not None else settings.cache_dir

    wav_bytes = convert_to_canonical_wav(source, settings=settings, cancel_event=cancel_event)
    target = out_dir / f"converted_{uuid.uuid4()}.wav"
    write_wav_file(target, wav_bytes)
    return target
