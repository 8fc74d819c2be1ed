"""
src/audio/decoder.py
=====================
Decoder Adapter — voxnorm

Responsibility:
    - Open a compressed source and select its first audio track
    - Report the track's media type, native sample rate and channel count
    - Pump the demuxer/decoder and hand out interleaved 16-bit PCM chunks
    - Release demuxer/decoder resources on close

Backends:
    - "pyav"  : PyAV (FFmpeg bindings), streaming packet-by-packet decode
    - "pydub" : pydub + ffmpeg/ffprobe executables, whole-track decode
                sliced into fixed-size chunks

This module does NOT:
    - Downmix, resample or encode
    - Convert media the selected backend cannot decode
"""

import logging
import os
from abc import ABC, abstractmethod
from collections import deque
from typing import BinaryIO, Iterator, Union

import av
import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError
from pydub.utils import mediainfo_json

from src.audio.errors import (
    CapacityExceededError,
    NoAudioTrackError,
    SourceUnreadableError,
    StreamFailureError,
    UnsupportedCodecError,
)
from src.audio.types import (
    AUDIO_MEDIA_TYPE_PREFIX,
    FALLBACK_CHANNELS,
    FALLBACK_SAMPLE_RATE,
    TARGET_SAMPLE_RATE,
    TARGET_SAMPLE_WIDTH,
    AudioTrackDescriptor,
)

logger = logging.getLogger("voxnorm.audio.decoder")

AudioSource = Union[str, os.PathLike, BinaryIO]

DEFAULT_PYDUB_CHUNK_FRAMES = 4096

# Layout matching FALLBACK_CHANNELS
_FALLBACK_LAYOUT = "stereo"


def _describe_source(source: AudioSource) -> str:
    if isinstance(source, (str, os.PathLike)):
        return os.fspath(source)
    return getattr(source, "name", None) or type(source).__name__


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class AudioDecoder(ABC):
    """
    Decode session over one source.

    Usage::

        with create_decoder("pyav") as decoder:
            track = decoder.open(path)
            while (chunk := decoder.next_chunk()) is not None:
                ...

    ``close()`` is called by the context manager on every exit path.
    """

    name: str = ""

    def __init__(self) -> None:
        self.track: AudioTrackDescriptor | None = None

    @abstractmethod
    def open(self, source: AudioSource) -> AudioTrackDescriptor:
        """
        Open *source* and select its first audio track.

        Raises:
            SourceUnreadableError: Source missing, unreadable or unparseable.
            NoAudioTrackError:     No track with an ``audio/`` media type.
            UnsupportedCodecError: No decoder for the track's codec.
        """

    @abstractmethod
    def next_chunk(self) -> np.ndarray | None:
        """
        Return the next decoded chunk of interleaved int16 samples at the
        track's native rate and channel count, or None at end-of-stream.

        Raises:
            StreamFailureError: Decoding failed mid-stream.
        """

    @abstractmethod
    def close(self) -> None:
        """Release all backend resources. Safe to call more than once."""

    def _require_open(self) -> None:
        if self.track is None:
            raise RuntimeError(f"{type(self).__name__} is not open.")

    def __enter__(self) -> "AudioDecoder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# ---------------------------------------------------------------------------
# PyAV backend
# ---------------------------------------------------------------------------


class PyAVDecoder(AudioDecoder):
    """Streams decoded frames through PyAV, one demuxed packet at a time."""

    name = "pyav"

    def __init__(self) -> None:
        super().__init__()
        self._container = None
        self._frames: Iterator | None = None
        self._resampler = None
        self._layout: str | None = None
        self._pending: deque = deque()
        self._flushed = False

    def open(self, source: AudioSource) -> AudioTrackDescriptor:
        label = _describe_source(source)
        if isinstance(source, os.PathLike):
            source = os.fspath(source)
        try:
            self._container = av.open(source, mode="r")
        except (av.error.FFmpegError, OSError, ValueError) as exc:
            raise SourceUnreadableError(f"Cannot open audio source '{label}': {exc}") from exc

        stream = next(
            (s for s in self._container.streams if s.type == "audio"),
            None,
        )
        if stream is None:
            self.close()
            raise NoAudioTrackError(f"No audio track found in '{label}'.")

        ctx = stream.codec_context
        codec_name = ctx.name if ctx is not None and ctx.name else "unknown"
        media_type = f"{AUDIO_MEDIA_TYPE_PREFIX}{codec_name}"
        if ctx is None:
            self.close()
            raise UnsupportedCodecError(media_type)
        try:
            av.Codec(codec_name, "r")
        except ValueError as exc:
            self.close()
            raise UnsupportedCodecError(media_type, str(exc)) from exc

        layout = ctx.layout
        n_channels = len(layout.channels) if layout is not None else 0
        if n_channels > 0:
            self._layout = layout.name
        else:
            n_channels = FALLBACK_CHANNELS
            self._layout = _FALLBACK_LAYOUT
        sample_rate = ctx.sample_rate or FALLBACK_SAMPLE_RATE

        self.track = AudioTrackDescriptor(
            index=stream.index,
            media_type=media_type,
            sample_rate=sample_rate,
            channels=n_channels,
        )
        self._frames = self._decode_frames(stream)
        logger.info(
            "Opened %s: track %d %s | %d Hz | %d ch",
            label, self.track.index, media_type, sample_rate, n_channels,
        )
        return self.track

    def _decode_frames(self, stream) -> Iterator:
        # demux() ends with an empty packet per stream, which flushes the decoder
        for packet in self._container.demux(stream):
            for frame in packet.decode():
                yield frame

    def next_chunk(self) -> np.ndarray | None:
        self._require_open()
        while True:
            if self._pending:
                return self._pending.popleft()
            if self._flushed:
                return None
            try:
                frame = next(self._frames)
                converted = self._get_resampler().resample(frame)
            except StopIteration:
                self._flush_resampler()
                continue
            except (av.error.FFmpegError, OSError, ValueError) as exc:
                raise StreamFailureError(
                    f"Decoding failed on track {self.track.index}: {exc}"
                ) from exc
            self._queue_frames(converted)

    def _get_resampler(self):
        # Format conversion only: packed s16 at the native rate and layout
        if self._resampler is None:
            self._resampler = av.AudioResampler(
                format="s16",
                layout=self._layout,
                rate=self.track.sample_rate,
            )
        return self._resampler

    def _flush_resampler(self) -> None:
        self._flushed = True
        if self._resampler is not None:
            try:
                self._queue_frames(self._resampler.resample(None))
            except (av.error.FFmpegError, ValueError) as exc:
                raise StreamFailureError(f"Decoder flush failed: {exc}") from exc

    def _queue_frames(self, frames) -> None:
        for out in frames:
            if out is None:
                continue
            chunk = out.to_ndarray().reshape(-1).astype(np.int16, copy=False)
            if chunk.size:
                self._pending.append(chunk)

    def close(self) -> None:
        if self._frames is not None:
            self._frames.close()
            self._frames = None
        if self._container is not None:
            self._container.close()
            self._container = None
            logger.debug("PyAV container released.")
        self._resampler = None
        self._pending.clear()
        self.track = None


# ---------------------------------------------------------------------------
# pydub backend
# ---------------------------------------------------------------------------


class PydubDecoder(AudioDecoder):
    """Decodes the whole track through ffmpeg and slices it into chunks."""

    name = "pydub"

    def __init__(
        self,
        chunk_frames: int = DEFAULT_PYDUB_CHUNK_FRAMES,
        max_duration_seconds: float | None = None,
    ) -> None:
        super().__init__()
        if chunk_frames <= 0:
            raise ValueError(f"chunk_frames must be positive, got {chunk_frames}")
        self.chunk_frames = chunk_frames
        # The whole track is decoded into memory, so the cap is checked here
        self.max_duration_seconds = max_duration_seconds
        self._samples: np.ndarray | None = None
        self._offset = 0

    def _check_duration(self, seconds: float | None, label: str) -> None:
        if self.max_duration_seconds is None or seconds is None:
            return
        if seconds > self.max_duration_seconds:
            logger.error(
                "Rejecting %s: %.1fs exceeds limit of %.1fs.",
                label, seconds, self.max_duration_seconds,
            )
            raise CapacityExceededError(
                int(self.max_duration_seconds * TARGET_SAMPLE_RATE), TARGET_SAMPLE_RATE,
            )

    @staticmethod
    def _probed_duration(stream: dict, info: dict) -> float | None:
        for value in (stream.get("duration"), info.get("format", {}).get("duration")):
            try:
                return float(value)
            except (TypeError, ValueError):
                continue
        return None

    def open(self, source: AudioSource) -> AudioTrackDescriptor:
        label = _describe_source(source)
        if isinstance(source, (str, os.PathLike)) and not os.path.isfile(source):
            raise SourceUnreadableError(f"Audio source not found: '{label}'.")

        try:
            info = mediainfo_json(source)
        except (OSError, ValueError) as exc:
            raise SourceUnreadableError(f"Cannot probe audio source '{label}': {exc}") from exc
        if not info or "streams" not in info:
            raise SourceUnreadableError(f"Cannot parse audio source '{label}'.")

        stream = next(
            (s for s in info["streams"] if s.get("codec_type") == "audio"),
            None,
        )
        if stream is None:
            raise NoAudioTrackError(f"No audio track found in '{label}'.")

        media_type = f"{AUDIO_MEDIA_TYPE_PREFIX}{stream.get('codec_name') or 'unknown'}"
        self._check_duration(self._probed_duration(stream, info), label)
        if hasattr(source, "seek"):
            source.seek(0)
        try:
            segment = AudioSegment.from_file(
                source,
                parameters=["-map", f"0:{stream['index']}"],
            )
        except CouldntDecodeError as exc:
            raise UnsupportedCodecError(media_type, str(exc)) from exc
        except OSError as exc:
            raise StreamFailureError(f"Decoding failed for '{label}': {exc}") from exc

        # Probed durations can be missing or wrong
        self._check_duration(segment.duration_seconds, label)
        if segment.sample_width != TARGET_SAMPLE_WIDTH:
            segment = segment.set_sample_width(TARGET_SAMPLE_WIDTH)

        self._samples = np.frombuffer(segment.raw_data, dtype="<i2").astype(np.int16)
        self._offset = 0
        self.track = AudioTrackDescriptor(
            index=int(stream["index"]),
            media_type=media_type,
            sample_rate=segment.frame_rate or FALLBACK_SAMPLE_RATE,
            channels=segment.channels or FALLBACK_CHANNELS,
        )
        logger.info(
            "Opened %s: track %d %s | %d Hz | %d ch | %d frames",
            label, self.track.index, media_type, self.track.sample_rate,
            self.track.channels, len(self._samples) // self.track.channels,
        )
        return self.track

    def next_chunk(self) -> np.ndarray | None:
        self._require_open()
        if self._samples is None or self._offset >= len(self._samples):
            return None
        step = self.chunk_frames * self.track.channels
        chunk = self._samples[self._offset:self._offset + step]
        self._offset += step
        return chunk

    def close(self) -> None:
        self._samples = None
        self._offset = 0
        self.track = None


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

DECODER_BACKENDS: dict[str, type[AudioDecoder]] = {
    PyAVDecoder.name: PyAVDecoder,
    PydubDecoder.name: PydubDecoder,
}


def create_decoder(
    backend: str = PyAVDecoder.name,
    *,
    pydub_chunk_frames: int = DEFAULT_PYDUB_CHUNK_FRAMES,
    max_duration_seconds: float | None = None,
) -> AudioDecoder:
    """
    Build a fresh decoder for one conversion.

    *max_duration_seconds* only applies to the pydub backend, which must
    decode the whole track before the first chunk is handed out.

    Raises:
        ValueError: If *backend* is not a known backend name.
    """
    key = backend.strip().lower()
    if key not in DECODER_BACKENDS:
        raise ValueError(
            f"Unknown decoder backend '{backend}'. "
            f"Allowed: {', '.join(sorted(DECODER_BACKENDS))}"
        )
    if key == PydubDecoder.name:
        return PydubDecoder(
            chunk_frames=pydub_chunk_frames,
            max_duration_seconds=max_duration_seconds,
        )
    return DECODER_BACKENDS[key]()
