"""
src/settings.py
================
Runtime configuration — voxnorm

All settings come from environment variables (``main.py`` loads ``.env``
through python-dotenv before anything reads them):

    VOXNORM_DECODER_BACKEND        "pyav" | "pydub"           (default: pyav)
    VOXNORM_MAX_DURATION_SECONDS   max track length, 0 = off  (default: 1800)
    VOXNORM_CARRY_RESAMPLE_PHASE   carry cursor across chunks (default: false)
    VOXNORM_PYDUB_CHUNK_FRAMES     frames per pydub chunk     (default: 4096)
    VOXNORM_MAX_UPLOAD_BYTES       HTTP upload size limit     (default: 100 MiB)
    VOXNORM_CACHE_DIR              staging dir for files      (default: system temp)
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from src.audio.decoder import DECODER_BACKENDS
from src.audio.types import TARGET_SAMPLE_RATE

_BOOL_TRUTHY = {"1", "true", "yes", "on"}
_BOOL_FALSY = {"0", "false", "no", "off", ""}

_PREFIX = "VOXNORM_"


def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    value = env.get(_PREFIX + name)
    return default if value is None else value.strip()


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(_PREFIX + name)
    if value is None:
        return default
    value = value.strip().lower()
    if value in _BOOL_TRUTHY:
        return True
    if value in _BOOL_FALSY:
        return False
    raise ValueError(f"{_PREFIX + name} must be a boolean, got '{value}'.")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(_PREFIX + name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{_PREFIX + name} must be an integer, got '{value}'.") from None


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(_PREFIX + name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{_PREFIX + name} must be a number, got '{value}'.") from None


@dataclass(frozen=True)
class NormalizerSettings:
    decoder_backend: str = "pyav"
    max_duration_seconds: float | None = 1800.0  # 30 minutes
    carry_resample_phase: bool = False
    pydub_chunk_frames: int = 4096
    max_upload_bytes: int = 100 * 1024 * 1024
    cache_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))

    def __post_init__(self) -> None:
        if self.decoder_backend not in DECODER_BACKENDS:
            raise ValueError(
                f"Unknown decoder backend '{self.decoder_backend}'. "
                f"Allowed: {', '.join(sorted(DECODER_BACKENDS))}"
            )
        if self.max_duration_seconds is not None and self.max_duration_seconds <= 0:
            raise ValueError("max_duration_seconds must be positive or None.")
        if self.pydub_chunk_frames <= 0:
            raise ValueError("pydub_chunk_frames must be positive.")
        if self.max_upload_bytes <= 0:
            raise ValueError("max_upload_bytes must be positive.")

    @property
    def max_samples(self) -> int | None:
        """Accumulator cap in 16 kHz samples, or None for no cap."""
        if self.max_duration_seconds is None:
            return None
        return int(self.max_duration_seconds * TARGET_SAMPLE_RATE)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "NormalizerSettings":
        """
        Build settings from *environ* (defaults to ``os.environ``).

        Raises:
            ValueError: If any variable is set to an invalid value.
        """
        env = os.environ if environ is None else environ
        max_duration = _env_float(env, "MAX_DURATION_SECONDS", 1800.0)
        cache_dir = _env_str(env, "CACHE_DIR", "")
        return cls(
            decoder_backend=_env_str(env, "DECODER_BACKEND", "pyav").lower(),
            max_duration_seconds=max_duration if max_duration > 0 else None,
            carry_resample_phase=_env_bool(env, "CARRY_RESAMPLE_PHASE", False),
            pydub_chunk_frames=_env_int(env, "PYDUB_CHUNK_FRAMES", 4096),
            max_upload_bytes=_env_int(env, "MAX_UPLOAD_BYTES", 100 * 1024 * 1024),
            cache_dir=Path(cache_dir) if cache_dir else Path(tempfile.gettempdir()),
        )
