"""
src/api/upload.py
==================
API Upload Endpoint — voxnorm

Responsibility:
    - Expose POST /api/v1/normalize
    - Accept a single audio file of any container/codec via multipart/form-data
    - Delegate conversion to src.audio.normalizer.normalize
    - Return the canonical 16 kHz mono 16-bit WAV, or an error message
    - Expose GET /health

This module does NOT:
    - Store uploads or converted audio
    - Perform speech recognition
"""

import asyncio
import logging

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.responses import Response

from src.audio.errors import (
    AudioNormalizationError,
    AudioValidationError,
    CapacityExceededError,
    ConversionCancelledError,
    NoAudioTrackError,
    SourceUnreadableError,
    UnsupportedCodecError,
)
from src.audio.normalizer import normalize
from src.settings import NormalizerSettings

logger = logging.getLogger("voxnorm.api")

WAV_MEDIA_TYPE = "audio/wav"


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="voxnorm",
    description="Normalizes arbitrary audio recordings to 16 kHz mono 16-bit WAV.",
    version="1.0.0",
)


def _status_for(exc: AudioNormalizationError) -> int:
    if isinstance(exc, CapacityExceededError):
        return 413
    if isinstance(exc, UnsupportedCodecError):
        return 415
    if isinstance(exc, (AudioValidationError, NoAudioTrackError, SourceUnreadableError)):
        return 422
    if isinstance(exc, ConversionCancelledError):
        return 503
    return 500


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/v1/normalize")
async def normalize_audio(audio_file: UploadFile = File(...)):
    """
    Accept an audio file and return it as canonical WAV.

    Args:
        audio_file: Uploaded audio file (any format the decoder supports).

    Returns:
        ``audio/wav`` response body: 44-byte header + 16 kHz mono PCM.
    """

    # Guard: file must be provided
    if audio_file is None or audio_file.filename is None:
        raise HTTPException(status_code=400, detail="Audio file is required.")

    logger.info("Audio file received: %s", audio_file.filename)

    # Read raw bytes
    try:
        audio_bytes = await audio_file.read()
    except Exception:
        raise HTTPException(status_code=400, detail="Failed to read uploaded file.")

    settings = NormalizerSettings.from_env()

    try:
        wav_bytes = await asyncio.to_thread(
            normalize, audio_bytes, audio_file.filename, settings=settings
        )
    except AudioNormalizationError as exc:
        status = _status_for(exc)
        if status >= 500:
            logger.error("Normalization failed for %s: %s", audio_file.filename, exc)
        else:
            logger.warning("Rejected %s: %s", audio_file.filename, exc)
        raise HTTPException(status_code=status, detail=str(exc))

    stem = audio_file.filename.rsplit(".", 1)[0] or "audio"
    return Response(
        content=wav_bytes,
        media_type=WAV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{stem}.wav"'},
    )
