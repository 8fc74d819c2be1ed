"""
tests/test_api.py
==================
HTTP surface tests — POST /api/v1/normalize and GET /health.

Uses FastAPI's TestClient; conversions run through the real PyAV backend
except where the normalizer is patched to raise a specific error.
"""

import io
import os
import sys
import unittest
import wave
from unittest.mock import patch

import numpy as np
from fastapi.testclient import TestClient

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from src.api.upload import app
from src.audio.errors import (
    AudioNormalizationError,
    CapacityExceededError,
    ConversionCancelledError,
    NoAudioTrackError,
    UnsupportedCodecError,
)
from src.audio.wav import decode_wav_samples, read_wav_header


def _make_wav(samples, sample_rate, channels) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(np.asarray(samples, dtype="<i2").tobytes())
    return buf.getvalue()


class TestNormalizeEndpoint(unittest.TestCase):

    def setUp(self):
        self.client = TestClient(app)

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_converts_upload(self):
        upload = _make_wav(np.zeros(8000 * 2, dtype=np.int16), 8000, 2)
        response = self.client.post(
            "/api/v1/normalize",
            files={"audio_file": ("memo.wav", upload, "audio/wav")},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], "audio/wav")
        self.assertIn('filename="memo.wav"', response.headers["content-disposition"])
        header = read_wav_header(response.content)
        self.assertEqual((header.sample_rate, header.num_channels), (16000, 1))
        self.assertEqual(len(decode_wav_samples(response.content)), 16000)

    def test_empty_upload(self):
        response = self.client.post(
            "/api/v1/normalize",
            files={"audio_file": ("empty.mp3", b"", "audio/mpeg")},
        )
        self.assertEqual(response.status_code, 422)

    def test_missing_file_field(self):
        response = self.client.post("/api/v1/normalize")
        self.assertEqual(response.status_code, 422)

    def test_error_status_mapping(self):
        cases = [
            (NoAudioTrackError("video only"), 422),
            (UnsupportedCodecError("audio/madeup"), 415),
            (CapacityExceededError(16000, 16000), 413),
            (ConversionCancelledError("cancelled"), 503),
            (AudioNormalizationError("boom"), 500),
        ]
        for exc, status in cases:
            with self.subTest(error=type(exc).__name__):
                with patch("src.api.upload.normalize", side_effect=exc):
                    response = self.client.post(
                        "/api/v1/normalize",
                        files={"audio_file": ("clip.bin", b"\x00\x01", "application/octet-stream")},
                    )
                self.assertEqual(response.status_code, status)
                self.assertEqual(response.json()["detail"], str(exc))


if __name__ == "__main__":
    unittest.main()
