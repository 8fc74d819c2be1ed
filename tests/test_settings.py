"""
tests/test_settings.py
=======================
Runtime configuration tests — environment parsing and validation.
"""

import os
import sys
import tempfile
import unittest
from pathlib import Path

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from src.settings import NormalizerSettings


class TestNormalizerSettings(unittest.TestCase):

    def test_defaults(self):
        settings = NormalizerSettings.from_env({})
        self.assertEqual(settings.decoder_backend, "pyav")
        self.assertEqual(settings.max_duration_seconds, 1800.0)
        self.assertEqual(settings.max_samples, 1800 * 16000)
        self.assertFalse(settings.carry_resample_phase)
        self.assertEqual(settings.pydub_chunk_frames, 4096)
        self.assertEqual(settings.max_upload_bytes, 100 * 1024 * 1024)
        self.assertEqual(settings.cache_dir, Path(tempfile.gettempdir()))

    def test_reads_environment(self):
        env = {
            "VOXNORM_DECODER_BACKEND": " PyDub ",
            "VOXNORM_MAX_DURATION_SECONDS": "2.5",
            "VOXNORM_CARRY_RESAMPLE_PHASE": "yes",
            "VOXNORM_PYDUB_CHUNK_FRAMES": "1024",
            "VOXNORM_MAX_UPLOAD_BYTES": "2048",
            "VOXNORM_CACHE_DIR": "/var/cache/voxnorm",
        }
        settings = NormalizerSettings.from_env(env)
        self.assertEqual(settings.decoder_backend, "pydub")
        self.assertEqual(settings.max_samples, 40000)
        self.assertTrue(settings.carry_resample_phase)
        self.assertEqual(settings.pydub_chunk_frames, 1024)
        self.assertEqual(settings.max_upload_bytes, 2048)
        self.assertEqual(settings.cache_dir, Path("/var/cache/voxnorm"))

    def test_zero_duration_disables_cap(self):
        settings = NormalizerSettings.from_env({"VOXNORM_MAX_DURATION_SECONDS": "0"})
        self.assertIsNone(settings.max_duration_seconds)
        self.assertIsNone(settings.max_samples)

    def test_invalid_values(self):
        cases = {
            "VOXNORM_CARRY_RESAMPLE_PHASE": "maybe",
            "VOXNORM_PYDUB_CHUNK_FRAMES": "lots",
            "VOXNORM_MAX_DURATION_SECONDS": "forever",
            "VOXNORM_DECODER_BACKEND": "gstreamer",
            "VOXNORM_MAX_UPLOAD_BYTES": "-1",
        }
        for name, value in cases.items():
            with self.subTest(name=name):
                with self.assertRaises(ValueError):
                    NormalizerSettings.from_env({name: value})

    def test_direct_construction_is_validated(self):
        with self.assertRaises(ValueError):
            NormalizerSettings(pydub_chunk_frames=0)
        with self.assertRaises(ValueError):
            NormalizerSettings(max_duration_seconds=-5)


if __name__ == "__main__":
    unittest.main()
