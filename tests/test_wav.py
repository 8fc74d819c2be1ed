"""
tests/test_wav.py
==================
Canonical Container Tests — header layout, payload, storage

All tests are OFFLINE.
"""

import os
import struct
import sys
import tempfile
import unittest

import numpy as np

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from src.audio.errors import EncodeFailureError
from src.audio.wav import (
    WAV_HEADER_SIZE,
    decode_wav_samples,
    encode_wav,
    read_wav_header,
    write_wav_file,
)


class TestEncodeWav(unittest.TestCase):

    def test_header_bytes_for_known_payload(self):
        data = encode_wav(np.array([1, -1, 256], dtype=np.int16))
        expected_header = (
            b"RIFF" + struct.pack("<I", 36 + 6) + b"WAVE"
            + b"fmt " + struct.pack("<IHHIIHH", 16, 1, 1, 16000, 32000, 2, 16)
            + b"data" + struct.pack("<I", 6)
        )
        self.assertEqual(data[:WAV_HEADER_SIZE], expected_header)
        self.assertEqual(data[WAV_HEADER_SIZE:], b"\x01\x00\xff\xff\x00\x01")

    def test_length_is_44_plus_two_per_sample(self):
        for count in (0, 1, 2, 999, 16000):
            with self.subTest(count=count):
                data = encode_wav(np.zeros(count, dtype=np.int16))
                self.assertEqual(len(data), 44 + 2 * count)
                header = read_wav_header(data)
                self.assertEqual(header.subchunk2_size, 2 * count)
                self.assertEqual(header.chunk_size, 36 + 2 * count)

    def test_header_round_trip(self):
        rng = np.random.default_rng(3)
        samples = rng.integers(-32768, 32767, size=1234).astype(np.int16)
        data = encode_wav(samples)
        header = read_wav_header(data)
        self.assertEqual(header.sample_rate, 16000)
        self.assertEqual(header.num_channels, 1)
        self.assertEqual(header.bits_per_sample, 16)
        self.assertEqual(header.audio_format, 1)
        self.assertEqual(header.byte_rate, 32000)
        self.assertEqual(header.block_align, 2)
        np.testing.assert_array_equal(decode_wav_samples(data), samples)

    def test_accepts_plain_sequences(self):
        data = encode_wav([0, 1, 2])
        self.assertEqual(len(data), 50)


class TestReadWavHeader(unittest.TestCase):

    def test_too_short(self):
        with self.assertRaises(ValueError):
            read_wav_header(b"RIFF")

    def test_not_riff(self):
        data = bytearray(encode_wav(np.zeros(2, dtype=np.int16)))
        data[0:4] = b"JUNK"
        with self.assertRaises(ValueError):
            read_wav_header(bytes(data))


class TestWriteWavFile(unittest.TestCase):

    def test_writes_bytes(self):
        data = encode_wav(np.zeros(10, dtype=np.int16))
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "out.wav")
            write_wav_file(path, data)
            with open(path, "rb") as fh:
                self.assertEqual(fh.read(), data)

    def test_unwritable_location_raises_encode_failure(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "missing-dir", "out.wav")
            with self.assertRaises(EncodeFailureError):
                write_wav_file(path, b"data")
            self.assertFalse(os.path.exists(path))


if __name__ == "__main__":
    unittest.main()
