# src/audio/__init__.py
# ======================
# Audio Normalization Layer — voxnorm
#
# Pipeline (one sequential pass per conversion):
#   1. Open the source and select its first audio track   (decoder.py)
#   2. Decode to interleaved 16-bit PCM chunks             (decoder.py)
#   3. Downmix each chunk to mono                          (pcm.py)
#   4. Convert each chunk to 16 kHz                        (pcm.py)
#   5. Accumulate the whole track in memory                (accumulator.py)
#   6. Encode the canonical 44-byte-header WAV             (wav.py)
#
# Entry points live in src/audio/normalizer.py:
#   convert_to_canonical_wav(source) → bytes
#   normalize(audio_bytes, filename) → bytes
