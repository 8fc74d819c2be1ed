# src/api/__init__.py
# =====================
# API Layer — voxnorm
#
# Responsibility:
#   - Expose POST /api/v1/normalize (multipart audio upload → canonical WAV)
#   - Map normalization errors to HTTP status codes
