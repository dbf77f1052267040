"""Detection of edits that hand back the uploaded image unchanged."""
from __future__ import annotations

IDENTICAL_MESSAGE = "Provider returned identical image bytes"


def detect_identical(input_bytes: bytes, output_bytes: bytes) -> bool:
    """Return ``True`` when the provider output is byte-for-byte the input.

    Both sides are the encoded files as uploaded and as returned, so no
    decoding is needed before comparing.
    """

    return input_bytes == output_bytes
