"""Payload decompression keyed on magic bytes, not on declared content type."""
from __future__ import annotations

import gzip
import logging
import zlib

import zstandard

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
# Zstd frame magic number 0xFD2FB528, little-endian.
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"


class DecompressionError(ValueError):
    pass


def is_gzip(data: bytes) -> bool:
    return data[:2] == GZIP_MAGIC


def is_zstd(data: bytes) -> bool:
    return data[:4] == ZSTD_MAGIC


def decompress_payload(data: bytes) -> bytes:
    """Return ``data`` decompressed when it is a gzip or zstd frame, else unchanged.

    Raises:
        DecompressionError: If the frame is recognized but corrupt
    """
    if is_gzip(data):
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise DecompressionError(f"Invalid gzip payload: {e}") from e

    if is_zstd(data):
        # decompressobj copes with frames that omit the content size.
        decompressor = zstandard.ZstdDecompressor().decompressobj()
        try:
            result = decompressor.decompress(data)
        except zstandard.ZstdError as e:
            raise DecompressionError(f"Zstd decompression failed: {e}") from e
        if not decompressor.eof:
            raise DecompressionError("Zstd decompression failed: truncated frame")
        return result

    return data
