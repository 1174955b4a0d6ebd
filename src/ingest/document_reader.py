"""Framed BSON document reader.

Snapshot files are a plain concatenation of BSON documents. Each one
starts with a little-endian int32 holding the total document size, length
prefix included, so a document can be cut out of the stream without
parsing its body.
"""

from __future__ import annotations

import struct
from typing import BinaryIO, Iterator

from core.constants import LENGTH_PREFIX_SIZE, MAX_DOCUMENT_SIZE, MIN_DOCUMENT_SIZE
from core.errors import FramingError

_LENGTH_FORMAT = "<i"


def iter_documents(stream: BinaryIO) -> Iterator[bytes]:
    """Yield raw documents, length prefix included, until end of input.

    Args:
        stream: Binary stream positioned at a document boundary.

    Yields:
        One buffer per document, exactly as long as its declared length.

    Raises:
        FramingError: If a length prefix or document body is truncated, or
            a declared length is impossible. The stream cannot be
            resynchronised afterwards, so iteration ends with the error.
    """
    offset = 0
    while True:
        prefix = _read_exactly(stream, LENGTH_PREFIX_SIZE)
        if not prefix:
            return
        if len(prefix) < LENGTH_PREFIX_SIZE:
            raise FramingError(
                f"Malformed document at offset {offset}: expected a {LENGTH_PREFIX_SIZE}-byte "
                f"length prefix, got {len(prefix)} bytes before end of input."
            )
        (document_length,) = struct.unpack(_LENGTH_FORMAT, prefix)
        if document_length < MIN_DOCUMENT_SIZE:
            raise FramingError(
                f"Malformed document at offset {offset}: declared length {document_length} "
                f"is below the {MIN_DOCUMENT_SIZE}-byte minimum."
            )
        if document_length > MAX_DOCUMENT_SIZE:
            raise FramingError(
                f"Malformed document at offset {offset}: declared length {document_length} "
                f"exceeds the {MAX_DOCUMENT_SIZE}-byte maximum."
            )
        body = _read_exactly(stream, document_length - LENGTH_PREFIX_SIZE)
        if len(body) < document_length - LENGTH_PREFIX_SIZE:
            raise FramingError(
                f"Truncated document at offset {offset}: declared {document_length} bytes, "
                f"only {LENGTH_PREFIX_SIZE + len(body)} available."
            )
        offset += document_length
        yield prefix + body


def _read_exactly(stream: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, looping over short reads until end of input."""
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)
