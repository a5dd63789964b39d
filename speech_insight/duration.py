"""Audio duration measured directly from the container header (WAV only)."""

import io
import logging
import struct
from pathlib import PurePath
from typing import BinaryIO

logger = logging.getLogger(__name__)

WAV_HEADER_SIZE = 44
RIFF_MAGIC = b"RIFF"
DATA_CHUNK_ID = b"data"
BYTE_RATE_OFFSET = 28
DATA_CHUNK_OFFSET = 36


def is_wav_format(content_type: str | None, filename: str | None) -> bool:
    """Check whether the upload is a WAV file by content type or extension."""
    if content_type and content_type.strip():
        ct = content_type.strip().lower()
        if ct in ("audio/wav", "audio/wave") or ct.startswith("audio/wav;"):
            return True
    return PurePath(filename or "").suffix.lower() == ".wav"


def probe_duration(
    stream: BinaryIO,
    content_type: str | None,
    filename: str | None,
) -> float | None:
    """Compute audio duration in seconds from the raw stream.

    Only WAV is recognized: byte rate comes from the fmt chunk at offset 28 and the
    payload size from the "data" chunk at offset 36, falling back to the stream
    length minus the 44-byte header when the declared size is missing or invalid.

    The stream position is restored before returning. Parse failures of any kind
    return None rather than raising.

    Args:
        stream: Seekable binary stream
        content_type: Optional MIME type (e.g. audio/wav, audio/mpeg)
        filename: Optional file name for extension-based detection

    Returns:
        Duration in seconds, or None if the format is unsupported or invalid
    """
    if not is_wav_format(content_type, filename):
        return None

    try:
        if not stream.seekable():
            return None
        origin = stream.tell()
    except (OSError, ValueError) as e:
        logger.debug("Cannot determine stream position: %s", e)
        return None

    try:
        return _wav_duration(stream)
    except Exception as e:
        logger.warning("Failed to read WAV header: %s", e)
        return None
    finally:
        try:
            stream.seek(origin)
        except (OSError, ValueError) as e:
            logger.warning("Failed to restore stream position: %s", e)


def _wav_duration(stream: BinaryIO) -> float | None:
    length = stream.seek(0, io.SEEK_END)
    if length < WAV_HEADER_SIZE:
        return None

    stream.seek(0)
    header = stream.read(WAV_HEADER_SIZE)
    if len(header) < WAV_HEADER_SIZE:
        return None

    if header[:4] != RIFF_MAGIC:
        return None

    (byte_rate,) = struct.unpack_from("<i", header, BYTE_RATE_OFFSET)
    if byte_rate <= 0:
        return None

    max_data_size = length - WAV_HEADER_SIZE
    data_size = max_data_size
    if header[DATA_CHUNK_OFFSET:DATA_CHUNK_OFFSET + 4] == DATA_CHUNK_ID:
        (declared,) = struct.unpack_from("<i", header, DATA_CHUNK_OFFSET + 4)
        if 0 < declared <= max_data_size:
            data_size = declared

    if data_size <= 0:
        return None

    return data_size / byte_rate
