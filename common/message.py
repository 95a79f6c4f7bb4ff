"""Frame encoding/decoding for serial communication.

Frames use a sync-prefixed, length-prefixed layout with CRC32 checksums:
  [4-byte sync magic][4-byte length][payload][4-byte CRC32]

The sync magic allows recovery from framing errors (e.g., when connecting
to a stream mid-frame or after buffer corruption).

Header integers are little-endian unsigned 32-bit. Timestamps carried in
payloads are little-endian signed 64-bit nanoseconds.
"""

import logging
import zlib
from typing import Literal, Protocol

logger = logging.getLogger(__name__)

UINT32_SIZE = 4
BYTE_ORDER: Literal["little", "big"] = "little"

# Sync magic for frame alignment (chosen to be unlikely in timestamp data)
SYNC_MAGIC = 0x7153A1C0
SYNC_MAGIC_BYTES = SYNC_MAGIC.to_bytes(UINT32_SIZE, BYTE_ORDER, signed=False)

# PING/PONG payloads are tiny; anything larger is a corrupted length field
MAX_FRAME_LENGTH = 256

# Maximum bytes to scan when resyncing (prevents infinite loop on garbage)
MAX_RESYNC_BYTES = 4096


class Reader(Protocol):
    """Protocol for objects that can read bytes."""

    def read(self, size: int) -> bytes: ...


def uint32_to_bytes(value: int) -> bytes:
    """Encode unsigned 32-bit int as little-endian bytes."""
    return value.to_bytes(UINT32_SIZE, BYTE_ORDER, signed=False)


def uint32_from_bytes(data: bytes) -> int:
    """Decode little-endian bytes to unsigned 32-bit int."""
    return int.from_bytes(data, BYTE_ORDER, signed=False)


def encode_frame(payload: bytes) -> bytes:
    """Wrap a payload with sync magic, length prefix and CRC32 suffix."""
    length = uint32_to_bytes(len(payload))
    crc = uint32_to_bytes(zlib.crc32(payload))
    return SYNC_MAGIC_BYTES + length + payload + crc


def _find_sync(reader: Reader) -> bool:
    """Consume bytes until the sync magic has been read. False on timeout."""
    window = reader.read(UINT32_SIZE)
    if len(window) < UINT32_SIZE:
        return False

    skipped = 0
    while window != SYNC_MAGIC_BYTES:
        if skipped >= MAX_RESYNC_BYTES:
            logger.warning(f"Failed to resync after scanning {skipped} bytes")
            return False

        next_byte = reader.read(1)
        if len(next_byte) < 1:
            return False
        window = window[1:] + next_byte
        skipped += 1

    if skipped > 0:
        logger.debug(f"Resynced after skipping {skipped} bytes")
    return True


def decode_frame(reader: Reader) -> tuple[bytes | None, bool]:
    """Read one frame from a reader.

    Returns (payload, crc_ok), or (None, False) on timeout, truncation or an
    oversized length field.
    """
    if not _find_sync(reader):
        return None, False

    length_bytes = reader.read(UINT32_SIZE)
    if len(length_bytes) < UINT32_SIZE:
        return None, False

    length = uint32_from_bytes(length_bytes)
    if length > MAX_FRAME_LENGTH:
        logger.warning(f"Frame length {length} exceeds max {MAX_FRAME_LENGTH}, resyncing")
        return None, False

    payload = reader.read(length)
    crc_bytes = reader.read(UINT32_SIZE)
    if len(payload) < length or len(crc_bytes) < UINT32_SIZE:
        return None, False

    return payload, uint32_from_bytes(crc_bytes) == zlib.crc32(payload)
