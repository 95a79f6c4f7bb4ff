"""PING/PONG message encoding/decoding for timesync-testkit.

Payload layouts (inside a frame, see common.message):
  PING: [type=0x01][u32 sequence_number][i64 outgoing_stamp]
  PONG: [type=0x02][u32 sequence_number][i64 outgoing_stamp][i64 pong_stamp]

The PONG echoes the PING's outgoing_stamp unchanged so the initiator can
compute the round trip from the reply alone.
"""

import struct
from dataclasses import dataclass

from common import message
from common.protocol import MsgType

_PING_BODY = struct.Struct("<Iq")
_PONG_BODY = struct.Struct("<Iqq")


class EncodingError(Exception):
    """Raised when message decoding fails due to invalid message format."""

    pass


class TransportError(Exception):
    """Raised when message decoding fails due to transport issues (timeout, truncation, CRC)."""

    pass


class CrcError(TransportError):
    """Raised when a complete frame arrives with a bad CRC32."""

    pass


@dataclass(frozen=True)
class Ping:
    """Request emitted by the round driver."""

    sequence_number: int
    outgoing_stamp: int  # ns, initiator clock


@dataclass(frozen=True)
class Pong:
    """Reply from the remote peer."""

    sequence_number: int
    outgoing_stamp: int  # ns, echoed from the PING
    pong_stamp: int  # ns, remote clock


def encode_ping(ping: Ping) -> bytes:
    """Encode a PING frame."""
    payload = bytes([MsgType.PING]) + _PING_BODY.pack(ping.sequence_number, ping.outgoing_stamp)
    return message.encode_frame(payload)


def encode_pong(pong: Pong) -> bytes:
    """Encode a PONG frame."""
    payload = bytes([MsgType.PONG]) + _PONG_BODY.pack(
        pong.sequence_number, pong.outgoing_stamp, pong.pong_stamp
    )
    return message.encode_frame(payload)


def pong_for(ping: Ping, pong_stamp: int) -> Pong:
    """Build the reply to a PING, echoing its sequence number and stamp."""
    return Pong(
        sequence_number=ping.sequence_number,
        outgoing_stamp=ping.outgoing_stamp,
        pong_stamp=pong_stamp,
    )


def decode_payload(payload: bytes) -> Ping | Pong:
    """Decode a frame payload into a Ping or Pong.

    Raises EncodingError on unknown type or wrong length.
    """
    if not payload:
        raise EncodingError("Empty payload")

    try:
        msg_type = MsgType(payload[0])
    except ValueError:
        raise EncodingError(f"Invalid message type: {payload[0]}")

    body = payload[1:]
    match msg_type:
        case MsgType.PING:
            if len(body) != _PING_BODY.size:
                raise EncodingError(f"PING body is {len(body)} bytes, expected {_PING_BODY.size}")
            seq, outgoing = _PING_BODY.unpack(body)
            return Ping(sequence_number=seq, outgoing_stamp=outgoing)
        case MsgType.PONG:
            if len(body) != _PONG_BODY.size:
                raise EncodingError(f"PONG body is {len(body)} bytes, expected {_PONG_BODY.size}")
            seq, outgoing, pong_stamp = _PONG_BODY.unpack(body)
            return Pong(sequence_number=seq, outgoing_stamp=outgoing, pong_stamp=pong_stamp)


def decode_message(reader: message.Reader) -> Ping | Pong:
    """Decode the next message from reader.

    Raises:
        TransportError: On timeout or truncated frame.
        CrcError: On CRC mismatch (a TransportError).
        EncodingError: On invalid payload format.
    """
    payload, crc_ok = message.decode_frame(reader)
    if payload is None:
        raise TransportError("Timeout or truncated frame")
    if not crc_ok:
        raise CrcError(f"CRC mismatch on {len(payload)}-byte frame")
    return decode_payload(payload)
