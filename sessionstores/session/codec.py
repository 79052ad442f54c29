"""
Record codec shared by every backend.

Records are stored as a MessagePack map with the keys ``id``, ``data`` and
``expiry_date``. The expiry is packed with the MessagePack Timestamp
extension, so it decodes back to the same instant. Unknown keys are
ignored on decode, which lets newer writers add fields without breaking
older readers.

Session data is limited to values that decode back unchanged: None, bool,
int, float, str, bytes, aware datetimes, and lists and dicts of those. Map
keys may be any of the scalar types. Tuples, sets and subclasses of the
built-in types are rejected on encode.
"""

from datetime import datetime
from typing import Any

import msgpack

from sessionstores.errors import DecodeError, EncodeError
from sessionstores.session.record import SessionRecord


def encode_record(record: SessionRecord) -> bytes:
    """
    Serialize a record to bytes.

    Args:
        record: The record to encode. Its id may still be None.

    Returns:
        The MessagePack payload.

    Raises:
        EncodeError: If the data holds a value that would not decode back
            unchanged (tuples, sets, naive datetimes, arbitrary objects,
            out-of-range ints).
    """
    payload = {
        "id": record.id,
        "data": record.data,
        "expiry_date": record.expiry_date,
    }
    try:
        return msgpack.packb(
            payload, use_bin_type=True, datetime=True, strict_types=True
        )
    except (TypeError, ValueError, OverflowError) as e:
        raise EncodeError(
            f"Failed to encode session record: {e}",
            details={"session_id": record.id},
        ) from e


def decode_record(payload: bytes) -> SessionRecord:
    """
    Deserialize bytes produced by encode_record.

    Raises:
        DecodeError: On malformed, truncated or trailing input, or when a
            required field is missing or has the wrong type. A partial
            record is never returned.
    """
    try:
        obj = msgpack.unpackb(
            payload, raw=False, timestamp=3, strict_map_key=False
        )
    except (ValueError, TypeError, msgpack.UnpackException) as e:
        raise DecodeError(f"Failed to decode session record: {e}") from e

    if not isinstance(obj, dict):
        raise DecodeError(
            f"Session record must be a map, got {type(obj).__name__}"
        )

    return SessionRecord(
        id=_field(obj, "id", (str, type(None))),
        data=_field(obj, "data", dict),
        expiry_date=_field(obj, "expiry_date", datetime),
    )


def _field(obj: dict[str, Any], name: str, expected: Any) -> Any:
    if name not in obj:
        raise DecodeError(f"Session record is missing field '{name}'")
    value = obj[name]
    if not isinstance(value, expected):
        raise DecodeError(
            f"Session record field '{name}' has unexpected type {type(value).__name__}"
        )
    return value
