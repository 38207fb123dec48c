"""
payproof/core/units.py

Conversions from witnessed strings to integers.

Witnessed values arrive as text ("42.00", "-20064", "20250428", ...).
Each converter accepts exactly one shape and raises MalformedInputError
on anything else. Nothing is rounded up: converted amounts only ever
lose precision downward.
"""

import re
from datetime import datetime, timedelta, timezone
from enum import Enum

from payproof.core.exceptions import MalformedInputError, PaymentMismatchError


_DIGITS = frozenset("0123456789")

_ISO_DATETIME = re.compile(
    r"^([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2}):([0-9]{2})(?:\.([0-9]+))?(Z|[+-][0-9]{2}:[0-9]{2})?$"
)
_ISO_DATE = re.compile(r"^([0-9]{4})-([0-9]{2})-([0-9]{2})$")
_COMPACT_DATE = re.compile(r"^([0-9]{4})([0-9]{2})([0-9]{2})$")
_US_DATE = re.compile(r"^([0-9]{2})/([0-9]{2})/([0-9]{4})$")
_EPOCH = re.compile(r"^[0-9]{1,16}$")
_BYTES32_HEX = re.compile(r"^0x[0-9a-fA-F]{64}$")

_END_OF_DAY = 86400 - 1


def _malformed(message: str, value: str, **details) -> MalformedInputError:
    return MalformedInputError(message, {"kind": "malformed_number", "value": value, **details})


# ── Amounts ─────────────────────────────────────────────────

def string_to_uint(value: str, decimals: int, decimal_char: str = ".") -> int:
    """
    Parse a non-negative decimal string into an integer scaled by 10**decimals.

        string_to_uint("123.456", 5) → 12345600
        string_to_uint("123456.", 0) → 123456

    Raises MalformedInputError on an empty string, any character other than
    digits and one decimal_char, or more fractional digits than decimals.
    """
    if decimals < 0:
        raise ValueError("decimals must be >= 0")
    if not value:
        raise _malformed("Amount string is empty", value)

    result = 0
    seen_decimal = False
    fraction_digits = 0
    digit_count = 0
    for c in value:
        if c == decimal_char:
            if seen_decimal:
                raise _malformed("String has multiple decimals", value)
            seen_decimal = True
            continue
        if c not in _DIGITS:
            raise _malformed("String has a non-numeric character", value, char=c)
        result = result * 10 + (ord(c) - 48)
        digit_count += 1
        if seen_decimal:
            fraction_digits += 1

    if digit_count == 0:
        raise _malformed("Amount string has no digits", value)
    if fraction_digits > decimals:
        raise _malformed("String has too many decimal places", value, decimals=decimals)
    return result * 10 ** (decimals - fraction_digits)


def parse_payment_amount(
    value:        str,
    decimals:     int,
    minor_units:  bool = False,
    outgoing:     bool = False,
) -> int:
    """
    Witnessed amount in token base units.

    outgoing:     the amount is an account debit and must carry a leading '-'.
    minor_units:  the amount is in cents/pence (two implied decimals).
    """
    if outgoing:
        if not value.startswith("-"):
            raise PaymentMismatchError(
                "Payment amount is not an outgoing transfer", {"amount": value}
            )
        value = value[1:]
    amount = string_to_uint(value, decimals)
    if minor_units:
        amount //= 100
    return amount


# ── Timestamps ──────────────────────────────────────────────

class TimestampFormat(Enum):
    """Shapes of witnessed payment times. All are read as UTC."""
    ISO_DATETIME = "iso_datetime"   # 2024-10-27T18:16:11, 2025-07-18T14:01:56.31Z
    EPOCH_MILLIS = "epoch_millis"   # 1731488958497
    EPOCH_SECONDS = "epoch_seconds" # 1731488958
    ISO_DATE = "iso_date"           # 2025-05-27
    COMPACT_DATE = "compact_date"   # 20250428
    US_DATE = "us_date"             # 04/28/2025

    @property
    def is_date_only(self) -> bool:
        return self in (TimestampFormat.ISO_DATE, TimestampFormat.COMPACT_DATE, TimestampFormat.US_DATE)


def _utc_seconds(year, month, day, hour=0, minute=0, second=0, offset: str = "") -> int:
    # Offsets stay on the tzinfo; shifting the wall time could leave datetime's range.
    try:
        tz = timezone.utc
        if offset and offset != "Z":
            sign = 1 if offset[0] == "+" else -1
            tz = timezone(sign * timedelta(hours=int(offset[1:3]), minutes=int(offset[4:6])))
        moment = datetime(int(year), int(month), int(day), int(hour), int(minute), int(second),
                          tzinfo=tz)
        return int(moment.timestamp())
    except (ValueError, OverflowError) as exc:
        raise MalformedInputError(
            "Invalid date", {"kind": "malformed_timestamp", "error": str(exc)}
        ) from exc


def parse_timestamp(value: str, fmt: TimestampFormat) -> int:
    """
    Witnessed payment time as integer Unix seconds.

    Sub-second precision is truncated. Date-only formats resolve to the last
    second of that UTC day, since the payment may have happened at any time
    during it.
    """
    if fmt is TimestampFormat.EPOCH_MILLIS or fmt is TimestampFormat.EPOCH_SECONDS:
        if not _EPOCH.fullmatch(value):
            raise MalformedInputError(
                "Invalid epoch timestamp", {"kind": "malformed_timestamp", "value": value}
            )
        seconds = int(value)
        return seconds // 1000 if fmt is TimestampFormat.EPOCH_MILLIS else seconds

    if fmt is TimestampFormat.ISO_DATETIME:
        m = _ISO_DATETIME.fullmatch(value)
        if not m:
            raise MalformedInputError(
                "Invalid date format", {"kind": "malformed_timestamp", "value": value}
            )
        y, mo, d, h, mi, s, _fraction, offset = m.groups()
        return _utc_seconds(y, mo, d, h, mi, s, offset or "")

    pattern = {
        TimestampFormat.ISO_DATE: _ISO_DATE,
        TimestampFormat.COMPACT_DATE: _COMPACT_DATE,
        TimestampFormat.US_DATE: _US_DATE,
    }[fmt]
    m = pattern.fullmatch(value)
    if not m:
        raise MalformedInputError(
            "Invalid date format", {"kind": "malformed_timestamp", "value": value}
        )
    if fmt is TimestampFormat.US_DATE:
        mo, d, y = m.groups()
    else:
        y, mo, d = m.groups()
    return _utc_seconds(y, mo, d) + _END_OF_DAY


# ── 32-byte values ──────────────────────────────────────────

def is_bytes32_hex(value: str) -> bool:
    return bool(_BYTES32_HEX.fullmatch(value))


def bytes32_from_hex(value: str, field: str = "value") -> bytes:
    """0x-prefixed 64-hex-digit string → 32 bytes."""
    if not is_bytes32_hex(value):
        raise MalformedInputError(
            f"Malformed {field}", {"kind": "malformed_field", "field": field}
        )
    return bytes.fromhex(value[2:])


def normalize_bytes32_hex(value) -> str:
    """Canonical lowercase 0x form of a 32-byte value given as bytes or hex."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise ValueError(f"Expected 32 bytes, got {len(value)}")
        return "0x" + bytes(value).hex()
    return "0x" + bytes32_from_hex(value).hex()


def parse_linkage_hash(value: str, field: str = "intentHash") -> bytes:
    """
    Intent linkage value → 32 bytes.

    Accepts a decimal uint256 string or a 0x-prefixed 32-byte hex string.
    """
    if value.startswith("0x"):
        return bytes32_from_hex(value, field)
    if not value or len(value) > 78 or any(c not in _DIGITS for c in value):
        raise MalformedInputError(
            f"Malformed {field}", {"kind": "malformed_field", "field": field}
        )
    number = int(value)
    if number >= 2 ** 256:
        raise MalformedInputError(
            f"{field} exceeds 256 bits", {"kind": "malformed_field", "field": field}
        )
    return number.to_bytes(32, "big")
