"""
payproof/core/time.py

Wire format for record timestamps: YYYY-MM-DDTHH:MM:SS.mmmZ
(milliseconds, explicit Z).

Events and nullifier journal entries take their timestamps from here.
Payment times are NOT record timestamps; those come from the witnessed
context and are parsed in units.py.
"""

from datetime import datetime, timezone


def utc_timestamp() -> str:
    """Current UTC time, exactly 3 fractional digits, Z suffix."""
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"
