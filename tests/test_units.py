"""
tests/test_units.py

Witnessed strings to integers: amounts, payment times, 32-byte values.
"""

import pytest

from payproof.core.exceptions import MalformedInputError, PaymentMismatchError
from payproof.core.units import (
    TimestampFormat,
    bytes32_from_hex,
    parse_linkage_hash,
    parse_payment_amount,
    parse_timestamp,
    string_to_uint,
)

from helpers.payments import utc


class TestStringToUint:

    @pytest.mark.parametrize("value, decimals, expected", [
        ("123.456", 5, 12345600),
        ("123.456", 3, 123456),
        ("123456.", 0, 123456),
        ("123456", 6, 123456000000),
        ("0.5", 6, 500000),
        (".5", 1, 5),
        ("007", 0, 7),
    ])
    def test_scales_to_decimals(self, value, decimals, expected):
        assert string_to_uint(value, decimals) == expected

    def test_alternate_decimal_character(self):
        assert string_to_uint("12,50", 2, decimal_char=",") == 1250

    def test_too_many_decimal_places(self):
        with pytest.raises(MalformedInputError, match="too many decimal places"):
            string_to_uint("123.456", 2)

    def test_multiple_decimals(self):
        with pytest.raises(MalformedInputError, match="multiple decimals"):
            string_to_uint("123.45.6", 6)

    @pytest.mark.parametrize("value", ["", ".", "-1", "1e5", "1 000", "١٢٣", "12,5"])
    def test_rejects_anything_but_digits_and_one_point(self, value):
        with pytest.raises(MalformedInputError):
            string_to_uint(value, 6)


class TestPaymentAmount:

    def test_major_units(self):
        assert parse_payment_amount("42.00", 6) == 42_000_000

    def test_outgoing_minor_units(self):
        assert parse_payment_amount("-20064", 6, minor_units=True, outgoing=True) == 200_640_000

    def test_incoming_transfer_is_not_a_payment(self):
        with pytest.raises(PaymentMismatchError):
            parse_payment_amount("20064", 6, minor_units=True, outgoing=True)

    def test_sign_not_accepted_when_not_outgoing(self):
        with pytest.raises(MalformedInputError):
            parse_payment_amount("-1.00", 6)


class TestTimestamps:

    @pytest.mark.parametrize("value, fmt, expected", [
        ("2024-10-27T18:16:11", TimestampFormat.ISO_DATETIME, utc(2024, 10, 27, 18, 16, 11)),
        ("2025-07-18T14:01:56.31Z", TimestampFormat.ISO_DATETIME, utc(2025, 7, 18, 14, 1, 56)),
        ("2025-07-18T16:01:56+02:00", TimestampFormat.ISO_DATETIME, utc(2025, 7, 18, 14, 1, 56)),
        ("1731488958497", TimestampFormat.EPOCH_MILLIS, 1731488958),
        ("1731488958", TimestampFormat.EPOCH_SECONDS, 1731488958),
        ("2025-05-27", TimestampFormat.ISO_DATE, utc(2025, 5, 27, 23, 59, 59)),
        ("20250428", TimestampFormat.COMPACT_DATE, utc(2025, 4, 28, 23, 59, 59)),
        ("04/28/2025", TimestampFormat.US_DATE, utc(2025, 4, 28, 23, 59, 59)),
    ])
    def test_formats(self, value, fmt, expected):
        assert parse_timestamp(value, fmt) == expected

    @pytest.mark.parametrize("value, fmt", [
        ("2024-10-27 18:16:11", TimestampFormat.ISO_DATETIME),
        ("2024-13-01T00:00:00", TimestampFormat.ISO_DATETIME),
        ("2024-10-27T18:16:11\n", TimestampFormat.ISO_DATETIME),
        ("-1731488958497", TimestampFormat.EPOCH_MILLIS),
        ("2025-02-30", TimestampFormat.ISO_DATE),
        ("2025428", TimestampFormat.COMPACT_DATE),
        ("28/04/2025", TimestampFormat.US_DATE),
    ])
    def test_malformed(self, value, fmt):
        with pytest.raises(MalformedInputError):
            parse_timestamp(value, fmt)

    @pytest.mark.parametrize("value, expected", [
        ("9999-12-31T23:59:59-01:00", utc(9999, 12, 31, 23, 59, 59) + 3600),
        ("0001-01-01T00:00:00+01:00", utc(1, 1, 1, 0, 0, 0) - 3600),
    ])
    def test_offset_past_datetime_range(self, value, expected):
        """The UTC instant may fall outside datetime's range; the seconds are still exact."""
        assert parse_timestamp(value, TimestampFormat.ISO_DATETIME) == expected

    @pytest.mark.parametrize("value", [
        "2025-07-18T14:01:56+24:00",
        "2025-07-18T14:01:56-99:59",
    ])
    def test_offset_out_of_range(self, value):
        with pytest.raises(MalformedInputError) as exc_info:
            parse_timestamp(value, TimestampFormat.ISO_DATETIME)
        assert exc_info.value.kind == "malformed_timestamp"

    def test_date_only_formats(self):
        assert TimestampFormat.ISO_DATE.is_date_only
        assert not TimestampFormat.ISO_DATETIME.is_date_only


class TestBytes32:

    def test_decimal_linkage(self):
        value = "14527918542887692994877265012607290228020786464417481864664720498778276484603"
        linkage = parse_linkage_hash(value)
        assert "0x" + linkage.hex() == (
            "0x201e82b028debcfa4effc89d7e52d8023270ed9b1b1e99a8d2d7e1d53ca5d5fb"
        )

    def test_hex_linkage(self):
        assert parse_linkage_hash("0x" + "ab" * 32) == b"\xab" * 32

    @pytest.mark.parametrize("value", ["", "0x1234", "12a", str(2 ** 256), "1" * 100])
    def test_bad_linkage(self, value):
        with pytest.raises(MalformedInputError):
            parse_linkage_hash(value)

    def test_bytes32_hex_requires_prefix_and_length(self):
        assert bytes32_from_hex("0x" + "00" * 32) == b"\x00" * 32
        with pytest.raises(MalformedInputError):
            bytes32_from_hex("00" * 32)
