"""
Payment matching rules.

Each check compares one proven fact against the intent and raises
PaymentMismatchError when the payment does not satisfy it. They are pure
and shared by every witnessed payment method.

    amount:     payment_amount * 1e18 >= intent_amount * conversion_rate
    timestamp:  payment_timestamp + buffer >= intent_timestamp
    recipient:  hash(recipient) == payee_details
    currency:   currency_code == fiat_currency, and fiat_currency is supported
"""

from typing import Collection, Union

from payproof.core.crypto import keccak, keccak_text
from payproof.core.exceptions import PaymentMismatchError
from payproof.core.models import PRECISE_UNIT
from payproof.core.units import bytes32_from_hex, is_bytes32_hex


def currency_code(value: Union[str, bytes]) -> bytes:
    """
    32-byte currency code.

    Accepts the code itself (32 bytes or 0x hex) or an ISO 4217 string such
    as "USD", which is hashed with keccak256.
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise ValueError(f"Currency code must be 32 bytes, got {len(value)}")
        return bytes(value)
    if is_bytes32_hex(value):
        return bytes32_from_hex(value, "currency")
    return keccak_text(value)


def recipient_hash(recipient: str, prehashed: bool) -> bytes:
    """
    Hash of a witnessed recipient identifier.

    When the witness template already hashed the identifier, the witnessed
    value is that hash in 0x hex and is used as is.
    """
    if prehashed:
        return bytes32_from_hex(recipient, "recipient")
    return keccak_text(recipient)


def check_amount(payment_amount: int, intent_amount: int, conversion_rate: int) -> None:
    if payment_amount * PRECISE_UNIT < intent_amount * conversion_rate:
        raise PaymentMismatchError(
            "Incorrect payment amount",
            {"paid": payment_amount, "required": intent_amount * conversion_rate // PRECISE_UNIT},
        )


def check_timestamp(payment_timestamp: int, timestamp_buffer: int, intent_timestamp: int) -> None:
    if payment_timestamp + timestamp_buffer < intent_timestamp:
        raise PaymentMismatchError(
            "Incorrect payment timestamp",
            {"paid_at": payment_timestamp, "intent_at": intent_timestamp, "buffer": timestamp_buffer},
        )


def check_recipient(recipient_digest: bytes, payee_details: bytes) -> None:
    if recipient_digest != bytes(payee_details):
        raise PaymentMismatchError("Incorrect payment recipient")


def check_currency(code: bytes, fiat_currency: bytes, supported: Collection[bytes]) -> None:
    if code != bytes(fiat_currency):
        raise PaymentMismatchError(
            "Incorrect payment currency", {"currency": "0x" + code.hex()}
        )
    if code not in supported:
        raise PaymentMismatchError(
            "Unsupported payment currency", {"currency": "0x" + code.hex()}
        )


def check_status(status: str, expected: str) -> None:
    if status != expected:
        raise PaymentMismatchError(
            "Payment not completed", {"status": status, "expected": expected}
        )


def check_payment_type(payment_type: str, expected: str) -> None:
    if payment_type != expected:
        raise PaymentMismatchError(
            "Invalid payment type", {"payment_type": payment_type, "expected": expected}
        )


def payment_id_nullifier(payment_id: str) -> bytes:
    return keccak_text(payment_id)


def scoped_nullifier(scope: bytes, payment_id: bytes) -> bytes:
    """Nullifier for ids that are only unique within a payment method or deposit."""
    return keccak(bytes(scope) + bytes(payment_id))
