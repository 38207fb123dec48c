"""
One-time-secret payment method.

The depositor registers secret_hash = keccak256(secret ‖ payee_details)
when creating the deposit and shares the secret with the payer out of
band. Revealing the secret is the proof: no witness, no context parsing,
no amount or currency matching. The escrow handles double-spend per
intent; the nullifier only stops the same (secret, intent) pair from
being released twice.

    payment_proof = abi.encode(bytes32 secret, bytes32 intentHash)
    intent.data   = abi.encode(bytes32 secretHash)
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from eth_abi import decode as abi_decode, encode as abi_encode
from eth_abi.exceptions import DecodingError

from payproof.core.crypto import keccak
from payproof.core.exceptions import AuthorizationError, MalformedInputError
from payproof.core.models import PaymentIntentParams
from payproof.verification.matching import scoped_nullifier
from payproof.verification.strategies import PaymentVerdict

if TYPE_CHECKING:
    from payproof.verification.pipeline import PaymentVerificationPipeline


def otp_secret_hash(secret: bytes, payee_details: bytes) -> bytes:
    return keccak(bytes(secret) + bytes(payee_details))


def encode_otp_proof(secret: bytes, intent_hash: bytes) -> bytes:
    return abi_encode(["bytes32", "bytes32"], [bytes(secret), bytes(intent_hash)])


def encode_otp_deposit_data(secret_hash: bytes) -> bytes:
    return abi_encode(["bytes32"], [bytes(secret_hash)])


def _decode(types, data: bytes, what: str):
    try:
        return abi_decode(types, bytes(data))
    except (DecodingError, ValueError, TypeError, OverflowError) as exc:
        raise MalformedInputError(
            f"OTP {what} could not be decoded", {"kind": "undecodable_proof"}
        ) from exc


@dataclass(frozen=True)
class OTPStrategy:
    name: str = "otp"

    def evaluate(
        self,
        pipeline:      "PaymentVerificationPipeline",
        payment_proof: bytes,
        intent:        PaymentIntentParams,
    ) -> PaymentVerdict:
        secret, intent_hash = _decode(["bytes32", "bytes32"], payment_proof, "proof")
        (secret_hash,) = _decode(["bytes32"], intent.data, "deposit data")

        if otp_secret_hash(secret, intent.payee_details) != secret_hash:
            raise AuthorizationError("Invalid OTP: secret does not match hash")

        return PaymentVerdict(
            linkage_hash=bytes(intent_hash),
            nullifier=scoped_nullifier(secret_hash, intent_hash),
        )
