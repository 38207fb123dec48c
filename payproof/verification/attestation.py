"""
Witness attestation payment method.

Instead of a raw captured session, an attestation service verifies the
payment off-system and its witnesses sign a typed EIP-712 summary:

    PaymentDetails(bytes32 paymentMethod, bytes32 providerHash,
                   bytes32 intentHash,   bytes32 recipientId,
                   uint256 amount,       uint256 timestamp,
                   bytes32 paymentId,    bytes32 currency,
                   bytes32 dataHash)

    domain = {name: "UnifiedPaymentVerifier", version: "1",
              chainId, verifyingContract: <pipeline address>}

Signatures travel next to the struct, outside the signed data. amount is
already in deposit-token base units and timestamp in Unix seconds.
"""

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Sequence, Tuple

from eth_abi import decode as abi_decode, encode as abi_encode
from eth_abi.exceptions import DecodingError

from payproof.core.crypto import WitnessKey, keccak, keccak_text, normalize_address
from payproof.core.exceptions import MalformedInputError, SchemaMismatchError
from payproof.core.models import PaymentIntentParams, decode_witness_data
from payproof.verification import matching
from payproof.verification.strategies import PaymentVerdict

if TYPE_CHECKING:
    from payproof.verification.pipeline import PaymentVerificationPipeline


DOMAIN_NAME = "UnifiedPaymentVerifier"
DOMAIN_VERSION = "1"

EIP712_DOMAIN_TYPEHASH = keccak_text(
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
PAYMENT_DETAILS_TYPEHASH = keccak_text(
    "PaymentDetails(bytes32 paymentMethod,bytes32 providerHash,bytes32 intentHash,"
    "bytes32 recipientId,uint256 amount,uint256 timestamp,bytes32 paymentId,"
    "bytes32 currency,bytes32 dataHash)"
)

ATTESTATION_ABI_TYPE = "(bytes32,bytes32,bytes32,bytes32,uint256,uint256,bytes32,bytes32,bytes32,bytes[])"


@dataclass(frozen=True)
class Eip712Domain:
    chain_id: int
    verifying_contract: str
    name: str = DOMAIN_NAME
    version: str = DOMAIN_VERSION

    def separator(self) -> bytes:
        return keccak(abi_encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [
                EIP712_DOMAIN_TYPEHASH,
                keccak_text(self.name),
                keccak_text(self.version),
                self.chain_id,
                normalize_address(self.verifying_contract),
            ],
        ))


@dataclass(frozen=True)
class PaymentAttestation:
    payment_method: bytes
    provider_hash: bytes
    intent_hash: bytes
    recipient_id: bytes
    amount: int
    timestamp: int
    payment_id: bytes
    currency: bytes
    data_hash: bytes
    signatures: Tuple[bytes, ...] = field(default=())

    def struct_hash(self) -> bytes:
        return keccak(abi_encode(
            ["bytes32"] * 5 + ["uint256", "uint256"] + ["bytes32"] * 3,
            [
                PAYMENT_DETAILS_TYPEHASH,
                self.payment_method,
                self.provider_hash,
                self.intent_hash,
                self.recipient_id,
                self.amount,
                self.timestamp,
                self.payment_id,
                self.currency,
                self.data_hash,
            ],
        ))

    def digest(self, domain: Eip712Domain) -> bytes:
        return keccak(b"\x19\x01" + domain.separator() + self.struct_hash())

    def signed_by(self, witnesses: Sequence[WitnessKey], domain: Eip712Domain) -> "PaymentAttestation":
        """Copy of this attestation carrying one signature per witness."""
        digest = self.digest(domain)
        signatures = tuple(w.sign_hash(digest) for w in witnesses)
        return replace(self, signatures=signatures)

    def encode(self) -> bytes:
        return abi_encode([ATTESTATION_ABI_TYPE], [(
            self.payment_method, self.provider_hash, self.intent_hash, self.recipient_id,
            self.amount, self.timestamp, self.payment_id, self.currency, self.data_hash,
            list(self.signatures),
        )])

    @classmethod
    def decode(cls, data: bytes) -> "PaymentAttestation":
        try:
            (value,) = abi_decode([ATTESTATION_ABI_TYPE], bytes(data))
        except (DecodingError, ValueError, TypeError, OverflowError) as exc:
            raise MalformedInputError(
                "Payment attestation could not be decoded", {"kind": "undecodable_proof"}
            ) from exc
        *head, signatures = value
        return cls(*head, signatures=tuple(bytes(s) for s in signatures))


@dataclass(frozen=True)
class WitnessAttestationStrategy:
    """Attested payments for one payment method, e.g. "venmo"."""
    payment_method: str
    name: str = "attestation"

    @property
    def payment_method_hash(self) -> bytes:
        return keccak_text(self.payment_method)

    def evaluate(
        self,
        pipeline:      "PaymentVerificationPipeline",
        payment_proof: bytes,
        intent:        PaymentIntentParams,
    ) -> PaymentVerdict:
        attestation = PaymentAttestation.decode(payment_proof)
        if attestation.payment_method != self.payment_method_hash:
            raise SchemaMismatchError(
                "Attestation is for another payment method",
                {"expected": self.payment_method},
            )

        witnesses = decode_witness_data(intent.data)
        pipeline.check_signatures(
            attestation.digest(pipeline.eip712_domain), attestation.signatures, witnesses
        )
        provider_hash = "0x" + attestation.provider_hash.hex()
        pipeline.require_provider_hash(provider_hash)

        matching.check_amount(attestation.amount, intent.intent_amount, intent.conversion_rate)
        matching.check_timestamp(
            attestation.timestamp, pipeline.get_timestamp_buffer(), intent.intent_timestamp
        )
        matching.check_recipient(attestation.recipient_id, intent.payee_details)
        matching.check_currency(attestation.currency, intent.fiat_currency, pipeline.get_currencies())

        return PaymentVerdict(
            linkage_hash=attestation.intent_hash,
            nullifier=matching.scoped_nullifier(attestation.payment_method, attestation.payment_id),
            provider_hashes=(provider_hash,),
        )
