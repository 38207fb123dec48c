"""
payproof/core/models.py

Proof data model and wire codec.

Wire format (ABI-encoded, one tuple per proof):
    ((string provider, string parameters, string context),
     ((bytes32 identifier, address owner, uint32 timestampS, uint32 epoch),
      bytes[] signatures))

Dual-proof payment methods ABI-encode two such tuples side by side.

Hash contracts:
    ClaimInfo.hash()   = keccak256(provider + "\\n" + parameters + "\\n" + context)
    Claim.sign_data()  = identifier(0x hex) \\n owner(lowercase) \\n timestampS \\n epoch
    Claim.digest()     = EIP-191 personal-message digest of sign_data()

A Claim is only meaningful when identifier == ClaimInfo.hash(); the
pipeline enforces this before looking at signatures.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

from eth_abi import decode as abi_decode, encode as abi_encode
from eth_abi.exceptions import DecodingError

from payproof.core.canonical import canonical_text
from payproof.core.crypto import (
    WitnessKey,
    keccak_text,
    normalize_address,
    personal_message_digest,
)
from payproof.core.exceptions import MalformedInputError


PROOF_ABI_TYPE = "((string,string,string),((bytes32,address,uint32,uint32),bytes[]))"
WITNESS_DATA_ABI_TYPES = ["address[]"]

# Fixed-point scale of conversion rates
PRECISE_UNIT = 10 ** 18

ZERO_BYTES32 = b"\x00" * 32


@dataclass(frozen=True)
class ClaimInfo:
    """The captured HTTP interaction: provider name, request parameters, extracted context."""
    provider: str
    parameters: str
    context: str

    def hash(self) -> bytes:
        return keccak_text(f"{self.provider}\n{self.parameters}\n{self.context}")

    def to_abi(self) -> tuple:
        return (self.provider, self.parameters, self.context)


def build_claim_info(provider: str, parameters, context) -> ClaimInfo:
    """
    ClaimInfo with JSON parameters and context in RFC 8785 canonical form.

    Strings are taken as already serialized. Key order of the context
    decides field order for extraction, so canonical form is what the
    payment-method layouts are written against.
    """
    if not isinstance(parameters, str):
        parameters = canonical_text(parameters)
    if not isinstance(context, str):
        context = canonical_text(context)
    return ClaimInfo(provider, parameters, context)


@dataclass(frozen=True)
class Claim:
    """What a witness signs."""
    identifier: bytes
    owner: str
    timestamp_s: int
    epoch: int

    def sign_data(self) -> str:
        return "\n".join([
            "0x" + self.identifier.hex(),
            self.owner.lower(),
            str(self.timestamp_s),
            str(self.epoch),
        ])

    def digest(self) -> bytes:
        return personal_message_digest(self.sign_data())

    def to_abi(self) -> tuple:
        return (self.identifier, self.owner, self.timestamp_s, self.epoch)


@dataclass(frozen=True)
class SignedClaim:
    claim: Claim
    signatures: Tuple[bytes, ...] = ()

    def to_abi(self) -> tuple:
        return (self.claim.to_abi(), list(self.signatures))


@dataclass(frozen=True)
class Proof:
    """A witnessed claim: ClaimInfo plus the signed Claim binding it."""
    claim_info: ClaimInfo
    signed_claim: SignedClaim

    @property
    def claim(self) -> Claim:
        return self.signed_claim.claim

    @property
    def signatures(self) -> Tuple[bytes, ...]:
        return self.signed_claim.signatures

    # ── Construction (witness side) ───────────────────────────

    @classmethod
    def create(
        cls,
        claim_info:  ClaimInfo,
        witnesses:   Sequence[WitnessKey],
        owner:       str,
        timestamp_s: int,
        epoch:       int = 1,
        identifier:  Optional[bytes] = None,
    ) -> "Proof":
        """
        Build a proof signed by every key in witnesses.

        identifier defaults to claim_info.hash(); pass another value only to
        model a witness that signed something else.
        """
        claim = Claim(
            identifier=  identifier if identifier is not None else claim_info.hash(),
            owner=       normalize_address(owner),
            timestamp_s= timestamp_s,
            epoch=       epoch,
        )
        sign_data = claim.sign_data()
        signatures = tuple(w.sign_message(sign_data) for w in witnesses)
        return cls(claim_info, SignedClaim(claim, signatures))

    # ── Wire codec ────────────────────────────────────────────

    def to_abi(self) -> tuple:
        return (self.claim_info.to_abi(), self.signed_claim.to_abi())

    @classmethod
    def from_abi(cls, value: tuple) -> "Proof":
        (provider, parameters, context), ((identifier, owner, ts, epoch), sigs) = value
        return cls(
            ClaimInfo(provider, parameters, context),
            SignedClaim(
                Claim(bytes(identifier), normalize_address(owner), ts, epoch),
                tuple(bytes(s) for s in sigs),
            ),
        )

    def encode(self) -> bytes:
        return encode_proofs(self)

    @classmethod
    def decode(cls, data: bytes) -> "Proof":
        return decode_proofs(data, 1)[0]


def encode_proofs(*proofs: Proof) -> bytes:
    return abi_encode([PROOF_ABI_TYPE] * len(proofs), [p.to_abi() for p in proofs])


def decode_proofs(data: bytes, count: int) -> List[Proof]:
    """
    Decode `count` proofs from one ABI payload.
    Raises MalformedInputError if the payload does not decode.
    """
    try:
        values = abi_decode([PROOF_ABI_TYPE] * count, bytes(data))
        return [Proof.from_abi(v) for v in values]
    except (DecodingError, ValueError, TypeError, OverflowError) as exc:
        raise MalformedInputError(
            "Payment proof could not be decoded",
            {"kind": "undecodable_proof", "proofs": count, "error": type(exc).__name__},
        ) from exc


def encode_witness_data(witnesses: Sequence[str]) -> bytes:
    return abi_encode(WITNESS_DATA_ABI_TYPES, [[normalize_address(w) for w in witnesses]])


def decode_witness_data(data: bytes) -> List[str]:
    try:
        (witnesses,) = abi_decode(WITNESS_DATA_ABI_TYPES, bytes(data))
    except (DecodingError, ValueError, TypeError, OverflowError) as exc:
        raise MalformedInputError(
            "Witness data could not be decoded",
            {"kind": "undecodable_witness_data"},
        ) from exc
    return [normalize_address(w) for w in witnesses]


@dataclass(frozen=True)
class PaymentIntentParams:
    """
    What the escrow expects to have been paid.

    payee_details and fiat_currency are 32-byte hashes. conversion_rate is
    fixed-point at PRECISE_UNIT. data carries method-specific deposit data:
    an ABI address[] witness list for witnessed methods, a secret hash for OTP.
    """
    deposit_token:    str
    intent_amount:    int
    intent_timestamp: int
    payee_details:    bytes
    fiat_currency:    bytes
    conversion_rate:  int
    data:             bytes = b""


@dataclass(frozen=True)
class ExtractedPaymentFields:
    """Payment fields as read from a witnessed context. All values are raw strings."""
    amount:        str
    timestamp:     str
    recipient_id:  str
    currency_code: str
    payment_id:    str
    provider_hash: str
    status:        Optional[str] = None
    payment_type:  Optional[str] = None
    linkage:       Optional[str] = None


@dataclass(frozen=True)
class VerificationResult:
    """
    Outcome of an accepted verification.

    Iterates as (verified, linkage_hash), so callers may unpack it like the
    escrow's (bool, bytes32) return.
    """
    verified:       bool
    linkage_hash:   bytes
    nullifier:      bytes = ZERO_BYTES32
    payment_method: str = ""
    provider_hashes: Tuple[str, ...] = field(default_factory=tuple)

    def __iter__(self) -> Iterator:
        return iter((self.verified, self.linkage_hash))
