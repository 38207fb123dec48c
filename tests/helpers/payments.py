"""
Builders for witnessed payment proofs and verifier setups used across tests.

Addresses are fixed lowercase hex so they pass address validation without
a checksum. Witness keys are generated fresh per test.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from payproof.core.canonical import canonical_text
from payproof.core.crypto import WitnessKey, keccak_text
from payproof.core.models import PRECISE_UNIT, Proof, build_claim_info, encode_witness_data
from payproof.ledger.nullifier import NullifierRegistry
from payproof.verification.pipeline import PaymentVerificationPipeline

OWNER = "0x" + "11" * 20
ESCROW = "0x" + "22" * 20
VERIFIER = "0x" + "33" * 20
USDC = "0x" + "44" * 20
CLAIM_OWNER = "0x" + "55" * 20
STRANGER = "0x" + "66" * 20

USD = keccak_text("USD")
EUR = keccak_text("EUR")
GBP = keccak_text("GBP")

ZERO_CONTEXT_MESSAGE = "0x" + "00" * 32
INTENT_HASH = "14527918542887692994877265012607290228020786464417481864664720498778276484603"


def usdc(amount: float) -> int:
    return int(Decimal(str(amount)) * 10 ** 6)


def rate(value: float) -> int:
    return int(Decimal(str(value)) * PRECISE_UNIT)


def utc(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp())


def provider_hash(label: str) -> str:
    return "0x" + keccak_text(label).hex()


def hashed(identifier: str) -> str:
    """Recipient identifier as a witness template emits it after hashing."""
    return "0x" + keccak_text(identifier).hex()


def context_parameters_first(params: dict, intent_hash: str, provider: str) -> str:
    return canonical_text({
        "extractedParameters": params,
        "intentHash": intent_hash,
        "providerHash": provider,
    })


def context_address_message(
    params: dict,
    provider: str,
    context_message: str = ZERO_CONTEXT_MESSAGE,
    context_address: str = "0x0",
) -> str:
    return canonical_text({
        "contextAddress": context_address,
        "contextMessage": context_message,
        "extractedParameters": params,
        "providerHash": provider,
    })


def witnessed(
    context:     str,
    witnesses:   Sequence[WitnessKey],
    timestamp_s: int = 1_730_000_000,
    identifier:  Optional[bytes] = None,
) -> Proof:
    claim_info = build_claim_info(
        "http",
        {"method": "GET", "url": "https://payments.example/api/{{INDEX}}"},
        context,
    )
    return Proof.create(
        claim_info,
        witnesses,
        owner=CLAIM_OWNER,
        timestamp_s=timestamp_s,
        identifier=identifier,
    )


def make_pipeline(
    strategy,
    provider_hashes:        Iterable[str] = (),
    currencies:             Iterable = ("USD",),
    timestamp_buffer:       int = 30,
    min_witness_signatures: int = 1,
    registry:               Optional[NullifierRegistry] = None,
    address:                str = VERIFIER,
    escrow:                 str = ESCROW,
) -> PaymentVerificationPipeline:
    if registry is None:
        registry = NullifierRegistry(owner=OWNER)
    pipeline = PaymentVerificationPipeline(
        address=address,
        owner=OWNER,
        escrow=escrow,
        strategy=strategy,
        nullifier_registry=registry,
        timestamp_buffer=timestamp_buffer,
        min_witness_signatures=min_witness_signatures,
        provider_hashes=provider_hashes,
        currencies=currencies,
        token_decimals={USDC: 6},
    )
    if not registry.has_write_permission(pipeline.address):
        registry.add_write_permission(pipeline.address, caller=OWNER)
    return pipeline


def verify(
    verifier,
    payment_proof:    bytes,
    witnesses:        Sequence[str] = (),
    intent_amount:    int = usdc(5),
    intent_timestamp: int = 0,
    payee_details:    bytes = b"\x00" * 32,
    fiat_currency:    bytes = USD,
    conversion_rate:  int = PRECISE_UNIT,
    data:             Optional[bytes] = None,
    caller:           str = ESCROW,
    deposit_token:    str = USDC,
):
    """verify_payment() with intent defaults; witnesses are addresses."""
    return verifier.verify_payment(
        payment_proof,
        deposit_token,
        intent_amount,
        intent_timestamp,
        payee_details,
        fiat_currency,
        conversion_rate,
        data if data is not None else encode_witness_data(list(witnesses)),
        caller=caller,
    )


def addresses(keys: Sequence[WitnessKey]) -> List[str]:
    return [k.address for k in keys]
