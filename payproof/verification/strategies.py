"""
Witnessed-proof payment methods.

A payment method is a strategy object with one operation:

    strategy.evaluate(pipeline, payment_proof, intent) → PaymentVerdict

It checks the proof against the intent and returns what the pipeline must
commit (the nullifier) and report (the linkage hash). It raises on any
rejection and never changes state itself; the pipeline owns the caller
check, configuration, and nullifier commit.

Variants are composed from data, not subclassed:
    ReclaimStrategy      one witnessed proof read through one FieldLayout
    LinkedProofStrategy  two witnessed proofs, joined on a shared field
    OTPStrategy          shared secret, see otp.py
    WitnessAttestationStrategy  EIP-712 attestation, see attestation.py

Per proof, in order:
    identifier == hash(ClaimInfo)          → SchemaMismatchError
    signatures non-empty, threshold met    → InsufficientSignaturesError
    context parses under the layout        → MalformedInputError
    providerHash approved                  → SchemaMismatchError
then amount, timestamp, status, recipient, currency → PaymentMismatchError.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from payproof.core.exceptions import ConfigurationError, MalformedInputError, PaymentMismatchError
from payproof.core.extraction import ContextProfile, extract_all_from_context
from payproof.core.models import (
    ExtractedPaymentFields,
    PaymentIntentParams,
    Proof,
    decode_proofs,
    decode_witness_data,
)
from payproof.core.units import TimestampFormat, parse_linkage_hash, parse_payment_amount, parse_timestamp
from payproof.verification import matching

if TYPE_CHECKING:
    from payproof.verification.pipeline import PaymentVerificationPipeline

logger = logging.getLogger(__name__)


ROLES = (
    "amount", "amount_cents", "timestamp", "recipient", "currency", "payment_id", "status",
    "payment_type",
)


@dataclass(frozen=True)
class PaymentVerdict:
    """What an accepted proof resolves to."""
    linkage_hash: bytes
    nullifier: bytes
    provider_hashes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FieldLayout:
    """
    Where the payment fields sit in a witnessed context.

    Role values are positions in the list returned by
    extract_all_from_context(..., include_linkage_hashes=True), so for
    ADDRESS_MESSAGE layouts the first parameter is at index 2.
    field_count is the exact length of that list.

    When amount_cents is set the amount is witnessed in two parts, whole
    units (optionally grouped with thousands_separator) and cents.
    """
    profile: ContextProfile
    field_count: int
    amount: Optional[int] = None
    timestamp: Optional[int] = None
    recipient: Optional[int] = None
    currency: Optional[int] = None
    payment_id: Optional[int] = None
    status: Optional[int] = None
    amount_cents: Optional[int] = None
    payment_type: Optional[int] = None

    timestamp_format: TimestampFormat = TimestampFormat.ISO_DATETIME
    fixed_currency: Optional[str] = None
    completed_status: Optional[str] = None
    expected_payment_type: Optional[str] = None
    thousands_separator: Optional[str] = None
    minor_units: bool = False
    outgoing: bool = False
    recipient_prehashed: bool = True

    def __post_init__(self):
        for role in ROLES:
            index = getattr(self, role)
            if index is not None and not 0 <= index < self.field_count - 1:
                raise ConfigurationError(
                    f"Layout index for {role} is out of range", {"index": index}
                )
        if self.amount_cents is not None and self.amount is None:
            raise ConfigurationError("Layout locates cents without an amount")
        if self.expected_payment_type is not None and self.payment_type is None:
            raise ConfigurationError("Layout checks a payment type it does not locate")

    @property
    def linkage_index(self) -> int:
        if self.profile is ContextProfile.ADDRESS_MESSAGE:
            return 1
        return self.field_count - 2

    def extract(self, context: str) -> List[str]:
        values = extract_all_from_context(context, self.field_count, True, self.profile)
        if len(values) != self.field_count:
            raise MalformedInputError(
                "Unexpected number of context fields",
                {"kind": "field_count", "expected": self.field_count, "found": len(values)},
            )
        return values

    def read(self, values: List[str]) -> Dict[str, str]:
        """Role → raw value for every role this layout locates."""
        found = {
            role: values[getattr(self, role)]
            for role in ROLES
            if getattr(self, role) is not None
        }
        if self.amount_cents is not None:
            found["amount"] = self._join_amount(found["amount"], found.pop("amount_cents"))
        if self.fixed_currency is not None:
            found["currency"] = self.fixed_currency
        found["linkage"] = values[self.linkage_index]
        found["provider_hash"] = values[-1]
        return found

    def _join_amount(self, whole: str, cents: str) -> str:
        grouping = r"[0-9]+"
        if self.thousands_separator is not None:
            grouping = r"[0-9]{1,3}(?:" + re.escape(self.thousands_separator) + r"[0-9]{3})*"
        if not re.fullmatch(grouping, whole) or not re.fullmatch(r"[0-9]+", cents):
            raise MalformedInputError(
                "Malformed split amount",
                {"kind": "malformed_number", "whole": whole, "cents": cents},
            )
        if self.thousands_separator is not None:
            whole = whole.replace(self.thousands_separator, "")
        return f"{whole}.{cents}"


def _witnessed_values(
    pipeline:  "PaymentVerificationPipeline",
    proof:     Proof,
    layout:    FieldLayout,
    witnesses: List[str],
) -> Dict[str, str]:
    pipeline.authenticate_proof(proof, witnesses)
    values = layout.extract(proof.claim_info.context)
    found = layout.read(values)
    pipeline.require_provider_hash(found["provider_hash"])
    logger.debug("Proof %s authenticated, %d context values",
                 "0x" + proof.claim.identifier.hex(), len(values))
    return found


def to_payment_fields(found: Dict[str, str]) -> ExtractedPaymentFields:
    missing = [r for r in ("amount", "timestamp", "recipient", "currency", "payment_id") if r not in found]
    if missing:
        raise ConfigurationError("Layout does not locate every payment field", {"missing": missing})
    return ExtractedPaymentFields(
        amount=found["amount"],
        timestamp=found["timestamp"],
        recipient_id=found["recipient"],
        currency_code=found["currency"],
        payment_id=found["payment_id"],
        provider_hash=found["provider_hash"],
        status=found.get("status"),
        payment_type=found.get("payment_type"),
        linkage=found.get("linkage"),
    )


def match_payment(
    pipeline: "PaymentVerificationPipeline",
    fields:   ExtractedPaymentFields,
    layout:   FieldLayout,
    intent:   PaymentIntentParams,
) -> None:
    """Amount, timestamp, status, payment type, recipient and currency rules, in that order."""
    decimals = pipeline.get_token_decimals(intent.deposit_token)
    amount = parse_payment_amount(
        fields.amount, decimals, minor_units=layout.minor_units, outgoing=layout.outgoing
    )
    matching.check_amount(amount, intent.intent_amount, intent.conversion_rate)

    paid_at = parse_timestamp(fields.timestamp, layout.timestamp_format)
    matching.check_timestamp(paid_at, pipeline.get_timestamp_buffer(), intent.intent_timestamp)

    if layout.completed_status is not None:
        matching.check_status(fields.status or "", layout.completed_status)
    if layout.expected_payment_type is not None:
        matching.check_payment_type(fields.payment_type or "", layout.expected_payment_type)

    matching.check_recipient(
        matching.recipient_hash(fields.recipient_id, layout.recipient_prehashed),
        intent.payee_details,
    )
    matching.check_currency(
        matching.currency_code(fields.currency_code),
        intent.fiat_currency,
        pipeline.get_currencies(),
    )


@dataclass(frozen=True)
class ReclaimStrategy:
    """Single witnessed proof."""
    name: str
    layout: FieldLayout

    def evaluate(
        self,
        pipeline:      "PaymentVerificationPipeline",
        payment_proof: bytes,
        intent:        PaymentIntentParams,
    ) -> PaymentVerdict:
        (proof,) = decode_proofs(payment_proof, 1)
        witnesses = decode_witness_data(intent.data)

        fields = to_payment_fields(_witnessed_values(pipeline, proof, self.layout, witnesses))
        match_payment(pipeline, fields, self.layout, intent)

        return PaymentVerdict(
            linkage_hash=parse_linkage_hash(fields.linkage, "linkage"),
            nullifier=matching.payment_id_nullifier(fields.payment_id),
            provider_hashes=(fields.provider_hash,),
        )


@dataclass(frozen=True)
class LinkedProofStrategy:
    """
    Two witnessed proofs of one payment, e.g. a transaction list row and
    the matching transaction detail page.

    Both proofs are authenticated independently. The value of link_role
    must be identical in both; payment fields are then read from the
    primary proof, with the secondary proof filling the roles it locates.
    The linkage hash comes from the primary proof.
    """
    name: str
    primary: FieldLayout
    secondary: FieldLayout
    link_role: str = "payment_id"
    secondary_roles: Tuple[str, ...] = field(default=("recipient",))

    def __post_init__(self):
        # amount_cents is folded into amount by FieldLayout.read
        if self.link_role not in ROLES or self.link_role == "amount_cents":
            raise ConfigurationError("Unknown link role", {"role": self.link_role})
        for layout in (self.primary, self.secondary):
            if getattr(layout, self.link_role) is None:
                raise ConfigurationError(
                    "Both layouts must locate the link role", {"role": self.link_role}
                )
        unlocated = [r for r in self.secondary_roles if r not in ROLES or r == "amount_cents"
                     or getattr(self.secondary, r) is None]
        if unlocated:
            raise ConfigurationError(
                "Secondary layout does not locate its roles", {"roles": unlocated}
            )

    def evaluate(
        self,
        pipeline:      "PaymentVerificationPipeline",
        payment_proof: bytes,
        intent:        PaymentIntentParams,
    ) -> PaymentVerdict:
        primary_proof, secondary_proof = decode_proofs(payment_proof, 2)
        witnesses = decode_witness_data(intent.data)

        primary = _witnessed_values(pipeline, primary_proof, self.primary, witnesses)
        secondary = _witnessed_values(pipeline, secondary_proof, self.secondary, witnesses)

        link = primary[self.link_role]
        if not link or link != secondary[self.link_role]:
            raise PaymentMismatchError(
                "Payment IDs do not match",
                {"role": self.link_role},
            )

        merged = dict(primary)
        for role in self.secondary_roles:
            merged[role] = secondary[role]
        fields = to_payment_fields(merged)
        match_payment(pipeline, fields, self.primary, intent)

        return PaymentVerdict(
            linkage_hash=parse_linkage_hash(fields.linkage, "linkage"),
            nullifier=matching.payment_id_nullifier(fields.payment_id),
            provider_hashes=(primary["provider_hash"], secondary["provider_hash"]),
        )
