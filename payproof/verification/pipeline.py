"""
Payment verification pipeline for PayProof.

One pipeline instance verifies payments for one payment method on behalf
of one escrow. It owns the configuration that decides which proofs it
trusts (approved provider hashes, supported currencies, timestamp
tolerance, witness threshold) and commits accepted payments to a
NullifierRegistry.

PROTOCOL INVARIANT: verify_payment() is all-or-nothing.
    The strategy checks everything first and changes nothing. The only
    state change, the nullifier, is committed last and atomically. Any
    rejection leaves pipeline and registry exactly as they were.

Serialization:
    verify_payment() and every administrative call take the same
    per-instance lock. The registry's own lock orders pipelines that
    share it, so of two proofs of the same payment exactly one is accepted.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Union

from payproof.core.crypto import normalize_address
from payproof.core.events import EventBus, EventType, Listener
from payproof.core.exceptions import (
    ConfigurationError,
    InsufficientSignaturesError,
    PayProofError,
    SchemaMismatchError,
    UnauthorizedCallerError,
)
from payproof.core.models import PaymentIntentParams, Proof, VerificationResult
from payproof.core.threshold import ThresholdSignatureVerifier
from payproof.core.units import is_bytes32_hex, normalize_bytes32_hex
from payproof.ledger.nullifier import NullifierRegistry
from payproof.verification.attestation import Eip712Domain
from payproof.verification.matching import currency_code
from payproof.verification.strategies import PaymentVerdict

logger = logging.getLogger(__name__)


class VerificationStrategy(Protocol):
    name: str

    def evaluate(
        self,
        pipeline: "PaymentVerificationPipeline",
        payment_proof: bytes,
        intent: PaymentIntentParams,
    ) -> PaymentVerdict:
        ...


class PaymentVerificationPipeline:
    """
    Verifier for one payment method.

    Identities (address, owner, escrow) are 20-byte addresses; they are
    compared in checksummed form. Administrative calls and verify_payment()
    take the acting identity as the keyword argument `caller`.
    """

    def __init__(
        self,
        *,
        address:                str,
        owner:                  str,
        escrow:                 str,
        strategy:               VerificationStrategy,
        nullifier_registry:     NullifierRegistry,
        timestamp_buffer:       int = 0,
        min_witness_signatures: int = 1,
        provider_hashes:        Iterable[str] = (),
        currencies:             Iterable[Union[str, bytes]] = (),
        token_decimals:         Optional[Dict[str, int]] = None,
        chain_id:               int = 1,
    ):
        if timestamp_buffer < 0:
            raise ConfigurationError("Timestamp buffer must be >= 0")
        if min_witness_signatures < 1:
            raise ConfigurationError("Min witness signatures must be > 0")

        self.address = normalize_address(address)
        self.owner = normalize_address(owner)
        self.escrow = normalize_address(escrow)
        self.strategy = strategy
        self.nullifier_registry = nullifier_registry
        self.chain_id = chain_id
        self.events = EventBus(f"PaymentVerificationPipeline[{strategy.name}]")

        self._timestamp_buffer = timestamp_buffer
        self._min_witness_signatures = min_witness_signatures
        self._provider_hashes: List[str] = []
        self._currencies: List[bytes] = []
        self._token_decimals = {
            normalize_address(token): decimals
            for token, decimals in (token_decimals or {}).items()
        }
        self._lock = threading.RLock()

        for provider_hash in provider_hashes:
            key = self._add_provider_hash(provider_hash)
            self.events.emit(EventType.PROVIDER_HASH_ADDED, provider_hash=key)
        for currency in currencies:
            code = self._add_currency(currency)
            self.events.emit(EventType.CURRENCY_ADDED, currency="0x" + code.hex())

    # ── Verification ──────────────────────────────────────────

    def verify_payment(
        self,
        payment_proof:    bytes,
        deposit_token:    str,
        intent_amount:    int,
        intent_timestamp: int,
        payee_details:    bytes,
        fiat_currency:    bytes,
        conversion_rate:  int,
        data:             bytes,
        *,
        caller:           str,
    ) -> VerificationResult:
        """
        Verify payment_proof against an intent and consume its nullifier.

        Returns VerificationResult(verified=True, linkage_hash=...), which
        unpacks as (True, linkage_hash). Raises a PayProofError subclass on
        any rejection, with nothing committed.
        """
        with self._lock:
            if normalize_address(caller) != self.escrow:
                raise UnauthorizedCallerError("Only escrow can call", {"caller": caller})

            intent = PaymentIntentParams(
                deposit_token=    normalize_address(deposit_token),
                intent_amount=    intent_amount,
                intent_timestamp= intent_timestamp,
                payee_details=    bytes(payee_details),
                fiat_currency=    bytes(fiat_currency),
                conversion_rate=  conversion_rate,
                data=             bytes(data),
            )
            try:
                verdict = self.strategy.evaluate(self, bytes(payment_proof), intent)
                self.nullifier_registry.add_nullifier(verdict.nullifier, caller=self.address)
            except PayProofError as exc:
                logger.warning("%s payment rejected: %s", self.strategy.name, exc.message)
                raise

        result = VerificationResult(
            verified=True,
            linkage_hash=verdict.linkage_hash,
            nullifier=verdict.nullifier,
            payment_method=self.strategy.name,
            provider_hashes=verdict.provider_hashes,
        )
        self.events.emit(
            EventType.PAYMENT_VERIFIED,
            linkage_hash="0x" + result.linkage_hash.hex(),
            nullifier="0x" + result.nullifier.hex(),
        )
        return result

    # ── Steps shared by strategies ────────────────────────────

    def authenticate_proof(self, proof: Proof, witnesses: Sequence[str]) -> None:
        """Identifier binding, then witness signatures over the claim."""
        if proof.claim_info.hash() != proof.claim.identifier:
            raise SchemaMismatchError(
                "ClaimInfo hash doesn't match",
                {"identifier": "0x" + proof.claim.identifier.hex()},
            )
        self.check_signatures(proof.claim.digest(), proof.signatures, witnesses)

    def check_signatures(self, digest: bytes, signatures: Sequence[bytes], witnesses: Sequence[str]) -> None:
        if not signatures:
            raise InsufficientSignaturesError("No signatures")
        ThresholdSignatureVerifier.verify(
            digest, signatures, witnesses, self._min_witness_signatures
        )

    def require_provider_hash(self, provider_hash: str) -> None:
        if not self.is_provider_hash(provider_hash):
            raise SchemaMismatchError("No valid providerHash", {"provider_hash": provider_hash})

    @property
    def eip712_domain(self) -> Eip712Domain:
        return Eip712Domain(chain_id=self.chain_id, verifying_contract=self.address)

    def get_token_decimals(self, token: str) -> int:
        try:
            return self._token_decimals[normalize_address(token)]
        except KeyError:
            raise ConfigurationError("Unknown deposit token decimals", {"token": token}) from None

    # ── Provider hashes ───────────────────────────────────────

    def add_provider_hash(self, provider_hash: str, *, caller: str) -> None:
        with self._lock:
            self._only_owner(caller)
            key = self._add_provider_hash(provider_hash)
        self.events.emit(EventType.PROVIDER_HASH_ADDED, provider_hash=key)

    def remove_provider_hash(self, provider_hash: str, *, caller: str) -> None:
        with self._lock:
            self._only_owner(caller)
            key = normalize_bytes32_hex(provider_hash)
            if key not in self._provider_hashes:
                raise ConfigurationError("Provider hash not found", {"provider_hash": key})
            self._provider_hashes.remove(key)
        self.events.emit(EventType.PROVIDER_HASH_REMOVED, provider_hash=key)

    def get_provider_hashes(self) -> List[str]:
        with self._lock:
            return list(self._provider_hashes)

    def is_provider_hash(self, provider_hash: str) -> bool:
        if not is_bytes32_hex(provider_hash):
            return False
        with self._lock:
            return provider_hash.lower() in self._provider_hashes

    def _add_provider_hash(self, provider_hash: str) -> str:
        key = normalize_bytes32_hex(provider_hash)
        if key in self._provider_hashes:
            raise ConfigurationError("Provider hash already added", {"provider_hash": key})
        self._provider_hashes.append(key)
        return key

    # ── Currencies ────────────────────────────────────────────

    def add_currency(self, currency: Union[str, bytes], *, caller: str) -> None:
        """currency is an ISO 4217 code ("USD") or its 32-byte keccak256 code."""
        with self._lock:
            self._only_owner(caller)
            code = self._add_currency(currency)
        self.events.emit(EventType.CURRENCY_ADDED, currency="0x" + code.hex())

    def remove_currency(self, currency: Union[str, bytes], *, caller: str) -> None:
        with self._lock:
            self._only_owner(caller)
            code = currency_code(currency)
            if code not in self._currencies:
                raise ConfigurationError("Currency not added", {"currency": "0x" + code.hex()})
            self._currencies.remove(code)
        self.events.emit(EventType.CURRENCY_REMOVED, currency="0x" + code.hex())

    def is_currency(self, currency: Union[str, bytes]) -> bool:
        with self._lock:
            return currency_code(currency) in self._currencies

    def get_currencies(self) -> List[bytes]:
        with self._lock:
            return list(self._currencies)

    def _add_currency(self, currency: Union[str, bytes]) -> bytes:
        code = currency_code(currency)
        if code in self._currencies:
            raise ConfigurationError("Currency already added", {"currency": "0x" + code.hex()})
        self._currencies.append(code)
        return code

    # ── Tolerances ────────────────────────────────────────────

    def set_timestamp_buffer(self, seconds: int, *, caller: str) -> None:
        with self._lock:
            self._only_owner(caller)
            if seconds < 0:
                raise ConfigurationError("Timestamp buffer must be >= 0", {"seconds": seconds})
            self._timestamp_buffer = seconds
        self.events.emit(EventType.TIMESTAMP_BUFFER_SET, timestamp_buffer=seconds)

    def get_timestamp_buffer(self) -> int:
        with self._lock:
            return self._timestamp_buffer

    def set_min_witness_signatures(self, count: int, *, caller: str) -> None:
        with self._lock:
            self._only_owner(caller)
            if count < 1:
                raise ConfigurationError("Min witness signatures must be > 0", {"count": count})
            if count == self._min_witness_signatures:
                raise ConfigurationError("Min witness signatures unchanged", {"count": count})
            self._min_witness_signatures = count
        self.events.emit(EventType.MIN_WITNESS_SIGNATURES_UPDATED, min_witness_signatures=count)

    def get_min_witness_signatures(self) -> int:
        with self._lock:
            return self._min_witness_signatures

    # ── Helpers ───────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> None:
        self.events.subscribe(listener)

    def _only_owner(self, caller: str) -> None:
        if normalize_address(caller) != self.owner:
            raise UnauthorizedCallerError("Caller is not the owner", {"caller": caller})

    def __repr__(self) -> str:
        return (
            f"PaymentVerificationPipeline(method={self.strategy.name}, "
            f"address={self.address}, escrow={self.escrow})"
        )
