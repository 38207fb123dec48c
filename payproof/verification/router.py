"""
Payment method router.

Some payment apps are reached through several banks, each with its own
witness templates (Zelle via Chase, Bank of America, Citi, ...). The escrow
talks to one router; the first byte of the proof picks the sub-verifier
that handles the rest:

    payment_proof = uint8 payment_method ‖ sub-proof

Each sub-verifier is a full PaymentVerificationPipeline whose escrow is the
router's address, so sub-verifiers can only be reached through the router.
"""

import logging
import threading
from typing import Dict, List, Optional

from payproof.core.crypto import normalize_address
from payproof.core.events import EventBus, EventType
from payproof.core.exceptions import (
    ConfigurationError,
    MalformedInputError,
    SchemaMismatchError,
    UnauthorizedCallerError,
)
from payproof.core.models import VerificationResult
from payproof.verification.pipeline import PaymentVerificationPipeline

logger = logging.getLogger(__name__)


def encode_routed_proof(payment_method: int, sub_proof: bytes) -> bytes:
    if not 0 <= payment_method <= 255:
        raise ValueError("payment_method must fit in one byte")
    return bytes([payment_method]) + bytes(sub_proof)


class PaymentMethodRouter:

    def __init__(self, *, address: str, owner: str, escrow: str):
        self.address = normalize_address(address)
        self.owner = normalize_address(owner)
        self.escrow = normalize_address(escrow)
        self.events = EventBus("PaymentMethodRouter")
        self._routes: Dict[int, PaymentVerificationPipeline] = {}
        self._lock = threading.RLock()

    def set_payment_method_verifier(
        self,
        payment_method: int,
        verifier: PaymentVerificationPipeline,
        *,
        caller: str,
    ) -> None:
        """Route payment_method to verifier, replacing any previous route."""
        if not 0 <= payment_method <= 255:
            raise ConfigurationError("Payment method must fit in one byte", {"payment_method": payment_method})
        with self._lock:
            self._only_owner(caller)
            if verifier.escrow != self.address:
                raise ConfigurationError(
                    "Verifier escrow must be the router", {"verifier_escrow": verifier.escrow}
                )
            self._routes[payment_method] = verifier
        self.events.emit(
            EventType.PAYMENT_METHOD_VERIFIER_SET,
            payment_method=payment_method,
            verifier=verifier.address,
        )

    def remove_payment_method_verifier(self, payment_method: int, *, caller: str) -> None:
        with self._lock:
            self._only_owner(caller)
            if payment_method not in self._routes:
                raise ConfigurationError("Verifier not set", {"payment_method": payment_method})
            del self._routes[payment_method]
        self.events.emit(EventType.PAYMENT_METHOD_VERIFIER_REMOVED, payment_method=payment_method)

    def get_payment_method_verifier(self, payment_method: int) -> Optional[PaymentVerificationPipeline]:
        with self._lock:
            return self._routes.get(payment_method)

    def get_payment_methods(self) -> List[int]:
        with self._lock:
            return sorted(self._routes)

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
        if normalize_address(caller) != self.escrow:
            raise UnauthorizedCallerError("Only escrow can call", {"caller": caller})
        if len(payment_proof) < 1:
            raise MalformedInputError("Invalid paymentProof length", {"kind": "empty_input"})

        payment_method = payment_proof[0]
        verifier = self.get_payment_method_verifier(payment_method)
        if verifier is None:
            raise SchemaMismatchError("Verifier not set", {"payment_method": payment_method})

        logger.debug("Routing payment method %d to %r", payment_method, verifier)
        return verifier.verify_payment(
            bytes(payment_proof[1:]),
            deposit_token,
            intent_amount,
            intent_timestamp,
            payee_details,
            fiat_currency,
            conversion_rate,
            data,
            caller=self.address,
        )

    def _only_owner(self, caller: str) -> None:
        if normalize_address(caller) != self.owner:
            raise UnauthorizedCallerError("Caller is not the owner", {"caller": caller})
