"""
PayProof Verification - payment proofs in, accept/reject out
"""

from payproof.verification.attestation import (
    Eip712Domain,
    PaymentAttestation,
    WitnessAttestationStrategy,
)
from payproof.verification.methods import (
    BUILTIN_STRATEGIES,
    ZELLE_PAYMENT_METHODS,
    build_strategy,
)
from payproof.verification.otp import OTPStrategy
from payproof.verification.pipeline import PaymentVerificationPipeline
from payproof.verification.router import PaymentMethodRouter, encode_routed_proof
from payproof.verification.strategies import (
    FieldLayout,
    LinkedProofStrategy,
    PaymentVerdict,
    ReclaimStrategy,
)

__all__ = [
    "BUILTIN_STRATEGIES",
    "Eip712Domain",
    "FieldLayout",
    "LinkedProofStrategy",
    "OTPStrategy",
    "PaymentAttestation",
    "PaymentMethodRouter",
    "PaymentVerdict",
    "PaymentVerificationPipeline",
    "ReclaimStrategy",
    "WitnessAttestationStrategy",
    "ZELLE_PAYMENT_METHODS",
    "build_strategy",
    "encode_routed_proof",
]
