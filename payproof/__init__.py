"""
payproof/__init__.py

PayProof: verification engine for witnessed fiat payment proofs

A taker claims escrowed tokens by proving they paid the depositor through
a consumer payment app. PayProof parses the witnessed payment session,
checks the witness signatures, matches the payment against the intent,
and consumes a one-time nullifier so the same payment never pays out twice.
"""

__version__ = "0.3.0"

from payproof.config import VerifierConfig, build_pipeline
from payproof.core.crypto import WitnessKey
from payproof.core.exceptions import (
    AuthorizationError,
    ConfigurationError,
    InsufficientSignaturesError,
    LedgerError,
    MalformedInputError,
    PaymentMismatchError,
    PayProofError,
    ReplayDetectedError,
    SchemaMismatchError,
    UnauthorizedCallerError,
)
from payproof.core.extraction import (
    NOT_FOUND,
    ContextProfile,
    extract_all_from_context,
    extract_all_values,
    extract_field_from_context,
    find_substring_end_index,
)
from payproof.core.models import (
    Claim,
    ClaimInfo,
    PaymentIntentParams,
    Proof,
    SignedClaim,
    VerificationResult,
)
from payproof.core.threshold import ThresholdSignatureVerifier
from payproof.ledger.nullifier import NullifierRegistry
from payproof.verification.pipeline import PaymentVerificationPipeline
from payproof.verification.router import PaymentMethodRouter

__all__ = [
    # Field extraction
    "NOT_FOUND",
    "ContextProfile",
    "extract_all_from_context",
    "extract_all_values",
    "extract_field_from_context",
    "find_substring_end_index",
    # Proofs and witnesses
    "Claim",
    "ClaimInfo",
    "PaymentIntentParams",
    "Proof",
    "SignedClaim",
    "ThresholdSignatureVerifier",
    "VerificationResult",
    "WitnessKey",
    # Verification
    "NullifierRegistry",
    "PaymentMethodRouter",
    "PaymentVerificationPipeline",
    "VerifierConfig",
    "build_pipeline",
    # Errors
    "AuthorizationError",
    "ConfigurationError",
    "InsufficientSignaturesError",
    "LedgerError",
    "MalformedInputError",
    "PaymentMismatchError",
    "PayProofError",
    "ReplayDetectedError",
    "SchemaMismatchError",
    "UnauthorizedCallerError",
]
