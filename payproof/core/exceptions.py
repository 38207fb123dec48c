"""
PayProof Exception Hierarchy

All exceptions inherit from PayProofError for easy catching.
Every failure is terminal for the call that raised it: nothing is
committed, and the caller must resubmit a corrected proof.
"""


class PayProofError(Exception):
    """Base exception for all PayProof errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class MalformedInputError(PayProofError):
    """Raised when a proof, context blob, number or date cannot be parsed"""

    @property
    def kind(self) -> str:
        return self.details.get("kind", "")


class SchemaMismatchError(PayProofError):
    """Raised when a recomputed identifier or provider hash is not what was expected"""
    pass


class AuthorizationError(PayProofError):
    """Raised when authorization fails"""
    pass


class UnauthorizedCallerError(AuthorizationError):
    """Raised when the caller is not the escrow, the owner, or a registry writer"""
    pass


class InsufficientSignaturesError(AuthorizationError):
    """Raised when fewer distinct witnesses than required signed the claim"""
    pass


class PaymentMismatchError(PayProofError):
    """Raised when the proven payment does not satisfy the intent"""
    pass


class ReplayDetectedError(PayProofError):
    """Raised when a payment's nullifier has already been consumed"""
    pass


class ConfigurationError(PayProofError):
    """Raised when verifier configuration is invalid or an admin change is rejected"""
    pass


class LedgerError(PayProofError):
    """Raised when the nullifier journal cannot be read or written"""
    pass
