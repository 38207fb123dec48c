"""
payproof/core/threshold.py

m-of-n witness signature check.

Signatures are recovered against a 32-byte digest (see
crypto.personal_message_digest for the claim signing convention). Each
recovered address counts at most once toward the threshold, however many
of the supplied signatures it produced. Unrecoverable blobs are skipped.

Order of checks:
    1. min_required < 1                         → ValueError
    2. min_required > len(signatures)           → InsufficientSignaturesError, no recovery attempted
    3. min_required > distinct authorized count → InsufficientSignaturesError, no recovery attempted
    4. recovery, stopping as soon as the threshold is met
"""

import logging
from typing import Iterable, Sequence, Set

from payproof.core.crypto import normalize_address, recover_signer
from payproof.core.exceptions import InsufficientSignaturesError

logger = logging.getLogger(__name__)


class ThresholdSignatureVerifier:
    """Stateless; safe to share between threads."""

    @staticmethod
    def verify(
        digest:             bytes,
        signatures:         Sequence[bytes],
        authorized_signers: Iterable[str],
        min_required:       int,
    ) -> bool:
        """
        Return True when at least min_required distinct authorized signers
        signed digest. Raises InsufficientSignaturesError otherwise.
        """
        if min_required < 1:
            raise ValueError("min_required must be greater than 0")
        if min_required > len(signatures):
            raise InsufficientSignaturesError(
                "Required threshold exceeds number of signatures",
                {"required": min_required, "signatures": len(signatures)},
            )

        authorized = {normalize_address(a) for a in authorized_signers}
        if min_required > len(authorized):
            raise InsufficientSignaturesError(
                "Required threshold exceeds number of witnesses",
                {"required": min_required, "witnesses": len(authorized)},
            )

        seen: Set[str] = set()
        for signature in signatures:
            signer = recover_signer(digest, signature)
            if signer is None or signer not in authorized or signer in seen:
                continue
            seen.add(signer)
            if len(seen) >= min_required:
                logger.debug("Witness threshold %d met", min_required)
                return True

        raise InsufficientSignaturesError(
            "Not enough valid witness signatures",
            {"valid": len(seen), "required": min_required},
        )

    @staticmethod
    def count_valid_signers(
        digest:             bytes,
        signatures:         Sequence[bytes],
        authorized_signers: Iterable[str],
    ) -> int:
        """Number of distinct authorized signers among signatures."""
        authorized = {normalize_address(a) for a in authorized_signers}
        signers = {recover_signer(digest, s) for s in signatures}
        return len(signers & authorized)
