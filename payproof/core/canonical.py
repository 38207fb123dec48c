"""
PayProof: Canonical JSON Encoding, RFC 8785 (JCS)

Used wherever a JSON document is hashed: context blobs built for a claim
and provider request templates. Both sides of a hash must agree on the
bytes, so nothing else may serialize JSON for hashing.

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import jcs as _jcs

from payproof.core.crypto import keccak


def canonicalize(obj) -> bytes:
    """
    Encode a JSON-compatible value to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    All values must be JSON-primitive (str, int, float, bool, None, list, dict).
    """
    return _jcs.canonicalize(obj)


def canonical_text(obj) -> str:
    """Canonical form as text, for embedding into a ClaimInfo string field."""
    return canonicalize(obj).decode("utf-8")


def canonical_hash(obj) -> bytes:
    """keccak256 of the RFC 8785 canonical form (32 bytes)."""
    return keccak(canonicalize(obj))
