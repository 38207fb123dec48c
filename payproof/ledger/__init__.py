"""
PayProof Ledger - consumed payment nullifiers

The registry is the source of truth for which payments have already
released escrow.
"""

from payproof.ledger.nullifier import NullifierEntry, NullifierRegistry

__all__ = ["NullifierEntry", "NullifierRegistry"]
