"""
payproof/core/crypto.py

Witness cryptography: keccak256, secp256k1 signing and signer recovery.

Key contracts:
    keccak(data)                    : bytes → 32-byte digest
    keccak_text(text)               : str (UTF-8) → 32-byte digest
    normalize_address(value)        : str → EIP-55 checksummed address, ValueError if invalid
    personal_message_digest(text)   : EIP-191 digest a witness signs for `text`
    recover_signer(digest, sig)     : checksummed address, or None. Never raises.

    WitnessKey.generate()                    → new random key
    WitnessKey.from_private_bytes(seed)      → load from raw 32-byte secret
    key.address             (@property)      → checksummed address
    key.sign_message(text)                   → 65-byte signature over the EIP-191 digest
    key.sign_hash(digest)                    → 65-byte signature over a raw 32-byte digest

The verifier side never needs a WitnessKey; it only recovers addresses.
WitnessKey exists for the witness/attestor role and for building fixtures.
"""

from typing import Optional

from eth_account import Account
from eth_account.messages import defunct_hash_message, encode_defunct
from web3 import Web3


def keccak(data: bytes) -> bytes:
    return bytes(Web3.keccak(data))


def keccak_text(text: str) -> bytes:
    return bytes(Web3.keccak(text=text))


def normalize_address(value: str) -> str:
    """
    EIP-55 checksum form of a 20-byte address.
    Raises ValueError if value is not an address.
    """
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ValueError(f"Not a valid address: {value!r}")
    return Web3.to_checksum_address(value)


def personal_message_digest(text: str) -> bytes:
    """
    keccak256("\\x19Ethereum Signed Message:\\n" + len(message) + message)

    This is the digest recovered against for witness claim signatures.
    """
    return bytes(defunct_hash_message(text=text))


def recover_signer(digest: bytes, signature: bytes) -> Optional[str]:
    """
    Recover the address that produced signature over a 32-byte digest.

    Returns None for ANY failure: wrong length, bad recovery id, point not
    on the curve, empty blob. Never raises.
    """
    if len(digest) != 32 or not signature:
        return None
    try:
        return Account._recover_hash(bytes(digest), signature=bytes(signature))
    except Exception:
        return None


class WitnessKey:
    """secp256k1 key held by a witness."""

    def __init__(self, account) -> None:
        self._account = account

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "WitnessKey":
        return cls(Account.create())

    @classmethod
    def from_private_bytes(cls, seed: bytes) -> "WitnessKey":
        """
        Load a key from its raw 32-byte secret.
        Raises ValueError if seed is not exactly 32 bytes.
        """
        if len(seed) != 32:
            raise ValueError(f"secp256k1 secret must be 32 bytes, got {len(seed)}")
        return cls(Account.from_key(seed))

    @property
    def address(self) -> str:
        return self._account.address

    # ── Signing ───────────────────────────────────────────────

    def sign_message(self, text: str) -> bytes:
        """Sign text as an EIP-191 personal message. Returns r ‖ s ‖ v."""
        signed = self._account.sign_message(encode_defunct(text=text))
        return bytes(signed.signature)

    def sign_hash(self, digest: bytes) -> bytes:
        """
        Sign an already-computed 32-byte digest (e.g. an EIP-712 digest).
        Returns r ‖ s ‖ v.
        """
        if len(digest) != 32:
            raise ValueError(f"Digest must be 32 bytes, got {len(digest)}")
        signed = self._account.unsafe_sign_hash(bytes(digest))
        return bytes(signed.signature)

    def private_bytes_raw(self) -> bytes:
        """
        Return the raw 32-byte secret.
        Use only for secure backup, never log or transmit.
        """
        return bytes(self._account.key)

    def __repr__(self) -> str:
        return f"WitnessKey(address={self.address})"
