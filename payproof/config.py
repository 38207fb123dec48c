"""
payproof/config.py

Verifier configuration.

Example (YAML):

    payment_method: venmo
    address: "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    owner:   "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
    escrow:  "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
    provider_hashes:
      - "0x14f029619c364094675f9b308d389a6edccde6f43c099e30c212a2ec219d9646"
    currencies: [USD]
    timestamp_buffer: 30
    min_witness_signatures: 1
    token_decimals:
      "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48": 6
    chain_id: 8453
    nullifier_ledger: .payproof/nullifiers.jsonl

Hex values should be quoted: YAML reads an unquoted 0x... as an integer.
Integers given where an address or hash is expected are converted back
to zero-padded hex.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from payproof.core.crypto import normalize_address
from payproof.core.exceptions import ConfigurationError
from payproof.core.units import is_bytes32_hex
from payproof.ledger.nullifier import NullifierRegistry
from payproof.verification.methods import build_strategy
from payproof.verification.pipeline import PaymentVerificationPipeline


def _hex(value: Any, width: int) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return "0x" + format(value, f"0{width}x")
    return value


@dataclass
class VerifierConfig:
    payment_method: str
    address: str
    owner: str
    escrow: str
    provider_hashes: List[str] = field(default_factory=list)
    currencies: List[str] = field(default_factory=list)
    timestamp_buffer: int = 0
    min_witness_signatures: int = 1
    token_decimals: Dict[str, int] = field(default_factory=dict)
    chain_id: int = 1
    nullifier_ledger: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerifierConfig":
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError("Unknown configuration keys", {"keys": ", ".join(unknown)})
        missing = sorted(k for k in ("payment_method", "address", "owner", "escrow") if k not in data)
        if missing:
            raise ConfigurationError("Missing configuration keys", {"keys": ", ".join(missing)})

        config = cls(
            payment_method=str(data["payment_method"]),
            address=_hex(data["address"], 40),
            owner=_hex(data["owner"], 40),
            escrow=_hex(data["escrow"], 40),
            provider_hashes=[_hex(h, 64) for h in data.get("provider_hashes") or []],
            currencies=[_hex(c, 64) for c in data.get("currencies") or []],
            timestamp_buffer=data.get("timestamp_buffer", 0),
            min_witness_signatures=data.get("min_witness_signatures", 1),
            token_decimals={
                _hex(token, 40): decimals
                for token, decimals in (data.get("token_decimals") or {}).items()
            },
            chain_id=data.get("chain_id", 1),
            nullifier_ledger=data.get("nullifier_ledger"),
        )
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path) -> "VerifierConfig":
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
        return cls.from_dict(data or {})

    def validate(self) -> None:
        """Raise ConfigurationError on the first invalid setting."""
        for name in ("address", "owner", "escrow"):
            try:
                normalize_address(getattr(self, name))
            except ValueError as e:
                raise ConfigurationError(f"Invalid {name}", {"value": getattr(self, name)}) from e
        for provider_hash in self.provider_hashes:
            if not isinstance(provider_hash, str) or not is_bytes32_hex(provider_hash):
                raise ConfigurationError("Invalid provider hash", {"value": provider_hash})
        if len(set(h.lower() for h in self.provider_hashes)) != len(self.provider_hashes):
            raise ConfigurationError("Duplicate provider hash")
        if not isinstance(self.timestamp_buffer, int) or self.timestamp_buffer < 0:
            raise ConfigurationError("timestamp_buffer must be an integer >= 0")
        if not isinstance(self.min_witness_signatures, int) or self.min_witness_signatures < 1:
            raise ConfigurationError("min_witness_signatures must be an integer >= 1")
        for token, decimals in self.token_decimals.items():
            try:
                normalize_address(token)
            except ValueError as e:
                raise ConfigurationError("Invalid token address", {"value": token}) from e
            if not isinstance(decimals, int) or not 0 <= decimals <= 77:
                raise ConfigurationError("Invalid token decimals", {"token": token})
        build_strategy(self.payment_method)


def build_pipeline(
    config: VerifierConfig,
    registry: Optional[NullifierRegistry] = None,
) -> PaymentVerificationPipeline:
    """
    Wire a pipeline from config.

    Without a registry, one is created (owned by config.owner, journaled to
    config.nullifier_ledger if set). When the registry is owned by the same
    owner, the pipeline is granted write permission on it.
    """
    config.validate()
    if registry is None:
        registry = NullifierRegistry(owner=config.owner, ledger_path=config.nullifier_ledger)

    pipeline = PaymentVerificationPipeline(
        address=                config.address,
        owner=                  config.owner,
        escrow=                 config.escrow,
        strategy=               build_strategy(config.payment_method),
        nullifier_registry=     registry,
        timestamp_buffer=       config.timestamp_buffer,
        min_witness_signatures= config.min_witness_signatures,
        provider_hashes=        config.provider_hashes,
        currencies=             config.currencies,
        token_decimals=         config.token_decimals,
        chain_id=               config.chain_id,
    )
    if registry.owner == pipeline.owner and not registry.has_write_permission(pipeline.address):
        registry.add_write_permission(pipeline.address, caller=config.owner)
    return pipeline
