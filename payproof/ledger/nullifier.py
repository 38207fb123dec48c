"""
Nullifier registry for PayProof.

A nullifier is the one-time marker of a real-world payment. Once added it
is never removed, so the same payment can never release escrow twice.

Writes are permissioned: only addresses granted write permission by the
registry owner may add nullifiers. Several verifiers may share one
registry, in which case the same payment is single-use across all of them.

Persistence (optional):
    Each added nullifier is appended as one JSON line to ledger_path,
    hash-chained to the previous line. On start the file is reloaded and
    the chain is verified before any new write is accepted.
"""

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set, Union

from payproof.core.canonical import canonical_hash
from payproof.core.crypto import normalize_address
from payproof.core.events import EventBus, EventType
from payproof.core.exceptions import (
    ConfigurationError,
    LedgerError,
    ReplayDetectedError,
    UnauthorizedCallerError,
)
from payproof.core.time import utc_timestamp

logger = logging.getLogger(__name__)


@dataclass
class NullifierEntry:
    """One line of the nullifier journal"""
    index: int
    previous_hash: str
    timestamp: str
    nullifier: str
    writer: str

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "previous_hash": self.previous_hash,
            "timestamp": self.timestamp,
            "nullifier": self.nullifier,
            "writer": self.writer,
        }

    @staticmethod
    def from_dict(data: dict) -> "NullifierEntry":
        return NullifierEntry(
            index=data["index"],
            previous_hash=data["previous_hash"],
            timestamp=data["timestamp"],
            nullifier=data["nullifier"],
            writer=data["writer"],
        )

    def compute_hash(self) -> str:
        """Hash of this entry for chaining"""
        return "0x" + canonical_hash(self.to_dict()).hex()


class NullifierRegistry:
    """
    Append-only set of consumed payment nullifiers.

    add_nullifier() is an atomic test-and-set: of two concurrent calls with
    the same nullifier exactly one succeeds and the other raises
    ReplayDetectedError.
    """

    GENESIS_HASH = "0x" + "0" * 64

    def __init__(self, owner: str, ledger_path: Optional[Union[str, Path]] = None):
        self.owner = normalize_address(owner)
        self.ledger_path = Path(ledger_path) if ledger_path else None
        self.entries: List[NullifierEntry] = []
        self.events = EventBus("NullifierRegistry")

        self._nullifiers: Set[str] = set()
        self._writers: Set[str] = set()
        self._lock = threading.RLock()

        if self.ledger_path is not None and self.ledger_path.exists():
            self._load()
            self.verify_or_raise()
            self._nullifiers = {e.nullifier for e in self.entries}
            logger.info(
                "Loaded %d nullifiers from %s", len(self.entries), self.ledger_path
            )

    # ── Queries ───────────────────────────────────────────────

    def is_nullified(self, nullifier: bytes) -> bool:
        with self._lock:
            return self._key(nullifier) in self._nullifiers

    def has_write_permission(self, writer: str) -> bool:
        with self._lock:
            return normalize_address(writer) in self._writers

    def get_writers(self) -> List[str]:
        with self._lock:
            return sorted(self._writers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._nullifiers)

    def __bool__(self) -> bool:
        # Truthy even when empty, so `registry or default` keeps a shared instance.
        return True

    def __contains__(self, nullifier: bytes) -> bool:
        return self.is_nullified(nullifier)

    # ── Writes ────────────────────────────────────────────────

    def add_nullifier(self, nullifier: bytes, *, caller: str) -> NullifierEntry:
        """
        Consume nullifier.

        Raises UnauthorizedCallerError if caller lacks write permission,
        ReplayDetectedError if the nullifier is already consumed, and
        LedgerError if the journal write fails. Nothing changes on failure.
        """
        key = self._key(nullifier)
        with self._lock:
            writer = normalize_address(caller)
            if writer not in self._writers:
                raise UnauthorizedCallerError(
                    "Caller must have write permission", {"caller": writer}
                )
            if key in self._nullifiers:
                raise ReplayDetectedError(
                    "Nullifier has already been used", {"nullifier": key}
                )

            entry = NullifierEntry(
                index=len(self.entries),
                previous_hash=self.entries[-1].compute_hash() if self.entries else self.GENESIS_HASH,
                timestamp=utc_timestamp(),
                nullifier=key,
                writer=writer,
            )
            if self.ledger_path is not None:
                self._write_entry(entry)

            self.entries.append(entry)
            self._nullifiers.add(key)

        self.events.emit(EventType.NULLIFIER_ADDED, nullifier=key, writer=writer)
        return entry

    # ── Administration ────────────────────────────────────────

    def add_write_permission(self, writer: str, *, caller: str) -> None:
        with self._lock:
            self._only_owner(caller)
            writer = normalize_address(writer)
            if writer in self._writers:
                raise ConfigurationError("Address already has write permission", {"writer": writer})
            self._writers.add(writer)
        self.events.emit(EventType.WRITE_PERMISSION_ADDED, writer=writer)

    def remove_write_permission(self, writer: str, *, caller: str) -> None:
        with self._lock:
            self._only_owner(caller)
            writer = normalize_address(writer)
            if writer not in self._writers:
                raise ConfigurationError("Address does not have write permission", {"writer": writer})
            self._writers.discard(writer)
        self.events.emit(EventType.WRITE_PERMISSION_REMOVED, writer=writer)

    def _only_owner(self, caller: str) -> None:
        if normalize_address(caller) != self.owner:
            raise UnauthorizedCallerError("Caller is not the owner", {"caller": caller})

    # ── Journal ───────────────────────────────────────────────

    def verify_or_raise(self) -> None:
        """Verify journal integrity or raise LedgerError"""
        seen: Set[str] = set()
        previous_hash = self.GENESIS_HASH
        for position, entry in enumerate(self.entries):
            if entry.index != position:
                raise LedgerError(
                    f"Index gap at position {position}: found index {entry.index}"
                )
            if entry.previous_hash != previous_hash:
                raise LedgerError(
                    f"Chain break at index {position}: "
                    f"expected {previous_hash}, got {entry.previous_hash}"
                )
            if entry.nullifier in seen:
                raise LedgerError(f"Duplicate nullifier at index {position}")
            seen.add(entry.nullifier)
            previous_hash = entry.compute_hash()

    def _write_entry(self, entry: NullifierEntry) -> None:
        self.ledger_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.ledger_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise LedgerError(f"Failed to write nullifier entry: {e}") from e

    def _load(self) -> None:
        self.entries = []
        try:
            with open(self.ledger_path, "r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, 1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        self.entries.append(NullifierEntry.from_dict(json.loads(line)))
                    except (json.JSONDecodeError, KeyError, TypeError) as e:
                        raise LedgerError(f"Invalid entry at line {line_num}: {e}") from e
        except OSError as e:
            raise LedgerError(f"Failed to load nullifier journal: {e}") from e

    @staticmethod
    def _key(nullifier: bytes) -> str:
        if len(nullifier) != 32:
            raise ValueError(f"Nullifier must be 32 bytes, got {len(nullifier)}")
        return "0x" + bytes(nullifier).hex()
