"""
tests/test_nullifier_registry.py

Consumed nullifiers: permissioned writes, never released, exactly-once
under concurrency, and a journal that survives restarts and detects tampering.

Run:
    pytest tests/test_nullifier_registry.py -v --tb=short
"""

import json
import threading

import pytest

from payproof.core.crypto import keccak_text, normalize_address
from payproof.core.events import EventType
from payproof.core.exceptions import (
    ConfigurationError,
    LedgerError,
    ReplayDetectedError,
    UnauthorizedCallerError,
)
from payproof.ledger.nullifier import NullifierRegistry

from helpers.payments import OWNER, STRANGER, VERIFIER

N1 = keccak_text("payment-1")
N2 = keccak_text("payment-2")


@pytest.fixture
def registry():
    r = NullifierRegistry(owner=OWNER)
    r.add_write_permission(VERIFIER, caller=OWNER)
    return r


class TestPermissions:

    def test_writer_can_add(self, registry):
        registry.add_nullifier(N1, caller=VERIFIER)
        assert registry.is_nullified(N1)
        assert N1 in registry
        assert len(registry) == 1

    def test_non_writer_cannot_add(self, registry):
        with pytest.raises(UnauthorizedCallerError):
            registry.add_nullifier(N1, caller=STRANGER)
        assert not registry.is_nullified(N1)

    def test_only_owner_grants(self, registry):
        with pytest.raises(UnauthorizedCallerError):
            registry.add_write_permission(STRANGER, caller=STRANGER)

    def test_duplicate_grant_rejected(self, registry):
        with pytest.raises(ConfigurationError):
            registry.add_write_permission(VERIFIER, caller=OWNER)

    def test_revoked_writer_cannot_add(self, registry):
        registry.remove_write_permission(VERIFIER, caller=OWNER)
        with pytest.raises(UnauthorizedCallerError):
            registry.add_nullifier(N1, caller=VERIFIER)

    def test_revoking_unknown_writer_rejected(self, registry):
        with pytest.raises(ConfigurationError):
            registry.remove_write_permission(STRANGER, caller=OWNER)

    def test_writers_listed(self, registry):
        assert registry.get_writers() == [normalize_address(VERIFIER)]
        assert registry.has_write_permission(VERIFIER)


class TestReplay:

    def test_second_add_is_replay(self, registry):
        registry.add_nullifier(N1, caller=VERIFIER)
        with pytest.raises(ReplayDetectedError):
            registry.add_nullifier(N1, caller=VERIFIER)
        assert len(registry) == 1

    def test_distinct_nullifiers_coexist(self, registry):
        registry.add_nullifier(N1, caller=VERIFIER)
        registry.add_nullifier(N2, caller=VERIFIER)
        assert len(registry) == 2

    def test_empty_registry_is_truthy(self):
        registry = NullifierRegistry(owner=OWNER)
        assert len(registry) == 0
        assert registry

    def test_nullifier_must_be_32_bytes(self, registry):
        with pytest.raises(ValueError):
            registry.add_nullifier(b"\x01" * 31, caller=VERIFIER)

    def test_event_emitted(self, registry):
        seen = []
        registry.events.subscribe(seen.append)
        registry.add_nullifier(N1, caller=VERIFIER)
        assert [e.event_type for e in seen] == [EventType.NULLIFIER_ADDED]
        assert seen[0].args["nullifier"] == "0x" + N1.hex()

    def test_concurrent_adds_exactly_one_wins(self, registry):
        """Same nullifier from many threads: one success, the rest replay."""
        outcomes = []
        barrier = threading.Barrier(8)

        def attempt():
            barrier.wait()
            try:
                registry.add_nullifier(N1, caller=VERIFIER)
                outcomes.append("ok")
            except ReplayDetectedError:
                outcomes.append("replay")

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1, f"Expected exactly one success, got {outcomes}"
        assert outcomes.count("replay") == 7


class TestJournal:

    def test_reload_restores_nullifiers(self, tmp_path):
        path = tmp_path / "nullifiers.jsonl"
        first = NullifierRegistry(owner=OWNER, ledger_path=path)
        first.add_write_permission(VERIFIER, caller=OWNER)
        first.add_nullifier(N1, caller=VERIFIER)
        first.add_nullifier(N2, caller=VERIFIER)

        second = NullifierRegistry(owner=OWNER, ledger_path=path)
        second.add_write_permission(VERIFIER, caller=OWNER)
        assert second.is_nullified(N1) and second.is_nullified(N2)
        with pytest.raises(ReplayDetectedError):
            second.add_nullifier(N1, caller=VERIFIER)

    def test_entries_are_chained(self, tmp_path):
        path = tmp_path / "nullifiers.jsonl"
        registry = NullifierRegistry(owner=OWNER, ledger_path=path)
        registry.add_write_permission(VERIFIER, caller=OWNER)
        a = registry.add_nullifier(N1, caller=VERIFIER)
        b = registry.add_nullifier(N2, caller=VERIFIER)
        assert a.previous_hash == NullifierRegistry.GENESIS_HASH
        assert b.previous_hash == a.compute_hash()

    def test_tampered_journal_is_rejected(self, tmp_path):
        path = tmp_path / "nullifiers.jsonl"
        registry = NullifierRegistry(owner=OWNER, ledger_path=path)
        registry.add_write_permission(VERIFIER, caller=OWNER)
        registry.add_nullifier(N1, caller=VERIFIER)
        registry.add_nullifier(N2, caller=VERIFIER)

        lines = path.read_text(encoding="utf-8").splitlines()
        entry = json.loads(lines[0])
        entry["nullifier"] = "0x" + keccak_text("forged").hex()
        lines[0] = json.dumps(entry)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

        with pytest.raises(LedgerError, match="Chain break"):
            NullifierRegistry(owner=OWNER, ledger_path=path)

    def test_corrupt_line_is_rejected(self, tmp_path):
        path = tmp_path / "nullifiers.jsonl"
        path.write_text("{not json\n", encoding="utf-8")
        with pytest.raises(LedgerError):
            NullifierRegistry(owner=OWNER, ledger_path=path)
