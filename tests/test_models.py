"""
tests/test_models.py

Claim binding, witness signing convention and the proof wire codec.
"""

import dataclasses

import pytest
from eth_abi import encode as abi_encode

from payproof.core.crypto import WitnessKey, keccak_text, recover_signer
from payproof.core.exceptions import MalformedInputError
from payproof.core.models import (
    PROOF_ABI_TYPE,
    ClaimInfo,
    Proof,
    VerificationResult,
    build_claim_info,
    decode_proofs,
    decode_witness_data,
    encode_proofs,
    encode_witness_data,
)

from helpers.payments import CLAIM_OWNER, witnessed


@pytest.fixture
def witness():
    return WitnessKey.generate()


class TestClaimBinding:

    def test_identifier_is_keccak_of_newline_joined_fields(self):
        info = ClaimInfo("http", '{"url":"x"}', '{"a":"b"}')
        assert info.hash() == keccak_text('http\n{"url":"x"}\n{"a":"b"}')

    def test_any_field_change_changes_identifier(self):
        info = ClaimInfo("http", "p", "c")
        for changed in (
            dataclasses.replace(info, provider="https"),
            dataclasses.replace(info, parameters="p2"),
            dataclasses.replace(info, context="c2"),
        ):
            assert changed.hash() != info.hash()

    def test_build_claim_info_canonicalizes_json(self):
        info = build_claim_info("http", {"b": "2", "a": "1"}, {"z": "1", "TX_ID": "2"})
        assert info.parameters == '{"a":"1","b":"2"}'
        assert info.context == '{"TX_ID":"2","z":"1"}'

    def test_sign_data_layout(self, witness):
        proof = witnessed('{"extractedParameters":{}}', [witness], timestamp_s=1700000000)
        lines = proof.claim.sign_data().split("\n")
        assert lines[0] == "0x" + proof.claim_info.hash().hex()
        assert lines[1] == CLAIM_OWNER.lower()
        assert lines[2:] == ["1700000000", "1"]

    def test_witness_signature_recovers_over_claim_digest(self, witness):
        proof = witnessed('{"extractedParameters":{}}', [witness])
        assert recover_signer(proof.claim.digest(), proof.signatures[0]) == witness.address


class TestWireCodec:

    def test_proof_survives_encoding(self, witness):
        proof = witnessed('{"extractedParameters":{"a":"1"}}', [witness])
        assert Proof.decode(proof.encode()) == proof

    def test_two_proofs_in_one_payload(self, witness):
        first = witnessed('{"extractedParameters":{"a":"1"}}', [witness])
        second = witnessed('{"extractedParameters":{"b":"2"}}', [witness])
        assert decode_proofs(encode_proofs(first, second), 2) == [first, second]

    def test_encoding_matches_abi_tuple(self, witness):
        proof = witnessed('{"extractedParameters":{}}', [witness])
        assert proof.encode() == abi_encode([PROOF_ABI_TYPE], [proof.to_abi()])

    @pytest.mark.parametrize("payload", [b"", b"\x00" * 31, b"\xff" * 64])
    def test_garbage_is_malformed(self, payload):
        with pytest.raises(MalformedInputError) as exc:
            Proof.decode(payload)
        assert exc.value.kind == "undecodable_proof"

    def test_witness_data(self):
        witnesses = [WitnessKey.generate().address for _ in range(3)]
        assert decode_witness_data(encode_witness_data(witnesses)) == witnesses

    def test_bad_witness_data(self):
        with pytest.raises(MalformedInputError):
            decode_witness_data(b"\x01")


class TestVerificationResult:

    def test_unpacks_as_bool_and_hash(self):
        result = VerificationResult(verified=True, linkage_hash=b"\x01" * 32)
        verified, linkage = result
        assert verified is True
        assert linkage == b"\x01" * 32
