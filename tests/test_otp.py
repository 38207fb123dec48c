"""
tests/test_otp.py

One-time-secret payments: the revealed secret must hash, together with the
payee details, to the secret hash registered with the deposit.
"""

import os

import pytest

from payproof.core.exceptions import AuthorizationError, MalformedInputError, ReplayDetectedError
from payproof.verification.matching import scoped_nullifier
from payproof.verification.methods import OTP
from payproof.verification.otp import encode_otp_deposit_data, encode_otp_proof, otp_secret_hash

from helpers.payments import make_pipeline, verify

PAYEE = b"\x07" * 32
INTENT = b"\x42" * 32


@pytest.fixture
def pipeline():
    return make_pipeline(OTP)


@pytest.fixture
def secret():
    return os.urandom(32)


def submit(pipeline, secret, registered_secret=None, payee=PAYEE, intent=INTENT):
    registered = otp_secret_hash(registered_secret or secret, PAYEE)
    return verify(
        pipeline,
        encode_otp_proof(secret, intent),
        payee_details=payee,
        data=encode_otp_deposit_data(registered),
    )


class TestOTP:

    def test_matching_secret_is_verified(self, pipeline, secret):
        verified, linkage = submit(pipeline, secret)
        assert verified
        assert linkage == INTENT

    def test_nullifier_scoped_to_intent(self, pipeline, secret):
        result = submit(pipeline, secret)
        assert result.nullifier == scoped_nullifier(otp_secret_hash(secret, PAYEE), INTENT)

    def test_same_secret_new_intent_is_not_replay(self, pipeline, secret):
        submit(pipeline, secret)
        assert submit(pipeline, secret, intent=b"\x43" * 32).verified

    def test_same_secret_same_intent_is_replay(self, pipeline, secret):
        submit(pipeline, secret)
        with pytest.raises(ReplayDetectedError):
            submit(pipeline, secret)

    def test_wrong_secret(self, pipeline, secret):
        with pytest.raises(AuthorizationError, match="Invalid OTP"):
            submit(pipeline, os.urandom(32), registered_secret=secret)
        assert len(pipeline.nullifier_registry) == 0

    def test_secret_bound_to_payee(self, pipeline, secret):
        with pytest.raises(AuthorizationError):
            submit(pipeline, secret, payee=b"\x08" * 32)

    def test_undecodable_proof(self, pipeline, secret):
        with pytest.raises(MalformedInputError):
            verify(
                pipeline,
                b"\x01" * 10,
                payee_details=PAYEE,
                data=encode_otp_deposit_data(otp_secret_hash(secret, PAYEE)),
            )

    def test_undecodable_deposit_data(self, pipeline, secret):
        with pytest.raises(MalformedInputError):
            verify(pipeline, encode_otp_proof(secret, INTENT), payee_details=PAYEE, data=b"\x01")
