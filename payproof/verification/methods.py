"""
Built-in payment methods.

Field positions follow the witness templates: parameters are emitted in
canonical (RFC 8785) key order, so uppercase keys sort first.

    venmo        {amount, date, paymentId, receiverId} + intentHash, providerHash
    revolut      {amount, completedDate, currency, id, state, username} + intentHash, providerHash
    cashapp      {SENDER_ID, amount, currency_code, date, paymentId, receiverId, state} + intentHash, providerHash
    monzo        contextAddress, contextMessage + {TX_ID, amount, completedDate, currency, userId} + providerHash
    zelle-boa    contextAddress, contextMessage + {aliasToken, amount, confirmationNumber, status, transactionDate} + providerHash
    zelle-citi   contextAddress, contextMessage + {amount, partyToken, paymentID, paymentStatus, updatedTimeStamp} + providerHash
    zelle-chase  list:   contextAddress, contextMessage + {amount, date, id, status} + providerHash
                 detail: contextAddress, contextMessage + {PAYMENT_ID, recipientEmail} + providerHash
    wise         contextAddress, contextMessage + {PROFILE_ID, TRANSACTION_ID, paymentId, state, targetAmount,
                 targetCurrency, targetRecipientId, timestamp} + providerHash
    mercadopago  contextAddress, contextMessage + {PAYMENT_ID, URL_PARAMS_FROM, amt, cents, curr, date, paymentId,
                 paymentStatus, paymentType, recipientId} + providerHash
    paypal       contextAddress, contextMessage + {PAYMENT_ID, currencyCode, email, primitiveTimeCreated, status,
                 value} + providerHash

MercadoPago witnesses whole pesos grouped with "." (1.000) and cents separately.
"""

from typing import Dict

from payproof.core.exceptions import ConfigurationError
from payproof.core.extraction import ContextProfile
from payproof.core.units import TimestampFormat
from payproof.verification.attestation import WitnessAttestationStrategy
from payproof.verification.otp import OTPStrategy
from payproof.verification.strategies import FieldLayout, LinkedProofStrategy, ReclaimStrategy

A = ContextProfile.ADDRESS_MESSAGE
B = ContextProfile.PARAMETERS_FIRST


VENMO = ReclaimStrategy("venmo", FieldLayout(
    profile=B, field_count=6,
    amount=0, timestamp=1, payment_id=2, recipient=3,
    fixed_currency="USD",
))

REVOLUT = ReclaimStrategy("revolut", FieldLayout(
    profile=B, field_count=8,
    amount=0, timestamp=1, currency=2, payment_id=3, status=4, recipient=5,
    timestamp_format=TimestampFormat.EPOCH_MILLIS,
    completed_status="COMPLETED",
    minor_units=True, outgoing=True,
))

CASHAPP = ReclaimStrategy("cashapp", FieldLayout(
    profile=B, field_count=9,
    amount=1, currency=2, timestamp=3, payment_id=4, recipient=5, status=6,
    timestamp_format=TimestampFormat.EPOCH_MILLIS,
    completed_status="COMPLETE",
    minor_units=True,
))

MONZO = ReclaimStrategy("monzo", FieldLayout(
    profile=A, field_count=8,
    payment_id=2, amount=3, timestamp=4, currency=5, recipient=6,
    minor_units=True, outgoing=True,
))

ZELLE_BOA = ReclaimStrategy("zelle-boa", FieldLayout(
    profile=A, field_count=8,
    recipient=2, amount=3, payment_id=4, status=5, timestamp=6,
    timestamp_format=TimestampFormat.ISO_DATE,
    fixed_currency="USD", completed_status="COMPLETED",
))

ZELLE_CITI = ReclaimStrategy("zelle-citi", FieldLayout(
    profile=A, field_count=8,
    amount=2, recipient=3, payment_id=4, status=5, timestamp=6,
    timestamp_format=TimestampFormat.US_DATE,
    fixed_currency="USD", completed_status="DELIVERED",
))

ZELLE_CHASE = LinkedProofStrategy(
    "zelle-chase",
    primary=FieldLayout(
        profile=A, field_count=7,
        amount=2, timestamp=3, payment_id=4, status=5,
        timestamp_format=TimestampFormat.COMPACT_DATE,
        fixed_currency="USD", completed_status="COMPLETED",
    ),
    secondary=FieldLayout(profile=A, field_count=5, payment_id=2, recipient=3),
)

WISE = ReclaimStrategy("wise", FieldLayout(
    profile=A, field_count=11,
    payment_id=4, status=5, amount=6, currency=7, recipient=8, timestamp=9,
    timestamp_format=TimestampFormat.EPOCH_MILLIS,
    completed_status="OUTGOING_PAYMENT_SENT",
))

MERCADO_PAGO = ReclaimStrategy("mercadopago", FieldLayout(
    profile=A, field_count=13,
    amount=4, amount_cents=5, currency=6, timestamp=7, payment_id=8, status=9,
    payment_type=10, recipient=11,
    thousands_separator=".",
    completed_status="approved", expected_payment_type="p2p_money_transfer",
))

PAYPAL = ReclaimStrategy("paypal", FieldLayout(
    profile=A, field_count=9,
    payment_id=2, currency=3, recipient=4, timestamp=5, status=6, amount=7,
    completed_status="COMPLETED",
))

OTP = OTPStrategy()

BUILTIN_STRATEGIES: Dict[str, object] = {
    s.name: s for s in (
        VENMO, REVOLUT, CASHAPP, MONZO, ZELLE_BOA, ZELLE_CITI, ZELLE_CHASE,
        WISE, MERCADO_PAGO, PAYPAL, OTP,
    )
}

# Discriminator byte of each Zelle bank behind a PaymentMethodRouter
ZELLE_PAYMENT_METHODS: Dict[str, int] = {
    "zelle-chase": 0,
    "zelle-boa": 1,
    "zelle-citi": 2,
}


def build_strategy(name: str):
    """
    Strategy for a configured payment method name.

    "attestation:<method>" selects witness attestations for <method>,
    e.g. "attestation:venmo".
    """
    if name.startswith("attestation:"):
        method = name.split(":", 1)[1]
        if not method:
            raise ConfigurationError("Attestation payment method is empty", {"name": name})
        return WitnessAttestationStrategy(payment_method=method)
    try:
        return BUILTIN_STRATEGIES[name]
    except KeyError:
        raise ConfigurationError(
            "Unknown payment method",
            {"name": name, "known": ", ".join(sorted(BUILTIN_STRATEGIES))},
        ) from None
