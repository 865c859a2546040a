"""
Payment Record Enums

Provider-independent enumerations shared by plugins, storage and the API.
"""

from enum import Enum


class PaymentType(str, Enum):
    """Direction of a payment relative to the connected account."""

    UNKNOWN = "UNKNOWN"
    PAYIN = "PAYIN"
    PAYOUT = "PAYOUT"
    TRANSFER = "TRANSFER"
    OTHER = "OTHER"


class PaymentStatus(str, Enum):
    """Lifecycle status of a payment."""

    UNKNOWN = "UNKNOWN"
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    REFUNDED = "REFUNDED"
    REFUNDED_FAILURE = "REFUNDED_FAILURE"
    REFUND_REVERSED = "REFUND_REVERSED"
    DISPUTE = "DISPUTE"
    DISPUTE_WON = "DISPUTE_WON"
    DISPUTE_LOST = "DISPUTE_LOST"
    AMOUNT_ADJUSTMENT = "AMOUNT_ADJUSTMENT"
    AUTHORISATION = "AUTHORISATION"
    CAPTURE = "CAPTURE"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    OTHER = "OTHER"


class PaymentScheme(str, Enum):
    """Payment rail used to move the funds."""

    UNKNOWN = "UNKNOWN"
    CARD_VISA = "CARD_VISA"
    CARD_MASTERCARD = "CARD_MASTERCARD"
    CARD_AMEX = "CARD_AMEX"
    SEPA = "SEPA"
    SEPA_DEBIT = "SEPA_DEBIT"
    SEPA_CREDIT = "SEPA_CREDIT"
    ACH = "ACH"
    ACH_DEBIT = "ACH_DEBIT"
    RTP = "RTP"
    WIRE = "WIRE"
    OTHER = "OTHER"


class Capability(str, Enum):
    """Operations a connector plugin can perform."""

    FETCH_ACCOUNTS = "FETCH_ACCOUNTS"
    FETCH_BALANCES = "FETCH_BALANCES"
    FETCH_EXTERNAL_ACCOUNTS = "FETCH_EXTERNAL_ACCOUNTS"
    FETCH_PAYMENTS = "FETCH_PAYMENTS"
    FETCH_OTHERS = "FETCH_OTHERS"
    CREATE_WEBHOOKS = "CREATE_WEBHOOKS"
    TRANSLATE_WEBHOOKS = "TRANSLATE_WEBHOOKS"
    CREATE_TRANSFER = "CREATE_TRANSFER"
    CREATE_PAYOUT = "CREATE_PAYOUT"
    CREATE_BANK_ACCOUNT = "CREATE_BANK_ACCOUNT"


# Stream name -> capability required to run it
STREAM_CAPABILITIES: dict[str, Capability] = {
    "accounts": Capability.FETCH_ACCOUNTS,
    "balances": Capability.FETCH_BALANCES,
    "external_accounts": Capability.FETCH_EXTERNAL_ACCOUNTS,
    "payments": Capability.FETCH_PAYMENTS,
    "others": Capability.FETCH_OTHERS,
}
