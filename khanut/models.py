import math
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# Gateway references: letters, digits, "_" and "-"
TX_REF_PATTERN = r"^[A-Za-z0-9_-]+$"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# Mobile-money providers Chapa can charge directly
class ChargeType(str, Enum):
    TELEBIRR = "telebirr"
    MPESA = "mpesa"
    AMOLE = "Amole"
    CBE_BIRR = "CBEBirr"
    COOPAY_EBIRR = "Coopay-Ebirr"
    AWASH_BIRR = "AwashBirr"


# ══════════════════════════════════
# TRANSACTIONS
# ══════════════════════════════════

class CamelModel(BaseModel):
    # JSON uses camelCase keys (customerId, createdAt, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TransactionBase(CamelModel):
    customer_id: str              # must match a customer id
    business_id: str              # must match a business id
    amount: float                 # e.g. 120.5
    method: str                   # e.g. "telebirr"
    status: TransactionStatus = TransactionStatus.PENDING
    description: Optional[str] = None
    currency: str = "ETB"
    tx_ref: Optional[str] = None  # Chapa reference, when paid through the gateway
    timestamp: datetime = Field(default_factory=utcnow)


# What a caller hands the store; id and audit fields are filled on insert
class TransactionCreate(TransactionBase):
    amount: float = Field(gt=0, allow_inf_nan=False)
    created_at: datetime = Field(default_factory=utcnow)


# What comes back out of the store
class Transaction(TransactionBase):
    id: str
    created_at: datetime
    updated_at: datetime


class Pagination(CamelModel):
    total_items: int
    current_page: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class TransactionPage(CamelModel):
    transactions: list[Transaction]
    pagination: Pagination


# ══════════════════════════════════
# PAYMENTS (Chapa field names)
# ══════════════════════════════════

class Customization(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    logo: Optional[str] = None


class PaymentRequest(BaseModel):
    amount: str                   # Chapa takes amounts as strings, e.g. "100"
    currency: str = "ETB"
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    tx_ref: Optional[str] = Field(default=None, pattern=TX_REF_PATTERN)
    callback_url: Optional[str] = None
    return_url: Optional[str] = None
    customization: Optional[Customization] = None


class MobilePaymentRequest(PaymentRequest):
    phone_number: str


class DirectChargeRequest(BaseModel):
    amount: str
    currency: str = "ETB"
    email: str
    first_name: str
    last_name: str
    mobile: str
    tx_ref: Optional[str] = Field(default=None, pattern=TX_REF_PATTERN)
    type: ChargeType


class DirectChargeAuthorization(BaseModel):
    reference: str
    client: str
    type: ChargeType


class TxRefOptions(BaseModel):
    remove_prefix: bool = False
    prefix: str = "TX"
    size: int = Field(default=15, ge=1)


# Body of POST /api/payments/initialize: a checkout for one business
class CheckoutRequest(PaymentRequest):
    business_id: str
    method: str = "chapa"
    description: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def amount_must_be_positive(cls, value: str) -> str:
        try:
            parsed = float(value)
        except ValueError:
            raise ValueError("amount must be numeric")
        if not math.isfinite(parsed) or parsed <= 0:
            raise ValueError("amount must be a finite number greater than zero")
        return value


class CheckoutResponse(CamelModel):
    checkout_url: Optional[str]
    tx_ref: str
    transaction: Transaction


class SettlementResponse(CamelModel):
    tx_ref: str
    status: Optional[TransactionStatus]
    provider_status: Optional[str]
    transaction: Optional[Transaction] = None
