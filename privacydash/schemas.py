from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from . import config


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Naive timestamps are taken to be UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    EXPIRED = "EXPIRED"  # read-time classification only, never stored
    CANCELLED = "CANCELLED"


class LineItem(BaseModel):
    description: str
    amount: float


class PrivateInvoiceData(BaseModel):
    title: str = ""
    items: List[LineItem] = Field(default_factory=list)
    notes: str = ""


class RequestDraft(BaseModel):
    """Merchant-supplied fields for a new request; anything missing gets a default."""

    amount: float = Field(default=0, ge=0, le=config.MAX_AMOUNT, allow_inf_nan=False)
    token_mint: str = config.DEFAULT_TOKEN_MINT
    label: Optional[str] = None
    icon: Optional[str] = None
    ciphertext: str = ""
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def expiry_as_utc(cls, value):
        return as_utc(value)


class PaymentRequest(BaseModel):
    id: str
    reference: str
    amount: float = Field(ge=0, le=config.MAX_AMOUNT, allow_inf_nan=False)
    token_mint: str
    label: str
    icon: str
    ciphertext: str
    status: RequestStatus
    creator: str
    payer: Optional[str] = None
    signature: Optional[str] = None
    created_at: datetime
    expires_at: datetime

    @field_validator("created_at", "expires_at")
    @classmethod
    def timestamps_as_utc(cls, value):
        return as_utc(value)

    @model_validator(mode="after")
    def payment_fields_match_status(self):
        paid = self.status == RequestStatus.PAID
        has_payer = self.payer is not None
        has_signature = self.signature is not None
        if (paid and not (has_payer and has_signature)) or (not paid and (has_payer or has_signature)):
            raise ValueError("payer and signature must be set exactly when status is PAID")
        return self

    def effective_status(self, now: Optional[datetime] = None) -> RequestStatus:
        now = now or utcnow()
        if self.status == RequestStatus.PENDING and self.expires_at <= now:
            return RequestStatus.EXPIRED
        return self.status

    def public_view(self, now: Optional[datetime] = None) -> dict:
        """Fields a payer may see through the payment link."""
        return {
            "id": self.id,
            "reference": self.reference,
            "amount": self.amount,
            "token_mint": self.token_mint,
            "label": self.label,
            "icon": self.icon,
            "status": self.effective_status(now).value,
            "creator": self.creator,
            "expires_at": self.expires_at.isoformat(),
            "signature": self.signature,
        }


class Stats(BaseModel):
    total_collected: float = 0
    pending_requests: int = 0
    paid_today: int = 0
    expiring_soon: int = 0


class UserProfile(BaseModel):
    pubkey: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    last_login_at: datetime
    balance: float = config.DEFAULT_BALANCE


def default_expiry(now: datetime) -> datetime:
    return now + timedelta(seconds=config.DEFAULT_EXPIRY_SECONDS)
