"""Domain models for the ConveySafe escrow ledger and jobs workflow

Amounts are integer cents throughout. Timestamps are ISO-8601 strings as
supplied by callers (`2024-03-01T00:00:00Z`), dates are `YYYY-MM-DD`.
"""

import enum
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Any


def compute_fee_cents(amount_cents: int, rate: float) -> int:
    """Service fee for an amount, rounded half away from zero"""
    product = Decimal(amount_cents) * Decimal(str(rate))
    return int(product.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def line_tax_cents(amount_cents: int, tax_rate: float) -> int:
    """Tax on a single invoice line, truncated toward zero"""
    product = Decimal(amount_cents) * Decimal(str(tax_rate))
    return int(product.quantize(Decimal("1"), rounding=ROUND_DOWN))


class PaymentStatus(enum.Enum):
    """Escrow hold status"""
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


class InvoiceStatus(enum.Enum):
    """Invoice lifecycle status"""
    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    VOIDED = "voided"

    @classmethod
    def parse(cls, value: str | None) -> "InvoiceStatus":
        """Map a wire value to a status; unknown values read as draft"""
        for status in cls:
            if status.value == value:
                return status
        return cls.DRAFT


@dataclass
class PaymentRecord:
    id: str
    job_id: str
    milestone_id: str
    currency: str
    amount_cents: int
    reference: str
    conveyancer_account_id: str = ""
    status: PaymentStatus = PaymentStatus.HELD
    released_at: str | None = None
    refunded_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "id": self.id,
            "job_id": self.job_id,
            "milestone_id": self.milestone_id,
            "currency": self.currency,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
            "conveyancer_account_id": self.conveyancer_account_id,
            "status": self.status.value,
        }
        if self.released_at is not None:
            payload["released_at"] = self.released_at
        if self.refunded_at is not None:
            payload["refunded_at"] = self.refunded_at
        return payload


@dataclass(frozen=True)
class TrustPayout:
    id: str
    payment_id: str
    account_name: str
    account_number: str
    bsb: str
    reference: str
    processed_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "account_name": self.account_name,
            "account_number": self.account_number,
            "bsb": self.bsb,
            "reference": self.reference,
            "processed_at": self.processed_at,
        }


@dataclass(frozen=True)
class InvoiceLine:
    description: str
    amount_cents: int
    tax_rate: float = 0.0

    @property
    def tax_cents(self) -> int:
        return line_tax_cents(self.amount_cents, self.tax_rate)

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "amount_cents": self.amount_cents,
            "tax_rate": self.tax_rate,
        }


@dataclass
class InvoiceRecord:
    id: str
    job_id: str
    recipient: str
    issued_at: str
    due_at: str
    lines: tuple[InvoiceLine, ...]
    status: InvoiceStatus = InvoiceStatus.DRAFT
    subtotal_cents: int = 0
    tax_cents: int = 0
    total_cents: int = 0

    def recalculate(self) -> None:
        """Per-line truncated tax, summed; never tax-on-subtotal"""
        self.subtotal_cents = sum(line.amount_cents for line in self.lines)
        self.tax_cents = sum(line.tax_cents for line in self.lines)
        self.total_cents = self.subtotal_cents + self.tax_cents

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "recipient": self.recipient,
            "status": self.status.value,
            "lines": [line.to_dict() for line in self.lines],
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "issued_at": self.issued_at,
            "due_at": self.due_at,
        }


@dataclass(frozen=True)
class CheckoutReceipt:
    id: str
    payment_id: str
    job_id: str
    method: str
    currency: str
    reference: str
    hold_amount_cents: int
    service_fee_rate: float
    service_fee_cents: int
    total_cents: int
    processed_at: str
    invoice_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "job_id": self.job_id,
            "method": self.method,
            "currency": self.currency,
            "reference": self.reference,
            "hold_amount_cents": self.hold_amount_cents,
            "service_fee_cents": self.service_fee_cents,
            "service_fee_rate": self.service_fee_rate,
            "total_cents": self.total_cents,
            "processed_at": self.processed_at,
            "invoice_id": self.invoice_id or "",
        }


@dataclass(frozen=True)
class LoyaltyTier:
    threshold: int
    rate: float
    name: str
    badge: str


@dataclass(frozen=True)
class MemberStatus:
    completed_jobs: int
    tier: LoyaltyTier

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed_jobs": self.completed_jobs,
            "tier": self.tier.name,
            "badge": self.tier.badge,
            "fee_rate": self.tier.rate,
        }


class ContactRole(enum.Enum):
    BUYER = "buyer"
    SELLER = "seller"
    CONVEYANCER = "conveyancer"


@dataclass
class ContactParty:
    """Full and masked contact coordinates for one party to a job"""
    name: str
    email: str
    phone: str
    masked_email: str
    masked_phone: str


@dataclass
class ContactPolicy:
    job_id: str
    parties: dict[ContactRole, ContactParty]
    unlocked: bool = False
    unlocked_at: str | None = None
    unlocked_by_role: str | None = None
    unlock_attempts: int = 0


@dataclass(frozen=True)
class Message:
    id: str
    job_id: str
    sender: str
    body: str
    created_at: str
    flags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "sender": self.sender,
            "body": self.body,
            "created_at": self.created_at,
            "flags": list(self.flags),
        }


@dataclass(frozen=True)
class Milestone:
    id: str
    job_id: str
    name: str
    amount_cents: int
    due_date: str
    status: str = "pending"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "name": self.name,
            "amount_cents": self.amount_cents,
            "due_date": self.due_date,
            "status": self.status,
        }


@dataclass
class Job:
    id: str
    customer_id: str
    conveyancer_id: str
    state: str
    property_type: str
    status: str
    created_at: str
    contact_policy: ContactPolicy
    milestones: list[Milestone] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    compliance_flags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "conveyancer_id": self.conveyancer_id,
            "state": self.state,
            "property_type": self.property_type,
            "status": self.status,
            "created_at": self.created_at,
            "contact_unlocked": self.contact_policy.unlocked,
            "compliance_flags": list(self.compliance_flags),
        }
