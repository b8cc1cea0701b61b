"""Pydantic schemas for the escrow payments API"""

from pydantic import BaseModel, Field, StrictInt


class HoldCreate(BaseModel):
    job_id: str = Field(..., min_length=1)
    milestone_id: str = Field(..., min_length=1)
    currency: str = Field(..., min_length=1)
    amount_cents: StrictInt
    reference: str = ""
    conveyancer_account_id: str = ""


class ReleaseRequest(BaseModel):
    released_at: str = Field(..., min_length=1)


class RefundRequest(BaseModel):
    refunded_at: str = Field(..., min_length=1)


class PayoutRequest(BaseModel):
    account_name: str = Field(..., min_length=1)
    account_number: str = Field(..., min_length=1)
    bsb: str = Field(..., min_length=1)
    processed_at: str = Field(..., min_length=1)
    reference: str | None = None


class CheckoutCreate(BaseModel):
    payment_id: str = Field(..., min_length=1)
    payment_method: str = Field(..., min_length=1)
    service_fee_rate: float | None = Field(default=None, allow_inf_nan=False)
    processed_at: str | None = None
    generate_invoice: bool = True
    invoice_recipient: str | None = None
    line_description: str | None = None
    line_tax_rate: float = Field(default=0.0, allow_inf_nan=False)
    service_fee_description: str | None = None
    service_fee_tax_rate: float = Field(default=0.0, allow_inf_nan=False)
    issued_at: str | None = None
    due_at: str | None = None
    invoice_status: str = "issued"


class InvoiceLineIn(BaseModel):
    description: str = Field(default="Fee")
    amount_cents: StrictInt
    tax_rate: float = Field(default=0.0, allow_inf_nan=False)


class InvoiceCreate(BaseModel):
    job_id: str = Field(..., min_length=1)
    recipient: str = Field(..., min_length=1)
    issued_at: str = Field(..., min_length=1)
    due_at: str = Field(..., min_length=1)
    lines: list[InvoiceLineIn]


class InvoiceStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)
