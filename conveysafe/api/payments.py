"""API endpoints for escrow holds, checkouts, invoices and loyalty"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, status

from conveysafe.api.deps import require_role
from conveysafe.container import ServiceContainer, get_container
from conveysafe.models import InvoiceLine, InvoiceStatus
from conveysafe.schemas.payments import (
    CheckoutCreate,
    HoldCreate,
    InvoiceCreate,
    InvoiceStatusUpdate,
    PayoutRequest,
    RefundRequest,
    ReleaseRequest,
)
from conveysafe.services.checkout import CheckoutRequest
from conveysafe.services.errors import NotFoundError, ValidationError
from conveysafe.services.insights import build_invoice_summary, build_payments_metrics

logger = logging.getLogger(__name__)
router = APIRouter()

HOLD_WRITERS = ("conveyancer", "buyer", "finance_admin")
HOLD_READERS = ("conveyancer", "buyer", "seller", "finance_admin")
FINANCE = ("finance_admin", "admin")
STAFF = ("conveyancer", "finance_admin", "admin")


def _parse_invoice_status(value: str) -> InvoiceStatus:
    try:
        return InvoiceStatus(value)
    except ValueError:
        raise ValidationError("invalid_status", f"Unknown invoice status {value!r}")


# Holds

@router.post("/hold", status_code=status.HTTP_201_CREATED)
async def create_hold(
    payload: HoldCreate,
    _: str = Depends(require_role(*HOLD_WRITERS)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    """Place funds for a milestone into escrow"""
    record = container.ledger.create_hold(
        payload.job_id,
        payload.milestone_id,
        payload.currency,
        payload.amount_cents,
        reference=payload.reference,
        conveyancer_account_id=payload.conveyancer_account_id,
    )
    response = record.to_dict()
    if record.conveyancer_account_id:
        response["loyalty"] = container.loyalty.describe_member(record.conveyancer_account_id).to_dict()
    return response


@router.get("/hold")
async def list_holds(
    _: str = Depends(require_role(*HOLD_READERS)),
    container: ServiceContainer = Depends(get_container),
) -> list[dict[str, Any]]:
    return [record.to_dict() for record in container.ledger.list()]


@router.get("/hold/{payment_id}")
async def get_hold(
    payment_id: str,
    _: str = Depends(require_role(*HOLD_READERS)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    record = container.ledger.get(payment_id)
    if record is None:
        raise NotFoundError("payment_not_found", f"Payment {payment_id} not found")
    return record.to_dict()


@router.post("/hold/{payment_id}/release")
async def release_hold(
    payment_id: str,
    payload: ReleaseRequest,
    _: str = Depends(require_role("conveyancer", "finance_admin")),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    return container.ledger.release(payment_id, payload.released_at).to_dict()


@router.post("/hold/{payment_id}/refund")
async def refund_hold(
    payment_id: str,
    payload: RefundRequest,
    _: str = Depends(require_role("finance_admin")),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    return container.ledger.refund(payment_id, payload.refunded_at).to_dict()


@router.post("/hold/{payment_id}/payout")
async def record_payout(
    payment_id: str,
    payload: PayoutRequest,
    _: str = Depends(require_role("finance_admin")),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    """Record a trust account disbursement for a released payment"""
    payout = container.ledger.record_payout(
        payment_id,
        payload.account_name,
        payload.account_number,
        payload.bsb,
        payload.reference or container.settings.default_payout_reference,
        payload.processed_at,
    )
    return payout.to_dict()


@router.get("/hold/{payment_id}/payout")
async def get_payout(
    payment_id: str,
    _: str = Depends(require_role("finance_admin", "conveyancer")),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    payout = container.ledger.get_payout(payment_id)
    if payout is None:
        raise NotFoundError("payout_not_found", f"No payout recorded for payment {payment_id}")
    return payout.to_dict()


# Checkout

@router.post("/checkout", status_code=status.HTTP_201_CREATED)
async def checkout(
    payload: CheckoutCreate,
    _: str = Depends(require_role("buyer", "conveyancer", "finance_admin")),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    """Release a held payment, charge the service fee and optionally invoice it"""
    outcome = container.checkout.complete_checkout(CheckoutRequest(**payload.model_dump()))

    response = outcome.receipt.to_dict()
    if outcome.invoice is not None:
        response["invoice"] = outcome.invoice.to_dict()
    if outcome.loyalty is not None:
        response["loyalty"] = outcome.loyalty.to_dict()
    return response


@router.get("/checkout")
async def list_checkouts(
    payment_id: str | None = Query(None),
    _: str = Depends(require_role(*STAFF)),
    container: ServiceContainer = Depends(get_container),
) -> Any:
    """All receipts, or the receipt for one payment when `payment_id` is given"""
    if payment_id:
        receipt = container.ledger.get_checkout_for_payment(payment_id)
        if receipt is None:
            raise NotFoundError("checkout_not_found", f"No checkout for payment {payment_id}")
        return receipt.to_dict()
    return [receipt.to_dict() for receipt in container.ledger.list_checkouts()]


@router.get("/checkout/{checkout_id}")
async def get_checkout(
    checkout_id: str,
    _: str = Depends(require_role(*STAFF)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    receipt = container.ledger.get_checkout(checkout_id)
    if receipt is None:
        raise NotFoundError("checkout_not_found", f"Checkout {checkout_id} not found")
    return receipt.to_dict()


# Loyalty

@router.get("/loyalty/schedule")
async def loyalty_schedule(
    _: str = Depends(require_role(*STAFF)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    return container.loyalty.summaries()


@router.get("/loyalty/{account_id}")
async def loyalty_status(
    account_id: str,
    _: str = Depends(require_role(*STAFF)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    payload = container.loyalty.describe_member(account_id).to_dict()
    payload["account_id"] = account_id
    return payload


# Metrics

@router.get("/metrics")
async def payments_metrics(
    _: str = Depends(require_role(*FINANCE)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    return build_payments_metrics(
        container.ledger,
        container.invoices,
        container.loyalty,
        container.clock,
        recent_limit=container.settings.recent_checkout_limit,
    )


# Invoices

@router.get("/invoices/summary")
async def invoice_summary(
    _: str = Depends(require_role(*FINANCE)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    return build_invoice_summary(container.invoices, container.clock.today())


@router.post("/invoices", status_code=status.HTTP_201_CREATED)
async def create_invoice(
    payload: InvoiceCreate,
    _: str = Depends(require_role("conveyancer", "finance_admin")),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    lines = [
        InvoiceLine(description=line.description, amount_cents=line.amount_cents, tax_rate=line.tax_rate)
        for line in payload.lines
    ]
    invoice = container.invoices.create_invoice(
        payload.job_id, payload.recipient, payload.issued_at, payload.due_at, lines
    )
    return invoice.to_dict()


@router.get("/invoices")
async def list_invoices(
    _: str = Depends(require_role(*STAFF)),
    container: ServiceContainer = Depends(get_container),
) -> list[dict[str, Any]]:
    return [invoice.to_dict() for invoice in container.invoices.list()]


@router.get("/invoices/{invoice_id}")
async def get_invoice(
    invoice_id: str,
    _: str = Depends(require_role(*STAFF)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    invoice = container.invoices.get(invoice_id)
    if invoice is None:
        raise NotFoundError("invoice_not_found", f"Invoice {invoice_id} not found")
    return invoice.to_dict()


@router.post("/invoices/{invoice_id}/status")
async def update_invoice_status(
    invoice_id: str,
    payload: InvoiceStatusUpdate,
    _: str = Depends(require_role(*FINANCE)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    invoice = container.invoices.update_status(invoice_id, _parse_invoice_status(payload.status))
    return invoice.to_dict()
