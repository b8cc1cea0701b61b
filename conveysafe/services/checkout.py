"""Composite checkout: fee resolution, invoice, release and loyalty credit

`CheckoutService.complete_checkout` sequences the steps a real checkout
takes across the payment ledger, invoice ledger and loyalty engine. A
coordinator lock serializes checkouts so two requests for the same hold
cannot both create invoices; if the ledger refuses the release, the
invoice created for it is voided.
"""

import logging
import threading
from dataclasses import dataclass

from conveysafe.models import (
    CheckoutReceipt,
    InvoiceLine,
    InvoiceRecord,
    InvoiceStatus,
    MemberStatus,
    PaymentStatus,
    compute_fee_cents,
)
from conveysafe.services.errors import (
    ConveySafeError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from conveysafe.services.invoices import InvoiceLedger, clamp_tax_rate
from conveysafe.services.loyalty import LoyaltyEngine
from conveysafe.services.payment_ledger import PaymentLedger
from conveysafe.utils.clock import SystemClock, is_iso_date, is_iso_datetime

logger = logging.getLogger(__name__)


@dataclass
class CheckoutRequest:
    payment_id: str
    payment_method: str
    service_fee_rate: float | None = None
    processed_at: str | None = None
    generate_invoice: bool = True
    invoice_recipient: str | None = None
    line_description: str | None = None
    line_tax_rate: float = 0.0
    service_fee_description: str | None = None
    service_fee_tax_rate: float = 0.0
    issued_at: str | None = None
    due_at: str | None = None
    invoice_status: str = "issued"


@dataclass
class CheckoutOutcome:
    receipt: CheckoutReceipt
    invoice: InvoiceRecord | None = None
    loyalty: MemberStatus | None = None


class CheckoutService:
    def __init__(
        self,
        ledger: PaymentLedger,
        invoices: InvoiceLedger,
        loyalty: LoyaltyEngine,
        clock: SystemClock | None = None,
        max_service_fee_rate: float = 0.25,
        default_line_description: str = "Conveyancing milestone",
        default_service_fee_description: str = "Payment processing fee",
    ):
        self.ledger = ledger
        self.invoices = invoices
        self.loyalty = loyalty
        self.clock = clock or SystemClock()
        self.max_service_fee_rate = max_service_fee_rate
        self.default_line_description = default_line_description
        self.default_service_fee_description = default_service_fee_description
        self._lock = threading.Lock()

    def resolve_fee_rate(self, override: float | None, conveyancer_id: str) -> float:
        """Explicit rate within the cap, otherwise the conveyancer's loyalty rate"""
        if override is None:
            return self.loyalty.resolve_rate(conveyancer_id)
        if not 0.0 <= override <= self.max_service_fee_rate:
            raise ValidationError(
                "invalid_service_fee_rate",
                f"service_fee_rate must be between 0 and {self.max_service_fee_rate}",
            )
        return override

    def complete_checkout(self, request: CheckoutRequest) -> CheckoutOutcome:
        if not request.payment_id or not request.payment_method:
            raise ValidationError("missing_required_fields")

        with self._lock:
            hold = self.ledger.get(request.payment_id)
            if hold is None:
                raise NotFoundError("payment_not_found", f"Payment {request.payment_id} not found")
            if hold.status != PaymentStatus.HELD:
                raise InvalidTransitionError(
                    "hold_not_available", f"Payment {hold.id} is {hold.status.value}, not held"
                )

            fee_rate = self.resolve_fee_rate(request.service_fee_rate, hold.conveyancer_account_id)

            processed_at = request.processed_at or self.clock.now_iso()
            if not is_iso_datetime(processed_at):
                raise ValidationError("invalid_processed_at", "processed_at must be an ISO-8601 UTC timestamp")

            invoice = None
            if request.generate_invoice:
                invoice = self._create_checkout_invoice(request, hold.job_id, hold.amount_cents, fee_rate)

            try:
                receipt = self.ledger.checkout(
                    hold.id,
                    request.payment_method,
                    fee_rate,
                    processed_at,
                    invoice_id=invoice.id if invoice else None,
                )
            except ConveySafeError:
                if invoice is not None:
                    self._void_quietly(invoice)
                raise

        loyalty = None
        if hold.conveyancer_account_id:
            self.loyalty.record_checkout(hold.conveyancer_account_id, hold.job_id)
            loyalty = self.loyalty.describe_member(hold.conveyancer_account_id)

        return CheckoutOutcome(receipt=receipt, invoice=invoice, loyalty=loyalty)

    def _create_checkout_invoice(
        self,
        request: CheckoutRequest,
        job_id: str,
        amount_cents: int,
        fee_rate: float,
    ) -> InvoiceRecord:
        issued_at = request.issued_at or self.clock.today()
        due_at = request.due_at or issued_at
        if not is_iso_date(issued_at) or not is_iso_date(due_at):
            raise ValidationError("invalid_invoice_date", "issued_at and due_at must be YYYY-MM-DD")
        if due_at < issued_at:
            raise ValidationError("due_before_issue", "due_at must not precede issued_at")

        lines = [
            InvoiceLine(
                description=request.line_description or self.default_line_description,
                amount_cents=amount_cents,
                tax_rate=clamp_tax_rate(request.line_tax_rate),
            )
        ]
        fee_cents = compute_fee_cents(amount_cents, fee_rate)
        if fee_cents > 0:
            lines.append(
                InvoiceLine(
                    description=request.service_fee_description or self.default_service_fee_description,
                    amount_cents=fee_cents,
                    tax_rate=clamp_tax_rate(request.service_fee_tax_rate),
                )
            )

        invoice = self.invoices.create_invoice(
            job_id,
            request.invoice_recipient or f"{job_id}-client",
            issued_at,
            due_at,
            lines,
        )
        return self.invoices.advance_to(invoice.id, InvoiceStatus.parse(request.invoice_status))

    def _void_quietly(self, invoice: InvoiceRecord) -> None:
        try:
            self.invoices.update_status(invoice.id, InvoiceStatus.VOIDED)
        except InvalidTransitionError:
            # Already paid: leave it for finance to reconcile
            logger.error(
                "Could not void invoice for failed checkout",
                extra={"invoice_id": invoice.id, "status": invoice.status.value},
            )
        else:
            logger.warning("Voided invoice for failed checkout", extra={"invoice_id": invoice.id})
