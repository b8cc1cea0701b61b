"""Line-item invoice ledger

Invoices are created as drafts with their totals computed once from
immutable lines. Status changes follow:

    DRAFT  → ISSUED | VOIDED
    ISSUED → PAID   | VOIDED

Setting the current status again is a no-op.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import replace
from typing import Iterable

from conveysafe.models import InvoiceLine, InvoiceRecord, InvoiceStatus
from conveysafe.services.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from conveysafe.utils.clock import is_iso_date
from conveysafe.utils.ids import IdGenerator, UuidIdGenerator

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.ISSUED, InvoiceStatus.VOIDED}),
    InvoiceStatus.ISSUED: frozenset({InvoiceStatus.PAID, InvoiceStatus.VOIDED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.VOIDED: frozenset(),
}

# Forward path used when a caller asks for a status several steps ahead
_LIFECYCLE = (InvoiceStatus.DRAFT, InvoiceStatus.ISSUED, InvoiceStatus.PAID)


def clamp_tax_rate(rate: float) -> float:
    """Pin a tax rate into [0, 1]; NaN and infinities are rejected"""
    rate = float(rate)
    if not math.isfinite(rate):
        raise ValidationError("invalid_tax_rate", "tax_rate must be a finite number")
    return min(max(rate, 0.0), 1.0)


class InvoiceLedger:
    """In-memory invoice store guarded by one lock"""

    def __init__(self, id_generator: IdGenerator | None = None):
        self._ids = id_generator or UuidIdGenerator()
        self._lock = threading.Lock()
        self._invoices: dict[str, InvoiceRecord] = {}

    def create_invoice(
        self,
        job_id: str,
        recipient: str,
        issued_at: str,
        due_at: str,
        lines: Iterable[InvoiceLine],
    ) -> InvoiceRecord:
        if not job_id or not recipient:
            raise ValidationError("missing_required_fields")
        if not is_iso_date(issued_at) or not is_iso_date(due_at):
            raise ValidationError("invalid_date", "issued_at and due_at must be YYYY-MM-DD")
        if due_at < issued_at:
            raise ValidationError("due_before_issue", "due_at must not precede issued_at")

        normalized = []
        for line in lines:
            if isinstance(line.amount_cents, bool) or not isinstance(line.amount_cents, int) or line.amount_cents <= 0:
                raise ValidationError("invalid_line_amount", f"Line {line.description!r} must have a positive amount")
            normalized.append(replace(line, tax_rate=clamp_tax_rate(line.tax_rate)))
        if not normalized:
            raise ValidationError("missing_line_items", "An invoice needs at least one line")

        invoice = InvoiceRecord(
            id=self._ids.new_id("inv_"),
            job_id=job_id,
            recipient=recipient,
            issued_at=issued_at,
            due_at=due_at,
            lines=tuple(normalized),
        )
        invoice.recalculate()

        with self._lock:
            self._invoices[invoice.id] = invoice
            snapshot = replace(invoice)

        logger.info(
            "Created invoice",
            extra={"invoice_id": invoice.id, "job_id": job_id, "total_cents": invoice.total_cents},
        )
        return snapshot

    def get(self, invoice_id: str) -> InvoiceRecord | None:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
            return replace(invoice) if invoice else None

    def list(self) -> list[InvoiceRecord]:
        with self._lock:
            return [replace(invoice) for invoice in self._invoices.values()]

    def update_status(self, invoice_id: str, status: InvoiceStatus) -> InvoiceRecord:
        with self._lock:
            invoice = self._require(invoice_id)
            previous = invoice.status
            if status != previous and status not in ALLOWED_TRANSITIONS[previous]:
                raise InvalidTransitionError(
                    "invalid_transition",
                    f"Invoice {invoice_id} cannot move from {previous.value} to {status.value}",
                )
            invoice.status = status
            snapshot = replace(invoice)

        if status != previous:
            logger.info(
                "Invoice status changed",
                extra={"invoice_id": invoice_id, "from_status": previous.value, "to_status": status.value},
            )
        return snapshot

    def advance_to(self, invoice_id: str, status: InvoiceStatus) -> InvoiceRecord:
        """Walk the lifecycle forward until the invoice reaches `status`

        Used by checkout, which may ask for a freshly created draft to land
        directly on `paid`.
        """
        invoice = self.get(invoice_id)
        if invoice is None:
            raise NotFoundError("invoice_not_found", f"Invoice {invoice_id} not found")
        if status not in _LIFECYCLE or invoice.status not in _LIFECYCLE:
            return self.update_status(invoice_id, status)

        current = _LIFECYCLE.index(invoice.status)
        target = _LIFECYCLE.index(status)
        for step in _LIFECYCLE[current + 1:target + 1]:
            invoice = self.update_status(invoice_id, step)
        if target < current:
            # Moving backwards is never legal; let update_status say so
            invoice = self.update_status(invoice_id, status)
        return invoice

    def _require(self, invoice_id: str) -> InvoiceRecord:
        invoice = self._invoices.get(invoice_id)
        if invoice is None:
            raise NotFoundError("invoice_not_found", f"Invoice {invoice_id} not found")
        return invoice
