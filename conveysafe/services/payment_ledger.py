"""Escrow payment ledger: holds, releases, refunds, trust payouts and checkouts

State machine for a hold:

    HELD     → RELEASED   (release, checkout)
    HELD     → REFUNDED   (refund)
    RELEASED → RELEASED   (re-release restamps released_at)
    REFUNDED → REFUNDED   (re-refund restamps refunded_at)

RELEASED → REFUNDED and REFUNDED → RELEASED are rejected. Every mutating
operation runs under a single lock over the whole ledger, so the
check-then-act status guards are atomic.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import replace

from conveysafe.models import (
    CheckoutReceipt,
    PaymentRecord,
    PaymentStatus,
    TrustPayout,
    compute_fee_cents,
)
from conveysafe.services.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from conveysafe.utils.ids import IdGenerator, UuidIdGenerator

logger = logging.getLogger(__name__)


class PaymentLedger:
    """In-memory escrow ledger for a single payments process"""

    def __init__(self, id_generator: IdGenerator | None = None):
        self._ids = id_generator or UuidIdGenerator()
        self._lock = threading.Lock()
        self._payments: dict[str, PaymentRecord] = {}
        self._payouts: dict[str, list[TrustPayout]] = {}
        self._checkouts: dict[str, CheckoutReceipt] = {}
        self._checkout_by_payment: dict[str, str] = {}
        self._checkout_order: list[str] = []

    def create_hold(
        self,
        job_id: str,
        milestone_id: str,
        currency: str,
        amount_cents: int,
        reference: str = "",
        conveyancer_account_id: str = "",
    ) -> PaymentRecord:
        """Earmark funds against a milestone"""
        if not job_id or not milestone_id or not currency:
            raise ValidationError("missing_required_fields")
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError("invalid_currency", f"Currency must be a 3-letter code, got {currency!r}")
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise ValidationError("invalid_amount", "amount_cents must be a positive integer")

        record = PaymentRecord(
            id=self._ids.new_id("hold_"),
            job_id=job_id,
            milestone_id=milestone_id,
            currency=currency.upper(),
            amount_cents=amount_cents,
            reference=reference or f"{job_id}-{milestone_id}",
            conveyancer_account_id=conveyancer_account_id or "",
        )
        with self._lock:
            self._payments[record.id] = record
            snapshot = replace(record)

        logger.info(
            "Created escrow hold",
            extra={"payment_id": record.id, "job_id": job_id, "amount_cents": amount_cents},
        )
        return snapshot

    def get(self, payment_id: str) -> PaymentRecord | None:
        with self._lock:
            record = self._payments.get(payment_id)
            return replace(record) if record else None

    def list(self) -> list[PaymentRecord]:
        """Snapshot of every payment record"""
        with self._lock:
            return [replace(record) for record in self._payments.values()]

    def release(self, payment_id: str, released_at: str) -> PaymentRecord:
        with self._lock:
            record = self._require(payment_id)
            if record.status == PaymentStatus.REFUNDED:
                self._reject(record, "release")
            record.status = PaymentStatus.RELEASED
            record.released_at = released_at
            record.refunded_at = None
            snapshot = replace(record)

        logger.info("Released escrow hold", extra={"payment_id": payment_id})
        return snapshot

    def refund(self, payment_id: str, refunded_at: str) -> PaymentRecord:
        with self._lock:
            record = self._require(payment_id)
            if record.status == PaymentStatus.RELEASED:
                self._reject(record, "refund")
            record.status = PaymentStatus.REFUNDED
            record.refunded_at = refunded_at
            record.released_at = None
            snapshot = replace(record)

        logger.info("Refunded escrow hold", extra={"payment_id": payment_id})
        return snapshot

    def record_payout(
        self,
        payment_id: str,
        account_name: str,
        account_number: str,
        bsb: str,
        reference: str,
        processed_at: str,
    ) -> TrustPayout:
        """Record a disbursement from trust for a released payment

        Repeat calls append to the payment's payout history; readers see
        the most recent entry.
        """
        with self._lock:
            record = self._require(payment_id)
            if record.status != PaymentStatus.RELEASED:
                self._reject(record, "payout", code="payout_not_available")
            payout = TrustPayout(
                id=self._ids.new_id("payout_"),
                payment_id=payment_id,
                account_name=account_name,
                account_number=account_number,
                bsb=bsb,
                reference=reference,
                processed_at=processed_at,
            )
            history = self._payouts.setdefault(payment_id, [])
            history.append(payout)
            payout_count = len(history)

        if payout_count > 1:
            logger.warning(
                "Trust payout recorded again for payment",
                extra={"payment_id": payment_id, "payout_id": payout.id, "payout_count": payout_count},
            )
        else:
            logger.info("Recorded trust payout", extra={"payment_id": payment_id, "payout_id": payout.id})
        return payout

    def get_payout(self, payment_id: str) -> TrustPayout | None:
        with self._lock:
            history = self._payouts.get(payment_id)
            return history[-1] if history else None

    def payout_history(self, payment_id: str) -> list[TrustPayout]:
        with self._lock:
            return list(self._payouts.get(payment_id, []))

    def checkout(
        self,
        payment_id: str,
        method: str,
        service_fee_rate: float,
        processed_at: str,
        invoice_id: str | None = None,
    ) -> CheckoutReceipt:
        """Release a held payment and issue its checkout receipt in one step"""
        if not math.isfinite(service_fee_rate) or service_fee_rate < 0:
            raise ValidationError("invalid_service_fee_rate", "service_fee_rate must be a finite, non-negative number")

        with self._lock:
            record = self._require(payment_id)
            if record.status != PaymentStatus.HELD:
                self._reject(record, "checkout", code="hold_not_available")

            fee_cents = compute_fee_cents(record.amount_cents, service_fee_rate)
            receipt = CheckoutReceipt(
                id=self._ids.new_id("chk_"),
                payment_id=payment_id,
                job_id=record.job_id,
                method=method,
                currency=record.currency,
                reference=record.reference,
                hold_amount_cents=record.amount_cents,
                service_fee_rate=service_fee_rate,
                service_fee_cents=fee_cents,
                total_cents=record.amount_cents + fee_cents,
                processed_at=processed_at,
                invoice_id=invoice_id,
            )

            record.status = PaymentStatus.RELEASED
            record.released_at = processed_at
            record.refunded_at = None

            self._checkouts[receipt.id] = receipt
            self._checkout_by_payment[payment_id] = receipt.id
            self._checkout_order.append(receipt.id)

        logger.info(
            "Checkout completed",
            extra={
                "payment_id": payment_id,
                "checkout_id": receipt.id,
                "service_fee_cents": receipt.service_fee_cents,
                "total_cents": receipt.total_cents,
            },
        )
        return receipt

    def get_checkout(self, checkout_id: str) -> CheckoutReceipt | None:
        with self._lock:
            return self._checkouts.get(checkout_id)

    def get_checkout_for_payment(self, payment_id: str) -> CheckoutReceipt | None:
        with self._lock:
            checkout_id = self._checkout_by_payment.get(payment_id)
            return self._checkouts.get(checkout_id) if checkout_id else None

    def list_checkouts(self) -> list[CheckoutReceipt]:
        """Receipts in the order they were issued"""
        with self._lock:
            return [self._checkouts[checkout_id] for checkout_id in self._checkout_order]

    def _require(self, payment_id: str) -> PaymentRecord:
        # Caller holds the lock
        record = self._payments.get(payment_id)
        if record is None:
            raise NotFoundError("payment_not_found", f"Payment {payment_id} not found")
        return record

    @staticmethod
    def _reject(record: PaymentRecord, action: str, code: str = "invalid_transition") -> None:
        # Raised under the lock; the API layer logs rejected transitions
        raise InvalidTransitionError(code, f"Cannot {action} payment {record.id} in status {record.status.value}")
