"""Read-only rollups for the finance and compliance dashboards

Each store is snapshotted on its own, so a rollup reflects recent state
per store rather than a single consistent instant across stores.
"""

from collections import Counter
from typing import Any

from conveysafe.models import InvoiceStatus, PaymentStatus
from conveysafe.services.compliance import flag_kind
from conveysafe.services.invoices import InvoiceLedger
from conveysafe.services.jobs import JobStore
from conveysafe.services.loyalty import LoyaltyEngine
from conveysafe.services.payment_ledger import PaymentLedger
from conveysafe.utils.clock import SystemClock


def _payments_section(ledger: PaymentLedger) -> dict[str, Any]:
    payments = ledger.list()
    counts = {status: 0 for status in PaymentStatus}
    totals = {status: 0 for status in PaymentStatus}
    for record in payments:
        counts[record.status] += 1
        totals[record.status] += record.amount_cents

    section: dict[str, Any] = {"total": len(payments)}
    for status in PaymentStatus:
        section[status.value] = {"count": counts[status], "total_cents": totals[status]}
    section["outstanding_cents"] = totals[PaymentStatus.HELD]
    return section


def _checkouts_section(ledger: PaymentLedger, recent_limit: int) -> dict[str, Any]:
    checkouts = ledger.list_checkouts()
    total_cents = sum(receipt.total_cents for receipt in checkouts)
    recent = [receipt.to_dict() for receipt in reversed(checkouts)][:recent_limit]
    return {
        "total": len(checkouts),
        "total_cents": total_cents,
        "service_fee_cents": sum(receipt.service_fee_cents for receipt in checkouts),
        "average_order_cents": total_cents // len(checkouts) if checkouts else 0,
        "recent": recent,
    }


def build_invoice_summary(invoices: InvoiceLedger, today: str) -> dict[str, Any]:
    """Counts by status, overdue invoices and the amount still owed"""
    records = invoices.list()
    counts = Counter(invoice.status for invoice in records)
    overdue = sum(
        1
        for invoice in records
        if invoice.due_at
        and invoice.due_at < today
        and invoice.status not in (InvoiceStatus.PAID, InvoiceStatus.VOIDED)
    )
    return {
        "total": len(records),
        "draft": counts[InvoiceStatus.DRAFT],
        "issued": counts[InvoiceStatus.ISSUED],
        "paid": counts[InvoiceStatus.PAID],
        "voided": counts[InvoiceStatus.VOIDED],
        "overdue": overdue,
        "outstanding_cents": sum(
            invoice.total_cents for invoice in records if invoice.status == InvoiceStatus.ISSUED
        ),
        "total_cents": sum(invoice.total_cents for invoice in records),
    }


def build_payments_metrics(
    ledger: PaymentLedger,
    invoices: InvoiceLedger,
    loyalty: LoyaltyEngine,
    clock: SystemClock | None = None,
    recent_limit: int = 5,
) -> dict[str, Any]:
    clock = clock or SystemClock()
    return {
        "generated_at": clock.now_iso(),
        "payments": _payments_section(ledger),
        "checkouts": _checkouts_section(ledger, recent_limit),
        "invoices": build_invoice_summary(invoices, clock.today()),
        "loyalty": loyalty.summaries(),
    }


def build_compliance_summary(jobs: JobStore) -> dict[str, Any]:
    """Unlock and compliance-flag totals across every job"""
    all_jobs = jobs.list_all()
    flag_counts = Counter(flag_kind(flag) for job in all_jobs for flag in job.compliance_flags)
    return {
        "jobs": len(all_jobs),
        "contact_unlocked": sum(1 for job in all_jobs if job.contact_policy.unlocked),
        "flagged_jobs": sum(1 for job in all_jobs if job.compliance_flags),
        "flags": {
            "contact_coordinates": flag_counts.get("contact_coordinates", 0),
            "off_platform_hint": flag_counts.get("off_platform_hint", 0),
        },
        "messages": sum(len(job.messages) for job in all_jobs),
    }
