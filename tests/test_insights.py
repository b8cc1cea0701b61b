"""Tests for finance and compliance rollups"""

from conveysafe.models import InvoiceLine, InvoiceStatus
from conveysafe.services.checkout import CheckoutRequest
from conveysafe.services.insights import (
    build_compliance_summary,
    build_invoice_summary,
    build_payments_metrics,
)


class TestPaymentsMetrics:
    def test_empty_ledger(self, ledger, invoices, loyalty, clock):
        metrics = build_payments_metrics(ledger, invoices, loyalty, clock)

        assert metrics["generated_at"] == "2024-03-01T09:30:00.000Z"
        assert metrics["payments"]["total"] == 0
        assert metrics["checkouts"]["average_order_cents"] == 0
        assert metrics["checkouts"]["recent"] == []

    def test_rollup(self, ledger, invoices, loyalty, clock, checkout_service):
        first = ledger.create_hold("job_1", "ms_1", "AUD", 10000, conveyancer_account_id="conv_1")
        second = ledger.create_hold("job_2", "ms_1", "AUD", 20000)
        refunded = ledger.create_hold("job_3", "ms_1", "AUD", 5000)
        ledger.create_hold("job_4", "ms_1", "AUD", 7000)
        ledger.refund(refunded.id, "2024-03-01T00:00:00Z")

        checkout_service.complete_checkout(CheckoutRequest(first.id, "card", service_fee_rate=0.01))
        checkout_service.complete_checkout(CheckoutRequest(second.id, "card", service_fee_rate=0.01))

        metrics = build_payments_metrics(ledger, invoices, loyalty, clock, recent_limit=1)

        payments = metrics["payments"]
        assert payments["total"] == 4
        assert payments["held"] == {"count": 1, "total_cents": 7000}
        assert payments["released"] == {"count": 2, "total_cents": 30000}
        assert payments["refunded"] == {"count": 1, "total_cents": 5000}
        assert payments["outstanding_cents"] == 7000

        checkouts = metrics["checkouts"]
        assert checkouts["total"] == 2
        assert checkouts["service_fee_cents"] == 300
        assert checkouts["total_cents"] == 30300
        assert checkouts["average_order_cents"] == 15150
        assert [entry["payment_id"] for entry in checkouts["recent"]] == [second.id]

        assert metrics["invoices"]["issued"] == 2
        assert metrics["loyalty"]["members"] == 1


class TestInvoiceSummary:
    def test_overdue_and_outstanding(self, invoices):
        line = [InvoiceLine("Fee", 1000)]
        overdue = invoices.create_invoice("job_1", "A", "2024-01-01", "2024-02-01", line)
        paid = invoices.create_invoice("job_2", "B", "2024-01-01", "2024-02-01", line)
        current = invoices.create_invoice("job_3", "C", "2024-03-01", "2024-03-15", line)
        invoices.advance_to(overdue.id, InvoiceStatus.ISSUED)
        invoices.advance_to(paid.id, InvoiceStatus.PAID)
        invoices.advance_to(current.id, InvoiceStatus.ISSUED)
        invoices.create_invoice("job_4", "D", "2024-01-01", "2024-01-02", line)

        summary = build_invoice_summary(invoices, "2024-03-01")

        assert summary["total"] == 4
        assert summary["draft"] == 1
        assert summary["issued"] == 2
        assert summary["paid"] == 1
        # The stale draft and the lapsed issued invoice
        assert summary["overdue"] == 2
        assert summary["outstanding_cents"] == 2000
        assert summary["total_cents"] == 4000


class TestComplianceSummary:
    def test_counts(self, job_store):
        flagged = job_store.create_job("cust_1")
        unlocked = job_store.create_job("cust_2")
        job_store.add_message(flagged.id, "buyer", "Call me on 0412 345 678")
        job_store.unlock_contact(unlocked.id, "seller")
        job_store.add_message(unlocked.id, "seller", "Thanks")

        summary = build_compliance_summary(job_store)

        assert summary == {
            "jobs": 2,
            "contact_unlocked": 1,
            "flagged_jobs": 1,
            "flags": {"contact_coordinates": 1, "off_platform_hint": 1},
            "messages": 2,
        }
