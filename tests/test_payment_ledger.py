"""Tests for the escrow payment ledger"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from conveysafe.models import PaymentStatus, compute_fee_cents
from conveysafe.services.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from conveysafe.services.payment_ledger import PaymentLedger


@pytest.fixture
def hold(ledger):
    return ledger.create_hold("job_1", "ms_1", "AUD", 500000, "ref")


class TestCreateHold:
    """Placing funds in escrow"""

    def test_create_hold_defaults(self, ledger):
        record = ledger.create_hold("job_1", "ms_1", "aud", 125000)

        assert record.id == "hold_00001"
        assert record.status == PaymentStatus.HELD
        assert record.currency == "AUD"
        assert record.reference == "job_1-ms_1"
        assert record.released_at is None
        assert record.refunded_at is None

    def test_create_hold_keeps_conveyancer(self, ledger):
        record = ledger.create_hold("job_1", "ms_1", "AUD", 1000, conveyancer_account_id="conv_9")
        assert record.conveyancer_account_id == "conv_9"

    @pytest.mark.parametrize("currency", ["AU", "AUDD", "A1D"])
    def test_rejects_malformed_currency(self, ledger, currency):
        with pytest.raises(ValidationError) as exc_info:
            ledger.create_hold("job_1", "ms_1", currency, 1000)
        assert exc_info.value.code == "invalid_currency"

    @pytest.mark.parametrize("amount", [0, -5, True])
    def test_rejects_non_positive_amount(self, ledger, amount):
        with pytest.raises(ValidationError) as exc_info:
            ledger.create_hold("job_1", "ms_1", "AUD", amount)
        assert exc_info.value.code == "invalid_amount"

    def test_rejects_missing_fields(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            ledger.create_hold("", "ms_1", "AUD", 1000)
        assert exc_info.value.code == "missing_required_fields"

    def test_returned_record_is_a_snapshot(self, ledger, hold):
        hold.status = PaymentStatus.REFUNDED
        assert ledger.get(hold.id).status == PaymentStatus.HELD


class TestTransitions:
    """Release/refund guards and timestamp exclusivity"""

    def test_release_sets_released_at(self, ledger, hold):
        record = ledger.release(hold.id, "2024-03-02T00:00:00Z")
        assert record.status == PaymentStatus.RELEASED
        assert record.released_at == "2024-03-02T00:00:00Z"
        assert record.refunded_at is None

    def test_refund_sets_refunded_at(self, ledger, hold):
        record = ledger.refund(hold.id, "2024-03-02T00:00:00Z")
        assert record.status == PaymentStatus.REFUNDED
        assert record.refunded_at == "2024-03-02T00:00:00Z"
        assert record.released_at is None

    def test_refund_after_release_rejected(self, ledger, hold):
        ledger.release(hold.id, "2024-03-02T00:00:00Z")

        with pytest.raises(InvalidTransitionError) as exc_info:
            ledger.refund(hold.id, "2024-03-03T00:00:00Z")

        assert exc_info.value.code == "invalid_transition"
        record = ledger.get(hold.id)
        assert record.status == PaymentStatus.RELEASED
        assert record.refunded_at is None

    def test_release_after_refund_rejected(self, ledger, hold):
        ledger.refund(hold.id, "2024-03-02T00:00:00Z")

        with pytest.raises(InvalidTransitionError):
            ledger.release(hold.id, "2024-03-03T00:00:00Z")

        assert ledger.get(hold.id).status == PaymentStatus.REFUNDED

    def test_re_release_restamps(self, ledger, hold):
        ledger.release(hold.id, "2024-03-02T00:00:00Z")
        record = ledger.release(hold.id, "2024-03-05T00:00:00Z")
        assert record.released_at == "2024-03-05T00:00:00Z"

    def test_unknown_payment(self, ledger):
        with pytest.raises(NotFoundError) as exc_info:
            ledger.release("hold_missing", "2024-03-02T00:00:00Z")
        assert exc_info.value.code == "payment_not_found"

    def test_timestamps_stay_exclusive(self, ledger):
        """Across a mix of operations no record carries both timestamps"""
        for index in range(6):
            record = ledger.create_hold(f"job_{index}", "ms", "AUD", 1000 + index)
            if index % 2:
                ledger.release(record.id, "2024-03-02T00:00:00Z")
            else:
                ledger.refund(record.id, "2024-03-02T00:00:00Z")

        for record in ledger.list():
            if record.status == PaymentStatus.RELEASED:
                assert record.released_at and record.refunded_at is None
            if record.status == PaymentStatus.REFUNDED:
                assert record.refunded_at and record.released_at is None


class TestPayouts:
    def test_payout_requires_release(self, ledger, hold):
        with pytest.raises(InvalidTransitionError) as exc_info:
            ledger.record_payout(hold.id, "Trust", "12345678", "062-000", "REF", "2024-03-02T00:00:00Z")
        assert exc_info.value.code == "payout_not_available"

    def test_payout_for_unknown_payment(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.record_payout("hold_missing", "Trust", "12345678", "062-000", "REF", "2024-03-02T00:00:00Z")

    def test_repeat_payout_keeps_history(self, ledger, hold):
        ledger.release(hold.id, "2024-03-02T00:00:00Z")

        first = ledger.record_payout(hold.id, "Trust", "12345678", "062-000", "REF-1", "2024-03-02T01:00:00Z")
        second = ledger.record_payout(hold.id, "Trust", "12345678", "062-000", "REF-2", "2024-03-02T02:00:00Z")

        assert first.id != second.id
        assert ledger.get_payout(hold.id) == second
        assert [payout.reference for payout in ledger.payout_history(hold.id)] == ["REF-1", "REF-2"]

    def test_no_payout_recorded(self, ledger, hold):
        assert ledger.get_payout(hold.id) is None
        assert ledger.payout_history(hold.id) == []


class TestCheckout:
    def test_checkout_scenario(self, ledger, hold):
        """A 5,000.00 hold at 1.5% produces a 75.00 fee"""
        receipt = ledger.checkout(hold.id, "card", 0.015, "2024-03-01T00:00:00Z")

        assert receipt.service_fee_cents == 7500
        assert receipt.total_cents == 507500
        assert receipt.hold_amount_cents == 500000
        record = ledger.get(hold.id)
        assert record.status == PaymentStatus.RELEASED
        assert record.released_at == "2024-03-01T00:00:00Z"

    def test_refund_after_checkout_rejected(self, ledger, hold):
        ledger.checkout(hold.id, "card", 0.015, "2024-03-01T00:00:00Z")

        with pytest.raises(InvalidTransitionError):
            ledger.refund(hold.id, "2024-03-02T00:00:00Z")
        assert ledger.get(hold.id).status == PaymentStatus.RELEASED

    def test_checkout_requires_held(self, ledger, hold):
        ledger.release(hold.id, "2024-03-02T00:00:00Z")
        with pytest.raises(InvalidTransitionError) as exc_info:
            ledger.checkout(hold.id, "card", 0.015, "2024-03-03T00:00:00Z")
        assert exc_info.value.code == "hold_not_available"

    @pytest.mark.parametrize("rate", [float("nan"), float("inf"), -0.01])
    def test_checkout_rejects_unusable_fee_rate(self, ledger, hold, rate):
        with pytest.raises(ValidationError) as exc_info:
            ledger.checkout(hold.id, "card", rate, "2024-03-01T00:00:00Z")
        assert exc_info.value.code == "invalid_service_fee_rate"
        assert ledger.get(hold.id).status == PaymentStatus.HELD
        assert ledger.list_checkouts() == []

    def test_receipt_lookups(self, ledger, hold):
        receipt = ledger.checkout(hold.id, "card", 0.012, "2024-03-01T00:00:00Z", invoice_id="inv_1")

        assert ledger.get_checkout(receipt.id) == receipt
        assert ledger.get_checkout_for_payment(hold.id) == receipt
        assert ledger.list_checkouts() == [receipt]
        assert receipt.to_dict()["invoice_id"] == "inv_1"

    @pytest.mark.parametrize(
        "amount,rate,fee",
        [(500000, 0.015, 7500), (100, 0.005, 1), (333, 0.018, 6), (1, 0.25, 0), (2, 0.25, 1)],
    )
    def test_fee_rounds_half_up(self, ledger, amount, rate, fee):
        record = ledger.create_hold("job_r", "ms_r", "AUD", amount)
        receipt = ledger.checkout(record.id, "card", rate, "2024-03-01T00:00:00Z")

        assert receipt.service_fee_cents == fee == compute_fee_cents(amount, rate)
        assert receipt.total_cents == amount + fee

    def test_concurrent_checkouts_release_once(self, ids):
        ledger = PaymentLedger(ids)
        record = ledger.create_hold("job_1", "ms_1", "AUD", 10000)

        def attempt(_):
            try:
                return ledger.checkout(record.id, "card", 0.015, "2024-03-01T00:00:00Z")
            except InvalidTransitionError:
                return None

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(16)))

        receipts = [result for result in results if result is not None]
        assert len(receipts) == 1
        assert len(ledger.list_checkouts()) == 1
