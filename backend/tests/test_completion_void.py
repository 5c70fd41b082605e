# Overview: Pytest coverage for sale completion, void, shift totals and sale events.

"""
Completion & Void Tests

Completion deducts inventory exactly once and moves the shift totals by the
net amount; void of a completed sale reverses both exactly. Any failure
leaves every record as it was.
"""

import re
from datetime import timedelta

import pytest

from app.errors import (
    InsufficientPaymentError,
    InsufficientStockError,
    InvalidStateError,
    ValidationError,
)
from app.models import StockReservation
from app.services import event_service, reservation_service, sales_service
from app.time_utils import utcnow
from conftest import CASHIER_ID, get_stock


def _sale_with(ctx, *lines):
    return sales_service.create_draft(
        ctx, items=[{"product_id": p.id, "quantity": q} for p, q in lines]
    ).sale


class TestCompleteSale:

    def test_complete_deducts_stock_and_releases_reservations(self, db_session, ctx, product_x, product_y):
        sale = _sale_with(ctx, (product_x, 2), (product_y, 4))

        receipt = sales_service.complete_sale(ctx, sale.id, payment_method="cash", amount_paid_cents=5000)

        assert receipt.sale.status == "COMPLETED"
        assert receipt.sale.payment_method == "CASH"
        assert receipt.sale.total_cents == 2 * 1500 + 4 * 350
        assert receipt.change_cents == 5000 - 4400
        assert receipt.sale.change_due_cents == 600
        assert receipt.sale.completed_at is not None
        assert receipt.sale.synced_at is not None
        assert get_stock(product_x) == 8
        assert get_stock(product_y) == 6
        assert reservation_service.get_reservations_by_sale(sale.id) == []
        assert reservation_service.get_available_stock(product_x.id, ctx.business_id) == 8

    def test_receipt_number_uses_daily_sequence(self, db_session, ctx, product_x):
        first = _sale_with(ctx, (product_x, 1))
        second = _sale_with(ctx, (product_x, 1))

        r1 = sales_service.complete_sale(ctx, first.id, payment_method="CASH", amount_paid_cents=1500)
        r2 = sales_service.complete_sale(ctx, second.id, payment_method="CASH", amount_paid_cents=1500)

        assert r1.sale.daily_sequence == 1
        assert r2.sale.daily_sequence == 2
        today = utcnow().strftime("%Y%m%d")
        assert r1.receipt_number == f"{today}-001"
        assert re.fullmatch(r"\d{8}-002", r2.receipt_number)

    def test_discount_reduces_amount_due(self, db_session, ctx, product_x):
        sale = _sale_with(ctx, (product_x, 3))

        receipt = sales_service.complete_sale(
            ctx, sale.id, payment_method="CARD", amount_paid_cents=4000, discount_cents=500
        )
        assert receipt.sale.subtotal_cents == 4500
        assert receipt.sale.discount_cents == 500
        assert receipt.sale.total_cents == 4000
        assert receipt.change_cents == 0

    def test_discount_then_tax(self, db_session, business_a, ctx, product_x):
        business_a.tax_rate_bps = 1000
        db_session.commit()
        sale = _sale_with(ctx, (product_x, 3))

        receipt = sales_service.complete_sale(
            ctx, sale.id, payment_method="CARD", amount_paid_cents=4400, discount_cents=500
        )
        assert receipt.sale.tax_cents == 400
        assert receipt.sale.total_cents == 4400
        assert receipt.sale.total_cents == (
            receipt.sale.subtotal_cents - receipt.sale.discount_cents + receipt.sale.tax_cents
        )

    def test_insufficient_payment_changes_nothing(self, db_session, ctx, product_x):
        sale = _sale_with(ctx, (product_x, 3))

        with pytest.raises(InsufficientPaymentError) as exc:
            sales_service.complete_sale(
                ctx, sale.id, payment_method="CASH", amount_paid_cents=3999, discount_cents=500
            )
        assert exc.value.details == {"amount_due_cents": 4000, "amount_paid_cents": 3999}

        db_session.refresh(sale)
        assert sale.status == "DRAFT"
        assert sale.discount_cents == 0
        assert sale.total_cents == 4500
        assert sale.daily_sequence is None
        assert get_stock(product_x) == 10
        assert reservation_service.get_reservation(sale.id, product_x.id).quantity == 3

    def test_discount_above_subtotal_rejected(self, db_session, ctx, product_x):
        sale = _sale_with(ctx, (product_x, 1))
        with pytest.raises(ValidationError):
            sales_service.complete_sale(
                ctx, sale.id, payment_method="CASH", amount_paid_cents=0, discount_cents=1501
            )

    def test_negative_discount_rejected(self, db_session, ctx, product_x):
        sale = _sale_with(ctx, (product_x, 1))
        with pytest.raises(ValidationError):
            sales_service.complete_sale(
                ctx, sale.id, payment_method="CASH", amount_paid_cents=1500, discount_cents=-1
            )

    def test_payment_method_required(self, db_session, ctx, product_x):
        sale = _sale_with(ctx, (product_x, 1))
        with pytest.raises(ValidationError):
            sales_service.complete_sale(ctx, sale.id, payment_method="  ", amount_paid_cents=1500)

    def test_empty_sale_cannot_complete(self, db_session, ctx):
        sale = sales_service.create_draft(ctx).sale
        with pytest.raises(ValidationError):
            sales_service.complete_sale(ctx, sale.id, payment_method="CASH", amount_paid_cents=0)

    def test_complete_twice_rejected(self, db_session, ctx, product_x):
        sale = _sale_with(ctx, (product_x, 1))
        sales_service.complete_sale(ctx, sale.id, payment_method="CASH", amount_paid_cents=1500)

        with pytest.raises(InvalidStateError):
            sales_service.complete_sale(ctx, sale.id, payment_method="CASH", amount_paid_cents=1500)
        assert get_stock(product_x) == 9

    def test_complete_held_sale(self, db_session, ctx, product_x):
        sale = _sale_with(ctx, (product_x, 1))
        sales_service.hold_sale(ctx, sale.id)

        receipt = sales_service.complete_sale(ctx, sale.id, payment_method="CASH", amount_paid_cents=2000)
        assert receipt.sale.status == "COMPLETED"
        assert receipt.change_cents == 500

    def test_expired_reservation_is_not_an_error(self, db_session, ctx, product_x):
        sale = _sale_with(ctx, (product_x, 2))
        reservation_service.clean_expired_reservations(now=utcnow() + timedelta(days=1))
        assert reservation_service.get_reservations_by_sale(sale.id) == []

        receipt = sales_service.complete_sale(ctx, sale.id, payment_method="CASH", amount_paid_cents=3000)
        assert receipt.sale.status == "COMPLETED"
        assert get_stock(product_x) == 8

    def test_expired_reservation_with_stock_taken_rolls_back(self, db_session, ctx, product_x, product_y):
        """Stock claimed by another sale after expiry cannot be sold twice."""
        sale_1 = _sale_with(ctx, (product_y, 1), (product_x, 8))
        reservation = reservation_service.get_reservation(sale_1.id, product_x.id)
        reservation.expire_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        _sale_with(ctx, (product_x, 5))

        with pytest.raises(InsufficientStockError):
            sales_service.complete_sale(ctx, sale_1.id, payment_method="CASH", amount_paid_cents=12350)

        db_session.refresh(sale_1)
        assert sale_1.status == "DRAFT"
        assert get_stock(product_x) == 10
        # product_y was processed before the failure; its deduction rolled back too
        assert get_stock(product_y) == 10
        assert reservation_service.get_reservation(sale_1.id, product_y.id).quantity == 1

    def test_kept_reservation_of_removed_line_is_released(self, db_session, ctx, product_x, product_y):
        result = sales_service.create_draft(ctx, items=[
            {"product_id": product_x.id, "quantity": 1},
            {"product_id": product_y.id, "quantity": 4},
        ])
        sale_id = result.sale.id
        line_y = next(item for item in result.items if item.product_id == product_y.id)
        sales_service.remove_item(ctx, sale_id, line_y.id, release_reservation=False)
        assert reservation_service.get_reservation(sale_id, product_y.id).quantity == 4

        sales_service.complete_sale(ctx, sale_id, payment_method="CASH", amount_paid_cents=1500)

        assert db_session.query(StockReservation).filter_by(sale_id=sale_id).count() == 0
        assert reservation_service.get_available_stock(product_y.id, ctx.business_id) == get_stock(product_y) == 10
        assert get_stock(product_x) == 9


class TestVoidSale:

    def test_void_draft_releases_reservation_keeps_stock(self, db_session, ctx, product_x):
        sale = _sale_with(ctx, (product_x, 4))
        assert reservation_service.get_available_stock(product_x.id, ctx.business_id) == 6

        voided = sales_service.void_sale(ctx, sale.id, "customer walked out")

        assert voided.status == "VOIDED"
        assert voided.voided_by_user_id == CASHIER_ID
        assert voided.void_reason == "customer walked out"
        assert voided.voided_at is not None
        assert reservation_service.get_reservations_by_sale(sale.id) == []
        assert reservation_service.get_available_stock(product_x.id, ctx.business_id) == 10
        assert get_stock(product_x) == 10

    def test_void_completed_restores_stock(self, db_session, ctx, product_x, product_y):
        sale = _sale_with(ctx, (product_x, 3), (product_y, 2))
        sales_service.complete_sale(ctx, sale.id, payment_method="CARD", amount_paid_cents=5200)
        assert get_stock(product_x) == 7

        sales_service.void_sale(ctx, sale.id, "rang up wrong table")

        assert get_stock(product_x) == 10
        assert get_stock(product_y) == 10

    def test_reason_is_stripped_and_checked(self, db_session, ctx, product_x):
        sale = _sale_with(ctx, (product_x, 1))
        with pytest.raises(ValidationError):
            sales_service.void_sale(ctx, sale.id, "  oops   ")
        with pytest.raises(ValidationError):
            sales_service.void_sale(ctx, sale.id, None)

        db_session.refresh(sale)
        assert sale.status == "DRAFT"

    def test_void_voided_sale_rejected(self, db_session, ctx, product_x):
        sale = _sale_with(ctx, (product_x, 1))
        sales_service.void_sale(ctx, sale.id, "duplicate ticket")

        with pytest.raises(InvalidStateError) as exc:
            sales_service.void_sale(ctx, sale.id, "duplicate ticket")
        assert exc.value.status_code == 422


class TestShiftTotals:
    """Completion adds the net amount to the shift; void subtracts it."""

    def test_completion_and_void_are_symmetric(self, db_session, shift_ctx, shift, product_x, product_y):
        before = (shift.total_sales_cents, shift.total_cash_sales_cents, shift.transaction_count)
        stock_before = (get_stock(product_x), get_stock(product_y))

        sale = _sale_with(shift_ctx, (product_x, 2), (product_y, 5))
        receipt = sales_service.complete_sale(
            shift_ctx, sale.id, payment_method="CASH", amount_paid_cents=5000, discount_cents=250
        )
        net = receipt.sale.total_cents
        assert net == 3000 + 1750 - 250

        db_session.refresh(shift)
        assert shift.total_sales_cents == before[0] + net
        assert shift.total_cash_sales_cents == before[1] + net
        assert shift.transaction_count == before[2] + 1

        sales_service.void_sale(shift_ctx, sale.id, "customer changed mind")

        db_session.refresh(shift)
        assert (shift.total_sales_cents, shift.total_cash_sales_cents, shift.transaction_count) == before
        assert (get_stock(product_x), get_stock(product_y)) == stock_before

    def test_card_sales_do_not_touch_cash_total(self, db_session, shift_ctx, shift, product_x):
        sale = _sale_with(shift_ctx, (product_x, 1))
        sales_service.complete_sale(shift_ctx, sale.id, payment_method="CARD", amount_paid_cents=1500)

        db_session.refresh(shift)
        assert shift.total_sales_cents == 1500
        assert shift.total_cash_sales_cents == 0

    def test_shift_from_context_is_linked_on_completion(self, db_session, ctx, shift_ctx, shift, product_x):
        sale = _sale_with(ctx, (product_x, 1))
        assert sale.shift_id is None

        receipt = sales_service.complete_sale(shift_ctx, sale.id, payment_method="CASH", amount_paid_cents=1500)
        assert receipt.sale.shift_id == shift.id
        db_session.refresh(shift)
        assert shift.transaction_count == 1

    def test_sale_without_shift_completes(self, db_session, ctx, shift, product_x):
        sale = _sale_with(ctx, (product_x, 1))
        receipt = sales_service.complete_sale(ctx, sale.id, payment_method="CASH", amount_paid_cents=1500)
        assert receipt.sale.shift_id is None
        db_session.refresh(shift)
        assert shift.transaction_count == 0


class TestSaleEvents:

    def test_completed_and_voided_events_published_after_commit(self, db_session, ctx, product_x):
        received = []
        event_service.subscribe(received.append)

        sale = _sale_with(ctx, (product_x, 1))
        receipt = sales_service.complete_sale(ctx, sale.id, payment_method="CASH", amount_paid_cents=2000)
        sales_service.void_sale(ctx, sale.id, "test void reason")

        assert [e.event_type for e in received] == ["sale.completed", "sale.voided"]
        completed = received[0]
        assert completed.sale_id == sale.id
        assert completed.business_id == ctx.business_id
        assert completed.payload["receipt_number"] == receipt.receipt_number
        assert completed.payload["change_cents"] == 500
        assert received[1].payload["previous_status"] == "COMPLETED"

    def test_failed_operation_publishes_nothing(self, db_session, ctx, product_x):
        received = []
        event_service.subscribe(received.append)

        sale = _sale_with(ctx, (product_x, 1))
        with pytest.raises(InsufficientPaymentError):
            sales_service.complete_sale(ctx, sale.id, payment_method="CASH", amount_paid_cents=1)
        assert received == []

    def test_failing_subscriber_does_not_break_completion(self, db_session, ctx, product_x):
        def broken(event):
            raise RuntimeError("printer offline")

        event_service.subscribe(broken)
        sale = _sale_with(ctx, (product_x, 1))

        receipt = sales_service.complete_sale(ctx, sale.id, payment_method="CASH", amount_paid_cents=1500)
        assert receipt.sale.status == "COMPLETED"
        event_service.unsubscribe(broken)
