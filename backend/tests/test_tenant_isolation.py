# Overview: Pytest coverage for business isolation across sales, stock and history.

"""
Multi-Business Isolation Tests

Every sale lookup is scoped by the caller's business. A sale that belongs
to another business is indistinguishable from a missing one (NotFound),
so existence is never revealed across businesses.
"""

import pytest

from app.errors import NotFoundError
from app.services import (
    activity_log_service,
    bill_service,
    inventory_service,
    reservation_service,
    sales_service,
)
from conftest import context_headers, get_stock


class TestCrossBusinessSales:

    def test_foreign_sale_cannot_be_read(self, db_session, ctx, ctx_b, product_x):
        sale = sales_service.create_draft(ctx, items=[{"product_id": product_x.id, "quantity": 1}]).sale

        with pytest.raises(NotFoundError):
            sales_service.get_sale_details(ctx_b, sale.id)

    @pytest.mark.parametrize("operation", ["hold", "delete", "void", "complete", "transfer"])
    def test_foreign_sale_cannot_be_mutated(self, db_session, ctx, ctx_b, product_x, operation):
        sale_id = sales_service.create_draft(ctx, items=[{"product_id": product_x.id, "quantity": 2}]).sale.id

        calls = {
            "hold": lambda: sales_service.hold_sale(ctx_b, sale_id),
            "delete": lambda: sales_service.delete_draft(ctx_b, sale_id),
            "void": lambda: sales_service.void_sale(ctx_b, sale_id, "foreign void"),
            "complete": lambda: sales_service.complete_sale(
                ctx_b, sale_id, payment_method="CASH", amount_paid_cents=10000
            ),
            "transfer": lambda: bill_service.transfer_bill(ctx_b, sale_id, "T9"),
        }
        with pytest.raises(NotFoundError):
            calls[operation]()
        db_session.rollback()

        details = sales_service.get_sale_details(ctx, sale_id)
        assert details.sale.status == "DRAFT"
        assert details.sale.table_number is None
        assert reservation_service.get_active_reserved_quantity(sale_id, product_x.id) == 2
        assert get_stock(product_x) == 10

    def test_foreign_product_cannot_be_added(self, db_session, ctx, product_b):
        sale = sales_service.create_draft(ctx).sale

        with pytest.raises(NotFoundError):
            sales_service.add_item(ctx, sale.id, product_b.id, 1)
        db_session.rollback()

        assert get_stock(product_b) == 5
        assert reservation_service.get_reserved_stock(product_b.id, product_b.business_id) == 0

    def test_cannot_merge_foreign_bill(self, db_session, ctx, ctx_b, product_b):
        own = sales_service.create_draft(ctx).sale
        foreign_id = sales_service.create_draft(
            ctx_b, items=[{"product_id": product_b.id, "quantity": 1}]
        ).sale.id

        with pytest.raises(NotFoundError):
            bill_service.merge_bills(ctx, own.id, [foreign_id])
        db_session.rollback()

        assert sales_service.get_sale_details(ctx_b, foreign_id).items[0].quantity == 1


class TestScopedListings:

    def test_held_and_listed_sales_are_scoped(self, db_session, ctx, ctx_b):
        own = sales_service.create_draft(ctx).sale
        foreign = sales_service.create_draft(ctx_b).sale
        sales_service.hold_sale(ctx, own.id)
        sales_service.hold_sale(ctx_b, foreign.id)

        assert [r.sale.id for r in sales_service.list_held_sales(ctx, cashier_only=False)] == [own.id]
        assert [s.id for s in sales_service.list_sales(ctx_b)] == [foreign.id]

    def test_inventory_listing_is_scoped(self, db_session, business_a, product_x, product_b):
        rows = inventory_service.list_inventory(business_a.id)
        assert [row.product_id for row in rows] == [product_x.id]

    def test_reserved_stock_is_per_business(self, db_session, ctx, product_x, business_b):
        sales_service.create_draft(ctx, items=[{"product_id": product_x.id, "quantity": 3}])

        assert reservation_service.get_reserved_stock(product_x.id, ctx.business_id) == 3
        assert reservation_service.get_reserved_stock(product_x.id, business_b.id) == 0

    def test_history_is_scoped(self, db_session, ctx, ctx_b):
        sale = sales_service.create_draft(ctx).sale
        assert activity_log_service.get_sale_history(sale.id, ctx_b.business_id) == []
        assert activity_log_service.get_recent_activity(ctx_b.business_id) == []


class TestCrossBusinessHttp:

    def test_foreign_sale_is_404(self, client, db_session, ctx, business_b):
        sale = sales_service.create_draft(ctx).sale

        response = client.get(f'/api/sales/{sale.id}', headers=context_headers(business_b))
        assert response.status_code == 404

    def test_foreign_reservations_hidden(self, client, db_session, ctx, business_b, product_x):
        sale = sales_service.create_draft(ctx, items=[{"product_id": product_x.id, "quantity": 1}]).sale

        response = client.get(
            f'/api/inventory/reservations?sale_id={sale.id}', headers=context_headers(business_b)
        )
        assert response.status_code == 200
        assert response.json['reservations'] == []

    def test_foreign_inventory_is_404(self, client, db_session, business_a, product_b):
        response = client.get(f'/api/inventory/{product_b.id}', headers=context_headers(business_a))
        assert response.status_code == 404
