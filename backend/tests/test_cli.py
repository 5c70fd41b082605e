# Overview: Pytest coverage for the Flask CLI maintenance commands.

from datetime import timedelta

from app.models import Business, StockReservation
from app.services import sales_service
from app.time_utils import utcnow


class TestBusinessCommands:

    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['businesses', 'create', '--name', 'Cafe Uno', '--code', 'CAFE1', '--tax-rate-bps', '1100'])
        assert result.exit_code == 0
        assert 'PASS Created business: Cafe Uno' in result.output
        assert db_session.query(Business).filter_by(code='CAFE1').one().tax_rate_bps == 1100

        result = runner.invoke(args=['businesses', 'list'])
        assert 'Cafe Uno' in result.output

    def test_duplicate_code_rejected(self, app, db_session, business_a):
        runner = app.test_cli_runner()
        result = runner.invoke(args=['businesses', 'create', '--name', 'Copy', '--code', business_a.code])
        assert 'FAIL' in result.output
        assert db_session.query(Business).count() == 1


class TestReservationCommands:

    def test_sweep_deletes_only_expired(self, app, db_session, ctx, product_x, product_y):
        sale = sales_service.create_draft(ctx, items=[
            {"product_id": product_x.id, "quantity": 1},
            {"product_id": product_y.id, "quantity": 1},
        ]).sale
        stale = db_session.query(StockReservation).filter_by(sale_id=sale.id, product_id=product_x.id).one()
        stale.expire_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        result = app.test_cli_runner().invoke(args=['reservations', 'sweep'])

        assert 'Deleted 1 expired reservations.' in result.output
        remaining = db_session.query(StockReservation).filter_by(sale_id=sale.id).all()
        assert [r.product_id for r in remaining] == [product_y.id]

    def test_list_for_sale(self, app, db_session, ctx, product_x):
        sale = sales_service.create_draft(ctx, items=[{"product_id": product_x.id, "quantity": 2}]).sale

        result = app.test_cli_runner().invoke(args=['reservations', 'list', '--sale-id', str(sale.id)])
        assert f'product={product_x.id}' in result.output
        assert '(active)' in result.output


class TestShiftCommands:

    def test_second_open_shift_fails(self, app, db_session, business_a):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['shifts', 'open', '--business-id', str(business_a.id), '--user-id', '7', '--start-cash-cents', '1000'])
        assert 'PASS Opened shift' in result.output

        result = runner.invoke(args=['shifts', 'open', '--business-id', str(business_a.id), '--user-id', '7'])
        assert 'FAIL' in result.output
