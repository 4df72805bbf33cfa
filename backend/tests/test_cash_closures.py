"""
Cash closure calculator: cash-in window, expected/delta arithmetic, one closure per date.
"""

from datetime import date, datetime

import pytest

from salonpos.models import AuditLog, CashClosure
from salonpos.models.closures import delta_status
from salonpos.services import cash_closure_service, refund_service
from salonpos.services.cash_closure_service import ClosureError, ClosureExistsError


DAY = date(2024, 3, 15)  # Europe/Zurich is UTC+1 on this date


def _sale_at(at_time, record_sale, moment, cents, method="cash"):
    at_time(moment)
    return record_sale([("Prestation", cents, 1, "service")], method)


class TestCashIn:
    def test_sums_only_cash_paid_in_local_day(self, db_session, at_time, record_sale):
        _sale_at(at_time, record_sale, datetime(2024, 3, 14, 23, 30), 10000)  # 00:30 local, included
        _sale_at(at_time, record_sale, datetime(2024, 3, 15, 12, 0), 25050)
        _sale_at(at_time, record_sale, datetime(2024, 3, 15, 12, 5), 9900, method="card")
        _sale_at(at_time, record_sale, datetime(2024, 3, 15, 22, 59, 59, 999999), 1000)  # 23:59:59.999999 local
        _sale_at(at_time, record_sale, datetime(2024, 3, 15, 23, 0), 7000)  # next local day
        _sale_at(at_time, record_sale, datetime(2024, 3, 14, 22, 59), 5000)  # previous local day

        assert cash_closure_service.calculate_cash_in(DAY) == (36050, 3)

    def test_empty_day_is_zero(self, db_session):
        assert cash_closure_service.calculate_cash_in(DAY) == (0, 0)

    def test_cash_refund_reduces_cash_in(self, db_session, at_time, record_sale):
        sale = _sale_at(at_time, record_sale, datetime(2024, 3, 15, 9, 0), 6990)
        at_time(datetime(2024, 3, 15, 10, 0))
        refund_service.refund_transaction(sale.id, "Client insatisfait")

        assert cash_closure_service.calculate_cash_in(DAY) == (0, 2)


class TestSubmitClosure:
    def test_shortage_scenario(self, db_session, at_time, record_sale):
        _sale_at(at_time, record_sale, datetime(2024, 3, 15, 9, 0), 20000)
        _sale_at(at_time, record_sale, datetime(2024, 3, 15, 14, 0), 15050)

        closure = cash_closure_service.submit_closure(
            DAY,
            opening_cash_cents=20000,
            cash_out_manual_cents=5000,
            counted_cash_cents=49550,
            note="Fin de journée",
            operator="sabina",
        )

        assert closure.cash_in_calculated_cents == 35050
        assert closure.expected_cash_cents == 50050
        assert closure.delta_cents == -500
        assert closure.delta_status == "shortage"
        assert closure.cash_transactions_count == 2
        assert closure.closed_by == "sabina"

        audit = db_session.query(AuditLog).filter_by(action="cash_closure").one()
        assert audit.metadata_json == {
            "date": "2024-03-15",
            "delta_cents": -500,
            "expected_cents": 50050,
            "counted_cents": 49550,
        }

    def test_opening_defaults_to_configured_float(self, db_session):
        closure = cash_closure_service.submit_closure(DAY, counted_cash_cents=20000)
        assert closure.opening_cash_cents == 20000
        assert closure.delta_cents == 0
        assert closure.delta_status == "exact"

    def test_second_closure_for_date_is_refused(self, db_session):
        cash_closure_service.submit_closure(DAY, counted_cash_cents=20000)
        with pytest.raises(ClosureExistsError):
            cash_closure_service.submit_closure(DAY, counted_cash_cents=20500)
        assert db_session.query(CashClosure).count() == 1

    def test_unique_constraint_race_maps_to_conflict(self, db_session, monkeypatch):
        cash_closure_service.submit_closure(DAY, counted_cash_cents=20000)
        # Another till closed the date between the lookup and the insert.
        monkeypatch.setattr(cash_closure_service, "get_closure_by_date", lambda closure_date: None)

        with pytest.raises(ClosureExistsError):
            cash_closure_service.submit_closure(DAY, counted_cash_cents=20500)
        assert db_session.query(CashClosure).count() == 1
        assert db_session.query(AuditLog).filter_by(action="cash_closure").count() == 1

    def test_counted_cash_required(self, db_session):
        with pytest.raises(ClosureError):
            cash_closure_service.submit_closure(DAY, counted_cash_cents=None)

    def test_negative_amounts_refused(self, db_session):
        with pytest.raises(ClosureError):
            cash_closure_service.submit_closure(DAY, counted_cash_cents=10000, cash_out_manual_cents=-1)
        assert db_session.query(CashClosure).count() == 0

    def test_preview_writes_nothing(self, db_session):
        preview = cash_closure_service.preview_closure(DAY, counted_cash_cents=21000)
        assert preview["expected_cash_cents"] == 20000
        assert preview["delta_cents"] == 1000
        assert preview["delta_status"] == "surplus"
        assert preview["already_closed"] is False
        assert db_session.query(CashClosure).count() == 0


class TestClosureReads:
    def test_list_is_newest_first(self, db_session):
        for day in (date(2024, 3, 13), date(2024, 3, 15), date(2024, 3, 14)):
            cash_closure_service.submit_closure(day, counted_cash_cents=20000)
        dates = [c.closure_date for c in cash_closure_service.list_closures(limit=2)]
        assert dates == [date(2024, 3, 15), date(2024, 3, 14)]

    def test_report_renders_amounts(self, db_session, app):
        closure = cash_closure_service.submit_closure(
            DAY, opening_cash_cents=20000, counted_cash_cents=19500, note="Billet déchiré", operator="sabina",
        )
        with app.test_request_context():
            html = cash_closure_service.render_closure_report(closure)
        assert "Sabina Coiffure &amp; Ongles" in html
        assert "200.00 CHF" in html
        assert "-5.00 CHF" in html
        assert "delta-shortage" in html
        assert "Billet déchiré" in html


def test_delta_status_buckets():
    assert delta_status(1) == "surplus"
    assert delta_status(-1) == "shortage"
    assert delta_status(0) == "exact"
