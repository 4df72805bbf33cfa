from datetime import date, datetime

import pytest

from salonpos.services import cash_closure_service, refund_service, statistics_service
from salonpos.services.statistics_service import StatisticsError


TODAY = date(2024, 3, 15)


class TestResolvePeriod:
    def test_rolling_periods_end_today(self, app):
        assert statistics_service.resolve_period("1_day", today=TODAY) == (TODAY, TODAY)
        assert statistics_service.resolve_period("7_days", today=TODAY) == (date(2024, 3, 9), TODAY)
        assert statistics_service.resolve_period("30_days", today=TODAY) == (date(2024, 2, 15), TODAY)

    def test_calendar_periods(self, app):
        assert statistics_service.resolve_period("week", today=TODAY, year=2024, week=11) == (
            date(2024, 3, 11), date(2024, 3, 17))
        assert statistics_service.resolve_period("month", today=TODAY, year=2024, month=2) == (
            date(2024, 2, 1), date(2024, 2, 29))
        assert statistics_service.resolve_period("year", today=TODAY, year=2023) == (
            date(2023, 1, 1), date(2023, 12, 31))

    def test_custom_requires_ordered_bounds(self, app):
        with pytest.raises(StatisticsError):
            statistics_service.resolve_period("custom", start=TODAY, end=date(2024, 3, 1))
        with pytest.raises(StatisticsError):
            statistics_service.resolve_period("custom", start=TODAY)

    @pytest.mark.parametrize("selector, kwargs", [
        ("year", {"year": 10000}),
        ("year", {"year": 0}),
        ("month", {"year": 2024, "month": 0}),
        ("month", {"year": 2024, "month": 13}),
        ("week", {"year": 2024, "week": 0}),
        ("week", {"year": 2024, "week": 54}),
    ])
    def test_out_of_range_calendar_values(self, app, selector, kwargs):
        with pytest.raises(StatisticsError):
            statistics_service.resolve_period(selector, today=TODAY, **kwargs)

    def test_unknown_selector(self, app):
        with pytest.raises(StatisticsError):
            statistics_service.resolve_period("fortnight", today=TODAY)


class TestPeriodStats:
    def test_empty_period_is_all_zero(self, db_session):
        stats = statistics_service.period_stats(TODAY, TODAY)
        assert stats["total_revenue_cents"] == 0
        assert stats["transaction_count"] == 0
        assert stats["unique_clients"] == 0
        assert stats["average_transaction_cents"] == 0
        assert stats["by_payment_method"] == {
            "cash": {"revenue_cents": 0, "count": 0},
            "card": {"revenue_cents": 0, "count": 0},
            "twint": {"revenue_cents": 0, "count": 0},
            "mixed": {"revenue_cents": 0, "count": 0},
        }

    def test_revenue_split_and_refunds(self, db_session, at_time, record_sale, make_client):
        marie = make_client("Marie", "Dupont")
        paul = make_client("Paul", "Martin")

        at_time(datetime(2024, 3, 15, 9, 0))
        record_sale([("Coupe femme", 4500, 1, "service")], "cash", primary=marie.id)
        record_sale([("Brushing", 3000, 1, "service")], "card", primary=paul.id)
        refunded = record_sale([("Shampooing", 2490, 1, "product")], "twint", primary=marie.id)
        refund_service.refund_transaction(refunded.id, "Client insatisfait")

        stats = statistics_service.period_stats(TODAY, TODAY)
        assert stats["total_revenue_cents"] == 7500
        assert stats["transaction_count"] == 4
        assert stats["sale_count"] == 3
        assert stats["refund_count"] == 1
        assert stats["refund_total_cents"] == -2490
        assert stats["by_payment_method"]["twint"] == {"revenue_cents": 0, "count": 2}
        assert stats["by_payment_method"]["cash"] == {"revenue_cents": 4500, "count": 1}
        assert stats["unique_clients"] == 2
        assert stats["average_transaction_cents"] == 2500

        assert statistics_service.period_stats(date(2024, 3, 16), date(2024, 3, 16))["transaction_count"] == 0


class TestRollups:
    def test_top_clients_and_services(self, db_session, at_time, record_sale, make_client):
        marie = make_client("Marie", "Dupont")
        paul = make_client("Paul", "Martin")
        at_time(datetime(2024, 3, 15, 9, 0))
        record_sale([("Coupe femme", 4500, 2, "service")], "cash", primary=marie.id)
        record_sale([("Coupe homme", 3000, 1, "service"), ("Gel", 1500, 1, "product")], "card", primary=paul.id)

        top = statistics_service.top_clients(limit=5)
        assert [c["client_id"] for c in top] == [marie.id, paul.id]
        assert top[0]["total_spent_cents"] == 9000
        assert top[0]["visits"] == 1

        services = statistics_service.top_services(limit=5)
        assert [s["name"] for s in services] == ["Coupe femme", "Coupe homme"]
        assert services[0] == {
            "name": "Coupe femme",
            "times_sold": 2,
            "revenue_cents": 9000,
            "average_price_cents": 4500,
        }

    def test_revenue_series_buckets_by_local_day(self, db_session, at_time, record_sale):
        at_time(datetime(2024, 3, 14, 23, 30))  # 00:30 on the 15th in Zurich
        record_sale([("Coupe", 3000, 1, "service")])
        at_time(datetime(2024, 3, 16, 10, 0))
        record_sale([("Coupe", 2000, 1, "service")])

        series = statistics_service.revenue_series(date(2024, 3, 14), date(2024, 3, 16))
        assert series["rows"] == [
            {"period": "2024-03-15", "revenue_cents": 3000, "count": 1},
            {"period": "2024-03-16", "revenue_cents": 2000, "count": 1},
        ]

    def test_client_activity_buckets(self, db_session, make_client, at_time, record_sale):
        recent = make_client("Anna", "Recent")
        lapsed = make_client("Bruno", "Lapsed")
        make_client("Chloe", "Never")

        at_time(datetime(2024, 3, 1, 10, 0))
        record_sale([("Coupe", 3000, 1, "service")], primary=recent.id)
        at_time(datetime(2023, 12, 1, 10, 0))
        record_sale([("Coupe", 3000, 1, "service")], primary=lapsed.id)

        activity = statistics_service.client_activity(today=TODAY)
        assert activity["active"] == 1
        assert activity["inactive_30_days"] == 0
        assert activity["inactive_60_plus_days"] == 1
        assert activity["never_visited"] == 1
        assert activity["total_clients"] == 3

    def test_closure_summary(self, db_session):
        cash_closure_service.submit_closure(date(2024, 3, 14), counted_cash_cents=19500)
        cash_closure_service.submit_closure(date(2024, 3, 15), counted_cash_cents=20000)

        summary = statistics_service.closure_summary(date(2024, 3, 1), date(2024, 3, 31))
        assert summary["closure_count"] == 2
        assert summary["total_delta_cents"] == -500
        assert summary["by_delta_status"] == {"surplus": 0, "shortage": 1, "exact": 1}
