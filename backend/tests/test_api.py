"""
HTTP surface: status codes, operator header, and JSON shapes.
"""

import pytest


SALE_BODY = {
    "items": [
        {"name": "Coupe femme", "price": "45.00", "quantity": 1, "type": "service"},
        {"name": "Shampooing", "price_cents": 2490, "quantity": 1, "type": "product"},
    ],
    "payment_method": "cash",
}


@pytest.fixture
def posted_sale(client, db_session, operator_headers):
    resp = client.post("/api/transactions", json=SALE_BODY, headers=operator_headers)
    assert resp.status_code == 201
    return resp.get_json()["transaction"]


class TestTransactionRoutes:
    def test_create_sale(self, posted_sale):
        assert posted_sale["transaction_number"] == "T-000001"
        assert posted_sale["total_amount_cents"] == 6990
        assert posted_sale["created_by"] == "sabina"
        assert posted_sale["clients"] == []
        assert posted_sale["refundable"] is True

    def test_operator_header_required(self, client, db_session):
        resp = client.post("/api/transactions", json=SALE_BODY)
        assert resp.status_code == 401

    def test_invalid_draft(self, client, db_session, operator_headers):
        resp = client.post("/api/transactions", json={"items": [], "payment_method": "cash"},
                           headers=operator_headers)
        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_include_vat_string_is_refused(self, client, db_session, operator_headers):
        resp = client.post("/api/transactions", json=dict(SALE_BODY, include_vat="false"), headers=operator_headers)
        assert resp.status_code == 400
        assert client.get("/api/transactions").get_json()["count"] == 0

        resp = client.post("/api/transactions", json=dict(SALE_BODY, include_vat=False), headers=operator_headers)
        assert resp.status_code == 201
        assert resp.get_json()["transaction"]["total_vat_cents"] is None

    def test_store_failure_answers_500(self, client, db_session, operator_headers, monkeypatch):
        from sqlalchemy.exc import IntegrityError
        from salonpos.services import transaction_service

        def _rejected(*args, **kwargs):
            raise IntegrityError("INSERT INTO pos_transaction_clients", {}, Exception("constraint failed"))

        monkeypatch.setattr(transaction_service, "link_clients", _rejected)
        resp = client.post("/api/transactions", json=SALE_BODY, headers=operator_headers)
        assert resp.status_code == 500
        assert resp.get_json()["error"] == "Transaction could not be recorded"
        assert client.get("/api/transactions").get_json()["count"] == 0

    def test_family_sale_links_clients(self, client, db_session, operator_headers):
        parent = client.post("/api/clients", json={"first_name": "Marie", "last_name": "Dupont"},
                             headers=operator_headers).get_json()["client"]
        child = client.post(f"/api/clients/{parent['id']}/children",
                            json={"first_name": "Léo", "date_of_birth": "2016-09-01"},
                            headers=operator_headers).get_json()["client"]

        body = dict(SALE_BODY, primary_client_id=parent["id"], included_client_ids=[child["id"]])
        resp = client.post("/api/transactions", json=body, headers=operator_headers)

        assert resp.status_code == 201
        clients = resp.get_json()["transaction"]["clients"]
        assert [(c["client_id"], c["is_primary"]) for c in clients] == [(parent["id"], True), (child["id"], False)]

        history = client.get(f"/api/clients/{child['id']}/history").get_json()["history"]
        assert len(history) == 1
        assert history[0]["description"].startswith("Enfant inclus")

    def test_patch_notes_only(self, client, posted_sale, operator_headers):
        url = f"/api/transactions/{posted_sale['id']}"

        resp = client.patch(url, json={"notes": "Cliente fidèle"}, headers=operator_headers)
        assert resp.status_code == 200
        assert resp.get_json()["transaction"]["notes"] == "Cliente fidèle"

        resp = client.patch(url, json={"total_amount_cents": 1}, headers=operator_headers)
        assert resp.status_code == 400
        assert resp.get_json()["fields"] == ["total_amount_cents"]
        assert client.get(url).get_json()["transaction"]["total_amount_cents"] == 6990

    def test_refund_then_conflict(self, client, posted_sale, operator_headers):
        url = f"/api/transactions/{posted_sale['id']}/refund"

        resp = client.post(url, json={"reason": "Client insatisfait"}, headers=operator_headers)
        assert resp.status_code == 201
        refund = resp.get_json()["refund"]
        assert refund["total_amount_cents"] == -6990
        assert refund["parent_transaction_id"] == posted_sale["id"]

        resp = client.post(url, json={"reason": "Client insatisfait"}, headers=operator_headers)
        assert resp.status_code == 409

        original = client.get(f"/api/transactions/{posted_sale['id']}").get_json()["transaction"]
        assert original["refundable"] is False
        assert [r["id"] for r in original["refunds"]] == [refund["id"]]

    def test_refund_requires_reason(self, client, posted_sale, operator_headers):
        resp = client.post(f"/api/transactions/{posted_sale['id']}/refund", json={}, headers=operator_headers)
        assert resp.status_code == 400

    def test_unknown_transaction(self, client, db_session, operator_headers):
        assert client.get("/api/transactions/999").status_code == 404
        resp = client.post("/api/transactions/999/refund", json={"reason": "x"}, headers=operator_headers)
        assert resp.status_code == 404

    def test_list_filters(self, client, posted_sale):
        resp = client.get("/api/transactions?payment_method=cash")
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 1
        assert client.get("/api/transactions?payment_method=cheque").status_code == 400
        assert client.get("/api/transactions?date=15-03-2024").status_code == 400


class TestCashClosureRoutes:
    BODY = {
        "closure_date": "2024-03-15",
        "opening_cash": "200.00",
        "cash_out_manual": "0",
        "counted_cash": "195.00",
        "note": "Billet manquant",
    }

    def test_submit_then_conflict(self, client, db_session, operator_headers):
        resp = client.post("/api/cash-closures", json=self.BODY, headers=operator_headers)
        assert resp.status_code == 201
        closure = resp.get_json()["closure"]
        assert closure["expected_cash_cents"] == 20000
        assert closure["delta_cents"] == -500
        assert closure["closed_by"] == "sabina"

        resp = client.post("/api/cash-closures", json=self.BODY, headers=operator_headers)
        assert resp.status_code == 409

        detail = client.get(f"/api/cash-closures/{closure['id']}").get_json()["closure"]
        assert [a["action"] for a in detail["audit"]] == ["cash_closure"]

    def test_preview_and_cash_in(self, client, db_session):
        resp = client.post("/api/cash-closures/preview", json={"closure_date": "2024-03-15", "counted_cash": "210"})
        assert resp.status_code == 200
        assert resp.get_json()["preview"]["delta_status"] == "surplus"

        resp = client.get("/api/cash-closures/cash-in?date=2024-03-15")
        assert resp.get_json() == {"date": "2024-03-15", "cash_in_cents": 0, "cash_transactions_count": 0}

    def test_bad_amount(self, client, db_session, operator_headers):
        body = dict(self.BODY, counted_cash="12.345")
        assert client.post("/api/cash-closures", json=body, headers=operator_headers).status_code == 400

    def test_non_string_date_is_refused(self, client, db_session, operator_headers):
        resp = client.post("/api/cash-closures/preview", json={"closure_date": 20240315})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "closure_date must be YYYY-MM-DD"

        body = dict(self.BODY, closure_date=20240315)
        assert client.post("/api/cash-closures", json=body, headers=operator_headers).status_code == 400
        assert client.get("/api/cash-closures").get_json()["closures"] == []

    def test_report_is_html(self, client, db_session, operator_headers):
        closure = client.post("/api/cash-closures", json=self.BODY, headers=operator_headers).get_json()["closure"]
        resp = client.get(f"/api/cash-closures/{closure['id']}/report")
        assert resp.status_code == 200
        assert resp.content_type.startswith("text/html")
        assert "Billet manquant" in resp.get_data(as_text=True)


class TestStatisticsRoutes:
    def test_period_custom(self, client, posted_sale):
        resp = client.get("/api/statistics/period?period=custom&start=2024-03-01&end=2024-03-31")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["period"] == "custom"
        assert set(data["by_payment_method"]) == {"cash", "card", "twint", "mixed"}

    def test_bad_period(self, client, db_session):
        assert client.get("/api/statistics/period?period=fortnight").status_code == 400
        assert client.get("/api/statistics/period?period=custom&start=2024-03-31&end=2024-03-01").status_code == 400

    @pytest.mark.parametrize("query", [
        "period=year&year=10000",
        "period=year&year=0",
        "period=month&year=10000&month=1",
        "period=month&year=2024&month=0",
        "period=week&year=2024&week=0",
        "period=week&year=10000&week=1",
    ])
    def test_out_of_range_calendar_values(self, client, db_session, query):
        resp = client.get(f"/api/statistics/period?{query}")
        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_client_activity(self, client, db_session):
        resp = client.get("/api/statistics/client-activity")
        assert resp.status_code == 200
        assert resp.get_json()["total_clients"] == 0


class TestClientRoutes:
    def test_child_too_old(self, client, db_session, operator_headers):
        parent = client.post("/api/clients", json={"first_name": "Marie", "last_name": "Dupont"},
                             headers=operator_headers).get_json()["client"]
        resp = client.post(f"/api/clients/{parent['id']}/children",
                           json={"first_name": "Emma", "date_of_birth": "1990-01-01"},
                           headers=operator_headers)
        assert resp.status_code == 400

    def test_non_string_birth_date_is_refused(self, client, db_session, operator_headers):
        resp = client.post("/api/clients", json={"first_name": "Marie", "last_name": "Dupont", "date_of_birth": 19850402},
                           headers=operator_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "date_of_birth must be YYYY-MM-DD"

    def test_unknown_client(self, client, db_session):
        assert client.get("/api/clients/999").status_code == 404
        assert client.get("/api/clients/999/family").status_code == 404


def test_health(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "healthy"
