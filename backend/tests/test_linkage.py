"""
Transaction-client links and the client history projection.
"""

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from salonpos.extensions import db
from salonpos.models import ClientHistory, TransactionClient
from salonpos.services import client_service, linkage_service
from salonpos.validation import ValidationError


@pytest.fixture
def family(make_client):
    marie = make_client("Marie", "Dupont", date_of_birth="1985-04-02")
    leo = client_service.add_child(marie.id, first_name="Léo", date_of_birth="2016-09-01", today=date(2024, 3, 15))
    return marie, leo


class TestFamilySale:
    def test_parent_pays_child_included(self, db_session, family, record_sale):
        marie, leo = family
        sale = record_sale(
            [("Coupe enfant", 2500, 1, "service"), ("Coupe femme", 4500, 1, "service")],
            "twint",
            primary=marie.id,
            included=[leo.id],
        )

        links = db_session.query(TransactionClient).filter_by(transaction_id=sale.id).all()
        assert {(l.client_id, l.is_primary) for l in links} == {(marie.id, True), (leo.id, False)}
        assert sale.client_id == marie.id

        history = {h.client_id: h for h in db_session.query(ClientHistory).all()}
        assert set(history) == {marie.id, leo.id}
        assert history[marie.id].description == "Parent payeur - Achat de 70.00 CHF via Twint"
        assert history[leo.id].description == "Enfant inclus - Achat de 70.00 CHF via Twint"
        assert history[leo.id].is_primary is False
        assert {c["id"] for c in history[leo.id].metadata_json["all_clients"]} == {marie.id, leo.id}

    def test_visit_date_is_recorded_for_every_linked_client(self, db_session, family, record_sale):
        marie, leo = family
        sale = record_sale([("Coupe", 2500, 1, "service")], primary=marie.id, included=[leo.id])
        db_session.refresh(marie)
        db_session.refresh(leo)
        assert marie.last_visit_at == sale.created_at
        assert leo.last_visit_at == sale.created_at


class TestLinkClients:
    def test_included_without_primary_is_refused(self, db_session, family, record_sale):
        marie, leo = family
        sale = record_sale([("Coupe", 2500, 1, "service")])
        with pytest.raises(ValidationError):
            linkage_service.link_clients(sale, None, [leo.id])

    def test_duplicates_collapse(self, db_session, family, record_sale):
        marie, leo = family
        sale = record_sale([("Coupe", 2500, 1, "service")])
        links = linkage_service.link_clients(sale, marie.id, [leo.id, leo.id, marie.id])
        assert [(l.client_id, l.is_primary) for l in links] == [(marie.id, True), (leo.id, False)]

    def test_database_refuses_second_primary(self, db_session, family, record_sale):
        marie, leo = family
        sale = record_sale([("Coupe", 2500, 1, "service")], primary=marie.id)

        db_session.add(TransactionClient(transaction_id=sale.id, client_id=leo.id, is_primary=True))
        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

        primaries = db_session.query(TransactionClient).filter_by(transaction_id=sale.id, is_primary=True).count()
        assert primaries == 1


class TestHistoryProjection:
    def test_projection_is_pure(self, db_session, family, record_sale):
        marie, leo = family
        sale = record_sale([("Coupe", 2500, 1, "service")], primary=marie.id, included=[leo.id])
        before = db_session.query(ClientHistory).count()
        entries = linkage_service.project_history(sale)
        assert len(entries) == 2
        assert db_session.query(ClientHistory).count() == before

    def test_backfill_repairs_missing_entries(self, db_session, family, record_sale):
        marie, leo = family
        sale = record_sale([("Coupe", 2500, 1, "service")], primary=marie.id, included=[leo.id])

        db_session.query(ClientHistory).filter_by(client_id=leo.id).delete()
        db_session.commit()

        report = linkage_service.verify_history()
        assert report["ok"] is False
        assert report["missing"] == [{
            "transaction_number": sale.transaction_number,
            "client_id": leo.id,
            "action_type": "purchase",
        }]

        result = linkage_service.backfill_history(actor="test")
        assert result["entries_written"] == 1
        assert result["transactions_repaired"] == [sale.transaction_number]
        assert linkage_service.verify_history()["ok"] is True

        # Idempotent
        assert linkage_service.backfill_history()["entries_written"] == 0

    def test_verify_reports_orphans(self, db_session, family, record_sale):
        marie, leo = family
        sale = record_sale([("Coupe", 2500, 1, "service")], primary=marie.id)
        db.session.add(ClientHistory(
            client_id=leo.id,
            action_type="purchase",
            description="stray",
            transaction_id=sale.id,
            amount_cents=2500,
        ))
        db.session.commit()

        report = linkage_service.verify_history()
        assert [o["client_id"] for o in report["orphans"]] == [leo.id]
