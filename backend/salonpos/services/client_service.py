# Overview: Clients and family (parent/dependent) relationships.

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Client
from salonpos.time_utils import local_today, parse_iso_date, utcnow
from ..validation import NotFoundError, optional_text, require_text
from .audit_service import ACTION_CLIENT_DETACHED, append_audit_log
from .document_service import next_document_number


CLIENT_DOCUMENT_TYPE = "CLIENT"
CLIENT_PREFIX = "C"


class ClientError(Exception):
    """Raised for client/family operation errors."""
    pass


def age_on(date_of_birth: date | None, today: date) -> int | None:
    if date_of_birth is None:
        return None
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def _threshold() -> int:
    return current_app.config["DEPENDENT_AGE_THRESHOLD"]


def _parse_birth_date(value) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ClientError("date_of_birth must be YYYY-MM-DD")


def get_client(client_id: int) -> Client:
    client = db.session.query(Client).filter_by(id=client_id).first()
    if not client:
        raise NotFoundError("Client not found")
    return client


def create_client(
    *,
    first_name: str,
    last_name: str,
    email: str | None = None,
    phone: str | None = None,
    date_of_birth=None,
    notes: str | None = None,
    commit: bool = True,
) -> Client:
    fields = dict(
        first_name=require_text(first_name, "first_name", max_length=128),
        last_name=require_text(last_name, "last_name", max_length=128),
        email=optional_text(email, "email", max_length=255),
        phone=optional_text(phone, "phone", max_length=32),
        date_of_birth=_parse_birth_date(date_of_birth),
        notes=optional_text(notes, "notes", max_length=5000),
    )
    client = Client(
        client_number=next_document_number(document_type=CLIENT_DOCUMENT_TYPE, prefix=CLIENT_PREFIX, pad=4),
        is_independent=True,
        **fields,
    )
    db.session.add(client)
    db.session.flush()
    if commit:
        db.session.commit()
    return client


def add_child(
    parent_id: int,
    *,
    first_name: str,
    last_name: str | None = None,
    date_of_birth=None,
    notes: str | None = None,
    today: date | None = None,
) -> Client:
    """
    Register a dependent under a parent account.

    The child takes the parent's last name unless one is given. Children at
    or above the dependent age threshold are refused: they are clients in
    their own right.
    """
    parent = get_client(parent_id)
    if parent.parent_id is not None and not parent.is_independent:
        raise ClientError("A dependent cannot have dependents of their own")

    birth = _parse_birth_date(date_of_birth)
    today = today or local_today(current_app.config["BUSINESS_TIMEZONE"])
    age = age_on(birth, today)
    if age is not None and age >= _threshold():
        raise ClientError(f"Children aged {_threshold()} or more must be registered as independent clients")
    if birth is not None and birth > today:
        raise ClientError("date_of_birth cannot be in the future")

    child = create_client(
        first_name=first_name,
        last_name=last_name or parent.last_name,
        date_of_birth=birth,
        notes=notes,
        email=None,
        phone=parent.phone,
        commit=False,
    )
    child.parent_id = parent.id
    child.is_independent = False
    db.session.commit()
    return child


def list_children(parent_id: int) -> list[Client]:
    get_client(parent_id)
    return (
        db.session.query(Client)
        .filter(Client.parent_id == parent_id)
        .order_by(Client.first_name.asc(), Client.id.asc())
        .all()
    )


def family_of(primary_id: int) -> list[Client]:
    """Dependents offered for inclusion when `primary_id` is selected as payer."""
    return (
        db.session.query(Client)
        .filter(Client.parent_id == primary_id, Client.is_independent.is_(False))
        .order_by(Client.first_name.asc(), Client.id.asc())
        .all()
    )


def detach_child(child_id: int, operator: str | None = None) -> Client:
    """Make a dependent an independent client now, whatever their age."""
    child = get_client(child_id)
    if child.parent_id is None:
        raise ClientError("Client is not attached to a parent")

    former_parent = child.parent_id
    child.parent_id = None
    child.is_independent = True
    child.became_independent_at = utcnow()

    append_audit_log(
        actor=operator,
        action=ACTION_CLIENT_DETACHED,
        entity_type="clients",
        entity_id=child.id,
        metadata={"parent_id": former_parent, "reason": "manual"},
    )
    db.session.commit()
    return child


def refresh_independence(*, today: date | None = None) -> list[Client]:
    """
    Mark dependents who reached the age threshold as independent.

    They keep their parent_id so the family link stays visible; only the
    dependent flag changes. Returns the clients that changed.
    """
    today = today or local_today(current_app.config["BUSINESS_TIMEZONE"])
    threshold = _threshold()

    dependents = (
        db.session.query(Client)
        .filter(Client.is_independent.is_(False), Client.date_of_birth.isnot(None))
        .all()
    )
    changed = []
    for client in dependents:
        if age_on(client.date_of_birth, today) >= threshold:
            client.is_independent = True
            client.became_independent_at = utcnow()
            changed.append(client)

    if changed:
        db.session.commit()
        current_app.logger.info("%s dependent(s) became independent", len(changed))
    return changed
