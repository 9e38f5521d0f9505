from uuid import uuid4

import pytest

from app.core.roles import Role
from app.models.pending_change import PropertyPendingChange
from app.models.property import Property
from app.services import assignments
from conftest import FakeResult, entity_handler, make_change, make_property, make_user


@pytest.fixture
def test_user():
    return make_user(role=Role.EMPLOYEE)


@pytest.fixture(autouse=True)
def _assigned(monkeypatch):
    async def _allow(*args, **kwargs):
        return True

    monkeypatch.setattr(assignments, "is_authorized", _allow)


def test_submit_returns_created_envelope(client, fake_db):
    prop = make_property()
    fake_db.on_execute(entity_handler(Property, FakeResult(scalar=prop)))

    response = client.post(
        "/api/v1/pending-changes/property",
        json={"target_id": str(prop.id), "proposed_payload": {"title": "Renamed villa"}},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["code"] == "created"
    assert body["data"]["status"] == "pending"
    assert body["data"]["idempotent"] is False
    assert fake_db.added_of(PropertyPendingChange)[0].proposed_payload == {"title": "Renamed villa"}


def test_second_submission_renders_conflict_envelope(client, fake_db, test_user):
    prop = make_property()
    existing = make_change(proposer_id=test_user.id, target_id=prop.id)
    fake_db.on_execute(entity_handler(Property, FakeResult(scalar=prop)))
    fake_db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=existing)))

    response = client.post(
        "/api/v1/pending-changes/property",
        json={"target_id": str(prop.id), "proposed_payload": {"title": "Second try"}},
    )

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "pending_change_exists"
    assert body["data"] is None
    assert body["details"]["existing_change_id"] == str(existing.id)


def test_malformed_idempotency_header_is_rejected(client):
    response = client.post(
        "/api/v1/pending-changes/banner",
        json={"proposed_payload": {"image_url": "https://cdn.example.com/b.png"}},
        headers={"Idempotency-Key": "abc"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_idempotency_key"


def test_unknown_entity_type_is_validation_error(client):
    response = client.post(
        "/api/v1/pending-changes/villa",
        json={"proposed_payload": {"title": "x"}},
    )
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_review_queue_requires_admin(client):
    response = client.get("/api/v1/admin/pending-changes")
    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


def test_withdraw_reports_deletion(client, fake_db, test_user):
    change = make_change(proposer_id=test_user.id, status="pending")
    fake_db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))

    response = client.post(f"/api/v1/pending-changes/property/{change.id}/withdraw")

    assert response.status_code == 200
    assert response.json()["data"] == {"change_id": str(change.id), "deleted": True}
    assert fake_db.deleted == [change]


def test_foreign_change_detail_is_not_found(client):
    response = client.get(f"/api/v1/pending-changes/{uuid4()}")
    assert response.status_code == 404
    assert response.json()["code"] == "change_not_found"
