from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.core.roles import Role
from app.models.banner import Banner
from app.models.pending_change import BannerPendingChange, PropertyPendingChange
from app.models.pending_change_idempotency import PendingChangeIdempotency
from app.models.property import Property
from app.models.property_assignment import PropertyEmployeeAssignment
from app.models.upload import Upload
from app.schemas.pending_changes import EntityType
from app.services import assignments, pending_changes
from conftest import (
    FakeAsyncSession,
    FakeResult,
    entity_handler,
    entity_sequence_handler,
    make_banner,
    make_change,
    make_property,
    make_upload,
)


@pytest.fixture
def authorized(monkeypatch):
    async def _allow(*args, **kwargs):
        return True

    monkeypatch.setattr(assignments, "is_authorized", _allow)


@pytest.fixture
def unauthorized(monkeypatch):
    async def _deny(*args, **kwargs):
        return False

    monkeypatch.setattr(assignments, "is_authorized", _deny)


def _db_with_property(prop) -> FakeAsyncSession:
    db = FakeAsyncSession()
    db.on_execute(entity_handler(Property, FakeResult(scalar=prop)))
    return db


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_submit_creates_pending_change(authorized):
    prop = make_property()
    employee_id = uuid4()
    db = _db_with_property(prop)

    result = await pending_changes.submit_change(
        db,
        EntityType.PROPERTY,
        employee_id,
        Role.EMPLOYEE,
        target_id=prop.id,
        payload={"title": "Lake View Villa II", "price": "8000000"},
    )

    change = db.added_of(PropertyPendingChange)[0]
    assert result.change_id == change.id
    assert result.status == "pending"
    assert result.idempotent is False
    assert change.target_id == prop.id
    assert change.proposer_id == employee_id
    assert change.proposed_payload == {"title": "Lake View Villa II", "price": "8000000"}
    assert db.committed is True


@pytest.mark.asyncio
async def test_submit_records_idempotency_key(authorized):
    prop = make_property()
    key = uuid4()
    db = _db_with_property(prop)

    result = await pending_changes.submit_change(
        db,
        EntityType.PROPERTY,
        uuid4(),
        Role.EMPLOYEE,
        target_id=prop.id,
        payload={"title": "Renamed"},
        idempotency_key=str(key),
    )

    entry = db.added_of(PendingChangeIdempotency)[0]
    assert entry.idempotency_key == key
    assert entry.change_id == result.change_id


@pytest.mark.asyncio
async def test_submit_replays_known_idempotency_key(authorized):
    key = uuid4()
    existing = make_change(status="pending")
    db = FakeAsyncSession()
    db.on_get(
        PendingChangeIdempotency,
        key,
        PendingChangeIdempotency(idempotency_key=key, entity_type="property", change_id=existing.id),
    )
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=existing)))

    result = await pending_changes.submit_change(
        db,
        EntityType.PROPERTY,
        existing.proposer_id,
        Role.EMPLOYEE,
        target_id=uuid4(),
        payload={"title": "Ignored on replay"},
        idempotency_key=key,
    )

    assert result.idempotent is True
    assert result.change_id == existing.id
    assert result.status == "pending"
    assert db.added == []
    assert db.committed is False


@pytest.mark.asyncio
async def test_second_live_submission_names_existing_change(authorized):
    prop = make_property()
    employee_id = uuid4()
    existing = make_change(
        proposer_id=employee_id, target_id=prop.id, payload={"title": "Lake View Villa"}
    )
    db = _db_with_property(prop)
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=existing)))

    with pytest.raises(ConflictError) as exc_info:
        await pending_changes.submit_change(
            db,
            EntityType.PROPERTY,
            employee_id,
            Role.EMPLOYEE,
            target_id=prop.id,
            payload={"title": "Another edit"},
        )

    error = exc_info.value
    assert error.code == "pending_change_exists"
    assert error.message == (
        "There is already a pending change for Lake View Villa under review. "
        "Please withdraw the existing pending change before submitting a new one."
    )
    assert error.details == {
        "existing_change_id": str(existing.id),
        "existing_change_title": "Lake View Villa",
    }
    assert db.added == []


@pytest.mark.asyncio
async def test_conflict_title_falls_back_to_entity_label(authorized):
    prop = make_property()
    employee_id = uuid4()
    existing = make_change(proposer_id=employee_id, target_id=prop.id, payload={"price": "10"})
    db = _db_with_property(prop)
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=existing)))

    with pytest.raises(ConflictError) as exc_info:
        await pending_changes.submit_change(
            db,
            EntityType.PROPERTY,
            employee_id,
            Role.EMPLOYEE,
            target_id=prop.id,
            payload={"price": "12"},
        )
    assert exc_info.value.details["existing_change_title"] == "this property"


@pytest.mark.asyncio
async def test_draft_submission_skips_live_conflict(authorized):
    prop = make_property()
    employee_id = uuid4()
    existing = make_change(proposer_id=employee_id, target_id=prop.id)
    db = _db_with_property(prop)
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=existing)))

    result = await pending_changes.submit_change(
        db,
        EntityType.PROPERTY,
        employee_id,
        Role.EMPLOYEE,
        target_id=prop.id,
        payload={"title": "Work in progress"},
        is_draft=True,
    )
    assert result.status == "draft"
    assert db.added_of(PropertyPendingChange)[0].is_draft is True


@pytest.mark.asyncio
async def test_unique_index_race_maps_to_conflict(authorized):
    prop = make_property()
    employee_id = uuid4()
    winner = make_change(proposer_id=employee_id, target_id=prop.id, payload={"title": "Winner"})
    db = _db_with_property(prop)
    db.on_execute(
        entity_sequence_handler(PropertyPendingChange, [FakeResult(), FakeResult(scalar=winner)])
    )
    db.fail_commit(1, IntegrityError("INSERT", {}, Exception("uq_property_pending_changes_live")))

    with pytest.raises(ConflictError) as exc_info:
        await pending_changes.submit_change(
            db,
            EntityType.PROPERTY,
            employee_id,
            Role.EMPLOYEE,
            target_id=prop.id,
            payload={"title": "Loser"},
        )
    assert exc_info.value.details["existing_change_id"] == str(winner.id)
    assert db.rollback_count == 1


@pytest.mark.asyncio
async def test_submit_requires_assignment(unauthorized):
    prop = make_property()
    db = _db_with_property(prop)
    with pytest.raises(AuthorizationError) as exc_info:
        await pending_changes.submit_change(
            db,
            EntityType.PROPERTY,
            uuid4(),
            Role.AGENT,
            target_id=prop.id,
            payload={"title": "Edit"},
        )
    assert exc_info.value.code == "not_assigned"


@pytest.mark.asyncio
async def test_unassigned_proposer_gets_same_answer_for_missing_property(unauthorized):
    db = FakeAsyncSession()
    with pytest.raises(AuthorizationError) as exc_info:
        await pending_changes.submit_change(
            db,
            EntityType.PROPERTY,
            uuid4(),
            Role.EMPLOYEE,
            target_id=uuid4(),
            payload={"title": "Edit"},
        )
    assert exc_info.value.code == "not_assigned"
    assert db.executed == []


@pytest.mark.asyncio
async def test_agents_cannot_propose_new_properties(authorized):
    with pytest.raises(AuthorizationError):
        await pending_changes.submit_change(
            FakeAsyncSession(),
            EntityType.PROPERTY,
            uuid4(),
            Role.AGENT,
            target_id=None,
            payload={"title": "Brand new"},
        )


@pytest.mark.asyncio
async def test_submit_against_missing_property_is_not_found(authorized):
    with pytest.raises(NotFoundError) as exc_info:
        await pending_changes.submit_change(
            FakeAsyncSession(),
            EntityType.PROPERTY,
            uuid4(),
            Role.EMPLOYEE,
            target_id=uuid4(),
            payload={"title": "Edit"},
        )
    assert exc_info.value.code == "property_not_found"


@pytest.mark.asyncio
async def test_foreign_upload_rejects_submission(authorized):
    prop = make_property()
    employee_id = uuid4()
    db = _db_with_property(prop)
    db.on_execute(entity_handler(Upload, FakeResult(items=[])))

    with pytest.raises(ValidationError) as exc_info:
        await pending_changes.submit_change(
            db,
            EntityType.PROPERTY,
            employee_id,
            Role.EMPLOYEE,
            target_id=prop.id,
            payload={"title": "With photos"},
            uploaded_asset_ids=[uuid4()],
        )
    assert exc_info.value.code == "invalid_upload_reference"
    assert db.added == []


@pytest.mark.asyncio
async def test_submit_marks_uploads_referenced(authorized):
    prop = make_property()
    employee_id = uuid4()
    upload = make_upload(owner_id=employee_id)
    db = _db_with_property(prop)
    db.on_execute(entity_handler(Upload, FakeResult(items=[upload])))

    await pending_changes.submit_change(
        db,
        EntityType.PROPERTY,
        employee_id,
        Role.EMPLOYEE,
        target_id=prop.id,
        payload={"title": "With photos"},
        uploaded_asset_ids=[upload.id],
    )
    updates = [stmt for stmt in db.statements_of("update") if stmt.table.name == "uploads"]
    assert len(updates) == 1


@pytest.mark.asyncio
async def test_banner_creation_by_employee_skips_assignment_check(unauthorized):
    db = FakeAsyncSession()
    result = await pending_changes.submit_change(
        db,
        EntityType.BANNER,
        uuid4(),
        Role.EMPLOYEE,
        target_id=None,
        payload={"image_url": "https://cdn.example.com/b.png", "title": "Diwali"},
    )
    assert result.status == "pending"
    assert db.added_of(BannerPendingChange)[0].target_id is None


# ---------------------------------------------------------------------------
# Proposer edits
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_draft_replaces_payload_wholesale(authorized):
    prop = make_property()
    employee_id = uuid4()
    draft = make_change(
        proposer_id=employee_id,
        target_id=prop.id,
        status="draft",
        payload={"title": "Old", "location": "Goa"},
    )
    db = _db_with_property(prop)
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=draft)))

    updated = await pending_changes.update_draft(
        db,
        EntityType.PROPERTY,
        draft.id,
        employee_id,
        Role.EMPLOYEE,
        payload={"title": "New"},
        notes="shorter",
    )
    assert updated.proposed_payload == {"title": "New"}
    assert updated.notes == "shorter"


@pytest.mark.asyncio
async def test_update_draft_releases_uploads_dropped_from_payload(authorized):
    prop = make_property()
    employee_id = uuid4()
    draft = make_change(proposer_id=employee_id, target_id=prop.id, status="draft")
    kept = make_upload(owner_id=employee_id, status="referenced", referenced_by_change_id=draft.id)
    db = _db_with_property(prop)
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=draft)))
    db.on_execute(entity_handler(Upload, FakeResult(items=[kept])))

    await pending_changes.update_draft(
        db,
        EntityType.PROPERTY,
        draft.id,
        employee_id,
        Role.EMPLOYEE,
        payload={"title": "Fewer photos"},
        uploaded_asset_ids=[kept.id],
    )

    release, mark = [stmt for stmt in db.statements_of("update") if stmt.table.name == "uploads"]
    assert "NOT IN" in str(release)
    assert release.compile().params["status"] == "uploaded"
    assert mark.compile().params["status"] == "referenced"


@pytest.mark.asyncio
async def test_pending_change_cannot_be_edited(authorized):
    employee_id = uuid4()
    pending = make_change(proposer_id=employee_id, status="pending")
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=pending)))

    with pytest.raises(ConflictError) as exc_info:
        await pending_changes.update_draft(
            db, EntityType.PROPERTY, pending.id, employee_id, Role.EMPLOYEE, payload={"title": "x"}
        )
    assert exc_info.value.code == "invalid_change_status"


@pytest.mark.asyncio
async def test_submit_draft_moves_to_pending():
    prop = make_property()
    employee_id = uuid4()
    draft = make_change(proposer_id=employee_id, target_id=prop.id, status="draft")
    db = _db_with_property(prop)
    db.on_execute(entity_sequence_handler(PropertyPendingChange, [FakeResult(scalar=draft)]))

    change = await pending_changes.submit_draft(db, EntityType.PROPERTY, draft.id, employee_id)
    assert change.status == "pending"
    assert change.is_draft is False


@pytest.mark.asyncio
async def test_submit_draft_conflicts_with_other_live_change():
    prop = make_property()
    employee_id = uuid4()
    draft = make_change(proposer_id=employee_id, target_id=prop.id, status="draft")
    live = make_change(proposer_id=employee_id, target_id=prop.id, payload={"title": "Live one"})
    db = _db_with_property(prop)
    db.on_execute(
        entity_sequence_handler(
            PropertyPendingChange, [FakeResult(scalar=draft), FakeResult(scalar=live)]
        )
    )

    with pytest.raises(ConflictError) as exc_info:
        await pending_changes.submit_draft(db, EntityType.PROPERTY, draft.id, employee_id)
    assert exc_info.value.details["existing_change_title"] == "Live one"
    assert draft.status == "draft"


@pytest.mark.asyncio
async def test_submit_draft_unique_index_race_maps_to_conflict():
    prop = make_property()
    employee_id = uuid4()
    draft = make_change(proposer_id=employee_id, target_id=prop.id, status="draft")
    winner = make_change(proposer_id=employee_id, target_id=prop.id, payload={"title": "Winner"})
    db = _db_with_property(prop)
    db.on_execute(
        entity_sequence_handler(
            PropertyPendingChange,
            [FakeResult(scalar=draft), FakeResult(), FakeResult(scalar=winner)],
        )
    )
    db.fail_commit(1, IntegrityError("UPDATE", {}, Exception("uq_property_pending_changes_live")))

    with pytest.raises(ConflictError) as exc_info:
        await pending_changes.submit_draft(db, EntityType.PROPERTY, draft.id, employee_id)
    assert exc_info.value.details["existing_change_id"] == str(winner.id)
    assert db.rollback_count == 1


@pytest.mark.asyncio
async def test_withdraw_deletes_change_and_releases_uploads():
    employee_id = uuid4()
    pending = make_change(proposer_id=employee_id, status="pending")
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=pending)))

    result = await pending_changes.withdraw(db, EntityType.PROPERTY, pending.id, employee_id)

    assert result is None
    assert db.deleted == [pending]
    assert [stmt.table.name for stmt in db.statements_of("update")] == ["uploads"]


@pytest.mark.asyncio
async def test_withdraw_to_draft_keeps_change():
    employee_id = uuid4()
    pending = make_change(proposer_id=employee_id, status="pending")
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=pending)))

    result = await pending_changes.withdraw(
        db, EntityType.PROPERTY, pending.id, employee_id, move_to_draft=True
    )
    assert result is pending
    assert pending.status == "draft"
    assert pending.is_draft is True
    assert db.deleted == []


@pytest.mark.asyncio
async def test_withdraw_of_someone_elses_change_is_not_found():
    with pytest.raises(NotFoundError):
        await pending_changes.withdraw(FakeAsyncSession(), EntityType.BANNER, uuid4(), uuid4())


@pytest.mark.asyncio
async def test_discard_only_applies_to_drafts():
    employee_id = uuid4()
    pending = make_change(proposer_id=employee_id, status="pending")
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=pending)))

    with pytest.raises(ConflictError):
        await pending_changes.discard_draft(db, EntityType.PROPERTY, pending.id, employee_id)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_approve_applies_payload_to_existing_property(admin_actions, notifications):
    prop = make_property(title="Old title", price=Decimal("100.00"))
    proposer_id = uuid4()
    reviewer_id = uuid4()
    change = make_change(
        proposer_id=proposer_id,
        target_id=prop.id,
        payload={"title": "New title", "price": "250"},
    )
    db = _db_with_property(prop)
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))

    canonical = await pending_changes.approve(db, EntityType.PROPERTY, change.id, reviewer_id)

    assert canonical is prop
    assert prop.title == "New title"
    assert prop.price == Decimal("250")
    assert change.status == "approved"
    assert change.reviewed_by_admin_id == reviewer_id
    assert change.reviewed_at is not None
    assert db.commit_count == 2
    assert admin_actions[0]["action_type"] == "property_change_approve"
    assert admin_actions[0]["details"]["before"] == {"title": "Old title", "price": Decimal("100.00")}
    assert notifications == [
        (
            proposer_id,
            "pending_change_updated",
            {"entity_type": "property", "change_id": change.id, "status": "approved"},
        )
    ]


@pytest.mark.asyncio
async def test_approving_a_creation_stamps_proposer_and_edge():
    proposer_id = uuid4()
    reviewer_id = uuid4()
    change = make_change(proposer_id=proposer_id, target_id=None, payload={"title": "Hill Top"})
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))

    canonical = await pending_changes.approve(db, EntityType.PROPERTY, change.id, reviewer_id)

    assert isinstance(canonical, Property)
    assert canonical.title == "Hill Top"
    assert canonical.assigned_employee_id == proposer_id
    assert canonical.created_by_employee_id == proposer_id
    edge = db.added_of(PropertyEmployeeAssignment)[0]
    assert edge.property_id == canonical.id
    assert edge.employee_id == proposer_id
    assert change.target_id == canonical.id


@pytest.mark.asyncio
async def test_failed_status_commit_restores_canonical_row(admin_actions):
    prop = make_property(title="Original", price=Decimal("100.00"))
    prop_id = prop.id
    change = make_change(target_id=prop_id, payload={"title": "Changed", "price": "999"})
    db = _db_with_property(prop)
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))
    db.fail_commit(2, RuntimeError("connection lost"))

    with pytest.raises(RuntimeError, match="connection lost"):
        await pending_changes.approve(db, EntityType.PROPERTY, change.id, uuid4())

    (restore,) = db.statements_of("update")
    assert restore.table.name == "properties"
    params = restore.compile().params
    assert params["title"] == "Original"
    assert params["price"] == Decimal("100.00")
    assert prop_id in params.values()
    assert db.commit_count == 3
    assert admin_actions == []


@pytest.mark.asyncio
async def test_failed_status_commit_deletes_created_property():
    change = make_change(target_id=None, payload={"title": "Never lands"})
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))
    db.fail_commit(2, RuntimeError("connection lost"))

    with pytest.raises(RuntimeError, match="connection lost"):
        await pending_changes.approve(db, EntityType.PROPERTY, change.id, uuid4())

    created = db.refetch(db.added_of(Property)[0])
    deletes = db.statements_of("delete")
    assert [stmt.table.name for stmt in deletes] == ["property_employee_assignments", "properties"]
    assert all(created.id in stmt.compile().params.values() for stmt in deletes)
    assert db.commit_count == 3


@pytest.mark.asyncio
async def test_failed_banner_creation_is_deleted_without_edges():
    change = make_change(
        EntityType.BANNER,
        target_id=None,
        payload={"image_url": "https://cdn.example.com/b.png", "title": "Monsoon"},
    )
    db = FakeAsyncSession()
    db.on_execute(entity_handler(BannerPendingChange, FakeResult(scalar=change)))
    db.fail_commit(2, RuntimeError("connection lost"))

    with pytest.raises(RuntimeError, match="connection lost"):
        await pending_changes.approve(db, EntityType.BANNER, change.id, uuid4())

    assert [stmt.table.name for stmt in db.statements_of("delete")] == ["banners"]


@pytest.mark.asyncio
async def test_failed_compensation_still_raises_original_error():
    change = make_change(target_id=None, payload={"title": "Never lands"})
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))
    db.fail_commit(2, RuntimeError("connection lost"))
    db.fail_commit(3, RuntimeError("database gone"))

    with pytest.raises(RuntimeError, match="connection lost"):
        await pending_changes.approve(db, EntityType.PROPERTY, change.id, uuid4())
    assert db.rollback_count == 2


@pytest.mark.asyncio
async def test_approve_with_merged_payload_uses_admin_allow_list():
    banner = make_banner(display_order=0)
    change = make_change(EntityType.BANNER, target_id=banner.id, payload={"title": "Proposed"})
    db = FakeAsyncSession()
    db.on_execute(entity_handler(BannerPendingChange, FakeResult(scalar=change)))
    db.on_execute(entity_handler(Banner, FakeResult(scalar=banner)))

    await pending_changes.approve(
        db,
        EntityType.BANNER,
        change.id,
        uuid4(),
        apply_as="merged_payload",
        merged_payload={"title": "Merged", "display_order": 3},
    )
    assert banner.title == "Merged"
    assert banner.display_order == 3


@pytest.mark.asyncio
async def test_merged_payload_is_required_for_merge():
    change = make_change()
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))

    with pytest.raises(ValidationError) as exc_info:
        await pending_changes.approve(
            db, EntityType.PROPERTY, change.id, uuid4(), apply_as="merged_payload"
        )
    assert exc_info.value.code == "merged_payload_required"
    assert db.commit_count == 0


@pytest.mark.asyncio
async def test_terminal_change_cannot_be_approved_again():
    change = make_change(status="approved")
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))

    with pytest.raises(ConflictError):
        await pending_changes.approve(db, EntityType.PROPERTY, change.id, uuid4())


@pytest.mark.asyncio
async def test_reject_requires_reason():
    with pytest.raises(ValidationError) as exc_info:
        await pending_changes.reject(FakeAsyncSession(), EntityType.PROPERTY, uuid4(), uuid4(), "   ")
    assert exc_info.value.code == "reason_required"


@pytest.mark.asyncio
async def test_reject_records_reason_and_notifies(notifications):
    change = make_change(status="needs_revision")
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))

    rejected = await pending_changes.reject(
        db, EntityType.PROPERTY, change.id, uuid4(), "Duplicate listing"
    )
    assert rejected.status == "rejected"
    assert rejected.reason == "Duplicate listing"
    assert notifications[0][0] == change.proposer_id


@pytest.mark.asyncio
async def test_request_revision_only_from_pending():
    change = make_change(status="needs_revision")
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))

    with pytest.raises(ConflictError):
        await pending_changes.request_revision(
            db, EntityType.PROPERTY, change.id, uuid4(), "Add photos"
        )


@pytest.mark.asyncio
async def test_request_revision_stores_comments():
    change = make_change(status="pending")
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))

    revised = await pending_changes.request_revision(
        db, EntityType.PROPERTY, change.id, uuid4(), "Add photos"
    )
    assert revised.status == "needs_revision"
    assert revised.reason == "Add photos"


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_changes_merges_entity_types_newest_first():
    now = datetime.now(timezone.utc)
    p1 = make_change(created_at=now - timedelta(minutes=1))
    p2 = make_change(created_at=now - timedelta(minutes=3))
    b1 = make_change(EntityType.BANNER, created_at=now - timedelta(minutes=2))
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(items=[p1, p2])))
    db.on_execute(entity_handler(BannerPendingChange, FakeResult(items=[b1])))

    items, next_cursor = await pending_changes.list_changes(db, limit=2)

    assert [item.id for item in items] == [p1.id, b1.id]
    assert [item.entity_type for item in items] == [EntityType.PROPERTY, EntityType.BANNER]
    assert next_cursor == b1.created_at


@pytest.mark.asyncio
async def test_get_change_hides_other_proposers_changes():
    change = make_change()
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))

    with pytest.raises(NotFoundError):
        await pending_changes.get_change(db, change.id, actor_id=uuid4(), role=Role.EMPLOYEE)


@pytest.mark.asyncio
async def test_get_change_includes_current_snapshot_for_admin():
    prop = make_property(title="Current")
    change = make_change(target_id=prop.id)
    db = FakeAsyncSession()
    db.on_execute(entity_handler(PropertyPendingChange, FakeResult(scalar=change)))
    db.on_get(Property, prop.id, prop)

    dto, current = await pending_changes.get_change(db, change.id, actor_id=uuid4(), role=Role.ADMIN)
    assert dto.id == change.id
    assert current["title"] == "Current"
