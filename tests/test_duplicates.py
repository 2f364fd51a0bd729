"""
Test duplicate detection and merging
"""

from datetime import timedelta

import pytest

from leadcore.app.core.errors import DuplicateError, NotFoundError, ValidationError
from leadcore.app.services.duplicate_service import DuplicateService, find_duplicate_groups, guard_unique_contact

from .conftest import NOW, make_lead


def test_shared_email_forms_one_group():
    leads = [
        make_lead(id="a", mobile="9000000001", email="a@b.com"),
        make_lead(id="b", mobile="9000000002", email="a@b.com"),
    ]

    groups = find_duplicate_groups(leads)

    assert len(groups) == 1
    assert groups[0].lead_ids == ["a", "b"]


def test_groups_partition_leads():
    leads = [
        make_lead(id="a", mobile="111"),
        make_lead(id="b", mobile="222", email="x@example.com"),
        make_lead(id="c", mobile="111"),
        make_lead(id="d", mobile="333", email="x@example.com"),
        make_lead(id="e", mobile="444"),
    ]

    groups = find_duplicate_groups(leads)

    ids = [lead_id for group in groups for lead_id in group.lead_ids]
    assert sorted(ids) == ["a", "b", "c", "d"]
    assert len(ids) == len(set(ids))
    assert [g.primary.id for g in groups] == ["a", "b"]


def test_leads_without_email_do_not_match_on_email():
    leads = [make_lead(id="a", mobile="111"), make_lead(id="b", mobile="222")]

    assert find_duplicate_groups(leads) == []


async def test_guard_reports_mobile_before_email(store):
    existing = await store.create_lead(name="First", mobile="9876543210", email="first@example.com", created_at=NOW, updated_at=NOW)

    with pytest.raises(DuplicateError) as exc_info:
        await guard_unique_contact(store, "9876543210", "first@example.com")

    assert exc_info.value.field == "mobile"
    assert exc_info.value.existing_lead_id == existing.id


async def test_guard_prefers_mobile_match_when_identifiers_hit_different_leads(store):
    await store.create_lead(name="Email Owner", mobile="9000000001", email="shared@example.com", created_at=NOW - timedelta(days=1), updated_at=NOW)
    mobile_owner = await store.create_lead(name="Mobile Owner", mobile="9876543210", created_at=NOW, updated_at=NOW)

    with pytest.raises(DuplicateError) as exc_info:
        await guard_unique_contact(store, "9876543210", "shared@example.com")

    assert exc_info.value.field == "mobile"
    assert exc_info.value.existing_lead_id == mobile_owner.id


async def test_guard_ignores_inactive_leads(store):
    await store.create_lead(name="Old", mobile="9876543210", is_active=False, created_at=NOW, updated_at=NOW)

    await guard_unique_contact(store, "9876543210", None)


async def test_merge_moves_follow_ups_and_notes(store):
    primary = await store.create_lead(name="Primary", mobile="9000000001", created_at=NOW, updated_at=NOW)
    dup = await store.create_lead(name="Dup", mobile="9000000002", created_at=NOW + timedelta(minutes=1), updated_at=NOW)
    await store.create_follow_up(lead_id=primary.id, scheduled_at=NOW + timedelta(days=1), created_at=NOW)
    await store.create_follow_up(lead_id=dup.id, scheduled_at=NOW + timedelta(days=2), created_at=NOW)
    await store.create_follow_up(lead_id=dup.id, scheduled_at=NOW + timedelta(days=3), is_completed=True, completed_at=NOW, created_at=NOW)
    await store.create_note(lead_id=dup.id, content="Asked for brochure", created_at=NOW - timedelta(days=3))

    result = await DuplicateService(store).merge(primary.id, [dup.id])

    assert result.succeeded == 1
    assert not result.is_partial_failure
    assert await store.get_lead(dup.id) is None
    assert len(await store.list_follow_ups(lead_id=primary.id)) == 3
    notes = await store.list_notes(primary.id)
    assert [n.content for n in notes] == ["[Merged] Asked for brochure"]
    assert notes[0].created_at == NOW - timedelta(days=3)
    assert sorted(f.created_at for f in await store.list_follow_ups(lead_id=primary.id)) == [NOW] * 3
    logs = await store.list_activity_logs(entity_id=primary.id)
    assert logs[-1].action == "leads_merged"
    assert logs[-1].details == "Merged 1 duplicate leads"


async def test_merge_continues_past_missing_duplicate(store):
    primary = await store.create_lead(name="Primary", mobile="9000000001", created_at=NOW, updated_at=NOW)
    dup = await store.create_lead(name="Dup", mobile="9000000002", created_at=NOW, updated_at=NOW)

    result = await DuplicateService(store).merge(primary.id, ["missing", dup.id])

    assert result.is_partial_failure
    assert result.failed_ids == ["missing"]
    assert result.succeeded == 1
    assert result.summary()["status"] == "partial_failure"
    assert await store.get_lead(dup.id) is None


async def test_merge_validates_input_before_touching_data(store):
    primary = await store.create_lead(name="Primary", mobile="9000000001", created_at=NOW, updated_at=NOW)
    service = DuplicateService(store)

    with pytest.raises(ValidationError):
        await service.merge(primary.id, [])
    with pytest.raises(ValidationError):
        await service.merge(primary.id, [primary.id])
    with pytest.raises(NotFoundError):
        await service.merge("missing", ["other"])
