"""
Test lifecycle operations end to end against the SQLite store
"""

from datetime import date, timedelta

import pytest

from leadcore.app.core.errors import (
    AlreadyConvertedError,
    DuplicateError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from leadcore.app.models.leads import LeadStatus, PipelineStage, ScoreTier
from leadcore.app.services.lead_store import SQLAlchemyLeadStore
from leadcore.app.services.lifecycle_service import LifecycleService

from .conftest import NOW, create_user


async def test_capture_creates_lead_and_publishes(service, publisher, store, sample_lead_data):
    lead = await service.on_lead_captured(sample_lead_data)

    assert lead.name == "Priya Sharma"
    assert lead.email == "priya.sharma@example.com"
    assert lead.status == LeadStatus.NEW
    assert lead.pipeline_stage == PipelineStage.NEW_LEAD
    assert lead.owner_id is None
    assert lead.created_at == NOW
    assert publisher.subjects() == ["leads.captured"]
    logs = await store.list_activity_logs(entity_id=lead.id)
    assert [log.action for log in logs] == ["lead_created"]


async def test_capture_rejects_duplicate_mobile(service, sample_lead_data):
    first = await service.on_lead_captured(sample_lead_data)

    with pytest.raises(DuplicateError) as exc_info:
        await service.on_lead_captured({"name": "Someone Else", "mobile": "9876543210"})

    assert exc_info.value.field == "mobile"
    assert exc_info.value.existing_lead_id == first.id


async def test_capture_rejects_duplicate_email_case_insensitively(service, sample_lead_data):
    await service.on_lead_captured(sample_lead_data)

    with pytest.raises(DuplicateError) as exc_info:
        await service.on_lead_captured({"name": "Other", "mobile": "9123456780", "email": "PRIYA.SHARMA@example.com"})

    assert exc_info.value.field == "email"


async def test_capture_requires_name_and_mobile(service):
    with pytest.raises(ValidationError) as exc_info:
        await service.on_lead_captured({"name": "No Phone"})

    assert exc_info.value.context["field"] == "mobile"


async def test_capture_with_unknown_owner_is_not_found(service, sample_lead_data):
    with pytest.raises(NotFoundError):
        await service.on_lead_captured({**sample_lead_data, "owner_id": "ghost"})


async def test_capture_auto_assigns_when_distribution_enabled(service, store, sample_lead_data):
    rep = await create_user(store, "Rep One")
    await service.update_distribution_settings(is_enabled=True)

    lead = await service.on_lead_captured(sample_lead_data)

    assert lead.owner_id == rep.id
    assert lead.distributed_at is not None


async def test_capture_does_not_assign_when_distribution_disabled(service, store, sample_lead_data):
    await create_user(store, "Rep One")

    lead = await service.on_lead_captured(sample_lead_data)

    assert lead.owner_id is None


async def test_update_rechecks_duplicates_excluding_itself(service, sample_lead_data):
    lead = await service.on_lead_captured(sample_lead_data)
    other = await service.on_lead_captured({"name": "Other", "mobile": "9123456780"})

    updated = await service.on_lead_updated(lead.id, {"mobile": "9876543210", "city": "Nashik"})
    assert updated.city == "Nashik"

    with pytest.raises(DuplicateError):
        await service.on_lead_updated(other.id, {"mobile": "9876543210"})


async def test_reactivation_runs_duplicate_guard(service, sample_lead_data):
    old = await service.on_lead_captured(sample_lead_data)
    await service.on_lead_updated(old.id, {"is_active": False})
    await service.on_lead_captured(sample_lead_data)

    with pytest.raises(DuplicateError):
        await service.on_lead_updated(old.id, {"is_active": True})


async def test_update_cannot_clear_required_fields(service, sample_lead_data):
    lead = await service.on_lead_captured(sample_lead_data)

    with pytest.raises(ValidationError):
        await service.on_lead_updated(lead.id, {"name": None})


async def test_follow_up_logged_bumps_activity_and_notifies(service, store, clock, sample_lead_data):
    rep = await create_user(store, "Rep One")
    lead = await service.on_lead_captured({**sample_lead_data, "owner_id": rep.id})
    clock.advance(hours=3)

    follow_up = await service.on_follow_up_logged(lead.id, NOW + timedelta(days=2))

    assert follow_up.lead_id == lead.id
    assert follow_up.user_id == rep.id
    assert (await store.get_lead(lead.id)).last_activity_at == clock.now
    notifications = await store.list_notifications(rep.id)
    assert [n.title for n in notifications] == ["Follow-up Scheduled"]


async def test_follow_up_for_missing_lead_is_not_found(service):
    with pytest.raises(NotFoundError):
        await service.on_follow_up_logged("missing", NOW)


async def test_complete_follow_up_then_only_notes_editable(service, sample_lead_data):
    lead = await service.on_lead_captured(sample_lead_data)
    follow_up = await service.on_follow_up_logged(lead.id, NOW + timedelta(days=1))

    done = await service.complete_follow_up(follow_up.id, notes="Spoke to client")
    assert done.is_completed is True
    assert done.completed_at == NOW

    edited = await service.update_follow_up(follow_up.id, {"notes": "Sent quote"})
    assert edited.notes == "Sent quote"

    with pytest.raises(ValidationError):
        await service.update_follow_up(follow_up.id, {"scheduled_at": (NOW + timedelta(days=5)).isoformat()})


async def test_notes_and_calls_bump_activity(service, store, clock, sample_lead_data):
    lead = await service.on_lead_captured(sample_lead_data)
    clock.advance(days=1)

    await service.add_note(lead.id, "Interested in SEO package", "whatsapp")
    await service.log_call(lead.id, outcome="connected", duration_seconds=120)

    assert (await store.get_lead(lead.id)).last_activity_at == clock.now
    assert len(await store.list_notes(lead.id)) == 1
    assert len(await store.list_call_logs(lead_id=lead.id)) == 1


async def test_recompute_score_writes_score_tier_and_reason(service, store, sample_lead_data):
    lead = await service.on_lead_captured({**sample_lead_data, "source": "website", "email": None, "city": None})

    scored = await service.recompute_score(lead.id)

    assert scored.lead_score == 78
    assert scored.temperature == ScoreTier.HOT
    assert scored.score_reason == "Active today, Website"
    logs = await store.list_activity_logs(entity_id=lead.id)
    details = [log.details for log in logs if log.action == "score_updated"]
    assert details == ["Score changed to hot: Active today, Website"]


async def test_recompute_all_scores_reports_each_lead(service, sample_lead_data):
    await service.on_lead_captured(sample_lead_data)
    await service.on_lead_captured({"name": "Second Lead", "mobile": "9123456780"})

    result = await service.recompute_all_scores()

    assert result.total == 2
    assert result.succeeded == 2
    assert not result.is_partial_failure


async def test_recompute_all_scores_continues_past_failed_write(test_db, clock, publisher, sample_lead_data):
    class FailingStore(SQLAlchemyLeadStore):
        failing_id = None

        async def update_lead(self, lead_id, changes):
            if lead_id == self.failing_id and "lead_score" in changes:
                raise InfrastructureError("update_lead", RuntimeError("disk full"))
            return await super().update_lead(lead_id, changes)

    store = FailingStore(test_db)
    service = LifecycleService(store, clock=clock, publish=publisher)
    broken = await service.on_lead_captured(sample_lead_data)
    healthy = await service.on_lead_captured({"name": "Second Lead", "mobile": "9123456780"})
    store.failing_id = broken.id

    result = await service.recompute_all_scores()

    assert result.is_partial_failure
    assert result.failed_ids == [broken.id]
    assert result.succeeded == 1
    assert (await store.get_lead(healthy.id)).temperature == ScoreTier.HOT
    assert (await store.get_lead(broken.id)).temperature is None


async def test_change_stage_validates_before_lookup(service, sample_lead_data):
    with pytest.raises(ValidationError):
        await service.change_stage("missing", "closing")
    with pytest.raises(NotFoundError):
        await service.change_stage("missing", "qualified")

    lead = await service.on_lead_captured(sample_lead_data)
    moved = await service.change_stage(lead.id, "negotiation")

    assert moved.pipeline_stage == PipelineStage.NEGOTIATION
    assert moved.lead_score == lead.lead_score


async def test_convert_creates_client_once(service, store, sample_lead_data):
    lead = await service.on_lead_captured(sample_lead_data)

    client = await service.convert_to_client(lead.id, {"contract_start_date": "2025-07-01"})

    assert client.company_name == "Priya Sharma"
    assert client.email == "priya.sharma@example.com"
    assert client.phone == "9876543210"
    assert client.contract_start_date == date(2025, 7, 1)
    assert (await store.get_lead(lead.id)).status == LeadStatus.CONVERTED

    with pytest.raises(AlreadyConvertedError):
        await service.convert_to_client(lead.id)


async def test_convert_uses_empty_email_when_lead_has_none(service):
    lead = await service.on_lead_captured({"name": "No Email", "mobile": "9123456780"})

    client = await service.convert_to_client(lead.id, {"company_name": "No Email Pvt Ltd"})

    assert client.email == ""
    assert client.company_name == "No Email Pvt Ltd"


async def test_import_reports_each_row(service, sample_lead_data):
    await service.on_lead_captured(sample_lead_data)
    rows = [
        {"name": "Row One", "mobile": "9111111111", "source": "Referral", "status": "bogus"},
        {"name": "X", "mobile": "9222222222"},
        {"name": "Row Three", "mobile": "123"},
        {"name": "Row Four", "mobile": "9876543210"},
        {"name": "Row Five", "mobile": "9333333333", "notes": "Met at expo"},
    ]

    result = await service.import_leads(rows)

    assert result.total == 5
    assert result.succeeded == 2
    assert result.failed_ids == ["2", "3", "4"]
    outcomes = {o.item_id: o for o in result.outcomes}
    assert outcomes["4"].error_kind == "duplicate_error"
    first = await service.get_lead(outcomes["1"].data["lead_id"])
    assert first.source.value == "referral"
    assert first.status == LeadStatus.NEW


async def test_distribute_logs_count(service, store):
    await create_user(store, "Rep One")
    await service.on_lead_captured({"name": "Unowned", "mobile": "9123456780"})

    assert await service.distribute_unassigned() == 1
    logs = await store.list_activity_logs()
    details = [log.details for log in logs if log.action == "leads_distributed"]
    assert details == ["Distributed 1 leads via round robin"]


async def test_lead_summary_counts(service, clock, sample_lead_data):
    lead = await service.on_lead_captured(sample_lead_data)
    await service.on_lead_captured({"name": "Second Lead", "mobile": "9123456780"})
    await service.recompute_score(lead.id)
    await service.on_follow_up_logged(lead.id, NOW - timedelta(hours=1))
    await service.convert_to_client(lead.id)

    summary = await service.lead_summary()

    assert summary["total_leads"] == 2
    assert summary["by_temperature"]["hot"] == 1
    assert summary["by_temperature"]["unscored"] == 1
    assert summary["by_status"]["converted"] == 1
    assert summary["follow_ups"] == {"pending": 1, "overdue": 1}
    assert summary["conversion_rate"] == 50


async def test_merge_publishes_merged_ids(service, publisher, sample_lead_data):
    primary = await service.on_lead_captured(sample_lead_data)
    dup = await service.on_lead_captured({"name": "Priya S", "mobile": "9123456780"})

    result = await service.merge(primary.id, [dup.id])

    assert result.succeeded == 1
    subject, data = publisher.events[-1]
    assert subject == "leads.merged"
    assert data["merged_ids"] == [dup.id]
