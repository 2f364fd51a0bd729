"""
Test lead management endpoints
"""

from datetime import timedelta

from .conftest import NOW

API = "/api/v1"


async def test_capture_lead(client, sample_lead_data):
    response = await client.post(f"{API}/leads/", json=sample_lead_data)

    assert response.status_code == 201
    data = response.json()
    assert data["mobile"] == "9876543210"
    assert data["source"] == "google"
    assert data["pipeline_stage"] == "new_lead"


async def test_duplicate_capture_returns_conflict(client, sample_lead_data):
    first = (await client.post(f"{API}/leads/", json=sample_lead_data)).json()

    response = await client.post(f"{API}/leads/", json={"name": "Copy", "mobile": "9876543210"})

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["kind"] == "duplicate_error"
    assert detail["field"] == "mobile"
    assert detail["existing_lead_id"] == first["id"]


async def test_list_leads(client, sample_lead_data):
    await client.post(f"{API}/leads/", json=sample_lead_data)

    response = await client.get(f"{API}/leads/", params={"search": "priya", "sort_by": "name", "sort_order": "asc"})

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["page"] == 1
    assert data["total_pages"] == 1
    assert data["items"][0]["name"] == "Priya Sharma"


async def test_list_leads_rejects_unknown_sort_field(client):
    response = await client.get(f"{API}/leads/", params={"sort_by": "password"})

    assert response.status_code == 422
    assert response.json()["detail"]["field"] == "sort_by"


async def test_get_missing_lead(client):
    response = await client.get(f"{API}/leads/does-not-exist")

    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "not_found"


async def test_score_stage_and_convert(client, sample_lead_data):
    lead = (await client.post(f"{API}/leads/", json=sample_lead_data)).json()

    scored = await client.post(f"{API}/leads/{lead['id']}/score")
    assert scored.status_code == 200
    assert scored.json()["temperature"] == "hot"

    bad_stage = await client.patch(f"{API}/leads/{lead['id']}/stage", json={"pipeline_stage": "closing"})
    assert bad_stage.status_code == 422

    moved = await client.patch(f"{API}/leads/{lead['id']}/stage", json={"pipeline_stage": "proposal_sent"})
    assert moved.json()["pipeline_stage"] == "proposal_sent"

    converted = await client.post(f"{API}/leads/{lead['id']}/convert", json={"company_name": "Sharma Traders"})
    assert converted.status_code == 201
    assert converted.json()["company_name"] == "Sharma Traders"

    again = await client.post(f"{API}/leads/{lead['id']}/convert")
    assert again.status_code == 409
    assert again.json()["detail"]["kind"] == "already_converted"


async def test_follow_up_flow(client, sample_lead_data):
    lead = (await client.post(f"{API}/leads/", json=sample_lead_data)).json()
    scheduled_at = (NOW + timedelta(days=1)).isoformat()

    created = await client.post(f"{API}/leads/{lead['id']}/follow-ups", json={"scheduled_at": scheduled_at})
    assert created.status_code == 201
    follow_up_id = created.json()["id"]

    completed = await client.post(f"{API}/follow-ups/{follow_up_id}/complete", json={"notes": "Done"})
    assert completed.status_code == 200
    assert completed.json()["is_completed"] is True

    locked = await client.patch(f"{API}/follow-ups/{follow_up_id}", json={"scheduled_at": scheduled_at})
    assert locked.status_code == 422


async def test_merge_and_duplicates(client):
    first = (await client.post(f"{API}/leads/", json={"name": "Asha", "mobile": "9000000001", "email": "asha@example.com"})).json()
    await client.patch(f"{API}/leads/{first['id']}", json={"is_active": False})
    second = (await client.post(f"{API}/leads/", json={"name": "Asha R", "mobile": "9000000001"})).json()

    groups = (await client.get(f"{API}/leads/duplicates")).json()
    assert len(groups) == 1

    response = await client.post(f"{API}/leads/merge", json={"primary_id": second["id"], "duplicate_ids": [first["id"]]})
    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert (await client.get(f"{API}/leads/{first['id']}")).status_code == 404


async def test_import_reports_partial_failure(client):
    response = await client.post(f"{API}/leads/import", json={"leads": [
        {"name": "Row One", "mobile": "9111111111"},
        {"name": "R", "mobile": "9222222222"},
    ]})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "partial_failure"
    assert data["failed_ids"] == ["2"]


async def test_distribution_settings(client):
    current = await client.get(f"{API}/distribution-settings/")
    assert current.status_code == 200
    assert current.json()["is_enabled"] is False

    updated = await client.patch(f"{API}/distribution-settings/", json={"is_enabled": True})
    assert updated.json()["is_enabled"] is True

    rejected = await client.patch(f"{API}/distribution-settings/", json={"method": "weighted"})
    assert rejected.status_code == 422


async def test_pipeline_and_summary(client, sample_lead_data):
    await client.post(f"{API}/leads/", json=sample_lead_data)

    board = (await client.get(f"{API}/leads/pipeline")).json()
    assert board[0]["stage"] == "new_lead"
    assert board[0]["count"] == 1

    summary = (await client.get(f"{API}/leads/summary")).json()
    assert summary["total_leads"] == 1
    assert summary["by_temperature"]["unscored"] == 1


async def test_list_leads_rejects_unknown_sort_order(client):
    response = await client.get(f"{API}/leads/", params={"sort_order": "bogus"})

    assert response.status_code == 422
    assert response.json()["detail"]["field"] == "sort_order"
