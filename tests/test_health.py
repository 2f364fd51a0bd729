"""
Test health check endpoints
"""


async def test_health_check(client):
    response = await client.get("/health/")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "marketpro-lead-core"
    assert "uptime_seconds" in data


async def test_readiness_without_nats(client):
    response = await client.get("/health/ready")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ready"
    assert data["services"]["database"] == "healthy"
    assert data["services"]["nats"] == "unavailable"


async def test_liveness_check(client):
    response = await client.get("/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "operational"
