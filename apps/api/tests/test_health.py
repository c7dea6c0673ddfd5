import pytest


@pytest.mark.asyncio
async def test_liveness(api_client):
    response = await api_client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"alive": True}


@pytest.mark.asyncio
async def test_readiness_pings_the_queue(api_client, fake_queue):
    fake_queue.ping.return_value = True
    assert (await api_client.get("/health/ready")).json() == {"ready": True}

    fake_queue.ping.side_effect = ConnectionError("redis down")
    response = await api_client.get("/health/ready")
    assert response.status_code == 503
    assert response.json()["missing"] == ["redis"]
