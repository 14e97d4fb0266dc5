"""API integration tests for /pipelines endpoints."""

import pytest

from config.settings import settings

PAYLOAD = {"packages": ["bash"], "git_ref": "stable"}


@pytest.mark.asyncio
async def test_create_pipeline_for_group(client):
    response = await client.post("/pipelines/", json={"targets": ["mainline"], "payload": PAYLOAD})

    assert response.status_code == 201
    data = response.json()
    expected = sorted(settings.TARGET_GROUPS["mainline"])
    assert data["targets"] == expected
    assert [j["target"] for j in data["jobs"]] == expected
    assert all(j["status"] == "QUEUED" for j in data["jobs"])
    assert all(j["pipeline_id"] == data["id"] for j in data["jobs"])


@pytest.mark.asyncio
async def test_get_pipeline_shows_job_progress(client, store):
    created = (await client.post("/pipelines/", json={"targets": ["amd64", "arm64"], "payload": PAYLOAD})).json()
    amd64_job = created["jobs"][0]["id"]
    store.cancel(amd64_job)

    response = await client.get(f"/pipelines/{created['id']}")

    assert response.status_code == 200
    statuses = {j["target"]: j["status"] for j in response.json()["jobs"]}
    assert statuses == {"amd64": "CANCELLED", "arm64": "QUEUED"}


@pytest.mark.asyncio
async def test_create_pipeline_unknown_target(client):
    response = await client.post("/pipelines/", json={"targets": ["amd64", "vax"], "payload": PAYLOAD})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_pipeline_without_targets(client):
    response = await client.post("/pipelines/", json={"targets": [], "payload": PAYLOAD})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_unknown_pipeline(client):
    response = await client.get("/pipelines/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
