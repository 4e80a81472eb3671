# tests/test_snapshots_api.py
import pytest


def dump(model):
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


async def create_snapshot(client, context, rules, experiments, **options):
    body = {
        "context": dump(context),
        "rules": [dump(r) for r in rules],
        "experiments": [dump(e) for e in experiments],
        "options": options,
    }
    resp = await client.post("/v1/snapshots", json=body)
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.asyncio
async def test_generate_snapshot(authorized_client, context, rules, experiment):
    snap = await create_snapshot(authorized_client, context, rules, [experiment])
    assert snap["tenantId"] == "tenant-123"
    assert snap["checksum"] == "d13e969284352e40ee46d12bdfa0b02aeda20114d7085258808da08f7959b39e"
    assert set(snap["features"]) == {"feature-premium", "feature-beta"}
    assert snap["experiments"]["exp-1"]["bucket"] == 72


@pytest.mark.asyncio
async def test_snapshot_round_trip_over_http(authorized_client, context, rules, experiment):
    snap = await create_snapshot(authorized_client, context, rules, [experiment])

    resp = await authorized_client.post("/v1/snapshots/verify", json={"snapshot": snap})
    assert resp.status_code == 200
    assert resp.json() == {"valid": True, "snapshotId": snap["id"]}

    resp = await authorized_client.post("/v1/snapshots/evaluate", json={
        "featureId": "feature-premium",
        "snapshot": snap,
        "now": "2025-01-01T13:00:00Z",
    })
    assert resp.status_code == 200
    data = resp.json()
    assert data["enabled"] is True
    assert data["reason"].endswith("(from verified snapshot)")


@pytest.mark.asyncio
async def test_tampered_snapshot_is_409(authorized_client, context, rules, experiment):
    snap = await create_snapshot(authorized_client, context, rules, [experiment])
    snap["features"]["feature-premium"]["enabled"] = False

    resp = await authorized_client.post("/v1/snapshots/verify", json={"snapshot": snap})
    assert resp.status_code == 409
    assert resp.json()["error"] == "snapshot_integrity"

    resp = await authorized_client.post("/v1/snapshots/evaluate", json={
        "featureId": "feature-premium", "snapshot": snap, "now": "2025-01-01T13:00:00Z",
    })
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_expired_snapshot_is_410(authorized_client, context, rules, experiment):
    snap = await create_snapshot(authorized_client, context, rules, [experiment], expiresInMs=1000)
    resp = await authorized_client.post("/v1/snapshots/evaluate", json={
        "featureId": "feature-premium", "snapshot": snap, "now": "2025-01-01T12:00:02Z",
    })
    assert resp.status_code == 410
    assert resp.json()["error"] == "snapshot_expired"


@pytest.mark.asyncio
async def test_snapshot_from_other_tenant_is_403(authorized_client, context, rules, experiment):
    snap = await create_snapshot(authorized_client, context, rules, [experiment])
    resp = await authorized_client.post(
        "/v1/snapshots/evaluate",
        json={"featureId": "feature-premium", "snapshot": snap, "now": "2025-01-01T13:00:00Z"},
        headers={"X-Tenant-ID": "other-tenant"},
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "tenant_mismatch"


@pytest.mark.asyncio
async def test_verify_snapshot_from_other_tenant_is_403(authorized_client, context, rules, experiment):
    snap = await create_snapshot(authorized_client, context, rules, [experiment])
    resp = await authorized_client.post(
        "/v1/snapshots/verify",
        json={"snapshot": snap},
        headers={"X-Tenant-ID": "other-tenant"},
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "tenant_mismatch"


@pytest.mark.asyncio
async def test_out_of_range_lifetime_is_422(authorized_client, context, rules):
    body = {
        "context": dump(context),
        "rules": [dump(r) for r in rules],
        "experiments": [],
        "options": {"expiresInMs": 10**15},
    }
    resp = await authorized_client.post("/v1/snapshots", json=body)
    assert resp.status_code == 422
