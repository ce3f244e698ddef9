"""Flow-level tests for the pipeline orchestrator."""
from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from audiencesync.audiences.hashing import hash_phone
from audiencesync.pipeline import orchestrator as orchestrator_module
from audiencesync.pipeline.orchestrator import Orchestrator, lookalike_name

from conftest import ACCOUNT, ACCOUNT_PATH, API_VERSION, api_error, body_of

AUDIENCES = f"{ACCOUNT_PATH}/customaudiences"
CAMPAIGNS = f"{ACCOUNT_PATH}/campaigns"
INSIGHTS = f"{ACCOUNT_PATH}/insights"


def users_path(audience_id: str) -> str:
    return f"/{API_VERSION}/{audience_id}/users"


def echo_received(request: httpx.Request) -> httpx.Response:
    rows = body_of(request)["data"]
    return httpx.Response(
        200,
        json={"audience_id": "aud-1", "num_received": len(rows), "num_invalid_entries": 0},
    )


def insight_row(cid: str, spend: str, clicks: str, actions=None) -> dict:
    row = {
        "campaign_id": cid,
        "campaign_name": f"Campaign {cid}",
        "date_start": "2026-10-11",
        "date_stop": "2026-10-17",
        "spend": spend,
        "impressions": "100",
        "clicks": clicks,
    }
    if actions:
        row["actions"] = actions
    return row


@pytest.fixture
def orchestrator(make_context) -> Orchestrator:
    return Orchestrator(make_context())


# ── Sync ──


def test_sync_scenario_two_phones(fake_meta, orchestrator, cache) -> None:
    fake_meta.on("GET", AUDIENCES, {"data": []})
    fake_meta.on("POST", AUDIENCES, {"id": "aud-1"})
    fake_meta.on("POST", users_path("aud-1"), echo_received)

    result = asyncio.run(
        orchestrator.sync_phone_audience(["+7 (999) 123-45-67", "89991112233"])
    )

    assert result.success, result.message
    assert result.data["upload"]["received"] == 2
    assert result.data["upload"]["invalid"] == 0
    assert result.data["upload"]["batches_total"] == 1
    sent = body_of(fake_meta.calls("POST", users_path("aud-1"))[0])["data"]
    assert sent == [[hash_phone("79991234567")], [hash_phone("89991112233")]]
    assert sent[0] != sent[1]
    assert all(len(h[0]) == 64 for h in sent)
    assert cache.get("audience:Phone Audience") == "aud-1"


def test_sync_drops_identifiers_without_digits(fake_meta, orchestrator, cache) -> None:
    cache.put("audience:Phone Audience", "aud-1")
    fake_meta.on("POST", users_path("aud-1"), echo_received)

    result = asyncio.run(orchestrator.sync_phone_audience(["+7 999 123 45 67", "n/a", ""]))

    assert result.success
    assert result.data["hashed"] == 1
    assert result.data["skipped"] == 2


def test_sync_with_no_usable_phones_makes_no_remote_call(fake_meta, orchestrator) -> None:
    result = asyncio.run(orchestrator.sync_phone_audience(["---", ""]))

    assert not result.success
    assert result.message == "No phone numbers provided"
    assert fake_meta.requests == []


def test_sync_reads_configured_phone_file(fake_meta, make_context, cache, tmp_path) -> None:
    source = tmp_path / "phones.txt"
    source.write_text("# exported nightly\n+7 (999) 123-45-67\n\n89991112233\n")
    cache.put("audience:Phone Audience", "aud-1")
    fake_meta.on("POST", users_path("aud-1"), echo_received)

    result = asyncio.run(
        Orchestrator(make_context(phone_source_path=str(source))).sync_phone_audience()
    )

    assert result.success
    assert result.data["hashed"] == 2


def test_sync_without_phone_source_fails(fake_meta, orchestrator) -> None:
    result = asyncio.run(orchestrator.sync_phone_audience())

    assert not result.success
    assert "phone source" in result.message.lower()


def test_sync_resolve_failure_aborts_before_upload(fake_meta, orchestrator) -> None:
    fake_meta.on("GET", AUDIENCES, api_error(401, "Session expired"))

    result = asyncio.run(orchestrator.sync_phone_audience(["+79997778899"]))

    assert not result.success
    assert "Session expired" in result.message
    assert [r for r in fake_meta.requests if r.url.path.endswith("/users")] == []


def test_sync_partial_upload_failure_reports_counts(fake_meta, make_context, cache) -> None:
    cache.put("audience:Phone Audience", "aud-1")
    fake_meta.on(
        "POST",
        users_path("aud-1"),
        {"audience_id": "aud-1", "num_received": 2, "num_invalid_entries": 0},
        api_error(500, "upload broke"),
    )
    orchestrator = Orchestrator(make_context(upload_batch_size=2))

    result = asyncio.run(
        orchestrator.sync_phone_audience(["+79990000001", "+79990000002", "+79990000003"])
    )

    assert not result.success
    assert "batch 2 of 2" in result.message
    assert result.data["upload"]["received"] == 2
    assert result.data["upload"]["failed_batch"] == 1


def test_concurrent_runs_of_same_flow_are_rejected(fake_meta, orchestrator, cache) -> None:
    cache.put("audience:Phone Audience", "aud-1")
    fake_meta.on("POST", users_path("aud-1"), echo_received)

    async def scenario():
        lock = orchestrator_module._RUN_LOCKS.setdefault(f"{ACCOUNT}:sync", asyncio.Lock())
        async with lock:
            busy = await orchestrator.sync_phone_audience(["+79990000001"])
        free = await orchestrator.sync_phone_audience(["+79990000001"])
        return busy, free

    busy, free = asyncio.run(scenario())

    assert not busy.success
    assert "already in progress" in busy.message
    assert free.success


# ── Lookalike ──


def test_lookalike_from_cached_source(fake_meta, orchestrator, cache) -> None:
    cache.put("audience:Phone Audience", "aud-1")
    fake_meta.on("POST", AUDIENCES, {"id": "la-1"})

    result = asyncio.run(orchestrator.derive_phone_lookalike())

    assert result.success, result.message
    assert result.data["audience_id"] == "la-1"
    assert result.data["name"] == "Phone Audience - Lookalike 1%"
    assert fake_meta.calls("GET", AUDIENCES) == []
    assert cache.get("lookalike:Phone Audience - Lookalike 1%:RU:0.01") == "la-1"


def test_lookalike_falls_back_to_remote_lookup(fake_meta, orchestrator, cache) -> None:
    fake_meta.on("GET", AUDIENCES, {"data": [{"id": "aud-remote", "name": "Phone Audience"}]})
    fake_meta.on("POST", AUDIENCES, {"id": "la-1"})

    result = asyncio.run(orchestrator.derive_phone_lookalike())

    assert result.success
    assert result.data["source_audience_id"] == "aud-remote"
    assert cache.get("audience:Phone Audience") == "aud-remote"
    payload = body_of(fake_meta.calls("POST", AUDIENCES)[0])
    assert payload["subtype"] == "LOOKALIKE"


def test_lookalike_gives_up_without_creating_source(fake_meta, orchestrator) -> None:
    fake_meta.on("GET", AUDIENCES, {"data": []})

    result = asyncio.run(orchestrator.derive_phone_lookalike())

    assert not result.success
    assert "not found" in result.message
    assert fake_meta.calls("POST", AUDIENCES) == []


def test_lookalike_rejects_bad_ratio(fake_meta, orchestrator, cache) -> None:
    cache.put("audience:Phone Audience", "aud-1")

    result = asyncio.run(orchestrator.derive_phone_lookalike(ratio=0.25))

    assert not result.success
    assert "Ratio" in result.message
    assert fake_meta.requests == []


def test_bad_ratio_with_uncached_source_skips_remote_lookup(fake_meta, orchestrator) -> None:
    fake_meta.on("GET", AUDIENCES, {"data": [{"id": "aud-remote", "name": "Phone Audience"}]})

    result = asyncio.run(orchestrator.derive_phone_lookalike(ratio=0.25))

    assert not result.success
    assert "Ratio" in result.message
    assert fake_meta.requests == []


def test_lookalike_name() -> None:
    assert lookalike_name("Phone Audience", 0.01) == "Phone Audience - Lookalike 1%"
    assert lookalike_name("Phone Audience", 0.05) == "Phone Audience - Lookalike 5%"


# ── Scheduled chain ──


def test_scheduled_chain_skips_lookalike_when_sync_fails(fake_meta, orchestrator) -> None:
    result = asyncio.run(orchestrator.run_scheduled())

    assert not result.success
    assert result.data["lookalike"] is None
    assert fake_meta.calls("POST", AUDIENCES) == []


def test_scheduled_chain_runs_both(fake_meta, make_context, cache, tmp_path) -> None:
    source = tmp_path / "phones.txt"
    source.write_text("+79997778899\n")
    fake_meta.on("GET", AUDIENCES, {"data": []})
    fake_meta.on("POST", AUDIENCES, {"id": "aud-1"}, {"id": "la-1"})
    fake_meta.on("POST", users_path("aud-1"), echo_received)

    result = asyncio.run(
        Orchestrator(make_context(phone_source_path=str(source))).run_scheduled()
    )

    assert result.success, result.message
    assert result.data["sync"]["success"]
    assert result.data["lookalike"]["data"]["audience_id"] == "la-1"
    assert result.data["lookalike"]["data"]["source_audience_id"] == "aud-1"


# ── Metrics ──


def test_metrics_flow_persists_snapshot(fake_meta, orchestrator, cache) -> None:
    fake_meta.on(
        "GET",
        CAMPAIGNS,
        {
            "data": [
                {"id": "c1", "name": "One", "status": "ACTIVE"},
                {"id": "c2", "name": "Two", "status": "PAUSED"},
                {"id": "c3", "name": "Three", "status": "ACTIVE"},
            ]
        },
    )
    fake_meta.on(
        "GET",
        INSIGHTS,
        {
            "data": [
                insight_row("c1", "10", "5", [{"action_type": "purchase", "value": "1"}]),
                insight_row("c3", "20", "5"),
            ]
        },
    )

    result = asyncio.run(orchestrator.collect_metrics())

    assert result.success, result.message
    assert json.loads(cache.get("active_campaigns")) == ["c1", "c3"]
    filtering = json.loads(fake_meta.calls("GET", INSIGHTS)[0].url.params["filtering"])
    assert filtering[0]["value"] == ["c1", "c3"]

    summary = result.data["metrics"]["summary"]
    assert summary["total_spend"] == pytest.approx(30.0)
    assert summary["avg_cpa"] == pytest.approx(30.0)
    assert result.data["date_range"] == "2026-10-11 to 2026-10-17"

    stored = orchestrator.get_stored_metrics()
    assert stored.success
    assert stored.data["metrics"]["summary"] == summary
    assert len(stored.data["metrics"]["records"]) == 2


def test_no_active_campaigns_keeps_previous_snapshot(fake_meta, orchestrator, cache) -> None:
    cache.put("last_metrics", '{"timestamp": "2026-10-01T00:00:00Z", "records": []}')
    before = orchestrator.get_stored_metrics()
    fake_meta.on("GET", CAMPAIGNS, {"data": [{"id": "c1", "status": "PAUSED"}]})

    result = asyncio.run(orchestrator.collect_metrics())

    assert result.success
    assert result.message == "No active campaigns found."
    assert fake_meta.calls("GET", INSIGHTS) == []
    assert orchestrator.get_stored_metrics().model_dump() == before.model_dump()


def test_no_insight_records_writes_nothing(fake_meta, orchestrator, cache) -> None:
    fake_meta.on("GET", CAMPAIGNS, {"data": [{"id": "c1", "status": "ACTIVE"}]})
    fake_meta.on("GET", INSIGHTS, {"data": []})

    result = asyncio.run(orchestrator.collect_metrics())

    assert result.success
    assert "No metrics data" in result.message
    assert cache.get("last_metrics") is None


def test_metrics_listing_failure_is_reported(fake_meta, orchestrator) -> None:
    fake_meta.on("GET", CAMPAIGNS, api_error(500, "graph down"))

    result = asyncio.run(orchestrator.collect_metrics())

    assert not result.success
    assert "graph down" in result.message


def test_stored_metrics_missing(orchestrator) -> None:
    result = orchestrator.get_stored_metrics()

    assert not result.success
    assert "No metrics data found" in result.message
