"""Shared fixtures: in-memory KV store and a scripted fake of the Meta API."""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Tuple

import httpx
import pytest

from audiencesync.config import Settings
from audiencesync.connectors.meta.client import MetaClient
from audiencesync.connectors.meta.endpoints import MetaEndpoints
from audiencesync.core.rate_limit import NoopRateLimiter
from audiencesync.database import build_engine, init_db
from audiencesync.pipeline.context import PipelineContext
from audiencesync.storage.kv_store import SQLModelKVStore
from audiencesync.storage.resource_cache import ResourceCache

BASE_URL = "https://graph.test"
API_VERSION = "v22.0"
ACCOUNT = "act_123"
ACCOUNT_PATH = f"/{API_VERSION}/{ACCOUNT}"


Reply = Any  # dict (JSON 200), httpx.Response, or callable(request) -> httpx.Response


class FakeMeta:
    """Scripted stand-in for the Graph API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._routes: Dict[Tuple[str, str], List[Reply]] = {}

    def on(self, method: str, path: str, *replies: Reply) -> "FakeMeta":
        """Queue replies for a route. The last reply repeats once the queue drains."""
        self._routes[(method.upper(), path)] = list(replies)
        return self

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [
            r for r in self.requests if r.method == method.upper() and r.url.path == path
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        replies = self._routes.get((request.method, request.url.path))
        if not replies:
            return httpx.Response(
                404, json={"error": {"message": f"no route {request.url.path}", "code": 803}}
            )
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if callable(reply):
            return reply(request)
        if isinstance(reply, httpx.Response):
            # Fresh copy so a repeated reply is never an already-read response
            return httpx.Response(
                reply.status_code, headers=reply.headers, content=reply.content
            )
        return httpx.Response(200, json=reply)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def body_of(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content or b"{}")


def api_error(status: int, message: str = "boom", code: int = 100) -> httpx.Response:
    return httpx.Response(status, json={"error": {"message": message, "code": code}})


@pytest.fixture
def fake_meta() -> FakeMeta:
    return FakeMeta()


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def cache(engine) -> ResourceCache:
    return ResourceCache(SQLModelKVStore(engine))


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        meta_access_token="test-token",
        meta_ad_account_id=ACCOUNT,
        meta_base_url=BASE_URL,
        meta_api_version=API_VERSION,
        upload_pacing_seconds=0,
        upload_max_attempts=1,
        phone_source_path=None,
    )


@pytest.fixture
def client(fake_meta, test_settings) -> MetaClient:
    return MetaClient(
        access_token=test_settings.meta_access_token,
        ad_account_id=test_settings.meta_ad_account_id,
        base_url=BASE_URL,
        api_version=API_VERSION,
        transport=fake_meta.transport,
        retry_base_delay=0,
    )


@pytest.fixture
def endpoints(client) -> MetaEndpoints:
    return MetaEndpoints(client)


@pytest.fixture
def make_context(client, cache, test_settings) -> Callable[..., PipelineContext]:
    def _make(**overrides: Any) -> PipelineContext:
        settings = test_settings.model_copy(update=overrides) if overrides else test_settings
        return PipelineContext(
            settings=settings,
            client=client,
            cache=cache,
            rate_limiter_factory=NoopRateLimiter,
        )

    return _make
