"""audiencesync — Meta API Client.

Handles authentication, opt-in retry, rate-limit backoff, and pagination.

Calls are single-shot by default. Only idempotent-on-the-remote operations
(hashed user uploads) opt into retries, so resource creation is never
duplicated by a blind retry.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from audiencesync.config import settings
from audiencesync.core.errors import RemoteAPIError
from audiencesync.core.logging import get_logger

logger = get_logger("meta.client")

RETRY_BASE_DELAY = 2  # seconds
REQUEST_TIMEOUT = 30.0


class MetaAPIError(RemoteAPIError):
    """Raised when Meta API returns an error."""


def _error_body(resp: httpx.Response) -> Dict[str, Any]:
    if resp.headers.get("content-type", "").startswith("application/json"):
        try:
            body = resp.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
    return {}


class MetaClient:
    """Async HTTP client for Meta Marketing API."""

    def __init__(
        self,
        access_token: str | None = None,
        ad_account_id: str | None = None,
        base_url: str | None = None,
        api_version: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ):
        self.access_token = access_token or settings.meta_access_token
        self.ad_account_id = ad_account_id or settings.meta_ad_account_id
        self.base = (
            f"{base_url or settings.meta_base_url}/"
            f"{api_version or settings.meta_api_version}"
        )
        self.retry_base_delay = retry_base_delay
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=REQUEST_TIMEOUT, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def url(self, *parts: str) -> str:
        return "/".join([self.base, *parts])

    @property
    def account_url(self) -> str:
        return self.url(self.ad_account_id)

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        url: str,
        params: Dict[str, Any] | None = None,
        json_body: Dict[str, Any] | None = None,
        max_attempts: int = 1,
    ) -> Dict[str, Any]:
        """Make a request; retry 429/5xx/transport errors up to ``max_attempts``."""
        params = dict(params or {})
        params["access_token"] = self.access_token
        # Merge so a paging.next URL keeps its own cursor
        request_url = httpx.URL(url).copy_merge_params(params)
        max_attempts = max(1, max_attempts)

        client = await self._get_client()

        for attempt in range(1, max_attempts + 1):
            wait = self.retry_base_delay * (2 ** (attempt - 1))
            try:
                resp = await client.request(method, request_url, json=json_body)

                # Rate limited
                if resp.status_code == 429 and attempt < max_attempts:
                    logger.warning(
                        f"Rate limited (429). Retrying in {wait}s (attempt {attempt}/{max_attempts})"
                    )
                    await asyncio.sleep(wait)
                    continue

                resp.raise_for_status()
                try:
                    return resp.json()
                except ValueError as e:
                    content_type = resp.headers.get("content-type", "unknown")
                    logger.error(
                        f"Non-JSON response ({content_type}) from {request_url.path}",
                        extra={"status_code": resp.status_code},
                    )
                    raise MetaAPIError(
                        f"Non-JSON response ({content_type}) from Meta API",
                        resp.status_code,
                    ) from e

            except httpx.HTTPStatusError as e:
                body = _error_body(e.response)
                error = body.get("error", {}) if isinstance(body.get("error"), dict) else {}
                error_msg = error.get("message", str(e))
                error_code = error.get("code", 0)

                if attempt < max_attempts and e.response.status_code >= 500:
                    logger.warning(
                        f"Server error {e.response.status_code}. Retrying in {wait}s"
                    )
                    await asyncio.sleep(wait)
                    continue

                logger.error(
                    f"Meta API error {e.response.status_code}: {error_msg}",
                    extra={"status_code": e.response.status_code},
                )
                raise MetaAPIError(
                    error_msg, e.response.status_code, error_code, body
                ) from e

            except httpx.RequestError as e:
                if attempt < max_attempts:
                    logger.warning(f"Request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise MetaAPIError(
                    f"Connection failed after {max_attempts} attempt(s): {e}"
                ) from e

        raise MetaAPIError("Max retries exhausted")

    async def get(self, url: str, params: Dict[str, Any] | None = None) -> Dict[str, Any]:
        return await self._request("GET", url, params)

    async def post(
        self,
        url: str,
        payload: Dict[str, Any],
        max_attempts: int = 1,
    ) -> Dict[str, Any]:
        return await self._request("POST", url, json_body=payload, max_attempts=max_attempts)

    # ── Pagination ──

    async def _paginated_get(
        self,
        url: str,
        params: Dict[str, Any] | None = None,
        max_pages: int = 50,
    ) -> List[Dict[str, Any]]:
        """Fetch all pages of a paginated listing. Any page failure raises."""
        all_data: List[Dict[str, Any]] = []
        params = params or {}
        current_url = url

        for page in range(max_pages):
            result = await self._request(
                "GET", current_url, params if page == 0 else None
            )
            data = result.get("data", [])
            all_data.extend(data)

            # Check for next page
            paging = result.get("paging", {}) or {}
            next_url = paging.get("next")
            if not next_url:
                break
            current_url = next_url

        logger.info(f"Fetched {len(all_data)} records from {url}")
        return all_data
