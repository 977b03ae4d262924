"""
Replay Fetcher: Post-Hoc Token Accounting for a Remote Session

Queries the provider's replay endpoint once a session closes and sums
the token usage recorded against each page action:

    GET {base_url}/v1/sessions/{remote_id}/replay
    -> {"success": true,
        "data": {"pages": [{"actions": [{"tokenUsage": {
                     "inputTokens": 10, "outputTokens": 4, "timeMs": 120}}]}]}}

The fetch is best effort: fetch() never raises. Missing credentials,
disabled replay, and unreadable payloads all mean "no data" (Ok(None));
transport failures and non-2xx responses come back as Err(UsageFetchError)
for the caller to log.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from browsermesh.core.config import ProviderCredentials, ReplayConfig
from browsermesh.core.errors import UsageFetchError
from browsermesh.core.types import Result, Ok, Err, Timestamp
from browsermesh.usage.meter import UsageMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReplayTotals:
    """Aggregated token/time usage for one remote session."""
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_time_ms: float = 0.0
    action_count: int = 0

    def to_metrics(self) -> UsageMetrics:
        return UsageMetrics(
            input_tokens=self.total_input_tokens,
            output_tokens=self.total_output_tokens,
            time_ms=self.total_time_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalInputTokens": self.total_input_tokens,
            "totalOutputTokens": self.total_output_tokens,
            "totalTimeMs": self.total_time_ms,
            "actionCount": self.action_count,
        }


def summarize_replay(payload: Any) -> Optional[ReplayTotals]:
    """
    Sum tokenUsage across data.pages[].actions[].

    Returns None when the payload does not have the expected shape.
    Actions without tokenUsage are skipped; timeMs is optional.
    """
    try:
        pages = payload["data"]["pages"]
        input_tokens = 0
        output_tokens = 0
        time_ms = 0.0
        actions_with_usage = 0

        for page in pages:
            for action in page["actions"]:
                usage = action.get("tokenUsage")
                if not usage:
                    continue
                input_tokens += int(usage["inputTokens"])
                output_tokens += int(usage["outputTokens"])
                elapsed = usage.get("timeMs")
                if isinstance(elapsed, (int, float)) and not isinstance(elapsed, bool):
                    time_ms += float(elapsed)
                actions_with_usage += 1
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Unreadable replay payload: {type(e).__name__}: {e}")
        return None

    return ReplayTotals(
        total_input_tokens=input_tokens,
        total_output_tokens=output_tokens,
        total_time_ms=time_ms,
        action_count=actions_with_usage,
    )


class UsageReplayFetcher:
    """
    HTTP client for the replay accounting endpoint.

    An injected httpx.AsyncClient is reused and left open; otherwise a
    short-lived client is created per fetch.
    """

    __slots__ = ("_credentials", "_config", "_client")

    def __init__(
        self,
        credentials: ProviderCredentials,
        config: Optional[ReplayConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._credentials = credentials
        self._config = config or ReplayConfig()
        self._client = client

    def replay_url(self, remote_id: str) -> str:
        return f"{self._config.base_url.rstrip('/')}/v1/sessions/{remote_id}/replay"

    def _headers(self, remote_id: str) -> dict[str, str]:
        creds = self._credentials
        return {
            "x-bb-api-key": creds.api_key or "",
            "x-bb-project-id": creds.project_id or "",
            "x-bb-session-id": remote_id,
            "x-stream-response": "true",
            "x-model-api-key": creds.model_api_key or "",
            "x-sent-at": Timestamp.now().to_iso(),
            "x-language": "python",
            "x-sdk-version": self._config.sdk_version,
        }

    async def fetch(self, remote_id: str) -> Result[Optional[ReplayTotals], UsageFetchError]:
        """Fetch and summarize replay usage for `remote_id`."""
        if not self._config.enabled:
            return Ok(None)
        if not remote_id or not self._credentials.complete:
            logger.info("Skipping replay fetch: missing credentials or remote session id")
            return Ok(None)

        try:
            response = await self._get(remote_id)
        except httpx.HTTPError as e:
            return Err(UsageFetchError.request_failed(remote_id, e))

        if response.status_code >= 400:
            return Err(UsageFetchError.bad_status(remote_id, response.status_code))

        try:
            payload = response.json()
        except ValueError as e:
            logger.warning(f"Replay response for {remote_id} is not JSON: {e}")
            return Ok(None)

        return Ok(summarize_replay(payload))

    async def _get(self, remote_id: str) -> httpx.Response:
        url = self.replay_url(remote_id)
        headers = self._headers(remote_id)
        if self._client is not None:
            return await self._client.get(url, headers=headers, timeout=self._config.timeout_s)
        async with httpx.AsyncClient(timeout=self._config.timeout_s) as client:
            return await client.get(url, headers=headers)
