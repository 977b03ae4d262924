"""
Unit Tests: Session and Usage Tool Handlers

Tests:
    - Session create (default and resume) responses
    - Session close messages for success, partial failure and idle state
    - Usage stats scopes and reset ordering
    - Action call metering against the active session
"""

import pytest

from browsermesh.api.tools import SessionTools, ToolResponse
from browsermesh.core.errors import ErrorCode, SessionCreationError
from browsermesh.reliability.retry import RetryPolicy
from browsermesh.session.registry import SessionRegistry
from browsermesh.storage.resources import ResourceStore
from browsermesh.usage.meter import UsageMetrics
from browsermesh.tests.conftest import FlakyBackend


@pytest.fixture
def tools(registry, meter, config):
    return SessionTools(registry, meter, config)


class TestCreateSession:
    """Tests for the create handler."""

    @pytest.mark.asyncio
    async def test_default_session(self, tools, registry):
        response = await tools.create_session()

        assert not response.is_error
        remote_id = response.data["remoteId"]
        assert response.data["sessionId"] == registry.default_session_id
        assert response.data["liveViewUrl"] == f"https://www.browserbase.com/sessions/{remote_id}"
        assert response.data["debuggerUrl"] == f"https://debugger.example/{remote_id}"
        assert response.content[0] == (
            f"Browserbase Live Session View URL: https://www.browserbase.com/sessions/{remote_id}"
        )

    @pytest.mark.asyncio
    async def test_session_id_is_resumed(self, tools, engine, registry):
        response = await tools.create_session("bb-1234")

        assert engine.opened[0].session_id == "bb-1234"
        assert engine.opened[0].resume_id == "bb-1234"
        assert response.data["remoteId"] == "bb-1234"
        assert registry.active_session_id == "bb-1234"

    @pytest.mark.asyncio
    async def test_failure_is_error_response(self, tools, engine):
        engine.fail_with = RuntimeError("provider down")

        response = await tools.create_session()

        assert response.is_error
        assert response.error_code is ErrorCode.SESSION_CREATION_FAILED
        assert "provider down" in response.text
        assert response.to_dict()["errorCode"] == "SESSION_CREATION_FAILED"


class TestCloseSession:
    """Tests for the close handler."""

    @pytest.mark.asyncio
    async def test_close_named_session_links_replay(self, tools, registry):
        await tools.create_session("bb-1234")

        response = await tools.close_session()

        assert not response.is_error
        assert response.data["previousSessionId"] == "bb-1234"
        assert response.data["remoteId"] == "bb-1234"
        assert response.data["cleanupErrors"] == []
        assert response.text == (
            "Browserbase session (bb-1234) closed successfully. Context reset to default. "
            "View replay at https://www.browserbase.com/sessions/bb-1234"
        )
        assert registry.active_session_id == registry.default_session_id

    @pytest.mark.asyncio
    async def test_close_default_session_has_no_replay_link(self, tools, registry):
        await tools.create_session()

        response = await tools.close_session()

        assert response.text == (
            f"Browserbase session ({registry.default_session_id}) closed successfully. "
            "Context reset to default."
        )

    @pytest.mark.asyncio
    async def test_close_without_session(self, tools):
        response = await tools.close_session()

        assert not response.is_error
        assert response.error_code is ErrorCode.SESSION_NOT_FOUND
        assert response.text == (
            "No active session found to close. Session context has been reset to default."
        )

    @pytest.mark.asyncio
    async def test_close_twice(self, tools):
        await tools.create_session()

        await tools.close_session()
        second = await tools.close_session()

        assert second.text.startswith("No active session found to close.")

    @pytest.mark.asyncio
    async def test_partial_cleanup_failure_still_succeeds(self, engine, meter, config, sleeper):
        store = ResourceStore(
            backend=FlakyBackend(failures=5),
            purge_policy=RetryPolicy(max_attempts=2),
            sleep=sleeper,
        )
        registry = SessionRegistry(engine, store, meter)
        tools = SessionTools(registry, meter, config)
        await tools.create_session("bb-1")

        response = await tools.close_session()

        assert not response.is_error
        assert "some cleanup steps encountered errors" in response.text
        assert response.data["cleanupErrors"][0]["code"] == "RESOURCE_PURGE_FAILED"
        assert "bb-1" not in registry


class TestUsageStats:
    """Tests for the usage handler and call metering."""

    @pytest.mark.asyncio
    async def test_record_call_targets_active_session(self, tools):
        await tools.create_session("bb-1")

        key = tools.record_call("browserbase_stagehand_navigate", "navigate")

        assert key.session_id == "bb-1"
        stats = tools.usage_stats(scope="perSession", session_id="bb-1").data
        assert stats["perSession"]["bb-1"]["operations"]["navigate"]["callCount"] == 1

    def test_scopes(self, tools):
        tools.record_call("browserbase_stagehand_act", "act", session_id="s1")

        assert set(tools.usage_stats("global").data) == {"global"}
        assert set(tools.usage_stats("perSession").data) == {"perSession"}
        assert set(tools.usage_stats("all").data) == {"global", "perSession"}

    def test_unknown_session_filter(self, tools):
        data = tools.usage_stats("all", session_id="nobody").data
        assert data["perSession"] == {"nobody": {"operations": {}}}

    def test_reset_after_snapshot(self, tools, meter):
        tools.record_call(
            "browserbase_stagehand_extract",
            "extract",
            session_id="s1",
            metrics=UsageMetrics(input_tokens=10, output_tokens=2),
        )

        response = tools.usage_stats(reset=True)

        assert response.data["global"]["extract"]["callCount"] == 1
        assert response.data["global"]["extract"]["metrics"]["totalTokens"] == 12
        assert meter.snapshot().to_dict() == {"global": {}, "perSession": {}}

    def test_invalid_scope(self, tools):
        response = tools.usage_stats(scope="galaxy")

        assert response.is_error
        assert response.error_code is ErrorCode.INVALID_ARGUMENT


class TestToolResponse:
    def test_failure_carries_error(self):
        error = SessionCreationError.open_failed("s1", RuntimeError("nope"))
        response = ToolResponse.failure(error)

        wire = response.to_dict()
        assert wire["isError"] is True
        assert wire["data"]["error"]["error_id"] == error.error_id
        assert wire["content"] == [{"type": "text", "text": error.message}]
