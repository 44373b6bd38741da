"""Tests for Tool Registry."""

import httpx
import pytest
from webhook_tools import (
    CredentialResolver,
    ExecutionEngine,
    HealthMonitor,
    InvalidToolError,
    Manifest,
    RateLimiter,
    ToolNotFoundError,
    ToolRegistry,
)


@pytest.fixture
def requests_seen():
    """Requests received by the mock webhook."""
    return []


@pytest.fixture
def engine(requests_seen, clock):
    """Engine backed by a mock webhook that answers every call with 200."""
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        return httpx.Response(200, json={"path": request.url.path})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ExecutionEngine(
        client=client,
        credential_resolver=CredentialResolver(env={}),
        rate_limiter=RateLimiter(clock=clock),
        health_monitor=HealthMonitor(client=client),
    )


@pytest.fixture
def registry(engine, sample_manifest):
    """Registry over the sample manifest (one invalid entry)."""
    return ToolRegistry.from_manifest(Manifest.model_validate(sample_manifest), engine)


class TestToolRegistry:
    """Test cases for ToolRegistry."""

    def test_registration_normalizes(self, registry):
        """Test shorthand entries are expanded on registration."""
        assert registry.tool_count == 3
        assert registry.get_tool("send_invoice")["method"] == "POST"
        assert registry.get_tool("missing") is None

    def test_duplicate_registration_rejected(self, registry):
        """Test registering a taken name raises."""
        with pytest.raises(ValueError):
            registry.register_tool({"name": "echo", "webhook": "https://x.io/other"})

    def test_unregister(self, registry):
        """Test removing a tool."""
        registry.unregister_tool("broken")

        assert "broken" not in registry
        with pytest.raises(KeyError):
            registry.unregister_tool("broken")

    def test_list_filters_invalid(self, registry):
        """Test invalid entries are silently left out of the listing."""
        names = [tool["name"] for tool in registry.list_tools()]

        assert names == [
            "echo",
            "send_invoice",
            "webhook_health_check",
            "webhook_health_status",
            "webhook_rate_limit_status",
        ]

    def test_list_descriptor_shape(self, registry):
        """Test descriptors carry name, description and input schema."""
        descriptor = registry.list_tools()[1]

        assert descriptor == {
            "name": "send_invoice",
            "description": "Forward to Send Invoice webhook",
            "inputSchema": {"type": "object", "properties": {}},
        }

    @pytest.mark.asyncio
    async def test_call_tool(self, registry, requests_seen):
        """Test calling a registered tool executes it."""
        result = await registry.call_tool("echo", {"message": "hi"}, {"X-Trace": "1"})

        assert result.success
        assert result.data == {"path": "/echo"}
        assert requests_seen[0].headers["x-trace"] == "1"

    @pytest.mark.asyncio
    async def test_call_unknown_tool(self, registry):
        """Test unknown names raise ToolNotFoundError."""
        with pytest.raises(ToolNotFoundError) as exc_info:
            await registry.call_tool("nope", {})

        assert exc_info.value.code == "method_not_found"

    @pytest.mark.asyncio
    async def test_call_invalid_tool(self, registry, requests_seen):
        """Test calling an invalid entry raises before any request."""
        with pytest.raises(InvalidToolError):
            await registry.call_tool("broken", {})

        assert requests_seen == []


class TestDiagnosticTools:
    """Test cases for the built-in diagnostic tools."""

    @pytest.mark.asyncio
    async def test_health_status(self, registry):
        """Test the aggregate health tool reflects executions."""
        await registry.call_tool("echo", {})

        result = await registry.call_tool("webhook_health_status", {})

        assert result.success
        assert result.data["total_tools"] == 1
        assert result.data["tools"]["echo"]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_health_check(self, registry, requests_seen):
        """Test the health check tool issues a HEAD request."""
        result = await registry.call_tool("webhook_health_check", {"name": "echo"})

        assert result.success
        assert result.data["check"]["healthy"] is True
        assert requests_seen[0].method == "HEAD"
        assert result.data["health"]["total_requests"] == 0

    @pytest.mark.asyncio
    async def test_rate_limit_status(self, engine):
        """Test the rate limit tool reports window usage."""
        registry = ToolRegistry(engine, [{
            "name": "limited",
            "webhook": "https://x.io/limited",
            "rateLimit": {"requests": 5, "window": 1000},
        }])
        await registry.call_tool("limited", {})

        result = await registry.call_tool("webhook_rate_limit_status", {"name": "limited"})

        assert result.data["requests"] == 1
        assert result.data["limit"] == 5
        assert result.data["configured"] is True

    @pytest.mark.asyncio
    async def test_diagnostic_unknown_target(self, registry):
        """Test diagnostics on unknown tools fail without raising."""
        result = await registry.call_tool("webhook_rate_limit_status", {"name": "ghost"})

        assert not result.success
        assert result.status == 404


class TestExecutionPolicy:
    """Test cases for execution policy values at call time."""

    @pytest.mark.asyncio
    async def test_fractional_policy_rejected(self, engine, requests_seen):
        """Test a fractional timeout is neither listed nor callable."""
        registry = ToolRegistry(engine, [{
            "name": "fractional",
            "webhook": "https://x.io/fractional",
            "timeout": 2500.5,
        }])

        assert "fractional" not in [tool["name"] for tool in registry.list_tools()]
        with pytest.raises(InvalidToolError):
            await registry.call_tool("fractional", {})
        assert requests_seen == []

    @pytest.mark.asyncio
    async def test_whole_float_policy_accepted(self, engine):
        """Test a float timeout without a fractional part is usable."""
        registry = ToolRegistry(engine, [{
            "name": "whole",
            "webhook": "https://x.io/whole",
            "timeout": 2500.0,
        }])

        result = await registry.call_tool("whole", {})

        assert result.success
