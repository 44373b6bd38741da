"""Health Monitor - Rolling per-tool execution statistics.

Every execution outcome is folded into in-memory counters; status queries
derive a health classification from the success rate. Live probes are a
separate diagnostic and never touch the counters.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

import httpx

from .types import (
    ExecutionResult,
    HealthCheckResult,
    HealthStatus,
    LastError,
    OverallHealth,
    ToolDefinition,
    ToolHealth,
    utc_now,
)

logger = logging.getLogger(__name__)

HEALTH_CHECK_USER_AGENT = "webhook-tools-healthcheck/1.0"


@dataclass
class HealthStats:
    """Counters for one tool."""
    total: int = 0
    success: int = 0
    errors: int = 0
    avg_response_time: float = 0.0
    last_success: Optional[datetime] = None
    last_error: Optional[LastError] = None
    error_types: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


def classify(success_rate: float) -> HealthStatus:
    """Map a success percentage onto a health status."""
    if success_rate < 50:
        return HealthStatus.CRITICAL
    if success_rate < 80:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


class HealthMonitor:
    """
    Endpoint reliability tracking.

    Responsibilities:
    - Record every execution result per tool
    - Report per-tool and aggregate health
    - Probe endpoints on demand
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        check_timeout: float = 5.0,
    ):
        self._stats: Dict[str, HealthStats] = {}
        self._client = client
        self._owns_client = client is None
        self.check_timeout = check_timeout

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.check_timeout, follow_redirects=True)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this monitor created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    def record_execution(self, tool_name: str, result: ExecutionResult) -> None:
        """
        Fold one execution outcome into the tool's counters.

        Args:
            tool_name: Tool identifier
            result: Final result returned to the caller
        """
        stats = self._stats.setdefault(tool_name, HealthStats())
        stats.total += 1

        if result.success:
            stats.success += 1
            stats.last_success = result.timestamp
            if result.response_time is not None:
                # Running mean over successful calls
                stats.avg_response_time = (
                    stats.avg_response_time * (stats.success - 1) + result.response_time
                ) / stats.success
        else:
            stats.errors += 1
            stats.last_error = LastError(
                timestamp=result.timestamp,
                error=result.error,
                status=result.status,
            )
            error_type = result.error_type.value if result.error_type else "unknown"
            stats.error_types[error_type] += 1

    def get_health(self, tool_name: str) -> ToolHealth:
        """
        Health snapshot for a tool.

        Returns:
            ToolHealth with status `unknown` when nothing was recorded
        """
        stats = self._stats.get(tool_name)
        if stats is None or stats.total == 0:
            return ToolHealth(status=HealthStatus.UNKNOWN)

        success_rate = stats.success / stats.total * 100

        return ToolHealth(
            status=classify(success_rate),
            success_rate=round(success_rate, 2),
            total_requests=stats.total,
            successful_requests=stats.success,
            error_requests=stats.errors,
            avg_response_time=round(stats.avg_response_time),
            last_success=stats.last_success,
            last_error=stats.last_error,
            error_types=dict(stats.error_types),
        )

    def get_overall_health(self) -> OverallHealth:
        """Aggregate health across every tool with recorded executions."""
        summary = OverallHealth(total_tools=len(self._stats))

        for tool_name in self._stats:
            health = self.get_health(tool_name)
            summary.tools[tool_name] = health
            if health.status == HealthStatus.HEALTHY:
                summary.healthy += 1
            elif health.status == HealthStatus.DEGRADED:
                summary.degraded += 1
            elif health.status == HealthStatus.CRITICAL:
                summary.critical += 1
            else:
                summary.unknown += 1

        return summary

    async def perform_health_check(self, tool: ToolDefinition) -> HealthCheckResult:
        """
        Probe a tool's endpoint with a bodiless HEAD request.

        Uses a fixed short timeout independent of the tool's own policy.
        Any status below 400 counts as reachable.
        """
        client = await self._get_client()
        start = time.monotonic()

        try:
            response = await client.head(
                tool.url,
                headers={"User-Agent": HEALTH_CHECK_USER_AGENT},
                timeout=self.check_timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            response_time = int((time.monotonic() - start) * 1000)
            logger.warning(f"Health check failed for {tool.name}: {e!r} ({response_time}ms)")
            return HealthCheckResult(
                tool=tool.name,
                healthy=False,
                error=str(e) or type(e).__name__,
                response_time=response_time,
            )

        response_time = int((time.monotonic() - start) * 1000)
        healthy = response.status_code < 400
        logger.debug(f"Health check for {tool.name}: {response.status_code} ({response_time}ms)")

        return HealthCheckResult(
            tool=tool.name,
            healthy=healthy,
            status=response.status_code,
            response_time=response_time,
            timestamp=utc_now(),
        )

    def clear_stats(self, tool_name: str) -> None:
        """Reset the counters of one tool."""
        self._stats.pop(tool_name, None)

    def clear_all_stats(self) -> None:
        """Reset every counter."""
        self._stats.clear()
