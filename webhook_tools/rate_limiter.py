"""Rate Limiter - Per-tool sliding window admission control.

Single-process and in-memory. The check-and-append in `is_allowed` contains
no suspension point, so concurrent executions on one event loop cannot
interleave inside it.
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Union

from .types import RateLimitConfig, RateLimitStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
RateLimitLike = Union[RateLimitConfig, Dict[str, int]]


def wall_clock_ms() -> float:
    """Milliseconds since the epoch."""
    return time.time() * 1000


def _as_config(config: Optional[RateLimitLike]) -> Optional[RateLimitConfig]:
    if config is None or isinstance(config, RateLimitConfig):
        return config
    return RateLimitConfig.model_validate(config)


class RateLimiter:
    """
    Sliding window rate limiter keyed by tool name.

    Each tool keeps the ordered timestamps of its admitted requests. On
    every check the timestamps older than the window are dropped; a request
    is admitted (and recorded) only while fewer than `requests` remain.
    Rejected requests are not recorded.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or wall_clock_ms
        # Tool name -> admitted request timestamps (epoch ms, ascending)
        self._windows: Dict[str, List[float]] = defaultdict(list)

    def _prune(self, tool_name: str, window: int, now: float) -> List[float]:
        window_start = now - window
        valid = [ts for ts in self._windows.get(tool_name, []) if ts > window_start]
        self._windows[tool_name] = valid
        return valid

    def is_allowed(self, tool_name: str, config: Optional[RateLimitLike]) -> bool:
        """
        Check a request against the tool's quota and record it if admitted.

        Args:
            tool_name: Tool identifier
            config: `{requests, window}` quota; None or zero values disable limiting

        Returns:
            True if the request is within the quota
        """
        config = _as_config(config)
        if config is None or not config.requests or not config.window:
            return True

        now = self._clock()
        valid = self._prune(tool_name, config.window, now)

        if len(valid) >= config.requests:
            logger.warning(
                f"Rate limit exceeded for {tool_name}: "
                f"{len(valid)}/{config.requests} requests in {config.window}ms window"
            )
            return False

        valid.append(now)
        logger.debug(f"Rate limit check for {tool_name}: {len(valid)}/{config.requests} requests")
        return True

    def get_status(self, tool_name: str, config: Optional[RateLimitLike]) -> RateLimitStatus:
        """
        Current usage of a tool's window. Read-only.

        `reset_time` is when the oldest counted request leaves the window.
        """
        config = _as_config(config)
        if config is None:
            return RateLimitStatus(requests=0, limit=0, reset_time=None)
        if tool_name not in self._windows:
            return RateLimitStatus(requests=0, limit=config.requests, reset_time=None)

        window_start = self._clock() - config.window
        valid = [ts for ts in self._windows[tool_name] if ts > window_start]

        return RateLimitStatus(
            requests=len(valid),
            limit=config.requests,
            reset_time=int(valid[0] + config.window) if valid else None,
        )

    def clear(self, tool_name: str) -> None:
        """Forget the window of one tool."""
        self._windows.pop(tool_name, None)

    def clear_all(self) -> None:
        """Forget every window."""
        self._windows.clear()
