"""Pytest configuration and fixtures for webhook tool tests."""

import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingSleep:
    """Async sleep stand-in that records requested delays (seconds)."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def clock():
    """Clock starting at t=0ms."""
    return FakeClock()


@pytest.fixture
def recording_sleep():
    """Sleep that returns immediately and records delays."""
    return RecordingSleep()


@pytest.fixture
def echo_tool():
    """Canonical tool entry posting to an echo webhook."""
    return {
        "name": "echo",
        "description": "Echo the message back",
        "url": "https://x/echo",
        "method": "POST",
        "input": {},
        "output": {},
    }


@pytest.fixture
def sample_manifest():
    """Manifest document mixing canonical, shorthand and broken entries."""
    return {
        "name": "test-server",
        "version": "1.0.0",
        "tools": [
            {
                "name": "echo",
                "description": "Echo the message back",
                "url": "https://hooks.example.com/echo",
                "method": "POST",
                "input": {"type": "object", "properties": {"message": {"type": "string"}}},
                "output": {},
            },
            {
                "name": "send_invoice",
                "webhook": "https://hooks.example.com/webhook/send-invoice",
            },
            {
                "name": "broken",
                "description": "Missing its url",
            },
        ],
    }
