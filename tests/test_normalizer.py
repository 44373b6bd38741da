"""Tests for Manifest Normalizer."""

import pytest
from webhook_tools import ManifestNormalizer
from webhook_tools.normalizer import describe_webhook


@pytest.fixture
def normalizer():
    """Create a normalizer."""
    return ManifestNormalizer()


class TestDescribeWebhook:
    """Test cases for webhook label derivation."""

    def test_last_path_segment(self):
        """Test that the last segment is title-cased with separators replaced."""
        assert describe_webhook("https://n8n.example.com/webhook/send-invoice") == "Send Invoice webhook"

    def test_underscores(self):
        """Test underscores are treated like dashes."""
        assert describe_webhook("https://x.io/hooks/daily_report/") == "Daily Report webhook"

    def test_falls_back_to_host(self):
        """Test host name when there is no path."""
        assert describe_webhook("https://hooks.example.com/") == "hooks.example.com webhook"

    def test_unparseable(self):
        """Test the literal fallback for non-URLs."""
        assert describe_webhook("not a url") == "webhook"


class TestManifestNormalizer:
    """Test cases for ManifestNormalizer."""

    def test_shorthand_expansion(self, normalizer):
        """Test a {name, webhook} entry becomes a canonical entry."""
        entry = {"name": "invoice", "webhook": "https://n8n.example.com/webhook/send-invoice"}

        tool = normalizer.normalize(entry)

        assert tool["url"] == entry["webhook"]
        assert "webhook" not in tool
        assert tool["method"] == "POST"
        assert tool["description"] == "Forward to Send Invoice webhook"
        assert tool["input"] == {"type": "object", "properties": {}}
        assert list(tool["output"]["properties"]) == ["result"]
        assert tool["public"] is False

    def test_renormalizing_is_noop(self, normalizer):
        """Test that normalizing a normalized entry returns it unchanged."""
        tool = normalizer.normalize({"name": "t", "webhook": "https://x.io/a"})

        assert normalizer.normalize(tool) == tool

    def test_input_not_mutated(self, normalizer):
        """Test the caller's entry is left untouched."""
        entry = {"name": "t", "webhook": "https://x.io/a"}
        snapshot = dict(entry)

        normalizer.normalize(entry)

        assert entry == snapshot

    def test_overrides_kept(self, normalizer):
        """Test optional overrides on a shorthand entry survive expansion."""
        tool = normalizer.normalize({
            "name": "t",
            "webhook": "https://x.io/a",
            "method": "GET",
            "description": "Custom",
            "public": True,
            "timeout": 5000,
        })

        assert tool["method"] == "GET"
        assert tool["description"] == "Custom"
        assert tool["public"] is True
        assert tool["timeout"] == 5000

    def test_canonical_passthrough(self, normalizer, echo_tool):
        """Test a canonical entry is returned as-is."""
        echo_tool["output"] = {"type": "object"}
        echo_tool["input"] = {"type": "object"}

        assert normalizer.normalize(echo_tool) is echo_tool

    def test_unrecognized_passthrough(self, normalizer):
        """Test entries that are neither shape pass through for the validator."""
        entry = {"name": "odd", "description": "No url or webhook"}

        assert normalizer.normalize(entry) is entry

    def test_normalize_all(self, normalizer):
        """Test expanding a whole tools list."""
        tools = normalizer.normalize_all([
            {"name": "a", "webhook": "https://x.io/a"},
            {"name": "b", "webhook": "https://x.io/b"},
        ])

        assert [tool["url"] for tool in tools] == ["https://x.io/a", "https://x.io/b"]
