"""Tests for manifest loading."""

import json
import logging

import pytest
import yaml
from webhook_tools import ManifestError, interpolate_value, load_manifest


class TestInterpolation:
    """Test cases for placeholder substitution."""

    def test_both_placeholder_forms(self):
        """Test $VAR and ${VAR} are substituted."""
        env = {"HOST": "hooks.example.com", "TOKEN": "abc"}

        assert interpolate_value("https://$HOST/x?t=${TOKEN}", env) == "https://hooks.example.com/x?t=abc"

    def test_recursive(self):
        """Test nested dicts and lists are substituted and keys left alone."""
        env = {"KEY": "v"}
        value = {"$KEY": [{"auth": {"value": "${KEY}"}}, 3, None]}

        assert interpolate_value(value, env) == {"$KEY": [{"auth": {"value": "v"}}, 3, None]}

    def test_unresolved_becomes_empty(self, caplog):
        """Test unknown variables are replaced by empty strings with a warning."""
        with caplog.at_level(logging.WARNING):
            assert interpolate_value("a${MISSING}b", {}) == "ab"

        assert "MISSING" in caplog.text


class TestLoadManifest:
    """Test cases for load_manifest."""

    def test_json_manifest(self, tmp_path, sample_manifest):
        """Test loading normalizes shorthand and keeps invalid entries for later."""
        path = tmp_path / "tools.json"
        path.write_text(json.dumps(sample_manifest))

        manifest = load_manifest(path, env={})

        assert manifest.name == "test-server"
        names = [tool["name"] for tool in manifest.tools]
        assert names == ["echo", "send_invoice", "broken"]
        invoice = manifest.tools[1]
        assert invoice["url"] == "https://hooks.example.com/webhook/send-invoice"
        assert invoice["description"] == "Forward to Send Invoice webhook"

    def test_yaml_manifest_with_env(self, tmp_path):
        """Test YAML manifests and env substitution."""
        path = tmp_path / "tools.yaml"
        path.write_text(yaml.safe_dump({
            "tools": [{"name": "hook", "webhook": "https://${HOOK_HOST}/run"}],
        }))

        manifest = load_manifest(path, env={"HOOK_HOST": "n8n.local"})

        assert manifest.tools[0]["url"] == "https://n8n.local/run"

    def test_duplicates_fail(self, tmp_path):
        """Test duplicate names abort the load and report every occurrence."""
        tool = {"name": "x", "webhook": "https://x.io/a"}
        path = tmp_path / "tools.json"
        path.write_text(json.dumps({"tools": [tool, tool]}))

        with pytest.raises(ManifestError) as exc_info:
            load_manifest(path, env={})

        assert any('"x" (indices 0, 1)' in error for error in exc_info.value.errors)

    @pytest.mark.parametrize("document", [{}, {"tools": {}}, {"tools": []}])
    def test_tools_list_required(self, tmp_path, document):
        """Test a missing, non-list or empty tools field fails."""
        path = tmp_path / "tools.json"
        path.write_text(json.dumps(document))

        with pytest.raises(ManifestError):
            load_manifest(path, env={})

    def test_missing_file(self, tmp_path):
        """Test a missing file raises ManifestError."""
        with pytest.raises(ManifestError):
            load_manifest(tmp_path / "absent.json")

    def test_unparseable(self, tmp_path):
        """Test broken JSON raises ManifestError."""
        path = tmp_path / "tools.json"
        path.write_text("{broken")

        with pytest.raises(ManifestError):
            load_manifest(path)
