"""Tests for Credential Resolver and secret stores."""

import json

import pytest
from webhook_tools import (
    CredentialResolver,
    FileSecretStore,
    InMemorySecretStore,
    ToolDefinition,
)


def _tool(**overrides) -> ToolDefinition:
    entry = {"name": "crm", "description": "CRM hook", "url": "https://x/crm"}
    entry.update(overrides)
    return ToolDefinition.from_entry(entry)


class TestCredentialResolver:
    """Test cases for CredentialResolver."""

    def test_no_auth_passthrough(self):
        """Test caller headers pass through when no auth is declared."""
        resolver = CredentialResolver(env={})
        caller = {"X-Trace": "abc"}

        headers = resolver.resolve(_tool(), caller)

        assert headers == {"X-Trace": "abc"}
        assert headers is not caller

    def test_header_literal_value(self):
        """Test the literal value is used without an env override."""
        resolver = CredentialResolver(env={})
        tool = _tool(auth={"type": "header", "name": "X-Api-Key", "value": "literal"})

        assert resolver.resolve(tool)["X-Api-Key"] == "literal"

    def test_env_takes_precedence(self):
        """Test valueFromEnv pointing to a set variable wins over value."""
        resolver = CredentialResolver(env={"CRM_KEY": "from-env"})
        tool = _tool(auth={"type": "header", "name": "X-Api-Key", "value": "literal", "valueFromEnv": "CRM_KEY"})

        assert resolver.resolve(tool)["X-Api-Key"] == "from-env"

    def test_env_missing_falls_back(self):
        """Test an unset variable falls back to the literal value."""
        resolver = CredentialResolver(env={})
        tool = _tool(auth={"type": "header", "name": "X-Api-Key", "value": "literal", "valueFromEnv": "CRM_KEY"})

        assert resolver.resolve(tool)["X-Api-Key"] == "literal"

    def test_resolved_header_overrides_caller(self):
        """Test a caller header with the same name (any case) is replaced."""
        resolver = CredentialResolver(env={})
        tool = _tool(auth={"type": "header", "name": "X-Api-Key", "value": "server"})

        headers = resolver.resolve(tool, {"x-api-key": "caller", "Accept": "text/plain"})

        assert headers == {"X-Api-Key": "server", "Accept": "text/plain"}

    def test_jwt(self):
        """Test jwt auth sets a bearer Authorization header."""
        resolver = CredentialResolver(env={"JWT": "env-token"})
        tool = _tool(auth={"type": "jwt", "token": "literal", "tokenFromEnv": "JWT"})

        headers = resolver.resolve(tool, {"authorization": "Basic abc"})

        assert headers == {"Authorization": "Bearer env-token"}

    def test_missing_material_is_not_fatal(self, caplog):
        """Test missing credentials leave the header unset and log a warning."""
        resolver = CredentialResolver(env={})
        tool = _tool(auth={"type": "jwt", "tokenFromEnv": "MISSING"})

        headers = resolver.resolve(tool, {"Authorization": "Bearer caller"})

        assert "Authorization" not in headers
        assert "MISSING" in caplog.text

    def test_auth_from_replaces_auth(self):
        """Test an external secret is used for authFrom tools."""
        store = InMemorySecretStore({"alice": {"crm": {"type": "header", "name": "X-Token", "value": "s3cret"}}})
        resolver = CredentialResolver(env={}, secret_store=store)
        tool = _tool(authFrom={"user": "alice"})

        assert resolver.resolve(tool) == {"X-Token": "s3cret"}

    def test_auth_from_missing_secret(self):
        """Test a missing external secret means no auth."""
        resolver = CredentialResolver(env={}, secret_store=InMemorySecretStore())
        tool = _tool(authFrom={"user": "bob"})

        assert resolver.resolve(tool, {"A": "b"}) == {"A": "b"}

    def test_auth_from_malformed_secret(self):
        """Test an unusable external secret is skipped."""
        store = InMemorySecretStore({"alice": {"crm": {"type": "basic"}}})
        resolver = CredentialResolver(env={}, secret_store=store)

        assert resolver.resolve(_tool(authFrom={"user": "alice"})) == {}


class TestFileSecretStore:
    """Test cases for FileSecretStore."""

    def test_lookup(self, tmp_path):
        """Test reading a tool's auth from the user's document."""
        (tmp_path / "alice.json").write_text(json.dumps({"crm": {"type": "jwt", "token": "t"}}))
        store = FileSecretStore(tmp_path)

        assert store.lookup("alice", "crm") == {"type": "jwt", "token": "t"}
        assert store.lookup("alice", "other") is None

    def test_missing_file(self, tmp_path):
        """Test an absent user document yields nothing."""
        assert FileSecretStore(tmp_path).lookup("nobody", "crm") is None

    def test_invalid_json(self, tmp_path):
        """Test an unparseable document yields nothing."""
        (tmp_path / "alice.json").write_text("{not json")

        assert FileSecretStore(tmp_path).lookup("alice", "crm") is None

    def test_set_in_memory(self):
        """Test registering a secret in memory."""
        store = InMemorySecretStore()
        store.set("alice", "crm", {"type": "jwt", "token": "t"})

        assert store.lookup("alice", "crm")["token"] == "t"
