"""Credential Resolver - Turns a tool's auth declaration into headers.

Resolution order:
1. `authFrom` present: the external secret for (user, tool name) replaces
   the tool's own `auth` for this call; no secret means no auth
2. `valueFromEnv` / `tokenFromEnv` naming a set variable wins over the
   literal `value` / `token`
3. The resolved credential always overrides a caller-supplied header of
   the same name

Missing credential material is logged and skipped, never raised.
"""

import logging
import os
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from .secret_store import SecretStore
from .types import AuthConfig, AuthType, ToolDefinition

logger = logging.getLogger(__name__)


def remove_header(headers: Dict[str, str], name: str) -> None:
    """Delete every header matching `name`, ignoring case. Mutates `headers`."""
    lowered = name.lower()
    for key in [key for key in headers if key.lower() == lowered]:
        del headers[key]


class CredentialResolver:
    """
    Resolves auth headers against an injected environment and secret store.

    Args:
        env: Environment accessor (defaults to the process environment)
        secret_store: Lookup used for `authFrom` declarations
    """

    def __init__(
        self,
        env: Optional[Mapping[str, str]] = None,
        secret_store: Optional[SecretStore] = None,
    ):
        self._env = env if env is not None else os.environ
        self._secret_store = secret_store

    def effective_auth(self, tool: ToolDefinition) -> Optional[AuthConfig]:
        """
        Pick the auth object that applies to this call.

        `authFrom` and `auth` are never combined.
        """
        if tool.auth_from is None:
            return tool.auth

        user = tool.auth_from.user
        loaded: Optional[Dict[str, Any]] = None
        if self._secret_store is not None:
            loaded = self._secret_store.lookup(user, tool.name)

        if not loaded:
            logger.warning(f"No external auth found for tool {tool.name} (user {user!r}); calling without auth")
            return None

        try:
            auth = AuthConfig.model_validate(loaded)
        except ValidationError as e:
            logger.warning(f"External auth for tool {tool.name} (user {user!r}) is malformed: {e}")
            return None

        logger.debug(f"Using external auth for tool {tool.name} from user {user!r}")
        return auth

    def _from_env_or_literal(self, tool_name: str, env_name: Optional[str], literal: Optional[str]) -> Optional[str]:
        if env_name:
            env_value = self._env.get(env_name)
            if env_value:
                logger.debug(f"Using credential for {tool_name} from env var {env_name}")
                return env_value
            logger.warning(f"Environment variable {env_name} not set for tool {tool_name}, falling back to literal value")
        return literal or None

    def resolve(self, tool: ToolDefinition, caller_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """
        Apply the tool's credentials on top of the caller's headers.

        Args:
            tool: Tool being executed
            caller_headers: Headers supplied by the caller (not mutated)

        Returns:
            New header map with the credential set
        """
        headers = dict(caller_headers or {})
        auth = self.effective_auth(tool)
        if auth is None:
            return headers

        if auth.type == AuthType.HEADER:
            if not auth.name:
                logger.warning(f"Header auth for tool {tool.name} is missing the header name")
                return headers
            remove_header(headers, auth.name)
            value = self._from_env_or_literal(tool.name, auth.value_from_env, auth.value)
            if value is None:
                logger.warning(f"Header auth for tool {tool.name} has no value; header {auth.name} left unset")
            else:
                headers[auth.name] = value

        elif auth.type == AuthType.JWT:
            remove_header(headers, "Authorization")
            token = self._from_env_or_literal(tool.name, auth.token_from_env, auth.token)
            if token is None:
                logger.warning(f"JWT auth for tool {tool.name} has no token; Authorization left unset")
            else:
                headers["Authorization"] = f"Bearer {token}"

        return headers
