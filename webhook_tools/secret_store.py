"""External secret stores for `authFrom` credentials.

A secret store is an associative lookup keyed by (user, tool name) that
returns an auth object or nothing. Lookups never raise.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

logger = logging.getLogger(__name__)


class SecretStore(Protocol):
    """Lookup interface consumed by the CredentialResolver."""

    def lookup(self, user: str, tool_name: str) -> Optional[Dict[str, Any]]:
        ...


class InMemorySecretStore:
    """Dict-backed store: `{user: {tool_name: auth}}`."""

    def __init__(self, secrets: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        self._secrets = secrets or {}

    def set(self, user: str, tool_name: str, auth: Dict[str, Any]) -> None:
        self._secrets.setdefault(user, {})[tool_name] = auth

    def lookup(self, user: str, tool_name: str) -> Optional[Dict[str, Any]]:
        return self._secrets.get(user, {}).get(tool_name) or None


class FileSecretStore:
    """
    Per-user JSON documents under a base directory.

    `<base_dir>/<user>.json` maps tool names to auth objects. A missing or
    unreadable document behaves like an empty one.
    """

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir).expanduser()

    def _path_for(self, user: str) -> Path:
        return self.base_dir / f"{user}.json"

    def lookup(self, user: str, tool_name: str) -> Optional[Dict[str, Any]]:
        path = self._path_for(user)
        if not path.is_file():
            logger.debug(f"No secrets file for user {user!r} at {path}")
            return None

        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read secrets file {path}: {e}")
            return None

        if not isinstance(document, dict):
            logger.warning(f"Secrets file {path} must contain a JSON object")
            return None

        auth = document.get(tool_name)
        if auth:
            logger.debug(f"Loaded auth for tool {tool_name} from {path}")
        return auth or None
