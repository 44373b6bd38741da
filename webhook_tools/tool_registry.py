"""Tool Registry - Host-level catalog of manifest tools.

Entries are kept exactly as normalized from the manifest, valid or not:
- listing filters out invalid entries quietly
- calling an invalid entry raises InvalidToolError before any network I/O

Three diagnostic tools are always available next to the manifest tools:
`webhook_health_check`, `webhook_health_status` and
`webhook_rate_limit_status`.
"""

import logging
from typing import Any, Dict, List, Optional

from .exceptions import ToolNotFoundError
from .execution_engine import ExecutionEngine
from .normalizer import ManifestNormalizer
from .types import (
    ExecutionResult,
    Manifest,
    ToolDefinition,
    default_input_schema,
)
from .validator import ToolValidator

logger = logging.getLogger(__name__)

HEALTH_CHECK_TOOL = "webhook_health_check"
HEALTH_STATUS_TOOL = "webhook_health_status"
RATE_LIMIT_STATUS_TOOL = "webhook_rate_limit_status"

_NAME_ARGUMENT_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Name of the webhook tool"},
    },
    "required": ["name"],
}

DIAGNOSTIC_TOOLS: Dict[str, Dict[str, Any]] = {
    HEALTH_CHECK_TOOL: {
        "name": HEALTH_CHECK_TOOL,
        "description": "Probe a webhook tool's endpoint and report reachability and latency.",
        "inputSchema": _NAME_ARGUMENT_SCHEMA,
    },
    HEALTH_STATUS_TOOL: {
        "name": HEALTH_STATUS_TOOL,
        "description": "Report success rates and latency for every webhook tool called so far.",
        "inputSchema": default_input_schema(),
    },
    RATE_LIMIT_STATUS_TOOL: {
        "name": RATE_LIMIT_STATUS_TOOL,
        "description": "Report current rate limit window usage for a webhook tool.",
        "inputSchema": _NAME_ARGUMENT_SCHEMA,
    },
}


class ToolRegistry:
    """
    Catalog of callable tools backed by an ExecutionEngine.

    Args:
        engine: Engine that owns the rate limiter and health monitor
        entries: Raw manifest tool entries (shorthand allowed)
        debug: Log validation details when listing and calling
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        entries: Optional[List[Dict[str, Any]]] = None,
        debug: bool = False,
    ):
        self.engine = engine
        self.debug = debug
        self._validator = ToolValidator()
        self._normalizer = ManifestNormalizer()
        self._tools: Dict[str, Dict[str, Any]] = {}

        for entry in entries or []:
            self.register_tool(entry)

    @classmethod
    def from_manifest(
        cls,
        manifest: Manifest,
        engine: ExecutionEngine,
        debug: bool = False,
    ) -> "ToolRegistry":
        """Build a registry from a loaded manifest."""
        registry = cls(engine, manifest.tools, debug=debug)
        logger.info(f"Tool Registry initialized with {registry.tool_count} tools")
        return registry

    def register_tool(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """
        Normalize and register a tool entry.

        Raises:
            ValueError: If the entry has no name or the name is taken
        """
        normalized = self._normalizer.normalize(entry)
        name = normalized.get("name") if isinstance(normalized, dict) else None
        if not isinstance(name, str) or not name:
            raise ValueError("Tool entry must have a name")
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered")
        if name in DIAGNOSTIC_TOOLS:
            logger.warning(f"Manifest tool '{name}' shadows the built-in diagnostic tool")

        self._tools[name] = normalized
        logger.debug(f"Registered tool: {name}")
        return normalized

    def unregister_tool(self, tool_name: str) -> None:
        """
        Remove a tool from the registry.

        Raises:
            KeyError: If tool doesn't exist
        """
        if tool_name not in self._tools:
            raise KeyError(f"Tool '{tool_name}' not found in registry")
        del self._tools[tool_name]

    def get_tool(self, tool_name: str) -> Optional[Dict[str, Any]]:
        """Get a registered entry by name (valid or not)."""
        return self._tools.get(tool_name)

    def get_definition(self, tool_name: str) -> ToolDefinition:
        """
        Validated definition of a registered tool.

        Raises:
            ToolNotFoundError: unknown name
            InvalidToolError: the entry fails validation
        """
        entry = self._tools.get(tool_name)
        if entry is None:
            raise ToolNotFoundError(tool_name)
        self._validator.assert_valid(entry, debug=self.debug)
        return ToolDefinition.from_entry(entry)

    def list_tools(self) -> List[Dict[str, Any]]:
        """
        Listing descriptors for valid tools, followed by the diagnostics.

        Invalid entries are left out without raising.
        """
        descriptors = []
        for name, entry in self._tools.items():
            if not self._validator.is_valid(entry, debug=self.debug):
                logger.debug(f"Skipping invalid tool in listing: {name}")
                continue
            descriptors.append({
                "name": name,
                "description": entry.get("description", ""),
                "inputSchema": entry.get("input") or default_input_schema(),
            })

        for name, descriptor in DIAGNOSTIC_TOOLS.items():
            if name not in self._tools:
                descriptors.append(descriptor)

        return descriptors

    async def call_tool(
        self,
        tool_name: str,
        args: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> ExecutionResult:
        """
        Execute a tool by name.

        Raises:
            ToolNotFoundError: unknown name
            InvalidToolError: the entry fails validation
        """
        if tool_name not in self._tools and tool_name in DIAGNOSTIC_TOOLS:
            return await self._call_diagnostic(tool_name, args if isinstance(args, dict) else {})

        definition = self.get_definition(tool_name)
        return await self.engine.execute(definition, args, headers)

    # =========================================================================
    # Diagnostics
    # =========================================================================

    async def _call_diagnostic(self, tool_name: str, args: Dict[str, Any]) -> ExecutionResult:
        if tool_name == HEALTH_STATUS_TOOL:
            overall = self.engine.health_monitor.get_overall_health()
            return ExecutionResult(
                success=True,
                tool=tool_name,
                status=200,
                data=overall.model_dump(mode="json"),
            )

        target = args.get("name")
        entry = self._tools.get(target) if isinstance(target, str) else None
        if entry is None:
            return ExecutionResult(
                success=False,
                tool=tool_name,
                status=404,
                error=f"Tool not found: {target}",
            )

        if tool_name == HEALTH_CHECK_TOOL:
            check = await self.engine.health_monitor.perform_health_check(self.get_definition(target))
            return ExecutionResult(
                success=True,
                tool=tool_name,
                status=200,
                data={
                    "check": check.model_dump(mode="json"),
                    "health": self.engine.health_monitor.get_health(target).model_dump(mode="json"),
                },
            )

        rate_limit = ToolDefinition.from_entry(entry).rate_limit if self._validator.is_valid(entry) else None
        status = self.engine.rate_limiter.get_status(target, rate_limit)
        data = status.model_dump(mode="json")
        data["configured"] = rate_limit is not None
        return ExecutionResult(success=True, tool=tool_name, status=200, data=data)

    @property
    def tool_count(self) -> int:
        """Number of registered manifest tools."""
        return len(self._tools)

    def __contains__(self, tool_name: str) -> bool:
        return tool_name in self._tools
