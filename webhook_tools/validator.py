"""Tool Validator - Structural validation of tool definitions.

Two entry points with deliberately different failure behavior:
- is_valid(): quiet boolean, used when listing tools so that experimental
  or broken entries are filtered out instead of breaking enumeration
- assert_valid(): raises InvalidToolError naming the first violation, used
  immediately before a specific tool is executed
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Union

from .exceptions import InvalidToolError
from .types import AuthType, HttpMethod, ManifestValidationResult, ToolDefinition

logger = logging.getLogger(__name__)

VALID_METHODS = [method.value for method in HttpMethod]
VALID_AUTH_TYPES = [auth_type.value for auth_type in AuthType]

KNOWN_FIELDS = {
    "name", "description", "url", "method", "input", "output", "auth", "authFrom",
    "public", "paid", "timeout", "maxRetries", "retryDelay", "rateLimit",
    "webhookVerification", "healthCheck", "tags",
}

ToolLike = Union[Dict[str, Any], ToolDefinition]


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_whole_number(value: Any) -> bool:
    if isinstance(value, float):
        return value.is_integer()
    return _is_number(value)


def _as_entry(tool: ToolLike) -> Dict[str, Any]:
    if isinstance(tool, ToolDefinition):
        return tool.to_entry()
    return tool


class ToolValidator:
    """
    Stateless validator for canonical tool entries.

    Every check runs and all violations are collected before deciding;
    validating the same unmodified entry twice yields the same violations.
    """

    def collect_errors(self, tool: ToolLike) -> List[str]:
        """
        Run every structural check against a tool entry.

        Args:
            tool: Manifest entry or ToolDefinition

        Returns:
            List of violation messages, empty when the tool is valid
        """
        if not isinstance(tool, (dict, ToolDefinition)):
            return [f"Tool must be an object, got {type(tool).__name__}."]

        entry = _as_entry(tool)
        errors: List[str] = []
        name = entry.get("name")
        label = name if _is_text(name) else "unknown"

        # Required fields
        if not _is_text(name):
            errors.append(f"Tool has invalid name: {name!r}. Must be a non-empty string.")
        if not _is_text(entry.get("description")):
            errors.append(
                f'Tool "{label}" has invalid description: {entry.get("description")!r}. '
                "Must be a non-empty string."
            )
        if not _is_text(entry.get("url")):
            errors.append(
                f'Tool "{label}" has invalid url: {entry.get("url")!r}. Must be a non-empty string.'
            )

        # Method
        if "method" in entry:
            method = entry["method"]
            if not isinstance(method, str) or method.upper() not in VALID_METHODS:
                errors.append(
                    f'Tool "{label}" has invalid method: {method!r}. '
                    f"Must be one of: {', '.join(VALID_METHODS)}."
                )

        # Schemas
        for field in ("input", "output"):
            if field in entry and not isinstance(entry[field], dict):
                errors.append(f'Tool "{label}" has invalid {field} schema. Must be an object if defined.')

        # Credentials
        if "auth" in entry:
            errors.extend(self._check_auth(label, entry["auth"]))

        if "authFrom" in entry:
            auth_from = entry["authFrom"]
            if not isinstance(auth_from, dict):
                errors.append(f'Tool "{label}" has invalid authFrom. Must be an object if defined.')
            elif not _is_text(auth_from.get("user")):
                errors.append(f'Tool "{label}" authFrom.user is required and must be a non-empty string.')

        if "auth" in entry and "authFrom" in entry:
            errors.append(f'Tool "{label}" fields "auth" and "authFrom" are mutually exclusive. Use only one.')

        # Execution policy
        if "timeout" in entry:
            timeout = entry["timeout"]
            if not _is_whole_number(timeout) or timeout <= 0:
                errors.append(
                    f'Tool "{label}" has invalid timeout: {timeout!r}. '
                    "Must be a positive integer (milliseconds)."
                )

        if "maxRetries" in entry:
            max_retries = entry["maxRetries"]
            if not _is_whole_number(max_retries) or not 0 <= max_retries <= 10:
                errors.append(f'Tool "{label}" has invalid maxRetries: {max_retries!r}. Must be an integer 0-10.')

        if "retryDelay" in entry:
            retry_delay = entry["retryDelay"]
            if not _is_whole_number(retry_delay) or retry_delay < 0:
                errors.append(
                    f'Tool "{label}" has invalid retryDelay: {retry_delay!r}. '
                    "Must be a non-negative integer (milliseconds)."
                )

        if "rateLimit" in entry:
            rate_limit = entry["rateLimit"]
            if (
                not isinstance(rate_limit, dict)
                or not _is_whole_number(rate_limit.get("requests"))
                or not _is_whole_number(rate_limit.get("window"))
                or rate_limit["requests"] <= 0
                or rate_limit["window"] <= 0
            ):
                errors.append(
                    f'Tool "{label}" has invalid rateLimit. Must be {{requests: integer, window: integer}}.'
                )

        return errors

    def _check_auth(self, label: str, auth: Any) -> List[str]:
        if not isinstance(auth, dict):
            return [f'Tool "{label}" has invalid auth. Must be an object if defined.']

        auth_type = auth.get("type")
        if not isinstance(auth_type, str) or auth_type not in VALID_AUTH_TYPES:
            return [
                f'Tool "{label}" has invalid auth.type: {auth_type!r}. '
                f"Must be one of: {', '.join(VALID_AUTH_TYPES)}."
            ]

        errors = []
        if auth_type == AuthType.HEADER.value:
            if not _is_text(auth.get("name")):
                errors.append(f'Tool "{label}" auth.name is required for header auth type.')
            if not _is_text(auth.get("value")) and not _is_text(auth.get("valueFromEnv")):
                errors.append(
                    f'Tool "{label}" auth requires either "value" or "valueFromEnv" for header auth type.'
                )
        elif auth_type == AuthType.JWT.value:
            if not _is_text(auth.get("token")) and not _is_text(auth.get("tokenFromEnv")):
                errors.append(
                    f'Tool "{label}" auth requires either "token" or "tokenFromEnv" for jwt auth type.'
                )
        return errors

    def _warn_unknown_fields(self, tool: ToolLike) -> None:
        if not isinstance(tool, dict):
            return
        label = tool.get("name") or "unknown"
        for field in tool:
            if field not in KNOWN_FIELDS:
                logger.warning(f'Tool "{label}" has unknown field: "{field}". This may be a typo.')

    def is_valid(self, tool: ToolLike, debug: bool = False) -> bool:
        """
        Quiet validation used for listing.

        Args:
            tool: Manifest entry or ToolDefinition
            debug: Log violations and unknown fields as warnings

        Returns:
            True if the tool passes every check
        """
        if debug:
            self._warn_unknown_fields(tool)

        errors = self.collect_errors(tool)
        if errors and debug:
            for error in errors:
                logger.warning(error)
        return not errors

    def assert_valid(self, tool: ToolLike, debug: bool = False) -> None:
        """
        Guard used immediately before execution.

        Raises:
            InvalidToolError: carrying the first violation, with all
                violations available on `errors`
        """
        if debug:
            self._warn_unknown_fields(tool)

        errors = self.collect_errors(tool)
        if errors:
            raise InvalidToolError(errors[0], errors)

    def validate_manifest(
        self,
        tools: Any,
        debug: bool = False,
    ) -> ManifestValidationResult:
        """
        Validate a whole tools list.

        Each entry is validated independently; additionally any name used
        more than once (exact, case-sensitive match) fails the set, and
        every duplicated name is reported with all of its positions.
        """
        if not isinstance(tools, list):
            return ManifestValidationResult(
                success=False,
                errors=['Field "tools": Missing or invalid. Must be an array.'],
            )
        if not tools:
            return ManifestValidationResult(
                success=False,
                errors=['Field "tools": Array must contain at least one tool.'],
            )

        errors: List[str] = []
        invalid_indices: List[int] = []
        duplicates: List[str] = []
        positions: Dict[str, List[int]] = defaultdict(list)

        for index, tool in enumerate(tools):
            if not self.is_valid(tool, debug=debug):
                invalid_indices.append(index)
                detail = "; ".join(self.collect_errors(tool))
                errors.append(f"Tool at index {index}: Invalid tool configuration. {detail}")

            name = tool.get("name") if isinstance(tool, dict) else None
            if isinstance(name, str):
                positions[name].append(index)

        for name, indices in positions.items():
            if len(indices) > 1:
                duplicates.append(name)
                joined = ", ".join(str(i) for i in indices)
                errors.append(
                    f'Duplicate tool name found: "{name}" (indices {joined}). Tool names must be unique.'
                )

        return ManifestValidationResult(
            success=not errors,
            errors=errors,
            tool_count=len(tools),
            tool_names=list(positions.keys()),
            invalid_indices=invalid_indices,
            duplicates=duplicates,
        )
