"""Exceptions raised by the webhook tool layer.

Ordinary execution failures are never raised; they come back as
`ExecutionResult(success=False)`. These exceptions cover the synchronous
guards around execution: definition validation, catalog lookups, manifest
loading and stream consumption.
"""

from typing import List, Optional


class WebhookToolsError(Exception):
    """Base exception for all webhook tool errors."""

    code: str = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidToolError(WebhookToolsError):
    """A tool definition failed validation immediately before execution."""

    code = "invalid_request"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class ToolNotFoundError(WebhookToolsError):
    """No tool with the requested name is registered."""

    code = "method_not_found"

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ManifestError(WebhookToolsError):
    """A manifest could not be loaded or failed manifest-level validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class JobNotFoundError(WebhookToolsError):
    """No async job with the requested id exists."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class StreamConsumedError(WebhookToolsError):
    """A single-consumer response stream was read more than once."""


class StreamReadError(WebhookToolsError):
    """The upstream connection failed while a stream was being drained."""
