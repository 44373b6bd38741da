"""Execution Engine - Runs one webhook tool call end to end.

Flow for a single call:
1. Rate limit admission (no HTTP call when rejected)
2. Header assembly and credential resolution
3. Request construction (JSON body or GET query parameters)
4. Retry loop with exponential backoff and a per-attempt timeout
5. Response classification (error / stream / JSON / text)
6. Health recording

Ordinary failures never raise; they come back as
`ExecutionResult(success=False)`.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx

from .credentials import CredentialResolver, remove_header
from .health_monitor import HealthMonitor
from .jobs import JobStore
from .rate_limiter import RateLimiter
from .streaming import ResponseStream, buffer_stream, is_streaming_content_type
from .exceptions import StreamReadError
from .types import (
    ErrorType,
    ExecutionResult,
    HttpMethod,
    Job,
    JobStatus,
    ToolDefinition,
    is_binary_envelope,
    utc_now,
)
from .validator import ToolValidator

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Regenerated by the HTTP client for every outbound request
HOP_BY_HOP_HEADERS = ("Host", "Content-Length", "User-Agent")

BODY_METHODS = (HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH)

UNPARSEABLE_BODY = "Could not parse error response body."

DEFAULT_CALLBACK_TIMEOUT = 30.0

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "temporary failure in name resolution",
    "no address associated",
    "name resolution",
)


@dataclass
class AttemptFailure:
    """A transport-level failure of one attempt, already classified."""
    message: str
    error_type: ErrorType
    status: int
    retryable: bool


def classify_exception(error: BaseException, timeout_ms: int) -> AttemptFailure:
    """
    Map a transport exception onto the failure taxonomy.

    Retryable: per-attempt timeouts, connection timeouts, connection resets
    and DNS failures. Other transport errors fail immediately.
    """
    # The connect timeout is the attempt budget, so expiry while connecting is still a 408
    if isinstance(error, httpx.ConnectTimeout):
        return AttemptFailure(
            f"Request timed out after {timeout_ms}ms while connecting", ErrorType.CONNECTION_TIMEOUT, 408, True
        )

    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
        return AttemptFailure(f"Request timed out after {timeout_ms}ms", ErrorType.TIMEOUT, 408, True)

    message = str(error) or type(error).__name__
    lowered = message.lower()

    if isinstance(error, httpx.ConnectError):
        if any(marker in lowered for marker in _DNS_MARKERS):
            return AttemptFailure(message, ErrorType.DNS_FAILURE, 500, True)
        if "reset" in lowered:
            return AttemptFailure(message, ErrorType.CONNECTION_RESET, 500, True)
        return AttemptFailure(message, ErrorType.CONNECTION_ERROR, 500, False)

    if isinstance(error, (httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError)):
        return AttemptFailure(message, ErrorType.CONNECTION_RESET, 500, True)

    if isinstance(error, httpx.TransportError):
        return AttemptFailure(message, ErrorType.CONNECTION_ERROR, 500, False)

    return AttemptFailure(message, ErrorType.UNKNOWN, 500, False)


def backoff_delay_ms(retry_delay: int, attempt: int) -> int:
    """Delay before the attempt following `attempt` (1-based): base * 2^(attempt-1)."""
    return retry_delay * 2 ** (attempt - 1)


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class ExecutionEngine:
    """
    Executes tool definitions against their webhooks.

    Collaborators are injected so that their state has an explicit owner:
    the RateLimiter windows and HealthMonitor counters are shared by every
    call made through this engine and by nothing else.

    Args:
        rate_limiter: Admission control shared by concurrent calls
        health_monitor: Receives every final result
        credential_resolver: Produces auth headers
        client: HTTP client used for tool calls and callbacks
        sleep: Awaitable used between retry attempts
        job_store: Job records for callback delivery
        callback_timeout: Seconds allowed for a callback POST
    """

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        health_monitor: Optional[HealthMonitor] = None,
        credential_resolver: Optional[CredentialResolver] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Sleep] = None,
        job_store: Optional[JobStore] = None,
        callback_timeout: float = DEFAULT_CALLBACK_TIMEOUT,
        validator: Optional[ToolValidator] = None,
    ):
        self.rate_limiter = rate_limiter or RateLimiter()
        self.health_monitor = health_monitor or HealthMonitor()
        self.credential_resolver = credential_resolver or CredentialResolver()
        self.job_store = job_store or JobStore()
        self.validator = validator or ToolValidator()
        self.callback_timeout = callback_timeout
        self._sleep = sleep or asyncio.sleep
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this engine created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _as_definition(self, tool: Union[ToolDefinition, Dict[str, Any]]) -> ToolDefinition:
        if isinstance(tool, ToolDefinition):
            return tool
        self.validator.assert_valid(tool)
        return ToolDefinition.from_entry(tool)

    # =========================================================================
    # Synchronous execution
    # =========================================================================

    async def execute(
        self,
        tool: Union[ToolDefinition, Dict[str, Any]],
        args: Any = None,
        caller_headers: Optional[Dict[str, str]] = None,
    ) -> ExecutionResult:
        """
        Execute a tool once (with retries) and record the outcome.

        Args:
            tool: Validated definition, or a raw entry to validate first
            args: Caller arguments (object for JSON bodies / GET parameters)
            caller_headers: Headers forwarded from the caller

        Returns:
            ExecutionResult; failures are returned, not raised

        Raises:
            InvalidToolError: when a raw entry fails validation
        """
        definition = self._as_definition(tool)
        start = time.monotonic()

        try:
            result = await self._execute(definition, args, caller_headers or {}, start)
        except Exception as e:
            logger.exception(f"Unexpected error executing tool {definition.name}: {e}")
            result = ExecutionResult(
                success=False,
                tool=definition.name,
                status=500,
                error=str(e) or type(e).__name__,
                error_type=ErrorType.UNKNOWN,
            )

        self.health_monitor.record_execution(definition.name, result)
        return result

    async def _execute(
        self,
        tool: ToolDefinition,
        args: Any,
        caller_headers: Dict[str, str],
        start: float,
    ) -> ExecutionResult:
        logger.info(f"Executing tool: {tool.name} -> {tool.url}")

        # 1. Admission control
        if tool.rate_limit and not self.rate_limiter.is_allowed(tool.name, tool.rate_limit):
            usage = self.rate_limiter.get_status(tool.name, tool.rate_limit)
            return ExecutionResult(
                success=False,
                tool=tool.name,
                status=429,
                error=(
                    f"Rate limit exceeded for {tool.name}: "
                    f"{usage.requests}/{usage.limit} requests per {tool.rate_limit.window}ms"
                ),
                error_type=ErrorType.RATE_LIMITED,
                details=usage.model_dump(),
            )

        # 2-3. Headers and request
        request = await self._build_request(tool, args, caller_headers)

        # 4. Retry loop
        attempts = max(1, tool.max_retries)
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await asyncio.wait_for(
                    self._send(request, tool),
                    timeout=tool.timeout / 1000,
                )
            except (asyncio.TimeoutError, httpx.HTTPError) as e:
                failure = classify_exception(e, tool.timeout)
                logger.warning(
                    f"Tool {tool.name} attempt {attempt}/{attempts} failed: "
                    f"{failure.error_type.value}: {failure.message}"
                )
                if failure.retryable and attempt < attempts:
                    await self._backoff(tool, attempt)
                    continue
                return ExecutionResult(
                    success=False,
                    tool=tool.name,
                    status=failure.status,
                    error=failure.message,
                    error_type=failure.error_type,
                )

            if response.status_code >= 500 and attempt < attempts:
                logger.warning(
                    f"Tool {tool.name} attempt {attempt}/{attempts} got {response.status_code}, retrying"
                )
                await response.aclose()
                await self._backoff(tool, attempt)
                continue

            # 5. Classification
            return self._classify(tool, response, start)

    async def _backoff(self, tool: ToolDefinition, attempt: int) -> None:
        delay_ms = backoff_delay_ms(tool.retry_delay, attempt)
        logger.info(f"Retrying tool {tool.name} in {delay_ms}ms (attempt {attempt + 1})")
        await self._sleep(delay_ms / 1000)

    async def _build_request(
        self,
        tool: ToolDefinition,
        args: Any,
        caller_headers: Dict[str, str],
    ) -> httpx.Request:
        method = HttpMethod(tool.method)
        headers = self.credential_resolver.resolve(tool, caller_headers)
        for name in HOP_BY_HOP_HEADERS:
            remove_header(headers, name)

        url = httpx.URL(tool.url)
        content: Optional[Union[str, bytes]] = None

        if method in BODY_METHODS:
            if isinstance(args, (dict, list)):
                remove_header(headers, "Content-Type")
                remove_header(headers, "Accept")
                headers["Content-Type"] = "application/json"
                headers["Accept"] = "application/json"
                content = json.dumps(args)
            elif isinstance(args, (str, bytes)):
                content = args
            elif args is not None:
                content = str(args)
        elif method == HttpMethod.GET and isinstance(args, dict) and args:
            url = url.copy_merge_params({key: _query_value(value) for key, value in args.items()})
            logger.debug(f"GET URL with params: {url}")

        logger.debug(f"Forwarding headers for {tool.name}: {sorted(headers)} method={method.value}")

        client = await self._get_client()
        return client.build_request(
            method.value,
            url,
            headers=headers,
            content=content,
            timeout=tool.timeout / 1000,
        )

    async def _send(self, request: httpx.Request, tool: ToolDefinition) -> httpx.Response:
        """One attempt: send, then read the body unless the response is a stream."""
        client = await self._get_client()
        response = await client.send(request, stream=True, follow_redirects=True)

        if 200 <= response.status_code < 300 and is_streaming_content_type(
            response.headers.get("content-type")
        ):
            return response

        try:
            await response.aread()
        finally:
            await response.aclose()
        return response

    def _classify(
        self,
        tool: ToolDefinition,
        response: httpx.Response,
        start: float,
    ) -> ExecutionResult:
        content_type = response.headers.get("content-type")

        if not response.is_success:
            try:
                details = response.json()
            except ValueError:
                details = response.text or UNPARSEABLE_BODY
            logger.error(
                f"Tool execution error for {tool.name}: {response.status_code} {response.reason_phrase}"
            )
            return ExecutionResult(
                success=False,
                tool=tool.name,
                status=response.status_code,
                error=f"Request failed: {response.status_code} {response.reason_phrase}",
                error_type=ErrorType.HTTP_ERROR,
                status_text=response.reason_phrase,
                details=details,
            )

        if is_streaming_content_type(content_type):
            logger.info(f"Streaming response for {tool.name}: {content_type}")
            return ExecutionResult(
                success=True,
                tool=tool.name,
                status=response.status_code,
                stream=ResponseStream(response, tool.name),
                content_type=content_type,
                response_time=_elapsed_ms(start),
            )

        if content_type and "json" in content_type.lower():
            try:
                data = response.json()
            except ValueError as e:
                logger.error(f"Invalid JSON from {tool.name}: {e}")
                return ExecutionResult(
                    success=False,
                    tool=tool.name,
                    status=500,
                    error=f"Invalid JSON response: {e}",
                    error_type=ErrorType.INVALID_RESPONSE,
                    details=response.text,
                )
        else:
            data = response.text
            # Binary envelopes are recognized by shape, whatever the content type
            if data.lstrip().startswith("{"):
                try:
                    parsed = json.loads(data)
                except ValueError:
                    parsed = None
                if is_binary_envelope(parsed):
                    data = parsed

        if is_binary_envelope(data):
            logger.debug(f"Binary envelope from {tool.name}: {data['contentType']}")

        logger.info(f"Tool {tool.name} responded {response.status_code}")
        return ExecutionResult(
            success=True,
            tool=tool.name,
            status=response.status_code,
            data=data,
            content_type=content_type,
            response_time=_elapsed_ms(start),
        )

    # =========================================================================
    # Callback delivery
    # =========================================================================

    async def execute_and_deliver(
        self,
        job_id: str,
        tool: Union[ToolDefinition, Dict[str, Any]],
        args: Any,
        callback_url: str,
        caller_headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Job]:
        """
        Execute a tool for a job and POST the outcome to `callback_url`.

        The callback has its own fixed timeout and is not retried. A failed
        delivery marks the job `callback_failed` without changing the
        recorded execution outcome.

        Returns:
            The updated job, or None when the job id is unknown
        """
        job = self.job_store.get_job(job_id)
        if job is None:
            logger.error(f"Job {job_id} not found for callback execution")
            return None

        definition = self._as_definition(tool)
        self.job_store.set_status(job_id, JobStatus.PROCESSING)
        logger.info(f"Processing job {job_id} for tool {definition.name} with callback to {callback_url}")

        result = await self.execute(definition, args, caller_headers)
        payload = await self._callback_payload(job_id, definition.name, result)

        if payload["status"] == JobStatus.COMPLETED.value:
            job = self.job_store.update(job_id, status=JobStatus.COMPLETED, result=payload["result"])
        else:
            job = self.job_store.update(job_id, status=JobStatus.FAILED, error=payload["error"])

        callback_error = await self._deliver(callback_url, payload)
        if callback_error is None:
            logger.info(f"Callback successful for job {job_id} to {callback_url}")
        else:
            logger.error(f"Error sending callback for job {job_id} to {callback_url}: {callback_error}")
            job = self.job_store.update(
                job_id,
                status=JobStatus.CALLBACK_FAILED,
                error={**(job.error or {}), "callback_error": callback_error},
            )

        return job

    async def _deliver(self, callback_url: str, payload: Dict[str, Any]) -> Optional[str]:
        """POST the envelope once. Returns an error message, or None on success."""
        client = await self._get_client()
        try:
            response = await client.post(
                callback_url,
                json=payload,
                timeout=self.callback_timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            return str(e) or type(e).__name__

        if not response.is_success:
            return (
                f"Callback request failed: {response.status_code} {response.reason_phrase}. "
                f"Body: {response.text}"
            )
        return None

    async def _callback_payload(self, job_id: str, tool_name: str, result: ExecutionResult) -> Dict[str, Any]:
        """Callback envelope; streams are buffered since a callback carries one value."""
        payload: Dict[str, Any] = {
            "job_id": job_id,
            "tool_name": tool_name,
            "timestamp": utc_now().isoformat(),
        }

        if result.success:
            data = result.data
            if result.stream is not None:
                try:
                    data = await buffer_stream(result.stream)
                except StreamReadError as e:
                    payload["status"] = JobStatus.FAILED.value
                    payload["error"] = {"message": e.message, "status_code": result.status, "details": None}
                    return payload
            payload["status"] = JobStatus.COMPLETED.value
            payload["result"] = data
        else:
            payload["status"] = JobStatus.FAILED.value
            payload["error"] = {
                "message": result.error,
                "status_code": result.status,
                "details": result.details,
            }

        return payload
