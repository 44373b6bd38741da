"""Webhook Tools types and data models.

This module defines all Pydantic models for the webhook tool layer:
- Tool definitions, auth and rate limit declarations
- Execution results and the failure taxonomy
- Rate limit and health snapshots
- Async job records and manifest validation results
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Dict, List, Any
from enum import Enum
from datetime import datetime, timezone

from .streaming import ResponseStream


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class HttpMethod(str, Enum):
    """HTTP verbs a webhook tool may use."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class AuthType(str, Enum):
    """Supported credential injection styles."""
    HEADER = "header"
    JWT = "jwt"


class ErrorType(str, Enum):
    """Failure kinds recorded on unsuccessful executions."""
    TIMEOUT = "timeout"
    CONNECTION_TIMEOUT = "connection_timeout"
    CONNECTION_RESET = "connection_reset"
    DNS_FAILURE = "dns_failure"
    CONNECTION_ERROR = "connection_error"
    HTTP_ERROR = "http_error"
    INVALID_RESPONSE = "invalid_response"
    RATE_LIMITED = "rate_limited"
    UNKNOWN = "unknown"


class HealthStatus(str, Enum):
    """Health classification derived from the success rate."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class JobStatus(str, Enum):
    """Lifecycle of an asynchronous execution with callback delivery."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CALLBACK_FAILED = "callback_failed"


# =============================================================================
# Tool Definition Models
# =============================================================================

class AuthConfig(BaseModel):
    """Credential declaration attached to a tool (or loaded from a secret store)."""
    model_config = ConfigDict(populate_by_name=True)

    type: AuthType
    name: Optional[str] = None  # header name, header auth only
    value: Optional[str] = None
    value_from_env: Optional[str] = Field(default=None, alias="valueFromEnv")
    token: Optional[str] = None
    token_from_env: Optional[str] = Field(default=None, alias="tokenFromEnv")


class AuthFrom(BaseModel):
    """Indirection to a credential resolved per (user, tool name)."""
    user: str


class RateLimitConfig(BaseModel):
    """Sliding window quota: at most `requests` calls per `window` milliseconds."""
    requests: int
    window: int


def default_input_schema() -> Dict[str, Any]:
    return {"type": "object", "properties": {}}


def default_output_schema() -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "result": {
                "type": "string",
                "description": "Response from webhook",
            }
        },
    }


class ToolDefinition(BaseModel):
    """Canonical definition of a webhook tool.

    Built from a manifest entry that has already been expanded by the
    ManifestNormalizer. Manifest keys keep their camelCase spelling through
    aliases; unknown keys (tags, paid, ...) are kept as extras.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    description: str = ""
    url: str
    method: HttpMethod = HttpMethod.POST
    input: Dict[str, Any] = Field(default_factory=default_input_schema)
    output: Dict[str, Any] = Field(default_factory=dict)
    public: bool = False

    # Execution policy (milliseconds)
    timeout: int = 30000
    max_retries: int = Field(default=3, alias="maxRetries")
    retry_delay: int = Field(default=1000, alias="retryDelay")
    rate_limit: Optional[RateLimitConfig] = Field(default=None, alias="rateLimit")

    # Credentials
    auth: Optional[AuthConfig] = None
    auth_from: Optional[AuthFrom] = Field(default=None, alias="authFrom")

    @field_validator("method", mode="before")
    @classmethod
    def _uppercase_method(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value

    @classmethod
    def from_entry(cls, entry: Dict[str, Any]) -> "ToolDefinition":
        """Build a definition from a normalized manifest entry."""
        return cls.model_validate(entry)

    def to_entry(self) -> Dict[str, Any]:
        """Manifest-shaped dict (camelCase keys, unset options omitted)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Execution Result Models
# =============================================================================

def is_binary_envelope(data: Any) -> bool:
    """Check for the `{"binary": true, "contentType": ..., "data": <base64>}` shape."""
    return (
        isinstance(data, dict)
        and data.get("binary") is True
        and bool(data.get("contentType"))
        and bool(data.get("data"))
    )


class ExecutionResult(BaseModel):
    """Normalized outcome of a single tool execution.

    `success` discriminates the two shapes: successful results carry `data`
    (or a live `stream`), failed ones carry `error` and optionally
    `error_type` and `details`. Results are immutable once returned.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    success: bool
    tool: str
    status: int
    timestamp: datetime = Field(default_factory=utc_now)

    # Success
    data: Any = None
    stream: Optional[ResponseStream] = Field(default=None, exclude=True)
    content_type: Optional[str] = None
    response_time: Optional[int] = None  # milliseconds since call start

    # Failure
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None
    status_text: Optional[str] = None
    details: Any = None

    @property
    def is_stream(self) -> bool:
        return self.stream is not None

    @property
    def is_binary(self) -> bool:
        return self.success and is_binary_envelope(self.data)


# =============================================================================
# Rate Limit & Health Models
# =============================================================================

class RateLimitStatus(BaseModel):
    """Current usage of a tool's sliding window."""
    requests: int = 0
    limit: int = 0
    reset_time: Optional[int] = None  # epoch milliseconds


class LastError(BaseModel):
    """Most recent failure recorded for a tool."""
    timestamp: datetime
    error: Optional[str] = None
    status: Optional[int] = None


class ToolHealth(BaseModel):
    """Health snapshot for a single tool."""
    status: HealthStatus = HealthStatus.UNKNOWN
    success_rate: float = 0.0
    total_requests: int = 0
    successful_requests: int = 0
    error_requests: int = 0
    avg_response_time: int = 0
    last_success: Optional[datetime] = None
    last_error: Optional[LastError] = None
    error_types: Dict[str, int] = Field(default_factory=dict)


class OverallHealth(BaseModel):
    """Aggregate health across every tool with recorded executions."""
    total_tools: int = 0
    healthy: int = 0
    degraded: int = 0
    critical: int = 0
    unknown: int = 0
    tools: Dict[str, ToolHealth] = Field(default_factory=dict)


class HealthCheckResult(BaseModel):
    """Outcome of a live reachability probe."""
    tool: str
    healthy: bool
    status: Optional[int] = None
    response_time: int = 0
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


# =============================================================================
# Job Models
# =============================================================================

class Job(BaseModel):
    """In-memory record of an asynchronous execution."""
    job_id: str
    tool_name: str
    input: Any = None
    status: JobStatus = JobStatus.PENDING
    timestamp: datetime = Field(default_factory=utc_now)
    poll_url: str
    callback_url: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    result: Any = None
    error: Optional[Dict[str, Any]] = None


# =============================================================================
# Manifest Models
# =============================================================================

class ManifestValidationResult(BaseModel):
    """Outcome of validating a whole set of tool entries."""
    success: bool
    errors: List[str] = Field(default_factory=list)
    tool_count: int = 0
    tool_names: List[str] = Field(default_factory=list)
    invalid_indices: List[int] = Field(default_factory=list)
    duplicates: List[str] = Field(default_factory=list)


class Manifest(BaseModel):
    """A loaded manifest: server metadata plus normalized tool entries."""
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    version: Optional[str] = None
    username: Optional[str] = None
    base_url: Optional[str] = None
    tools: List[Dict[str, Any]] = Field(default_factory=list)
