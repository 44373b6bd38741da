"""Webhook Tools - Exposes HTTP webhooks as callable tools.

This package provides:
- Manifest Normalizer: Shorthand entry expansion
- Tool Validator: Structural validation (listing filter and call guard)
- Rate Limiter: Per-tool sliding window admission control
- Health Monitor: Per-tool execution statistics and live probes
- Credential Resolver: Header / JWT auth from env and secret stores
- Execution Engine: Retrying webhook execution and callback delivery
- Tool Registry: Manifest-backed catalog with diagnostic tools
"""

from .types import (
    # Enums
    HttpMethod,
    AuthType,
    ErrorType,
    HealthStatus,
    JobStatus,
    # Tool Definition
    AuthConfig,
    AuthFrom,
    RateLimitConfig,
    ToolDefinition,
    # Results
    ExecutionResult,
    RateLimitStatus,
    ToolHealth,
    OverallHealth,
    HealthCheckResult,
    # Jobs & Manifests
    Job,
    Manifest,
    ManifestValidationResult,
)

from .exceptions import (
    WebhookToolsError,
    InvalidToolError,
    ToolNotFoundError,
    ManifestError,
    JobNotFoundError,
    StreamConsumedError,
    StreamReadError,
)

from .normalizer import ManifestNormalizer
from .validator import ToolValidator
from .rate_limiter import RateLimiter
from .health_monitor import HealthMonitor
from .secret_store import SecretStore, InMemorySecretStore, FileSecretStore
from .credentials import CredentialResolver
from .streaming import ResponseStream, buffer_stream
from .jobs import JobStore
from .execution_engine import ExecutionEngine
from .manifest import load_manifest, interpolate_value
from .tool_registry import ToolRegistry

__all__ = [
    # Enums
    "HttpMethod",
    "AuthType",
    "ErrorType",
    "HealthStatus",
    "JobStatus",
    # Tool Definition
    "AuthConfig",
    "AuthFrom",
    "RateLimitConfig",
    "ToolDefinition",
    # Results
    "ExecutionResult",
    "RateLimitStatus",
    "ToolHealth",
    "OverallHealth",
    "HealthCheckResult",
    # Jobs & Manifests
    "Job",
    "Manifest",
    "ManifestValidationResult",
    # Errors
    "WebhookToolsError",
    "InvalidToolError",
    "ToolNotFoundError",
    "ManifestError",
    "JobNotFoundError",
    "StreamConsumedError",
    "StreamReadError",
    # Core Components
    "ManifestNormalizer",
    "ToolValidator",
    "RateLimiter",
    "HealthMonitor",
    "SecretStore",
    "InMemorySecretStore",
    "FileSecretStore",
    "CredentialResolver",
    "ResponseStream",
    "buffer_stream",
    "JobStore",
    "ExecutionEngine",
    "ToolRegistry",
    # Utilities
    "load_manifest",
    "interpolate_value",
]
