from fastapi import FastAPI, HTTPException, BackgroundTasks, Request
from fastapi.responses import JSONResponse, StreamingResponse
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import logging

import httpx

from config import Settings, get_settings
from webhook_tools import (
    CredentialResolver,
    ExecutionEngine,
    ExecutionResult,
    FileSecretStore,
    HealthMonitor,
    InvalidToolError,
    JobNotFoundError,
    JobStore,
    Manifest,
    RateLimiter,
    ToolNotFoundError,
    ToolRegistry,
    load_manifest,
)
from webhook_tools.tool_registry import RATE_LIMIT_STATUS_TOOL

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _error_detail(error: Exception) -> Dict[str, Any]:
    detail: Dict[str, Any] = {"code": getattr(error, "code", "internal_error"), "message": str(error)}
    if isinstance(error, InvalidToolError):
        detail["errors"] = error.errors
    return detail


def _result_response(result: ExecutionResult):
    """Render an execution result; streams are forwarded chunk by chunk."""
    if result.stream is not None:
        return StreamingResponse(
            result.stream,
            status_code=result.status,
            media_type=result.content_type,
        )
    return JSONResponse(result.model_dump(mode="json"), status_code=result.status)


async def _read_arguments(request: Request) -> Any:
    body = await request.body()
    if not body:
        return None
    try:
        return await request.json()
    except ValueError:
        return body.decode("utf-8", errors="replace")


def create_app(
    app_settings: Optional[Settings] = None,
    manifest: Optional[Manifest] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the HTTP facade.

    Args:
        app_settings: Settings (defaults to environment settings)
        manifest: Pre-loaded manifest (defaults to settings.manifest_path)
        client: HTTP client for outbound calls (created when omitted)
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        logger.info("Starting Webhook Tools server...")
        loaded = manifest or load_manifest(app_settings.manifest_path, debug=app_settings.debug)

        health_monitor = HealthMonitor(
            client=client,
            check_timeout=app_settings.health_check_timeout_seconds,
        )
        engine = ExecutionEngine(
            rate_limiter=RateLimiter(),
            health_monitor=health_monitor,
            credential_resolver=CredentialResolver(secret_store=FileSecretStore(app_settings.secrets_dir)),
            client=client,
            job_store=JobStore(),
            callback_timeout=app_settings.callback_timeout_seconds,
        )
        app.state.settings = app_settings
        app.state.engine = engine
        app.state.registry = ToolRegistry.from_manifest(loaded, engine, debug=app_settings.debug)

        yield

        # Shutdown
        logger.info("Shutting down...")
        await engine.close()
        await health_monitor.close()

    app = FastAPI(
        title="Webhook Tools",
        description="Exposes HTTP webhooks as callable tools",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "webhook-tools",
            "tools": app.state.registry.tool_count,
        }

    @app.get("/tools")
    async def list_tools():
        """List valid manifest tools and the diagnostic tools."""
        return {"tools": app.state.registry.list_tools()}

    @app.post("/tools/{name}")
    async def call_tool(name: str, request: Request):
        """
        Execute a tool synchronously.

        The JSON body is the argument object; request headers are forwarded.
        """
        args = await _read_arguments(request)
        try:
            result = await app.state.registry.call_tool(name, args, dict(request.headers))
        except ToolNotFoundError as e:
            raise HTTPException(status_code=404, detail=_error_detail(e))
        except InvalidToolError as e:
            raise HTTPException(status_code=400, detail=_error_detail(e))
        return _result_response(result)

    @app.post("/tools/{name}/jobs", status_code=202)
    async def call_tool_async(
        name: str,
        callback_url: str,
        request: Request,
        background_tasks: BackgroundTasks,
    ):
        """
        Queue a tool execution whose outcome is POSTed to `callback_url`.

        Returns immediately with the job id and its poll URL.
        """
        registry: ToolRegistry = app.state.registry
        engine: ExecutionEngine = app.state.engine
        try:
            definition = registry.get_definition(name)
        except ToolNotFoundError as e:
            raise HTTPException(status_code=404, detail=_error_detail(e))
        except InvalidToolError as e:
            raise HTTPException(status_code=400, detail=_error_detail(e))

        args = await _read_arguments(request)
        headers = dict(request.headers)
        job_id = engine.job_store.create_job(
            name, args, callback_url, headers, app.state.settings.public_base_url
        )
        background_tasks.add_task(
            engine.execute_and_deliver, job_id, definition, args, callback_url, headers
        )
        job = engine.job_store.get_job(job_id)
        logger.info(f"Queued job {job_id} for tool {name}")

        return JSONResponse(
            {"job_id": job_id, "status": job.status.value, "poll_url": job.poll_url},
            status_code=202,
        )

    @app.get("/status/{job_id}")
    async def job_status(job_id: str):
        """Poll an async job."""
        job = app.state.engine.job_store.get_job(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
        return job.model_dump(mode="json", exclude={"headers"})

    @app.delete("/status/{job_id}")
    async def remove_job(job_id: str):
        """Drop a finished job record."""
        try:
            job = app.state.engine.job_store.remove_job(job_id)
        except JobNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return {"job_id": job.job_id, "removed": True}

    @app.get("/diagnostics/health")
    async def overall_health():
        """Aggregate health of every tool called so far."""
        return app.state.engine.health_monitor.get_overall_health().model_dump(mode="json")

    @app.get("/diagnostics/health/{name}")
    async def tool_health(name: str):
        """Recorded health of one tool."""
        if name not in app.state.registry:
            raise HTTPException(status_code=404, detail=f"Tool not found: {name}")
        return app.state.engine.health_monitor.get_health(name).model_dump(mode="json")

    @app.post("/diagnostics/health/{name}/check")
    async def probe_tool(name: str):
        """Live reachability probe; does not affect recorded health."""
        try:
            definition = app.state.registry.get_definition(name)
        except ToolNotFoundError as e:
            raise HTTPException(status_code=404, detail=_error_detail(e))
        except InvalidToolError as e:
            raise HTTPException(status_code=400, detail=_error_detail(e))
        check = await app.state.engine.health_monitor.perform_health_check(definition)
        return check.model_dump(mode="json")

    @app.get("/diagnostics/rate-limit/{name}")
    async def rate_limit_status(name: str):
        """Current rate limit window usage of one tool."""
        result = await app.state.registry.call_tool(RATE_LIMIT_STATUS_TOOL, {"name": name})
        if not result.success:
            raise HTTPException(status_code=result.status, detail=result.error)
        return result.data

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
