"""
Main FastAPI Application for the WorkflowAI backend

This is the core FastAPI application that provides REST API endpoints for:
- Account management and user profiles on top of Supabase auth
- Managing n8n connections and proxying calls to the user's n8n instance
- Generating n8n workflows from natural language with a generative AI model
- Deploying generated workflows with their credentials
- The AI playground conversation
- Usage metering, activity feed and the internal admin console

Key Features:
    - AI-powered workflow generation with a model fallback list (Gemini or Claude)
    - n8n REST proxy with timeout, retries and readable error messages
    - Subscription tiers with monthly generation limits
    - PDF summaries of generated workflows
    - Comprehensive CORS support for web frontends
    - Error handling and logging

API Endpoints:
    - POST /api/auth/signup, /api/auth/signin, /api/auth/signout - Accounts
    - POST /api/n8n/proxy - Generic pass-through to an n8n instance
    - /api/n8n/connections - n8n connection manager
    - POST /api/workflows/generate - Draft a workflow from a prompt
    - POST /api/workflows/deploy - Deploy a workflow to the active connection
    - POST /api/playground/chat - AI playground
    - GET /api/admin/overview - Admin console

The application exposes its API documentation via FastAPI's automatic OpenAPI integration.
"""

import logging
from datetime import datetime
from typing import Optional, Any, List
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response, StreamingResponse
import uvicorn

from .config import settings
from .auth import bearer_token, get_current_user, is_admin, require_admin
from .api_clients import LLMAPIError, LLMTimeoutError, N8nAPIError
from .dependencies import (
    get_analytics,
    get_connections,
    get_db,
    get_deployer,
    get_generator,
    get_n8n_client_factory,
    get_playground,
    get_profiles,
    get_usage,
)
from .models import (
    ActivityItem,
    AdminOverviewResponse,
    ChatRequest,
    ChatResponse,
    ConnectionRequest,
    ConnectionResponse,
    ConnectionTestResponse,
    ConversationResponse,
    CredentialsCheckRequest,
    CredentialsCheckResponse,
    ErrorResponse,
    N8nProxyRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    SystemLogItem,
    UsageResponse,
    WorkflowDeployRequest,
    WorkflowDeployResponse,
    WorkflowGenerateRequest,
    WorkflowGenerateResponse,
    WorkflowPayload,
    WorkflowSummary,
    WorkflowSummaryRequest,
    WorkflowValidationResponse,
)
from .pdf_generator import pdf_generator
from .services.connections import ConnectionNotFoundError
from .services.usage import QuotaExceededError
from .supabase_client import AuthError, SupabaseError
from .workflow.credentials import credentials_complete, extract_required_credentials
from .workflow.deployer import DeploymentError
from .workflow.summary import summarize_workflow
from .workflow.validation import validate_workflow

# Configure logging based on debug settings
logging.basicConfig(level=logging.INFO if settings.debug else logging.WARNING)
logger = logging.getLogger(__name__)

try:
    settings.validate()
except ValueError as e:
    # Routes depending on the missing service answer 503 until it is configured
    logger.warning(f"⚠️ Configuration incomplete: {e}")

# Create FastAPI app with comprehensive metadata
app = FastAPI(
    title="WorkflowAI API",
    description="API for generating and deploying n8n workflows using AI",
    version="1.0.0",
    debug=settings.debug
)

# Create API router with /api prefix
api_router = APIRouter()

# Add CORS middleware for cross-domain frontend support
app.add_middleware(
    CORSMiddleware,
    allow_origins=["null", *settings.cors_origins],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


def _llm_http_error(action: str, error: LLMAPIError) -> HTTPException:
    """Map a model client failure to the HTTP status returned to the client."""
    if isinstance(error, LLMTimeoutError):
        return HTTPException(status_code=408, detail=error.message)
    if error.status == 503:
        return HTTPException(status_code=503, detail=error.message)
    return HTTPException(status_code=500, detail=f"Failed to {action}: {error.message}")


def _n8n_error_response(error: N8nAPIError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status,
        content={"success": False, "error": error.message, "details": error.body}
    )


def _n8n_success_response(status: int, body: Any) -> Response:
    if status == 204:
        return Response(status_code=204)
    return JSONResponse(status_code=status, content=body)


@app.get("/", response_class=HTMLResponse, tags=["Frontend"])
async def serve_frontend():
    """
    Serve the frontend HTML page.

    Returns the dashboard interface when accessing the root URL.
    """
    try:
        with open("index.html", "r", encoding="utf-8") as f:
            return HTMLResponse(content=f.read())
    except FileNotFoundError:
        # Fallback to API info if index.html not found
        return JSONResponse(content={
            "message": "WorkflowAI API",
            "version": "1.0.0",
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "note": "Frontend file not found - API only mode"
        })


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint for monitoring.

    Provides service status information for deployment platforms.
    """
    return {
        "message": "WorkflowAI API",
        "version": "1.0.0",
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat()
    }


# ============================================================================
# ACCOUNTS AND PROFILE
# ============================================================================

@api_router.post("/auth/signup", response_model=SessionResponse, tags=["Auth"])
async def sign_up(
    request: SignUpRequest,
    background_tasks: BackgroundTasks,
    db=Depends(get_db),
    analytics=Depends(get_analytics)
):
    """
    Create an account with email and password.

    When the project requires email confirmation, no session is returned
    and ``message`` asks the user to confirm their address.
    """
    try:
        result = await db.sign_up(request.email, request.password, request.full_name)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=e.message)

    result = result or {}
    user = result.get("user") or (result if result.get("id") else None)
    if user:
        background_tasks.add_task(analytics.track_activity, user["id"], "account_created", "Welcome to WorkflowAI")

    logger.info(f"👤 Account created for {request.email}")
    return SessionResponse(
        access_token=result.get("access_token"),
        refresh_token=result.get("refresh_token"),
        expires_in=result.get("expires_in"),
        user=user,
        message="Account created" if result.get("access_token") else "Check your email to confirm your account"
    )


@api_router.post("/auth/signin", response_model=SessionResponse, tags=["Auth"])
async def sign_in(request: SignInRequest, db=Depends(get_db)):
    try:
        result = await db.sign_in(request.email, request.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=e.message)

    return SessionResponse(
        access_token=result.get("access_token"),
        refresh_token=result.get("refresh_token"),
        expires_in=result.get("expires_in"),
        user=result.get("user"),
    )


@api_router.post("/auth/signout", tags=["Auth"])
async def sign_out(request: Request, user=Depends(get_current_user), db=Depends(get_db)):
    await db.sign_out(bearer_token(request.headers.get("authorization")))
    return {"success": True}


@api_router.get("/auth/me", tags=["Auth"])
async def current_user(user=Depends(get_current_user)):
    return {"user": user, "is_admin": is_admin(user)}


@api_router.get("/profile", response_model=ProfileResponse, tags=["Profile"])
async def get_profile(user=Depends(get_current_user), profiles=Depends(get_profiles)):
    return await profiles.get_profile(user)


@api_router.put("/profile", response_model=ProfileResponse, tags=["Profile"])
async def update_profile(
    request: ProfileUpdateRequest,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    profiles=Depends(get_profiles),
    analytics=Depends(get_analytics)
):
    try:
        result = await profiles.save_profile(user, request.profile, request.settings)
    except SupabaseError as e:
        logger.error(f"Failed to save profile: {e.message}")
        raise HTTPException(status_code=500, detail=f"Failed to save profile: {e.message}")

    background_tasks.add_task(analytics.track_event, user["id"], "profile_updated", "profile", user["id"])
    return result


@api_router.get("/usage", response_model=UsageResponse, tags=["Profile"])
async def get_usage_summary(user=Depends(get_current_user), usage=Depends(get_usage)):
    return await usage.get_usage(user["id"])


@api_router.get("/activity", response_model=List[ActivityItem], tags=["Profile"])
async def get_activity(
    limit: int = Query(20, ge=1, le=100),
    user=Depends(get_current_user),
    analytics=Depends(get_analytics)
):
    return await analytics.recent_activity(user["id"], limit=limit)


# ============================================================================
# N8N PROXY AND CONNECTIONS
# ============================================================================

@api_router.post("/n8n/proxy", tags=["n8n"])
async def n8n_proxy(
    request: N8nProxyRequest,
    user=Depends(get_current_user),
    client_factory=Depends(get_n8n_client_factory)
):
    """
    Forward a request to an n8n instance.

    The call is retried on timeouts, connection errors and 502/503/504, then
    any remaining failure is returned as ``{"success": false, "error": ...}``
    with the n8n status.

    Example:
        POST /api/n8n/proxy
        {
            "baseUrl": "https://n8n.example.com",
            "apiKey": "n8n_api_...",
            "endpoint": "/workflows",
            "method": "GET"
        }
    """
    missing = [
        name for name, value in (
            ("baseUrl", request.base_url),
            ("apiKey", request.api_key),
            ("endpoint", request.endpoint),
        )
        if not (value or "").strip()
    ]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")

    client = client_factory(request.base_url.strip(), request.api_key.strip())
    try:
        status, body = await client.request(request.method, request.endpoint.strip(), request.data, request.headers)
    except N8nAPIError as e:
        return _n8n_error_response(e)
    return _n8n_success_response(status, body)


@api_router.post("/n8n/test-connection", response_model=ConnectionTestResponse, tags=["n8n"])
async def test_connection(
    request: ConnectionRequest,
    user=Depends(get_current_user),
    connections=Depends(get_connections)
):
    try:
        data = await connections.test(request)
    except N8nAPIError as e:
        logger.warning(f"⚠️ n8n connection test failed for {request.base_url}: {e.message}")
        return JSONResponse(
            status_code=400,
            content=ConnectionTestResponse(success=False, message=f"Connection failed: {e.message}").model_dump()
        )
    return ConnectionTestResponse(success=True, message="Connection successful", data=data)


@api_router.post("/n8n/connections", response_model=ConnectionResponse, tags=["n8n"])
async def save_connection(
    request: ConnectionRequest,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    connections=Depends(get_connections),
    usage=Depends(get_usage),
    analytics=Depends(get_analytics)
):
    try:
        await usage.check_connection_quota(user["id"])
    except QuotaExceededError as e:
        raise HTTPException(status_code=429, detail=e.message)

    try:
        connection = await connections.save(user["id"], request)
    except SupabaseError as e:
        logger.error(f"Failed to save connection: {e.message}")
        raise HTTPException(status_code=500, detail=f"Failed to save connection: {e.message}")

    background_tasks.add_task(analytics.track_event, user["id"], "connection_created", "n8n_connection", connection.id)
    background_tasks.add_task(
        analytics.track_activity,
        user["id"],
        "connection_created",
        f"Connected {connection.instance_name}",
        connection.base_url,
    )
    return connection


@api_router.get("/n8n/connections", response_model=List[ConnectionResponse], tags=["n8n"])
async def list_connections(user=Depends(get_current_user), connections=Depends(get_connections)):
    return await connections.list(user["id"])


@api_router.put("/n8n/connections/{connection_id}", response_model=ConnectionResponse, tags=["n8n"])
async def update_connection(
    connection_id: str,
    request: ConnectionRequest,
    user=Depends(get_current_user),
    connections=Depends(get_connections)
):
    try:
        return await connections.update(user["id"], connection_id, request)
    except ConnectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@api_router.post("/n8n/connections/{connection_id}/activate", response_model=ConnectionResponse, tags=["n8n"])
async def activate_connection(
    connection_id: str,
    user=Depends(get_current_user),
    connections=Depends(get_connections)
):
    try:
        return await connections.set_active(user["id"], connection_id)
    except ConnectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@api_router.delete("/n8n/connections/{connection_id}", tags=["n8n"])
async def delete_connection(
    connection_id: str,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    connections=Depends(get_connections),
    analytics=Depends(get_analytics)
):
    try:
        await connections.delete(user["id"], connection_id)
    except ConnectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    background_tasks.add_task(analytics.track_event, user["id"], "connection_deleted", "n8n_connection", connection_id)
    return {"success": True, "message": "Connection deleted successfully"}


@api_router.get("/n8n/health", tags=["n8n"])
async def n8n_health(user=Depends(get_current_user), connections=Depends(get_connections)):
    """Check the reachability of the user's active n8n instance."""
    try:
        connection = await connections.get_active(user["id"])
    except ConnectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    result = await connections.client_for(connection).health_check()
    await connections.touch(connection["id"], ok=result["status"] == "ok")
    return {**result, "connection_id": connection["id"], "base_url": connection["base_url"]}


@api_router.api_route(
    "/n8n/active/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    tags=["n8n"]
)
async def n8n_active_proxy(
    path: str,
    request: Request,
    user=Depends(get_current_user),
    connections=Depends(get_connections)
):
    """
    Forward a request to the user's active n8n connection.

    The connection's ``last_connected`` and ``connection_status`` are updated
    with the outcome of the call.
    """
    try:
        connection = await connections.get_active(user["id"])
    except ConnectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    data: Optional[Any] = None
    if request.method not in ("GET", "DELETE"):
        raw = await request.body()
        if raw:
            try:
                data = await request.json()
            except ValueError:
                raise HTTPException(status_code=400, detail="Request body must be valid JSON")

    endpoint = f"/{path}"
    if request.url.query:
        endpoint = f"{endpoint}?{request.url.query}"

    client = connections.client_for(connection)
    try:
        status, body = await client.request(request.method, endpoint, data)
    except N8nAPIError as e:
        await connections.touch(connection["id"], ok=False)
        return _n8n_error_response(e)

    await connections.touch(connection["id"], ok=True)
    return _n8n_success_response(status, body)


# ============================================================================
# WORKFLOWS
# ============================================================================

@api_router.post("/workflows/generate", response_model=WorkflowGenerateResponse, tags=["Workflows"])
async def generate_workflow(
    request: WorkflowGenerateRequest,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    generator=Depends(get_generator),
    usage=Depends(get_usage),
    analytics=Depends(get_analytics)
):
    """
    Generate an n8n workflow from a natural language description.

    Counts against the monthly generation limit of the user's plan. When the
    model answer holds no usable workflow, an empty fallback workflow is
    returned with ``fallback: true`` and the answer as explanation.

    Raises:
        HTTPException: 400 blank prompt, 408 model timeout, 429 plan limit
            reached, 503 no model available, 500 other failures

    Example:
        POST /api/workflows/generate
        {
            "prompt": "Every morning, post new rows of my Google Sheet to Slack"
        }
    """
    try:
        await usage.check_generation_quota(user["id"])
    except QuotaExceededError as e:
        raise HTTPException(status_code=429, detail=e.message)

    try:
        logger.info(f"Generating workflow: {request.prompt[:100]}...")
        result = await generator.generate(request.prompt, request.user_context)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LLMAPIError as e:
        logger.error(f"Failed to generate workflow: {e.message}")
        raise _llm_http_error("generate workflow", e)

    if not result.fallback:
        background_tasks.add_task(usage.record_generation, analytics, user["id"], {
            "name": result.workflow.get("name"),
            "model": result.model,
            "nodeCount": len(result.workflow.get("nodes") or []),
        })
        background_tasks.add_task(
            analytics.track_activity,
            user["id"],
            "workflow_generated",
            f"Generated {result.workflow.get('name')}",
            request.prompt[:200],
        )
    return result


@api_router.post("/workflows/validate", response_model=WorkflowValidationResponse, tags=["Workflows"])
async def validate_workflow_definition(request: WorkflowPayload):
    errors = validate_workflow(request.workflow)
    return WorkflowValidationResponse(valid=not errors, errors=errors)


@api_router.post("/workflows/credentials", response_model=CredentialsCheckResponse, tags=["Workflows"])
async def check_workflow_credentials(request: CredentialsCheckRequest):
    """List the credentials a workflow needs and whether the supplied values cover them."""
    requirements = extract_required_credentials(request.workflow)
    return CredentialsCheckResponse(
        required_credentials=requirements,
        complete=credentials_complete(requirements, request.values)
    )


@api_router.post("/workflows/deploy", response_model=WorkflowDeployResponse, tags=["Workflows"])
async def deploy_workflow(
    request: WorkflowDeployRequest,
    user=Depends(get_current_user),
    deployer=Depends(get_deployer)
):
    """
    Deploy a workflow to the user's active (or given) n8n connection.

    Raises:
        HTTPException: 400 invalid workflow or missing credentials, 404 no
            connection, n8n status (502/504 when unreachable) on n8n failures
    """
    try:
        return await deployer.deploy(
            user["id"],
            request.workflow,
            request.credentials,
            activate=request.activate,
            connection_id=request.connection_id
        )
    except DeploymentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConnectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except N8nAPIError as e:
        raise HTTPException(status_code=e.status, detail=f"Failed to deploy workflow: {e.message}")


@api_router.post("/workflows/summary", response_model=WorkflowSummary, tags=["Workflows"])
async def workflow_summary(request: WorkflowPayload):
    return summarize_workflow(request.workflow)


@api_router.post("/workflows/summary/pdf", tags=["Workflows"])
async def workflow_summary_pdf(request: WorkflowSummaryRequest):
    """
    Download a PDF summary of a generated workflow.

    Returns:
        StreamingResponse: PDF file download with application/pdf content type
    """
    summary = summarize_workflow(request.workflow)
    try:
        pdf_buffer = pdf_generator.generate_summary_report(request.workflow, summary, request.explanation)
    except Exception as e:
        logger.error(f"Failed to generate PDF summary: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to generate PDF report: {str(e)}")

    safe_name = "".join(c if c.isalnum() else "_" for c in summary.name).strip("_") or "workflow"
    filename = f"workflow_summary_{safe_name}.pdf"
    logger.info(f"PDF summary generated successfully: {filename}")

    return StreamingResponse(
        pdf_buffer,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


# ============================================================================
# AI PLAYGROUND
# ============================================================================

@api_router.post("/playground/chat", response_model=ChatResponse, tags=["Playground"])
async def playground_chat(
    request: ChatRequest,
    user=Depends(get_current_user),
    playground=Depends(get_playground)
):
    try:
        return await playground.chat(user, request.message, request.session_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QuotaExceededError as e:
        raise HTTPException(status_code=429, detail=e.message)


@api_router.get("/playground/sessions/{session_id}", response_model=ConversationResponse, tags=["Playground"])
async def playground_history(
    session_id: str,
    user=Depends(get_current_user),
    playground=Depends(get_playground)
):
    return await playground.history(user["id"], session_id)


# ============================================================================
# ADMIN CONSOLE
# ============================================================================

@api_router.get("/admin/overview", response_model=AdminOverviewResponse, tags=["Admin"])
async def admin_overview(admin=Depends(require_admin), analytics=Depends(get_analytics)):
    return await analytics.overview()


@api_router.get("/admin/logs", response_model=List[SystemLogItem], tags=["Admin"])
async def admin_logs(
    level: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    admin=Depends(require_admin),
    analytics=Depends(get_analytics)
):
    return await analytics.system_logs(level, limit)


# Include the API router in the main app
app.include_router(api_router, prefix="/api")


@app.exception_handler(SupabaseError)
async def supabase_exception_handler(request: Request, exc: SupabaseError):
    """Managed backend failures keep their status (503 when Supabase is not configured)."""
    logger.error(f"Supabase error on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status,
        content=ErrorResponse(error=exc.message).model_dump(mode="json")
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors.

    Catches all unhandled exceptions and returns a consistent error response.
    In debug mode, includes detailed error information for troubleshooting.
    In production mode, returns generic error messages to avoid information leakage.
    """
    logger.error(f"Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal server error",
            details=str(exc) if settings.debug else None,
            timestamp=datetime.utcnow()
        ).model_dump(mode="json")
    )


# Development server entry point
if __name__ == "__main__":
    # Run the development server with auto-reload in debug mode
    uvicorn.run(
        "workflowai.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
