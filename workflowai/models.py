"""
Pydantic Models for API Request/Response Schemas

This module defines all the data models used for API request and response schemas.
It includes models for authentication, profiles, n8n connections, the n8n proxy,
workflow generation/deployment, the AI playground, usage metering and the admin console.

Key Models:
    - SignUpRequest / SignInRequest: Account management
    - ConnectionRequest / ConnectionResponse: n8n connection manager
    - N8nProxyRequest: Generic pass-through to an n8n instance
    - WorkflowGenerateRequest / WorkflowGenerateResponse: AI workflow drafting
    - WorkflowDeployRequest: Deployment to the active n8n connection
    - ChatRequest / ChatResponse: AI playground conversation
    - ErrorResponse: Standard error response format

Features:
    - Pydantic validation and serialization
    - Blank-string rejection on required form fields
    - Enum-based status management
    - DateTime handling with proper formatting
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field, field_validator


def _not_blank(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("This field is required")
    return value.strip()


class ConnectionStatus(str, Enum):
    """
    Enumeration of n8n connection states.

    States:
        CONNECTED: Last call to the instance succeeded
        ERROR: Last call to the instance failed
        PENDING: Saved but never used
    """
    CONNECTED = "connected"
    ERROR = "error"
    PENDING = "pending"


class SubscriptionTier(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class ErrorResponse(BaseModel):
    """
    Standard error response model.

    Used for consistent error formatting across all API endpoints.
    Includes timestamp for debugging and optional detailed error information.
    """
    error: str = Field(..., description="Error message")
    details: Optional[str] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


# ============================================================================
# ACCOUNT MANAGEMENT
# ============================================================================

class SignUpRequest(BaseModel):
    """Request model for creating an account with email and password."""
    email: str = Field(..., description="Account email")
    password: str = Field(..., description="Account password")
    full_name: Optional[str] = Field(None, description="Display name stored in user metadata")

    @field_validator("email", "password", mode="before")
    @classmethod
    def required_fields(cls, value):
        return _not_blank(value)

    @field_validator("email")
    @classmethod
    def email_shape(cls, value: str) -> str:
        if "@" not in value or value.startswith("@") or value.endswith("@"):
            raise ValueError("A valid email address is required")
        return value.lower()


class SignInRequest(BaseModel):
    """Request model for password sign in."""
    email: str = Field(..., description="Account email")
    password: str = Field(..., description="Account password")

    @field_validator("email", "password", mode="before")
    @classmethod
    def required_fields(cls, value):
        return _not_blank(value)


class SessionResponse(BaseModel):
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    user: Optional[Dict[str, Any]] = None
    message: Optional[str] = None


class ProfileData(BaseModel):
    """Editable profile fields, stored in the ``profiles`` table."""
    full_name: Optional[str] = ""
    bio: Optional[str] = ""
    company: Optional[str] = ""
    location: Optional[str] = ""
    website: Optional[str] = ""
    avatar_url: Optional[str] = ""


class UserSettings(BaseModel):
    """Per-user preferences, stored in the ``user_settings`` table."""
    email_notifications: bool = True
    workflow_notifications: bool = True
    marketing_emails: bool = False
    theme: str = "dark"
    language: str = "en"
    timezone: str = "UTC"


class ProfileResponse(BaseModel):
    id: str
    email: str
    subscription_tier: SubscriptionTier = SubscriptionTier.FREE
    profile: ProfileData
    settings: UserSettings


class ProfileUpdateRequest(BaseModel):
    profile: ProfileData = Field(default_factory=ProfileData)
    settings: UserSettings = Field(default_factory=UserSettings)


class UsageResponse(BaseModel):
    """Generation usage for the current calendar month (UTC)."""
    tier: SubscriptionTier
    generations_used: int
    generations_limit: Optional[int] = Field(None, description="None means unlimited")
    connections_used: int
    connections_limit: Optional[int] = Field(None, description="None means unlimited")
    period_start: datetime


# ============================================================================
# N8N CONNECTIONS AND PROXY
# ============================================================================

class ConnectionRequest(BaseModel):
    """
    Request model for testing or saving an n8n connection.

    All three fields are required and may not be blank.
    """
    instance_name: str = Field(..., alias="instanceName", description="Display name of the instance")
    base_url: str = Field(..., alias="baseUrl", description="Base URL of the n8n instance")
    api_key: str = Field(..., alias="apiKey", description="n8n public API key")
    workflow_count: Optional[int] = Field(None, alias="workflowCount")
    version: Optional[str] = None

    model_config = {"populate_by_name": True}

    @field_validator("instance_name", "base_url", "api_key", mode="before")
    @classmethod
    def required_fields(cls, value):
        return _not_blank(value)

    @field_validator("base_url")
    @classmethod
    def normalize_base_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("Base URL must start with http:// or https://")
        return value.rstrip("/")


class ConnectionResponse(BaseModel):
    """n8n connection as returned to clients; the API key is always hidden."""
    id: str
    instance_name: str
    base_url: str
    api_key: Optional[str] = None
    is_active: bool = False
    connection_status: str = ConnectionStatus.PENDING.value
    last_connected: Optional[str] = None
    version: Optional[str] = None
    workflow_count: Optional[int] = 0
    execution_count: Optional[int] = 0
    created_at: Optional[str] = None


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None


class N8nProxyRequest(BaseModel):
    """
    Request model for the generic n8n pass-through.

    ``baseUrl``, ``apiKey`` and ``endpoint`` are checked by the route itself
    so that a missing value yields a plain 400 rather than a 422.
    """
    base_url: Optional[str] = Field(None, alias="baseUrl")
    api_key: Optional[str] = Field(None, alias="apiKey")
    endpoint: Optional[str] = None
    method: str = "GET"
    data: Optional[Any] = None
    headers: Optional[Dict[str, str]] = None

    model_config = {"populate_by_name": True}


# ============================================================================
# WORKFLOWS
# ============================================================================

class CredentialRequirement(BaseModel):
    """One credential a workflow node needs before deployment."""
    node_type: str
    node_name: str
    credential_type: str
    required: bool
    description: str
    placeholder: str


class WorkflowGenerateRequest(BaseModel):
    """
    Request model for generating an n8n workflow from natural language.

    The prompt is the user's description, typed or transcribed from voice.
    """
    prompt: str = Field(..., description="Natural language description of the automation")
    user_context: Optional[Dict[str, Any]] = Field(None, alias="userContext")

    model_config = {"populate_by_name": True}

    @field_validator("prompt", mode="before")
    @classmethod
    def required_fields(cls, value):
        return _not_blank(value)


class WorkflowGenerateResponse(BaseModel):
    workflow: Dict[str, Any]
    explanation: str = ""
    model: Optional[str] = Field(None, description="Model that served the request")
    validation_errors: List[str] = Field(default_factory=list)
    required_credentials: List[CredentialRequirement] = Field(default_factory=list)
    fallback: bool = Field(False, description="True when no workflow could be extracted")


class WorkflowPayload(BaseModel):
    workflow: Dict[str, Any]


class WorkflowValidationResponse(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


class CredentialsCheckRequest(BaseModel):
    workflow: Dict[str, Any]
    values: Dict[str, str] = Field(default_factory=dict, description="Keyed by '<node name>:<credential type>'")


class CredentialsCheckResponse(BaseModel):
    required_credentials: List[CredentialRequirement]
    complete: bool


class WorkflowDeployRequest(BaseModel):
    workflow: Dict[str, Any]
    credentials: Dict[str, str] = Field(default_factory=dict, description="Keyed by '<node name>:<credential type>'")
    activate: bool = True
    connection_id: Optional[str] = Field(None, description="Defaults to the active connection")


class WorkflowDeployResponse(BaseModel):
    success: bool
    workflow_id: Optional[str] = None
    active: bool = False
    message: Optional[str] = None
    n8n_response: Optional[Dict[str, Any]] = None


class WorkflowSummary(BaseModel):
    name: str
    node_count: int
    connection_count: int
    services: List[str]


class WorkflowSummaryRequest(BaseModel):
    workflow: Dict[str, Any]
    explanation: Optional[str] = ""


# ============================================================================
# AI PLAYGROUND
# ============================================================================

class ChatMessage(BaseModel):
    role: str = Field(..., description="'user' or 'assistant'")
    content: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    workflow: Optional[Dict[str, Any]] = None


class ChatRequest(BaseModel):
    message: str = Field(..., description="User message")
    session_id: Optional[str] = Field(None, alias="sessionId")

    model_config = {"populate_by_name": True}

    @field_validator("message", mode="before")
    @classmethod
    def required_fields(cls, value):
        return _not_blank(value)


class ChatResponse(BaseModel):
    session_id: str
    message: ChatMessage
    suggestions: List[str] = Field(default_factory=list)
    workflow: Optional[Dict[str, Any]] = None
    explanation: Optional[str] = None
    required_credentials: List[CredentialRequirement] = Field(default_factory=list)


class ConversationResponse(BaseModel):
    session_id: str
    messages: List[ChatMessage]


# ============================================================================
# ANALYTICS AND ADMIN
# ============================================================================

class ActivityItem(BaseModel):
    activity_type: str
    title: str
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None


class UserStats(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    created_at: Optional[str] = None
    workflow_count: int = 0
    connection_count: int = 0
    last_active: Optional[str] = None


class SystemStats(BaseModel):
    total_users: int = 0
    total_workflows: int = 0
    total_connections: int = 0
    active_connections: int = 0


class AdminOverviewResponse(BaseModel):
    users: List[UserStats]
    system: SystemStats


class SystemLogItem(BaseModel):
    log_level: str
    component: str
    message: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
