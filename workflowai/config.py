"""
Application Configuration Settings

This module defines the configuration settings for the WorkflowAI backend.
It loads environment variables and provides default values for all configurable parameters.

Environment Variables:
    SUPABASE_URL: Base URL of the Supabase project (auth + REST)
    SUPABASE_ANON_KEY: Public anon key, used for user-scoped auth calls
    SUPABASE_SERVICE_ROLE_KEY: Service role key, used for table access
    LLM_PROVIDER: Generative AI provider ("gemini" or "anthropic")
    GEMINI_API_KEY: API key for the Google Gemini endpoint
    ANTHROPIC_API_KEY: API key for Anthropic Claude
    GEMINI_MODELS / ANTHROPIC_MODELS: Comma-separated model fallback lists
    ADMIN_EMAILS: Comma-separated list of emails allowed in the admin console
    DEBUG: Enable debug mode (true/false)
    HOST: Server host address (default: 0.0.0.0)
    PORT: Server port number (default: 8000)

Features:
    - Environment variable loading via python-dotenv
    - Configuration validation
    - Default values for all settings
    - n8n proxy timeout and retry configuration
"""

import os
from typing import List
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """
    Application settings configuration class.

    Loads configuration from environment variables and provides validation.
    All settings have sensible defaults and can be overridden via environment variables.
    """

    def __init__(self):
        # Managed backend (Supabase)
        self.supabase_url: str = os.getenv("SUPABASE_URL", "").rstrip("/")
        self.supabase_anon_key: str = os.getenv("SUPABASE_ANON_KEY", "")
        self.supabase_service_role_key: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

        # Generative AI settings
        self.llm_provider: str = os.getenv("LLM_PROVIDER", "gemini").lower()
        self.gemini_api_key: str = os.getenv("GEMINI_API_KEY", os.getenv("GEMINI_API", ""))
        self.anthropic_api_key: str = os.getenv("ANTHROPIC_API_KEY", "")
        self.gemini_base_url: str = os.getenv(
            "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
        ).rstrip("/")
        self.gemini_models: List[str] = _split_list(os.getenv(
            "GEMINI_MODELS", "gemini-1.5-flash-latest,gemini-1.5-flash,gemini-1.5-pro"
        ))
        self.anthropic_models: List[str] = _split_list(os.getenv(
            "ANTHROPIC_MODELS", "claude-sonnet-4-20250514,claude-3-5-haiku-latest"
        ))
        self.llm_timeout: float = float(os.getenv("LLM_TIMEOUT", "30"))

        # n8n proxy settings
        self.n8n_timeout: float = float(os.getenv("N8N_TIMEOUT", "15"))
        self.n8n_max_retries: int = int(os.getenv("N8N_MAX_RETRIES", "2"))
        self.n8n_retry_backoff: float = float(os.getenv("N8N_RETRY_BACKOFF", "1.0"))

        # Admin console
        self.admin_emails: List[str] = [e.lower() for e in _split_list(os.getenv("ADMIN_EMAILS", ""))]

        # Server configuration
        self.debug: bool = os.getenv("DEBUG", "false").lower() == "true"
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "8000"))
        self.cors_origins: List[str] = _split_list(os.getenv(
            "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173"
        ))

    @property
    def llm_api_key(self) -> str:
        """API key of the configured generative AI provider."""
        if self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return self.gemini_api_key

    @property
    def llm_models(self) -> List[str]:
        """Model fallback list of the configured generative AI provider."""
        if self.llm_provider == "anthropic":
            return self.anthropic_models
        return self.gemini_models

    def validate(self) -> None:
        """
        Validate that required settings are present.

        Raises:
            ValueError: If any required key is missing or the provider is unknown
        """
        if not self.supabase_url:
            raise ValueError("SUPABASE_URL is required")
        if not self.supabase_service_role_key:
            raise ValueError("SUPABASE_SERVICE_ROLE_KEY is required")
        if self.llm_provider not in ("gemini", "anthropic"):
            raise ValueError(f"Unsupported LLM_PROVIDER: {self.llm_provider}")
        if not self.llm_api_key:
            key_name = "ANTHROPIC_API_KEY" if self.llm_provider == "anthropic" else "GEMINI_API_KEY"
            raise ValueError(f"{key_name} is required")
        if not self.llm_models:
            raise ValueError("At least one model name must be configured")

# Global settings instance - used throughout the application
settings = Settings()
