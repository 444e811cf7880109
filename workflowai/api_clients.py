"""
Direct API Clients for External Services

This module provides direct HTTP-based API clients for external services:
- The user's n8n instance REST API (workflow listing, creation, activation, proxying)
- The hosted generative AI endpoint (Google Gemini, or Anthropic Claude) used to
  draft n8n workflow definitions

Key Features:
    - Direct HTTP requests using aiohttp for async operations
    - API key header injection for every n8n call
    - Fixed timeout with a bounded, linearly backed-off retry loop for n8n
    - Model fallback list for the generative AI endpoint (advance on 429/503)
    - Human-readable error messages mapped from HTTP status codes

Architecture:
    - Pure async/await implementation
    - Detailed logging for debugging and monitoring
    - Clean separation between n8n and model functionality
"""
import aiohttp
import asyncio
import logging
from typing import Optional, List, Dict, Any, Tuple

from anthropic import AsyncAnthropic, APIStatusError, APITimeoutError, APIConnectionError

from .config import settings

# Set up logging for detailed API call tracking
logger = logging.getLogger(__name__)

# ============================================================================
# N8N REST API CLIENT (Direct HTTP)
# ============================================================================

N8N_ERROR_MESSAGES: Dict[int, str] = {
    400: "Invalid request sent to n8n",
    401: "Invalid n8n API key",
    403: "Access to this n8n resource is forbidden",
    404: "n8n endpoint not found",
    429: "n8n rate limit exceeded, please retry later",
}

RETRYABLE_STATUSES = (502, 503, 504)


def n8n_error_message(status: int) -> str:
    """
    Map an n8n HTTP status code to a user-facing message.

    Args:
        status: HTTP status returned by the n8n instance

    Returns:
        str: Message suitable for a toast or an error body
    """
    if status in N8N_ERROR_MESSAGES:
        return N8N_ERROR_MESSAGES[status]
    if status >= 500:
        return "n8n server error"
    return f"n8n request failed with status {status}"


class N8nAPIError(Exception):
    """Raised when an n8n call fails after all retries."""

    def __init__(self, status: int, message: str, body: Any = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.body = body


class N8nClient:
    """
    Client for one n8n instance.

    Every request carries the instance's API key in the ``X-N8N-API-KEY``
    header, is bounded by a fixed timeout, and is retried up to
    ``max_retries`` times with linear backoff on timeouts, connection errors
    and 502/503/504 responses.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff: Optional[float] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = settings.n8n_timeout if timeout is None else timeout
        self.max_retries = settings.n8n_max_retries if max_retries is None else max_retries
        self.backoff = settings.n8n_retry_backoff if backoff is None else backoff

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "X-N8N-API-KEY": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
            # The instance key always wins over caller-supplied headers
            headers["X-N8N-API-KEY"] = self.api_key
        return headers

    def build_url(self, endpoint: str) -> str:
        """Build the absolute n8n URL for a public API endpoint."""
        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        if endpoint.startswith("/api/") or endpoint.startswith("/healthz"):
            return f"{self.base_url}{endpoint}"
        return f"{self.base_url}/api/v1{endpoint}"

    async def request(
        self,
        method: str,
        endpoint: str,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Tuple[int, Any]:
        """
        Send one request to the n8n instance with timeout and retries.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            endpoint: Public API path, e.g. "/workflows"
            data: Optional JSON body
            headers: Optional extra headers

        Returns:
            tuple: (status, parsed body) for a 2xx response

        Raises:
            N8nAPIError: On a non-2xx response, a timeout or a connection
                failure once the retry budget is spent
        """
        url = self.build_url(endpoint)
        method = method.upper()
        attempts = self.max_retries + 1
        last_error: Optional[N8nAPIError] = None

        for attempt in range(1, attempts + 1):
            try:
                logger.info(f"🔗 N8N {method} {url} (attempt {attempt}/{attempts})")
                async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                    async with session.request(
                        method,
                        url,
                        headers=self._headers(headers),
                        json=data
                    ) as response:
                        body = await self._read_body(response)
                        if response.status < 400:
                            logger.info(f"✅ N8N response status: {response.status}")
                            return response.status, body

                        message = n8n_error_message(response.status)
                        last_error = N8nAPIError(response.status, message, body)
                        if response.status not in RETRYABLE_STATUSES:
                            logger.error(f"❌ N8N {method} {url} failed: {response.status}")
                            raise last_error
                        logger.warning(f"⚠️ N8N {method} {url} returned {response.status}")
            except asyncio.TimeoutError:
                logger.warning(f"⏳ N8N {method} {url} timed out after {self.timeout}s")
                last_error = N8nAPIError(504, "Request to n8n timed out")
            except aiohttp.ClientError as e:
                logger.warning(f"⚠️ N8N {method} {url} connection error: {str(e)}")
                last_error = N8nAPIError(502, "Could not reach the n8n instance")

            if attempt < attempts:
                await asyncio.sleep(self.backoff * attempt)

        logger.error(f"❌ N8N {method} {url} failed after {attempts} attempts: {last_error.message}")
        raise last_error

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        text = await response.text()
        if not text:
            return {}
        try:
            return await response.json(content_type=None)
        except ValueError:
            return {"message": text}

    async def list_workflows(self) -> List[Dict[str, Any]]:
        _, body = await self.request("GET", "/workflows")
        if isinstance(body, list):
            return body
        return body.get("data", []) if isinstance(body, dict) else []

    async def get_version(self) -> str:
        """Read the instance version from /healthz, "Unknown" when unavailable."""
        try:
            _, body = await self.request("GET", "/healthz")
        except N8nAPIError:
            return "Unknown"
        if isinstance(body, dict) and body.get("version"):
            return str(body["version"])
        return "Unknown"

    async def test_connection(self) -> Dict[str, Any]:
        """
        Check that the instance is reachable and the API key is accepted.

        Returns:
            dict: workflowCount and version of the instance

        Raises:
            N8nAPIError: If the workflow listing fails
        """
        workflows = await self.list_workflows()
        version = await self.get_version()
        return {"workflowCount": len(workflows), "version": version}

    async def create_workflow(self, workflow: Dict[str, Any]) -> Dict[str, Any]:
        _, body = await self.request("POST", "/workflows", data=workflow)
        return body

    async def activate_workflow(self, workflow_id: str) -> Dict[str, Any]:
        _, body = await self.request("POST", f"/workflows/{workflow_id}/activate")
        return body

    async def health_check(self) -> Dict[str, Any]:
        try:
            await self.request("GET", "/healthz")
            return {"status": "ok"}
        except N8nAPIError as e:
            return {"status": "error", "message": e.message}


# ============================================================================
# GENERATIVE AI CLIENT (model fallback list)
# ============================================================================

FALLBACK_STATUSES = (429, 503, 529)

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


class LLMAPIError(Exception):
    """Raised when the generative AI endpoint returns a non-recoverable error."""

    def __init__(self, message: str, status: int = 500):
        super().__init__(message)
        self.message = message
        self.status = status


class ModelUnavailableError(LLMAPIError):
    """Raised when every model in the fallback list is rate limited or unavailable."""

    def __init__(self, message: str = "All AI models are currently unavailable, please try again later"):
        super().__init__(message, status=503)


class LLMTimeoutError(LLMAPIError):
    """Raised when the generative AI endpoint does not answer in time."""

    def __init__(self, message: str = "Request timeout - please try again"):
        super().__init__(message, status=408)


class LLMClient:
    """
    Text generation client walking a static list of model names.

    A 429 or 503 answer (529 "overloaded" for Anthropic) moves on to the next
    model immediately; any other failure is raised to the caller.
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        models: Optional[List[str]] = None,
        timeout: Optional[float] = None,
        base_url: Optional[str] = None
    ):
        self.provider = (provider or settings.llm_provider).lower()
        self.api_key = settings.llm_api_key if api_key is None else api_key
        self.models = list(models or settings.llm_models)
        self.timeout = settings.llm_timeout if timeout is None else timeout
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.anthropic_client: Optional[AsyncAnthropic] = None
        if self.provider == "anthropic" and self.api_key:
            self.anthropic_client = AsyncAnthropic(
                api_key=self.api_key,
                base_url=base_url or None,
                timeout=self.timeout,
                max_retries=0
            )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.models)

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> Tuple[str, str]:
        """
        Generate text, falling back through the model list.

        Args:
            prompt: User prompt
            system_prompt: Optional system instructions

        Returns:
            tuple: (generated text, name of the model that served the request)

        Raises:
            ModelUnavailableError: Every model answered 429/503
            LLMTimeoutError: The endpoint did not answer within the timeout
            LLMAPIError: Any other failure
        """
        if not self.configured:
            raise LLMAPIError("AI provider API key not configured", status=503)

        for model in self.models:
            try:
                if self.provider == "anthropic":
                    text = await self._anthropic_generate(model, prompt, system_prompt)
                else:
                    text = await self._gemini_generate(model, prompt, system_prompt)
            except LLMAPIError as e:
                if e.status in FALLBACK_STATUSES:
                    logger.warning(f"⚠️ Model {model} unavailable ({e.status}), trying next model")
                    continue
                raise
            logger.info(f"🤖 Workflow text generated by model {model}")
            return text, model

        logger.error(f"❌ All models exhausted: {', '.join(self.models)}")
        raise ModelUnavailableError()

    async def _gemini_generate(self, model: str, prompt: str, system_prompt: Optional[str]) -> str:
        endpoint = f"{self.base_url}/models/{model}:generateContent"
        text = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt
        payload = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "temperature": 0.7,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": 8192,
            },
            "safetySettings": SAFETY_SETTINGS,
        }

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(
                    endpoint,
                    params={"key": self.api_key},
                    json=payload,
                    headers={"Content-Type": "application/json"}
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"❌ Gemini API error {response.status} on {model}: {error_text[:300]}")
                        raise LLMAPIError(f"API responded with status {response.status}", status=response.status)
                    data = await response.json()
        except asyncio.TimeoutError:
            raise LLMTimeoutError()
        except aiohttp.ClientError as e:
            raise LLMAPIError(f"Network error - please check your connection ({str(e)})", status=503)

        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise LLMAPIError("Invalid response from AI service", status=502)

    async def _anthropic_generate(self, model: str, prompt: str, system_prompt: Optional[str]) -> str:
        try:
            response = await self.anthropic_client.messages.create(
                model=model,
                max_tokens=8192,
                system=system_prompt or "You are a helpful assistant.",
                messages=[{"role": "user", "content": prompt}]
            )
        except APITimeoutError:
            raise LLMTimeoutError()
        except APIStatusError as e:
            logger.error(f"❌ Anthropic API error {e.status_code} on {model}: {str(e)[:300]}")
            raise LLMAPIError(f"API responded with status {e.status_code}", status=e.status_code)
        except APIConnectionError as e:
            raise LLMAPIError(f"Network error - please check your connection ({str(e)})", status=503)

        return "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
