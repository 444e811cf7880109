import logging
from typing import Optional, Dict, Any

from ..api_clients import LLMClient, LLMAPIError
from ..models import WorkflowGenerateResponse
from .credentials import extract_required_credentials
from .extraction import apply_workflow_defaults, extract_explanation, extract_workflow_json
from .prompts import SYSTEM_PROMPT, build_generation_prompt
from .validation import validate_workflow

logger = logging.getLogger(__name__)

COMPONENT = "workflow-generator"


def fallback_workflow() -> Dict[str, Any]:
    """Empty workflow returned when the model answer holds no usable JSON."""
    return {
        "name": "Generated Workflow",
        "description": "AI-generated workflow based on your requirements",
        "nodes": [],
        "connections": {},
        "settings": {},
    }


class WorkflowGenerator:
    def __init__(self, llm_client: Optional[LLMClient] = None, analytics=None):
        self.llm_client = llm_client or LLMClient()
        self.analytics = analytics

    async def _log(self, level: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        if self.analytics is not None:
            await self.analytics.log_to_system(level, COMPONENT, message, metadata)

    async def generate(
        self,
        prompt: str,
        user_context: Optional[Dict[str, Any]] = None
    ) -> WorkflowGenerateResponse:
        """
        Generate an n8n workflow from a natural language description.

        Args:
            prompt: What the user wants to automate
            user_context: Optional context forwarded to the model (connections, preferences)

        Returns:
            WorkflowGenerateResponse: The patched workflow, its explanation, the
            serving model, validation errors and required credentials. When the
            model answer holds no fenced workflow, ``fallback`` is set and the
            raw answer becomes the explanation.

        Raises:
            ValueError: If the prompt is blank
            LLMAPIError: If the model endpoint fails (see api_clients)
        """
        if not prompt or not prompt.strip():
            await self._log("warn", "Missing prompt in request")
            raise ValueError("Prompt is required")

        await self._log("info", "Sending request to AI model", {
            "promptLength": len(prompt),
            "provider": self.llm_client.provider,
        })

        try:
            text, model = await self.llm_client.generate(
                build_generation_prompt(prompt, user_context),
                system_prompt=SYSTEM_PROMPT
            )
        except LLMAPIError as e:
            await self._log("error", "AI model error", {"status": e.status, "error": e.message})
            raise

        workflow = extract_workflow_json(text)
        if workflow is None:
            logger.warning(f"⚠️ No workflow JSON in response from {model}, returning fallback")
            await self._log("warn", "Failed to parse AI response as JSON", {"model": model, "response": text[:2000]})
            return WorkflowGenerateResponse(
                workflow=fallback_workflow(),
                explanation=text.strip(),
                model=model,
                validation_errors=validate_workflow(fallback_workflow()),
                fallback=True,
            )

        workflow = apply_workflow_defaults(workflow)
        errors = validate_workflow(workflow)
        if errors:
            logger.warning(f"⚠️ Generated workflow has {len(errors)} validation error(s): {errors}")

        await self._log("info", "Workflow generated successfully", {
            "workflowName": workflow.get("name"),
            "model": model,
            "nodeCount": len(workflow["nodes"]),
        })
        logger.info(f"✅ Workflow generated: {workflow.get('name')} ({len(workflow['nodes'])} nodes, model {model})")

        return WorkflowGenerateResponse(
            workflow=workflow,
            explanation=extract_explanation(text),
            model=model,
            validation_errors=errors,
            required_credentials=extract_required_credentials(workflow),
        )
