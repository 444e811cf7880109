"""
AI playground conversation.

A chat message that asks for an automation is sent to the workflow
generator; anything else gets a canned assistant reply. Every turn is
stored in ``conversation_memory`` keyed by user and session.
"""
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from ..api_clients import LLMAPIError
from ..models import ChatMessage, ChatResponse, ConversationResponse
from .usage import GENERATION_EVENT

logger = logging.getLogger(__name__)

TABLE = "conversation_memory"
WORKFLOW_KEYWORDS = ("create", "build", "workflow", "automation")

GENERAL_SUGGESTIONS = [
    "Show me workflow templates",
    "Help me connect to n8n",
    "Create a data processing workflow",
    "Build an email automation",
]
RETRY_SUGGESTIONS = [
    "Try describing your use case in more detail",
    "Specify the data sources and destinations",
    "Mention any specific integrations you need",
]
WORKFLOW_SUGGESTIONS = [
    "Deploy this workflow to my n8n instance",
    "Add error handling to this workflow",
    "Explain how each node works",
]

GREETING_REPLY = (
    "Hello! I'm here to help you with n8n workflow automation. I can assist you with "
    "creating workflows, optimizing existing ones, troubleshooting issues, and providing "
    "best practices. What specific automation challenge are you working on?"
)
HELP_REPLY = (
    "I can help you with various n8n workflow tasks:\n\n"
    "• **Create workflows** - Describe what you want to automate\n"
    "• **Optimize existing workflows** - Share your workflow for improvement suggestions\n"
    "• **Troubleshoot issues** - Describe problems you're experiencing\n"
    "• **Best practices** - Get recommendations for workflow design\n"
    "• **Integration guidance** - Learn about connecting different services\n\n"
    "What would you like assistance with?"
)
CONNECTION_REPLY = (
    "{status}\n\nTo create workflows, you'll need to connect to your n8n instance first. "
    "You can do this from the dashboard by clicking \"Add Connection\" and providing your "
    "n8n instance URL and API key.\n\nOnce connected, I can help you create and manage "
    "workflows directly!"
)
DEFAULT_REPLY = (
    "I understand you'd like to work with n8n workflows. Could you provide more specific "
    "details about what you want to automate? For example:\n\n"
    "• What triggers should start the workflow?\n"
    "• What data needs to be processed?\n"
    "• What actions should be performed?\n"
    "• Which services or APIs need to be integrated?\n\n"
    "The more details you provide, the better I can help you create the perfect automation!"
)


def is_workflow_request(message: str) -> bool:
    lowered = message.lower()
    return any(keyword in lowered for keyword in WORKFLOW_KEYWORDS)


def _words(message: str) -> set:
    return set(re.findall(r"[a-z]+", message.lower()))


class PlaygroundService:
    def __init__(self, db, generator, usage, analytics, connections):
        self.db = db
        self.generator = generator
        self.usage = usage
        self.analytics = analytics
        self.connections = connections

    async def history(self, user_id: str, session_id: str) -> ConversationResponse:
        row = await self.db.select_one(TABLE, {"user_id": user_id, "session_id": session_id})
        messages = [ChatMessage(**m) for m in (row or {}).get("messages") or []]
        return ConversationResponse(session_id=session_id, messages=messages)

    async def chat(self, user: Dict[str, Any], message: str, session_id: Optional[str] = None) -> ChatResponse:
        """
        Answer one playground message and persist the exchange.

        Raises:
            ValueError: If the message is blank
            QuotaExceededError: A workflow was requested over the plan limit
        """
        if not message or not message.strip():
            raise ValueError("Message is required")
        message = message.strip()
        session_id = session_id or str(uuid.uuid4())

        if is_workflow_request(message):
            response = await self._generate(user, message, session_id)
        else:
            response = ChatResponse(
                session_id=session_id,
                message=ChatMessage(role="assistant", content=await self._canned_reply(user["id"], message)),
                suggestions=GENERAL_SUGGESTIONS,
            )

        await self._remember(user["id"], session_id, [
            ChatMessage(role="user", content=message),
            response.message,
        ])
        return response

    async def _generate(self, user: Dict[str, Any], message: str, session_id: str) -> ChatResponse:
        await self.usage.check_generation_quota(user["id"])
        try:
            result = await self.generator.generate(message, {"source": "playground", "sessionId": session_id})
        except LLMAPIError as e:
            logger.error(f"❌ Playground generation failed: {e.message}")
            content = (
                f"I apologize, but I encountered an error while generating your workflow: {e.message}. "
                "Please try rephrasing your request or provide more specific details about what you'd like to automate."
            )
            return ChatResponse(
                session_id=session_id,
                message=ChatMessage(role="assistant", content=content),
                suggestions=RETRY_SUGGESTIONS,
            )

        if result.fallback:
            return ChatResponse(
                session_id=session_id,
                message=ChatMessage(role="assistant", content=result.explanation or DEFAULT_REPLY),
                suggestions=RETRY_SUGGESTIONS,
                explanation=result.explanation,
            )

        await self.analytics.track_event(user["id"], GENERATION_EVENT, "workflow", metadata={
            "name": result.workflow.get("name"),
            "model": result.model,
            "source": "playground",
        })
        await self.analytics.track_activity(
            user["id"], "workflow_generated", f"Generated {result.workflow.get('name')}", "From the AI playground"
        )

        content = f"I've created a workflow for you: **{result.workflow.get('name')}**"
        if result.explanation:
            content += f"\n\n{result.explanation}"
        return ChatResponse(
            session_id=session_id,
            message=ChatMessage(role="assistant", content=content, workflow=result.workflow),
            suggestions=WORKFLOW_SUGGESTIONS,
            workflow=result.workflow,
            explanation=result.explanation,
            required_credentials=result.required_credentials,
        )

    async def _canned_reply(self, user_id: str, message: str) -> str:
        words = _words(message)
        if words & {"hello", "hi", "hey"}:
            return GREETING_REPLY
        if "help" in words:
            return HELP_REPLY
        if words & {"connection", "connections", "connect"}:
            count = len(await self.connections.list(user_id))
            if count:
                status = f"You have {count} n8n connection(s) configured."
            else:
                status = "You don't have any n8n connections set up yet."
            return CONNECTION_REPLY.format(status=status)
        return DEFAULT_REPLY

    async def _remember(self, user_id: str, session_id: str, new_messages: List[ChatMessage]) -> None:
        row = await self.db.select_one(TABLE, {"user_id": user_id, "session_id": session_id}) or {}
        messages = list(row.get("messages") or [])
        messages.extend(m.model_dump(mode="json") for m in new_messages)
        await self.db.upsert(TABLE, {
            "user_id": user_id,
            "session_id": session_id,
            "messages": messages,
            "context": row.get("context") or {},
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }, on_conflict="user_id,session_id")
