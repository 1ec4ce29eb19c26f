"""
Public chat-completion service.

ChatCompletionService is the entry point callers use: it wraps the
function-calling orchestrator with message- and text-oriented operations.
"""

import logging
from typing import Any, AsyncGenerator, Dict, List, Optional

from .contents import ChatHistory, ChatMessageContent, StreamingChatMessageContent
from .errors import ConfigurationError
from .execution_settings import ExecutionSettings
from .transport import ChatTransport, HttpxChatTransport
from ..function_calling.orchestrator import FunctionCallingOrchestrator
from ...config.settings import ConnectorSettings
from ...tools.registry import FunctionRegistry
from ... import USER_AGENT

logger = logging.getLogger(__name__)


class ChatCompletionService:
    """Chat completion against an OpenAI-compatible service."""

    def __init__(
        self,
        model_id: str,
        transport: ChatTransport,
        *,
        deployment: Optional[str] = None
    ):
        if not model_id:
            raise ConfigurationError("A model id is required", config_field="model_id")
        self.model_id = model_id
        self.deployment = deployment
        self.transport = transport
        self.orchestrator = FunctionCallingOrchestrator(transport, model_id)

    @property
    def attributes(self) -> Dict[str, Any]:
        attributes: Dict[str, Any] = {"model_id": self.model_id}
        if self.deployment:
            attributes["deployment"] = self.deployment
        return attributes

    async def get_chat_message_contents(
        self,
        history: ChatHistory,
        settings: Optional[ExecutionSettings] = None,
        registry: Optional[FunctionRegistry] = None
    ) -> List[ChatMessageContent]:
        """
        Complete a chat, auto-invoking functions when the settings allow it.

        Args:
            history: Conversation so far; function calls and results are appended
            settings: Execution settings
            registry: Functions the model may call

        Returns:
            One message per choice of the final response
        """
        logger.info(f"Requesting chat completion from {self.model_id} with {len(history)} messages")
        return await self.orchestrator.complete_chat(history, settings, registry)

    async def get_chat_message_content(
        self,
        history: ChatHistory,
        settings: Optional[ExecutionSettings] = None,
        registry: Optional[FunctionRegistry] = None
    ) -> Optional[ChatMessageContent]:
        """First message of the final response, or None if there was none."""
        messages = await self.get_chat_message_contents(history, settings, registry)
        return messages[0] if messages else None

    async def get_streaming_chat_message_contents(
        self,
        history: ChatHistory,
        settings: Optional[ExecutionSettings] = None,
        registry: Optional[FunctionRegistry] = None
    ) -> AsyncGenerator[StreamingChatMessageContent, None]:
        """Stream a chat completion chunk by chunk across every round trip."""
        logger.info(f"Requesting streaming chat completion from {self.model_id} with {len(history)} messages")
        async for chunk in self.orchestrator.stream_chat(history, settings, registry):
            yield chunk

    async def get_text_contents(
        self,
        prompt: str,
        settings: Optional[ExecutionSettings] = None
    ) -> List[ChatMessageContent]:
        """Complete a single prompt in a fresh conversation."""
        return await self.get_chat_message_contents(self._prompt_history(prompt, settings), settings)

    async def get_streaming_text_contents(
        self,
        prompt: str,
        settings: Optional[ExecutionSettings] = None
    ) -> AsyncGenerator[StreamingChatMessageContent, None]:
        async for chunk in self.get_streaming_chat_message_contents(self._prompt_history(prompt, settings), settings):
            yield chunk

    @staticmethod
    def _prompt_history(prompt: str, settings: Optional[ExecutionSettings]) -> ChatHistory:
        history = ChatHistory(system_message=settings.chat_system_prompt if settings else None)
        history.add_user_message(prompt)
        return history


def create_chat_completion_service(settings: ConnectorSettings) -> ChatCompletionService:
    """
    Build a service over the httpx transport from connector settings.

    Raises:
        ConfigurationError: If no credentials are configured
    """
    if not settings.is_configured:
        raise ConfigurationError(
            "No credentials configured. Set CHAT_CONNECTOR_API_KEY or CHAT_CONNECTOR_TOKEN.",
            config_field="api_key"
        )

    transport = HttpxChatTransport(
        settings.endpoint,
        settings.api_key,
        token=settings.token,
        deployment=settings.deployment,
        api_version=settings.api_version,
        timeout=settings.timeout,
        user_agent=USER_AGENT,
    )
    logger.info(f"Created chat completion service for {settings.model_id} at {settings.endpoint}")
    return ChatCompletionService(settings.model_id, transport, deployment=settings.deployment)
