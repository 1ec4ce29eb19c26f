"""
Function-calling orchestration loop.

An exchange sends the history to the model and, while the model keeps asking
for functions under an auto-invoking behavior, invokes them, appends the
calls and results to the history and asks again. The loop ends when the model
answers without function calls, the behavior does not auto-invoke, or the
auto-invoke ceiling is reached.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncGenerator, Dict, List, Optional

from ..client.contents import (
    AuthorRole,
    ChatHistory,
    ChatMessageContent,
    FinishReason,
    FunctionCallContent,
    StreamingChatMessageContent,
    TextContent,
)
from ..client.execution_settings import ExecutionSettings
from ..client.request_builder import build_request
from ..client.response_parser import parse_chat_completion, parse_chat_completion_chunk
from ..client.transport import ChatTransport
from .accumulator import FunctionCallAccumulator
from .function_invoker import FunctionInvocationResult, FunctionInvoker
from .tool_call_behavior import is_auto_invoke, max_auto_invoke_attempts
from ...tools.registry import FunctionRegistry

logger = logging.getLogger(__name__)


class ExchangeState(Enum):
    """States an exchange moves through."""
    REQUESTING = "requesting"
    AWAITING_INVOCATION = "awaiting_invocation"
    RESUBMITTING = "resubmitting"
    DONE = "done"


@dataclass
class ExchangeContext:
    """Counters owned by a single exchange."""
    settings: ExecutionSettings
    registry: Optional[FunctionRegistry]
    invoker: FunctionInvoker
    request_index: int = 0
    auto_invoke_attempts: int = 0
    state: ExchangeState = ExchangeState.REQUESTING
    results: List[FunctionInvocationResult] = field(default_factory=list)


class FunctionCallingOrchestrator:
    """
    Drives atomic and streamed exchanges against a chat-completion transport.

    Round trips are strictly sequential and every call in a round trip is
    invoked one at a time in request order.
    """

    def __init__(self, transport: ChatTransport, model_id: str):
        """
        Initialize orchestrator.

        Args:
            transport: Sends payloads to the chat-completion endpoint
            model_id: Model identifier sent in requests and stamped on responses
        """
        self.transport = transport
        self.model_id = model_id

        # Statistics
        self.total_exchanges = 0
        self.total_round_trips = 0
        self.total_function_calls = 0
        self.invoked_function_calls = 0
        self.successful_function_calls = 0
        self.last_exchange_summary: Optional[Dict[str, Any]] = None

    async def complete_chat(
        self,
        history: ChatHistory,
        settings: Optional[ExecutionSettings] = None,
        registry: Optional[FunctionRegistry] = None
    ) -> List[ChatMessageContent]:
        """
        Run an atomic exchange.

        Args:
            history: Caller-owned history; calls and results are appended to it
            settings: Execution settings for the exchange
            registry: Functions available to the model

        Returns:
            Messages parsed from the final response
        """
        context = self._start_exchange(settings, registry)

        while True:
            context.state = ExchangeState.REQUESTING
            payload = build_request(
                history,
                context.settings,
                model=self.model_id,
                registry=context.registry,
                request_index=context.request_index,
            )
            response = await self.transport.send(payload)
            self.total_round_trips += 1
            messages = parse_chat_completion(response, self.model_id)

            if not messages:
                self._finish(context)
                return messages

            first = messages[0]
            calls = first.get_function_calls()
            if not calls or not self._should_auto_invoke(context):
                self._finish(context)
                return messages

            history.add_message(first)
            await self._invoke_calls(context, history, calls)

            if self._resubmit(context):
                continue

            self._finish(context)
            return messages

    async def stream_chat(
        self,
        history: ChatHistory,
        settings: Optional[ExecutionSettings] = None,
        registry: Optional[FunctionRegistry] = None
    ) -> AsyncGenerator[StreamingChatMessageContent, None]:
        """
        Run a streamed exchange.

        Every chunk from every round trip is yielded as it arrives. When a
        streamed response ends with function calls under an auto-invoking
        behavior, the calls are invoked and a new stream continues to the
        same consumer.
        """
        context = self._start_exchange(settings, registry)
        accumulator = FunctionCallAccumulator()

        while True:
            context.state = ExchangeState.REQUESTING
            payload = build_request(
                history,
                context.settings,
                model=self.model_id,
                registry=context.registry,
                request_index=context.request_index,
                stream=True,
            )
            self.total_round_trips += 1

            text_parts: List[str] = []
            finish_reason: Optional[FinishReason] = None
            accumulator.clear()

            async for data in self.transport.stream(payload):
                chunk = parse_chat_completion_chunk(data, self.model_id)
                if chunk.choice_index == 0:
                    if chunk.content:
                        text_parts.append(chunk.content)
                    if chunk.function_call_updates:
                        accumulator.update(chunk.function_call_updates)
                    if chunk.finish_reason is not None:
                        finish_reason = chunk.finish_reason
                yield chunk

            calls = accumulator.build()
            if not calls or not self._should_auto_invoke(context):
                self._finish(context)
                return

            history.add_message(_assistant_message(text_parts, calls, finish_reason, self.model_id))
            await self._invoke_calls(context, history, calls)

            if not self._resubmit(context):
                self._finish(context)
                return

    def _start_exchange(
        self,
        settings: Optional[ExecutionSettings],
        registry: Optional[FunctionRegistry]
    ) -> ExchangeContext:
        self.total_exchanges += 1
        return ExchangeContext(
            settings=settings or ExecutionSettings(),
            registry=registry,
            invoker=FunctionInvoker(registry),
        )

    def _should_auto_invoke(self, context: ExchangeContext) -> bool:
        if context.registry is None:
            return False
        return is_auto_invoke(context.settings.tool_call_behavior)

    async def _invoke_calls(
        self,
        context: ExchangeContext,
        history: ChatHistory,
        calls: List[FunctionCallContent]
    ) -> None:
        """Invoke calls in order, appending one tool message per result."""
        context.state = ExchangeState.AWAITING_INVOCATION
        outcomes = await context.invoker.invoke_all(calls)
        context.results.extend(outcomes)
        for outcome in outcomes:
            self.total_function_calls += 1
            if outcome.invoked:
                self.invoked_function_calls += 1
            if outcome.success:
                self.successful_function_calls += 1
            history.add_message(ChatMessageContent(role=AuthorRole.TOOL, items=[outcome.result]))

    def _finish(self, context: ExchangeContext) -> None:
        context.state = ExchangeState.DONE
        self.last_exchange_summary = context.invoker.get_execution_summary(context.results)
        self.last_exchange_summary["invocation_count"] = context.invoker.invocation_count

    def _resubmit(self, context: ExchangeContext) -> bool:
        """Count the finished round trip; False once the ceiling is reached."""
        context.state = ExchangeState.RESUBMITTING
        context.auto_invoke_attempts += 1
        ceiling = max_auto_invoke_attempts(context.settings.tool_call_behavior)
        if context.auto_invoke_attempts >= ceiling:
            logger.info(
                f"Reached maximum of {ceiling} auto-invoke attempts; "
                f"returning without resubmitting"
            )
            return False
        context.request_index += 1
        logger.debug(f"Resubmitting history (request {context.request_index})")
        return True

    def get_statistics(self) -> Dict[str, Any]:
        """Get orchestrator statistics."""
        return {
            "total_exchanges": self.total_exchanges,
            "total_round_trips": self.total_round_trips,
            "total_function_calls": self.total_function_calls,
            "invoked_function_calls": self.invoked_function_calls,
            "successful_function_calls": self.successful_function_calls,
            "success_rate": (
                self.successful_function_calls / self.total_function_calls
                if self.total_function_calls > 0 else 0.0
            ),
            "last_exchange": self.last_exchange_summary,
        }


def _assistant_message(
    text_parts: List[str],
    calls: List[FunctionCallContent],
    finish_reason: Optional[FinishReason],
    model_id: str
) -> ChatMessageContent:
    items: List[Any] = []
    text = "".join(text_parts)
    if text:
        items.append(TextContent(text=text))
    items.extend(calls)
    return ChatMessageContent(
        role=AuthorRole.ASSISTANT,
        items=items,
        model_id=model_id,
        metadata={"finish_reason": finish_reason or FinishReason.TOOL_CALLS},
    )
