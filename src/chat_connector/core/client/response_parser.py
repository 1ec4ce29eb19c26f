"""
Parsing of chat-completion responses.

Atomic responses become one ChatMessageContent per choice. Streamed responses
are parsed fragment by fragment into StreamingChatMessageContent; streamed
function calls are only assembled later by the orchestrator's accumulator.
Malformed call arguments never raise here: the failure is attached to the
FunctionCallContent so the invoker can report it back to the model.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .contents import (
    AuthorRole,
    ChatMessageContent,
    FinishReason,
    FunctionCallContent,
    StreamingChatMessageContent,
    StreamingFunctionCallUpdate,
    TextContent,
    Usage,
)
from .errors import FunctionCallArgumentsError, InvalidResponseError

logger = logging.getLogger(__name__)

INVALID_ARGUMENTS_MESSAGE = "Error: Function call arguments were invalid JSON."


def parse_function_arguments(raw: Optional[str]) -> Tuple[Optional[Dict[str, Any]], Optional[Exception]]:
    """
    Parse a call's argument JSON.

    Args:
        raw: Argument JSON as sent by the model

    Returns:
        ``(arguments, None)`` on success or ``(None, error)`` when the text is
        not a JSON object. An empty or missing string is an empty mapping.
    """
    if raw is None or not raw.strip():
        return {}, None

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.debug(f"Invalid function call arguments: {raw!r}")
        error = FunctionCallArgumentsError(INVALID_ARGUMENTS_MESSAGE)
        error.__cause__ = e
        return None, error

    if not isinstance(parsed, dict):
        logger.debug(f"Function call arguments are not an object: {raw!r}")
        error = FunctionCallArgumentsError(INVALID_ARGUMENTS_MESSAGE)
        error.__cause__ = TypeError(f"Expected a JSON object, got {type(parsed).__name__}")
        return None, error

    return parsed, None


def parse_tool_call(tool_call: Dict[str, Any]) -> FunctionCallContent:
    """Convert one wire ``tool_calls`` entry into a FunctionCallContent."""
    function = tool_call.get("function") or {}
    arguments, exception = parse_function_arguments(function.get("arguments"))
    return FunctionCallContent.from_fully_qualified_name(
        function.get("name", ""),
        id=tool_call.get("id"),
        arguments=arguments,
        exception=exception,
    )


def parse_usage(data: Optional[Dict[str, Any]]) -> Optional[Usage]:
    if not data:
        return None
    return Usage(
        prompt_tokens=data.get("prompt_tokens") or 0,
        completion_tokens=data.get("completion_tokens") or 0,
        total_tokens=data.get("total_tokens") or 0,
    )


def _response_metadata(payload: Dict[str, Any]) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {}
    if payload.get("id") is not None:
        metadata["id"] = payload["id"]
    created = payload.get("created")
    if isinstance(created, (int, float)):
        metadata["created"] = datetime.fromtimestamp(created, tz=timezone.utc)
    if payload.get("system_fingerprint") is not None:
        metadata["system_fingerprint"] = payload["system_fingerprint"]
    return metadata


def parse_chat_completion(payload: Dict[str, Any], model_id: Optional[str] = None) -> List[ChatMessageContent]:
    """
    Parse an atomic chat-completion response.

    Args:
        payload: Decoded response body
        model_id: Model identifier to stamp on each message

    Returns:
        One message per choice, in choice order

    Raises:
        InvalidResponseError: If the payload has no choices list
    """
    choices = payload.get("choices")
    if not isinstance(choices, list):
        raise InvalidResponseError("Chat completion response contains no choices")

    usage = parse_usage(payload.get("usage"))
    base_metadata = _response_metadata(payload)

    messages = []
    for choice in choices:
        message = choice.get("message") or {}
        items: List[Any] = []

        text = message.get("content")
        if isinstance(text, str) and text:
            items.append(TextContent(text=text))

        for tool_call in message.get("tool_calls") or []:
            if tool_call.get("type", "function") != "function":
                logger.debug(f"Skipping unsupported tool call type: {tool_call.get('type')}")
                continue
            items.append(parse_tool_call(tool_call))

        metadata = dict(base_metadata)
        metadata["finish_reason"] = FinishReason.parse(choice.get("finish_reason"))
        metadata["choice_index"] = choice.get("index", len(messages))
        if usage is not None:
            metadata["usage"] = usage
        if choice.get("logprobs") is not None:
            metadata["logprobs"] = choice["logprobs"]

        messages.append(ChatMessageContent(
            role=AuthorRole(message.get("role") or AuthorRole.ASSISTANT.value),
            items=items,
            model_id=model_id or payload.get("model"),
            metadata=metadata,
        ))

    logger.debug(f"Parsed {len(messages)} choices from chat completion response")
    return messages


def parse_chat_completion_chunk(
    payload: Dict[str, Any],
    model_id: Optional[str] = None
) -> StreamingChatMessageContent:
    """
    Parse one streamed fragment.

    Only the first choice is read. A usage-only fragment (no choices) yields a
    chunk that carries nothing but usage and metadata.
    """
    metadata = _response_metadata(payload)
    usage = parse_usage(payload.get("usage"))
    choices = payload.get("choices") or []

    if not choices:
        return StreamingChatMessageContent(
            usage=usage,
            model_id=model_id or payload.get("model"),
            metadata=metadata,
        )

    choice = choices[0]
    delta = choice.get("delta") or {}

    updates = []
    for tool_call in delta.get("tool_calls") or []:
        function = tool_call.get("function") or {}
        updates.append(StreamingFunctionCallUpdate(
            index=tool_call.get("index", 0),
            call_id=tool_call.get("id"),
            name=function.get("name"),
            arguments=function.get("arguments"),
        ))

    finish_reason = FinishReason.parse(choice.get("finish_reason"))
    if finish_reason is not None:
        metadata["finish_reason"] = finish_reason
    if usage is not None:
        metadata["usage"] = usage

    role = delta.get("role")
    return StreamingChatMessageContent(
        role=AuthorRole(role) if role else None,
        content=delta.get("content"),
        function_call_updates=updates,
        finish_reason=finish_reason,
        usage=usage,
        choice_index=choice.get("index", 0),
        model_id=model_id or payload.get("model"),
        metadata=metadata,
    )
