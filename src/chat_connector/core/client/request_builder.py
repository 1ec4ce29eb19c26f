"""
Translation of history and execution settings into request payloads.

Everything here is pure: the same inputs always produce the same payload,
so the orchestrator can rebuild the request on each round trip.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .contents import (
    AuthorRole,
    ChatHistory,
    ChatMessageContent,
    FunctionCallContent,
    FunctionResultContent,
    ImageContent,
    TextContent,
)
from .execution_settings import ExecutionSettings
from ..function_calling.tool_call_behavior import configure_tools
from ...tools.registry import FunctionRegistry

logger = logging.getLogger(__name__)


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def serialize_function_call(call: FunctionCallContent) -> Dict[str, Any]:
    return {
        "id": call.id,
        "type": "function",
        "function": {
            "name": call.fully_qualified_name,
            "arguments": _compact_json(call.arguments or {}),
        },
    }


def _serialize_content(message: ChatMessageContent) -> Any:
    """Plain string for a single text item, a parts list otherwise."""
    parts = [item for item in message.items if isinstance(item, (TextContent, ImageContent))]
    if not parts:
        return ""
    if len(parts) == 1 and isinstance(parts[0], TextContent):
        return parts[0].text

    serialized = []
    for item in parts:
        if isinstance(item, TextContent):
            serialized.append({"type": "text", "text": item.text})
        else:
            serialized.append({"type": "image_url", "image_url": {"url": item.uri}})
    return serialized


def serialize_message(message: ChatMessageContent) -> List[Dict[str, Any]]:
    """
    Serialize one history message.

    Returns a list because a tool message holding several results becomes
    one wire message per result.
    """
    if message.role == AuthorRole.TOOL:
        wire_messages = []
        for item in message.items:
            if not isinstance(item, FunctionResultContent):
                raise ValueError(f"Tool messages may only contain function results, got {item.type}")
            wire_messages.append({
                "role": "tool",
                "tool_call_id": item.call_id,
                "content": item.result_as_text(),
            })
        return wire_messages

    if message.role == AuthorRole.ASSISTANT:
        calls = message.get_function_calls()
        text = message.content
        wire: Dict[str, Any] = {"role": "assistant"}
        if calls:
            wire["content"] = text
            wire["tool_calls"] = [serialize_function_call(call) for call in calls]
        else:
            wire["content"] = text or ""
        return [wire]

    return [{"role": message.role.value, "content": _serialize_content(message)}]


def serialize_history(history: ChatHistory, settings: ExecutionSettings) -> List[Dict[str, Any]]:
    """Serialize the whole history, prepending the settings' system prompt if needed."""
    messages: List[Dict[str, Any]] = []
    if settings.chat_system_prompt and not history.has_system_message():
        messages.append({"role": "system", "content": settings.chat_system_prompt})
    for message in history:
        messages.extend(serialize_message(message))
    return messages


def _response_format(value: Any) -> Dict[str, Any]:
    if isinstance(value, str):
        return {"type": value}
    return dict(value)


def serialize_settings(settings: ExecutionSettings) -> Dict[str, Any]:
    """Sampling fields for the payload; unset fields are omitted."""
    fields: Dict[str, Any] = {
        "max_tokens": settings.max_tokens,
        "temperature": settings.temperature,
        "top_p": settings.top_p,
        "frequency_penalty": settings.frequency_penalty,
        "presence_penalty": settings.presence_penalty,
        "seed": settings.seed,
        "stop": settings.stop_sequences,
        "logprobs": settings.logprobs,
        "top_logprobs": settings.top_logprobs,
        "user": settings.user,
        "data_sources": settings.data_sources,
    }
    if settings.token_selection_biases:
        fields["logit_bias"] = {str(token): bias for token, bias in settings.token_selection_biases.items()}
    if settings.response_format is not None:
        fields["response_format"] = _response_format(settings.response_format)
    return {key: value for key, value in fields.items() if value is not None}


def build_request(
    history: ChatHistory,
    settings: ExecutionSettings,
    *,
    model: str,
    registry: Optional[FunctionRegistry] = None,
    request_index: int = 0,
    stream: bool = False
) -> Dict[str, Any]:
    """
    Build the request payload for one round trip.

    Args:
        history: Conversation so far
        settings: Execution settings for the exchange
        model: Model identifier sent in the payload
        registry: Functions available to the model
        request_index: Zero-based round trip number within the exchange
        stream: Request a streamed response

    Returns:
        JSON-serializable request payload
    """
    payload: Dict[str, Any] = {
        "model": model,
        "messages": serialize_history(history, settings),
    }
    payload.update(serialize_settings(settings))

    tools = configure_tools(settings.tool_call_behavior, registry, request_index)
    if tools.tools is not None:
        payload["tools"] = tools.tools
    if tools.tool_choice is not None:
        payload["tool_choice"] = tools.tool_choice

    if stream:
        payload["stream"] = True
        payload["stream_options"] = {"include_usage": True}

    logger.debug(
        f"Built request {request_index} with {len(payload['messages'])} messages "
        f"and {len(payload.get('tools', []))} tools"
    )
    return payload
