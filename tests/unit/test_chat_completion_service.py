"""
Tests for the chat completion service and the function-calling loop behind it.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from chat_connector.core.client.chat_completion import ChatCompletionService
from chat_connector.core.client.contents import (
    AuthorRole,
    ChatHistory,
    ChatMessageContent,
    FinishReason,
    FunctionCallContent,
    FunctionResultContent,
    ImageContent,
    TextContent,
)
from chat_connector.core.client.errors import ConfigurationError, ServerError
from chat_connector.core.client.execution_settings import ExecutionSettings
from chat_connector.core.function_calling.tool_call_behavior import ToolCallBehavior
from chat_connector.tools.function import KernelFunction
from chat_connector.tools.registry import FunctionRegistry

MAXIMUM_AUTO_INVOKE_ATTEMPTS = 128
MODEL_RESPONSES_COUNT = 129


class WeatherPlugin:
    """Registry with call counting, as used across these tests."""

    def __init__(self):
        self.function_call_count = 0
        self.locations = []
        self.registry = FunctionRegistry()
        self.registry.add_plugin("MyPlugin", [
            KernelFunction(self.get_current_weather, name="GetCurrentWeather"),
            KernelFunction(self.function_with_exception, name="FunctionWithException"),
        ])

    def get_current_weather(self, location: str) -> str:
        self.function_call_count += 1
        self.locations.append(location)
        return "Some weather"

    def function_with_exception(self, argument: str) -> str:
        self.function_call_count += 1
        raise ValueError("Some exception")


@pytest.fixture
def plugin() -> WeatherPlugin:
    return WeatherPlugin()


def auto_invoke() -> ExecutionSettings:
    return ExecutionSettings(tool_call_behavior=ToolCallBehavior.auto_invoke_functions())


class TestServiceConstruction:
    """Test cases for service construction."""

    def test_attributes(self, make_transport) -> None:
        service = ChatCompletionService("model-id", make_transport())
        assert service.attributes == {"model_id": "model-id"}

    def test_attributes_with_deployment(self, make_transport) -> None:
        service = ChatCompletionService("model-id", make_transport(), deployment="deployment")
        assert service.attributes == {"model_id": "model-id", "deployment": "deployment"}

    def test_model_id_required(self, make_transport) -> None:
        with pytest.raises(ConfigurationError):
            ChatCompletionService("", make_transport())


class TestAtomicCompletion:
    """Test cases for non-streamed exchanges."""

    @pytest.mark.asyncio
    async def test_get_text_contents(self, make_transport, load_json) -> None:
        transport = make_transport(responses=[load_json("chat_completion_test_response.json")])
        service = ChatCompletionService("model-id", transport)

        result = await service.get_text_contents("Prompt")

        assert len(result) > 0
        assert result[0].content == "Test chat response"
        usage = result[0].metadata["usage"]
        assert (usage.prompt_tokens, usage.completion_tokens, usage.total_tokens) == (55, 100, 155)
        assert transport.requests[0]["messages"] == [{"role": "user", "content": "Prompt"}]

    @pytest.mark.parametrize("behavior", [
        ToolCallBehavior.enable_functions(),
        ToolCallBehavior.auto_invoke_functions(),
    ])
    @pytest.mark.asyncio
    async def test_get_chat_message_contents(self, behavior, make_transport, load_json, plugin) -> None:
        transport = make_transport(responses=[load_json("chat_completion_test_response.json")])
        service = ChatCompletionService("model-id", transport)
        history = ChatHistory()
        history.add_user_message("Hi")

        result = await service.get_chat_message_contents(
            history, ExecutionSettings(tool_call_behavior=behavior), plugin.registry
        )

        assert result[0].content == "Test chat response"
        assert result[0].usage.total_tokens == 155
        assert result[0].finish_reason == FinishReason.STOP
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_function_calls_auto_invoked(self, make_transport, load_json, plugin) -> None:
        transport = make_transport(responses=[
            load_json("chat_completion_multiple_function_calls_test_response.json"),
            load_json("chat_completion_test_response.json"),
        ])
        service = ChatCompletionService("model-id", transport)
        history = ChatHistory("System message")

        result = await service.get_chat_message_contents(history, auto_invoke(), plugin.registry)

        assert result[0].content == "Test chat response"
        assert plugin.function_call_count == 2
        assert plugin.locations == ["Boston, MA"]

        # system, assistant with 5 calls, then one tool message per call
        assert len(history) == 7
        assert history[1].role == AuthorRole.ASSISTANT
        assert len(history[1].get_function_calls()) == 5
        results = [message.items[0] for message in history.messages[2:]]
        assert all(message.role == AuthorRole.TOOL for message in history.messages[2:])
        assert [r.call_id for r in results] == ["1", "2", "3", "4", "5"]
        assert results[0].result == "Some weather"
        assert results[1].result == "Error: Exception while invoking function. Some exception"
        assert results[2].result == "Error: Requested function could not be found."
        assert results[3].result.startswith("Error: Function call arguments were invalid JSON.")
        assert results[4].result == "Error: Requested function could not be found."

        second_request = transport.requests[1]["messages"]
        assert len(second_request) == 7
        assert second_request[2] == {"role": "tool", "tool_call_id": "1", "content": "Some weather"}

    @pytest.mark.asyncio
    async def test_maximum_auto_invoke_attempts(self, make_transport, load_json, plugin) -> None:
        transport = make_transport(responses=[
            load_json("chat_completion_single_function_call_test_response.json")
            for _ in range(MODEL_RESPONSES_COUNT)
        ])
        service = ChatCompletionService("model-id", transport)

        result = await service.get_chat_message_contents(ChatHistory("System message"), auto_invoke(), plugin.registry)

        assert plugin.function_call_count == MAXIMUM_AUTO_INVOKE_ATTEMPTS
        assert len(transport.requests) == MAXIMUM_AUTO_INVOKE_ATTEMPTS
        assert len(transport.responses) == 1
        assert result[0].has_function_calls()

    @pytest.mark.asyncio
    async def test_required_function_forced_once(self, make_transport, load_json, plugin) -> None:
        transport = make_transport(responses=[
            load_json("chat_completion_single_function_call_test_response.json"),
            load_json("chat_completion_test_response.json"),
        ])
        service = ChatCompletionService("model-id", transport)
        function = plugin.registry.resolve("MyPlugin", "GetCurrentWeather")
        settings = ExecutionSettings(tool_call_behavior=ToolCallBehavior.require_function(function))

        await service.get_chat_message_contents(ChatHistory(), settings, plugin.registry)

        assert plugin.function_call_count == 1
        assert len(transport.requests) == 2

        first, second = transport.requests
        assert len(first["tools"]) == 1
        assert first["tool_choice"]["function"]["name"] == "MyPlugin-GetCurrentWeather"
        assert second["tool_choice"] == "none"

    @pytest.mark.asyncio
    async def test_advertised_functions_returned_to_caller(self, make_transport, load_json, plugin) -> None:
        transport = make_transport(responses=[
            load_json("chat_completion_multiple_function_calls_test_response.json"),
        ])
        service = ChatCompletionService("model-id", transport)
        history = ChatHistory()
        history.add_user_message("Fake prompt")
        settings = ExecutionSettings(tool_call_behavior=ToolCallBehavior.enable_functions())

        result = await service.get_chat_message_content(history, settings, plugin.registry)

        assert len(result.items) == 5
        assert result.items[0].function_name == "GetCurrentWeather"
        assert result.items[3].exception is not None
        assert plugin.function_call_count == 0
        assert len(history) == 1
        assert len(transport.requests) == 1
        assert transport.requests[0]["tool_choice"] == "auto"

    @pytest.mark.asyncio
    async def test_auto_invoke_without_registry_returns_calls(self, make_transport, load_json) -> None:
        transport = make_transport(responses=[
            load_json("chat_completion_single_function_call_test_response.json"),
        ])
        service = ChatCompletionService("model-id", transport)

        result = await service.get_chat_message_content(ChatHistory(), auto_invoke())

        assert result.has_function_calls()
        assert "tools" not in transport.requests[0]

    @pytest.mark.asyncio
    async def test_function_calls_returned_to_model(self, make_transport, load_json) -> None:
        transport = make_transport(responses=[load_json("chat_completion_test_response.json")])
        service = ChatCompletionService("model-id", transport)
        history = ChatHistory(messages=[ChatMessageContent(role=AuthorRole.ASSISTANT, items=[
            FunctionCallContent(id="1", plugin_name="MyPlugin", function_name="GetCurrentWeather",
                                arguments={"location": "Boston, MA"}),
            FunctionCallContent(id="2", plugin_name="MyPlugin", function_name="GetWeatherForecast",
                                arguments={"location": "Boston, MA"}),
        ])])

        await service.get_chat_message_content(
            history, ExecutionSettings(tool_call_behavior=ToolCallBehavior.enable_functions())
        )

        [assistant] = transport.requests[0]["messages"]
        assert assistant["role"] == "assistant"
        assert [tool["id"] for tool in assistant["tool_calls"]] == ["1", "2"]
        assert assistant["tool_calls"][1]["function"]["name"] == "MyPlugin-GetWeatherForecast"
        assert assistant["tool_calls"][1]["function"]["arguments"] == '{"location":"Boston, MA"}'

    @pytest.mark.asyncio
    async def test_function_results_returned_to_model(self, make_transport, load_json) -> None:
        transport = make_transport(responses=[load_json("chat_completion_test_response.json")])
        service = ChatCompletionService("model-id", transport)
        history = ChatHistory(messages=[ChatMessageContent(role=AuthorRole.TOOL, items=[
            FunctionResultContent(call_id="1", plugin_name="MyPlugin", function_name="GetCurrentWeather", result="rainy"),
            FunctionResultContent(call_id="2", plugin_name="MyPlugin", function_name="GetWeatherForecast", result="sunny"),
        ])])

        await service.get_chat_message_content(history)

        assert transport.requests[0]["messages"] == [
            {"role": "tool", "tool_call_id": "1", "content": "rainy"},
            {"role": "tool", "tool_call_id": "2", "content": "sunny"},
        ]

    @pytest.mark.asyncio
    async def test_prompt_and_settings(self, make_transport, load_json) -> None:
        transport = make_transport(responses=[load_json("chat_completion_test_response.json")])
        service = ChatCompletionService("model-id", transport)
        history = ChatHistory()
        history.add_user_message("This is test prompt")
        history.add_assistant_message("This is assistant message")
        history.add_user_message([TextContent(text="This is collection item prompt"), ImageContent(uri="https://image/")])
        settings = ExecutionSettings(chat_system_prompt="This is test system message")

        result = await service.get_chat_message_contents(history, settings)

        assert result[0].content == "Test chat response"
        messages = transport.requests[0]["messages"]
        assert len(messages) == 4
        assert messages[0] == {"role": "system", "content": "This is test system message"}
        assert messages[1] == {"role": "user", "content": "This is test prompt"}
        assert messages[2] == {"role": "assistant", "content": "This is assistant message"}
        assert messages[3]["content"] == [
            {"type": "text", "text": "This is collection item prompt"},
            {"type": "image_url", "image_url": {"url": "https://image/"}},
        ]

    @pytest.mark.asyncio
    async def test_transport_failure_keeps_appended_history(self, make_transport, load_json, plugin) -> None:
        transport = make_transport(responses=[
            load_json("chat_completion_single_function_call_test_response.json"),
            ServerError("Service unavailable", status=503),
        ])
        service = ChatCompletionService("model-id", transport)
        history = ChatHistory()
        history.add_user_message("Weather?")

        with pytest.raises(ServerError):
            await service.get_chat_message_contents(history, auto_invoke(), plugin.registry)

        assert plugin.function_call_count == 1
        assert [message.role for message in history] == [AuthorRole.USER, AuthorRole.ASSISTANT, AuthorRole.TOOL]

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        transport = AsyncMock()
        transport.send.side_effect = asyncio.CancelledError()
        service = ChatCompletionService("model-id", transport)

        with pytest.raises(asyncio.CancelledError):
            await service.get_chat_message_contents(ChatHistory(), auto_invoke())

        transport.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_statistics(self, make_transport, load_json, plugin) -> None:
        transport = make_transport(responses=[
            load_json("chat_completion_multiple_function_calls_test_response.json"),
            load_json("chat_completion_test_response.json"),
        ])
        service = ChatCompletionService("model-id", transport)

        await service.get_chat_message_contents(ChatHistory(), auto_invoke(), plugin.registry)

        stats = service.orchestrator.get_statistics()
        assert stats["total_exchanges"] == 1
        assert stats["total_round_trips"] == 2
        assert stats["total_function_calls"] == 5
        assert stats["successful_function_calls"] == 1
        assert stats["invoked_function_calls"] == 2

        summary = stats["last_exchange"]
        assert summary["total_calls"] == 5
        assert summary["invoked"] == 2
        assert summary["successful"] == 1
        assert summary["invocation_count"] == 2

    @pytest.mark.asyncio
    async def test_statistics_without_function_calls(self, make_transport, load_json) -> None:
        transport = make_transport(responses=[load_json("chat_completion_test_response.json")])
        service = ChatCompletionService("model-id", transport)

        await service.get_chat_message_contents(ChatHistory(), auto_invoke())

        stats = service.orchestrator.get_statistics()
        assert stats["invoked_function_calls"] == 0
        assert stats["last_exchange"]["total_calls"] == 0


class TestStreamingCompletion:
    """Test cases for streamed exchanges."""

    @pytest.mark.asyncio
    async def test_get_streaming_text_contents(self, make_transport, load_stream) -> None:
        transport = make_transport(streams=[load_stream("chat_completion_streaming_test_response.txt")])
        service = ChatCompletionService("model-id", transport)

        chunks = [chunk async for chunk in service.get_streaming_text_contents("Prompt")]

        assert chunks[0].content == "Test chat streaming response"
        assert chunks[1].metadata["finish_reason"] == FinishReason.STOP
        assert transport.requests[0]["stream"] is True

    @pytest.mark.asyncio
    async def test_get_streaming_chat_message_contents(self, make_transport, load_stream) -> None:
        transport = make_transport(streams=[load_stream("chat_completion_streaming_test_response.txt")])
        service = ChatCompletionService("model-id", transport)
        history = ChatHistory()
        history.add_user_message("Hi")

        chunks = [chunk async for chunk in service.get_streaming_chat_message_contents(history)]

        assert [chunk.content for chunk in chunks] == ["Test chat streaming response", None]
        assert chunks[1].finish_reason == FinishReason.STOP
        assert chunks[0].model_id == "model-id"
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_function_calls_auto_invoked(self, make_transport, load_stream, plugin) -> None:
        transport = make_transport(streams=[
            load_stream("chat_completion_streaming_multiple_function_calls_test_response.txt"),
            load_stream("chat_completion_streaming_test_response.txt"),
        ])
        service = ChatCompletionService("model-id", transport)
        history = ChatHistory("System message")

        chunks = [
            chunk async for chunk in service.get_streaming_chat_message_contents(history, auto_invoke(), plugin.registry)
        ]

        assert chunks[0].content == "Test chat streaming response"
        assert chunks[0].finish_reason == FinishReason.TOOL_CALLS
        assert chunks[1].finish_reason == FinishReason.TOOL_CALLS
        assert chunks[2].content == "Test chat streaming response"
        assert chunks[3].finish_reason == FinishReason.STOP
        assert plugin.function_call_count == 2

        assistant = history[1]
        assert assistant.role == AuthorRole.ASSISTANT
        assert assistant.content == "Test chat streaming response"
        assert [call.id for call in assistant.get_function_calls()] == ["1", "2"]
        assert [message.role for message in history.messages[2:]] == [AuthorRole.TOOL, AuthorRole.TOOL]

    @pytest.mark.asyncio
    async def test_maximum_auto_invoke_attempts(self, make_transport, load_stream, plugin) -> None:
        transport = make_transport(streams=[
            load_stream("chat_completion_streaming_single_function_call_test_response.txt")
            for _ in range(MODEL_RESPONSES_COUNT)
        ])
        service = ChatCompletionService("model-id", transport)

        chunks = []
        async for chunk in service.get_streaming_chat_message_contents(ChatHistory(), auto_invoke(), plugin.registry):
            assert chunk.content == "Test chat streaming response"
            chunks.append(chunk)

        assert plugin.function_call_count == MAXIMUM_AUTO_INVOKE_ATTEMPTS
        assert len(chunks) == MAXIMUM_AUTO_INVOKE_ATTEMPTS
        assert len(transport.streams) == 1

    @pytest.mark.asyncio
    async def test_required_function_forced_once(self, make_transport, load_stream, plugin) -> None:
        transport = make_transport(streams=[
            load_stream("chat_completion_streaming_single_function_call_test_response.txt"),
            load_stream("chat_completion_streaming_test_response.txt"),
        ])
        service = ChatCompletionService("model-id", transport)
        function = plugin.registry.resolve("MyPlugin", "GetCurrentWeather")
        settings = ExecutionSettings(tool_call_behavior=ToolCallBehavior.require_function(function))

        chunks = [chunk async for chunk in service.get_streaming_chat_message_contents(ChatHistory(), settings, plugin.registry)]

        assert chunks[0].content == "Test chat streaming response"
        assert chunks[0].finish_reason == FinishReason.TOOL_CALLS
        assert chunks[1].finish_reason is None
        assert chunks[2].finish_reason == FinishReason.STOP
        assert plugin.function_call_count == 1

        first, second = transport.requests
        assert len(first["tools"]) == 1
        assert first["tool_choice"]["function"]["name"] == "MyPlugin-GetCurrentWeather"
        assert second["tool_choice"] == "none"

    @pytest.mark.asyncio
    async def test_fragmented_function_call(self, make_transport, load_stream, plugin) -> None:
        transport = make_transport(streams=[
            load_stream("chat_completion_streaming_fragmented_function_call_test_response.txt"),
            load_stream("chat_completion_streaming_test_response.txt"),
        ])
        service = ChatCompletionService("model-id", transport)
        history = ChatHistory()

        chunks = [
            chunk async for chunk in service.get_streaming_chat_message_contents(history, auto_invoke(), plugin.registry)
        ]

        assert len(chunks) == 8
        assert chunks[5].usage.total_tokens == 99
        assert plugin.locations == ["Boston, MA"]

        [call] = history[0].get_function_calls()
        assert call.arguments == {"location": "Boston, MA"}
        assert history[0].content is None
        assert history[1].items[0].result == "Some weather"

    @pytest.mark.asyncio
    async def test_advertised_functions_not_invoked(self, make_transport, load_stream, plugin) -> None:
        transport = make_transport(streams=[
            load_stream("chat_completion_streaming_single_function_call_test_response.txt"),
        ])
        service = ChatCompletionService("model-id", transport)
        history = ChatHistory()
        settings = ExecutionSettings(tool_call_behavior=ToolCallBehavior.enable_functions())

        chunks = [chunk async for chunk in service.get_streaming_chat_message_contents(history, settings, plugin.registry)]

        assert len(chunks) == 1
        assert chunks[0].function_call_updates[0].name == "MyPlugin-GetCurrentWeather"
        assert plugin.function_call_count == 0
        assert len(history) == 0

    @pytest.mark.asyncio
    async def test_invoked_functions_counted(self, make_transport, load_stream, plugin) -> None:
        transport = make_transport(streams=[
            load_stream("chat_completion_streaming_multiple_function_calls_test_response.txt"),
            load_stream("chat_completion_streaming_test_response.txt"),
        ])
        service = ChatCompletionService("model-id", transport)

        async for _ in service.get_streaming_chat_message_contents(ChatHistory(), auto_invoke(), plugin.registry):
            pass

        stats = service.orchestrator.get_statistics()
        assert stats["invoked_function_calls"] == 2
        assert stats["successful_function_calls"] == 1
        assert stats["last_exchange"]["invocation_count"] == 2
