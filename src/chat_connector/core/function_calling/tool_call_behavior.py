"""
Tool-call behavior policy.

Decides which functions are advertised to the model on a given round trip,
what ``tool_choice`` is sent, and whether requested calls are invoked
automatically. Behaviors are a closed set of frozen variants; every consumer
dispatches on the variant class.
"""

from dataclasses import dataclass
from typing import Any, Dict, Final, List, Optional, Union
import logging

from ...tools.function import KernelFunction
from ...tools.registry import FunctionRegistry

logger = logging.getLogger(__name__)

# Round trips with auto-invoked function calls allowed per exchange.
MAXIMUM_AUTO_INVOKE_ATTEMPTS: Final[int] = 128


@dataclass(frozen=True)
class DisabledFunctions:
    """No functions are sent to the model."""


@dataclass(frozen=True)
class AdvertisedFunctions:
    """All registered functions are sent; requested calls are returned to the caller."""


@dataclass(frozen=True)
class AutoInvokeFunctions:
    """All registered functions are sent and requested calls are invoked automatically."""


@dataclass(frozen=True)
class RequiredFunction:
    """A single function the model is forced to call on the first request."""
    function: KernelFunction
    auto_invoke: bool = True


ToolCallBehaviorVariant = Union[DisabledFunctions, AdvertisedFunctions, AutoInvokeFunctions, RequiredFunction]
BEHAVIOR_TYPES = (DisabledFunctions, AdvertisedFunctions, AutoInvokeFunctions, RequiredFunction)


@dataclass(frozen=True)
class ToolConfiguration:
    """The ``tools``/``tool_choice`` pair for one request; None fields are omitted."""
    tools: Optional[List[Dict[str, Any]]] = None
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None


class ToolCallBehavior:
    """Factory helpers for the behavior variants."""

    @staticmethod
    def disabled() -> DisabledFunctions:
        return DisabledFunctions()

    @staticmethod
    def enable_functions() -> AdvertisedFunctions:
        return AdvertisedFunctions()

    @staticmethod
    def auto_invoke_functions() -> AutoInvokeFunctions:
        return AutoInvokeFunctions()

    @staticmethod
    def require_function(function: KernelFunction, auto_invoke: bool = True) -> RequiredFunction:
        return RequiredFunction(function=function, auto_invoke=auto_invoke)


def is_auto_invoke(behavior: ToolCallBehaviorVariant) -> bool:
    """Whether requested calls should be executed by the connector."""
    if isinstance(behavior, (DisabledFunctions, AdvertisedFunctions)):
        return False
    if isinstance(behavior, AutoInvokeFunctions):
        return True
    if isinstance(behavior, RequiredFunction):
        return behavior.auto_invoke
    raise TypeError(f"Unknown tool call behavior: {behavior!r}")


def max_auto_invoke_attempts(behavior: ToolCallBehaviorVariant) -> int:
    return MAXIMUM_AUTO_INVOKE_ATTEMPTS if is_auto_invoke(behavior) else 0


def configure_tools(
    behavior: ToolCallBehaviorVariant,
    registry: Optional[FunctionRegistry],
    request_index: int
) -> ToolConfiguration:
    """
    Compute the tool fields for one request.

    Args:
        behavior: Active behavior for the exchange
        registry: Functions available to the model, if any
        request_index: Zero-based round trip number within the exchange

    Returns:
        ToolConfiguration for the request payload
    """
    if isinstance(behavior, DisabledFunctions):
        return ToolConfiguration()

    if isinstance(behavior, (AdvertisedFunctions, AutoInvokeFunctions)):
        tools = registry.get_tool_definitions() if registry is not None else []
        if not tools:
            return ToolConfiguration()
        return ToolConfiguration(tools=tools, tool_choice="auto")

    if isinstance(behavior, RequiredFunction):
        tools = [behavior.function.to_tool_definition()]
        if request_index == 0:
            choice: Union[str, Dict[str, Any]] = {
                "type": "function",
                "function": {"name": behavior.function.fully_qualified_name},
            }
        else:
            choice = "none"
        return ToolConfiguration(tools=tools, tool_choice=choice)

    raise TypeError(f"Unknown tool call behavior: {behavior!r}")
