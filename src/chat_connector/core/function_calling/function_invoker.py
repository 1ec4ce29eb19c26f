"""Invocation of model-requested functions."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..client.contents import FunctionCallContent, FunctionResultContent
from ...tools.registry import FunctionRegistry

logger = logging.getLogger(__name__)

FUNCTION_NOT_FOUND_MESSAGE = "Error: Requested function could not be found."
ARGUMENTS_FAILURE_PREFIX = "Error: Function call arguments were invalid JSON."
INVOCATION_FAILURE_PREFIX = "Error: Exception while invoking function."


@dataclass
class FunctionInvocationResult:
    """Outcome of one requested call."""
    call: FunctionCallContent
    result: FunctionResultContent
    success: bool
    invoked: bool = False
    error: Optional[str] = None
    execution_time_ms: Optional[int] = None


class FunctionInvoker:
    """
    Executes function calls against a registry.

    Failures never propagate: unreadable arguments, unknown functions and
    exceptions raised by the function all become result text for the model.
    Cancellation is not an Exception and always propagates.
    """

    def __init__(self, registry: Optional[FunctionRegistry]):
        self.registry = registry
        self.invocation_count = 0

    async def invoke(self, call: FunctionCallContent) -> FunctionInvocationResult:
        """
        Invoke a single function call.

        Args:
            call: The model's request

        Returns:
            FunctionInvocationResult whose ``result`` goes back into history
        """
        if call.exception is not None:
            message = f"{ARGUMENTS_FAILURE_PREFIX} {_describe_failure(call.exception)}"
            logger.warning(f"Not invoking {call.fully_qualified_name}: {message}")
            return self._failure(call, message)

        function = self.registry.resolve(call.plugin_name, call.function_name) if self.registry is not None else None
        if function is None:
            logger.warning(f"Requested function could not be found: {call.fully_qualified_name}")
            return self._failure(call, FUNCTION_NOT_FOUND_MESSAGE)

        start = time.monotonic()
        self.invocation_count += 1
        try:
            value = await function.invoke(call.arguments or {})
        except Exception as e:
            logger.error(f"Error invoking function '{call.fully_qualified_name}': {e}")
            message = f"{INVOCATION_FAILURE_PREFIX} {e}"
            result = self._failure(call, message)
            result.invoked = True
            result.execution_time_ms = _elapsed_ms(start)
            return result

        logger.debug(f"Function {call.fully_qualified_name} returned {value!r}")
        return FunctionInvocationResult(
            call=call,
            result=FunctionResultContent.from_function_call(call, value),
            success=True,
            invoked=True,
            execution_time_ms=_elapsed_ms(start),
        )

    async def invoke_all(self, calls: List[FunctionCallContent]) -> List[FunctionInvocationResult]:
        """Invoke calls one at a time, in request order."""
        if not calls:
            return []
        logger.info(f"Invoking {len(calls)} function calls")
        results = []
        for call in calls:
            results.append(await self.invoke(call))
        return results

    def _failure(self, call: FunctionCallContent, message: str) -> FunctionInvocationResult:
        return FunctionInvocationResult(
            call=call,
            result=FunctionResultContent.from_function_call(call, message),
            success=False,
            error=message,
        )

    def get_execution_summary(self, results: List[FunctionInvocationResult]) -> Dict[str, Any]:
        """
        Get summary of invocation results.

        Args:
            results: List of invocation results

        Returns:
            Summary dictionary
        """
        if not results:
            return {
                "total_calls": 0,
                "invoked": 0,
                "successful": 0,
                "failed": 0,
                "total_time_ms": 0
            }

        successful = sum(1 for r in results if r.success)
        total_time = sum(r.execution_time_ms or 0 for r in results)

        return {
            "total_calls": len(results),
            "invoked": sum(1 for r in results if r.invoked),
            "successful": successful,
            "failed": len(results) - successful,
            "total_time_ms": total_time,
            "average_time_ms": total_time / len(results)
        }


def _describe_failure(error: Exception) -> str:
    cause = error.__cause__
    return str(cause) if cause is not None else str(error)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
