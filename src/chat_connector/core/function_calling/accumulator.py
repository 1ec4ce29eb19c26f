"""Assembly of streamed function-call fragments into complete calls."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..client.contents import FunctionCallContent, StreamingFunctionCallUpdate
from ..client.response_parser import parse_function_arguments

logger = logging.getLogger(__name__)


@dataclass
class PartialFunctionCall:
    """Fragments received so far for one call index."""
    call_id: Optional[str] = None
    name: str = ""
    arguments: List[str] = field(default_factory=list)


class FunctionCallAccumulator:
    """
    Collects streamed function-call fragments keyed by their index.

    The first fragment for an index carries the call id and function name;
    later fragments only append argument text, in arrival order.
    """

    def __init__(self):
        self._calls: Dict[int, PartialFunctionCall] = {}

    def update(self, updates: Iterable[StreamingFunctionCallUpdate]) -> None:
        for update in updates:
            partial = self._calls.get(update.index)
            if partial is None:
                if not update.name:
                    logger.debug(f"Function call fragment for index {update.index} arrived before its name")
                partial = PartialFunctionCall()
                self._calls[update.index] = partial

            if update.call_id and partial.call_id is None:
                partial.call_id = update.call_id
            if update.name and not partial.name:
                partial.name = update.name
            if update.arguments:
                partial.arguments.append(update.arguments)

    def build(self) -> List[FunctionCallContent]:
        """Finalize the accumulated calls in index order."""
        calls = []
        for index in sorted(self._calls):
            partial = self._calls[index]
            if not partial.name:
                logger.warning(f"Dropping streamed function call {index} without a name")
                continue
            arguments, exception = parse_function_arguments("".join(partial.arguments))
            calls.append(FunctionCallContent.from_fully_qualified_name(
                partial.name,
                id=partial.call_id,
                arguments=arguments,
                exception=exception,
            ))
        return calls

    def clear(self) -> None:
        self._calls.clear()
