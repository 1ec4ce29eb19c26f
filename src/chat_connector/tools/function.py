"""
Invocable functions exposed to the model.

A KernelFunction wraps a plain Python callable (sync or async) together with
the metadata needed to advertise it to the model as a tool: its name, owning
plugin, description and a JSON schema of its parameters derived from the
callable's signature.
"""

import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pydantic import TypeAdapter

from ..core.client.contents import FUNCTION_NAME_SEPARATOR

logger = logging.getLogger(__name__)

_VALID_NAME = re.compile(r"^[A-Za-z0-9_]+$")


@dataclass
class FunctionParameter:
    """A single parameter of a KernelFunction."""
    name: str
    schema: Dict[str, Any]
    required: bool = True


@dataclass
class FunctionMetadata:
    """Metadata describing a KernelFunction to the model."""
    name: str
    description: str = ""
    plugin_name: Optional[str] = None
    parameters: List[FunctionParameter] = field(default_factory=list)

    @property
    def fully_qualified_name(self) -> str:
        if self.plugin_name:
            return f"{self.plugin_name}{FUNCTION_NAME_SEPARATOR}{self.name}"
        return self.name

    def parameters_schema(self) -> Dict[str, Any]:
        """JSON schema object for the function's parameters."""
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {p.name: p.schema for p in self.parameters},
        }
        required = [p.name for p in self.parameters if p.required]
        if required:
            schema["required"] = required
        return schema


class KernelFunction:
    """A Python callable the model can ask to invoke."""

    def __init__(
        self,
        method: Callable[..., Any],
        name: Optional[str] = None,
        description: Optional[str] = None,
        plugin_name: Optional[str] = None
    ):
        function_name = name or getattr(method, "__name__", "")
        validate_name(function_name, "function")
        if plugin_name is not None:
            validate_name(plugin_name, "plugin")

        self.method = method
        self._signature = inspect.signature(method)
        self.metadata = FunctionMetadata(
            name=function_name,
            description=description if description is not None else _first_doc_line(method),
            plugin_name=plugin_name,
            parameters=_describe_parameters(self._signature),
        )

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def plugin_name(self) -> Optional[str]:
        return self.metadata.plugin_name

    @property
    def fully_qualified_name(self) -> str:
        return self.metadata.fully_qualified_name

    def with_plugin(self, plugin_name: str) -> "KernelFunction":
        """Copy of this function assigned to a plugin."""
        return KernelFunction(
            self.method,
            name=self.name,
            description=self.metadata.description,
            plugin_name=plugin_name
        )

    async def invoke(self, arguments: Optional[Dict[str, Any]] = None) -> Any:
        """
        Invoke the wrapped callable with the given arguments.

        Arguments the callable does not declare are ignored. A missing
        required argument raises ValueError before the callable runs.

        Args:
            arguments: Parsed call arguments keyed by parameter name

        Returns:
            Whatever the callable returns (awaited if it is a coroutine)
        """
        bound = self._bind(arguments or {})
        result = self.method(*bound.args, **bound.kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def to_tool_definition(self) -> Dict[str, Any]:
        """OpenAI-compatible tool schema for this function."""
        function: Dict[str, Any] = {
            "name": self.fully_qualified_name,
            "parameters": self.metadata.parameters_schema(),
        }
        if self.metadata.description:
            function["description"] = self.metadata.description
        return {"type": "function", "function": function}

    def _bind(self, arguments: Dict[str, Any]) -> inspect.BoundArguments:
        accepts_kwargs = any(
            p.kind == inspect.Parameter.VAR_KEYWORD for p in self._signature.parameters.values()
        )
        if accepts_kwargs:
            selected = dict(arguments)
        else:
            selected = {k: v for k, v in arguments.items() if k in self._signature.parameters}
        try:
            bound = self._signature.bind(**selected)
        except TypeError as e:
            raise ValueError(f"Invalid arguments for function '{self.fully_qualified_name}': {e}") from e
        bound.apply_defaults()
        return bound

    def __repr__(self) -> str:
        return f"KernelFunction({self.fully_qualified_name!r})"


def validate_name(name: str, kind: str) -> None:
    """Names must be usable inside ``plugin-function`` wire names."""
    if not name or not _VALID_NAME.match(name):
        raise ValueError(
            f"Invalid {kind} name '{name}'. Use letters, digits and underscores only."
        )


def _first_doc_line(method: Callable[..., Any]) -> str:
    doc = inspect.getdoc(method)
    if not doc:
        return ""
    return doc.strip().splitlines()[0]


def _describe_parameters(signature: inspect.Signature) -> List[FunctionParameter]:
    parameters = []
    for param in signature.parameters.values():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        parameters.append(FunctionParameter(
            name=param.name,
            schema=_annotation_schema(param.annotation),
            required=param.default is inspect.Parameter.empty,
        ))
    return parameters


def _annotation_schema(annotation: Any) -> Dict[str, Any]:
    if annotation is inspect.Parameter.empty:
        return {"type": "string"}
    try:
        return TypeAdapter(annotation).json_schema()
    except Exception as e:
        logger.debug(f"Falling back to string schema for annotation {annotation!r}: {e}")
        return {"type": "string"}


def kernel_function(
    name: Optional[str] = None,
    description: Optional[str] = None
) -> Callable[[Callable[..., Any]], KernelFunction]:
    """Decorator turning a callable into a KernelFunction."""
    def decorator(method: Callable[..., Any]) -> KernelFunction:
        return KernelFunction(method, name=name, description=description)
    return decorator
