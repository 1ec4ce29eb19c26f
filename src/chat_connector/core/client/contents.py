"""
Conversation model for the chat-completion connector.

Messages carry an ordered list of content items. Content items form a tagged
union discriminated by their ``type`` field, so code that consumes them
dispatches on the concrete item class rather than on a class hierarchy.
"""

import json
import logging
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

# Separator between plugin and function name in wire-level function names.
FUNCTION_NAME_SEPARATOR = "-"


class AuthorRole(str, Enum):
    """Message roles in a conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(str, Enum):
    """Reasons the model stopped generating."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["FinishReason"]:
        """Map a wire finish reason to the enum, tolerating legacy and unknown values."""
        if not value:
            return None
        if value == "function_call":
            return cls.TOOL_CALLS
        try:
            return cls(value)
        except ValueError:
            logger.debug(f"Ignoring unknown finish reason: {value}")
            return None


class Usage(BaseModel):
    """Token usage reported by the service."""
    prompt_tokens: int = Field(default=0, description="Tokens in the prompt")
    completion_tokens: int = Field(default=0, description="Tokens in the completion")
    total_tokens: int = Field(default=0, description="Total tokens used")


class TextContent(BaseModel):
    """Plain text content."""
    type: Literal["text"] = "text"
    text: str


class ImageContent(BaseModel):
    """Reference to an image by URI."""
    type: Literal["image"] = "image"
    uri: str


class FunctionCallContent(BaseModel):
    """A request from the model to invoke a function."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: Literal["function_call"] = "function_call"
    id: Optional[str] = Field(default=None, description="Call id, unique within a response turn")
    plugin_name: Optional[str] = Field(default=None, description="Plugin owning the function")
    function_name: str = Field(description="Name of the function to invoke")
    arguments: Optional[Dict[str, Any]] = Field(default=None, description="Parsed call arguments")
    exception: Optional[Exception] = Field(
        default=None,
        description="Failure raised while reading the call, e.g. invalid argument JSON"
    )

    @property
    def fully_qualified_name(self) -> str:
        """Name as sent on the wire: ``{plugin}-{function}``."""
        if self.plugin_name:
            return f"{self.plugin_name}{FUNCTION_NAME_SEPARATOR}{self.function_name}"
        return self.function_name

    @classmethod
    def from_fully_qualified_name(
        cls,
        name: str,
        id: Optional[str] = None,
        arguments: Optional[Dict[str, Any]] = None,
        exception: Optional[Exception] = None
    ) -> "FunctionCallContent":
        """Split a wire function name on the first separator into plugin and function."""
        plugin_name, function_name = split_function_name(name)
        return cls(
            id=id,
            plugin_name=plugin_name,
            function_name=function_name,
            arguments=arguments,
            exception=exception
        )


class FunctionResultContent(BaseModel):
    """The outcome of a function call, sent back to the model."""
    type: Literal["function_result"] = "function_result"
    call_id: Optional[str] = Field(default=None, description="Id of the originating call")
    plugin_name: Optional[str] = None
    function_name: Optional[str] = None
    result: Any = Field(default=None, description="Function return value or error description")

    @classmethod
    def from_function_call(cls, call: FunctionCallContent, result: Any) -> "FunctionResultContent":
        return cls(
            call_id=call.id,
            plugin_name=call.plugin_name,
            function_name=call.function_name,
            result=result
        )

    def result_as_text(self) -> str:
        """Render the result the way the wire format expects it."""
        if self.result is None:
            return ""
        if isinstance(self.result, str):
            return self.result
        try:
            return json.dumps(self.result, separators=(",", ":"), default=str)
        except (TypeError, ValueError):
            return str(self.result)


ContentItem = Annotated[
    Union[TextContent, ImageContent, FunctionCallContent, FunctionResultContent],
    Field(discriminator="type"),
]


class ChatMessageContent(BaseModel):
    """A message in a conversation."""
    role: AuthorRole
    items: List[ContentItem] = Field(default_factory=list)
    model_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_text(cls, role: AuthorRole, text: str) -> "ChatMessageContent":
        """Create a simple text message."""
        return cls(role=role, items=[TextContent(text=text)])

    @property
    def content(self) -> Optional[str]:
        """Concatenated text of all text items, or None when there is none."""
        texts = [item.text for item in self.items if isinstance(item, TextContent)]
        if not texts:
            return None
        return "".join(texts)

    @property
    def finish_reason(self) -> Optional[FinishReason]:
        return self.metadata.get("finish_reason")

    @property
    def usage(self) -> Optional[Usage]:
        return self.metadata.get("usage")

    def get_function_calls(self) -> List[FunctionCallContent]:
        """Get all function call requests in this message."""
        return [item for item in self.items if isinstance(item, FunctionCallContent)]

    def has_function_calls(self) -> bool:
        return any(isinstance(item, FunctionCallContent) for item in self.items)


class StreamingFunctionCallUpdate(BaseModel):
    """A fragment of a function call request delivered in a streamed chunk."""
    index: int = Field(description="Position of the call within the response")
    call_id: Optional[str] = None
    name: Optional[str] = Field(default=None, description="Fully qualified name, first fragment only")
    arguments: Optional[str] = Field(default=None, description="Argument JSON fragment")


class StreamingChatMessageContent(BaseModel):
    """One incrementally delivered piece of a streamed response."""
    role: Optional[AuthorRole] = None
    content: Optional[str] = None
    function_call_updates: List[StreamingFunctionCallUpdate] = Field(default_factory=list)
    finish_reason: Optional[FinishReason] = None
    usage: Optional[Usage] = None
    choice_index: int = 0
    model_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ChatHistory:
    """
    Ordered, caller-owned log of conversation messages.

    The orchestrator only ever appends to a history; it never replaces or
    reorders existing entries.
    """

    def __init__(
        self,
        system_message: Optional[str] = None,
        messages: Optional[Iterable[ChatMessageContent]] = None
    ):
        self.messages: List[ChatMessageContent] = []
        if system_message:
            self.add_system_message(system_message)
        if messages:
            self.messages.extend(messages)

    def add_message(self, message: ChatMessageContent) -> None:
        self.messages.append(message)

    def add_system_message(self, text: str) -> None:
        self.add_message(ChatMessageContent.from_text(AuthorRole.SYSTEM, text))

    def add_user_message(self, content: Union[str, List[ContentItem]]) -> None:
        self._add(AuthorRole.USER, content)

    def add_assistant_message(self, content: Union[str, List[ContentItem]]) -> None:
        self._add(AuthorRole.ASSISTANT, content)

    def _add(self, role: AuthorRole, content: Union[str, List[ContentItem]]) -> None:
        if isinstance(content, str):
            self.add_message(ChatMessageContent.from_text(role, content))
        else:
            self.add_message(ChatMessageContent(role=role, items=list(content)))

    def has_system_message(self) -> bool:
        return any(message.role == AuthorRole.SYSTEM for message in self.messages)

    def __iter__(self) -> Iterator[ChatMessageContent]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    def __getitem__(self, index: int) -> ChatMessageContent:
        return self.messages[index]


def split_function_name(name: str) -> Tuple[Optional[str], str]:
    """Split ``plugin-function`` into its parts; names without a separator have no plugin."""
    if FUNCTION_NAME_SEPARATOR in name:
        plugin_name, function_name = name.split(FUNCTION_NAME_SEPARATOR, 1)
        if plugin_name and function_name:
            return plugin_name, function_name
    return None, name
