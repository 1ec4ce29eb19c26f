"""
Per-call execution settings for chat completion requests.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..function_calling.tool_call_behavior import (
    BEHAVIOR_TYPES,
    DisabledFunctions,
    ToolCallBehaviorVariant,
)


class ExecutionSettings(BaseModel):
    """
    Sampling and tool settings for one call.

    Settings are immutable; build a new instance (or use ``model_copy``)
    to change them between calls.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    max_tokens: Optional[int] = Field(default=None, gt=0, description="Maximum tokens to generate")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    frequency_penalty: Optional[float] = Field(default=None, ge=-2.0, le=2.0)
    presence_penalty: Optional[float] = Field(default=None, ge=-2.0, le=2.0)
    seed: Optional[int] = None
    token_selection_biases: Optional[Dict[int, int]] = Field(
        default=None,
        description="Token id to bias, sent as logit_bias"
    )
    stop_sequences: Optional[List[str]] = None
    logprobs: Optional[bool] = None
    top_logprobs: Optional[int] = Field(default=None, ge=0, le=20)
    response_format: Optional[Union[Literal["json_object", "text"], Dict[str, Any]]] = None
    user: Optional[str] = Field(default=None, description="End-user identifier")
    chat_system_prompt: Optional[str] = Field(
        default=None,
        description="System prompt prepended when the history has none"
    )
    data_sources: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        description="Vendor data-source extensions passed through unchanged"
    )
    tool_call_behavior: Any = Field(default_factory=DisabledFunctions)

    @field_validator("stop_sequences")
    @classmethod
    def validate_stop_sequences(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Drop empty stop sequences."""
        if v is None:
            return v
        cleaned = [s for s in v if s]
        return cleaned or None

    @field_validator("tool_call_behavior")
    @classmethod
    def validate_tool_call_behavior(cls, v: Any) -> ToolCallBehaviorVariant:
        """Only the known behavior variants are accepted."""
        if not isinstance(v, BEHAVIOR_TYPES):
            raise ValueError(f"Invalid tool call behavior {v!r}")
        return v
