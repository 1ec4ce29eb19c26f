"""
Chat-completion client for OpenAI-compatible services.

This package provides the conversation model, execution settings, request
building, response parsing, HTTP transport, errors and the public chat
completion service.
"""

__all__ = [
    "contents",
    "execution_settings",
    "request_builder",
    "response_parser",
    "transport",
    "errors",
    "chat_completion",
]
