"""
Function package for the chat-completion connector.

This package contains the invocable function wrapper and the plugin
registry the model's function-call requests are resolved against.
"""

__all__ = ["function", "registry"]
