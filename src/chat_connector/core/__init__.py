"""
Core components for Chat Connector.

This package holds the chat-completion client layer and the function-calling
orchestration built on top of it.
"""

__all__ = ["client", "function_calling"]
