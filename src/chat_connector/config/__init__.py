"""
Configuration package for the chat-completion connector.

This package contains environment-driven connection and logging settings.
"""

__all__ = ["settings"]
