"""
CLI interface package for the chat-completion connector.

This package contains the command-line application.
"""

__all__ = ["app"]
