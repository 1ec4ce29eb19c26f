"""
Chat Connector - an OpenAI-compatible chat-completion connector.

This package adapts a generic conversation and execution-settings model to a
hosted chat-completion API, including automatic function calling.
"""

__version__ = "0.1.0"
__author__ = "Chat Connector Team"
__license__ = "Apache-2.0"

from typing import Final

# Package metadata
VERSION: Final[str] = __version__
PACKAGE_NAME: Final[str] = "chat-connector"
USER_AGENT: Final[str] = f"{PACKAGE_NAME}/{VERSION}"

__all__ = [
    "__version__",
    "VERSION",
    "PACKAGE_NAME",
    "USER_AGENT",
]
