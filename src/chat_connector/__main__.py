"""
Entry point for running Chat Connector as a module.

This allows users to run the CLI using:
    python -m chat_connector [command] [options]
"""

from chat_connector.cli.app import app

if __name__ == "__main__":
    app()
