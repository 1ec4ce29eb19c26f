"""
Function registry for the chat-completion connector.

Functions are grouped into named plugins. The registry is what gets
advertised to the model and what function-call requests are resolved
against.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union
import logging

from .function import KernelFunction, validate_name
from ..core.client.contents import split_function_name

logger = logging.getLogger(__name__)


class FunctionRegistry:
    """Registry of plugins and the functions they expose."""

    def __init__(self):
        """Initialize an empty registry."""
        self._plugins: Dict[str, Dict[str, KernelFunction]] = {}
        self._exclude_functions: Set[str] = set()

    def configure_filters(self, exclude_functions: Optional[List[str]] = None) -> None:
        """Hide functions from the model by fully qualified name.

        Args:
            exclude_functions: ``plugin-function`` names to leave out of the tool list
        """
        self._exclude_functions = set(exclude_functions) if exclude_functions else set()

    def add_function(
        self,
        plugin_name: str,
        function: Union[KernelFunction, Callable[..., Any]],
        force: bool = False
    ) -> bool:
        """Register a function under a plugin.

        Args:
            plugin_name: Plugin to add the function to
            function: KernelFunction or plain callable
            force: Replace an existing function of the same name

        Returns:
            True if the function was registered
        """
        validate_name(plugin_name, "plugin")
        if not isinstance(function, KernelFunction):
            function = KernelFunction(function)
        function = function.with_plugin(plugin_name)

        plugin = self._plugins.setdefault(plugin_name, {})
        if not force and function.name in plugin:
            logger.warning(
                f"Function '{function.fully_qualified_name}' already registered. Use force=True to override."
            )
            return False

        plugin[function.name] = function
        logger.debug(f"Registered function: {function.fully_qualified_name}")
        return True

    def add_plugin(
        self,
        plugin_name: str,
        functions: Iterable[Union[KernelFunction, Callable[..., Any]]]
    ) -> int:
        """Register several functions under one plugin.

        Returns:
            Number of functions registered
        """
        registered = sum(1 for function in functions if self.add_function(plugin_name, function))
        logger.info(f"Registered plugin '{plugin_name}' with {registered} functions")
        return registered

    def remove_plugin(self, plugin_name: str) -> bool:
        if plugin_name in self._plugins:
            del self._plugins[plugin_name]
            logger.info(f"Removed plugin: {plugin_name}")
            return True
        return False

    def resolve(self, plugin_name: Optional[str], function_name: str) -> Optional[KernelFunction]:
        """Find a function by plugin and function name.

        A call without a plugin name matches only if exactly one plugin
        exposes a function of that name.

        Returns:
            The function, or None if it cannot be resolved
        """
        if plugin_name is not None:
            return self._plugins.get(plugin_name, {}).get(function_name)

        matches = [
            plugin[function_name] for plugin in self._plugins.values()
            if function_name in plugin
        ]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            logger.warning(f"Function name '{function_name}' is ambiguous across plugins")
        return None

    def resolve_fully_qualified(self, name: str) -> Optional[KernelFunction]:
        plugin_name, function_name = split_function_name(name)
        return self.resolve(plugin_name, function_name)

    def get_all_functions(self) -> List[KernelFunction]:
        """All functions that may be advertised to the model."""
        return [
            function
            for plugin in self._plugins.values()
            for function in plugin.values()
            if function.fully_qualified_name not in self._exclude_functions
        ]

    def get_plugin_names(self) -> List[str]:
        return list(self._plugins.keys())

    def get_tool_definitions(self) -> List[Dict[str, Any]]:
        """Tool schemas for every advertised function."""
        return [function.to_tool_definition() for function in self.get_all_functions()]

    def get_stats(self) -> Dict[str, Any]:
        """Get registry statistics.

        Returns:
            Dictionary with registry statistics
        """
        return {
            'total_functions': sum(len(plugin) for plugin in self._plugins.values()),
            'advertised_functions': len(self.get_all_functions()),
            'plugins': {name: len(plugin) for name, plugin in self._plugins.items()},
            'exclude_functions_filter': sorted(self._exclude_functions) or None
        }

    def __len__(self) -> int:
        return len(self.get_all_functions())
