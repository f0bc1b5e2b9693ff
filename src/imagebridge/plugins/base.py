"""Plugin base class and registry.

Plugins observe (and may rewrite) provider calls through four optional hooks.
Adapters call them in registration order:

- ``on_request(request, context)``: before an HTTP request is sent. ``request``
  is a dict with ``method``, ``url``, ``headers``, ``json``, ``data`` and
  ``files``. Returning a dict replaces it, returning ``None`` keeps it.
- ``on_response(data, context)``: after a JSON body is decoded. Returning a
  value replaces the decoded body, returning ``None`` keeps it.
- ``on_complete(image, context)``: after an adapter produced a BinaryImage
- ``on_error(error, context)``: before an adapter re-raises an ImageBridgeError

``context`` is a dict shared across the hooks of one adapter call. It carries
``operation``, ``provider``, ``model``, ``reference_count``, ``started_at``
and, once a response arrived, ``status_code``.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class PluginBase:
    """Base class for ImageBridge plugins.

    Subclasses override only the hooks they need. Keyword arguments passed to
    the constructor are kept in ``self.config``; ``enabled=False`` turns every
    hook into a no-op.
    """

    name: str = "Base Plugin"
    description: str = "Base class for plugins"
    version: str = "0.1.0"

    def __init__(self, **config: Any) -> None:
        self.config = config
        self.enabled: bool = bool(config.get("enabled", True))

    def on_request(self, request: dict[str, Any], context: dict[str, Any]) -> dict[str, Any] | None:
        return None

    def on_response(self, data: Any, context: dict[str, Any]) -> Any:
        return None

    def on_complete(self, image: Any, context: dict[str, Any]) -> None:
        return None

    def on_error(self, error: Exception, context: dict[str, Any]) -> None:
        return None


class PluginRegistry:
    """Registry of plugin classes, keyed by ``PluginBase.name``."""

    def __init__(self) -> None:
        self._plugins: dict[str, type[PluginBase]] = {}

    def register(self, plugin_class: type[PluginBase]) -> type[PluginBase]:
        plugin_name = plugin_class.name
        if plugin_name in self._plugins:
            logger.warning(f"Plugin '{plugin_name}' is already registered, overwriting")
        self._plugins[plugin_name] = plugin_class
        logger.info(f"Registered plugin: {plugin_name}")
        return plugin_class

    def instantiate(self, plugin_name: str, **config: Any) -> PluginBase:
        """Create an instance of a registered plugin.

        Raises:
            KeyError: If ``plugin_name`` is not registered
        """
        if plugin_name not in self._plugins:
            available = ", ".join(self.list_available())
            raise KeyError(f"Plugin '{plugin_name}' not found. Available plugins: {available}")
        return self._plugins[plugin_name](**config)

    def list_available(self) -> list[str]:
        return list(self._plugins.keys())


# Global plugin registry instance
plugin_registry = PluginRegistry()
