"""Plugin system for observing and rewriting provider calls."""

from imagebridge.plugins.base import PluginBase, PluginRegistry, plugin_registry
from imagebridge.plugins.call_log import CallLogPlugin

__all__ = ["PluginBase", "PluginRegistry", "plugin_registry", "CallLogPlugin"]
