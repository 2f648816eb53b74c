"""
Core functionality for MapStyler.
"""

from .format_registry import (
    FormatHandler,
    FormatRegistry,
    get_format_handler,
    process_layers,
    register_format_handler,
)
from .layer_manager import LayerStateManager, get_layer_state
from .style_processor import resolve_style_variables

__all__ = [
    "FormatHandler",
    "FormatRegistry",
    "get_format_handler",
    "process_layers",
    "register_format_handler",
    "LayerStateManager",
    "get_layer_state",
    "resolve_style_variables",
]
