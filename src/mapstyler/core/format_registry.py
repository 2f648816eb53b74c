"""
Format handler registry and layer processing pipeline.

Each handler knows how to enrich a layer definition for one source format,
usually by computing its extent. The registry maps format identifiers to
handlers so new formats can be registered without touching dispatch, and
``process_layers`` runs every layer through its handler and applies the
editor style.
"""

import asyncio
import copy
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from .config_manager import get_config_manager
from .error_utils import log_and_notify
from .formats import (
    ExtentCalculator,
    FlatGeobufExtentCalculator,
    GeoJSONExtentCalculator,
    GeoTIFFExtentCalculator,
)
from .style_processor import StyleDocument, build_layer_config, resolve_style_variables
from .validation import is_valid_extent

logger = logging.getLogger(__name__)

LayerDefinition = Dict[str, Any]

VECTOR = "Vector"
WEBGL_TILE = "WebGLTile"


def generate_layer_id() -> str:
    """Session-unique layer id built from a millisecond timestamp and a random suffix."""
    return f"layer-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def copy_layer(layer: LayerDefinition) -> LayerDefinition:
    """Copy a layer definition so processing never mutates the input."""
    copied = dict(layer)
    copied["properties"] = dict(layer.get("properties") or {})
    if isinstance(layer.get("source"), dict):
        copied["source"] = dict(layer["source"])
    return copied


def source_url(source: Any) -> Optional[str]:
    """URL of a layer source: ``source.url`` or the first ``source.sources`` entry."""
    if not isinstance(source, dict):
        return None
    if source.get("url"):
        return source["url"]
    for entry in source.get("sources") or []:
        if isinstance(entry, dict) and entry.get("url"):
            return entry["url"]
    return None


class FormatHandler:
    """
    Base format handler.

    Attributes:
        identifiers: Source format/type names this handler answers to
            (matched case-insensitively by :meth:`supports`)
    """

    identifiers: Tuple[str, ...] = ()

    def supports(self, identifier: Optional[str]) -> bool:
        if not identifier:
            return False
        return identifier.lower() in {name.lower() for name in self.identifiers}

    async def process_layer(self, layer: LayerDefinition) -> LayerDefinition:
        """Return a processed copy of the layer. The base handler changes nothing."""
        return copy_layer(layer)

    def __repr__(self):
        return f"{type(self).__name__}()"


class DefaultHandler(FormatHandler):
    """Pass-through handler for formats nobody registered."""

    def supports(self, identifier: Optional[str]) -> bool:
        return True


class ExtentFormatHandler(FormatHandler):
    """
    Handler that annotates layers with an extent computed from their source.

    Extent failures never propagate: the layer is returned without an
    ``extent`` and the failure is logged.
    """

    calculator_class = ExtentCalculator

    def __init__(
        self,
        calculator: Optional[ExtentCalculator] = None,
        timeout: Optional[float] = None,
    ):
        self._calculator = calculator
        self._timeout = timeout

    @property
    def calculator(self) -> ExtentCalculator:
        if self._calculator is None:
            self._calculator = self.calculator_class()
        return self._calculator

    @property
    def timeout(self) -> float:
        if self._timeout is None:
            return get_config_manager().get_float("pipeline/layer_timeout_seconds", 60.0)
        return self._timeout

    async def process_layer(self, layer: LayerDefinition) -> LayerDefinition:
        processed = copy_layer(layer)
        format_name = self.calculator_class.format_name

        if is_valid_extent(layer.get("extent")):
            logger.debug(f"Layer already has an extent, skipping {format_name} calculation")
            return processed

        url = source_url(layer.get("source"))
        if not url:
            logger.debug(f"{format_name} layer has no source URL, no extent computed")
            return processed

        try:
            extent = await asyncio.wait_for(self.calculator.compute_extent(url), self.timeout)
        except asyncio.TimeoutError as e:
            log_and_notify(
                e,
                f"{format_name} extent calculation timed out after {self.timeout}s for {url}.",
                log_level=logging.WARNING,
                exc_info=False,
            )
            return processed
        except Exception as e:
            log_and_notify(e, f"{format_name} extent calculation failed for {url}.")
            return processed

        if extent:
            processed["extent"] = list(extent)
            processed["properties"]["extentCalculated"] = True
        else:
            # The layer still renders without an extent
            logger.warning(f"{format_name} extent calculation returned nothing for: {url}")
        return processed


class FlatGeobufHandler(ExtentFormatHandler):
    identifiers = ("FlatGeoBuf", "FlatGeobuf", "fgb")
    calculator_class = FlatGeobufExtentCalculator


class GeoJSONHandler(ExtentFormatHandler):
    identifiers = ("GeoJSON", "json")
    calculator_class = GeoJSONExtentCalculator


class GeoTIFFHandler(ExtentFormatHandler):
    identifiers = ("GeoTIFF", "COG", "tif", "tiff")
    calculator_class = GeoTIFFExtentCalculator


class FormatRegistry:
    """
    Maps source format identifiers to handlers.

    Lookup is an exact key match first, then the registered handlers'
    ``supports`` aliases, then the default pass-through handler.
    """

    def __init__(
        self,
        handlers: Optional[Dict[str, FormatHandler]] = None,
        default_handler: Optional[FormatHandler] = None,
    ):
        self._handlers: Dict[str, FormatHandler] = dict(handlers or {})
        self.default_handler = default_handler or DefaultHandler()

    @classmethod
    def with_builtin_handlers(cls) -> "FormatRegistry":
        """Registry with the FlatGeobuf, GeoJSON and GeoTIFF handlers."""
        return cls({
            "FlatGeoBuf": FlatGeobufHandler(),
            "GeoJSON": GeoJSONHandler(),
            "GeoTIFF": GeoTIFFHandler(),
        })

    def register_handler(self, identifier: str, handler: FormatHandler):
        """Register (or replace) the handler for a source format identifier."""
        if not identifier:
            raise ValueError("Handler identifier cannot be empty")
        logger.debug(f"Registering {handler!r} for '{identifier}'")
        self._handlers[identifier] = handler

    def unregister_handler(self, identifier: str) -> Optional[FormatHandler]:
        return self._handlers.pop(identifier, None)

    def find_handler(self, identifier: Optional[str]) -> Optional[FormatHandler]:
        """Registered handler for identifier, or None."""
        if not identifier:
            return None
        handler = self._handlers.get(identifier)
        if handler is not None:
            return handler
        for handler in self._handlers.values():
            if handler.supports(identifier):
                return handler
        return None

    def get_handler(self, identifier: Optional[str]) -> FormatHandler:
        """Handler for identifier, falling back to the default handler."""
        return self.find_handler(identifier) or self.default_handler

    def dispatch(self, source: Any) -> FormatHandler:
        """
        Pick the handler for a layer source.

        An explicit ``format`` beats the coarser ``type``.
        """
        if isinstance(source, dict):
            for key in ("format", "type"):
                handler = self.find_handler(source.get(key))
                if handler is not None:
                    logger.debug(f"Dispatching source {key}={source.get(key)!r} to {handler!r}")
                    return handler
        return self.default_handler

    def identifiers(self) -> List[str]:
        return list(self._handlers)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._handlers

    def __len__(self):
        return len(self._handlers)


# Global registry instance
_registry: Optional[FormatRegistry] = None


def get_registry() -> FormatRegistry:
    """Get the process-wide registry with the built-in handlers."""
    global _registry
    if _registry is None:
        _registry = FormatRegistry.with_builtin_handlers()
    return _registry


def get_format_handler(source_type: Optional[str]) -> FormatHandler:
    """Get the appropriate handler for a source type from the global registry."""
    return get_registry().get_handler(source_type)


def register_format_handler(source_type: str, handler: FormatHandler):
    """Register a new format handler on the global registry."""
    get_registry().register_handler(source_type, handler)


def assign_layer_id(layer: LayerDefinition) -> str:
    """Stable id for a layer: properties.id, then id, then a generated one."""
    properties = layer.get("properties") or {}
    return properties.get("id") or layer.get("id") or generate_layer_id()


def apply_editor_style(layer: LayerDefinition, editor_style: Optional[StyleDocument]) -> LayerDefinition:
    """
    Merge the editor style onto a processed layer (mutates and returns it).

    Vector layers take the editor style wholesale with variables resolved and
    get a ``layerConfig`` for the style editor. WebGLTile layers merge the
    editor style over their own so source-specific variables survive. Other
    layer kinds take the editor style as-is.
    """
    layer_type = layer.get("type")

    if editor_style is None:
        if layer_type == VECTOR and isinstance(layer.get("style"), dict):
            layer["style"] = resolve_style_variables(layer["style"])
        return layer

    editor_style = copy.deepcopy(editor_style)
    if layer_type == VECTOR:
        layer["style"] = resolve_style_variables(editor_style)
        layer["properties"]["layerConfig"] = build_layer_config(editor_style)
    elif layer_type == WEBGL_TILE:
        existing = layer.get("style") if isinstance(layer.get("style"), dict) else {}
        layer["style"] = {**existing, **editor_style}
    else:
        layer["style"] = editor_style
    return layer


async def _process_layer(
    layer: LayerDefinition,
    editor_style: Optional[StyleDocument],
    registry: FormatRegistry,
) -> LayerDefinition:
    if not isinstance(layer, dict):
        logger.error(f"Skipping malformed layer definition: {layer!r}")
        return layer

    layer_id = assign_layer_id(layer)
    if is_valid_extent(layer.get("extent")):
        # A layer that already has an extent never reaches a handler
        processed = copy_layer(layer)
    else:
        try:
            handler = registry.dispatch(layer.get("source"))
            # Handlers registered from outside may hand back the input itself
            processed = copy_layer(await handler.process_layer(layer))
        except Exception as e:
            log_and_notify(e, f"Processing failed for layer '{layer_id}', using it unchanged.")
            processed = copy_layer(layer)

    processed["id"] = layer_id
    processed["properties"].setdefault("id", layer_id)

    try:
        return apply_editor_style(processed, editor_style)
    except Exception as e:
        log_and_notify(e, f"Could not apply the editor style to layer '{layer_id}'.")
        return processed


async def process_layers(
    layers: List[LayerDefinition],
    editor_style: Optional[StyleDocument] = None,
    registry: Optional[FormatRegistry] = None,
) -> List[LayerDefinition]:
    """
    Process all layers using the appropriate format handlers.

    Layers are processed concurrently; the output keeps the input order and
    length. No exception escapes: a layer that fails is emitted without the
    enrichment that failed.

    Args:
        layers: Layer definitions
        editor_style: Style from the editor that overrides/merges layer styles
        registry: Registry to dispatch with (global registry by default)

    Returns:
        Processed layers, output[i] derived from layers[i]
    """
    if not layers:
        return []
    if registry is None:
        registry = get_registry()
    return list(await asyncio.gather(
        *(_process_layer(layer, editor_style, registry) for layer in layers)
    ))
