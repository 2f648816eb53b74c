"""
Layer state management for the map.

Holds the active example, the active style and the derived layer list, and
publishes every new layer list to subscribers (the map renderer).
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from .config_manager import get_config_manager
from .coord_utils import BBox
from .error_utils import log_and_notify, safe_async_operation
from .exceptions import FetchError, StyleError
from .fetch import get_default_fetcher
from .format_registry import (
    FormatRegistry,
    LayerDefinition,
    assign_layer_id,
    copy_layer,
    process_layers,
)
from .layer_generator import detect_data_format, generate_map_layer
from .loading import LoadingState
from .style_processor import StyleDocument, default_style, parse_style
from .validation import is_valid_extent

logger = logging.getLogger(__name__)

LayersCallback = Callable[[List[LayerDefinition]], None]

EXAMPLE_LAYER_ID = "example-layer"


def layer_id_of(layer: LayerDefinition) -> Optional[str]:
    return layer.get("id") or (layer.get("properties") or {}).get("id")


class LayerStateManager:
    """
    Owns the map's layer state.

    Attributes:
        current_example: Selected catalog entry, or None
        current_style: Active style document, or None
        loading: Loading indicator driven by example selection

    The async operations (select_example, update_style,
    set_custom_data_layers) are serialised so a later call never interleaves
    with an earlier one. The synchronous list mutations (add_layer,
    remove_layer, clear_all_layers, clear_example) apply immediately; an
    in-flight async operation that finishes afterwards replaces the list.
    """

    def __init__(
        self,
        registry: Optional[FormatRegistry] = None,
        loading: Optional[LoadingState] = None,
        loading_stop_delay: Optional[float] = None,
    ):
        self.current_example: Optional[Dict[str, Any]] = None
        self.current_style: Optional[StyleDocument] = None
        self.registry = registry
        self.loading = loading or LoadingState()
        if loading_stop_delay is None:
            loading_stop_delay = get_config_manager().get_float("loading/stop_delay_seconds", 0.8)
        self.loading_stop_delay = loading_stop_delay

        self._layers: List[LayerDefinition] = []
        # Pipeline input for the current layers, before any editor style
        self._source_layers: List[LayerDefinition] = []
        self._listeners: List[LayersCallback] = []
        self._lock = asyncio.Lock()
        self._stop_handle: Optional[asyncio.TimerHandle] = None

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    @property
    def data_layers(self) -> List[LayerDefinition]:
        """Current derived layers, in order."""
        return self._layers.copy()

    def subscribe(self, callback: LayersCallback) -> Callable[[], None]:
        """
        Register a render sink called with every new layer list.

        Returns:
            Function that unregisters the callback
        """
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    def _publish(self, layers: List[LayerDefinition]):
        self._layers = list(layers)
        logger.debug(f"Publishing {len(self._layers)} layer(s)")
        for callback in list(self._listeners):
            try:
                callback(self._layers.copy())
            except Exception:
                logger.exception("Layer listener failed")

    # ------------------------------------------------------------------
    # Loading indicator
    # ------------------------------------------------------------------

    def _start_loading(self):
        if self._stop_handle is not None:
            self._stop_handle.cancel()
            self._stop_handle = None
        self.loading.start()

    def _stop_loading(self):
        self._stop_handle = None
        self.loading.stop()

    def _schedule_stop_loading(self):
        # Trailing grace period so the renderer can catch up before the
        # indicator disappears
        if self.loading_stop_delay <= 0:
            self._stop_loading()
            return
        loop = asyncio.get_running_loop()
        self._stop_handle = loop.call_later(self.loading_stop_delay, self._stop_loading)

    # ------------------------------------------------------------------
    # Example lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_style_or_none(style: Union[str, StyleDocument, None]) -> Optional[StyleDocument]:
        try:
            return parse_style(style)
        except StyleError as e:
            log_and_notify(e, "Ignoring unparseable example style.", log_level=logging.WARNING)
            return None

    @staticmethod
    def _legacy_layers(example: Dict[str, Any], style: Optional[StyleDocument]) -> List[LayerDefinition]:
        data_url = example.get("dataUrl")
        if not data_url:
            logger.warning(f"Example '{example.get('id')}' has neither layers nor dataUrl")
            return []
        return [generate_map_layer(
            data_url=data_url,
            name=example.get("name"),
            style=style,
            data_format=detect_data_format(data_url),
            layer_id=EXAMPLE_LAYER_ID,
        )]

    async def select_example(self, example: Dict[str, Any]) -> List[LayerDefinition]:
        """
        Make an example the active dataset and derive its layers.

        Examples with a ``layers`` list go through the processing pipeline
        with the example's style as editor style; examples with only a
        ``dataUrl`` get a single generated layer and no extent.

        Args:
            example: Catalog entry (``style`` may be JSON text)

        Returns:
            The published layer list
        """
        async with self._lock:
            self._start_loading()
            try:
                style = self._parse_style_or_none(example.get("style"))
                self.current_example = example
                self.current_style = style
                logger.info(f"Selecting example '{example.get('id') or example.get('name')}'")

                if example.get("layers"):
                    self._source_layers = self._with_stable_ids(example["layers"])
                    layers = await process_layers(self._source_layers, style, self.registry)
                else:
                    self._source_layers = []
                    layers = self._legacy_layers(example, style)
                self._publish(layers)
            finally:
                self._schedule_stop_loading()
            return self.data_layers

    @staticmethod
    def _with_stable_ids(layers: List[LayerDefinition]) -> List[LayerDefinition]:
        # Ids are fixed up front so reprocessing can find each layer's source
        stable = []
        for layer in layers:
            copied = copy_layer(layer)
            layer_id = assign_layer_id(copied)
            copied["id"] = layer_id
            copied["properties"].setdefault("id", layer_id)
            stable.append(copied)
        return stable

    def _source_layers_by_id(self) -> Dict[str, LayerDefinition]:
        by_id = {}
        for layer in self._source_layers:
            layer_id = layer_id_of(layer)
            if layer_id:
                by_id[layer_id] = layer
        return by_id

    @staticmethod
    def _restyle_base(layer: LayerDefinition, source_by_id: Dict[str, LayerDefinition]) -> LayerDefinition:
        source = source_by_id.get(layer_id_of(layer))
        if not is_valid_extent(layer.get("extent")):
            return source or layer
        if source is None:
            return layer
        # Keep the computed extent but merge onto the source's own style,
        # not onto the previous editor result
        base = copy_layer(layer)
        if "style" in source:
            base["style"] = source["style"]
        else:
            base.pop("style", None)
        return base

    async def update_style(self, new_style: Union[str, StyleDocument]) -> List[LayerDefinition]:
        """
        Apply a new style to the current layers.

        Layers that already carry an extent keep it, so editing a style never
        recomputes extents; their style is reset to the source definition's
        before the new one is merged in. Layers without an extent fall back
        to their source definition.

        Args:
            new_style: Style document or JSON text

        Returns:
            The published layer list (unchanged if the style is unparseable)
        """
        async with self._lock:
            try:
                style = parse_style(new_style)
            except StyleError as e:
                log_and_notify(e, "Style update rejected.", log_level=logging.WARNING)
                return self.data_layers

            self.current_style = style
            example = self.current_example

            source_by_id = self._source_layers_by_id()
            if self._layers and any(is_valid_extent(l.get("extent")) for l in self._layers):
                base = [self._restyle_base(layer, source_by_id) for layer in self._layers]
            elif example and self._source_layers:
                base = self._source_layers
            elif example:
                self._publish(self._legacy_layers(example, style))
                return self.data_layers
            else:
                base = [self._restyle_base(layer, source_by_id) for layer in self._layers]

            self._publish(await process_layers(base, style, self.registry))
            return self.data_layers

    async def set_custom_data_layers(self, layers: List[LayerDefinition]) -> List[LayerDefinition]:
        """
        Show caller-supplied layers instead of an example.

        The current style is kept; without one the default style applies.
        """
        async with self._lock:
            self._start_loading()
            try:
                self.current_example = None
                style = self.current_style or default_style()
                self.current_style = style
                self._source_layers = self._with_stable_ids(layers)
                self._publish(await process_layers(self._source_layers, style, self.registry))
            finally:
                self._schedule_stop_loading()
            return self.data_layers

    async def show_data_url(self, data_url: str, fetcher=None) -> List[LayerDefinition]:
        """
        Show a single user-supplied data URL as the custom dataset.

        Raises:
            FetchError: If the URL is not reachable
        """
        fetcher = fetcher or get_default_fetcher()
        reachable = await safe_async_operation(
            fetcher.check_url(data_url),
            f"Could not check data URL {data_url}.",
            default_return=False,
            log_level=logging.WARNING,
        )
        if not reachable:
            raise FetchError(f"Data URL is not reachable: {data_url}", url=data_url)
        layer = generate_map_layer(data_url=data_url, name=data_url)
        return await self.set_custom_data_layers([layer])

    def clear_example(self):
        """Reset the active example and style and drop all layers."""
        self.current_example = None
        self.current_style = None
        self._source_layers = []
        self._publish([])

    # ------------------------------------------------------------------
    # Ad-hoc layers
    # ------------------------------------------------------------------

    def add_layer(self, config: LayerDefinition, position: Optional[int] = None) -> str:
        """
        Add a layer to the list without running the pipeline.

        Args:
            config: Layer definition
            position: Optional position to insert at (default: append)

        Returns:
            The layer's id (generated if the definition has none)
        """
        layer = copy_layer(config)
        layer_id = assign_layer_id(layer)
        layer["id"] = layer_id
        layer["properties"].setdefault("id", layer_id)

        layers = self._layers.copy()
        if position is None:
            layers.append(layer)
        else:
            layers.insert(position, layer)
        self._publish(layers)
        return layer_id

    def remove_layer(self, layer_id: str) -> bool:
        """Remove the layer with this id. Returns False if there is none."""
        layers = [l for l in self._layers if layer_id_of(l) != layer_id]
        if len(layers) == len(self._layers):
            return False
        self._publish(layers)
        return True

    def clear_all_layers(self):
        """Remove all layers."""
        self._publish([])

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_layer(self, layer_id: str) -> Optional[LayerDefinition]:
        """Get a layer by its id."""
        for layer in self._layers:
            if layer_id_of(layer) == layer_id:
                return layer
        return None

    def get_layers_by_type(self, layer_type: str) -> List[LayerDefinition]:
        """Get all layers of a specific type ("Vector", "WebGLTile", ...)."""
        return [layer for layer in self._layers if layer.get("type") == layer_type]

    def get_combined_extent(self) -> Optional[BBox]:
        """
        Get the combined extent of all layers that have one.

        Returns:
            tuple: (minx, miny, maxx, maxy) or None if no layer has an extent
        """
        extents = [l["extent"] for l in self._layers if is_valid_extent(l.get("extent"))]

        if not extents:
            return None

        minx = min(e[0] for e in extents)
        miny = min(e[1] for e in extents)
        maxx = max(e[2] for e in extents)
        maxy = max(e[3] for e in extents)

        return (minx, miny, maxx, maxy)

    def __len__(self):
        return len(self._layers)

    def __iter__(self):
        return iter(self._layers.copy())

    def __repr__(self):
        example = (self.current_example or {}).get("id")
        return f"LayerStateManager(example={example!r}, layers={len(self._layers)})"


# Process-wide state instance
_layer_state: Optional[LayerStateManager] = None


def get_layer_state() -> LayerStateManager:
    """Get the process-wide layer state.

    Returns:
        LayerStateManager singleton instance
    """
    global _layer_state
    if _layer_state is None:
        _layer_state = LayerStateManager()
    return _layer_state
