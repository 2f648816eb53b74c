"""
Utility functions for generating map layer definitions from a data URL.

This is the legacy single-layer path: catalog entries that only carry a flat
``dataUrl`` get one layer, with its format detected from the URL.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from .format_registry import generate_layer_id

logger = logging.getLogger(__name__)


class DataFormat(Enum):
    """Enumeration of data formats the layer generator recognises."""
    FLATGEOBUF = "FlatGeobuf"
    GEOJSON = "GeoJSON"
    GEOTIFF = "GeoTIFF"
    UNKNOWN = "Unknown"


class LayerType(Enum):
    """Layer kinds understood by the map renderer."""
    VECTOR = "Vector"
    WEBGL_TILE = "WebGLTile"


def detect_data_format(data_url: str) -> DataFormat:
    """
    Detect the data format of a URL or file path.

    File extensions are checked first, then common substrings.

    Args:
        data_url: The URL or path to the data file

    Returns:
        DataFormat member (UNKNOWN when nothing matches)
    """
    url = (data_url or "").lower()

    # Check file extensions
    if url.endswith('.fgb'):
        return DataFormat.FLATGEOBUF
    if url.endswith('.geojson') or url.endswith('.json'):
        return DataFormat.GEOJSON
    if url.endswith('.tif') or url.endswith('.tiff') or url.endswith('.geotiff'):
        return DataFormat.GEOTIFF

    # Check for common patterns in URLs
    if 'geojson' in url or 'json' in url:
        return DataFormat.GEOJSON
    if 'tiff' in url or 'geotiff' in url:
        return DataFormat.GEOTIFF
    if 'fgb' in url or 'flatgeobuf' in url:
        return DataFormat.FLATGEOBUF

    return DataFormat.UNKNOWN


def _as_format(data_format: Any) -> DataFormat:
    if isinstance(data_format, DataFormat):
        return data_format
    for member in DataFormat:
        if member.value.lower() == str(data_format).lower():
            return member
    aliases = {"fgb": DataFormat.FLATGEOBUF, "tif": DataFormat.GEOTIFF, "tiff": DataFormat.GEOTIFF}
    return aliases.get(str(data_format).lower(), DataFormat.UNKNOWN)


def generate_layer_source(data_url: str, data_format: Any = None) -> Dict[str, Any]:
    """
    Generate the layer source configuration for a data URL.

    Args:
        data_url: URL to the data
        data_format: Data format (detected from the URL when omitted)

    Returns:
        Source configuration; unknown formats fall back to GeoJSON
    """
    detected = _as_format(data_format) if data_format else detect_data_format(data_url)

    if detected == DataFormat.GEOTIFF:
        return {"type": "GeoTIFF", "url": data_url}
    if detected == DataFormat.FLATGEOBUF:
        return {"type": "Vector", "url": data_url, "format": "FlatGeobuf"}
    return {"type": "Vector", "url": data_url, "format": "GeoJSON"}


def generate_map_layer(
    data_url: str,
    name: Optional[str] = None,
    style: Optional[Dict[str, Any]] = None,
    data_format: Any = None,
    layer_id: Optional[str] = None,
    properties: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Generate a complete layer definition for a single data URL.

    Args:
        data_url: URL to the data
        name: Layer title
        style: Style document for the layer
        data_format: Force a specific data format
        layer_id: Custom layer ID
        properties: Additional layer properties

    Returns:
        Layer definition (Vector, or WebGLTile for GeoTIFF)
    """
    detected = _as_format(data_format) if data_format else detect_data_format(data_url)
    logger.debug(f"Detected format for {data_url}: {detected.value}")

    layer_type = LayerType.WEBGL_TILE if detected == DataFormat.GEOTIFF else LayerType.VECTOR
    layer_id = layer_id or generate_layer_id()

    layer = {
        "type": layer_type.value,
        "source": generate_layer_source(data_url, detected),
        "id": layer_id,
        "properties": {"visible": True, "id": layer_id, "title": name, **(properties or {})},
    }
    if style:
        layer["style"] = style
    return layer


def generate_map_layers(datasets: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Generate layer definitions for several datasets.

    Args:
        datasets: Mappings with ``data_url`` and optional ``name``, ``style``,
            ``data_format``, ``id`` and ``properties`` keys

    Returns:
        One layer definition per dataset, in order
    """
    layers = []
    for index, dataset in enumerate(datasets):
        layers.append(generate_map_layer(
            data_url=dataset["data_url"],
            name=dataset.get("name"),
            style=dataset.get("style"),
            data_format=dataset.get("data_format"),
            layer_id=dataset.get("id") or f"layer-{index}-{generate_layer_id()}",
            properties=dataset.get("properties"),
        ))
    return layers
