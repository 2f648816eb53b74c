"""
MapStyler - Load geospatial datasets and style them as map layers.

This package normalizes FlatGeobuf, GeoJSON and GeoTIFF sources into map
layer descriptors with computed extents, and applies an editable,
variable-parameterized style to them.
"""

__version__ = "0.1.0"
__author__ = "MapStyler Team"

from .core import LayerStateManager, process_layers, resolve_style_variables

__all__ = ["LayerStateManager", "process_layers", "resolve_style_variables"]
