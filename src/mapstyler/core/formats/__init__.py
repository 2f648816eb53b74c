"""
Format-specific extent calculators.
"""

from .base import (
    NO_EXTENT,
    DecodedSource,
    ExtentCalculator,
    clear_shared_caches,
    extent_from_records,
    iter_coordinates,
    iter_geometry_coordinates,
)
from .flatgeobuf import FlatGeobufExtentCalculator, decode_flatgeobuf
from .geojson import GeoJSONExtentCalculator, decode_geojson
from .geotiff import (
    GeoTIFFExtentCalculator,
    GeoTIFFMetadata,
    extent_from_metadata,
    read_geotiff_metadata,
)

__all__ = [
    "NO_EXTENT",
    "DecodedSource",
    "ExtentCalculator",
    "clear_shared_caches",
    "extent_from_records",
    "iter_coordinates",
    "iter_geometry_coordinates",
    "FlatGeobufExtentCalculator",
    "decode_flatgeobuf",
    "GeoJSONExtentCalculator",
    "decode_geojson",
    "GeoTIFFExtentCalculator",
    "GeoTIFFMetadata",
    "extent_from_metadata",
    "read_geotiff_metadata",
]
