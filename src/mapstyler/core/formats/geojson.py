"""
GeoJSON extent calculation.
"""

import json
import logging
from typing import Any, List, Optional

from ..coord_utils import GEOGRAPHIC_CRS, normalize_crs
from ..exceptions import CRSError, DecodeError
from .base import DecodedSource, ExtentCalculator

logger = logging.getLogger(__name__)

GEOMETRY_TYPES = {
    "Point", "MultiPoint", "LineString", "MultiLineString",
    "Polygon", "MultiPolygon", "GeometryCollection",
}


def geojson_geometries(document: Any) -> List[Optional[dict]]:
    """Return one geometry record per feature of a GeoJSON object.

    Accepts a FeatureCollection, a single Feature or a bare geometry.

    Raises:
        DecodeError: If the document is not a JSON object
    """
    if not isinstance(document, dict):
        raise DecodeError(f"Expected a GeoJSON object, got {type(document).__name__}")

    kind = document.get("type")
    if kind == "FeatureCollection":
        features = document.get("features") or []
        return [f.get("geometry") for f in features if isinstance(f, dict)]
    if kind == "Feature":
        return [document.get("geometry")]
    if kind in GEOMETRY_TYPES:
        return [document]
    return []


def declared_crs(document: dict) -> str:
    """CRS named by a legacy (pre RFC 7946) ``crs`` member, else EPSG:4326."""
    crs_member = document.get("crs")
    if not isinstance(crs_member, dict):
        return GEOGRAPHIC_CRS
    name = (crs_member.get("properties") or {}).get("name")
    if not name:
        return GEOGRAPHIC_CRS
    try:
        return normalize_crs(name) or GEOGRAPHIC_CRS
    except CRSError as e:
        logger.warning(f"Ignoring unrecognised GeoJSON crs '{name}': {e}")
        return GEOGRAPHIC_CRS


def decode_geojson(buffer: bytes) -> DecodedSource:
    """Decode GeoJSON bytes into geometry records.

    Raises:
        DecodeError: If the payload is not valid JSON
    """
    try:
        document = json.loads(buffer)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"Invalid GeoJSON: {e}") from e

    records = geojson_geometries(document)
    if not records:
        logger.warning("GeoJSON has no features")
    return DecodedSource(records=records, crs=declared_crs(document))


class GeoJSONExtentCalculator(ExtentCalculator):
    """Extent of a GeoJSON document, in EPSG:3857."""

    format_name = "GeoJSON"

    def decode(self, buffer: bytes) -> DecodedSource:
        return decode_geojson(buffer)
