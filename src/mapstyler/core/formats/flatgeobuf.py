"""
FlatGeobuf extent calculation and conversion.

FlatGeobuf buffers are decoded with geopandas (GDAL's FlatGeobuf driver);
shapely's ``mapping`` turns each geometry into the same GeoJSON-like record
the other calculators work on.
"""

import asyncio
import io
import json
import logging
from typing import Optional

import geopandas as gpd
from shapely.geometry import mapping

from ..coord_utils import GEOGRAPHIC_CRS, normalize_crs
from ..exceptions import DecodeError, MapStylerError
from .base import DecodedSource, ExtentCalculator

logger = logging.getLogger(__name__)


def read_flatgeobuf(buffer: bytes) -> gpd.GeoDataFrame:
    """Read a FlatGeobuf buffer into a GeoDataFrame.

    Raises:
        DecodeError: If GDAL cannot read the buffer
    """
    if not buffer:
        raise DecodeError("Empty FlatGeobuf buffer")
    try:
        return gpd.read_file(io.BytesIO(buffer))
    except Exception as e:
        raise DecodeError(f"Failed to decode FlatGeobuf: {str(e)}") from e


def decode_flatgeobuf(buffer: bytes) -> DecodedSource:
    """Decode a FlatGeobuf buffer into geometry records and its CRS."""
    gdf = read_flatgeobuf(buffer)
    records = [
        None if geom is None or geom.is_empty else mapping(geom)
        for geom in gdf.geometry
    ]
    crs = normalize_crs(gdf.crs) if gdf.crs is not None else GEOGRAPHIC_CRS
    return DecodedSource(records=records, crs=crs)


class FlatGeobufExtentCalculator(ExtentCalculator):
    """Extent of a FlatGeobuf file, in EPSG:3857."""

    format_name = "FlatGeoBuf"

    def decode(self, buffer: bytes) -> DecodedSource:
        return decode_flatgeobuf(buffer)

    async def as_geojson(self, url: str) -> Optional[dict]:
        """
        Convert a FlatGeobuf source to a GeoJSON FeatureCollection.

        Reuses the cached buffer when the extent was already computed.

        Returns:
            FeatureCollection dict, or None if the source cannot be read
        """
        logger.debug(f"Converting FlatGeobuf to GeoJSON for: {url}")
        try:
            buffer = await self.get_buffer(url)
            gdf = await asyncio.to_thread(read_flatgeobuf, buffer)
        except MapStylerError as e:
            logger.warning(f"Error converting FlatGeobuf to GeoJSON: {e}")
            return None
        return json.loads(gdf.to_json())
