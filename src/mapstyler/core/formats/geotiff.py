"""
GeoTIFF extent calculation.

The extent comes from the raster's georeferencing rather than from geometry
records: rasterio reads the bounds and the EPSG code carried by the GeoTIFF
geo keys (ProjectedCSTypeGeoKey or GeographicTypeGeoKey), and the bbox corners
are reprojected according to that code.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union

import rasterio
from rasterio.errors import RasterioError
from rasterio.io import MemoryFile

from ..config_manager import get_config_manager
from ..coord_utils import (
    GEOGRAPHIC_CRS,
    TARGET_CRS,
    BBox,
    epsg_code,
    looks_geographic,
    transform_bbox_corners,
)
from ..exceptions import DecodeError, ValidationError
from ..fetch import is_remote_url
from .base import ExtentCalculator

logger = logging.getLogger(__name__)


@dataclass
class GeoTIFFMetadata:
    """Georeferencing read from a GeoTIFF header."""

    bbox: BBox
    epsg: Optional[int]
    width: int
    height: int


def _metadata_from_dataset(src) -> GeoTIFFMetadata:
    if src.crs is None and src.transform.is_identity and not src.gcps[0]:
        raise DecodeError("GeoTIFF has no valid bounding box")

    bounds = src.bounds
    bbox = (
        min(bounds.left, bounds.right),
        min(bounds.bottom, bounds.top),
        max(bounds.left, bounds.right),
        max(bounds.bottom, bounds.top),
    )
    epsg = src.crs.to_epsg() if src.crs is not None else None
    return GeoTIFFMetadata(bbox=bbox, epsg=epsg, width=src.width, height=src.height)


def read_geotiff_metadata(source: Union[bytes, str]) -> GeoTIFFMetadata:
    """Read bounds and CRS code from GeoTIFF bytes or a path/URL.

    Remote URLs are opened by GDAL with HTTP range requests, so only the
    header is transferred.

    Raises:
        DecodeError: If the data is not a readable GeoTIFF
    """
    try:
        if isinstance(source, (bytes, bytearray)):
            with MemoryFile(bytes(source)) as memfile:
                with memfile.open() as src:
                    return _metadata_from_dataset(src)
        with rasterio.open(source) as src:
            return _metadata_from_dataset(src)
    except RasterioError as e:
        raise DecodeError(f"Failed to read GeoTIFF: {str(e)}") from e


def extent_from_metadata(
    metadata: GeoTIFFMetadata,
    target_crs: str = TARGET_CRS,
) -> BBox:
    """
    Reproject a GeoTIFF bbox into the target CRS.

    Policy by EPSG code:
      - 4326: both corners are reprojected
      - the target code: bbox is returned unchanged
      - any other code: best-effort reprojection, raw bbox on failure
      - no code: bboxes outside lon/lat ranges are treated as already
        projected; anything else is assumed to be EPSG:4326

    Raises:
        CoordinateError: If a geographic bbox cannot be reprojected
    """
    bbox = metadata.bbox
    code = metadata.epsg
    logger.debug(f"GeoTIFF bbox: {bbox}, detected EPSG code: {code}")

    if code == 4326:
        return transform_bbox_corners(bbox, GEOGRAPHIC_CRS, target_crs)

    if code is not None and code == epsg_code(target_crs):
        return bbox

    if code is not None:
        try:
            return transform_bbox_corners(bbox, f"EPSG:{code}", target_crs)
        except ValidationError as e:
            logger.warning(
                f"Failed to transform from EPSG:{code}, falling back to bbox as-is: {e}"
            )
            return bbox

    if not looks_geographic(bbox):
        logger.warning(
            f"GeoTIFF projection unclear, coordinates look projected "
            f"({metadata.width}x{metadata.height} px): {bbox}"
        )
        return bbox

    logger.info("GeoTIFF coordinates look geographic, assuming EPSG:4326")
    return transform_bbox_corners(bbox, GEOGRAPHIC_CRS, target_crs)


class GeoTIFFExtentCalculator(ExtentCalculator):
    """Extent of a GeoTIFF (including COGs), in EPSG:3857."""

    format_name = "GeoTIFF"

    def __init__(self, *args, stream_remote: Optional[bool] = None, **kwargs):
        super().__init__(*args, **kwargs)
        if stream_remote is None:
            stream_remote = bool(get_config_manager().get("geotiff/stream_remote", True))
        self.stream_remote = stream_remote

    async def read_metadata(self, url: str) -> GeoTIFFMetadata:
        if self.stream_remote and is_remote_url(url) and self._decoder is None:
            return await asyncio.to_thread(read_geotiff_metadata, url)
        buffer = await self.get_buffer(url)
        return await asyncio.to_thread(self._decode, buffer)

    def decode(self, buffer: bytes) -> GeoTIFFMetadata:
        return read_geotiff_metadata(buffer)

    async def calculate(self, url: str) -> Optional[BBox]:
        metadata = await self.read_metadata(url)
        return extent_from_metadata(metadata, self.target_crs)
