"""Coordinate transformation utilities for extent calculation.

This module provides functions for:
- CRS code normalization ("4326", 4326, URNs -> "EPSG:4326")
- Cached pyproj transformers
- Single point and batch transformations into the planar target CRS
- The geographic-range heuristic used for rasters without CRS metadata
"""

import math
from functools import lru_cache
from typing import Iterable, Optional, Tuple, Union

import numpy as np
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError as PyprojCRSError

from .exceptions import CoordinateError, CRSError
from .validation import validate_crs

TARGET_CRS = "EPSG:3857"
GEOGRAPHIC_CRS = "EPSG:4326"

BBox = Tuple[float, float, float, float]


def normalize_crs(code: Union[int, str, CRS, None]) -> Optional[str]:
    """Normalize a CRS reference to an ``EPSG:n`` string where possible.

    Args:
        code: EPSG integer, numeric string, "EPSG:n" string, URN, WKT or
            pyproj CRS object

    Returns:
        "EPSG:n" when an EPSG authority code can be identified, the input's
        string form otherwise, or None for empty input
    """
    if code is None or code == "":
        return None
    if isinstance(code, bool):
        raise CRSError(f"Invalid CRS: {code!r}")
    if isinstance(code, int):
        return f"EPSG:{code}"
    if isinstance(code, CRS):
        epsg = code.to_epsg()
        return f"EPSG:{epsg}" if epsg else code.to_string()

    text = str(code).strip()
    if text.isdigit():
        return f"EPSG:{int(text)}"
    if text.upper().startswith("EPSG:"):
        return f"EPSG:{text.split(':', 1)[1]}"

    # URNs such as urn:ogc:def:crs:EPSG::3857 or OGC:CRS84
    try:
        epsg = CRS.from_user_input(text).to_epsg()
    except PyprojCRSError as e:
        raise CRSError(f"Invalid CRS: {text}. Error: {str(e)}") from e
    return f"EPSG:{epsg}" if epsg else text


def epsg_code(code: Union[int, str, CRS, None]) -> Optional[int]:
    """Return the integer EPSG code of a CRS reference, or None."""
    normalized = normalize_crs(code)
    if normalized and normalized.upper().startswith("EPSG:"):
        suffix = normalized.split(":", 1)[1]
        if suffix.isdigit():
            return int(suffix)
    return None


@lru_cache(maxsize=64)
def get_transformer(source_crs: str, target_crs: str) -> Transformer:
    """Build (once) a transformer between two CRS.

    Args:
        source_crs: Source CRS (e.g., "EPSG:4326")
        target_crs: Target CRS (e.g., "EPSG:3857")

    Returns:
        pyproj Transformer using traditional GIS axis order (x/lon, y/lat)

    Raises:
        CRSError: If either CRS cannot be parsed
    """
    try:
        return Transformer.from_crs(source_crs, target_crs, always_xy=True)
    except PyprojCRSError as e:
        raise CRSError(
            f"Invalid CRS specification.\n"
            f"Source: {source_crs}\n"
            f"Target: {target_crs}\n"
            f"Error: {str(e)}\n"
            f"Tip: Ensure CRS codes are valid (e.g., 'EPSG:4326')"
        ) from e


@validate_crs("source_crs")
@validate_crs("target_crs")
def transform_coordinates(
    x: float,
    y: float,
    source_crs: str,
    target_crs: str = TARGET_CRS,
) -> Tuple[float, float]:
    """Transform one coordinate pair between coordinate reference systems.

    Args:
        x: X coordinate (easting or longitude)
        y: Y coordinate (northing or latitude)
        source_crs: Source CRS (e.g., "EPSG:4326")
        target_crs: Target CRS (defaults to the planar web mercator target)

    Returns:
        Tuple of (transformed_x, transformed_y)

    Raises:
        CoordinateError: If the transformation fails or yields non-finite values
    """
    try:
        transformer = get_transformer(source_crs, target_crs)
        transformed_x, transformed_y = transformer.transform(x, y)
    except CRSError as e:
        raise CoordinateError(str(e)) from e
    except (ValueError, TypeError) as e:
        raise CoordinateError(
            f"Invalid coordinate values: ({x}, {y})\n"
            f"Error: {str(e)}"
        ) from e
    except Exception as e:
        raise CoordinateError(
            f"Coordinate transformation failed.\n"
            f"From {source_crs} to {target_crs}\n"
            f"Coordinates: ({x}, {y})\n"
            f"Error: {str(e)}"
        ) from e

    if not (math.isfinite(transformed_x) and math.isfinite(transformed_y)):
        raise CoordinateError(
            f"Coordinates ({x}, {y}) are outside the domain of "
            f"{source_crs} -> {target_crs}"
        )
    return transformed_x, transformed_y


def project_points(
    xs: Iterable[float],
    ys: Iterable[float],
    source_crs: str,
    target_crs: str = TARGET_CRS,
) -> Tuple[np.ndarray, np.ndarray]:
    """Transform many coordinates at once.

    Points the projection cannot represent come back as inf/nan; callers
    filter them with ``np.isfinite``.

    Raises:
        CoordinateError: If the CRS pair is invalid
    """
    xs = np.asarray(xs, dtype=float)
    ys = np.asarray(ys, dtype=float)
    if source_crs == target_crs:
        return xs, ys
    try:
        transformer = get_transformer(source_crs, target_crs)
    except CRSError as e:
        raise CoordinateError(str(e)) from e
    out_x, out_y = transformer.transform(xs, ys, errcheck=False)
    return np.asarray(out_x, dtype=float), np.asarray(out_y, dtype=float)


def transform_bbox_corners(
    bbox: BBox,
    source_crs: str,
    target_crs: str = TARGET_CRS,
) -> BBox:
    """Transform the lower-left and upper-right corners of a bbox.

    Raises:
        CoordinateError: If either corner cannot be transformed
    """
    min_x, min_y, max_x, max_y = bbox
    out_min_x, out_min_y = transform_coordinates(min_x, min_y, source_crs, target_crs)
    out_max_x, out_max_y = transform_coordinates(max_x, max_y, source_crs, target_crs)
    return (out_min_x, out_min_y, out_max_x, out_max_y)


def looks_geographic(bbox: BBox) -> bool:
    """Check whether a bbox fits inside longitude/latitude ranges.

    Args:
        bbox: (minx, miny, maxx, maxy)

    Returns:
        True if every x is within +/-180 and every y within +/-90
    """
    min_x, min_y, max_x, max_y = bbox
    return (
        abs(min_x) <= 180 and abs(max_x) <= 180
        and abs(min_y) <= 90 and abs(max_y) <= 90
    )
