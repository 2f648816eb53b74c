"""
Shared machinery for format-specific extent calculators.

Every calculator follows the same shape: fetch bytes for a URL (through a
per-URL byte cache), decode them into geometry records, flatten all coordinate
pairs regardless of nesting depth, reproject them into the planar target CRS
and keep a running min/max per axis. Results, including "no extent", are
cached per URL for the lifetime of the process.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from numbers import Real
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from ..cache import ProcessCache
from ..config_manager import get_config_manager
from ..coord_utils import GEOGRAPHIC_CRS, TARGET_CRS, BBox, project_points
from ..error_utils import log_and_notify
from ..exceptions import MapStylerError
from ..fetch import get_default_fetcher

logger = logging.getLogger(__name__)

# Cached marker for sources that decoded fine but produced no usable extent
NO_EXTENT = object()
_MISSING = object()

_shared_caches: Dict[str, ProcessCache] = {}


def shared_cache(name: str) -> ProcessCache:
    """Process-wide cache by name, sized from the configuration on first use."""
    cache = _shared_caches.get(name)
    if cache is None:
        config = get_config_manager()
        cache = _shared_caches[name] = ProcessCache(
            name=name,
            max_entries=config.get("cache/max_entries"),
            ttl_seconds=config.get("cache/ttl_seconds"),
        )
    return cache


def clear_shared_caches() -> None:
    """Forget every shared byte and extent cache."""
    for cache in _shared_caches.values():
        cache.clear()
    _shared_caches.clear()


@dataclass
class DecodedSource:
    """Geometry records decoded from one source plus their declared CRS."""

    records: List[Optional[dict]] = field(default_factory=list)
    crs: str = GEOGRAPHIC_CRS


def iter_coordinates(coords: Any) -> Iterator[Sequence]:
    """
    Yield every coordinate position in a nested coordinate array.

    Works for any nesting depth: a Point's position, a LineString's list of
    positions, a Polygon's rings, a MultiPolygon's polygons, and so on.
    """
    if not isinstance(coords, (list, tuple)) or len(coords) == 0:
        return
    if isinstance(coords[0], (list, tuple)):
        for child in coords:
            yield from iter_coordinates(child)
    else:
        yield coords


def iter_geometry_coordinates(geometry: Any) -> Iterator[Sequence]:
    """Yield every coordinate position of a GeoJSON-like geometry mapping.

    GeometryCollections are walked recursively, so heterogeneous collections
    go through the same flattening as simple geometries.
    """
    if not isinstance(geometry, dict):
        return
    if geometry.get("type") == "GeometryCollection":
        for member in geometry.get("geometries") or []:
            yield from iter_geometry_coordinates(member)
        return
    yield from iter_coordinates(geometry.get("coordinates"))


def coordinate_xy(coord: Sequence) -> Optional[Tuple[float, float]]:
    """Return (x, y) for a usable position, or None for a rejected one."""
    if len(coord) < 2:
        return None
    x, y = coord[0], coord[1]
    for value in (x, y):
        if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
            return None
    return float(x), float(y)


def extent_from_records(
    records: Sequence[Optional[dict]],
    source_crs: str = GEOGRAPHIC_CRS,
    target_crs: str = TARGET_CRS,
) -> Optional[BBox]:
    """
    Compute the bounding box of geometry records in the target CRS.

    Args:
        records: GeoJSON-like geometry mappings (None entries are allowed)
        source_crs: CRS the record coordinates are expressed in
        target_crs: CRS of the returned bbox

    Returns:
        (minx, miny, maxx, maxy), or None when there are no records or no
        coordinate survived validation and reprojection

    Raises:
        CoordinateError: If the CRS pair is invalid
    """
    if len(records) == 0:
        logger.warning("No features found")
        return None

    xs: List[float] = []
    ys: List[float] = []
    for record in records:
        for coord in iter_geometry_coordinates(record):
            xy = coordinate_xy(coord)
            if xy is not None:
                xs.append(xy[0])
                ys.append(xy[1])

    if not xs:
        logger.warning("No valid coordinates found")
        return None

    px, py = project_points(xs, ys, source_crs, target_crs)
    valid = np.isfinite(px) & np.isfinite(py)
    if not valid.any():
        logger.warning(f"No coordinates could be projected from {source_crs} to {target_crs}")
        return None

    px, py = px[valid], py[valid]
    return (float(px.min()), float(py.min()), float(px.max()), float(py.max()))


class ExtentCalculator:
    """
    Base class for per-format extent calculators.

    Subclasses implement :meth:`decode`; the fetch, cache and bounds logic
    lives here. A decoder callable may be injected instead of subclassing.
    """

    format_name = "base"

    def __init__(
        self,
        fetcher=None,
        decoder: Optional[Callable[[bytes], DecodedSource]] = None,
        target_crs: Optional[str] = None,
        buffer_cache: Optional[ProcessCache] = None,
        extent_cache: Optional[ProcessCache] = None,
    ):
        self._fetcher = fetcher
        self._decoder = decoder
        self.target_crs = target_crs or get_config_manager().get(
            "projection/target_crs", TARGET_CRS
        )
        self.buffer_cache = buffer_cache if buffer_cache is not None else shared_cache(
            f"{self.format_name}-buffers"
        )
        self.extent_cache = extent_cache if extent_cache is not None else shared_cache(
            f"{self.format_name}-extents"
        )

    @property
    def fetcher(self):
        if self._fetcher is None:
            self._fetcher = get_default_fetcher()
        return self._fetcher

    async def compute_extent(self, url: str) -> Optional[BBox]:
        """
        Compute the extent of the source at url in the target CRS.

        Fetch and decode failures are soft: they are logged and produce None.
        Successful computations (including "no extent") are cached per URL.

        Args:
            url: Source URL or local path

        Returns:
            (minx, miny, maxx, maxy) or None
        """
        cached = self._cached_extent(url)
        if cached is not _MISSING:
            return cached

        async with self.extent_cache.locked(url):
            # Another task may have finished while we waited on the lock
            cached = self._cached_extent(url)
            if cached is not _MISSING:
                return cached

            logger.debug(f"Calculating {self.format_name} extent for: {url}")
            try:
                extent = await self.calculate(url)
            except MapStylerError as e:
                log_and_notify(
                    e,
                    f"{self.format_name} extent calculation failed for {url}.",
                    log_level=logging.WARNING,
                    exc_info=False,
                )
                return None

            self.extent_cache.set(url, NO_EXTENT if extent is None else extent)
            if extent is None:
                logger.warning(f"{self.format_name} source has no usable extent: {url}")
            else:
                logger.info(f"Cached {self.format_name} extent for: {url}")
            return extent

    def _cached_extent(self, url: str) -> Any:
        cached = self.extent_cache.get(url, _MISSING)
        if cached is _MISSING:
            return _MISSING
        logger.debug(f"{self.format_name} extent cache hit for: {url}")
        return None if cached is NO_EXTENT else cached

    async def calculate(self, url: str) -> Optional[BBox]:
        """Uncached extent computation; may raise MapStylerError."""
        decoded = await self.load(url)
        return extent_from_records(decoded.records, decoded.crs, self.target_crs)

    async def get_buffer(self, url: str) -> bytes:
        """Fetch the raw bytes for url, at most once per process."""
        buffer = self.buffer_cache.get(url)
        if buffer is not None:
            logger.debug(f"{self.format_name} buffer cache hit for: {url}")
            return buffer

        async with self.buffer_cache.locked(url):
            buffer = self.buffer_cache.get(url)
            if buffer is None:
                logger.debug(f"Fetching {self.format_name} buffer for: {url}")
                buffer = await self.fetcher.fetch_bytes(url)
                self.buffer_cache.set(url, buffer)
            return buffer

    async def load(self, url: str) -> DecodedSource:
        """Fetch and decode url into geometry records."""
        buffer = await self.get_buffer(url)
        return await asyncio.to_thread(self._decode, buffer)

    def _decode(self, buffer: bytes) -> DecodedSource:
        if self._decoder is not None:
            return self._decoder(buffer)
        return self.decode(buffer)

    def decode(self, buffer: bytes) -> DecodedSource:
        """Decode raw bytes into geometry records.

        Raises:
            DecodeError: If the payload is malformed
        """
        raise NotImplementedError
