"""
Extent calculator tests for GeoJSON, FlatGeobuf and GeoTIFF sources.

Fixtures are generated on the fly: GeoJSON as dicts, FlatGeobuf through
geopandas, GeoTIFF through rasterio. Fetching goes through FakeFetcher.
"""

import asyncio
import math

import geopandas as gpd
import numpy as np
import pytest
import rasterio
from pyproj import Transformer
from rasterio.transform import from_bounds
from shapely.geometry import LineString, Point, Polygon

from mapstyler.core.cache import ProcessCache
from mapstyler.core.coord_utils import transform_coordinates
from mapstyler.core.exceptions import DecodeError
from mapstyler.core.formats import (
    DecodedSource,
    FlatGeobufExtentCalculator,
    GeoJSONExtentCalculator,
    GeoTIFFExtentCalculator,
    GeoTIFFMetadata,
    decode_geojson,
    extent_from_metadata,
    extent_from_records,
    iter_coordinates,
    iter_geometry_coordinates,
)


def expected_extent(points, source_crs="EPSG:4326"):
    """Reference bbox computed directly with pyproj."""
    transformer = Transformer.from_crs(source_crs, "EPSG:3857", always_xy=True)
    xs, ys = zip(*(transformer.transform(x, y) for x, y in points))
    return (min(xs), min(ys), max(xs), max(ys))


def calculator(cls, fetcher, **kwargs):
    return cls(fetcher=fetcher, buffer_cache=ProcessCache(), extent_cache=ProcessCache(), **kwargs)


def write_geotiff(path, bounds, crs, width=8, height=8):
    with rasterio.open(
        path, "w", driver="GTiff", width=width, height=height, count=1,
        dtype="uint8", crs=crs, transform=from_bounds(*bounds, width, height),
    ) as dst:
        dst.write(np.zeros((1, height, width), dtype="uint8"))
    return path.read_bytes()


class TestCoordinateFlattening:

    def test_point(self):
        assert list(iter_coordinates([1, 2])) == [[1, 2]]

    def test_polygon_rings(self):
        rings = [[[0, 0], [1, 0], [1, 1]], [[0.2, 0.2], [0.3, 0.3]]]
        assert len(list(iter_coordinates(rings))) == 5

    def test_multipolygon_depth(self):
        multi = [[[[0, 0], [1, 1]]], [[[2, 2], [3, 3], [4, 4]]]]
        assert list(iter_coordinates(multi))[-1] == [4, 4]

    def test_geometry_collection(self):
        collection = {
            "type": "GeometryCollection",
            "geometries": [
                {"type": "Point", "coordinates": [1, 2]},
                {"type": "LineString", "coordinates": [[3, 4], [5, 6]]},
            ],
        }
        assert list(iter_geometry_coordinates(collection)) == [[1, 2], [3, 4], [5, 6]]

    def test_empty_and_missing(self):
        assert list(iter_coordinates([])) == []
        assert list(iter_geometry_coordinates(None)) == []


class TestExtentFromRecords:

    def test_matches_reference(self):
        records = [
            {"type": "Point", "coordinates": [10, 20]},
            {"type": "LineString", "coordinates": [[-5, 40], [0, 0]]},
        ]
        assert extent_from_records(records) == pytest.approx(
            expected_extent([(10, 20), (-5, 40), (0, 0)])
        )

    def test_no_records_is_none(self):
        assert extent_from_records([]) is None

    def test_null_geometries_only_is_none(self):
        assert extent_from_records([None, None]) is None

    def test_non_finite_and_short_positions_skipped(self):
        records = [
            {"type": "Point", "coordinates": [float("nan"), 1]},
            {"type": "Point", "coordinates": [5]},
            {"type": "Point", "coordinates": ["a", "b"]},
            {"type": "Point", "coordinates": [1, 1]},
        ]
        extent = extent_from_records(records)
        assert extent[0] == pytest.approx(extent[2])
        assert extent == pytest.approx(expected_extent([(1, 1)]))

    def test_extent_is_ordered_and_finite(self):
        records = [{"type": "Polygon", "coordinates": [[[-10, -10], [10, -10], [10, 10], [-10, -10]]]}]
        minx, miny, maxx, maxy = extent_from_records(records)
        assert minx <= maxx and miny <= maxy
        assert all(math.isfinite(v) for v in (minx, miny, maxx, maxy))

    def test_same_crs_passes_through(self):
        records = [{"type": "Point", "coordinates": [1000.0, 2000.0]}]
        assert extent_from_records(records, "EPSG:3857") == (1000.0, 2000.0, 1000.0, 2000.0)


class TestGeoJSONExtent:

    async def test_feature_collection(self, fetcher, point_collection):
        fetcher.add("https://example.com/points.geojson", point_collection)
        calc = calculator(GeoJSONExtentCalculator, fetcher)

        extent = await calc.compute_extent("https://example.com/points.geojson")

        assert extent == pytest.approx(
            expected_extent([(10, 20), (-5, 40), (0, 0), (1, 0), (1, 1)])
        )

    async def test_result_is_cached(self, fetcher, point_collection):
        fetcher.add("https://example.com/points.geojson", point_collection)
        calc = calculator(GeoJSONExtentCalculator, fetcher)

        first = await calc.compute_extent("https://example.com/points.geojson")
        second = await calc.compute_extent("https://example.com/points.geojson")

        assert first == second
        assert fetcher.calls == ["https://example.com/points.geojson"]

    async def test_concurrent_requests_fetch_once(self, fetcher, point_collection):
        fetcher.add("https://example.com/points.geojson", point_collection)
        calc = calculator(GeoJSONExtentCalculator, fetcher)

        results = await asyncio.gather(
            *(calc.compute_extent("https://example.com/points.geojson") for _ in range(3))
        )

        assert results[0] == results[1] == results[2]
        assert len(fetcher.calls) == 1

    async def test_empty_collection_is_none_and_cached(self, fetcher):
        fetcher.add("empty.geojson", {"type": "FeatureCollection", "features": []})
        calc = calculator(GeoJSONExtentCalculator, fetcher)

        assert await calc.compute_extent("empty.geojson") is None
        assert await calc.compute_extent("empty.geojson") is None
        assert len(fetcher.calls) == 1

    async def test_fetch_failure_is_none_and_not_cached(self, fetcher):
        calc = calculator(GeoJSONExtentCalculator, fetcher)

        assert await calc.compute_extent("missing.geojson") is None
        assert await calc.compute_extent("missing.geojson") is None
        assert len(fetcher.calls) == 2

    async def test_failed_urls_leave_no_locks(self, fetcher):
        calc = calculator(GeoJSONExtentCalculator, fetcher)

        for i in range(20):
            assert await calc.compute_extent(f"missing-{i}.geojson") is None

        assert calc.extent_cache._locks == {}
        assert calc.buffer_cache._locks == {}

    async def test_malformed_json_is_none(self, fetcher):
        fetcher.add("broken.geojson", b"{not json")
        calc = calculator(GeoJSONExtentCalculator, fetcher)

        assert await calc.compute_extent("broken.geojson") is None

    async def test_single_feature_and_bare_geometry(self, fetcher):
        fetcher.add("feature.json", {"type": "Feature", "geometry": {"type": "Point", "coordinates": [3, 4]}})
        fetcher.add("geometry.json", {"type": "MultiPoint", "coordinates": [[3, 4], [5, 6]]})
        calc = calculator(GeoJSONExtentCalculator, fetcher)

        assert await calc.compute_extent("feature.json") == pytest.approx(expected_extent([(3, 4)]))
        assert await calc.compute_extent("geometry.json") == pytest.approx(
            expected_extent([(3, 4), (5, 6)])
        )

    def test_legacy_crs_member(self):
        decoded = decode_geojson(
            b'{"type": "FeatureCollection", "features": [],'
            b' "crs": {"type": "name", "properties": {"name": "urn:ogc:def:crs:EPSG::3857"}}}'
        )
        assert decoded.crs == "EPSG:3857"

    def test_non_object_document_raises(self):
        with pytest.raises(DecodeError):
            decode_geojson(b"[1, 2, 3]")


class TestFlatGeobufExtent:

    @pytest.fixture
    def fgb_bytes(self, tmp_path):
        gdf = gpd.GeoDataFrame(
            {"name": ["a", "b", "c"]},
            geometry=[
                Point(10, 20),
                LineString([(-5, 40), (0, 0)]),
                Polygon([(1, 1), (2, 1), (2, 2), (1, 1)]),
            ],
            crs="EPSG:4326",
        )
        path = tmp_path / "sample.fgb"
        gdf.to_file(path, driver="FlatGeobuf")
        return path.read_bytes()

    async def test_extent_matches_reference(self, fetcher, fgb_bytes):
        fetcher.add("https://example.com/sample.fgb", fgb_bytes)
        calc = calculator(FlatGeobufExtentCalculator, fetcher)

        extent = await calc.compute_extent("https://example.com/sample.fgb")

        assert extent == pytest.approx(expected_extent([(10, 20), (-5, 40), (0, 0), (2, 2), (1, 1)]))

    async def test_projected_source(self, fetcher, tmp_path):
        gdf = gpd.GeoDataFrame(geometry=[Point(1000, 2000), Point(3000, 4000)], crs="EPSG:3857")
        path = tmp_path / "projected.fgb"
        gdf.to_file(path, driver="FlatGeobuf")
        fetcher.add("projected.fgb", path.read_bytes())
        calc = calculator(FlatGeobufExtentCalculator, fetcher)

        assert await calc.compute_extent("projected.fgb") == pytest.approx((1000, 2000, 3000, 4000))

    async def test_as_geojson_reuses_buffer(self, fetcher, fgb_bytes):
        fetcher.add("sample.fgb", fgb_bytes)
        calc = calculator(FlatGeobufExtentCalculator, fetcher)

        await calc.compute_extent("sample.fgb")
        collection = await calc.as_geojson("sample.fgb")

        assert collection["type"] == "FeatureCollection"
        assert len(collection["features"]) == 3
        assert len(fetcher.calls) == 1

    async def test_injected_decoder(self, fetcher):
        fetcher.add("custom.fgb", b"opaque")
        decoded = DecodedSource(records=[{"type": "Point", "coordinates": [7, 8]}])
        calc = calculator(FlatGeobufExtentCalculator, fetcher, decoder=lambda buffer: decoded)

        assert await calc.compute_extent("custom.fgb") == pytest.approx(expected_extent([(7, 8)]))

    async def test_garbage_bytes_is_none(self, fetcher):
        fetcher.add("garbage.fgb", b"this is not a flatgeobuf file")
        calc = calculator(FlatGeobufExtentCalculator, fetcher)

        assert await calc.compute_extent("garbage.fgb") is None

    async def test_fetch_failure_is_none(self, fetcher):
        calc = calculator(FlatGeobufExtentCalculator, fetcher)
        assert await calc.compute_extent("https://example.com/missing.fgb") is None


class TestGeoTIFFExtent:

    async def test_geographic_raster(self, fetcher, tmp_path):
        fetcher.add("cog.tif", write_geotiff(tmp_path / "a.tif", (10, 20, 11, 21), "EPSG:4326"))
        calc = calculator(GeoTIFFExtentCalculator, fetcher, stream_remote=False)

        extent = await calc.compute_extent("cog.tif")

        low = transform_coordinates(10, 20, "EPSG:4326")
        high = transform_coordinates(11, 21, "EPSG:4326")
        assert extent == pytest.approx((*low, *high))

    async def test_web_mercator_passes_through(self, fetcher, tmp_path):
        bounds = (1000.0, 2000.0, 9000.0, 10000.0)
        fetcher.add("merc.tif", write_geotiff(tmp_path / "b.tif", bounds, "EPSG:3857"))
        calc = calculator(GeoTIFFExtentCalculator, fetcher, stream_remote=False)

        assert await calc.compute_extent("merc.tif") == pytest.approx(bounds)

    async def test_utm_raster_is_reprojected(self, fetcher, tmp_path):
        bounds = (300000.0, 3300000.0, 310000.0, 3310000.0)
        fetcher.add("utm.tif", write_geotiff(tmp_path / "c.tif", bounds, "EPSG:32636"))
        calc = calculator(GeoTIFFExtentCalculator, fetcher, stream_remote=False)

        extent = await calc.compute_extent("utm.tif")

        low = transform_coordinates(300000.0, 3300000.0, "EPSG:32636")
        high = transform_coordinates(310000.0, 3310000.0, "EPSG:32636")
        assert extent == pytest.approx((*low, *high))

    async def test_local_path_is_read_through_fetcher(self, fetcher, tmp_path):
        # stream_remote only applies to http(s) URLs
        path = tmp_path / "d.tif"
        fetcher.add(str(path), write_geotiff(path, (10, 20, 11, 21), "EPSG:4326"))
        calc = calculator(GeoTIFFExtentCalculator, fetcher, stream_remote=True)

        assert await calc.compute_extent(str(path)) is not None
        assert fetcher.calls == [str(path)]

    async def test_garbage_bytes_is_none(self, fetcher):
        fetcher.add("garbage.tif", b"definitely not a tiff")
        calc = calculator(GeoTIFFExtentCalculator, fetcher, stream_remote=False)

        assert await calc.compute_extent("garbage.tif") is None


class TestGeoTIFFProjectionPolicy:

    def test_missing_code_projected_looking_bbox_is_raw(self):
        meta = GeoTIFFMetadata(bbox=(500000.0, 3000000.0, 510000.0, 3010000.0), epsg=None, width=10, height=10)
        assert extent_from_metadata(meta) == meta.bbox

    def test_missing_code_geographic_looking_bbox_is_reprojected(self):
        meta = GeoTIFFMetadata(bbox=(10.0, 20.0, 11.0, 21.0), epsg=None, width=10, height=10)
        low = transform_coordinates(10, 20, "EPSG:4326")
        assert extent_from_metadata(meta)[:2] == pytest.approx(low)

    def test_unknown_code_falls_back_to_raw(self):
        meta = GeoTIFFMetadata(bbox=(1.0, 2.0, 3.0, 4.0), epsg=999999, width=10, height=10)
        assert extent_from_metadata(meta) == meta.bbox

    def test_target_code_is_unchanged(self):
        meta = GeoTIFFMetadata(bbox=(1.0, 2.0, 3.0, 4.0), epsg=3857, width=10, height=10)
        assert extent_from_metadata(meta) == meta.bbox
