"""
Root conftest.py: isolated configuration, fresh caches, network-free fetchers.

Every test gets its own config directory and empty process caches so extent
results never leak between tests. Network access is replaced with
``FakeFetcher``, which serves canned bytes per URL and records every call.
"""

import asyncio
import json

import pytest

from mapstyler.core import fetch as fetch_module
from mapstyler.core import format_registry
from mapstyler.core import layer_manager
from mapstyler.core.cache import ProcessCache
from mapstyler.core.config_manager import CONFIG_DIR_ENV, reset_config_manager
from mapstyler.core.exceptions import FetchError
from mapstyler.core.format_registry import (
    FlatGeobufHandler,
    FormatRegistry,
    GeoJSONHandler,
    GeoTIFFHandler,
)
from mapstyler.core.formats import (
    FlatGeobufExtentCalculator,
    GeoJSONExtentCalculator,
    GeoTIFFExtentCalculator,
    clear_shared_caches,
)


class FakeFetcher:
    """Stand-in for HttpFetcher that serves bytes from a dict."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def add(self, url, payload):
        if isinstance(payload, (dict, list)):
            payload = json.dumps(payload).encode("utf-8")
        self.responses[url] = payload

    async def fetch_bytes(self, url):
        self.calls.append(url)
        await asyncio.sleep(0)
        response = self.responses.get(url)
        if response is None:
            raise FetchError(f"Failed to fetch {url}: HTTP 404", url=url, status=404)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch):
    """Point the config at tmp_path and drop every process-wide singleton."""
    monkeypatch.setenv(CONFIG_DIR_ENV, str(tmp_path / "config"))
    reset_config_manager()
    clear_shared_caches()
    monkeypatch.setattr(format_registry, "_registry", None)
    monkeypatch.setattr(layer_manager, "_layer_state", None)
    monkeypatch.setattr(fetch_module, "_default_fetcher", None)
    yield
    clear_shared_caches()
    reset_config_manager()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def make_registry():
    """Factory fixture: registry with the built-in handlers bound to a fetcher."""
    def _make(fetcher, timeout=5.0):
        def calculator(cls, **kwargs):
            return cls(
                fetcher=fetcher,
                buffer_cache=ProcessCache(),
                extent_cache=ProcessCache(),
                **kwargs,
            )

        return FormatRegistry({
            "FlatGeoBuf": FlatGeobufHandler(calculator(FlatGeobufExtentCalculator), timeout),
            "GeoJSON": GeoJSONHandler(calculator(GeoJSONExtentCalculator), timeout),
            "GeoTIFF": GeoTIFFHandler(
                calculator(GeoTIFFExtentCalculator, stream_remote=False), timeout
            ),
        })
    return _make


@pytest.fixture
def point_collection():
    """FeatureCollection with two points and a polygon, in EPSG:4326."""
    return {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "properties": {}, "geometry": {"type": "Point", "coordinates": [10.0, 20.0]}},
            {"type": "Feature", "properties": {}, "geometry": {"type": "Point", "coordinates": [-5.0, 40.0]}},
            {
                "type": "Feature",
                "properties": {},
                "geometry": {
                    "type": "Polygon",
                    "coordinates": [[[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 0.0]]],
                },
            },
        ],
    }
