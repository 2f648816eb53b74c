"""
Built-in example catalog.

Each entry carries a style document (with ``variables`` the style editor can
change) and the layer definitions to show.
"""

import copy
from typing import Any, Dict, List, Optional

AFRICA_URL = (
    "https://gist.github.com/1310aditya/35b939f63d9bf7fbafb0ab28eb878388/raw/"
    "96b48425262b64764254745393ba63456fe3135d/africa.json"
)
GREENLAND_URL = "data/fgb/202501200900_SouthEast_RIC-processed.fgb"
CAIRO_TCI_URL = (
    "https://sentinel-cogs.s3.us-west-2.amazonaws.com/sentinel-s2-l2a-cogs/"
    "36/Q/WD/2020/7/S2A_36QWD_20200701_0_L2A/TCI.tif"
)

OSM_LAYER = {
    "type": "Tile",
    "properties": {"id": "OSM", "title": "OpenStreetMap"},
    "source": {"type": "OSM"},
}

HOVER_INTERACTION = {
    "type": "select",
    "options": {
        "id": "selectInteraction",
        "condition": "pointermove",
        "style": {"stroke-color": "white", "stroke-width": 3},
    },
}

COUNTRIES_STYLE = {
    "variables": {"fillColor": "#4c9be8", "strokeColor": "#1d3557", "strokeWidth": 1},
    "fill-color": ["var", "fillColor"],
    "stroke-color": ["var", "strokeColor"],
    "stroke-width": ["var", "strokeWidth"],
    "jsonform": {
        "type": "object",
        "properties": {
            "fillColor": {"type": "string", "format": "color"},
            "strokeColor": {"type": "string", "format": "color"},
            "strokeWidth": {"type": "number", "minimum": 0, "maximum": 10},
        },
    },
}

ICE_THICKNESS_STYLE = {
    "variables": {"maxThickness": 4, "opacity": 0.8},
    "fill-color": [
        "interpolate", ["linear"], ["get", "thickness"],
        0, "rgba(255,255,255,0.2)",
        ["var", "maxThickness"], "#08306b",
    ],
    "stroke-color": "#08519c",
    "stroke-width": 0.5,
    "legend": {"title": "Ice thickness (m)", "range": [0, 4]},
}

TRUE_COLOR_STYLE = {
    "variables": {"brightness": 1.2, "gamma": 1.0},
    "color": [
        "array",
        ["*", ["/", ["band", 1], 255], ["var", "brightness"]],
        ["*", ["/", ["band", 2], 255], ["var", "brightness"]],
        ["*", ["/", ["band", 3], 255], ["var", "brightness"]],
        1,
    ],
}

EXAMPLES: List[Dict[str, Any]] = [
    {
        "id": "africa",
        "name": "Countries of Africa",
        "format": "geojson",
        "dataUrl": AFRICA_URL,
        "style": COUNTRIES_STYLE,
        "layers": [
            {
                "type": "Vector",
                "properties": {"id": "GeoJSONLayer", "title": "Countries of Africa"},
                "source": {"type": "Vector", "format": "GeoJSON", "url": AFRICA_URL},
                "style": COUNTRIES_STYLE,
                "interactions": [HOVER_INTERACTION],
            },
            OSM_LAYER,
        ],
    },
    {
        "id": "greenland-ice-thickness",
        "name": "Greenland Ice Thickness",
        "format": "fgb",
        "dataUrl": GREENLAND_URL,
        "style": ICE_THICKNESS_STYLE,
        "layers": [
            {
                "type": "Vector",
                "properties": {"id": "FgbLayer", "title": "Vector Data"},
                "source": {"type": "FlatGeoBuf", "url": GREENLAND_URL},
                "style": ICE_THICKNESS_STYLE,
                "interactions": [HOVER_INTERACTION],
            },
            OSM_LAYER,
        ],
    },
    {
        "id": "crop-circles",
        "name": "Cairo Crop Circles",
        "format": "geotiff",
        "dataUrl": CAIRO_TCI_URL,
        "style": TRUE_COLOR_STYLE,
        "layers": [
            {
                "type": "WebGLTile",
                "properties": {"id": "GeoTIFFLayer", "title": "Cairo Crop Circles"},
                "source": {"type": "GeoTIFF", "sources": [{"url": CAIRO_TCI_URL}]},
                "style": TRUE_COLOR_STYLE,
            },
        ],
    },
]


def get_examples() -> List[Dict[str, Any]]:
    """All catalog entries (copies, safe to modify)."""
    return copy.deepcopy(EXAMPLES)


def get_example(example_id: str) -> Optional[Dict[str, Any]]:
    """Catalog entry by id, or None."""
    for example in EXAMPLES:
        if example["id"] == example_id:
            return copy.deepcopy(example)
    return None
