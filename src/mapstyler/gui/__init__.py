"""
GUI components for MapStyler.
"""

from .main_window import MainWindow
from .map_canvas import MapCanvas

__all__ = ["MainWindow", "MapCanvas"]
