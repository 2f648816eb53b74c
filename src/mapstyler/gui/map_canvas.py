"""
Map canvas widget that renders layer descriptors.

Layers are drawn as their extent outlines in EPSG:3857 (y flipped for the
screen). Drag to pan, wheel to zoom.
"""

from typing import Any, Dict, List

from PySide6.QtCore import Qt, QRectF
from PySide6.QtGui import QBrush, QColor, QPainter, QPen, QWheelEvent
from PySide6.QtWidgets import QGraphicsScene, QGraphicsView

from mapstyler.core.validation import is_valid_extent

WORLD_HALF_WIDTH = 20037508.34

LAYER_COLORS = {
    "Vector": QColor("#3399CC"),
    "WebGLTile": QColor("#E07A1F"),
}
FALLBACK_COLOR = QColor("#777777")


def extent_rect(extent) -> QRectF:
    """Scene rectangle for a (minx, miny, maxx, maxy) extent, north up."""
    min_x, min_y, max_x, max_y = extent
    return QRectF(min_x, -max_y, max_x - min_x, max_y - min_y)


class MapCanvas(QGraphicsView):
    """Map canvas displaying the extents of the published layers."""

    ZOOM_STEP = 1.25
    MAX_SCALE_RATIO = 1.0e6

    def __init__(self, parent=None):
        super().__init__(parent)

        self._scene = QGraphicsScene(self)
        self.setScene(self._scene)
        self.setRenderHint(QPainter.Antialiasing)
        self.setTransformationAnchor(QGraphicsView.AnchorUnderMouse)
        self.setDragMode(QGraphicsView.ScrollHandDrag)

        self.world_rect = QRectF(
            -WORLD_HALF_WIDTH, -WORLD_HALF_WIDTH, 2 * WORLD_HALF_WIDTH, 2 * WORLD_HALF_WIDTH
        )
        self._scene.setSceneRect(self.world_rect)
        self._layers_rect = QRectF()
        self._fit_scale = 1.0

    def set_layers(self, layers: List[Dict[str, Any]]) -> None:
        """Redraw the canvas from a published layer list."""
        self._scene.clear()
        self._layers_rect = QRectF()
        self._scene.addRect(self.world_rect, QPen(QColor("#cccccc"), 0))

        for layer in layers:
            if is_valid_extent(layer.get("extent")):
                self._draw_layer(layer)

        self.zoom_to_extent()

    def _draw_layer(self, layer: Dict[str, Any]) -> None:
        color = LAYER_COLORS.get(layer.get("type"), FALLBACK_COLOR)
        pen = QPen(color, 2)
        pen.setCosmetic(True)
        fill = QColor(color)
        fill.setAlpha(40)

        rect = extent_rect(layer["extent"])
        self._scene.addRect(rect, pen, QBrush(fill))
        self._layers_rect = self._layers_rect.united(rect)

        title = (layer.get("properties") or {}).get("title") or layer.get("id")
        label = self._scene.addSimpleText(str(title))
        label.setBrush(QBrush(color))
        label.setFlag(label.GraphicsItemFlag.ItemIgnoresTransformations)
        label.setPos(rect.topLeft())

    def wheelEvent(self, event: QWheelEvent):
        steps = event.angleDelta().y() / 120.0
        if steps == 0:
            return
        factor = self.ZOOM_STEP ** steps
        ratio = self.transform().m11() * factor / self._fit_scale
        # Stay between the fitted view and a street-level close-up
        if 1.0 / self.MAX_SCALE_RATIO <= ratio <= self.MAX_SCALE_RATIO:
            self.scale(factor, factor)
        event.accept()

    def zoom_to_extent(self) -> None:
        """Fit all layer extents (or the whole world when there are none)."""
        rect = self._layers_rect if not self._layers_rect.isNull() else self.world_rect
        self.fitInView(rect, Qt.KeepAspectRatio)
        self._fit_scale = self.transform().m11() or 1.0
