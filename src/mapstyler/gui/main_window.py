"""
Main application window: example picker, style editor, layer list and map.
"""

import json
import logging
from typing import Any, Dict, List

from PySide6.QtCore import Qt, Signal
from PySide6.QtWidgets import (
    QComboBox, QGroupBox, QHBoxLayout, QLabel, QLineEdit, QListWidget,
    QListWidgetItem, QMainWindow, QMessageBox, QPushButton, QSplitter,
    QStatusBar, QTextEdit, QVBoxLayout, QWidget
)

from mapstyler import __version__
from mapstyler.core.error_utils import safe_operation
from mapstyler.core.examples import get_examples
from mapstyler.core.layer_manager import LayerStateManager
from mapstyler.core.style_processor import parse_style
from mapstyler.gui.async_runner import AsyncRunner
from mapstyler.gui.map_canvas import MapCanvas

logger = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    """Main application window."""

    layers_changed = Signal(list)
    loading_changed = Signal(bool, str)

    def __init__(self, state: LayerStateManager = None):
        super().__init__()
        self.setWindowTitle("MapStyler")
        self.setGeometry(100, 100, 1400, 850)

        self.runner = AsyncRunner(self)
        self.state = state or LayerStateManager()
        self.examples = get_examples()

        # State callbacks fire on the asyncio thread; signals hop to the Qt thread
        self.layers_changed.connect(self._on_layers_changed)
        self.loading_changed.connect(self._on_loading_changed)
        self.state.subscribe(self.layers_changed.emit)
        self.state.loading.subscribe(self.loading_changed.emit)

        self._setup_ui()
        self._create_status_bar()

    def _setup_ui(self):
        """Set up the main UI components."""
        splitter = QSplitter(Qt.Horizontal)
        self.setCentralWidget(splitter)

        splitter.addWidget(self._build_layer_panel())

        self.map_canvas = MapCanvas()
        splitter.addWidget(self.map_canvas)

        splitter.addWidget(self._build_style_panel())
        splitter.setSizes([320, 760, 320])

    def _build_layer_panel(self) -> QWidget:
        panel = QWidget()
        layout = QVBoxLayout(panel)

        example_group = QGroupBox("Examples")
        example_layout = QHBoxLayout(example_group)
        self.example_combo = QComboBox()
        for example in self.examples:
            self.example_combo.addItem(example["name"], example["id"])
        load_button = QPushButton("Load")
        load_button.clicked.connect(self._on_load_example)
        example_layout.addWidget(self.example_combo, 1)
        example_layout.addWidget(load_button)
        layout.addWidget(example_group)

        data_group = QGroupBox("Custom Data")
        data_layout = QHBoxLayout(data_group)
        self.data_url_edit = QLineEdit()
        self.data_url_edit.setPlaceholderText("URL or path (.fgb, .geojson, .tif)")
        add_button = QPushButton("Show")
        add_button.clicked.connect(self._on_show_custom_data)
        data_layout.addWidget(self.data_url_edit, 1)
        data_layout.addWidget(add_button)
        layout.addWidget(data_group)

        layers_group = QGroupBox("Layers")
        layers_layout = QVBoxLayout(layers_group)
        self.layer_list = QListWidget()
        layers_layout.addWidget(self.layer_list)

        button_layout = QHBoxLayout()
        remove_button = QPushButton("Remove")
        remove_button.clicked.connect(self._on_remove_layer)
        clear_button = QPushButton("Clear")
        clear_button.clicked.connect(self._on_clear)
        button_layout.addWidget(remove_button)
        button_layout.addWidget(clear_button)
        layers_layout.addLayout(button_layout)
        layout.addWidget(layers_group, 1)

        return panel

    def _build_style_panel(self) -> QWidget:
        panel = QGroupBox("Style")
        layout = QVBoxLayout(panel)
        self.style_edit = QTextEdit()
        self.style_edit.setAcceptRichText(False)
        layout.addWidget(self.style_edit, 1)

        apply_button = QPushButton("Apply Style")
        apply_button.clicked.connect(self._on_apply_style)
        layout.addWidget(apply_button)
        return panel

    def _create_status_bar(self):
        """Create application status bar."""
        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)
        self.loading_label = QLabel("")
        self.status_bar.addPermanentWidget(self.loading_label)
        self.status_bar.showMessage(f"MapStyler v{__version__} ready")

    # State callbacks (Qt thread)
    def _on_layers_changed(self, layers: List[Dict[str, Any]]):
        self.layer_list.clear()
        for layer in layers:
            title = (layer.get("properties") or {}).get("title") or layer.get("id")
            extent = layer.get("extent")
            suffix = "" if extent is None else "  [extent]"
            item = QListWidgetItem(f"{title} ({layer.get('type')}){suffix}")
            item.setData(Qt.UserRole, layer.get("id"))
            self.layer_list.addItem(item)
        self.map_canvas.set_layers(layers)
        self._show_style(self.state.current_style)

    def _on_loading_changed(self, is_loading: bool, hint: str):
        self.loading_label.setText(hint if is_loading else "")

    def _show_style(self, style):
        if style is None:
            return
        self.style_edit.setPlainText(json.dumps(style, indent=2))

    def _on_error(self, error: BaseException):
        self.status_bar.showMessage(f"Error: {error}", 8000)

    # Actions
    def _on_load_example(self):
        example_id = self.example_combo.currentData()
        example = next((e for e in self.examples if e["id"] == example_id), None)
        if example is None:
            return
        self.status_bar.showMessage(f"Loading {example['name']}...")
        self.runner.submit(
            self.state.select_example(example),
            on_result=lambda layers: self.status_bar.showMessage(
                f"Loaded {len(layers)} layer(s)", 5000
            ),
            on_error=self._on_error,
        )

    def _on_show_custom_data(self):
        data_url = self.data_url_edit.text().strip()
        if not data_url:
            return
        self.runner.submit(self.state.show_data_url(data_url), on_error=self._on_error)

    def _on_apply_style(self):
        text = self.style_edit.toPlainText()
        style = safe_operation(
            lambda: parse_style(text),
            "Style text could not be parsed.",
            log_level=logging.WARNING,
            callback=self._warn_invalid_style,
        )
        if style is None:
            return
        self.runner.submit(self.state.update_style(style), on_error=self._on_error)

    def _warn_invalid_style(self, message: str, detail: str):
        QMessageBox.warning(self, "Invalid Style", f"{message}\n{detail}")

    def _on_remove_layer(self):
        item = self.layer_list.currentItem()
        if item is None:
            return
        layer_id = item.data(Qt.UserRole)
        self.runner.submit(self._remove_layer(layer_id), on_error=self._on_error)

    async def _remove_layer(self, layer_id: str):
        return self.state.remove_layer(layer_id)

    def _on_clear(self):
        self.runner.submit(self._clear(), on_error=self._on_error)

    async def _clear(self):
        self.state.clear_example()

    def closeEvent(self, event):
        self.runner.shutdown()
        super().closeEvent(event)
