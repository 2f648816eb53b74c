"""
Main application entry point for MapStyler.
"""

import logging
import sys

from PySide6.QtWidgets import QApplication

from mapstyler.gui.main_window import MainWindow


def run_app():
    """Initialize and run the MapStyler application."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = QApplication(sys.argv)
    app.setApplicationName("MapStyler")
    app.setOrganizationName("MapStyler")

    # Create and show main window
    main_window = MainWindow()
    main_window.show()

    # Start event loop
    sys.exit(app.exec())


if __name__ == "__main__":
    run_app()
