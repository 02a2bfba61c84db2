"""
Application entry point and stylesheet.

Usage:
    python -m portrait_studio
    portrait-studio          (after pip install)
"""

import logging
import sys

from dotenv import load_dotenv
from PyQt6.QtWidgets import QApplication

from portrait_studio import config
from portrait_studio.editor import GeminiPortraitEditor, SynthesisError
from portrait_studio.main_window import MainWindow
from portrait_studio.workflow import PortraitSession

logger = logging.getLogger(__name__)

STYLESHEET = """
    QMainWindow { background: #f8f9fb; }
    QWidget { color: #222; font-size: 10pt; }
    QGroupBox { border: 1px solid #ddd; border-radius: 6px; margin-top: 8px; padding-top: 12px; font-weight: bold; }
    QGroupBox::title { subcontrol-origin: margin; left: 8px; padding: 0 4px; }
    QPushButton { background: #fff; border: 1px solid #ccc; border-radius: 6px; padding: 6px 12px; }
    QPushButton:hover { background: #f0f0f0; }
    QPushButton:pressed { background: #e0e0e0; }
    QPushButton:checked { background: #222; color: #fff; border-color: #222; }
    QPushButton:disabled { color: #aaa; }
    QToolBar { background: #fff; border-bottom: 1px solid #eee; spacing: 4px; padding: 4px; }
    QStatusBar { background: #fff; border-top: 1px solid #eee; }
"""


def build_editor() -> GeminiPortraitEditor | None:
    """Create the synthesis client, or None when no API key is configured."""
    try:
        editor = GeminiPortraitEditor()
    except SynthesisError as e:
        logger.warning("%s", e)
        return None
    logger.info("Image synthesis enabled (model %s)", editor.model)
    return editor


def main():
    load_dotenv()
    logging.basicConfig(
        level=config.log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = QApplication(sys.argv)
    app.setApplicationName(config.APP_NAME)
    app.setStyleSheet(STYLESHEET)

    window = MainWindow(PortraitSession(editor=build_editor()))
    window.show()

    try:
        sys.exit(app.exec())
    except (SystemExit, KeyboardInterrupt):
        pass


if __name__ == "__main__":
    main()
