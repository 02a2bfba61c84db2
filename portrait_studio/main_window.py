"""
Main application window.

Drives a :class:`PortraitSession` through its stages: upload, interactive
crop, the AI edit loop, the optional final reframe and export.  Image decoding
and synthesis requests run on worker threads; everything else, including all
session mutation and rendering, happens on the GUI thread.
"""

import logging
from pathlib import Path

from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QLabel,
    QFileDialog, QGroupBox, QMessageBox, QStatusBar, QToolBar, QComboBox,
    QSlider, QLineEdit, QStackedWidget, QApplication, QScrollArea, QSizePolicy,
)
from PyQt6.QtCore import Qt, pyqtSignal, QThread
from PyQt6.QtGui import QAction, QKeySequence, QShortcut

from portrait_studio.config import (
    APP_TITLE, IMAGE_EXTENSIONS, OUTPUT_FORMATS, OUTPUT_FORMAT_DEFAULT,
    ROTATION_MAX, ROTATION_MIN, ROTATION_STEP,
    SCALE_MIN, SLIDER_SCALE_MAX, SLIDER_SCALE_STEP,
)
from portrait_studio.models import BackgroundOption, ClothingOption
from portrait_studio.viewport import Fill, Fit, ResetTransform, SetRotation, SetScale, StepRotation
from portrait_studio.viewport_widget import ViewportWidget, ImageLoaderThread, pil_to_qpixmap
from portrait_studio.workflow import (
    CropStage, EditFailedError, EditKind, EditRequest, PortraitSession, Stage, WorkflowError,
)

logger = logging.getLogger(__name__)

BACKGROUND_LABELS = {
    BackgroundOption.NONE: "Original background",
    BackgroundOption.SOFT_BLUE: "Soft blue",
    BackgroundOption.SOFT_PINK: "Cherry pink",
    BackgroundOption.WISTERIA_PURPLE: "Wisteria",
    BackgroundOption.FRESH_GREEN: "Fresh green",
    BackgroundOption.WHITE_GREY: "Porcelain grey",
}

CLOTHING_LABELS = {
    ClothingOption.NONE: "Original clothing",
    ClothingOption.MENS_SUIT_BLACK: "Men: black formal suit",
    ClothingOption.MENS_KIMONO: "Men: black crested kimono",
    ClothingOption.MENS_SUIT_NAVY: "Men: navy suit",
    ClothingOption.WOMENS_SUIT_BLACK: "Women: black ensemble",
    ClothingOption.WOMENS_KIMONO_BLACK: "Women: black kimono",
    ClothingOption.WOMENS_KIMONO_COLOR: "Women: pale kimono",
}

# Sliders are integer-valued; these map them onto transform units.
_SCALE_TICKS = round(1 / SLIDER_SCALE_STEP)
_ROTATION_TICKS = round(1 / ROTATION_STEP)


class EditThread(QThread):
    """Runs one synthesis request off the GUI thread."""
    succeeded = pyqtSignal(object)
    failed = pyqtSignal(str)

    def __init__(self, session: PortraitSession, request: EditRequest, parent=None):
        super().__init__(parent)
        self._session = session
        self._request = request

    def run(self):
        try:
            self.succeeded.emit(self._session.run_edit(self._request))
        except EditFailedError as e:
            self.failed.emit(str(e))


class MainWindow(QMainWindow):
    def __init__(self, session: PortraitSession | None = None):
        super().__init__()
        self.setWindowTitle(APP_TITLE)
        self.setMinimumSize(1000, 700)

        preferred_w, preferred_h = 1600, 1000
        screen = QApplication.primaryScreen()
        if screen is not None:
            avail = screen.availableGeometry()
            preferred_w = min(preferred_w, int(avail.width() * 0.8))
            preferred_h = min(preferred_h, int(avail.height() * 0.8))
        self.resize(preferred_w, preferred_h)

        self._session = session or PortraitSession()
        self._loader: ImageLoaderThread | None = None
        self._edit_thread: EditThread | None = None
        self._pending_request: EditRequest | None = None

        self._build_ui()
        self._show_stage()

    # =========================================================================
    # UI construction
    # =========================================================================

    def _build_ui(self):
        self._build_toolbar()

        self._pages = QStackedWidget()
        self._pages.addWidget(self._build_upload_page())
        self._pages.addWidget(self._build_crop_page())
        self._pages.addWidget(self._build_edit_page())
        self.setCentralWidget(self._pages)

        self._status = QStatusBar()
        self.setStatusBar(self._status)
        if self._session.editor is None:
            self._status.showMessage("AI editing unavailable: set GEMINI_API_KEY to enable it.")
        else:
            self._status.showMessage("Open a photo to begin.")

        QShortcut(QKeySequence(Qt.Key.Key_BracketLeft), self, lambda: self._viewport.handle(StepRotation(-1)))
        QShortcut(QKeySequence(Qt.Key.Key_BracketRight), self, lambda: self._viewport.handle(StepRotation(1)))

    def _build_toolbar(self):
        toolbar = QToolBar("Main")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)

        act_open = QAction("📂 Open Photo", self)
        act_open.triggered.connect(self._select_image)
        toolbar.addAction(act_open)
        self._act_open = act_open

        act_restart = QAction("↺ Start Over", self)
        act_restart.triggered.connect(self._restart)
        toolbar.addAction(act_restart)
        self._act_restart = act_restart

    def _build_upload_page(self) -> QWidget:
        page = QWidget()
        layout = QVBoxLayout(page)
        layout.addStretch()
        title = QLabel("Turn a treasured snapshot into a formal portrait")
        title.setAlignment(Qt.AlignmentFlag.AlignCenter)
        title.setStyleSheet("font-size: 20pt; font-weight: bold;")
        layout.addWidget(title)
        btn_open = QPushButton("Choose a Photo…")
        btn_open.clicked.connect(self._select_image)
        layout.addWidget(btn_open, alignment=Qt.AlignmentFlag.AlignCenter)
        layout.addStretch()
        return page

    def _build_crop_page(self) -> QWidget:
        page = QWidget()
        layout = QHBoxLayout(page)
        layout.setContentsMargins(0, 0, 0, 0)

        self._viewport = ViewportWidget()
        self._viewport.transform_changed.connect(self._sync_crop_controls)
        layout.addWidget(self._viewport, stretch=1)

        panel = QWidget()
        panel.setFixedWidth(280)
        panel_layout = QVBoxLayout(panel)

        self._crop_title = QLabel("")
        self._crop_title.setStyleSheet("font-weight: bold; font-size: 12pt;")
        panel_layout.addWidget(self._crop_title)

        zoom_group = QGroupBox("Zoom")
        zoom_layout = QHBoxLayout(zoom_group)
        self._zoom_slider = QSlider(Qt.Orientation.Horizontal)
        self._zoom_slider.setRange(round(SCALE_MIN * _SCALE_TICKS), round(SLIDER_SCALE_MAX * _SCALE_TICKS))
        self._zoom_slider.valueChanged.connect(lambda v: self._viewport.handle(SetScale(v / _SCALE_TICKS)))
        zoom_layout.addWidget(self._zoom_slider, stretch=1)
        self._zoom_label = QLabel("")
        self._zoom_label.setFixedWidth(48)
        zoom_layout.addWidget(self._zoom_label)
        panel_layout.addWidget(zoom_group)

        rotation_group = QGroupBox("Tilt")
        rotation_layout = QHBoxLayout(rotation_group)
        self._rotation_slider = QSlider(Qt.Orientation.Horizontal)
        self._rotation_slider.setRange(round(ROTATION_MIN * _ROTATION_TICKS), round(ROTATION_MAX * _ROTATION_TICKS))
        self._rotation_slider.valueChanged.connect(
            lambda v: self._viewport.handle(SetRotation(v / _ROTATION_TICKS))
        )
        rotation_layout.addWidget(self._rotation_slider, stretch=1)
        self._rotation_label = QLabel("")
        self._rotation_label.setFixedWidth(48)
        rotation_layout.addWidget(self._rotation_label)
        panel_layout.addWidget(rotation_group)

        presets = QHBoxLayout()
        btn_fit = QPushButton("Show All")
        btn_fit.clicked.connect(lambda: self._viewport.handle(Fit()))
        presets.addWidget(btn_fit)
        btn_fill = QPushButton("Fill Frame")
        btn_fill.clicked.connect(lambda: self._viewport.handle(Fill()))
        presets.addWidget(btn_fill)
        panel_layout.addLayout(presets)

        btn_reset = QPushButton("Reset Adjustments")
        btn_reset.clicked.connect(lambda: self._viewport.handle(ResetTransform()))
        panel_layout.addWidget(btn_reset)

        hints = QLabel(
            "Drag the photo: move\n"
            "Drag the blue corner handle: zoom\n"
            "Mouse wheel / pinch: zoom\n"
            "[ / ]: tilt by 0.5°"
        )
        hints.setStyleSheet("color: #888; font-size: 8pt;")
        panel_layout.addWidget(hints)
        panel_layout.addStretch()

        btn_confirm = QPushButton("✓ Use This Framing")
        btn_confirm.clicked.connect(self._confirm_crop)
        panel_layout.addWidget(btn_confirm)
        btn_cancel = QPushButton("Cancel")
        btn_cancel.clicked.connect(self._cancel_crop)
        panel_layout.addWidget(btn_cancel)

        layout.addWidget(panel)
        return page

    def _build_edit_page(self) -> QWidget:
        page = QWidget()
        layout = QHBoxLayout(page)

        self._preview = QLabel()
        self._preview.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._preview.setSizePolicy(QSizePolicy.Policy.Ignored, QSizePolicy.Policy.Ignored)
        self._preview.setStyleSheet("background: #e9ebed;")
        layout.addWidget(self._preview, stretch=1)

        inner = QWidget()
        inner_layout = QVBoxLayout(inner)
        inner_layout.setContentsMargins(0, 0, 0, 0)

        self._bg_buttons: dict[BackgroundOption, QPushButton] = {}
        bg_group = QGroupBox("Background")
        bg_layout = QVBoxLayout(bg_group)
        for option, label in BACKGROUND_LABELS.items():
            btn = QPushButton(label)
            btn.setCheckable(True)
            btn.clicked.connect(lambda checked, o=option: self._start_edit(EditKind.BACKGROUND, o))
            bg_layout.addWidget(btn)
            self._bg_buttons[option] = btn
        inner_layout.addWidget(bg_group)

        self._clothing_buttons: dict[ClothingOption, QPushButton] = {}
        clothing_group = QGroupBox("Clothing")
        clothing_layout = QVBoxLayout(clothing_group)
        for option, label in CLOTHING_LABELS.items():
            btn = QPushButton(label)
            btn.setCheckable(True)
            btn.clicked.connect(lambda checked, o=option: self._start_edit(EditKind.CLOTHING, o))
            clothing_layout.addWidget(btn)
            self._clothing_buttons[option] = btn
        inner_layout.addWidget(clothing_group)

        inner_layout.addWidget(self._build_actions_group())
        inner_layout.addWidget(self._build_export_group())
        inner_layout.addStretch()

        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setWidget(inner)
        scroll.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        scroll.setFrameShape(scroll.Shape.NoFrame)
        scroll.setFixedWidth(300)
        layout.addWidget(scroll)
        return page

    def _build_actions_group(self) -> QGroupBox:
        actions_group = QGroupBox("Adjust")
        actions_layout = QVBoxLayout(actions_group)

        btn_reframe = QPushButton("⤢ Adjust Final Framing")
        btn_reframe.setToolTip("Reframe the edited portrait before export")
        btn_reframe.clicked.connect(lambda: self._enter_crop(CropStage.FINAL))
        actions_layout.addWidget(btn_reframe)

        btn_recrop = QPushButton("✂ Re-crop Original Photo")
        btn_recrop.setToolTip("Redo the initial crop; AI edits are discarded")
        btn_recrop.clicked.connect(lambda: self._enter_crop(CropStage.INITIAL))
        actions_layout.addWidget(btn_recrop)

        btn_reset = QPushButton("↺ Undo All AI Edits")
        btn_reset.clicked.connect(self._reset_to_original)
        actions_layout.addWidget(btn_reset)

        self._edit_action_buttons = [btn_reframe, btn_recrop]
        self._btn_reset = btn_reset
        return actions_group

    def _build_export_group(self) -> QGroupBox:
        export_group = QGroupBox("Export")
        export_layout = QVBoxLayout(export_group)

        export_layout.addWidget(QLabel("Name (used in the file name):"))
        self._subject_name = QLineEdit()
        self._subject_name.textChanged.connect(self._on_subject_name_changed)
        export_layout.addWidget(self._subject_name)

        fmt_row = QHBoxLayout()
        fmt_row.addWidget(QLabel("Format:"))
        self._export_format = QComboBox()
        self._export_format.addItems(OUTPUT_FORMATS)
        self._export_format.setCurrentText(OUTPUT_FORMAT_DEFAULT)
        fmt_row.addWidget(self._export_format)
        export_layout.addLayout(fmt_row)

        btn_export = QPushButton("💾 Save High Resolution (2700×3600)")
        btn_export.clicked.connect(self._export)
        export_layout.addWidget(btn_export)
        self._btn_export = btn_export
        return export_group

    # =========================================================================
    # Stage display
    # =========================================================================

    def _show_stage(self):
        stage = self._session.stage
        if stage == Stage.UPLOAD:
            self._pages.setCurrentIndex(0)
        elif stage == Stage.CROPPING:
            final = self._session.crop_stage == CropStage.FINAL
            self._crop_title.setText("Final Framing" if final else "Compose the Portrait")
            self._viewport.set_image(self._session.crop_source, self._session.seed_transform())
            self._sync_crop_controls()
            self._pages.setCurrentIndex(1)
        else:
            self._refresh_preview()
            self._pages.setCurrentIndex(2)
        self._update_button_states()

    def _sync_crop_controls(self):
        """Mirror the viewport transform into the sliders without feeding back."""
        t = self._viewport.transform
        for slider, value in ((self._zoom_slider, round(t.scale * _SCALE_TICKS)),
                              (self._rotation_slider, round(t.rotation * _ROTATION_TICKS))):
            slider.blockSignals(True)
            slider.setValue(value)
            slider.blockSignals(False)
        self._zoom_label.setText(f"{round(t.scale * 100)}%")
        self._rotation_label.setText(f"{t.rotation:.1f}°")

    def _refresh_preview(self):
        if not self._session.has_initial_crop:
            self._preview.clear()
            return
        pixmap = pil_to_qpixmap(self._session.render_preview())
        self._preview.setPixmap(pixmap.scaled(
            self._preview.size(), Qt.AspectRatioMode.KeepAspectRatio,
            Qt.TransformationMode.SmoothTransformation,
        ))

    def resizeEvent(self, event):
        super().resizeEvent(event)
        if self._session.stage == Stage.EDITING:
            self._refresh_preview()

    def closeEvent(self, event):
        """Refuse to close mid-edit; otherwise let a pending image load finish."""
        if self._edit_thread is not None and self._edit_thread.isRunning():
            self._status.showMessage("An AI edit is still running. Close again once it finishes.")
            event.ignore()
            return
        if self._loader is not None:
            self._loader.wait()
        super().closeEvent(event)

    def _update_button_states(self):
        busy = self._session.edit_pending
        for option, btn in self._bg_buttons.items():
            btn.setChecked(option == self._session.applied_background)
            btn.setEnabled(not busy)
        for option, btn in self._clothing_buttons.items():
            btn.setChecked(option == self._session.applied_clothing)
            btn.setEnabled(not busy)
        for btn in self._edit_action_buttons:
            btn.setEnabled(not busy)
        self._btn_reset.setEnabled(not busy and self._session.has_edits)
        # Exports are named after the subject, so a name is required.
        self._btn_export.setEnabled(
            not busy and self._session.has_initial_crop and bool(self._session.subject_name.strip())
        )
        self._act_open.setEnabled(not busy)
        self._act_restart.setEnabled(not busy)

    # =========================================================================
    # Upload
    # =========================================================================

    def _select_image(self):
        patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
        path, _ = QFileDialog.getOpenFileName(
            self, "Select Photo", str(Path.home()), f"Images ({patterns})",
        )
        if not path:
            return

        self._status.showMessage(f"Loading {Path(path).name}…")
        self._loader = ImageLoaderThread(Path(path), self)
        self._loader.finished.connect(self._on_image_loaded)
        self._loader.error.connect(self._on_image_load_error)
        self._loader.start()

    def _on_image_loaded(self, image):
        try:
            self._session.upload(image)
        except WorkflowError as e:
            self._status.showMessage(str(e))
            return
        self._subject_name.clear()
        self._status.showMessage(f"Loaded {image.width}×{image.height}. Frame the face inside the window.")
        self._show_stage()

    def _on_image_load_error(self, error: str):
        self._status.showMessage(f"Failed to load image: {error}")

    def _restart(self):
        try:
            self._session.restart()
        except WorkflowError as e:
            self._status.showMessage(str(e))
            return
        self._viewport.clear()
        self._subject_name.clear()
        self._show_stage()

    # =========================================================================
    # Cropping
    # =========================================================================

    def _enter_crop(self, crop_stage: CropStage):
        try:
            self._session.begin_crop(crop_stage)
        except WorkflowError as e:
            self._status.showMessage(str(e))
            return
        self._show_stage()

    def _confirm_crop(self):
        confirmed = self._session.confirm_crop(self._viewport.transform, self._viewport.viewport_layout())
        if not confirmed:
            # Layout not measured yet; the next interaction will succeed.
            return
        self._status.showMessage("Framing saved.")
        self._show_stage()

    def _cancel_crop(self):
        self._session.cancel_crop()
        self._show_stage()

    # =========================================================================
    # Editing
    # =========================================================================

    def _start_edit(self, kind: EditKind, option):
        try:
            request = self._session.begin_edit(kind, option)
        except WorkflowError as e:
            self._status.showMessage(str(e))
            self._update_button_states()
            return

        if request is None:
            self._refresh_preview()
            self._update_button_states()
            return

        self._pending_request = request
        self._status.showMessage(f"Generating {kind.value}: {option.value}…")
        self._edit_thread = EditThread(self._session, request, self)
        self._edit_thread.succeeded.connect(self._on_edit_succeeded)
        self._edit_thread.failed.connect(self._on_edit_failed)
        self._update_button_states()
        self._edit_thread.start()

    def _on_edit_succeeded(self, image):
        request, self._pending_request = self._pending_request, None
        self._session.complete_edit(request, image)
        self._status.showMessage("Edit applied.")
        self._refresh_preview()
        self._update_button_states()

    def _on_edit_failed(self, message: str):
        request, self._pending_request = self._pending_request, None
        self._session.fail_edit(request, EditFailedError(message))
        self._update_button_states()
        self._status.clearMessage()
        title = "Background Error" if request.kind == EditKind.BACKGROUND else "Clothing Error"
        QMessageBox.warning(
            self, title,
            "The image could not be generated. Please wait a moment and try again.\n\n"
            f"{message}",
        )

    def _reset_to_original(self):
        try:
            self._session.reset_to_original()
        except WorkflowError as e:
            self._status.showMessage(str(e))
            return
        self._refresh_preview()
        self._update_button_states()

    # =========================================================================
    # Export
    # =========================================================================

    def _on_subject_name_changed(self, text: str):
        self._session.subject_name = text
        self._update_button_states()

    def _export(self):
        folder = QFileDialog.getExistingDirectory(self, "Select Output Folder", str(Path.home()))
        if not folder:
            return
        QApplication.setOverrideCursor(Qt.CursorShape.WaitCursor)
        try:
            out_path = self._session.export(Path(folder), self._export_format.currentText())
        except (OSError, ValueError, WorkflowError) as e:
            logger.exception("Export failed")
            QMessageBox.warning(self, "Save Failed", f"Could not save the portrait:\n{e}")
            return
        finally:
            QApplication.restoreOverrideCursor()
        self._status.showMessage(f"Saved {out_path}")
