"""
Interactive crop viewport widget and Qt image helpers.

This module contains everything that touches both Qt **and** image display:
``pil_to_qpixmap``, the background ``ImageLoaderThread``, and the
``ViewportWidget`` editor.  The widget only translates Qt input into
:mod:`portrait_studio.viewport` events and paints the result; the gesture
rules live in the Qt-free controller.
"""

from pathlib import Path

from PIL import Image
from PyQt6.QtWidgets import QWidget, QSizePolicy
from PyQt6.QtCore import Qt, QEvent, QPointF, QRectF, pyqtSignal, QThread
from PyQt6.QtGui import (
    QPainter, QPixmap, QColor, QPen, QBrush, QImage,
    QMouseEvent, QPaintEvent, QResizeEvent, QWheelEvent,
)

from portrait_studio.config import HANDLE_SIZE
from portrait_studio.image_io import is_supported, open_image
from portrait_studio.models import TransformState, ViewportLayout
from portrait_studio.viewport import (
    Mode, PointerDown, PointerMove, PointerUp, TouchEnd, TouchMove, TouchStart,
    ViewportController, Wheel,
)


# =============================================================================
# Qt ↔ PIL helpers
# =============================================================================

def pil_to_qpixmap(pil_img: Image.Image) -> QPixmap:
    """Convert a PIL Image to QPixmap."""
    img_rgba = pil_img.convert("RGBA")
    data = img_rgba.tobytes("raw", "RGBA")
    qimg = QImage(data, img_rgba.width, img_rgba.height, QImage.Format.Format_RGBA8888)
    # QImage does not own ``data``; copy before it goes out of scope.
    return QPixmap.fromImage(qimg.copy())


# =============================================================================
# Background image loader
# =============================================================================

class ImageLoaderThread(QThread):
    """Background thread for decoding uploads (especially large PSDs)."""
    finished = pyqtSignal(object)
    error = pyqtSignal(str)

    def __init__(self, path: Path, parent=None):
        super().__init__(parent)
        self._path = path

    def run(self):
        if not is_supported(self._path):
            self.error.emit(f"Unsupported file type: {self._path.suffix or self._path.name}")
            return
        try:
            self.finished.emit(open_image(self._path))
        except (OSError, ValueError) as e:
            self.error.emit(str(e))


# =============================================================================
# Viewport Widget — pan/zoom/rotate an image behind a fixed 3:4 aperture
# =============================================================================

class ViewportWidget(QWidget):
    """Displays an image under a fixed crop aperture and feeds input to a ViewportController."""

    transform_changed = pyqtSignal()

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setMinimumSize(400, 400)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)
        self.setAttribute(Qt.WidgetAttribute.WA_AcceptTouchEvents)
        self.setMouseTracking(True)

        self._controller = ViewportController()
        self._image: Image.Image | None = None
        self._pixmap: QPixmap | None = None

    # --- Public API ---

    def set_image(self, image: Image.Image, transform: TransformState):
        """Show ``image`` and start editing from ``transform``."""
        self._image = image
        self._pixmap = pil_to_qpixmap(image)
        self._controller.reset(transform)
        self._update_layout()
        self.refresh()

    def clear(self):
        self._image = None
        self._pixmap = None
        self._controller.reset()
        self._update_layout()
        self.refresh()

    def has_image(self) -> bool:
        return self._pixmap is not None

    @property
    def transform(self) -> TransformState:
        return self._controller.transform

    def viewport_layout(self) -> ViewportLayout:
        return self._controller.layout

    def handle(self, event) -> bool:
        """Apply a viewport event and redraw; return True if the transform changed."""
        changed = self._controller.handle(event)
        if changed:
            self.transform_changed.emit()
        self.refresh()
        return changed

    def refresh(self):
        self.update()

    # --- Layout ---

    def _update_layout(self):
        natural = self._image.size if self._image is not None else (0, 0)
        self._controller.layout = ViewportLayout.measure((self.width(), self.height()), natural)

    def resizeEvent(self, event: QResizeEvent):
        self._update_layout()
        super().resizeEvent(event)

    # --- Painting ---

    def paintEvent(self, event: QPaintEvent):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.fillRect(self.rect(), QColor(0, 0, 0))

        layout = self._controller.layout
        if not self._pixmap or not layout.settled:
            painter.setPen(QColor(128, 128, 128))
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, "No image loaded")
            painter.end()
            return

        # Same placement as the rasterizer: rotate about the centre, then
        # offset and scale in the rotated frame.
        t = self._controller.transform
        painter.save()
        painter.translate(layout.container_w / 2, layout.container_h / 2)
        painter.rotate(t.rotation)
        painter.translate(t.offset_x, t.offset_y)
        painter.scale(t.scale, t.scale)
        painter.drawPixmap(
            QRectF(-layout.image_w / 2, -layout.image_h / 2, layout.image_w, layout.image_h),
            self._pixmap, QRectF(self._pixmap.rect()),
        )
        painter.restore()

        left, top, ap_w, ap_h = layout.aperture_rect()
        ap_rect = QRectF(left, top, ap_w, ap_h)
        self._paint_mask(painter, ap_rect)
        self._paint_aperture(painter, ap_rect)
        self._paint_handle(painter, layout)
        painter.end()

    def _paint_mask(self, painter: QPainter, ap_rect: QRectF):
        """Dim everything outside the aperture."""
        dim = QColor(0, 0, 0, 204)
        w, h = self.width(), self.height()
        # Top strip
        painter.fillRect(QRectF(0, 0, w, ap_rect.top()), dim)
        # Bottom strip
        painter.fillRect(QRectF(0, ap_rect.bottom(), w, h - ap_rect.bottom()), dim)
        # Left strip
        painter.fillRect(QRectF(0, ap_rect.top(), ap_rect.left(), ap_rect.height()), dim)
        # Right strip
        painter.fillRect(QRectF(ap_rect.right(), ap_rect.top(), w - ap_rect.right(), ap_rect.height()), dim)

    def _paint_aperture(self, painter: QPainter, ap_rect: QRectF):
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.setPen(QPen(QColor(255, 255, 255, 102), 1))
        painter.drawRect(ap_rect)

        # Rule-of-thirds guides
        painter.setPen(QPen(QColor(255, 255, 255, 51), 1))
        for i in range(1, 3):
            x = ap_rect.left() + ap_rect.width() * i / 3
            painter.drawLine(QPointF(x, ap_rect.top()), QPointF(x, ap_rect.bottom()))
            y = ap_rect.top() + ap_rect.height() * i / 3
            painter.drawLine(QPointF(ap_rect.left(), y), QPointF(ap_rect.right(), y))

        # Corner marks
        mark = 24
        painter.setPen(QPen(QColor(255, 255, 255), 2))
        l, t, r, b = ap_rect.left(), ap_rect.top(), ap_rect.right(), ap_rect.bottom()
        for cx, cy, sx, sy in ((l, t, 1, 1), (r, t, -1, 1), (l, b, 1, -1), (r, b, -1, -1)):
            painter.drawLine(QPointF(cx, cy), QPointF(cx + sx * mark, cy))
            painter.drawLine(QPointF(cx, cy), QPointF(cx, cy + sy * mark))

    def _paint_handle(self, painter: QPainter, layout: ViewportLayout):
        hx, hy = layout.handle_center()
        radius = HANDLE_SIZE / 2
        painter.setPen(QPen(QColor(255, 255, 255), 4))
        painter.setBrush(QBrush(QColor(37, 99, 235)))
        painter.drawEllipse(QPointF(hx, hy), radius - 2, radius - 2)

    # --- Mouse interaction ---

    def mousePressEvent(self, event: QMouseEvent):
        if event.button() != Qt.MouseButton.LeftButton or not self._pixmap:
            return
        pos = event.position()
        self.handle(PointerDown(pos.x(), pos.y()))
        self._update_cursor(pos)

    def mouseMoveEvent(self, event: QMouseEvent):
        if not self._pixmap:
            return
        pos = event.position()
        if self._controller.mode != Mode.IDLE:
            self.handle(PointerMove(pos.x(), pos.y()))
        self._update_cursor(pos)

    def mouseReleaseEvent(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton:
            self.handle(PointerUp())
            self._update_cursor(event.position())

    def wheelEvent(self, event: QWheelEvent):
        if not self._pixmap:
            return
        # Qt reports scrolling up as positive; viewport events use the
        # browser convention (up is negative).
        dy = event.angleDelta().y()
        if dy:
            self.handle(Wheel(-dy))
        event.accept()

    def _update_cursor(self, pos: QPointF):
        mode = self._controller.mode
        if mode == Mode.RESIZING or (mode == Mode.IDLE and self._controller.layout.hits_handle(pos.x(), pos.y())):
            self.setCursor(Qt.CursorShape.SizeFDiagCursor)
        elif mode == Mode.PANNING:
            self.setCursor(Qt.CursorShape.ClosedHandCursor)
        else:
            self.setCursor(Qt.CursorShape.OpenHandCursor)

    # --- Touch interaction ---

    def event(self, event: QEvent) -> bool:
        etype = event.type()
        if etype in (QEvent.Type.TouchBegin, QEvent.Type.TouchUpdate, QEvent.Type.TouchEnd):
            if not self._pixmap:
                return super().event(event)
            points = tuple((p.position().x(), p.position().y()) for p in event.points())
            if etype == QEvent.Type.TouchBegin:
                self.handle(TouchStart(points))
            elif etype == QEvent.Type.TouchUpdate:
                self.handle(TouchMove(points))
            else:
                self.handle(TouchEnd())
            event.accept()
            return True
        return super().event(event)
