"""Scan preview with optional highlighted-region overlay."""

from __future__ import annotations

from collections.abc import Sequence

from PySide6.QtCore import Qt
from PySide6.QtGui import QPixmap, QResizeEvent
from PySide6.QtWidgets import QLabel, QSizePolicy, QVBoxLayout, QWidget

from ...images import ScanImage
from ...overlay import render_overlay_png
from ...schema import Region


class ScanViewer(QWidget):
    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._image: ScanImage | None = None
        self._regions: tuple[Region, ...] = ()
        self._show_highlights = True
        self._selected_id: str | None = None
        self._pixmap = QPixmap()

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        self._canvas = QLabel()
        self._canvas.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._canvas.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)
        self._canvas.setMinimumSize(320, 320)
        self._canvas.setStyleSheet("background-color: #0b0d12;")
        layout.addWidget(self._canvas)

    def set_image(self, image: ScanImage | None) -> None:
        self._image = image
        self._regions = ()
        self._refresh()

    def set_regions(self, regions: Sequence[Region]) -> None:
        self._regions = tuple(regions)
        self._selected_id = None
        self._refresh()

    def select_region(self, region_id: str | None) -> None:
        self._selected_id = region_id
        self._refresh()

    def set_show_highlights(self, enabled: bool) -> None:
        self._show_highlights = enabled
        self._refresh()

    def resizeEvent(self, event: QResizeEvent) -> None:
        super().resizeEvent(event)
        self._rescale()

    def _refresh(self) -> None:
        self._pixmap = QPixmap()
        if self._image is not None:
            if self._show_highlights and self._regions:
                rendered = render_overlay_png(
                    self._image.open(), self._regions, selected_id=self._selected_id
                )
                self._pixmap.loadFromData(rendered)
            else:
                self._pixmap.loadFromData(self._image.data)
        self._rescale()

    def _rescale(self) -> None:
        if self._pixmap.isNull():
            self._canvas.clear()
            return
        self._canvas.setPixmap(
            self._pixmap.scaled(
                self._canvas.size(),
                Qt.AspectRatioMode.KeepAspectRatio,
                Qt.TransformationMode.SmoothTransformation,
            )
        )
