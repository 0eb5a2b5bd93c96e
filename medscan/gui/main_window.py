"""Main Qt window driving a :class:`ScanSession`."""

from __future__ import annotations

from pathlib import Path

from PySide6 import QtCore
from PySide6.QtCore import QThreadPool, Signal
from PySide6.QtGui import QActionGroup, QGuiApplication
from PySide6.QtWidgets import (
    QApplication,
    QCheckBox,
    QFileDialog,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QStackedWidget,
    QStatusBar,
    QVBoxLayout,
    QWidget,
)

from ..config import AppConfig
from ..errors import CaptureUnavailable, MedScanError
from ..images import ScanImage
from ..providers.registry import ProviderRegistry
from ..report import report_filename
from ..schema import AnalysisResult
from ..services.session import ScanSession, SessionState
from ..settings_store import SettingsStore
from .widgets.analysis_panel import AnalysisPanel
from .widgets.camera_dialog import CameraDialog
from .widgets.drop_target import DropTargetWidget
from .widgets.scan_viewer import ScanViewer
from .workers import AnalysisWorker

IMAGE_FILTER = "Images (*.png *.jpg *.jpeg *.webp *.bmp *.gif *.tif *.tiff)"


class MainWindow(QMainWindow):
    """Primary application window."""

    state_changed = Signal(object)

    def __init__(self, settings_store: SettingsStore | None = None) -> None:
        super().__init__()
        self.setWindowTitle("MedScan AI")
        self.resize(1180, 760)

        self.settings_store = settings_store or SettingsStore()
        self.config: AppConfig = self.settings_store.load()
        self.session = ScanSession(self.config)
        self.thread_pool = QThreadPool()
        self._current_worker: AnalysisWorker | None = None
        self._cursor_busy = False

        # Session listeners may fire on the worker thread; hop to the GUI thread.
        self.session.add_listener(self.state_changed.emit)
        self.state_changed.connect(self._on_state_changed)

        self._build_ui()
        self._build_menus()
        self._rebuild_status_bar()
        self._on_state_changed(self.session.state)

    def _build_ui(self) -> None:
        central = QWidget()
        layout = QHBoxLayout(central)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.setSpacing(12)
        self.setCentralWidget(central)

        left = QVBoxLayout()
        left.setSpacing(8)

        intro = QLabel(
            "<b>Medical Scan Analysis</b><br>Upload or capture a medical scan for "
            "AI-powered analysis and report generation."
        )
        intro.setWordWrap(True)
        left.addWidget(intro)

        self.stack = QStackedWidget()
        self.drop_target = DropTargetWidget()
        self.drop_target.image_dropped.connect(self._load_path)
        self.drop_target.clicked.connect(self._choose_file)
        self.viewer = ScanViewer()
        self.stack.addWidget(self.drop_target)
        self.stack.addWidget(self.viewer)
        left.addWidget(self.stack, stretch=1)

        controls = QHBoxLayout()
        self.open_btn = QPushButton("Select Image…")
        self.open_btn.clicked.connect(self._choose_file)
        self.camera_btn = QPushButton("Use Camera…")
        self.camera_btn.clicked.connect(self._capture_from_camera)
        self.highlights_box = QCheckBox("Show Highlights")
        self.highlights_box.setChecked(True)
        self.highlights_box.toggled.connect(self.viewer.set_show_highlights)
        self.clear_btn = QPushButton("New Scan")
        self.clear_btn.clicked.connect(self.session.clear)
        self.analyze_btn = QPushButton("Analyze Scan")
        self.analyze_btn.clicked.connect(self._start_analysis)
        self.cancel_btn = QPushButton("Cancel")
        self.cancel_btn.clicked.connect(self._cancel_analysis)
        self.export_btn = QPushButton("Export Report")
        self.export_btn.clicked.connect(self._export_report)

        controls.addWidget(self.open_btn)
        controls.addWidget(self.camera_btn)
        controls.addWidget(self.highlights_box)
        controls.addStretch()
        controls.addWidget(self.clear_btn)
        controls.addWidget(self.analyze_btn)
        controls.addWidget(self.cancel_btn)
        controls.addWidget(self.export_btn)
        left.addLayout(controls)

        self.analysis_panel = AnalysisPanel()
        self.analysis_panel.region_selected.connect(self.viewer.select_region)

        layout.addLayout(left, stretch=3)
        layout.addWidget(self.analysis_panel, stretch=2)

        self.setStatusBar(QStatusBar())

    def _build_menus(self) -> None:
        menu_bar = self.menuBar()
        file_menu = menu_bar.addMenu("&File")
        file_menu.addAction("Open Image…", self._choose_file)
        file_menu.addAction("Export Report…", self._export_report)
        file_menu.addSeparator()
        file_menu.addAction("Quit", self.close)

        provider_menu = menu_bar.addMenu("&Provider")
        group = QActionGroup(self)
        group.setExclusive(True)
        for info in ProviderRegistry.list_provider_infos():
            action = provider_menu.addAction(info.display_name)
            action.setCheckable(True)
            action.setChecked(info.identifier == self.config.provider_name)
            action.setToolTip(info.description)
            action.triggered.connect(
                lambda _checked=False, name=info.identifier: self._switch_provider(name)
            )
            group.addAction(action)

    def _rebuild_status_bar(self) -> None:
        self.statusBar().showMessage(
            f"Provider: {ProviderRegistry.display_name(self.config.provider_name)}"
            f" • Session: {self.session.state.value}"
        )

    # --- Image selection -------------------------------------------------

    def _choose_file(self) -> None:
        start = str(self.config.report_directory or "")
        path, _ = QFileDialog.getOpenFileName(self, "Select scan image", start, IMAGE_FILTER)
        if path:
            self._load_path(Path(path))

    def _load_path(self, path: Path) -> None:
        try:
            self._select(ScanImage.from_path(path))
        except MedScanError as exc:
            QMessageBox.warning(self, "Cannot open image", str(exc))

    def _capture_from_camera(self) -> None:
        try:
            dialog = CameraDialog(self)
        except CaptureUnavailable as exc:
            QMessageBox.warning(self, "Camera unavailable", str(exc))
            return
        if dialog.exec() and dialog.captured_image is not None:
            self._select(dialog.captured_image)
        elif dialog.error_message:
            QMessageBox.warning(self, "Camera unavailable", dialog.error_message)

    def _select(self, image: ScanImage) -> None:
        self.session.select(image)
        self.viewer.set_image(image)

    # --- Analysis ----------------------------------------------------------

    def _start_analysis(self) -> None:
        if self._current_worker is not None:
            return
        worker = AnalysisWorker(self.session)
        worker.signals.finished.connect(self._on_worker_finished)
        worker.signals.error.connect(self._on_worker_error)
        worker.signals.cancelled.connect(self._on_worker_cancelled)
        self._current_worker = worker
        self._set_busy_cursor(True)
        self.thread_pool.start(worker)

    def _cancel_analysis(self) -> None:
        if self._current_worker is not None:
            self._current_worker.cancel_token.cancel()

    def _on_worker_finished(self, result: AnalysisResult) -> None:
        self._release_worker()
        self.statusBar().showMessage(
            f"Analysis complete: {result.status.value} ({result.overall_confidence}% confidence)"
        )

    def _on_worker_error(self, message: str) -> None:
        self._release_worker()
        QMessageBox.critical(self, "Analysis failed", message)

    def _on_worker_cancelled(self) -> None:
        self._release_worker()

    def _release_worker(self) -> None:
        self._current_worker = None
        self._set_busy_cursor(False)

    # --- State rendering ---------------------------------------------------

    def _on_state_changed(self, state: SessionState) -> None:
        has_image = state != SessionState.EMPTY
        analyzing = state == SessionState.ANALYZING
        analyzed = state == SessionState.ANALYZED

        self.stack.setCurrentWidget(self.viewer if has_image else self.drop_target)
        if not has_image:
            self.viewer.set_image(None)

        self.open_btn.setEnabled(not analyzing)
        self.camera_btn.setEnabled(not analyzing)
        self.clear_btn.setEnabled(has_image)
        self.analyze_btn.setVisible(not analyzed)
        self.analyze_btn.setEnabled(state == SessionState.IMAGE_SELECTED)
        self.analyze_btn.setText("Analyzing…" if analyzing else "Analyze Scan")
        self.cancel_btn.setVisible(analyzing)
        self.export_btn.setVisible(analyzed)
        self.highlights_box.setVisible(analyzed)

        result = self.session.result
        if analyzing:
            self.analysis_panel.show_busy()
        elif analyzed and result is not None:
            self.analysis_panel.show_result(result)
            self.viewer.set_regions(result.highlighted_regions)
        else:
            self.analysis_panel.show_empty()
            self.viewer.set_regions(())
        self._rebuild_status_bar()

    # --- Export and settings -------------------------------------------------

    def _export_report(self) -> None:
        document = self.session.export_report()
        if document is None:
            return
        directory = self.config.report_directory or Path.home()
        path, _ = QFileDialog.getSaveFileName(
            self,
            "Export report",
            str(directory / report_filename()),
            "Text files (*.txt)",
        )
        if not path:
            return
        try:
            Path(path).write_text(document, encoding="utf-8")
        except OSError as exc:
            QMessageBox.critical(self, "Export failed", str(exc))
            return
        self.statusBar().showMessage(f"Report saved to {path}")

    def _switch_provider(self, name: str) -> None:
        if name == self.config.provider_name:
            return
        if self.session.state == SessionState.ANALYZING:
            QMessageBox.warning(
                self, "Analysis in progress", "Wait for the current analysis to finish."
            )
            return
        self.config = self.settings_store.update(provider_name=name)
        self.session.config = self.config
        self._rebuild_status_bar()

    def _set_busy_cursor(self, active: bool) -> None:
        app = QApplication.instance()
        if app is None:
            return
        if active and not self._cursor_busy:
            QGuiApplication.setOverrideCursor(QtCore.Qt.CursorShape.WaitCursor)
            self._cursor_busy = True
        elif not active and self._cursor_busy:
            QGuiApplication.restoreOverrideCursor()
            self._cursor_busy = False
