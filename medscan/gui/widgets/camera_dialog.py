"""Dialog capturing a scan photo from a camera."""

from __future__ import annotations

import io

from PIL import Image
from PySide6.QtCore import QBuffer, QByteArray, QIODevice
from PySide6.QtGui import QImage
from PySide6.QtMultimedia import (
    QCamera,
    QCameraDevice,
    QImageCapture,
    QMediaCaptureSession,
    QMediaDevices,
)
from PySide6.QtMultimediaWidgets import QVideoWidget
from PySide6.QtWidgets import QDialog, QHBoxLayout, QPushButton, QVBoxLayout, QWidget

from ...errors import CaptureUnavailable
from ...images import ScanImage


def pick_camera() -> QCameraDevice:
    """Return the back-facing camera if there is one, else the first camera."""
    devices = QMediaDevices.videoInputs()
    if not devices:
        raise CaptureUnavailable("No camera is available on this device.")
    for device in devices:
        if device.position() == QCameraDevice.Position.BackFace:
            return device
    return devices[0]


class CameraDialog(QDialog):
    """Live preview with a capture button; the frame is re-encoded as JPEG."""

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Capture Scan")
        self.resize(720, 560)
        self._captured: ScanImage | None = None
        self._error: str | None = None

        self._camera = QCamera(pick_camera())
        self._capture = QImageCapture()
        self._session = QMediaCaptureSession()
        self._session.setCamera(self._camera)
        self._session.setImageCapture(self._capture)

        self._video = QVideoWidget()
        self._session.setVideoOutput(self._video)

        self._capture_btn = QPushButton("Capture")
        self._capture_btn.clicked.connect(self._capture.capture)
        cancel_btn = QPushButton("Cancel")
        cancel_btn.clicked.connect(self.reject)

        buttons = QHBoxLayout()
        buttons.addStretch()
        buttons.addWidget(cancel_btn)
        buttons.addWidget(self._capture_btn)

        layout = QVBoxLayout(self)
        layout.addWidget(self._video, stretch=1)
        layout.addLayout(buttons)

        self._capture.imageCaptured.connect(self._on_image_captured)
        self._camera.errorOccurred.connect(self._on_camera_error)
        self._camera.start()

    @property
    def captured_image(self) -> ScanImage | None:
        return self._captured

    @property
    def error_message(self) -> str | None:
        return self._error

    def done(self, result: int) -> None:
        self._camera.stop()
        super().done(result)

    def _on_image_captured(self, _request_id: int, frame: QImage) -> None:
        data = QByteArray()
        buffer = QBuffer(data)
        buffer.open(QIODevice.OpenModeFlag.WriteOnly)
        frame.save(buffer, "PNG")
        buffer.close()
        with Image.open(io.BytesIO(bytes(data.data()))) as captured:
            self._captured = ScanImage.from_pil(captured, source="camera", name="camera.jpg")
        self.accept()

    def _on_camera_error(self, _error: QCamera.Error, message: str) -> None:
        self._error = message or "Unable to access camera. Please check permissions."
        self.reject()
