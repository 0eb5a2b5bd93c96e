"""Qt worker objects used to run analysis off the main thread."""

from __future__ import annotations

from PySide6.QtCore import QObject, QRunnable, Signal

from ..errors import AnalysisCancelled
from ..providers.base import CancelToken
from ..services.session import ScanSession


class WorkerSignals(QObject):
    finished = Signal(object)
    error = Signal(str)
    cancelled = Signal()


class AnalysisWorker(QRunnable):
    """Runs one ``ScanSession.analyze`` call on a pool thread."""

    def __init__(self, session: ScanSession) -> None:
        super().__init__()
        self.session = session
        self.cancel_token = CancelToken()
        self.signals = WorkerSignals()

    def run(self) -> None:
        try:
            result = self.session.analyze(cancel_token=self.cancel_token)
        except AnalysisCancelled:
            self.signals.cancelled.emit()
        except Exception as exc:  # pragma: no cover - surfaced in a message box
            self.signals.error.emit(str(exc))
        else:
            self.signals.finished.emit(result)
