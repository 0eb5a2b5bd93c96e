"""Top-level package for the MedScan triage tool."""

from .config import AppConfig
from .images import ScanImage
from .report import export_report
from .schema import AnalysisResult, coerce_result
from .services.session import ScanSession, SessionState
from .settings_store import SettingsStore

__all__ = [
    "AnalysisResult",
    "AppConfig",
    "ScanImage",
    "ScanSession",
    "SessionState",
    "SettingsStore",
    "coerce_result",
    "export_report",
]
