"""Service layer coordinating scan selection, analysis and export."""

from .session import ScanSession, SessionState

__all__ = ["ScanSession", "SessionState"]
