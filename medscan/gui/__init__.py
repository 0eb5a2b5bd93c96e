"""PySide6 desktop interface for MedScan."""

from .app import run_app

__all__ = ["run_app"]
