"""Abstract interfaces for scan analysis providers."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Event
from typing import Protocol, Sequence

from ..errors import AnalysisCancelled
from ..images import ScanImage
from ..schema import AnalysisResult


@dataclass(slots=True)
class ProviderInfo:
    """Metadata describing an available provider implementation."""

    identifier: str
    display_name: str
    description: str
    tags: Sequence[str] = ()


class CancelToken:
    """Cooperative cancellation flag shared between a caller and a running analysis."""

    def __init__(self) -> None:
        self._event = Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; return True if cancelled meanwhile."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AnalysisCancelled()


class AnalysisProvider(Protocol):
    """Interface that all analysis providers must satisfy."""

    def info(self) -> ProviderInfo:
        """Return metadata describing the provider."""

    def load(self) -> None:
        """Perform any expensive initialisation (HTTP sessions, credentials)."""

    def analyze(
        self, image: ScanImage, *, cancel_token: CancelToken | None = None
    ) -> AnalysisResult:
        """Analyse one scan image and return a complete result."""
