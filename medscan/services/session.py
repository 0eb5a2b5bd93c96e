"""Lifecycle of a single scan: selection, analysis and the resulting report."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from threading import Lock

from ..config import AppConfig
from ..errors import AnalysisCancelled, AnalysisInProgress, InvalidInput, SessionStateError
from ..images import ScanImage
from ..providers.base import AnalysisProvider, CancelToken
from ..providers.registry import ProviderRegistry
from ..report import export_report
from ..schema import AnalysisResult

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    EMPTY = "empty"
    IMAGE_SELECTED = "image_selected"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"


StateListener = Callable[["SessionState"], None]


class ScanSession:
    """State machine for one image at a time.

    ``Empty -> ImageSelected -> Analyzing -> Analyzed``. Selecting a new image
    from any state returns to ``ImageSelected`` and drops the previous result;
    :meth:`clear` always returns to ``Empty``. Only one analysis may run at a
    time, and a result that arrives after the image was replaced is discarded.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        provider: AnalysisProvider | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self._provider = provider
        self._provider_pinned = provider is not None
        self._provider_lock = Lock()
        self._lock = Lock()
        self._state = SessionState.EMPTY
        self._image: ScanImage | None = None
        self._result: AnalysisResult | None = None
        self._generation = 0
        self._cancel_token: CancelToken | None = None
        self._listeners: list[StateListener] = []

    # ----- Read-only views ---------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def image(self) -> ScanImage | None:
        return self._image

    @property
    def result(self) -> AnalysisResult | None:
        return self._result

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    # ----- Transitions -------------------------------------------------------

    def select(self, image: ScanImage) -> None:
        """Make ``image`` the current scan, discarding any previous result."""
        if image is None or not image.data:
            raise InvalidInput()
        with self._lock:
            self._supersede()
            self._image = image
            self._result = None
            self._state = SessionState.IMAGE_SELECTED
        logger.info("Selected scan %s (%s)", image.name or "<unnamed>", image.source)
        self._notify(SessionState.IMAGE_SELECTED)

    def clear(self) -> None:
        with self._lock:
            self._supersede()
            self._image = None
            self._result = None
            self._state = SessionState.EMPTY
        self._notify(SessionState.EMPTY)

    def cancel(self) -> None:
        """Request cancellation of the running analysis, if any."""
        with self._lock:
            if self._cancel_token is not None:
                self._cancel_token.cancel()

    def analyze(self, *, cancel_token: CancelToken | None = None) -> AnalysisResult:
        """Run the configured provider on the selected image.

        Raises the provider's error after returning to ``ImageSelected`` on
        failure. Raises :class:`AnalysisCancelled` when the call was cancelled
        or the image was replaced while the provider was working.
        """
        token = cancel_token or CancelToken()
        with self._lock:
            if self._state == SessionState.EMPTY or self._image is None:
                raise InvalidInput()
            if self._state == SessionState.ANALYZING:
                raise AnalysisInProgress()
            if self._state == SessionState.ANALYZED:
                raise SessionStateError(
                    "This scan has already been analyzed; select an image to start again."
                )
            self._state = SessionState.ANALYZING
            self._cancel_token = token
            generation = self._generation
            image = self._image
        self._notify(SessionState.ANALYZING)

        try:
            provider = self._get_provider()
            result = provider.analyze(image, cancel_token=token)
        except AnalysisCancelled:
            self._finish(generation, None)
            logger.info("Analysis cancelled.")
            raise
        except Exception as exc:
            if not self._finish(generation, None):
                raise AnalysisCancelled("Analysis superseded by a new selection.") from exc
            logger.warning("Analysis failed: %s", exc)
            raise

        if token.cancelled:
            self._finish(generation, None)
            raise AnalysisCancelled()
        if not self._finish(generation, result):
            raise AnalysisCancelled("Analysis superseded by a new selection.")
        return result

    def export_report(self) -> str | None:
        """Render the current result as a text report, or None without a result."""
        return export_report(self._result)

    # ----- Internals -----------------------------------------------------------

    def _finish(self, generation: int, result: AnalysisResult | None) -> bool:
        """Leave ``Analyzing``; return False if the call was superseded."""
        with self._lock:
            if generation != self._generation:
                return False
            self._cancel_token = None
            if result is None:
                self._state = SessionState.IMAGE_SELECTED
            else:
                self._result = result
                self._state = SessionState.ANALYZED
            state = self._state
        self._notify(state)
        return True

    def _supersede(self) -> None:
        # Caller holds self._lock.
        self._generation += 1
        if self._cancel_token is not None:
            self._cancel_token.cancel()
            self._cancel_token = None

    def _notify(self, state: SessionState) -> None:
        for listener in list(self._listeners):
            listener(state)

    def _get_provider(self) -> AnalysisProvider:
        with self._provider_lock:
            if self._provider is None or (
                not self._provider_pinned
                and self._provider.info().identifier != self.config.provider_name
            ):
                logger.info("Loading provider '%s'...", self.config.provider_name)
                self._provider = ProviderRegistry.get(self.config.provider_name, config=self.config)
        return self._provider
