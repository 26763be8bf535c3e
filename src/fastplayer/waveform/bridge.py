"""Qt signal bridge for WaveformProvider.

Translates provider callbacks into Qt signals for thread-safe UI updates.
This is the ONLY file in the waveform module that imports PySide6.
"""

import logging
from typing import Callable, Optional

from PySide6.QtCore import QObject, QTimer, Signal, Slot

from ..config import POSITION_POLL_INTERVAL_MS
from .provider import EnvelopeResult, WaveformProvider, WaveformState

logger = logging.getLogger(__name__)


class WaveformBridge(QObject):
    """Wraps WaveformProvider with Qt signals.

    Each ``open_file`` call starts a new file-open generation. Results
    from background generation are posted back to the bridge's thread and
    dropped there if they belong to an older generation, so a slow decode
    can never overwrite the waveform of a file opened after it.
    """

    envelope_ready = Signal(object)  # EnvelopeResult
    generating_changed = Signal(bool)
    position_changed = Signal(float)
    cache_cleared = Signal()

    # Emitted from worker threads; Qt queues it onto the bridge's thread
    _result_posted = Signal(object)

    def __init__(self, provider: Optional[WaveformProvider] = None, parent=None):
        super().__init__(parent)
        self._provider = provider or WaveformProvider()
        self._provider.on_result = self._result_posted.emit
        self._result_posted.connect(self._accept_result)

        self._generation = 0
        self._current_path: Optional[str] = None
        self._state = WaveformState.IDLE
        self._generating = False

        self._position_source: Optional[Callable[[], float]] = None
        self._position_timer = QTimer(self)
        self._position_timer.setInterval(POSITION_POLL_INTERVAL_MS)
        self._position_timer.timeout.connect(self._poll_position)

    @property
    def provider(self) -> WaveformProvider:
        """Access the underlying WaveformProvider."""
        return self._provider

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def current_path(self) -> Optional[str]:
        return self._current_path

    @property
    def state(self) -> WaveformState:
        return self._state

    @property
    def is_generating(self) -> bool:
        return self._generating

    # --- Slots for UI ---

    @Slot(str)
    def open_file(self, file_path: str) -> None:
        """Request the waveform for a newly opened file."""
        self._generation += 1
        self._current_path = file_path
        self._state = WaveformState.RESOLVING

        request = self._provider.request_envelope(file_path, self._generation)
        self._state = request.state
        if request.cached is not None:
            self._set_generating(False)
            self.envelope_ready.emit(request.future.result())
        elif request.generating:
            # A job that already finished was delivered synchronously
            self._set_generating(True)

    @Slot()
    def clear_cache(self) -> None:
        self._provider.clear_cache()
        self.cache_cleared.emit()

    def cache_size(self) -> str:
        return self._provider.cache_size()

    def start_position_polling(self, source: Callable[[], float]) -> None:
        """Poll ``source`` for the playback position ten times a second."""
        self._position_source = source
        self._position_timer.start()

    def stop_position_polling(self) -> None:
        self._position_timer.stop()
        self._position_source = None

    def shutdown(self) -> None:
        self.stop_position_polling()
        self._provider.shutdown(wait=False)

    # --- Internal ---

    def _set_generating(self, generating: bool) -> None:
        if generating != self._generating:
            self._generating = generating
            self.generating_changed.emit(generating)

    @Slot(object)
    def _accept_result(self, result: EnvelopeResult) -> None:
        if result.generation != self._generation:
            logger.debug(
                "Dropping stale waveform for %s (generation %d, current %d)",
                result.file_path,
                result.generation,
                self._generation,
            )
            return
        self._state = result.state
        self._set_generating(False)
        self.envelope_ready.emit(result)

    def _poll_position(self) -> None:
        if self._position_source is None:
            return
        try:
            position = float(self._position_source())
        except Exception:
            logger.debug("Position source failed", exc_info=True)
            return
        self.position_changed.emit(position)
