"""Waveform orchestration: cache lookup, background generation, write-through.

This module has ZERO Qt dependencies. Results are delivered through
futures and a plain callback; ``bridge.py`` adapts them to Qt signals.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import numpy as np

from ..config import config
from .decoder import AudioDecoder, DecodeError
from .identity import cache_key_for
from .pipeline import extract_envelope
from .store import EnvelopeCacheStore

logger = logging.getLogger(__name__)


class WaveformState(str, Enum):
    """Lifecycle of one envelope request."""

    IDLE = "idle"
    RESOLVING = "resolving"
    CACHE_HIT = "cache_hit"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class EnvelopeResult:
    """Outcome of an envelope request, tagged with its file-open generation."""

    file_path: str
    key: Optional[str]
    envelope: Optional[np.ndarray]
    state: WaveformState
    generation: int = 0

    @property
    def ok(self) -> bool:
        return self.envelope is not None


class EnvelopeRequest:
    """Handle returned by ``WaveformProvider.request_envelope``.

    On a cache hit ``cached`` holds the envelope and ``generating`` is
    False. On a miss the envelope arrives later through ``result()``.
    """

    def __init__(
        self,
        file_path: str,
        key: Optional[str],
        generation: int,
        state: WaveformState,
        cached: Optional[np.ndarray] = None,
    ) -> None:
        self.file_path = file_path
        self.key = key
        self.generation = generation
        self.state = state
        self.cached = cached
        self.future: Future = Future()
        self._cancelled = False

        if state == WaveformState.CACHE_HIT:
            self.future.set_result(self._make_result(cached, state))

    @property
    def generating(self) -> bool:
        return self.state == WaveformState.GENERATING

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Withdraw interest in the result.

        The underlying decode still runs to completion and is still
        written to the cache; only delivery to this caller is suppressed.
        """
        self._cancelled = True

    def result(self, timeout: Optional[float] = None) -> EnvelopeResult:
        """Block until the envelope is available."""
        return self.future.result(timeout=timeout)

    def _make_result(self, envelope: Optional[np.ndarray], state: WaveformState) -> EnvelopeResult:
        return EnvelopeResult(
            file_path=self.file_path,
            key=self.key,
            envelope=envelope,
            state=state,
            generation=self.generation,
        )

    def _finish(self, envelope: Optional[np.ndarray]) -> EnvelopeResult:
        if self._cancelled:
            state = WaveformState.CANCELLED
        elif envelope is None:
            state = WaveformState.FAILED
        else:
            state = WaveformState.COMPLETED
        self.state = state
        result = self._make_result(envelope, state)
        self.future.set_result(result)
        return result


class WaveformProvider:
    """Returns cached envelopes immediately and generates missing ones.

    Generation runs on a thread pool. Concurrent requests for the same
    cache key share one decode. The cache write always happens before a
    result is delivered, so a later request in the same process sees the
    new entry.

    Args:
        store: Cache store. Defaults to one rooted at the configured
               cache directory.
        decoder: Audio decoder passed to the pipeline.
        max_workers: Thread pool size.
        on_result: Called from a worker thread with each finished,
                   non-cancelled ``EnvelopeResult``.
    """

    def __init__(
        self,
        store: Optional[EnvelopeCacheStore] = None,
        decoder: Optional[AudioDecoder] = None,
        max_workers: Optional[int] = None,
        on_result: Optional[Callable[[EnvelopeResult], None]] = None,
    ) -> None:
        self.store = store or EnvelopeCacheStore()
        self.decoder = decoder or AudioDecoder()
        self.on_result = on_result
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or config.max_workers,
            thread_name_prefix="waveform",
        )
        self._lock = threading.Lock()
        self._in_flight: dict[str, Future] = {}

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    @property
    def is_generating(self) -> bool:
        return self.in_flight_count > 0

    def request_envelope(self, file_path: str | Path, generation: int = 0) -> EnvelopeRequest:
        """Look up or start generating the envelope for a file.

        Args:
            file_path: Media file to provide a waveform for.
            generation: File-open counter of the caller, echoed back in the
                        result so stale deliveries can be recognised.

        Returns:
            An ``EnvelopeRequest``; check ``cached`` for a synchronous hit.
        """
        file_path = str(file_path)
        key = cache_key_for(file_path)

        if key is not None:
            cached = self.store.get(key)
            if cached is not None:
                return EnvelopeRequest(
                    file_path, key, generation, WaveformState.CACHE_HIT, cached=cached
                )

        request = EnvelopeRequest(file_path, key, generation, WaveformState.GENERATING)
        job = self._job_for(file_path, key)
        job.add_done_callback(lambda f: self._deliver(request, f))
        return request

    def provide(self, file_path: str | Path, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        """Blocking convenience: return the envelope, or None on failure."""
        return self.request_envelope(file_path).result(timeout=timeout).envelope

    def clear_cache(self) -> int:
        """Delete all cached envelopes."""
        return self.store.clear_all()

    def cache_size(self) -> str:
        """Human-readable size of the envelope cache."""
        return self.store.total_size_human()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _job_for(self, file_path: str, key: Optional[str]) -> Future:
        if key is None:
            # Unreadable identity: generate, but nothing can be cached
            return self._executor.submit(self._generate, file_path, None)

        with self._lock:
            job = self._in_flight.get(key)
            if job is not None:
                logger.debug("Joining in-flight waveform generation for %s", file_path)
                return job
            job = self._executor.submit(self._generate, file_path, key)
            self._in_flight[key] = job

        job.add_done_callback(lambda f: self._forget(key, f))
        return job

    def _forget(self, key: str, job: Future) -> None:
        with self._lock:
            if self._in_flight.get(key) is job:
                del self._in_flight[key]

    def _generate(self, file_path: str, key: Optional[str]) -> Optional[np.ndarray]:
        try:
            envelope = extract_envelope(file_path, self.decoder)
        except DecodeError:
            logger.warning("Waveform generation failed for %s", file_path, exc_info=True)
            return None
        except Exception:
            logger.exception("Unexpected error generating waveform for %s", file_path)
            return None

        if key is not None:
            self.store.put(key, envelope)
        return envelope

    def _deliver(self, request: EnvelopeRequest, job: Future) -> None:
        envelope = None if job.cancelled() else job.result()
        result = request._finish(envelope)
        if result.state == WaveformState.CANCELLED or self.on_result is None:
            return
        try:
            self.on_result(result)
        except Exception:
            logger.exception("Waveform result callback failed for %s", request.file_path)
