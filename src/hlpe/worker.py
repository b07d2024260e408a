"""
Background worker for the HLPE engine.

Runs the orchestrator on one dedicated daemon thread, isolated from the
caller:

- ``post()`` deep-copies each host message onto an inbox queue
- messages are processed strictly in arrival order
- throttle timers never run analysis themselves; they post a fire token
  to the same inbox, so every pass runs on the worker thread
- results reach the host through ``on_message`` as deep-copied dicts

A pass in progress always runs to completion.
"""

from __future__ import annotations

import copy
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

from config import Settings, get_settings
from src.hlpe.engine import EngineConfig
from src.hlpe.orchestrator import THROTTLE_SECONDS, EngineState, HlpeOrchestrator, start_timer

_STOP = object()


@dataclass
class WorkerStatus:
    """Current worker status."""

    is_running: bool = False
    messages_processed: int = 0
    passes_run: int = 0
    last_error: str | None = None


@dataclass
class _Fire:
    callback: Callable[[], None]


@dataclass
class HlpeWorker:
    """
    Engine host-side handle.

    Usage:
        worker = HlpeWorker(on_message=handle_result)
        worker.start()
        worker.post({"type": "INIT", "payload": snapshot})
        ...
        worker.stop()
    """

    on_message: Callable[[dict[str, Any]], None]
    config: EngineConfig = field(default_factory=EngineConfig)
    throttle_seconds: float = THROTTLE_SECONDS

    # Internal state
    _status: WorkerStatus = field(default_factory=WorkerStatus)
    _inbox: queue.Queue = field(default_factory=queue.Queue, repr=False)
    _thread: threading.Thread | None = field(default=None, repr=False)
    _orchestrator: HlpeOrchestrator | None = field(default=None, repr=False)
    _stopping: bool = field(default=False, repr=False)

    @property
    def status(self) -> WorkerStatus:
        return self._status

    @property
    def engine_state(self) -> EngineState:
        if self._orchestrator is None:
            return EngineState.UNINITIALIZED
        return self._orchestrator.state

    def start(self) -> None:
        """Start the worker thread."""
        if self._status.is_running:
            logger.warning("HLPE worker already running")
            return

        self._orchestrator = HlpeOrchestrator(
            emit=self._deliver,
            config=self.config,
            throttle_seconds=self.throttle_seconds,
            schedule=self._schedule_on_worker,
        )
        self._thread = threading.Thread(target=self._run, name="hlpe-worker", daemon=True)
        self._stopping = False
        self._status.is_running = True
        self._thread.start()
        logger.info("HLPE Worker started.")

    def post(self, message: dict[str, Any]) -> None:
        """Send a message to the engine (copied by value)."""
        if not self._status.is_running or self._stopping:
            logger.warning("Cannot post message: HLPE worker is not running.")
            return
        self._inbox.put(copy.deepcopy(message))

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the worker after the messages already queued."""
        if not self._status.is_running:
            return
        if not self._stopping:
            self._stopping = True
            self._inbox.put(_STOP)
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                # Still inside a pass; the thread clears is_running when it exits
                logger.warning("HLPE worker still busy after {}s, stop pending", timeout)
                return
        self._status.is_running = False
        logger.info("HLPE Worker stopped.")

    def _schedule_on_worker(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        return start_timer(delay, lambda: self._inbox.put(_Fire(callback)))

    def _deliver(self, message: dict[str, Any]) -> None:
        try:
            self.on_message(copy.deepcopy(message))
        except Exception as exc:
            # Host-side failures are not the engine's to retry
            logger.exception("HLPE host callback failed for {}", message.get("type"))
            self._status.last_error = str(exc)

    def _run(self) -> None:
        orchestrator = self._orchestrator
        while True:
            item = self._inbox.get()
            if item is _STOP:
                orchestrator.terminate()
                self._status.is_running = False
                break
            try:
                if isinstance(item, _Fire):
                    item.callback()
                else:
                    orchestrator.handle(item)
                    self._status.messages_processed += 1
            except Exception as exc:
                logger.exception("HLPE worker error")
                self._status.last_error = str(exc)
            self._status.passes_run = orchestrator.passes_run


def start_worker(
    on_message: Callable[[dict[str, Any]], None],
    settings: Settings | None = None,
) -> HlpeWorker:
    """
    Start a worker configured from settings.

    Args:
        on_message: Receives DATA_UPDATED and ANALYSIS_COMPLETE messages
        settings: Engine settings (environment/.env if None)

    Returns:
        The running HlpeWorker
    """
    settings = settings or get_settings()
    worker = HlpeWorker(
        on_message=on_message,
        config=EngineConfig.from_settings(settings),
        throttle_seconds=settings.throttle_seconds,
    )
    worker.start()
    return worker
