"""
HLPE Orchestrator.

Owns the engine's snapshot and sequences analysis passes in response to
host messages.

State machine:
    UNINITIALIZED --INIT--> READY --ANALYZE--> ANALYZING --pass--> READY
    any --terminate()--> TERMINATED

INIT replaces the snapshot and runs a pass immediately. ANALYZE updates the
snapshot from its event and claims the single throttle slot: the first
trigger schedules a pass one throttle window later, triggers arriving while
that pass is pending are absorbed. The pass reads whatever snapshot is
current when the slot fires.

The orchestrator is not thread-safe; HlpeWorker serializes every call onto
one thread.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Protocol

import numpy as np
from loguru import logger

from src.hlpe.engine import EngineConfig, PassResult, run_full_pass
from src.hlpe.errors import ProtocolError
from src.hlpe.messages import (
    AnalyzeCommand,
    AnalyzeEvent,
    InitCommand,
    MessageType,
    envelope,
    parse_host_message,
)
from src.hlpe.models import AnalysisSnapshot

THROTTLE_SECONDS = 10.0


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    ANALYZING = "analyzing"
    TERMINATED = "terminated"


class Cancellable(Protocol):
    def cancel(self) -> None: ...


Schedule = Callable[[float, Callable[[], None]], Cancellable]
Emit = Callable[[dict[str, Any]], None]


def start_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Run ``callback`` on a daemon timer thread after ``delay`` seconds."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class PendingTrigger:
    """
    Single-slot throttle.

    At most one scheduled call is outstanding. ``request`` either starts the
    timer or is absorbed by the one already pending.
    """

    def __init__(self, window: float, schedule: Schedule = start_timer):
        self.window = window
        self._schedule = schedule
        self._handle: Cancellable | None = None
        self._callback: Callable[[], None] | None = None
        self.absorbed = 0

    @property
    def is_pending(self) -> bool:
        return self._handle is not None

    def request(self, callback: Callable[[], None]) -> bool:
        """
        Ask for ``callback`` to run once the window elapses.

        Returns:
            True if this request started the timer, False if it was absorbed
        """
        # Latest request wins if callers pass different callbacks
        self._callback = callback
        if self._handle is not None:
            self.absorbed += 1
            return False
        self._handle = self._schedule(self.window, self.fire)
        return True

    def fire(self) -> None:
        """Release the slot and run the pending callback."""
        callback, self._callback, self._handle = self._callback, None, None
        if callback is not None:
            callback()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._callback = None


class HlpeOrchestrator:
    """
    Reactive engine core.

    Usage:
        orchestrator = HlpeOrchestrator(emit=print, schedule=start_timer)
        orchestrator.handle({"type": "INIT", "payload": {...}})
        orchestrator.handle({"type": "ANALYZE", "payload": {"event": "app_load"}})
    """

    def __init__(
        self,
        emit: Emit,
        config: EngineConfig | None = None,
        throttle_seconds: float = THROTTLE_SECONDS,
        schedule: Schedule = start_timer,
        clock: Callable[[], datetime] | None = None,
        rng: np.random.Generator | None = None,
    ):
        """
        Args:
            emit: Receives every outgoing message as ``{"type", "payload"}``
            config: Pass tunables (defaults if None)
            throttle_seconds: Throttle window for ANALYZE-triggered passes
            schedule: Timer factory; the worker routes timer callbacks back
                onto its own thread
            clock: Source of "now" for review dates
            rng: Random generator for k-means seeding
        """
        self._emit = emit
        self.config = config or EngineConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng
        self._throttle = PendingTrigger(throttle_seconds, schedule)
        self._snapshot: AnalysisSnapshot | None = None
        self._state = EngineState.UNINITIALIZED
        self.passes_run = 0

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def snapshot(self) -> AnalysisSnapshot | None:
        return self._snapshot

    @property
    def has_pending_pass(self) -> bool:
        return self._throttle.is_pending

    # ========================================
    # Message Handling
    # ========================================

    def handle(self, raw: Any) -> None:
        """Process one host message; protocol errors are logged and dropped."""
        try:
            command = parse_host_message(raw)
            if isinstance(command, InitCommand):
                self.init(command.snapshot)
            else:
                self.analyze(command)
        except ProtocolError as exc:
            logger.warning("HLPE dropped message: {}", exc)

    def init(self, snapshot: AnalysisSnapshot) -> PassResult:
        """Replace the snapshot and run a pass right away."""
        if self._state is EngineState.TERMINATED:
            raise ProtocolError(MessageType.INIT.value, "engine is terminated")
        self._snapshot = snapshot
        self._state = EngineState.ANALYZING if self._throttle.is_pending else EngineState.READY
        logger.info("HLPE state initialized.")
        return self.run_pass()

    def analyze(self, command: AnalyzeCommand) -> None:
        """Fold the event into the snapshot and request a throttled pass."""
        if self._snapshot is None or self._state is EngineState.TERMINATED:
            raise ProtocolError(
                MessageType.ANALYZE.value,
                f"analysis requested while {self._state.value}",
            )

        if command.event is AnalyzeEvent.EXAM_COMPLETED and command.exam is not None:
            self._snapshot = self._snapshot.with_exam(command.exam)
        elif command.event is AnalyzeEvent.MCQ_ADDED and command.question is not None:
            self._add_question(command)

        if self._throttle.request(self._run_throttled_pass):
            self._state = EngineState.ANALYZING
            logger.debug("HLPE: pass scheduled in {}s", self._throttle.window)
        else:
            logger.debug("HLPE: {} trigger absorbed by pending pass", command.event.value)

    def _add_question(self, command: AnalyzeCommand) -> None:
        question = command.question
        if self._snapshot.find_question(question.id) is not None:
            logger.warning("HLPE: question {} already known, not added", question.id)
            return
        updated = self._snapshot.with_question(question)
        if updated is None:
            logger.warning("HLPE: batch {} unknown, question {} not added", question.batch_id, question.id)
            return
        self._snapshot = updated

    # ========================================
    # Analysis
    # ========================================

    def _run_throttled_pass(self) -> None:
        if self._state is EngineState.TERMINATED:
            return
        self.run_pass()

    def run_pass(self) -> PassResult:
        """Run one full pass and emit DATA_UPDATED then ANALYSIS_COMPLETE."""
        if self._snapshot is None:
            raise ProtocolError(None, "no snapshot to analyze")

        result = run_full_pass(
            self._snapshot,
            config=self.config,
            now=self._clock(),
            rng=self._rng,
            on_data_update=lambda update: self._emit(envelope(MessageType.DATA_UPDATED, update)),
        )
        self._snapshot = result.snapshot
        self._emit(envelope(MessageType.ANALYSIS_COMPLETE, result.report))

        self.passes_run += 1
        if not self._throttle.is_pending:
            self._state = EngineState.READY
        return result

    def terminate(self) -> None:
        """Cancel any pending pass and drop the snapshot."""
        self._throttle.cancel()
        self._snapshot = None
        self._state = EngineState.TERMINATED
        logger.info("HLPE orchestrator terminated")
