"""
Unit tests for the HLPE orchestrator.

Timers are replaced by a manual scheduler so throttling is tested without
sleeping: a scheduled pass runs only when the test fires it.
"""

import numpy as np
import pytest

from src.hlpe.orchestrator import EngineState, HlpeOrchestrator, PendingTrigger


class ManualHandle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Stands in for threading.Timer."""

    def __init__(self):
        self.handles = []

    def __call__(self, delay, callback):
        handle = ManualHandle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def fire_all(self):
        handles, self.handles = self.handles, []
        for handle in handles:
            if not handle.cancelled:
                handle.callback()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def orchestrator(scheduler, emitted, now):
    return HlpeOrchestrator(
        emit=emitted.append,
        throttle_seconds=10.0,
        schedule=scheduler,
        clock=lambda: now,
        rng=np.random.default_rng(0),
    )


def _types(messages):
    return [m["type"] for m in messages]


def _analyze(event, data=None):
    payload = {"event": event}
    if data is not None:
        payload["data"] = data
    return {"type": "ANALYZE", "payload": payload}


class TestPendingTrigger:
    def test_first_request_schedules(self, scheduler):
        trigger = PendingTrigger(5.0, scheduler)
        assert trigger.request(lambda: None) is True
        assert trigger.is_pending
        assert scheduler.handles[0].delay == 5.0

    def test_later_requests_absorbed(self, scheduler):
        calls = []
        trigger = PendingTrigger(5.0, scheduler)
        for i in range(4):
            trigger.request(lambda i=i: calls.append(i))

        scheduler.fire_all()

        assert len(scheduler.handles) == 0
        assert calls == [3]
        assert trigger.absorbed == 3
        assert not trigger.is_pending

    def test_cancel(self, scheduler):
        trigger = PendingTrigger(5.0, scheduler)
        trigger.request(lambda: None)
        trigger.cancel()
        assert scheduler.pending == []
        assert not trigger.is_pending


class TestInit:
    def test_runs_pass_immediately(self, orchestrator, emitted, sample_payload):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})

        assert _types(emitted) == ["DATA_UPDATED", "ANALYSIS_COMPLETE"]
        assert orchestrator.state is EngineState.READY
        assert orchestrator.passes_run == 1

    def test_snapshot_holds_patched_state(self, orchestrator, sample_payload):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})

        snapshot = orchestrator.snapshot
        assert snapshot.user_metrics.user_elo == 999
        assert snapshot.find_question("q1").elo == 984
        assert snapshot.find_question("q2").last_attempt_correct is False

    def test_reinit_replaces_snapshot(self, orchestrator, sample_payload, make_batch):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})
        orchestrator.handle({"type": "INIT", "payload": {"batches": [make_batch("other")]}})

        assert [b.id for b in orchestrator.snapshot.batches] == ["other"]
        assert orchestrator.passes_run == 2


class TestProtocolErrors:
    def test_analyze_before_init_dropped(self, orchestrator, emitted, scheduler):
        orchestrator.handle(_analyze("app_load"))

        assert emitted == []
        assert scheduler.handles == []
        assert orchestrator.state is EngineState.UNINITIALIZED

    @pytest.mark.parametrize("raw", [{"type": "RESET"}, _analyze("reboot"), "junk"])
    def test_unknown_messages_dropped(self, orchestrator, emitted, sample_payload, raw):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})
        emitted.clear()

        orchestrator.handle(raw)

        assert emitted == []
        assert orchestrator.state is EngineState.READY

    def test_terminated_engine_drops_messages(self, orchestrator, emitted, scheduler, sample_payload):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})
        orchestrator.terminate()
        emitted.clear()

        orchestrator.handle(_analyze("app_load"))
        orchestrator.handle({"type": "INIT", "payload": sample_payload})

        assert emitted == []
        assert scheduler.handles == []
        assert orchestrator.state is EngineState.TERMINATED


class TestThrottle:
    def test_analyze_schedules_one_pass(self, orchestrator, emitted, scheduler, sample_payload):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})
        emitted.clear()

        orchestrator.handle(_analyze("app_load"))

        assert emitted == []
        assert len(scheduler.handles) == 1
        assert scheduler.handles[0].delay == 10.0
        assert orchestrator.state is EngineState.ANALYZING

    def test_burst_yields_one_report(self, orchestrator, emitted, scheduler, sample_payload):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})
        emitted.clear()

        for _ in range(5):
            orchestrator.handle(_analyze("app_load"))
        assert len(scheduler.handles) == 1

        scheduler.fire_all()

        assert _types(emitted) == ["DATA_UPDATED", "ANALYSIS_COMPLETE"]
        assert orchestrator.state is EngineState.READY

    def test_pass_uses_snapshot_at_fire_time(
        self, orchestrator, emitted, scheduler, sample_payload, make_exam, make_question
    ):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})
        emitted.clear()

        q1 = make_question("q1")
        for exam_id in ["e2", "e3", "e4"]:
            orchestrator.handle(_analyze("exam_completed", make_exam(exam_id, results=[(q1, True)])))
        scheduler.fire_all()

        assert [e.id for e in orchestrator.snapshot.exam_history] == ["e4", "e3", "e2", "e1"]
        report = emitted[-1]["payload"]
        # Four sessions are on the trend line, not just the first two
        assert len(report["scoreTrend"]) == 4
        # Only the latest exam is rated
        assert [p["id"] for p in emitted[0]["payload"]["updatedQuestions"]] == ["q1"]

    def test_new_window_after_fire(self, orchestrator, emitted, scheduler, sample_payload):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})
        orchestrator.handle(_analyze("app_load"))
        scheduler.fire_all()

        orchestrator.handle(_analyze("app_load"))

        assert len(scheduler.handles) == 1
        assert orchestrator.has_pending_pass

    def test_init_while_pending_keeps_slot(self, orchestrator, scheduler, sample_payload):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})
        orchestrator.handle(_analyze("app_load"))
        orchestrator.handle({"type": "INIT", "payload": sample_payload})

        assert orchestrator.state is EngineState.ANALYZING
        assert orchestrator.has_pending_pass

    def test_terminate_cancels_pending(self, orchestrator, emitted, scheduler, sample_payload):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})
        orchestrator.handle(_analyze("app_load"))
        emitted.clear()

        orchestrator.terminate()
        scheduler.fire_all()

        assert emitted == []
        assert not orchestrator.has_pending_pass


class TestMcqAdded:
    def test_question_appended_to_batch(self, orchestrator, sample_payload, make_question):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})
        orchestrator.handle(_analyze("mcq_added", make_question("q3", "b1")))

        assert [q.id for q in orchestrator.snapshot.questions] == ["q1", "q2", "q3"]

    def test_unknown_batch_ignored(self, orchestrator, scheduler, sample_payload, make_question):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})
        orchestrator.handle(_analyze("mcq_added", make_question("q3", "missing")))

        assert [q.id for q in orchestrator.snapshot.questions] == ["q1", "q2"]
        # The trigger still counts
        assert len(scheduler.handles) == 1

    def test_duplicate_id_ignored(self, orchestrator, sample_payload, make_question):
        orchestrator.handle({"type": "INIT", "payload": sample_payload})
        orchestrator.handle(_analyze("mcq_added", make_question("q1", "b1", question="changed")))

        assert orchestrator.snapshot.find_question("q1").question == "Question q1"
