"""
test_watchdog.py - Classification, action ordering and fail-safety of ViolationWatchdog
"""

import io
import logging
import threading
import time
from unittest.mock import MagicMock

import pytest

from strictwatch import actions
from strictwatch.categories import ALL_CATEGORIES, Action, ViolationCategory
from strictwatch.errors import ErrorCode
from strictwatch.host import HostCapabilities
from strictwatch.policy import Policy
from strictwatch.sinks import HttpSink, MemorySink
from strictwatch.violation import ALLOWED, Decision, Operation, create_violation
from strictwatch.watchdog import ViolationWatchdog

from conftest import RecordingSink


def make_watchdog(policy, sink, host, calls=None, **kwargs):
    terminator = MagicMock(side_effect=lambda v: calls.append("terminate") if calls is not None else None)
    flasher = MagicMock(side_effect=lambda v: calls.append("flash") if calls is not None else None)
    watchdog = ViolationWatchdog(policy, sink=sink, host=host, terminator=terminator, flasher=flasher, **kwargs)
    return watchdog, terminator, flasher


@pytest.fixture
def log_calls(monkeypatch, calls):
    original = actions.log_violation

    def recording_log(violation):
        calls.append("log")
        original(violation)

    monkeypatch.setattr(actions, "log_violation", recording_log)
    return calls


class TestClassification:
    def test_disabled_category_is_allowed_and_unreported(self, sink, interactive_host):
        policy = Policy(categories=[ViolationCategory.NETWORK_CALL], actions=[Action.LOG])
        watchdog, _, _ = make_watchdog(policy, sink, interactive_host)

        for category in ALL_CATEGORIES - {ViolationCategory.NETWORK_CALL}:
            assert watchdog.observe(Operation(category, "MainThread")) == ALLOWED
        assert sink.reports == []

    def test_enabled_category_is_violation_with_one_report(self, sink, interactive_host):
        policy = Policy.detect_all(actions=[])
        watchdog, _, _ = make_watchdog(policy, sink, interactive_host)

        for category in ViolationCategory:
            decision = watchdog.observe(Operation(category, "MainThread", "op"))
            assert decision == Decision.violation(category)
            assert decision.is_violation and not decision.allowed
        assert [v.category for v in sink.reports] == list(ViolationCategory)

    def test_network_policy_logs_once_and_nothing_else(self, sink, interactive_host, log_calls, caplog):
        policy = Policy(categories=["network-call"], actions=["log"])
        watchdog, terminator, flasher = make_watchdog(policy, sink, interactive_host)

        with caplog.at_level(logging.WARNING, logger="strictwatch.violations"):
            assert watchdog.observe(Operation(ViolationCategory.DISK_WRITE, "MainThread")) == ALLOWED
            decision = watchdog.observe(Operation(ViolationCategory.NETWORK_CALL, "MainThread", "GET /"))

        assert decision == Decision.violation(ViolationCategory.NETWORK_CALL)
        assert log_calls.count("log") == 1
        assert len(sink.reports) == 1
        flasher.assert_not_called()
        terminator.assert_not_called()
        records = [r for r in caplog.records if r.name == "strictwatch.violations"]
        assert len(records) == 1
        assert records[0].violation["category"] == "network-call"

    def test_terminate_is_always_last(self, sink, interactive_host, log_calls):
        policy = Policy(categories=["resource-leak"], actions=["terminate-process", "log"])
        watchdog, terminator, _ = make_watchdog(policy, sink, interactive_host, calls=log_calls)

        watchdog.observe(Operation(ViolationCategory.RESOURCE_LEAK, "finalizer", "FileIO not closed"))

        assert log_calls == ["log", "report", "terminate"]
        terminator.assert_called_once()

    def test_all_actions_order(self, sink, interactive_host, log_calls):
        policy = Policy(categories=["disk-read"], actions=list(Action))
        watchdog, _, _ = make_watchdog(policy, sink, interactive_host, calls=log_calls)

        watchdog.observe(Operation(ViolationCategory.DISK_READ, "MainThread"))

        assert log_calls == ["log", "flash", "report", "terminate"]

    def test_empty_policy_never_reports(self, sink, interactive_host):
        watchdog, terminator, flasher = make_watchdog(Policy.empty(), sink, interactive_host)
        for category in ViolationCategory:
            for context in ("MainThread", "worker"):
                assert watchdog.observe(Operation(category, context)) == ALLOWED
        assert sink.reports == []
        terminator.assert_not_called()
        flasher.assert_not_called()

    def test_thread_scope_respects_sensitive_contexts(self, sink, interactive_host):
        policy = Policy(
            categories=["disk-write", "resource-leak"],
            sensitive_contexts=["MainThread"],
        )
        watchdog, _, _ = make_watchdog(policy, sink, interactive_host)

        assert watchdog.observe(Operation(ViolationCategory.DISK_WRITE, "worker-3")) == ALLOWED
        assert watchdog.observe(Operation(ViolationCategory.DISK_WRITE, "MainThread")).is_violation
        assert watchdog.observe(Operation(ViolationCategory.RESOURCE_LEAK, "worker-3")).is_violation
        assert len(sink.reports) == 2

    def test_string_category_is_accepted(self, sink, interactive_host):
        watchdog, _, _ = make_watchdog(Policy(categories=["disk-read"]), sink, interactive_host)
        decision = watchdog.observe(Operation("disk-read", "MainThread"))
        assert decision == Decision.violation(ViolationCategory.DISK_READ)
        assert sink.reports[0].category is ViolationCategory.DISK_READ

    def test_unclassifiable_operation_is_allowed(self, sink, interactive_host):
        watchdog, _, _ = make_watchdog(Policy.detect_all(), sink, interactive_host)
        assert watchdog.observe(Operation("gpu-melt", "MainThread")) == ALLOWED
        assert watchdog.observe(object()) == ALLOWED
        assert sink.reports == []


class TestViolationRecord:
    def test_record_fields(self, sink, interactive_host):
        policy = Policy(name="debug", categories=["disk-read"])
        watchdog, _, _ = make_watchdog(policy, sink, interactive_host)

        decision = watchdog.observe(Operation(ViolationCategory.DISK_READ, "MainThread", "read prefs.xml"))

        record = decision.record
        assert record is sink.reports[0]
        assert record.operation == "read prefs.xml"
        assert record.context_id == "MainThread"
        assert record.policy_name == "debug"
        assert record.policy_hash == policy.policy_hash
        assert record.timestamp_wall.endswith("Z")
        assert record.to_dict()["category"] == "disk-read"

    def test_each_observation_gets_its_own_record(self, sink, interactive_host):
        watchdog, _, _ = make_watchdog(Policy(categories=["disk-read"]), sink, interactive_host)
        op = Operation(ViolationCategory.DISK_READ, "MainThread")
        watchdog.observe(op)
        watchdog.observe(op)
        assert len({v.violation_id for v in sink.reports}) == 2

    def test_operation_here_uses_current_thread(self):
        op = Operation.here(ViolationCategory.DISK_READ, "x")
        assert op.context_id == threading.current_thread().name


class TestHostDegradation:
    def test_unsupported_action_dropped_with_single_notice(self, sink, headless_host, caplog):
        notices = []
        policy = Policy(categories=["disk-read"], actions=["log", "visual-alert"])

        with caplog.at_level(logging.WARNING, logger="strictwatch.watchdog"):
            watchdog, _, flasher = make_watchdog(policy, sink, headless_host, on_notice=notices.append)

        assert watchdog.effective_actions == frozenset({Action.LOG})
        assert watchdog.requested_policy.actions == frozenset({Action.LOG, Action.VISUAL_ALERT})
        assert len(watchdog.notices) == 1
        assert watchdog.notices[0].code == ErrorCode.UNSUPPORTED_ACTION
        assert notices == list(watchdog.notices)
        assert len([r for r in caplog.records if r.name == "strictwatch.watchdog"]) == 1

        assert watchdog.observe(Operation(ViolationCategory.DISK_READ, "MainThread")).is_violation
        flasher.assert_not_called()

    def test_several_unsupported_actions_still_one_notice(self, sink):
        host = HostCapabilities(interactive=False, can_terminate=False)
        policy = Policy(categories=["disk-read"], actions=list(Action))
        watchdog, terminator, _ = make_watchdog(policy, sink, host)

        assert len(watchdog.notices) == 1
        assert watchdog.notices[0].details["dropped_actions"] == ["terminate-process", "visual-alert"]
        watchdog.observe(Operation(ViolationCategory.DISK_READ, "MainThread"))
        terminator.assert_not_called()

    def test_supported_actions_produce_no_notice(self, sink, interactive_host):
        watchdog, _, _ = make_watchdog(Policy.detect_all(actions=list(Action)), sink, interactive_host)
        assert watchdog.notices == ()

    def test_failing_notice_callback_does_not_break_startup(self, sink, headless_host):
        def explode(notice):
            raise RuntimeError("boom")

        watchdog, _, _ = make_watchdog(
            Policy(categories=["disk-read"], actions=["visual-alert"]), sink, headless_host, on_notice=explode
        )
        assert watchdog.effective_actions == frozenset()


class TestFailSafety:
    def test_failing_sink_is_swallowed_and_terminate_still_runs(self, interactive_host, caplog):
        sink = MagicMock()
        sink.report.side_effect = OSError("disk full")
        policy = Policy(categories=["disk-write"], actions=["terminate-process"])
        watchdog, terminator, _ = make_watchdog(policy, sink, interactive_host)

        with caplog.at_level(logging.WARNING, logger="strictwatch.watchdog"):
            decision = watchdog.observe(Operation(ViolationCategory.DISK_WRITE, "MainThread"))

        assert decision.is_violation
        sink.report.assert_called_once()
        terminator.assert_called_once()
        assert any("failed to deliver" in r.getMessage() for r in caplog.records)

    def test_failing_action_does_not_escape(self, sink, interactive_host):
        policy = Policy(categories=["disk-read"], actions=["visual-alert"])
        watchdog, _, flasher = make_watchdog(policy, sink, interactive_host)
        flasher.side_effect = ValueError("no terminal")

        assert watchdog.observe(Operation(ViolationCategory.DISK_READ, "MainThread")).is_violation
        assert len(sink.reports) == 1

    def test_observations_inside_report_are_exempt(self, interactive_host):
        inner_decisions = []

        class ChattySink(RecordingSink):
            def report(self, violation):
                super().report(violation)
                # A sink writing to disk would itself look like a disk-write
                inner_decisions.append(watchdog.observe(Operation(ViolationCategory.DISK_WRITE, "MainThread")))

        sink = ChattySink()
        watchdog, _, _ = make_watchdog(Policy(categories=["disk-write"]), sink, interactive_host)

        assert watchdog.observe(Operation(ViolationCategory.DISK_WRITE, "MainThread")).is_violation
        assert inner_decisions == [ALLOWED]
        assert len(sink.reports) == 1
        # Guard is released afterwards
        assert watchdog.observe(Operation(ViolationCategory.DISK_WRITE, "MainThread")).is_violation

    def test_concurrent_observers(self, interactive_host):
        sink = MemorySink(capacity=10_000)
        watchdog, _, _ = make_watchdog(Policy(categories=["network-call"]), sink, interactive_host)
        per_thread = 200

        def worker(n):
            for i in range(per_thread):
                category = ViolationCategory.NETWORK_CALL if i % 2 else ViolationCategory.DISK_READ
                watchdog.observe(Operation(category, f"worker-{n}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(sink) == 8 * per_thread // 2
        assert sink.dropped_count == 0

    def test_callable_alias(self, sink, interactive_host):
        watchdog, _, _ = make_watchdog(Policy(categories=["disk-read"]), sink, interactive_host)
        assert watchdog(Operation(ViolationCategory.DISK_READ, "MainThread")).is_violation


class TestReportingPathDoesNotBlock:
    def test_flash_returns_before_terminal_is_restored(self, sink, interactive_host, monkeypatch):
        monkeypatch.setattr(actions, "FLASH_SECONDS", 0.5)
        stream = io.StringIO()
        watchdog = ViolationWatchdog(
            Policy(categories=["disk-read"], actions=["visual-alert"]),
            sink=sink,
            host=interactive_host,
            flasher=lambda v: actions.flash_terminal(v, stream),
            terminator=MagicMock(),
        )

        started = time.monotonic()
        decision = watchdog.observe(Operation(ViolationCategory.DISK_READ, "MainThread"))
        elapsed = time.monotonic() - started

        assert decision.is_violation
        assert elapsed < 0.25
        assert stream.getvalue() == "\x1b[?5h"

    def test_flash_restores_terminal(self, monkeypatch):
        monkeypatch.setattr(actions, "FLASH_SECONDS", 0.01)
        stream = io.StringIO()
        record = create_violation(Operation(ViolationCategory.DISK_READ, "MainThread"), "p", "0" * 64)

        timer = actions.flash_terminal(record, stream)
        timer.join(timeout=2.0)

        assert stream.getvalue() == "\x1b[?5h\x1b[?5l"


class TestDeliveryBeforeTermination:
    def test_buffering_sink_is_flushed_before_terminate(self, interactive_host):
        sink = HttpSink(
            base_url="http://collector",
            http_client=MagicMock(),
            start_worker=False,
            retry_min_wait=0.0,
            retry_max_wait=0.0,
        )
        sink.http_client.post.return_value = MagicMock(status_code=200)
        seen_at_exit = []

        def terminator(violation):
            seen_at_exit.append((sink.pending.qsize(), sink.http_client.post.call_count))

        watchdog = ViolationWatchdog(
            Policy(categories=["resource-leak"], actions=["terminate-process"]),
            sink=sink,
            host=interactive_host,
            terminator=terminator,
        )
        watchdog.observe(Operation(ViolationCategory.RESOURCE_LEAK, "finalizer"))

        assert seen_at_exit == [(0, 1)]
        assert sink.sent_count == 1

    def test_sink_close_failure_does_not_skip_terminate(self, interactive_host):
        sink = MagicMock()
        sink.close.side_effect = RuntimeError("collector gone")
        terminator = MagicMock()
        watchdog = ViolationWatchdog(
            Policy(categories=["resource-leak"], actions=["terminate-process"]),
            sink=sink,
            host=interactive_host,
            terminator=terminator,
        )

        watchdog.observe(Operation(ViolationCategory.RESOURCE_LEAK, "finalizer"))

        sink.close.assert_called_once()
        terminator.assert_called_once()

    def test_sink_is_not_closed_without_terminate(self, interactive_host):
        sink = MagicMock()
        watchdog = ViolationWatchdog(Policy(categories=["resource-leak"]), sink=sink, host=interactive_host)
        watchdog.observe(Operation(ViolationCategory.RESOURCE_LEAK, "finalizer"))
        sink.close.assert_not_called()


class TestContextCoercion:
    def test_non_string_context_is_recorded_as_string(self, sink, interactive_host):
        watchdog, _, _ = make_watchdog(Policy(categories=["disk-read"]), sink, interactive_host)

        decision = watchdog.observe(Operation(ViolationCategory.DISK_READ, 42, "read"))

        assert decision.record.context_id == "42"
        assert sink.reports[0].context_id == "42"
        assert sink.reports[0].operation == "read"
