"""Tests for the capture scheduler state machine.

Most tests drive the scheduler with ``ManualTaskRunner`` so every acquisition
and tick happens exactly when the test asks for it.
"""

import threading
import time
from unittest.mock import Mock, patch

import numpy as np
import pytest

from app.events.error_bus import ErrorCategory, ErrorSeverity, get_error_bus
from app.events.event_types import (
    DeviceNotAllowedEvent,
    PipelineStateChangedEvent,
    ScanReadEvent,
    UnsupportedPlatformEvent,
)
from app.scanner import CaptureScheduler, ManualTaskRunner, ThreadingTaskRunner
from capture.providers import CaptureProvider
from capture.simulated_provider import SimulatedCaptureProvider
from configs.settings import CaptureConfig
from contracts import DeviceInfo, PipelineState, ScanResult
from decode.oracle import DecodeOracle
from exceptions import DecodeError


def _config(**overrides) -> CaptureConfig:
    values = dict(canvas_width=64, canvas_height=48, update_time_ms=100)
    values.update(overrides)
    return CaptureConfig(**values)


def _oracle(*results) -> Mock:
    oracle = Mock(spec=DecodeOracle)
    if results:
        oracle.decode.side_effect = list(results)
    else:
        oracle.decode.return_value = None
    return oracle


class Recorder:
    """Collects every scanner event published on a bus."""

    def __init__(self, bus):
        self.reads = []
        self.denials = []
        self.unsupported = []
        self.states = []
        bus.subscribe(ScanReadEvent, lambda e: self.reads.append(e.text))
        bus.subscribe(DeviceNotAllowedEvent, self.denials.append)
        bus.subscribe(UnsupportedPlatformEvent, self.unsupported.append)
        bus.subscribe(PipelineStateChangedEvent, lambda e: self.states.append((e.old_state, e.new_state)))


@pytest.fixture
def runner():
    return ManualTaskRunner()


@pytest.fixture
def provider():
    return SimulatedCaptureProvider(width=64, height=48)


def _scanner(runner, provider, oracle=None, **config):
    scanner = CaptureScheduler(
        config=_config(**config),
        provider=provider,
        oracle=oracle if oracle is not None else _oracle(),
        task_runner=runner,
    )
    return scanner, Recorder(scanner.event_bus)


class TestStopBeforeStart:

    def test_stop_before_start_is_silent_noop(self, runner, provider):
        scanner, events = _scanner(runner, provider)

        scanner.stop()
        scanner.stop()

        assert scanner.state is PipelineState.IDLE
        assert events.states == []
        assert runner.pending == []
        assert provider.open_calls == []


class TestSingleShot:

    def test_exactly_one_read_then_stopped(self, runner, provider):
        oracle = _oracle(None, "hello", "never")
        scanner, events = _scanner(runner, provider, oracle, stop_after_scan=True)

        scanner.start()
        runner.run_until_idle()

        assert events.reads == ["hello"]
        assert scanner.state is PipelineState.STOPPED
        assert runner.pending == []
        assert oracle.decode.call_count == 2
        assert provider.captures[0].release_calls == 1
        assert not scanner.connected

    def test_state_sequence(self, runner, provider):
        scanner, events = _scanner(runner, provider, _oracle("hello"))

        scanner.start()
        runner.run_until_idle()

        assert events.states == [
            (PipelineState.IDLE, PipelineState.ACQUIRING),
            (PipelineState.ACQUIRING, PipelineState.STREAMING),
            (PipelineState.STREAMING, PipelineState.STOPPED),
        ]

    def test_on_read_helper_receives_text(self, runner, provider):
        scanner, _ = _scanner(runner, provider, _oracle("payload"))
        handler = Mock()
        scanner.on_read(handler)

        scanner.start()
        runner.run_until_idle()

        handler.assert_called_once_with("payload")

    def test_decode_sees_painted_raster(self, runner, provider):
        oracle = _oracle("ok")
        scanner, _ = _scanner(runner, provider, oracle)

        scanner.start()
        runner.run_until_idle()

        raster = oracle.decode.call_args[0][0]
        assert raster.shape == (48, 64, 3)
        # Simulated test pattern colour
        assert tuple(raster[10, 10]) == (40, 30, 20)


class TestContinuous:

    def test_multiple_reads(self, runner, provider):
        oracle = _oracle()
        oracle.decode.return_value = "again"
        scanner, events = _scanner(runner, provider, oracle, stop_after_scan=False)

        scanner.start()
        runner.run_next()  # acquire
        for _ in range(5):
            runner.run_next()

        assert events.reads == ["again"] * 5
        assert scanner.state is PipelineState.STREAMING
        assert len(runner.pending) == 1

        scanner.stop()
        assert scanner.state is PipelineState.STOPPED
        assert runner.pending == []
        assert provider.captures[0].release_calls == 1

    def test_ticks_follow_update_interval(self, runner, provider):
        oracle = _oracle()
        scanner, _ = _scanner(runner, provider, oracle, update_time_ms=100)

        scanner.start()
        runner.run_next()  # acquire at t=0

        runner.advance(0.05)
        assert scanner.tick_count == 0
        runner.advance(0.06)
        assert scanner.tick_count == 1
        runner.advance(0.1)
        assert scanner.tick_count == 2

        scanner.stop()

    def test_transient_failures_never_abort_scanning(self, runner):
        image = np.full((48, 64, 3), 128, dtype=np.uint8)
        provider = SimulatedCaptureProvider(
            width=64, height=48, frame_source=lambda index: None if index <= 2 else image
        )
        oracle = _oracle(DecodeError("corrupt raster"), "hello")
        scanner, events = _scanner(runner, provider, oracle, debug=True)

        scanner.start()
        runner.run_until_idle()

        assert events.reads == ["hello"]
        assert scanner.failed_tick_count == 3
        assert scanner.tick_count == 4
        assert events.denials == []
        assert scanner.state is PipelineState.STOPPED


class TestAcquisitionFailures:

    def test_denied_acquisition_emits_one_event_and_never_ticks(self, runner):
        provider = SimulatedCaptureProvider(width=64, height=48, deny=True)
        scanner, events = _scanner(runner, provider)
        handler = Mock()
        scanner.on_device_not_allowed(handler)

        scanner.start()
        runner.run_until_idle()

        assert len(events.denials) == 1
        handler.assert_called_once_with()
        assert scanner.tick_count == 0
        assert scanner.state is PipelineState.STOPPED
        assert runner.pending == []
        assert not scanner.session.acquired

    def test_unsupported_platform_skips_enumeration_and_acquisition(self, runner):
        provider = Mock(spec=CaptureProvider)
        provider.name = "mock"
        provider.supported = False
        scanner, events = _scanner(runner, provider)
        handler = Mock()
        scanner.on_unsupported_browser(handler)

        scanner.start()
        runner.run_until_idle()

        assert len(events.unsupported) == 1
        handler.assert_called_once_with()
        assert scanner.state is PipelineState.IDLE
        assert not scanner.supported
        provider.enumerate_devices.assert_not_called()
        provider.open_stream.assert_not_called()
        assert runner.pending == []


class TestStopAndRestart:

    def test_stop_inside_tick(self, runner, provider):
        scanner, events = _scanner(runner, provider, stop_after_scan=False)

        def decode_then_stop(raster):
            scanner.stop()
            return "too late"

        scanner._oracle.decode.side_effect = decode_then_stop

        scanner.start()
        runner.run_until_idle()

        assert scanner.tick_count == 1
        assert events.reads == []
        assert scanner.state is PipelineState.STOPPED
        assert provider.captures[0].release_calls == 1
        assert runner.pending == []

    def test_stop_while_acquisition_is_queued(self, runner, provider):
        scanner, events = _scanner(runner, provider)

        scanner.start()
        scanner.stop()
        runner.run_until_idle()

        assert provider.open_calls == []
        assert scanner.state is PipelineState.STOPPED
        assert scanner.tick_count == 0

    def test_stop_during_open_releases_late_stream(self, runner):
        class SlowPermissionProvider(SimulatedCaptureProvider):
            scanner = None

            def open_stream(self, constraints):
                # User dismisses the scanner while the permission prompt is open
                self.scanner.stop()
                return super().open_stream(constraints)

        provider = SlowPermissionProvider(width=64, height=48)
        scanner, events = _scanner(runner, provider)
        provider.scanner = scanner

        scanner.start()
        runner.run_until_idle()

        assert scanner.state is PipelineState.STOPPED
        assert not scanner.connected
        assert not scanner.session.acquired
        assert provider.captures[0].release_calls == 1
        assert scanner.tick_count == 0

    def test_restart_after_stop(self, runner, provider):
        scanner, events = _scanner(runner, provider, _oracle("first", "second"))

        scanner.start()
        runner.run_until_idle()
        scanner.start()
        runner.run_until_idle()

        assert events.reads == ["first", "second"]
        assert len(provider.open_calls) == 2
        assert [capture.release_calls for capture in provider.captures] == [1, 1]
        assert (PipelineState.STOPPED, PipelineState.ACQUIRING) in events.states


class TestReentrantStart:

    def test_start_while_acquiring_is_ignored(self, runner, provider):
        scanner, _ = _scanner(runner, provider)

        scanner.start()
        scanner.start()

        assert len(runner.pending) == 1
        runner.run_next()
        assert len(provider.open_calls) == 1
        scanner.stop()

    def test_start_while_streaming_does_not_double_schedule(self, runner, provider):
        scanner, _ = _scanner(runner, provider)

        scanner.start()
        runner.run_next()
        scanner.start()
        scanner.start()

        assert len(runner.pending) == 1
        scanner.stop()

    def test_start_rearms_lost_tick(self, runner, provider):
        scanner, _ = _scanner(runner, provider)
        scanner.start()
        runner.run_next()
        scanner._tick_task.cancel()
        assert not scanner.tick_pending

        scanner.start()

        assert scanner.tick_pending
        assert len(provider.open_calls) == 1
        scanner.stop()


class TestConfiguration:

    def test_mirror_off_flips_raster(self, runner, provider):
        scanner, _ = _scanner(runner, provider, mirror=False)
        scanner.start()

        assert scanner.frame_buffer.flip_horizontal
        assert not scanner.preview_mirrored
        scanner.stop()

    def test_mirror_on_mirrors_preview_only(self, runner, provider):
        scanner, _ = _scanner(runner, provider, mirror=True)
        scanner.start()

        assert not scanner.frame_buffer.flip_horizontal
        assert scanner.preview_mirrored
        scanner.stop()

    def test_selector_prefers_labelled_device(self, runner):
        provider = SimulatedCaptureProvider(
            width=64,
            height=48,
            devices=[
                DeviceInfo(device_id="0", label="Front Camera"),
                DeviceInfo(device_id="1", label="USB Back Camera"),
            ],
        )
        scanner, _ = _scanner(runner, provider, _oracle("x"), facing="environment")

        scanner.start()
        runner.run_until_idle()

        descriptor = provider.open_calls[0].descriptor
        assert descriptor.device_id == "1"
        assert provider.open_calls[0].audio is False

    def test_configure_applies_on_next_start(self, runner, provider):
        scanner, _ = _scanner(runner, provider, stop_after_scan=False)
        scanner.start()
        runner.run_next()

        scanner.configure(_config(canvas_width=32, canvas_height=32, update_time_ms=250))
        assert scanner.config.update_time_ms == 100
        assert scanner.frame_buffer.width == 64

        scanner.stop()
        scanner.start()

        assert scanner.config.update_time_ms == 250
        assert (scanner.frame_buffer.width, scanner.frame_buffer.height) == (32, 32)
        scanner.stop()

    def test_context_manager_stops_on_exit(self, runner, provider):
        with CaptureScheduler(_config(stop_after_scan=False), provider, _oracle(), task_runner=runner) as scanner:
            scanner.start()
            runner.run_next()
            assert scanner.state is PipelineState.STREAMING

        assert scanner.state is PipelineState.STOPPED
        assert provider.captures[0].release_calls == 1


class TestThreadedTicks:

    def test_ticks_never_overlap(self):
        active = [0]
        max_active = [0]
        lock = threading.Lock()
        enough = threading.Event()

        def slow_decode(raster):
            with lock:
                active[0] += 1
                max_active[0] = max(max_active[0], active[0])
            time.sleep(0.005)
            with lock:
                active[0] -= 1
            return "tick"

        oracle = Mock(spec=DecodeOracle)
        oracle.decode.side_effect = slow_decode
        provider = SimulatedCaptureProvider(width=64, height=48)
        scanner = CaptureScheduler(
            _config(update_time_ms=10, stop_after_scan=False),
            provider,
            oracle,
            task_runner=ThreadingTaskRunner(),
        )
        reads = []

        def on_read(text):
            reads.append(text)
            if len(reads) >= 5:
                enough.set()

        scanner.on_read(on_read)

        scanner.start()
        try:
            assert enough.wait(timeout=5.0)
        finally:
            scanner.close()

        assert max_active[0] == 1
        assert scanner.state is PipelineState.STOPPED
        assert provider.captures[0].release_calls == 1


class TestDiagnostics:

    def test_decode_failure_reported_on_error_bus(self, runner, provider):
        errors = []
        bus = get_error_bus()
        bus.subscribe(errors.append, category=ErrorCategory.DECODE)
        try:
            scanner, events = _scanner(runner, provider, _oracle(DecodeError("bad raster"), "hello"))
            scanner.start()
            runner.run_until_idle()
        finally:
            bus.unsubscribe(errors.append, category=ErrorCategory.DECODE)

        assert events.reads == ["hello"]
        assert len(errors) == 1
        assert errors[0].severity is ErrorSeverity.WARNING
        assert isinstance(errors[0].exception, DecodeError)

    def test_missing_frame_is_not_a_decode_error(self, runner):
        provider = SimulatedCaptureProvider(width=64, height=48, frame_source=lambda index: None)
        errors = []
        bus = get_error_bus()
        bus.subscribe(errors.append, category=ErrorCategory.DECODE)
        try:
            scanner, _ = _scanner(runner, provider)
            scanner.start()
            runner.run_next()
            runner.run_next()
            scanner.stop()
        finally:
            bus.unsubscribe(errors.append, category=ErrorCategory.DECODE)

        assert scanner.failed_tick_count == 1
        assert errors == []

    def test_debug_config_enables_debug_logging(self, runner, provider):
        with patch("app.scanner.scheduler.enable_debug_logging") as enable:
            _scanner(runner, provider, debug=True)
        enable.assert_called_once()

    def test_debug_config_applied_on_restart_enables_debug_logging(self, runner, provider):
        with patch("app.scanner.scheduler.enable_debug_logging") as enable:
            scanner, _ = _scanner(runner, provider)
            enable.assert_not_called()

            scanner.configure(_config(debug=True))
            scanner.start()

        enable.assert_called_once()
        scanner.stop()


class TestEventOrdering:

    def test_concurrent_flushes_deliver_in_queue_order(self, runner, provider):
        scanner, _ = _scanner(runner, provider)
        delivered = []
        first_in_handler = threading.Event()
        let_first_finish = threading.Event()

        def on_read(event):
            if event.text == "first":
                first_in_handler.set()
                let_first_finish.wait(timeout=5.0)
            delivered.append(event.text)

        scanner.event_bus.subscribe(ScanReadEvent, on_read)

        with scanner._lock:
            scanner._queue_event(ScanReadEvent(result=ScanResult(text="first")))
        dispatcher = threading.Thread(target=scanner._flush_events)
        dispatcher.start()
        assert first_in_handler.wait(timeout=5.0)

        with scanner._lock:
            scanner._queue_event(ScanReadEvent(result=ScanResult(text="second")))
        scanner._flush_events()  # A dispatcher is active: this must not overtake it

        let_first_finish.set()
        dispatcher.join(timeout=5.0)

        assert delivered == ["first", "second"]

    def test_handler_stopping_scanner_sees_ordered_states(self, runner, provider):
        scanner, _ = _scanner(runner, provider, stop_after_scan=False)
        states = []

        def on_state(event):
            if event.new_state is PipelineState.STREAMING:
                scanner.stop()
            states.append(event.new_state)

        scanner.event_bus.subscribe(PipelineStateChangedEvent, on_state)

        scanner.start()
        runner.run_until_idle()

        assert states == [PipelineState.ACQUIRING, PipelineState.STREAMING, PipelineState.STOPPED]
        assert scanner.tick_count == 0
