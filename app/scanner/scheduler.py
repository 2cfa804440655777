"""Capture scheduler: the state machine driving capture, paint and decode.

States::

    IDLE -> ACQUIRING -> STREAMING -> STOPPED
      ^__________________________________|   (start() again)

``stop()`` reaches STOPPED from any state. Acquisition and every tick run as
``CancellableTask``s on a ``TaskRunner``; a tick arms the next tick only
after its own paint and decode have finished, so ticks never overlap.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, List, Optional

from app.events.error_bus import ErrorCategory, ErrorSeverity, publish_error
from app.events.event_bus import EventBus
from app.events.event_types import (
    DeviceNotAllowedEvent,
    PipelineStateChangedEvent,
    ScanReadEvent,
    UnsupportedPlatformEvent,
)
from capture.device_selector import DeviceSelector
from capture.providers import CaptureProvider, select_capture_provider
from capture.raster import FrameBuffer
from capture.session import CaptureSession
from capture.transformer import FrameTransformer
from configs.settings import CaptureConfig
from contracts import PipelineState, ScanResult, VideoFrame
from decode.oracle import DecodeOracle, OpenCVQRDecoder
from exceptions import AcquisitionDeniedError, DecodeError, TransientCaptureError, UnsupportedPlatformError
from log_config.logger import enable_debug_logging, get_logger, log_performance

from .task_timer import CancellableTask, TaskRunner, ThreadingTaskRunner

logger = get_logger(__name__)


class CaptureScheduler:
    """Starts, runs and tears down the capture-to-decode loop.

    Consumers either subscribe to ``event_bus`` directly or use the
    ``on_read`` / ``on_device_not_allowed`` / ``on_unsupported_browser``
    helpers.

    Example:
        ```python
        scanner = CaptureScheduler(CaptureConfig(stop_after_scan=True))
        scanner.on_read(lambda text: print("decoded", text))
        scanner.start()
        ```
    """

    def __init__(
        self,
        config: Optional[CaptureConfig] = None,
        provider: Optional[CaptureProvider] = None,
        oracle: Optional[DecodeOracle] = None,
        event_bus: Optional[EventBus] = None,
        task_runner: Optional[TaskRunner] = None,
    ) -> None:
        self._config = config or CaptureConfig()
        self._next_config: Optional[CaptureConfig] = None
        self._provider = provider if provider is not None else select_capture_provider()
        self._oracle = oracle if oracle is not None else OpenCVQRDecoder()
        self._bus = event_bus if event_bus is not None else EventBus()
        self._runner = task_runner if task_runner is not None else ThreadingTaskRunner()

        self._lock = threading.RLock()
        self._acquire_lock = threading.Lock()
        self._outbox: List[Any] = []
        self._dispatching = False

        self._state = PipelineState.IDLE
        self._stop_requested = False
        self._connected = False
        self._in_tick = False
        self._generation = 0
        self._tick_task: Optional[CancellableTask] = None
        self._acquire_task: Optional[CancellableTask] = None

        self._frame_buffer = FrameBuffer(self._config.canvas_width, self._config.canvas_height)
        self._transformer = FrameTransformer(self._frame_buffer)
        self._session = CaptureSession(self._provider)
        self.preview_mirrored = False
        self._latest_frame: Optional[VideoFrame] = None

        self.tick_count = 0
        self.read_count = 0
        self.failed_tick_count = 0

        if self._config.debug:
            enable_debug_logging()
            logger.debug(f"Scanner init, facing {self._config.facing}, provider {self._provider!r}")

    # ------------------------------------------------------------------ #
    # Read-only state
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def config(self) -> CaptureConfig:
        return self._config

    @property
    def supported(self) -> bool:
        return self._provider.supported

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def frame_buffer(self) -> FrameBuffer:
        return self._frame_buffer

    @property
    def session(self) -> CaptureSession:
        return self._session

    @property
    def latest_frame(self) -> Optional[VideoFrame]:
        """Last frame painted by a tick (None before the first one)."""
        return self._latest_frame

    @property
    def tick_pending(self) -> bool:
        return self._tick_task is not None and self._tick_task.pending

    # ------------------------------------------------------------------ #
    # Consumer helpers
    # ------------------------------------------------------------------ #

    def on_read(self, handler: Callable[[str], None]) -> Callable[[], bool]:
        return self._bus.subscribe(ScanReadEvent, lambda event: handler(event.text))

    def on_device_not_allowed(self, handler: Callable[[], None]) -> Callable[[], bool]:
        return self._bus.subscribe(DeviceNotAllowedEvent, lambda event: handler())

    def on_unsupported_browser(self, handler: Callable[[], None]) -> Callable[[], bool]:
        return self._bus.subscribe(UnsupportedPlatformEvent, lambda event: handler())

    def configure(self, config: CaptureConfig) -> None:
        """Use ``config`` from the next ``start()`` on."""
        with self._lock:
            self._next_config = config

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Begin scanning. Safe to call repeatedly."""
        with self._lock:
            if self._connected and not self._stop_requested:
                if self._in_tick or self.tick_pending:
                    logger.debug("start() while streaming with a tick pending, ignoring")
                else:
                    logger.debug("start() while connected with no tick pending, re-arming")
                    self._arm_tick(self._generation)
                return

            if self._state is PipelineState.ACQUIRING and not self._stop_requested:
                logger.debug("start() while acquisition is in progress, ignoring")
                return

            self._stop_requested = False
            self._connected = False
            self._apply_next_config()

            if not self._provider.supported:
                reason = getattr(self._provider, "reason", None)
                if not isinstance(reason, str):
                    reason = "No camera capture API available"
                if self._config.debug:
                    logger.debug(f"Device not supported: {reason}")
                self._set_state(PipelineState.IDLE)
                self._queue_event(UnsupportedPlatformEvent(reason=reason, timestamp_ns=time.monotonic_ns()))
                publish_error(
                    category=ErrorCategory.CAPTURE,
                    severity=ErrorSeverity.CRITICAL,
                    message=reason,
                    source="CaptureScheduler",
                )
            else:
                self._init_raster()
                self._generation += 1
                generation = self._generation
                self._set_state(PipelineState.ACQUIRING)
                self._acquire_task = self._runner.call_later(
                    0.0, lambda: self._acquire(generation), name="acquire"
                )

        self._flush_events()

    def stop(self) -> None:
        """Stop scanning and release the camera. Idempotent."""
        with self._lock:
            if self._state is PipelineState.IDLE and not self._session.acquired:
                # Nothing was started; keep quiet
                self._stop_requested = True
                return
            self._teardown()

        self._flush_events()

    def close(self) -> None:
        self.stop()
        self._runner.shutdown()

    def __enter__(self) -> "CaptureScheduler":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Internals (all state changes happen under self._lock)
    # ------------------------------------------------------------------ #

    def _apply_next_config(self) -> None:
        if self._next_config is None:
            return
        config, self._next_config = self._next_config, None
        if (config.canvas_width, config.canvas_height) != (self._frame_buffer.width, self._frame_buffer.height):
            self._frame_buffer = FrameBuffer(config.canvas_width, config.canvas_height)
            self._transformer = FrameTransformer(self._frame_buffer)
        self._config = config
        if config.debug:
            enable_debug_logging()

    def _init_raster(self) -> None:
        # Mirroring is fixed for the session: flip the raster unless a mirrored
        # view was requested, in which case only the preview is mirrored.
        self._frame_buffer.initialize(flip_horizontal=not self._config.mirror)
        self.preview_mirrored = self._config.mirror

    def _is_stale(self, generation: int) -> bool:
        return self._stop_requested or generation != self._generation

    def _acquire(self, generation: int) -> None:
        with self._acquire_lock:
            with self._lock:
                if self._is_stale(generation):
                    return
                config = self._config

            descriptor = DeviceSelector(self._provider, config.facing, debug=config.debug).resolve()

            with self._lock:
                if self._is_stale(generation):
                    return

            try:
                self._session.acquire(descriptor, config)
            except UnsupportedPlatformError as e:
                self._acquisition_failed(generation, e, unsupported=True)
            except AcquisitionDeniedError as e:
                self._acquisition_failed(generation, e, unsupported=False)
            else:
                with self._lock:
                    if self._is_stale(generation):
                        # stop() (or a restart) won the race; drop this stream
                        self._session.release()
                        return
                    self._acquire_task = None
                    self._connected = True
                    self._set_state(PipelineState.STREAMING)
                    self._arm_tick(generation)

        self._flush_events()

    def _acquisition_failed(self, generation: int, error: Exception, unsupported: bool) -> None:
        with self._lock:
            if self._is_stale(generation):
                return
            self._acquire_task = None
            self._connected = False
            now_ns = time.monotonic_ns()
            if unsupported:
                self._set_state(PipelineState.IDLE)
                self._queue_event(UnsupportedPlatformEvent(reason=str(error), timestamp_ns=now_ns))
            else:
                self._set_state(PipelineState.STOPPED)
                self._queue_event(DeviceNotAllowedEvent(
                    message=str(error),
                    device_id=getattr(error, "device_id", None),
                    timestamp_ns=now_ns,
                ))

        if self._config.debug:
            logger.debug(f"Error, when trying to scan: {error}")
        publish_error(
            category=ErrorCategory.CAPTURE,
            severity=ErrorSeverity.CRITICAL if unsupported else ErrorSeverity.ERROR,
            message=str(error),
            source="CaptureScheduler",
            exception=error,
        )

    def _arm_tick(self, generation: int) -> None:
        self._tick_task = self._runner.call_later(
            self._config.update_interval_s, lambda: self._tick(generation), name="tick"
        )

    def _tick(self, generation: int) -> None:
        started = time.perf_counter()
        decode_error: Optional[DecodeError] = None
        with self._lock:
            if self._is_stale(generation) or not self._connected:
                return

            self._tick_task = None
            self._in_tick = True
            self.tick_count += 1
            try:
                text = None
                frame = None
                try:
                    frame = self._session.video_source.current_frame()
                    if frame is None:
                        raise TransientCaptureError("Video source has no frame yet")
                    self._latest_frame = frame
                    self._transformer.project(frame)
                    text = self._oracle.decode(self._frame_buffer.pixels)
                except Exception as e:
                    # A flaky frame never aborts scanning
                    self.failed_tick_count += 1
                    if isinstance(e, DecodeError):
                        decode_error = e
                    if self._config.debug:
                        logger.debug(f"Tick {self.tick_count} skipped: {e.__class__.__name__}: {e}")

                if self._is_stale(generation):
                    # stop() ran inside this tick; drop the result, no reschedule
                    pass
                elif text is not None:
                    self.read_count += 1
                    self._queue_event(ScanReadEvent(result=ScanResult(
                        text=text,
                        frame_index=frame.frame_index if frame is not None else 0,
                        timestamp_ns=time.monotonic_ns(),
                    )))
                    if self._config.stop_after_scan:
                        self._teardown()
                    else:
                        self._arm_tick(generation)
                else:
                    self._arm_tick(generation)
            finally:
                self._in_tick = False

        if decode_error is not None:
            publish_error(
                category=ErrorCategory.DECODE,
                severity=ErrorSeverity.WARNING,
                message=str(decode_error),
                source="CaptureScheduler",
                exception=decode_error,
            )
        self._flush_events()
        log_performance(
            "capture tick",
            (time.perf_counter() - started) * 1000.0,
            threshold_ms=float(self._config.update_time_ms),
        )

    def _teardown(self) -> None:
        self._stop_requested = True
        self._generation += 1  # Anything in flight is now stale
        for task in (self._tick_task, self._acquire_task):
            if task is not None:
                task.cancel()
        self._tick_task = None
        self._acquire_task = None
        self._session.release()
        self._connected = False
        self._set_state(PipelineState.STOPPED)

    def _set_state(self, new_state: PipelineState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        logger.info(f"Scanner state changed: {old_state.value} -> {new_state.value}")
        self._queue_event(PipelineStateChangedEvent(
            old_state=old_state, new_state=new_state, timestamp_ns=time.monotonic_ns()
        ))

    def _queue_event(self, event: Any) -> None:
        self._outbox.append(event)

    def _flush_events(self) -> None:
        """Publish queued events in queue order.

        One thread dispatches at a time and drains everything queued
        meanwhile; a flush that finds a dispatcher active returns at once.
        Publishing happens outside the lock so handlers may call start()/stop().
        """
        with self._lock:
            if self._dispatching:
                return
            self._dispatching = True
        try:
            while True:
                with self._lock:
                    events, self._outbox = self._outbox, []
                    if not events:
                        self._dispatching = False
                        return
                for event in events:
                    self._bus.publish(event)
        except BaseException:
            with self._lock:
                self._dispatching = False
            raise
