"""Session coordinator for live telemetry, alerts and derived insight."""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

from app.schemas import (
    AlertSchema,
    HistoryEntrySchema,
    InsightSchema,
    ReadingSchema,
    SessionSnapshot,
    SessionState,
    thresholds_to_schema,
)
from datastore.mock_realtime_db import build_default_database
from models.events import (
    AlertDismissed,
    AnalysisCompleted,
    AnalysisFailed,
    CoordinatorEvent,
    FallbackTick,
    HistoryCleared,
    ReadingArrived,
    TelemetryFailed,
    ThresholdChanged,
    ThresholdsFailed,
    ThresholdsLoaded,
)
from models.pollutants import Pollutant
from models.records import (
    Alert,
    DerivedInsight,
    HistoricalEntry,
    Reading,
    ThresholdSet,
    default_thresholds,
)
from services.alerting import AlertingEngine
from services.analysis import build_analyzer
from services.history import HistoryBuffer
from services.normalizer import extract_timestamp, normalize_payload
from services.notifier import AlertNotifier, build_notifier
from services.thresholds import SaveResult, ThresholdStoreAdapter
from services.throttle import AnalysisFailure, AnalysisThrottle
from settings import get_settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Upper bound on how late the periodic fallback can notice a stale insight.
MAX_TICK_SECONDS = 60.0


class TelemetrySource(Protocol):
    def subscribe(
        self,
        on_value: Callable[[Any], None],
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> Callable[[], None]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionCoordinator:
    """Owns the session state and applies every change from one consumer task.

    Subscription callbacks, the fallback timer and user actions only enqueue
    typed events; handlers run one at a time on the event loop, so the
    in-flight check and set for analysis never interleave.
    """

    def __init__(
        self,
        telemetry: TelemetrySource,
        threshold_store: ThresholdStoreAdapter,
        throttle: AnalysisThrottle,
        alerting: Optional[AlertingEngine] = None,
        history: Optional[HistoryBuffer] = None,
        notifier: Optional[AlertNotifier] = None,
        clock: Clock = _utcnow,
        tick_interval: Optional[float] = None,
        shutdown_grace: float = 5.0,
    ) -> None:
        self.telemetry = telemetry
        self.threshold_store = threshold_store
        self.throttle = throttle
        self.alerting = alerting or AlertingEngine()
        self.history = history or HistoryBuffer()
        self.notifier = notifier
        self._clock = clock
        self._tick_interval = tick_interval or min(
            throttle.fallback_period.total_seconds(), MAX_TICK_SECONDS
        )
        self._shutdown_grace = shutdown_grace

        self._state = SessionState.uninitialized
        self._current_reading: Optional[Reading] = None
        self._thresholds: ThresholdSet = default_thresholds()
        self._alerts: List[Alert] = []
        self._insight: Optional[DerivedInsight] = None
        self._is_loading_readings = True
        self._in_flight = False
        self._last_analyzed: Optional[Reading] = None
        self._last_analysis_at: Optional[datetime] = None
        self._generation = 0
        self._active = False

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.Task] = None
        self._analysis_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._unsubscribers: List[Callable[[], None]] = []
        # Held across an edit and its save so store writes land in edit order.
        self._threshold_lock = asyncio.Lock()

        self._handlers: Dict[type, Callable[[Any], None]] = {
            ReadingArrived: self._handle_reading,
            TelemetryFailed: self._handle_telemetry_failed,
            ThresholdsLoaded: self._handle_thresholds_loaded,
            ThresholdsFailed: self._handle_thresholds_failed,
            AnalysisCompleted: self._handle_analysis_completed,
            AnalysisFailed: self._handle_analysis_failed,
            FallbackTick: self._handle_fallback_tick,
            AlertDismissed: self._handle_alert_dismissed,
            ThresholdChanged: self._handle_threshold_changed,
            HistoryCleared: self._handle_history_cleared,
        }

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # Lifecycle

    async def start(self) -> None:
        if self._state is not SessionState.uninitialized:
            raise RuntimeError(f"Coordinator cannot start from state {self._state.value!r}.")

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._active = True
        self._set_state(SessionState.loading)
        self._consumer = asyncio.create_task(self._consume())
        self._timer = asyncio.create_task(self._run_fallback_timer())

        self._unsubscribers.append(
            self.threshold_store.load(
                lambda thresholds: self._post(ThresholdsLoaded(thresholds)),
                lambda error: self._post(ThresholdsFailed(error)),
            )
        )
        self._unsubscribers.append(
            self.telemetry.subscribe(self._on_telemetry, self._on_telemetry_error)
        )

    async def stop(self) -> None:
        if self._state in (SessionState.uninitialized, SessionState.closed):
            self._set_state(SessionState.closed)
            return

        self._active = False
        # Completions issued before teardown must not touch state.
        self._generation += 1
        while self._unsubscribers:
            self._unsubscribers.pop()()

        for task in (self._timer, self._consumer):
            if task is not None:
                task.cancel()
        await asyncio.gather(
            *(task for task in (self._timer, self._consumer) if task is not None),
            return_exceptions=True,
        )
        self._cancel_pending_replies()

        analysis = self._analysis_task
        if analysis is not None and not analysis.done():
            done, _ = await asyncio.wait({analysis}, timeout=self._shutdown_grace)
            if not done:
                analysis.cancel()
                await asyncio.gather(analysis, return_exceptions=True)

        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)

        try:
            await self.throttle.aclose()
        except Exception as exc:  # noqa: BLE001 - teardown must finish
            logger.warning("Closing the analyzer failed", extra={"reason": str(exc)})

        self._in_flight = False
        self._set_state(SessionState.closed)

    async def flush(self) -> None:
        """Wait until every event posted so far has been handled."""
        self._ensure_started()
        # Let callbacks scheduled with call_soon_threadsafe enqueue first.
        await asyncio.sleep(0)
        await self._queue.join()

    async def wait_idle(self) -> None:
        """Like ``flush`` but also waits for in-flight analysis to be applied."""
        while True:
            await self.flush()
            analysis = self._analysis_task
            if analysis is None or analysis.done():
                if self._queue.empty():
                    return
                continue
            await asyncio.wait({analysis})

    # User actions

    async def dismiss_alert(self, alert_id: str) -> bool:
        return await self._request(lambda reply: AlertDismissed(alert_id, reply))

    async def set_threshold(self, pollutant: Pollutant, value: Optional[float]) -> SaveResult:
        """Apply a new limit in memory, then persist the full set.

        ``None`` disables alerting for the pollutant. Concurrent edits are
        applied and saved one at a time. A failed save keeps the in-memory
        value and is reported in the returned result.
        """
        limit = math.inf if value is None else float(value)
        if math.isnan(limit) or limit < 0:
            raise ValueError("Threshold must be a non-negative number.")
        async with self._threshold_lock:
            thresholds = await self._request(lambda reply: ThresholdChanged(pollutant, limit, reply))
            return await asyncio.to_thread(self.threshold_store.save, thresholds)

    async def clear_history(self) -> None:
        await self._request(lambda reply: HistoryCleared(reply))

    def snapshot(self) -> SessionSnapshot:
        current = self._current_reading
        return SessionSnapshot(
            state=self._state,
            current_reading=ReadingSchema.from_reading(current) if current is not None else None,
            history=[HistoryEntrySchema.from_entry(entry) for entry in self.history.snapshot()],
            thresholds=thresholds_to_schema(self._thresholds),
            alerts=[AlertSchema.from_alert(alert) for alert in self._alerts],
            derived_insight=(
                InsightSchema.from_insight(self._insight) if self._insight is not None else None
            ),
            is_loading_readings=self._is_loading_readings,
            is_loading_analysis=self._in_flight,
            last_analysis_at=self._last_analysis_at,
        )

    # Event plumbing

    def _on_telemetry(self, payload: Any) -> None:
        self._post(ReadingArrived(payload=payload, received_at=self._clock()))

    def _on_telemetry_error(self, error: BaseException) -> None:
        self._post(TelemetryFailed(error))

    def _post(self, event: CoordinatorEvent) -> None:
        """Enqueue from any thread; dropped once the session is torn down."""
        if not self._active or self._loop is None or self._queue is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            logger.debug("Event loop closed; dropping %s", type(event).__name__)

    def _post_local(self, event: CoordinatorEvent) -> None:
        if self._active and self._queue is not None:
            self._queue.put_nowait(event)

    async def _request(self, build: Callable[[asyncio.Future], CoordinatorEvent]) -> Any:
        self._ensure_started()
        if not self._active:
            raise RuntimeError("Coordinator is not running.")
        reply = self._loop.create_future()
        # Queued behind callbacks already scheduled by the subscriptions.
        self._loop.call_soon(self._queue.put_nowait, build(reply))
        return await reply

    def _ensure_started(self) -> None:
        if self._queue is None or self._loop is None:
            raise RuntimeError("Coordinator has not been started.")

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            event = await self._queue.get()
            try:
                self._handlers[type(event)](event)
            except Exception as exc:  # noqa: BLE001 - one bad event must not end the session
                logger.exception("Failed to handle %s", type(event).__name__)
                reply = getattr(event, "reply", None)
                if reply is not None and not reply.done():
                    reply.set_exception(exc)
            finally:
                self._queue.task_done()

    def _cancel_pending_replies(self) -> None:
        if self._queue is None:
            return
        while not self._queue.empty():
            event = self._queue.get_nowait()
            reply = getattr(event, "reply", None)
            if reply is not None and not reply.done():
                reply.cancel()
            self._queue.task_done()

    async def _run_fallback_timer(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            self._post_local(FallbackTick(at=self._clock()))

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        previous = self._state
        self._state = state
        logger.info(
            "Session state changed from %s",
            previous.value,
            extra={"state": state.value},
        )

    @staticmethod
    def _reply(reply: Optional[asyncio.Future], value: Any) -> None:
        if reply is not None and not reply.done():
            reply.set_result(value)

    # Handlers

    def _handle_reading(self, event: ReadingArrived) -> None:
        reading = normalize_payload(event.payload)
        self._is_loading_readings = False

        if reading is None:
            if self._state is not SessionState.degraded:
                logger.warning("Sensor reported no data; keeping history and alerts")
            self._current_reading = None
            # The next valid reading is analyzed unconditionally.
            self._last_analyzed = None
            if self._in_flight:
                self._generation += 1
            self._set_state(SessionState.degraded)
            return

        self._current_reading = reading
        self._set_state(SessionState.live)

        timestamp = extract_timestamp(event.payload) or event.received_at
        latest = self.history.latest
        if latest is not None and timestamp < latest.timestamp:
            logger.warning(
                "Reading timestamp precedes the latest history entry",
                extra={"history_size": len(self.history)},
            )
        self.history.append(HistoricalEntry(timestamp=timestamp, reading=reading))

        new_alerts = self.alerting.evaluate(reading, self._thresholds, self._alerts, event.received_at)
        if new_alerts:
            self._alerts = self.alerting.merge(new_alerts, self._alerts)
            for alert in new_alerts:
                logger.warning(
                    "Alert raised: %s",
                    alert.message,
                    extra={
                        "alert_id": alert.id,
                        "pollutant": alert.pollutant.value,
                        "value": alert.value,
                        "threshold": alert.threshold,
                    },
                )
            self._notify(new_alerts)

        self._maybe_analyze(reading, event.received_at)

    def _handle_telemetry_failed(self, event: TelemetryFailed) -> None:
        logger.error(
            "Telemetry subscription failed; keeping last known reading",
            extra={"reason": str(event.error)},
        )
        self._is_loading_readings = False
        self._set_state(SessionState.degraded)

    def _handle_thresholds_loaded(self, event: ThresholdsLoaded) -> None:
        self._thresholds = dict(event.thresholds)
        configured = sum(1 for value in self._thresholds.values() if math.isfinite(value))
        logger.info("Thresholds loaded (%d configured)", configured)

    def _handle_thresholds_failed(self, event: ThresholdsFailed) -> None:
        self._thresholds = default_thresholds()

    def _handle_analysis_completed(self, event: AnalysisCompleted) -> None:
        self._in_flight = False
        if event.generation != self._generation:
            logger.info("Discarding stale analysis result", extra={"generation": event.generation})
        else:
            self._insight = event.insight
            self._last_analyzed = event.reading
            logger.info("Analysis applied", extra={"generation": event.generation})
        # Readings that arrived during the call are compared now.
        if self._current_reading is not None:
            self._maybe_analyze(self._current_reading, self._clock())

    def _handle_analysis_failed(self, event: AnalysisFailed) -> None:
        self._in_flight = False
        if event.generation != self._generation:
            logger.info("Discarding stale analysis failure", extra={"generation": event.generation})
            return
        logger.warning(
            "Analysis failed; showing placeholder",
            extra={"generation": event.generation, "reason": str(event.error)},
        )
        self._insight = DerivedInsight.unavailable(generated_at=self._clock(), reason=str(event.error))

    def _handle_fallback_tick(self, event: FallbackTick) -> None:
        reading = self._current_reading
        if reading is None:
            return
        if self.throttle.fallback_due(event.at, self._last_analysis_at, self._in_flight):
            logger.info("Insight is stale; running periodic analysis")
            self._start_analysis(reading, event.at)

    def _handle_alert_dismissed(self, event: AlertDismissed) -> None:
        remaining = self.alerting.dismiss(self._alerts, event.alert_id)
        removed = len(remaining) != len(self._alerts)
        self._alerts = remaining
        if removed:
            logger.info("Alert dismissed", extra={"alert_id": event.alert_id})
        self._reply(event.reply, removed)

    def _handle_threshold_changed(self, event: ThresholdChanged) -> None:
        self._thresholds = {**self._thresholds, event.pollutant: event.value}
        logger.info(
            "Threshold updated",
            extra={"pollutant": event.pollutant.value, "threshold": event.value},
        )
        self._reply(event.reply, dict(self._thresholds))

    def _handle_history_cleared(self, event: HistoryCleared) -> None:
        self.history.clear()
        logger.info("History cleared")
        self._reply(event.reply, None)

    # Analysis

    def _maybe_analyze(self, reading: Reading, now: datetime) -> None:
        if self.throttle.should_trigger(reading, self._last_analyzed, self._in_flight):
            self._start_analysis(reading, now)

    def _start_analysis(self, reading: Reading, now: datetime) -> None:
        self._in_flight = True
        self._generation += 1
        self._last_analysis_at = now
        generation = self._generation
        logger.debug("Starting analysis", extra={"generation": generation})
        self._analysis_task = asyncio.create_task(self._run_analysis(generation, reading))

    async def _run_analysis(self, generation: int, reading: Reading) -> None:
        try:
            insight = await self.throttle.run(reading)
        except AnalysisFailure as exc:
            self._post_local(AnalysisFailed(generation=generation, reading=reading, error=exc.cause))
            return
        self._post_local(AnalysisCompleted(generation=generation, reading=reading, insight=insight))

    def _notify(self, alerts: List[Alert]) -> None:
        if self.notifier is None:
            return
        task = asyncio.create_task(self._deliver_alerts(alerts))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _deliver_alerts(self, alerts: List[Alert]) -> None:
        try:
            await self.notifier.notify(alerts)
        except Exception as exc:  # noqa: BLE001 - delivery is best effort
            logger.warning(
                "Alert notification failed",
                extra={"alert_count": len(alerts), "reason": str(exc)},
            )


@lru_cache
def build_default_coordinator() -> SessionCoordinator:
    """Factory that wires the coordinator with the default realtime database."""
    settings = get_settings()
    database = build_default_database()
    throttle = AnalysisThrottle(
        build_analyzer(settings),
        change_ratio=settings.change_ratio,
        fallback_period=timedelta(seconds=settings.analysis_fallback_seconds),
    )
    return SessionCoordinator(
        telemetry=database.reference(settings.sensor_path),
        threshold_store=ThresholdStoreAdapter(database.reference(settings.thresholds_path)),
        throttle=throttle,
        alerting=AlertingEngine(
            cooldown=timedelta(seconds=settings.alert_cooldown_seconds),
            max_alerts=settings.max_alerts,
        ),
        history=HistoryBuffer(max_entries=settings.max_history),
        notifier=build_notifier(settings),
        shutdown_grace=settings.shutdown_grace_seconds,
    )
