"""Peripheral session: advertising lifecycle and transport glue for the engine."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Optional, Protocol

from ftms_peripheral.ble.gatt import Advertisement, ServiceDescriptor
from ftms_peripheral.core.config import PeripheralConfig
from ftms_peripheral.core.engine import (
    AdvertisingStarted,
    ConcurrentConnectionError,
    Effect,
    Indicate,
    Notify,
    RegisterService,
    SessionEvent,
    SessionStarted,
    StartAdvertising,
    TimerTick,
    service_descriptor,
    step,
)
from ftms_peripheral.core.state import (
    EngineState,
    SessionState,
    TargetState,
    TelemetrySnapshot,
)
from ftms_peripheral.core.telemetry import RampTelemetry, TelemetryModel

logger = logging.getLogger(__name__)

EventSink = Callable[[SessionEvent], None]


class PeripheralTransport(Protocol):
    """The BLE capabilities the session relies on."""

    def bind(self, sink: EventSink) -> None: ...

    async def register_service(self, descriptor: ServiceDescriptor) -> None: ...

    async def start_advertising(self, advertisement: Advertisement) -> None: ...

    def notify(self, uuid: str, value: bytes) -> None: ...

    def indicate(self, uuid: str, value: bytes) -> None: ...

    async def stop(self) -> None: ...


class PeripheralSession:
    def __init__(
        self,
        transport: PeripheralTransport,
        config: PeripheralConfig,
        telemetry: TelemetryModel | None = None,
    ) -> None:
        self._transport = transport
        self._config = config
        self._telemetry = telemetry or RampTelemetry()
        self._state = EngineState()
        self._events: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._consumer_task: Optional[asyncio.Task[None]] = None
        self._timer_task: Optional[asyncio.Task[None]] = None
        self._started = False

    @property
    def config(self) -> PeripheralConfig:
        return self._config

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def session_state(self) -> SessionState:
        return self._state.session

    @property
    def telemetry(self) -> TelemetrySnapshot:
        return self._state.telemetry

    @property
    def targets(self) -> TargetState:
        return self._state.targets

    @property
    def descriptor(self) -> ServiceDescriptor:
        return service_descriptor(self._config)

    async def start(self) -> None:
        """Register the service, advertise and arm the telemetry timer. Call once."""
        if self._started:
            raise RuntimeError("Session already started")
        self._started = True

        self._transport.bind(self.submit)
        await self.dispatch(SessionStarted())
        self._consumer_task = asyncio.create_task(self._consume_events())
        self._consumer_task.add_done_callback(self._log_task_exception)
        self._timer_task = asyncio.create_task(self._tick_loop())
        self._timer_task.add_done_callback(self._log_task_exception)
        logger.info(
            "FTMS peripheral '%s' started (controllable=%s)",
            self._config.identity.local_name,
            self._config.controllable,
        )

    async def close(self) -> None:
        for task in (self._timer_task, self._consumer_task):
            if task is None:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._timer_task = None
        self._consumer_task = None
        await self._transport.stop()

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._events.join()

    def submit(self, event: SessionEvent) -> None:
        """Queue an event; the consumer task handles events strictly one at a time."""
        self._events.put_nowait(event)

    async def dispatch(self, event: SessionEvent) -> None:
        self._state, effects = step(self._state, event, self._config, self._telemetry)
        await self._apply(effects)

    async def _apply(self, effects: list[Effect]) -> None:
        for effect in effects:
            match effect:
                case RegisterService(descriptor=descriptor):
                    await self._transport.register_service(descriptor)
                    logger.info("FTMS service registered")
                case StartAdvertising(advertisement=advertisement):
                    await self._transport.start_advertising(advertisement)
                    logger.info("Advertising as '%s'", advertisement.local_name)
                    self._state, _ = step(
                        self._state, AdvertisingStarted(), self._config, self._telemetry
                    )
                case Notify(uuid=uuid, value=value):
                    self._transport.notify(uuid, value)
                case Indicate(uuid=uuid, value=value):
                    logger.debug("Indicate %s: %s", uuid, value.hex(" "))
                    self._transport.indicate(uuid, value)

    async def _consume_events(self) -> None:
        while True:
            event = await self._events.get()
            try:
                await self.dispatch(event)
            except ConcurrentConnectionError as exc:
                logger.error("Rejected connection: %s", exc)
            except Exception:
                logger.exception("Failed to handle %s", event)
            finally:
                self._events.task_done()

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.tick_interval)
            self.submit(TimerTick())

    @staticmethod
    def _log_task_exception(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Session task %s stopped: %r", task.get_name(), exc)
