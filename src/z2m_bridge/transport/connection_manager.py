"""Broker session state machine: connect, disconnect, reconnect-with-backoff, watchdog.

States run ``DISCONNECTED -> CONNECTING -> CONNECTED``; a session only becomes
CONNECTED when the transport reports success. Failures never propagate: each
one lands in ``on_transport_status`` and schedules a reconnect on a saturating
backoff (5s, +10s per failure below 60s, +30s per failure below 300s, capped at
300s). Only an explicit ``disconnect()`` stops retrying.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from z2m_bridge.const import (
    CONNECT_SETTLE_DELAY,
    FORCE_RECONNECT_PAUSE,
    MAX_RECONNECT_DELAY,
    REINITIALIZE_PAUSE,
    RESUBSCRIBE_DELAY,
    STARTING_RECONNECT_DELAY,
    WATCHDOG_INTERVAL,
)
from z2m_bridge.exceptions import TransportError
from z2m_bridge.logging_abstraction import get_logger
from z2m_bridge.metrics import registry
from z2m_bridge.scheduler import TaskScheduler
from z2m_bridge.session import BrokerSession
from z2m_bridge.structs import SessionState
from z2m_bridge.transport.base import MQTTTransport, TransportStatus

__all__ = [
    "RECONNECT_JOB",
    "RESUBSCRIBE_JOB",
    "WATCHDOG_JOB",
    "ConnectionManager",
    "next_retry_delay",
]

logger = get_logger(__name__)

RECONNECT_JOB = "reconnect"
RESUBSCRIBE_JOB = "subscribe_to_topic"
WATCHDOG_JOB = "connection_watchdog"


def next_retry_delay(current: int | None) -> int:
    """Return the reconnect delay that follows ``current`` (None = first failure)."""
    if not current:
        return STARTING_RECONNECT_DELAY
    if current < 60:
        delay = current + 10
    elif current < MAX_RECONNECT_DELAY:
        delay = current + 30
    else:
        delay = MAX_RECONNECT_DELAY
    return min(delay, MAX_RECONNECT_DELAY)


class ConnectionManager:
    """Owns one session's transport and the timers that keep it connected."""

    lp: str = "broker:"
    reinitialize_pause: float = REINITIALIZE_PAUSE
    force_reconnect_pause: float = FORCE_RECONNECT_PAUSE
    connect_settle_delay: float = CONNECT_SETTLE_DELAY
    resubscribe_delay: float = RESUBSCRIBE_DELAY
    watchdog_interval: float = WATCHDOG_INTERVAL

    def __init__(
        self,
        session: BrokerSession,
        transport: MQTTTransport,
        scheduler: TaskScheduler,
        *,
        on_connected: Callable[[], Awaitable[object]] | None = None,
        on_state_change: Callable[[SessionState], None] | None = None,
        on_initialize: Callable[[], None] | None = None,
        watchdog_enabled: bool = True,
    ) -> None:
        """Initialize the connection manager.

        Args:
            session: Session whose state and retry delay this manager mutates
            transport: Callback-driven MQTT transport
            scheduler: Session-owned scheduler for reconnect/resubscribe/watchdog jobs
            on_connected: Run ``resubscribe_delay`` seconds after each successful connect
            on_state_change: Notified on every CONNECTED/DISCONNECTED transition
            on_initialize: Extra setup run by every ``initialize()`` (debug auto-disable)
            watchdog_enabled: Whether ``initialize()`` arms the periodic watchdog

        """
        self.session: BrokerSession = session
        self.transport: MQTTTransport = transport
        self.scheduler: TaskScheduler = scheduler
        self._on_connected: Callable[[], Awaitable[object]] | None = on_connected
        self._on_state_change: Callable[[SessionState], None] | None = on_state_change
        self._on_initialize: Callable[[], None] | None = on_initialize
        self.watchdog_enabled: bool = watchdog_enabled
        self._stopped: bool = False
        self._connect_lock: asyncio.Lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def is_connected(self) -> bool:
        return self.session.state is SessionState.CONNECTED

    def _set_state(self, state: SessionState) -> None:
        previous = self.session.state
        self.session.state = state
        registry.record_connection_state(self.session.session_id, state.value)
        if previous is not state:
            logger.debug("%s state %s -> %s", self.lp, previous.value, state.value)
        if state is not SessionState.CONNECTING and self._on_state_change is not None:
            self._on_state_change(state)

    async def initialize(self, force_reconnect: bool = True) -> None:
        """(Re)start the session: optional forced reconnect, then arm the watchdog."""
        lp = f"{self.lp}initialize:"
        logger.debug("%s force_reconnect=%s", lp, force_reconnect)
        if self.session.has_initialized_once:
            # give the platform time to commit freshly written settings
            await asyncio.sleep(self.reinitialize_pause)
        if self._on_initialize is not None:
            self._on_initialize()
        if force_reconnect:
            self._set_state(SessionState.DISCONNECTED)
            await asyncio.sleep(self.force_reconnect_pause)
            await self.reconnect(not_if_already_connected=False)
        else:
            await self.reconnect()
        if self.watchdog_enabled:
            _ = self.scheduler.every(WATCHDOG_JOB, self.watchdog_interval, self.watchdog)
        else:
            _ = self.scheduler.cancel(WATCHDOG_JOB)

    async def connect(self) -> None:
        """Open a fresh transport; an explicit connect always wins over a scheduled retry."""
        lp = f"{self.lp}connect:"
        async with self._connect_lock:
            self._stopped = False
            logger.debug(
                "%s URI = %s; clientId = %s; username = %s",
                lp,
                self.session.connection_uri,
                self.session.client_id,
                self.session.username,
            )
            if self.transport.is_connected:
                logger.debug("%s Is connected; disconnecting first", lp)
            await self.transport.close()
            _ = self.scheduler.cancel(RECONNECT_JOB)
            self._set_state(SessionState.CONNECTING)
            logger.debug("%s connecting now...", lp)
            try:
                await self.transport.open(
                    self.session.connection_uri,
                    self.session.client_id,
                    self.session.username,
                    self.session.password,
                )
            except TransportError as exc:
                logger.warning("%s could not start connection: %s", lp, exc.reason)
                await self.on_transport_status(TransportStatus.connection_failed(exc.reason))
                return
            await asyncio.sleep(self.connect_settle_delay)

    async def disconnect(self) -> None:
        """Close the transport and stop retrying until the next explicit connect."""
        logger.debug("%s disconnect()", self.lp)
        self._stopped = True
        _ = self.scheduler.cancel(RECONNECT_JOB)
        _ = self.scheduler.cancel(RESUBSCRIBE_JOB)
        await self.transport.close()
        self._set_state(SessionState.DISCONNECTED)

    async def reconnect(self, not_if_already_connected: bool = True) -> None:
        lp = f"{self.lp}reconnect:"
        logger.debug("%s not_if_already_connected=%s", lp, not_if_already_connected)
        if self.transport.is_connected and not_if_already_connected:
            logger.debug("%s already connected; skipping reconnection", lp)
            if self.session.state is not SessionState.CONNECTED:
                await self.on_transport_status(TransportStatus.connection_succeeded())
            return
        await self.connect()

    async def on_transport_status(self, status: TransportStatus) -> None:
        """Handle a status callback from the transport layer."""
        lp = f"{self.lp}status:"
        logger.debug("%s %s", lp, status.message)
        if status.succeeded:
            self._set_state(SessionState.CONNECTED)
            self.session.retry_delay_seconds = STARTING_RECONNECT_DELAY
            _ = self.scheduler.cancel(RECONNECT_JOB)
            if self._on_connected is not None:
                _ = self.scheduler.schedule(RESUBSCRIBE_JOB, self.resubscribe_delay, self._on_connected)
        elif not self.transport.is_connected:
            self._set_state(SessionState.DISCONNECTED)
            if self._stopped:
                logger.debug("%s disconnected explicitly; not scheduling a retry", lp)
                return
            self.session.retry_delay_seconds = next_retry_delay(self.session.retry_delay_seconds)
            self._schedule_reconnect(self.session.retry_delay_seconds)
        else:
            logger.warning("%s MQTT client status: %s", lp, status.message)

    def _schedule_reconnect(self, delay: int) -> None:
        logger.info("%s reconnecting in %s seconds", self.lp, delay)
        registry.record_reconnect_scheduled(self.session.session_id, delay)
        _ = self.scheduler.schedule(RECONNECT_JOB, delay, self.reconnect)

    async def watchdog(self) -> None:
        """Periodic check for silent disconnects.

        The first run after a cold start forces a full ``initialize()``, which
        covers connections torn down without any status callback.
        """
        lp = f"{self.lp}watchdog:"
        if not self.session.has_initialized_once:
            logger.debug("%s first run since start; initializing", lp)
            await self.initialize()
            self.session.mark_initialized()
            return
        if self._stopped:
            return
        live = self.transport.is_connected
        if live and self.session.state is SessionState.CONNECTED:
            return
        logger.debug("%s transport connected=%s but session is %s", lp, live, self.session.state.value)
        if not live:
            self._set_state(SessionState.DISCONNECTED)
        if self.scheduler.is_pending(RECONNECT_JOB):
            return
        delay = self.session.retry_delay_seconds or STARTING_RECONNECT_DELAY
        self.session.retry_delay_seconds = delay
        self._schedule_reconnect(delay)

    async def shutdown(self) -> None:
        """Disconnect and cancel every session timer."""
        await self.disconnect()
        self.scheduler.cancel_all()
