"""Reservation lifecycle: create, defer, expire and cancel room reservations.

A room holds at most one active (non-expired) reservation. Timers never
trust the state they saw when they were armed; they re-read the store when
they fire.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from errors import RoomNotFound
from models import utcnow
from scheduler import ScheduledTimer, TimerScheduler
from store import ReservationStore

logger = logging.getLogger(__name__)

ALREADY_RESERVED = "Reservation already exists."

# Some clients send the zero timestamp instead of leaving startTime out
ZERO_TIME = datetime(1, 1, 1)


@dataclass
class ReservationOutcome:
    result: bool
    reason: str = ""
    ids: list[int] = field(default_factory=list)


def is_zero_time(start_time: Optional[datetime]) -> bool:
    if start_time is None:
        return True
    return start_time.replace(tzinfo=None) == ZERO_TIME


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are read as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def minutes_until(start_time: datetime, now: Optional[datetime] = None) -> float:
    """Minutes from now to ``start_time``; a past start counts as that far ahead."""
    start_time = _as_utc(start_time)
    now = utcnow() if now is None else _as_utc(now)
    delta = (start_time - now).total_seconds() / 60
    if delta < 0:
        logger.warning(
            "Start time %s is %.2f minutes in the past; scheduling it %.2f minutes from now",
            start_time.isoformat(),
            -delta,
            -delta,
        )
    return abs(delta)


class ReservationLifecycle:
    def __init__(self, store: ReservationStore, scheduler: TimerScheduler):
        self._store = store
        self._scheduler = scheduler

    async def room_exists(self, room_id: int) -> bool:
        return await self._store.query_room(room_id)

    async def check_active_reservation(self, room_id: int) -> bool:
        return await self._store.query_active_reservation(room_id)

    async def reserve(self, room_id: int, expiry_minutes: float = 0) -> int:
        """Reserve a room now without checking for an existing reservation."""
        start_time = utcnow()
        reservation_id = await self._store.insert_reservation(room_id, start_time)
        self._reserved(room_id, reservation_id, start_time, expiry_minutes)
        return reservation_id

    async def reserve_if_free(
        self, room_id: int, expiry_minutes: float = 0
    ) -> Optional[int]:
        start_time = utcnow()
        reservation_id = await self._store.insert_reservation_if_absent(
            room_id, start_time
        )
        if reservation_id is None:
            return None
        self._reserved(room_id, reservation_id, start_time, expiry_minutes)
        return reservation_id

    def _reserved(
        self, room_id: int, reservation_id: int, start_time: datetime, expiry_minutes: float
    ) -> None:
        logger.info("Reserved room %d as reservation %d", room_id, reservation_id)

        async def expire() -> None:
            await self._expire(reservation_id, start_time)

        # expiry_minutes <= 0 arms nothing
        self._scheduler.after(expiry_minutes, expire, key=room_id)

    async def _expire(self, reservation_id: int, start_time: datetime) -> None:
        if await self._store.mark_expired(reservation_id, utcnow(), start_time=start_time):
            logger.info("Reservation %d expired", reservation_id)
        else:
            logger.info("Reservation %d was deleted before it expired", reservation_id)

    async def create_future_reservation(
        self, delay_minutes: float, room_id: int, expiry_minutes: float = 0
    ) -> Optional[ScheduledTimer]:
        """Reserve ``room_id`` after ``delay_minutes``, unless it is taken by then."""
        async def create() -> None:
            await self._create_deferred(room_id, expiry_minutes)

        timer = self._scheduler.after(delay_minutes, create, key=room_id)
        if timer is None:
            await create()
        else:
            logger.info(
                "Scheduled reservation of room %d in %.2f minutes", room_id, delay_minutes
            )
        return timer

    async def _create_deferred(self, room_id: int, expiry_minutes: float) -> None:
        # First timer to fire wins, the rest find the room taken
        if await self.reserve_if_free(room_id, expiry_minutes) is None:
            logger.info(
                "Dropping scheduled reservation of room %d: %s", room_id, ALREADY_RESERVED
            )

    async def delete_reservation(self, room_id: int, cancel_pending: bool = False) -> None:
        """Delete every reservation row for a room, expired ones included.

        Pending timers are left running unless ``cancel_pending`` is set.
        """
        deleted = await self._store.delete_reservations_for_room(room_id)
        logger.info("Deleted %d reservations for room %d", deleted, room_id)
        if cancel_pending:
            self.cancel_pending(room_id)

    def cancel_pending(self, room_id: int) -> int:
        cancelled = self._scheduler.cancel(room_id)
        if cancelled:
            logger.info("Cancelled %d pending timers for room %d", cancelled, room_id)
        return cancelled

    async def request_reservation(
        self,
        room_id: int,
        start_time: Optional[datetime] = None,
        reservation_length: float = 0,
    ) -> ReservationOutcome:
        if not await self.room_exists(room_id):
            raise RoomNotFound(room_id)

        # 1. No start time: reserve now
        if is_zero_time(start_time):
            reservation_id = await self.reserve_if_free(room_id, reservation_length)
            if reservation_id is None:
                return ReservationOutcome(result=False, reason=ALREADY_RESERVED)
            return ReservationOutcome(result=True, ids=[reservation_id])

        # 2. An existing reservation rejects the request whatever its start time
        if await self.check_active_reservation(room_id):
            return ReservationOutcome(result=False, reason=ALREADY_RESERVED)

        # 3. Defer creation until the start time
        await self.create_future_reservation(
            minutes_until(start_time), room_id, reservation_length
        )
        return ReservationOutcome(result=True)

    async def shutdown(self) -> None:
        await self._scheduler.shutdown()
