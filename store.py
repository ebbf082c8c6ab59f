import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from sqlmodel import select
from sqlalchemy import delete, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import sessionmaker

from errors import PersistenceError, StoreUnavailable
from models import Reservation, Room

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _translate_errors(action: str):
    try:
        yield
    except IntegrityError as exc:
        raise PersistenceError(f"Error {action}: {exc.orig}") from exc
    except (DBAPIError, OSError) as exc:
        raise StoreUnavailable(f"Error {action}: {exc}") from exc


class ReservationStore:
    """Room and reservation queries, one round trip per method."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def query_room(self, room_id: int) -> bool:
        async with _translate_errors("checking room"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Room.id).where(Room.id == room_id)
                )
                return result.first() is not None

    async def query_active_reservation(self, room_id: int) -> bool:
        statement = (
            select(Reservation.id)
            .where(Reservation.room_id == room_id)
            .where(Reservation.expired == False)  # noqa: E712
            .limit(1)
        )
        async with _translate_errors("checking reservation"):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return result.first() is not None

    async def insert_reservation(self, room_id: int, start_time: datetime) -> int:
        reservation = Reservation(room_id=room_id, start_time=start_time)
        async with _translate_errors("reserving room"):
            async with self._session_factory() as session:
                session.add(reservation)
                await session.commit()
                await session.refresh(reservation)
        return reservation.id

    async def insert_reservation_if_absent(
        self, room_id: int, start_time: datetime
    ) -> Optional[int]:
        # Check and insert are separate statements, so concurrent callers
        # can both get through. Every reserve path goes through here.
        if await self.query_active_reservation(room_id):
            return None
        return await self.insert_reservation(room_id, start_time)

    async def mark_expired(
        self, reservation_id: int, end_time: datetime, start_time: Optional[datetime] = None
    ) -> bool:
        """Flag a reservation expired. False if the row is gone."""
        statement = update(Reservation).where(Reservation.id == reservation_id)
        if start_time is not None:
            statement = statement.where(Reservation.start_time == start_time)
        statement = statement.values(expired=True, end_time=end_time)
        async with _translate_errors("updating the reservation's expiry"):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                await session.commit()
        return result.rowcount > 0

    async def delete_reservations_for_room(self, room_id: int) -> int:
        statement = delete(Reservation).where(Reservation.room_id == room_id)
        async with _translate_errors("deleting reservation"):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                await session.commit()
        logger.debug("Deleted %d reservation rows for room %d", result.rowcount, room_id)
        return result.rowcount
