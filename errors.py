"""Exceptions raised by the reservation store and lifecycle engine."""


class ReservationError(Exception):
    """Base class for every reservation service error."""


class StoreUnavailable(ReservationError):
    """The database could not be reached or a query failed."""


class PersistenceError(ReservationError):
    """A write violated a database constraint, e.g. a dangling room id."""


class RoomNotFound(ReservationError):
    def __init__(self, room_id: int):
        super().__init__(f"Room with id {room_id} does not exist")
        self.room_id = room_id


class AlreadyReserved(ReservationError):
    """The room already holds an active reservation.

    The lifecycle engine reports this as a negative outcome rather than
    raising it; it is here for callers that prefer an exception.
    """

    def __init__(self, room_id: int):
        super().__init__("Reservation already exists.")
        self.room_id = room_id
