from typing import Optional
from datetime import datetime, timezone
from sqlmodel import SQLModel, Field
from sqlalchemy import DateTime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Room(SQLModel, table=True):
    __tablename__ = "room"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=80)
    created: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    last_modified: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"onupdate": utcnow},
    )


class Reservation(SQLModel, table=True):
    __tablename__ = "reservation"
    # Ids of deleted rows must never come back, or a stale expiry timer
    # would land on the new reservation
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    # No uniqueness here: expired rows stay behind, so "one active
    # reservation per room" is enforced by the lifecycle engine.
    room_id: int = Field(foreign_key="room.id", index=True)
    start_time: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    end_time: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))  # set only when expired
    expired: bool = Field(default=False)
    created: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    last_modified: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"onupdate": utcnow},
    )
