import os
import logging
from datetime import datetime
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Depends, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from database import engine, async_session, init_db, seed_rooms, reset_on_startup
from errors import ReservationError, RoomNotFound, PersistenceError, StoreUnavailable
from lifecycle import ALREADY_RESERVED, ReservationLifecycle
from scheduler import TimerScheduler
from store import ReservationStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Room Reservation Service")

# 1. Configuration
LISTEN_ADDR = os.environ.get("LISTEN_ADDR") or "localhost:3000"
SECONDS_PER_MINUTE = float(os.environ.get("RESERVATION_SECONDS_PER_MINUTE") or 60)

ERROR_STATUS = {
    RoomNotFound: status.HTTP_404_NOT_FOUND,
    PersistenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# Pydantic Schemas for Request/Response
class ReservationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_time: Optional[datetime] = Field(default=None, alias="startTime")
    reservation_length: float = Field(default=0, alias="reservationLength")


class StatusResponse(BaseModel):
    result: bool
    reason: str = ""


class ReservationResponse(StatusResponse):
    ids: List[int] = []


@app.on_event("startup")
async def on_startup():
    await init_db(reset=reset_on_startup())
    await seed_rooms()
    # Store and engine share the one connection pool
    store = ReservationStore(async_session)
    scheduler = TimerScheduler(seconds_per_minute=SECONDS_PER_MINUTE)
    app.state.lifecycle = ReservationLifecycle(store, scheduler)


@app.on_event("shutdown")
async def on_shutdown():
    await app.state.lifecycle.shutdown()
    await engine.dispose()


def get_lifecycle(request: Request) -> ReservationLifecycle:
    return request.app.state.lifecycle


@app.exception_handler(ReservationError)
async def reservation_error_handler(request: Request, exc: ReservationError):
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"result": False, "reason": str(exc)},
    )


# --- POST /room/reserve/{room_id} ---
@app.post("/room/reserve/{room_id}", response_model=ReservationResponse)
async def reserve_room(
    room_id: int,
    reservation: Optional[ReservationRequest] = None,
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    # No body means "reserve now, no expiry"
    if reservation is None:
        reservation = ReservationRequest()

    outcome = await lifecycle.request_reservation(
        room_id,
        start_time=reservation.start_time,
        reservation_length=reservation.reservation_length,
    )
    return ReservationResponse(result=outcome.result, reason=outcome.reason, ids=outcome.ids)


# --- DELETE /room/delete-reservation/{room_id} ---
@app.delete("/room/delete-reservation/{room_id}", response_model=StatusResponse)
async def delete_reservation(
    room_id: int,
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    if not await lifecycle.check_active_reservation(room_id):
        return StatusResponse(
            result=False, reason=f"Reservation for room {room_id} does not exist."
        )

    await lifecycle.delete_reservation(room_id)
    return StatusResponse(result=True)


# --- GET /room/check-reservation/{room_id} ---
@app.get("/room/check-reservation/{room_id}", response_model=StatusResponse)
async def check_reservation(
    room_id: int,
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    if await lifecycle.check_active_reservation(room_id):
        return StatusResponse(result=True, reason=ALREADY_RESERVED)
    return StatusResponse(result=False)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host, _, port = LISTEN_ADDR.rpartition(":")
    logger.info("Listening on %s", LISTEN_ADDR)
    uvicorn.run(app, host=host or "localhost", port=int(port))
