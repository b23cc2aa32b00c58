from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.orm import Session

from clinic_booking.core.security import get_current_active_user, require_roles
from clinic_booking.crud.appointments import query_appointments
from clinic_booking.crud.records import delete_room
from clinic_booking.database import get_db
from clinic_booking.models.room import Room, RoomType
from clinic_booking.models.user import Role, User
from clinic_booking.routers.appointments import AppointmentResponse

router = APIRouter(prefix="/api/rooms", tags=["rooms"])


class RoomCreate(BaseModel):
    room_number: str = Field(..., max_length=20)
    type: RoomType = RoomType.CONSULTATION
    notes: Optional[str] = Field(None, max_length=255)


class RoomUpdate(BaseModel):
    room_number: Optional[str] = Field(None, max_length=20)
    type: Optional[RoomType] = None
    notes: Optional[str] = Field(None, max_length=255)

    @field_validator("room_number", "type")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class RoomResponse(RoomCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int


def _get_room(db: Session, room_id: int) -> Room:
    room = db.get(Room, room_id)
    if not room:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Room not found"
        )
    return room


@router.post("", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    room: RoomCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    if db.query(Room).filter(Room.room_number == room.room_number).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Room number already exists"
        )
    db_room = Room(**room.model_dump())
    db.add(db_room)
    db.commit()
    db.refresh(db_room)
    return db_room


@router.get("", response_model=List[RoomResponse])
async def list_rooms(
    room_type: Optional[RoomType] = Query(None, alias="type"),
    db: Session = Depends(get_db)
):
    query = db.query(Room)
    if room_type is not None:
        query = query.filter(Room.type == room_type)
    return query.order_by(Room.room_number).all()


@router.get("/{room_id}", response_model=RoomResponse)
async def get_room(room_id: int, db: Session = Depends(get_db)):
    return _get_room(db, room_id)


@router.patch("/{room_id}", response_model=RoomResponse)
async def update_room(
    room_id: int,
    update: RoomUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    db_room = _get_room(db, room_id)

    changes = update.model_dump(exclude_unset=True)
    if "room_number" in changes:
        taken = db.query(Room).filter(Room.room_number == changes["room_number"], Room.id != room_id).first()
        if taken:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Room number already exists"
            )
    for key, value in changes.items():
        setattr(db_room, key, value)

    db.commit()
    db.refresh(db_room)
    return db_room


@router.delete("/{room_id}")
async def remove_room(
    room_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN))
):
    unassigned = delete_room(db, _get_room(db, room_id))
    return {"message": "Room deleted successfully", "appointments_unassigned": unassigned}


@router.get("/{room_id}/appointments", response_model=List[AppointmentResponse])
async def get_room_appointments(
    room_id: int,
    on_date: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    _get_room(db, room_id)
    return query_appointments(db, room_id=room_id, on_date=on_date)
