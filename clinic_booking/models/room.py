import enum

from sqlalchemy import Column, Enum, Integer, String
from sqlalchemy.orm import relationship

from clinic_booking.database import Base


class RoomType(str, enum.Enum):
    CONSULTATION = "Consultation"
    MINOR_PROCEDURE = "MinorProcedure"
    EXAM = "Exam"
    RECOVERY = "Recovery"


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(20), unique=True, nullable=False)
    type = Column(Enum(RoomType, name="room_type"), default=RoomType.CONSULTATION)
    notes = Column(String(255), nullable=True)

    appointments = relationship("Appointment", back_populates="room")
