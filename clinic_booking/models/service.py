from sqlalchemy import Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from clinic_booking.database import Base


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(30), unique=True, nullable=False)
    name = Column(String(150), nullable=False)
    description = Column(String(500), nullable=True)
    duration_minutes = Column(Integer, default=30)
    price = Column(Numeric(10, 2), nullable=False, default=0)

    appointment_lines = relationship("AppointmentService", back_populates="service")


class AppointmentService(Base):
    """A billable service attached to an appointment."""

    __tablename__ = "appointment_services"

    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="CASCADE"), primary_key=True)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="RESTRICT"), primary_key=True)
    qty = Column(Integer, nullable=False, default=1)

    appointment = relationship("Appointment", back_populates="services")
    service = relationship("Service", back_populates="appointment_lines")
