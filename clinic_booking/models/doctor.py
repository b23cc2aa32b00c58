from sqlalchemy import Boolean, Column, Date, ForeignKey, Index, Integer, String, Table
from sqlalchemy.orm import relationship

from clinic_booking.database import Base

doctor_specialties = Table(
    "doctor_specialties",
    Base.metadata,
    Column("doctor_id", Integer, ForeignKey("doctors.id", ondelete="CASCADE"), primary_key=True),
    Column("specialty_id", Integer, ForeignKey("specialties.id", ondelete="RESTRICT"), primary_key=True),
)


class Specialty(Base):
    __tablename__ = "specialties"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(255), nullable=True)

    doctors = relationship("Doctor", secondary=doctor_specialties, back_populates="specialties")


class Doctor(Base):
    __tablename__ = "doctors"
    __table_args__ = (Index("idx_doc_name", "last_name", "first_name"),)

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    license_number = Column(String(100), unique=True, nullable=False)
    hire_date = Column(Date, nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    # Relationships
    specialties = relationship("Specialty", secondary=doctor_specialties, back_populates="doctors")
    appointments = relationship("Appointment", back_populates="doctor")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
