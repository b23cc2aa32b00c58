import enum

from sqlalchemy import Column, Date, DateTime, Enum, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from clinic_booking.database import Base


class Gender(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class Patient(Base):
    __tablename__ = "patients"
    __table_args__ = (
        UniqueConstraint("email", "phone", name="uniq_patient_email_phone"),
        Index("idx_pat_name", "last_name", "first_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    dob = Column(Date, nullable=False)
    gender = Column(Enum(Gender, name="patient_gender"), default=Gender.OTHER)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    appointments = relationship("Appointment", back_populates="patient", passive_deletes=True)
    medical_record = relationship(
        "MedicalRecord", back_populates="patient", uselist=False, passive_deletes=True
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
