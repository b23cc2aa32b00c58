from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from clinic_booking.database import Base


class MedicalRecord(Base):
    """One record per patient; ``patient_id`` is unique."""

    __tablename__ = "medical_records"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(
        Integer, ForeignKey("patients.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    record_number = Column(String(100), unique=True, nullable=False)
    height_cm = Column(Numeric(5, 2), nullable=True)
    weight_kg = Column(Numeric(6, 2), nullable=True)
    blood_group = Column(String(5), nullable=True)
    allergies = Column(String(1000), nullable=True)
    chronic_conditions = Column(String(1000), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    patient = relationship("Patient", back_populates="medical_record")
