from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, Boolean, JSON, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from safealert.database.database import Base
from safealert.schemas.enums import PanicStatus, AlertStatus

# ---------- USER ----------
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    emergency_contacts = relationship("EmergencyContact", back_populates="user", cascade="all, delete-orphan")
    panic_events = relationship("PanicEvent", back_populates="user", cascade="all, delete-orphan")


# ---------- EMERGENCY CONTACT ----------
class EmergencyContact(Base):
    __tablename__ = "emergency_contacts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    phone_number = Column(String, nullable=True)
    email = Column(String, nullable=True)
    relation_type = Column(String, nullable=True)
    is_primary = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    user = relationship("User", back_populates="emergency_contacts")


# ---------- PANIC EVENT ----------
class PanicEvent(Base):
    __tablename__ = "panic_events"

    id = Column(Integer, primary_key=True, index=True)
    panic_id = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_email = Column(String, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    photo_present = Column(Boolean, nullable=False, default=False)
    status = Column(SQLEnum(PanicStatus), nullable=False, default=PanicStatus.ACTIVE, index=True)

    # Enrichment, each written by exactly one pipeline stage
    image_analysis = Column(JSON, nullable=True)
    safety_data = Column(JSON, nullable=True)
    notification_result = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="panic_events")


# ---------- NOTIFICATION RECORD ----------
class NotificationRecord(Base):
    __tablename__ = "notification_records"

    id = Column(Integer, primary_key=True, index=True)
    # Weak back-reference, notification log outlives its panic event
    panic_id = Column(String, nullable=False, index=True)
    contact = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    status = Column(SQLEnum(AlertStatus), nullable=False, index=True)
    method = Column(JSON, nullable=False)
    message_id = Column(String, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
