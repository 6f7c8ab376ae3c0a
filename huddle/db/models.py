"""
SQLAlchemy ORM models for the Huddle database.
Defines the entities the realtime core reads and writes: User, Activity,
Participant and Message.
"""
import enum
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, Text,
    Boolean, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from huddle.db.database import Base


def utc_now() -> datetime:
    """Naive UTC timestamp for the timezone-less DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ENUM Types
class ParticipantStatus(str, enum.Enum):
    """Status of a join request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Models
class User(Base):
    """User entity - represents system users."""
    __tablename__ = "users"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=True)
    password = Column(String(100), nullable=False)
    avatar_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    
    # Relationships
    hosted_activities = relationship("Activity", back_populates="host")
    participations = relationship("Participant", back_populates="user")
    messages = relationship("Message", back_populates="sender")


class Activity(Base):
    """Activity entity - a real-world activity; its id doubles as the chat room id."""
    __tablename__ = "activities"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    host_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    
    # Relationships
    host = relationship("User", back_populates="hosted_activities")
    participants = relationship("Participant", back_populates="activity")
    messages = relationship("Message", back_populates="activity")


class Participant(Base):
    """Join request / membership of a user in an activity."""
    __tablename__ = "participants"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    activity_id = Column(Integer, ForeignKey("activities.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(SQLEnum(ParticipantStatus), default=ParticipantStatus.PENDING, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    
    # Relationships
    activity = relationship("Activity", back_populates="participants")
    user = relationship("User", back_populates="participations")


class Message(Base):
    """Chat message posted in an activity room. Immutable once created."""
    __tablename__ = "messages"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    activity_id = Column(Integer, ForeignKey("activities.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)
    
    # Relationships
    activity = relationship("Activity", back_populates="messages")
    sender = relationship("User", back_populates="messages")
