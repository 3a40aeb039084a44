"""Database models."""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class CallSession(Base):
    """One phone call, keyed by the provider's call SID."""

    __tablename__ = "call_sessions"

    id = Column(String, primary_key=True, index=True)  # Twilio CallSid
    from_number = Column(String, nullable=True)
    to_number = Column(String, nullable=True)
    status = Column(String, default="ringing", nullable=False)  # provider call status
    phase = Column(String, default="ringing", nullable=False)  # CallPhase
    start_time = Column(DateTime, default=datetime.utcnow, nullable=False)
    end_time = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)

    # Relationships
    transcripts = relationship(
        "Transcript",
        back_populates="call",
        order_by="Transcript.id",
        cascade="all, delete-orphan",
    )
    responses = relationship(
        "ResponseLog",
        back_populates="call",
        order_by="ResponseLog.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}


class Transcript(Base):
    """Speech recognition result for a call."""

    __tablename__ = "call_transcripts"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(String, ForeignKey("call_sessions.id"), nullable=False, index=True)
    text = Column(Text, nullable=False, default="")
    confidence = Column(Float, nullable=False, default=0.0)
    is_final = Column(Boolean, nullable=False, default=False)
    track = Column(String, nullable=False, default="inbound")  # inbound, outbound or provider value
    timestamp = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    call = relationship("CallSession", back_populates="transcripts")


class ResponseLog(Base):
    """Generated reply (or voicemail record) for a call."""

    __tablename__ = "call_responses"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(String, ForeignKey("call_sessions.id"), nullable=False, index=True)
    input_text = Column(Text, nullable=False, default="")
    response_text = Column(Text, nullable=False, default="")
    recording_url = Column(String, nullable=True)
    model_used = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    call = relationship("CallSession", back_populates="responses")


class ActivityLog(Base):
    """Non-critical audit trail entry."""

    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(String, nullable=True, index=True)
    type = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
