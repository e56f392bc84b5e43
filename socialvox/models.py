from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.sql import func

from .database import Base


# Persisted client state: one JSON blob per namespaced partition
class ClientState(Base):
    __tablename__ = "client_state"

    key = Column(String(64), primary_key=True)
    payload = Column(JSON, nullable=False)
    revision = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime(timezone=True), onupdate=func.now(), server_default=func.now()
    )

    def __repr__(self):
        return f"<ClientState(key={self.key}, revision={self.revision})>"


# Remote side of the offline sync; keyed by the client-generated response id
# so that replaying a batch overwrites instead of duplicating.
class SyncedResponse(Base):
    __tablename__ = "synced_responses"

    id = Column(String(36), primary_key=True)
    survey_id = Column(String(36), index=True, nullable=False)
    respondent_id = Column(String(36), index=True, nullable=False)
    answers = Column(JSON, nullable=False)
    audio_recording = Column(Text, nullable=True)
    respondent_info = Column(JSON, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=False)
    received_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<SyncedResponse(id={self.id}, survey_id={self.survey_id})>"
