"""Processing task model, one row per recording."""

from sqlalchemy import BigInteger, Column, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from database import Base


class Task(Base):
    """Processing attempt-series for a recording; shares the recording's id."""

    __tablename__ = "tasks"

    id = Column(String(64), ForeignKey("recordings.id", ondelete="CASCADE"), primary_key=True)
    type = Column(String, nullable=False)  # transcribe, transcribe+analyze
    status = Column(String, nullable=False, index=True)  # waiting, processing, done, failed
    error = Column(Text, nullable=True)
    created_at = Column(BigInteger, nullable=False)  # epoch ms
    updated_at = Column(BigInteger, nullable=False, index=True)  # epoch ms

    recording = relationship("Recording", back_populates="task")

    @property
    def recording_id(self) -> str:
        return self.id

    def __repr__(self):
        return f"<Task(id={self.id}, status={self.status})>"
