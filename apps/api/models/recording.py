"""Recording model for captured audio assets."""

from sqlalchemy import BigInteger, Boolean, Column, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from database import Base


class Recording(Base):
    """One captured audio asset and its derived transcript/analysis."""

    __tablename__ = "recordings"

    id = Column(String(64), primary_key=True)
    title = Column(String, nullable=False)
    level = Column(String, nullable=False)  # asset, text, audio_only
    scene = Column(String, nullable=True)  # meeting, lecture, interview, idea
    created_at = Column(BigInteger, nullable=False, index=True)  # epoch ms, client supplied
    duration = Column(Integer, nullable=False, default=0)  # seconds
    audio_path = Column(Text, nullable=False)
    status = Column(String, nullable=False)  # Transcribing, Processing, Ready, Failed
    is_starred = Column(Boolean, nullable=False, default=False)
    markers_json = Column(JSON, nullable=True)
    transcript_json = Column(JSON, nullable=True)
    analysis_json = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    updated_at = Column(BigInteger, nullable=False)  # epoch ms

    task = relationship("Task", back_populates="recording", uselist=False)

    def __repr__(self):
        return f"<Recording(id={self.id}, level={self.level}, status={self.status})>"
