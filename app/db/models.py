from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, func
from app.db.postgres import Base


class VideoAccessHistory(Base):
    """One row per access to a translated video. Append-only."""
    __tablename__ = "user_video_history"

    history_id = Column(String(36), primary_key=True)
    user_id = Column(String(128), nullable=False, index=True)
    video_id = Column(String(64), nullable=False, index=True)
    language = Column(String(16), nullable=False)
    style = Column(String(32), nullable=False, default="standard")
    # Denormalised copy of the video metadata at write time
    title = Column(String(500), nullable=True)
    duration_seconds = Column(Integer, nullable=False, default=0)
    thumbnail_url = Column(String(500), nullable=True)
    credits_charged = Column(Integer, nullable=False, default=0)
    was_free = Column(Boolean, nullable=False, default=False)
    access_count = Column(Integer, nullable=False, default=1)
    last_accessed_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class CreditTransaction(Base):
    """Audit trail of credit deductions and refunds."""
    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False, index=True)
    type = Column(String(16), nullable=False)
    amount = Column(Integer, nullable=False)
    breakdown = Column(JSON, nullable=False)
    balance_before = Column(JSON, nullable=False)
    balance_after = Column(JSON, nullable=False)
    reason = Column(Text, nullable=False)
    feature_type = Column(String(32), nullable=True)
    video_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
