"""
Database persistence helpers for the append-only records kept in PostgreSQL:
per-user access history and the credit transaction log.
"""
import logging
import uuid
from sqlalchemy import select
from app.db.postgres import AsyncSessionLocal
from app.db.models import VideoAccessHistory, CreditTransaction
from app.schemas.subtitle import TranslationStyle, VideoMetadata

logger = logging.getLogger(__name__)


async def record_access(
    user_id: str,
    metadata: VideoMetadata,
    language: str,
    style: TranslationStyle,
    credits_charged: int,
    was_free: bool,
) -> str:
    """Append a history record for one access and return its history id.

    Never merges with earlier records for the same user/video/language.
    """
    history_id = str(uuid.uuid4())
    async with AsyncSessionLocal() as session:
        record = VideoAccessHistory(
            history_id=history_id,
            user_id=user_id,
            video_id=metadata.video_id,
            language=language,
            style=style.value,
            title=metadata.title,
            duration_seconds=metadata.duration_seconds,
            thumbnail_url=metadata.thumbnail_url,
            credits_charged=credits_charged,
            was_free=was_free,
            access_count=1,
        )
        session.add(record)
        await session.commit()
    return history_id


async def list_history(user_id: str, limit: int = 50) -> list[VideoAccessHistory]:
    """Most recent history records for a user, newest first."""
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(VideoAccessHistory)
            .where(VideoAccessHistory.user_id == user_id)
            .order_by(VideoAccessHistory.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


async def save_credit_transaction(
    user_id: str,
    transaction_type: str,
    amount: int,
    breakdown: dict,
    balance_before: dict,
    balance_after: dict,
    reason: str,
    feature_type: str | None = None,
    video_id: str | None = None,
):
    async with AsyncSessionLocal() as session:
        record = CreditTransaction(
            user_id=user_id,
            type=transaction_type,
            amount=amount,
            breakdown=breakdown,
            balance_before=balance_before,
            balance_after=balance_after,
            reason=reason,
            feature_type=feature_type,
            video_id=video_id,
        )
        session.add(record)
        await session.commit()
