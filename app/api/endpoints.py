import logging
from fastapi import APIRouter, Query

from app.core.config import settings
from app.core.errors import RequestValidationFailed, TranslationNotFound, VideoNotFound
from app.db import persistence, translation_cache
from app.schemas.api import (
    CreditBalanceView,
    HistoryItem,
    TranslateRequest,
    TranslateResponse,
    TranslationView,
    VideoRecordView,
)
from app.schemas.subtitle import TranslationStyle
from app.services import credits
from app.services.pipeline import translate_video

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "ok", "app": settings.PROJECT_NAME}


@router.post("/subtitles/translate", response_model=TranslateResponse, response_model_by_alias=True)
async def translate_subtitles(request: TranslateRequest):
    result = await translate_video(request)
    return TranslateResponse(
        video_hash_id=result.video_id,
        credits_charged=result.credits_charged,
        history_id=result.history_id,
        was_free=result.was_free,
        message=result.message,
    )


@router.get(
    "/subtitles/{video_id}/translations/{language}/{style}",
    response_model=TranslationView,
    response_model_by_alias=True,
)
async def get_translation(video_id: str, language: str, style: str):
    try:
        translation_style = TranslationStyle(style.lower())
    except ValueError:
        raise RequestValidationFailed(f"Unknown translation style: {style}")

    entry = await translation_cache.lookup(video_id, language.lower(), translation_style)
    if entry is None:
        raise TranslationNotFound(f"No {language} ({style}) translation for video {video_id}")

    return TranslationView(
        video_hash_id=video_id,
        language=entry.language,
        style=entry.style.value,
        topic=entry.topic,
        cues=entry.cues,
        translated_at=entry.translated_at,
        model_identifier=entry.model_identifier,
    )


@router.get("/videos/{video_id}", response_model=VideoRecordView, response_model_by_alias=True)
async def get_video_record(video_id: str):
    record = await translation_cache.get_record(video_id)
    if record is None:
        raise VideoNotFound(f"Video {video_id} has no translations")

    return VideoRecordView(
        **record.metadata().model_dump(),
        translations=sorted(record.translations),
        total_accesses=record.total_accesses,
        total_cost_credits=record.total_cost_credits,
        accessor_count=len(record.accessed_by),
    )


@router.get("/users/{user_id}/history", response_model=list[HistoryItem], response_model_by_alias=True)
async def get_history(user_id: str, limit: int = Query(50, ge=1, le=200)):
    records = await persistence.list_history(user_id, limit=limit)
    return [
        HistoryItem(
            history_id=record.history_id,
            video_hash_id=record.video_id,
            language=record.language,
            style=record.style,
            title=record.title,
            duration_seconds=record.duration_seconds,
            thumbnail_url=record.thumbnail_url,
            credits_charged=record.credits_charged,
            was_free=record.was_free,
            access_count=record.access_count,
            last_accessed_at=record.last_accessed_at,
            created_at=record.created_at,
        )
        for record in records
    ]


@router.get("/users/{user_id}/credits", response_model=CreditBalanceView)
async def get_credits(user_id: str):
    balance = await credits.get_balance(user_id)
    return CreditBalanceView(**balance.to_dict())
