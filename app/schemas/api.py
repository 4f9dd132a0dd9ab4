"""Request and response bodies of the HTTP API."""
from datetime import datetime
from typing import Optional

from app.schemas.subtitle import CamelModel, Cue, VideoMetadata


class TranslateRequest(CamelModel):
    # Everything is optional here so that missing fields are reported by the
    # pipeline's own validation with a uniform error body
    user_id: Optional[str] = None
    user_tier: Optional[str] = None
    video_source: Optional[str] = None
    youtube_url: Optional[str] = None
    video_id: Optional[str] = None
    target_language: Optional[str] = None
    translation_style: Optional[str] = None
    video_topic: Optional[str] = None


class TranslateResponse(CamelModel):
    success: bool = True
    video_hash_id: str
    credits_charged: int
    history_id: Optional[str] = None
    was_free: bool
    message: str


class TranslationView(CamelModel):
    video_hash_id: str
    language: str
    style: str
    topic: Optional[str] = None
    cues: list[Cue]
    translated_at: datetime
    model_identifier: str


class HistoryItem(CamelModel):
    history_id: str
    video_hash_id: str
    language: str
    style: str
    title: Optional[str] = None
    duration_seconds: int
    thumbnail_url: Optional[str] = None
    credits_charged: int
    was_free: bool
    access_count: int
    last_accessed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CreditBalanceView(CamelModel):
    trial: int
    periodic: int
    purchased: int
    total: int


class VideoRecordView(VideoMetadata):
    translations: list[str]
    total_accesses: int
    total_cost_credits: int
    accessor_count: int
