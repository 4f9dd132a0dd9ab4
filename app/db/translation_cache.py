"""
Translation cache: one Redis hash per video.

Each translation lives in its own hash field (`translations.{language}_{style}`),
so storing a new translation is a field-level write that never touches the
others. Descriptive metadata and the original cues are written with HSETNX
and are therefore set once, by whichever request creates the record.
"""
import logging
from datetime import datetime, timezone

from pydantic import TypeAdapter

from app.db.redis_client import get_redis, video_accessed_by_key, video_key
from app.schemas.subtitle import (
    Cue,
    SourceKind,
    TranslationEntry,
    TranslationStyle,
    VideoMetadata,
    VideoTranslationRecord,
    translation_key,
)

logger = logging.getLogger(__name__)

TRANSLATION_FIELD_PREFIX = "translations."

_cue_list = TypeAdapter(list[Cue])


def translation_field(language: str, style: TranslationStyle | str) -> str:
    return f"{TRANSLATION_FIELD_PREFIX}{translation_key(language, style)}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def lookup(video_id: str, language: str, style: TranslationStyle | str) -> TranslationEntry | None:
    """Return the cached translation for (video, language, style), or None."""
    r = await get_redis()
    data = await r.hget(video_key(video_id), translation_field(language, style))
    if data is None:
        return None
    return TranslationEntry.model_validate_json(data)


async def get_metadata(video_id: str) -> VideoMetadata | None:
    r = await get_redis()
    video_id_, source_kind, title, duration, thumbnail, original_language = await r.hmget(
        video_key(video_id),
        ["videoId", "sourceKind", "title", "durationSeconds", "thumbnailUrl", "originalLanguage"],
    )
    if video_id_ is None:
        return None
    return VideoMetadata(
        video_id=video_id_,
        source_kind=SourceKind(source_kind or SourceKind.YOUTUBE.value),
        title=title or f"YouTube Video {video_id}",
        duration_seconds=int(duration or 0),
        thumbnail_url=thumbnail,
        original_language=original_language or "auto",
    )


async def get_original_cues(video_id: str) -> list[Cue] | None:
    r = await get_redis()
    data = await r.hget(video_key(video_id), "originalCues")
    if data is None:
        return None
    return _cue_list.validate_json(data)


async def get_record(video_id: str) -> VideoTranslationRecord | None:
    """Load the whole record for a video, or None if it was never translated."""
    r = await get_redis()
    doc = await r.hgetall(video_key(video_id))
    if not doc:
        return None
    accessed_by = await r.smembers(video_accessed_by_key(video_id))

    translations = {
        field[len(TRANSLATION_FIELD_PREFIX):]: TranslationEntry.model_validate_json(value)
        for field, value in doc.items()
        if field.startswith(TRANSLATION_FIELD_PREFIX)
    }
    return VideoTranslationRecord(
        video_id=doc.get("videoId", video_id),
        source_kind=SourceKind(doc.get("sourceKind", SourceKind.YOUTUBE.value)),
        title=doc.get("title") or f"YouTube Video {video_id}",
        duration_seconds=int(doc.get("durationSeconds") or 0),
        thumbnail_url=doc.get("thumbnailUrl"),
        original_language=doc.get("originalLanguage") or "auto",
        original_cues=_cue_list.validate_json(doc["originalCues"]) if doc.get("originalCues") else [],
        translations=translations,
        accessed_by=set(accessed_by or ()),
        total_accesses=int(doc.get("totalAccesses") or 0),
        total_cost_credits=int(doc.get("totalCostCredits") or 0),
    )


async def store(
    metadata: VideoMetadata,
    original_cues: list[Cue],
    entry: TranslationEntry,
) -> None:
    """
    Create the video record if needed and add one translation to it.

    All writes go out in a single MULTI/EXEC: set-once fields via HSETNX,
    the translation via its own field, and counters via HINCRBY. Two
    requests storing different keys for the same video both land intact.
    """
    r = await get_redis()
    key = video_key(metadata.video_id)
    now = _now()

    pipe = r.pipeline(transaction=True)
    pipe.hsetnx(key, "videoId", metadata.video_id)
    pipe.hsetnx(key, "sourceKind", metadata.source_kind.value)
    pipe.hsetnx(key, "title", metadata.title)
    pipe.hsetnx(key, "durationSeconds", metadata.duration_seconds)
    pipe.hsetnx(key, "originalLanguage", metadata.original_language)
    pipe.hsetnx(key, "originalCues", _cue_list.dump_json(original_cues, by_alias=True).decode())
    pipe.hsetnx(key, "createdAt", now)
    if metadata.thumbnail_url:
        pipe.hset(key, "thumbnailUrl", metadata.thumbnail_url)
    pipe.hset(key, translation_field(entry.language, entry.style), entry.model_dump_json(by_alias=True))
    pipe.hset(key, "updatedAt", now)
    pipe.hincrby(key, "totalAccesses", 1)
    pipe.hincrby(key, "totalCostCredits", entry.credits_charged)
    pipe.sadd(video_accessed_by_key(metadata.video_id), entry.translated_by_user_id)
    await pipe.execute()

    logger.info(
        f"Cached translation {entry.key} for {metadata.video_id} "
        f"({len(entry.cues)} cues, {entry.credits_charged} credits)"
    )


async def touch(video_id: str, user_id: str) -> None:
    """Count a cache-hit access against a video."""
    r = await get_redis()
    pipe = r.pipeline(transaction=True)
    pipe.hincrby(video_key(video_id), "totalAccesses", 1)
    pipe.sadd(video_accessed_by_key(video_id), user_id)
    await pipe.execute()
