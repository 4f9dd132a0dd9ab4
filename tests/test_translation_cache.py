import json
import pytest
from unittest.mock import AsyncMock, patch

from app.schemas.subtitle import TranslationEntry, TranslationStyle, VideoMetadata
from tests.conftest import SAMPLE_CUES, SAMPLE_VIDEO_ID


def _entry(language="vi", style=TranslationStyle.STANDARD, credits=5, user_id="u1"):
    return TranslationEntry(
        language=language,
        style=style,
        cues=SAMPLE_CUES,
        translated_by_user_id=user_id,
        model_identifier="llama-3.3-70b-versatile",
        tokens_used=321,
        credits_charged=credits,
    )


def _metadata():
    return VideoMetadata(
        video_id=SAMPLE_VIDEO_ID,
        title="Sample video",
        duration_seconds=6,
        thumbnail_url=f"https://img.youtube.com/vi/{SAMPLE_VIDEO_ID}/maxresdefault.jpg",
        original_language="en",
    )


@pytest.mark.asyncio
class TestTranslationCache:

    async def test_lookup_miss(self, mock_redis):
        with patch("app.db.translation_cache.get_redis", AsyncMock(return_value=mock_redis)):
            from app.db.translation_cache import lookup

            assert await lookup(SAMPLE_VIDEO_ID, "vi", TranslationStyle.STANDARD) is None
            mock_redis.hget.assert_called_once_with("video:abc123", "translations.vi_standard")

    async def test_lookup_hit_decodes_camel_case(self, mock_redis):
        stored = _entry().model_dump_json(by_alias=True)
        assert "creditsCharged" in stored
        mock_redis.hget = AsyncMock(return_value=stored)

        with patch("app.db.translation_cache.get_redis", AsyncMock(return_value=mock_redis)):
            from app.db.translation_cache import lookup

            entry = await lookup(SAMPLE_VIDEO_ID, "vi", "standard")
            assert entry.key == "vi_standard"
            assert entry.credits_charged == 5
            assert [c.text for c in entry.cues] == ["Hello", "world", "today"]

    async def test_store_is_field_level(self, mock_redis, mock_pipeline):
        with patch("app.db.translation_cache.get_redis", AsyncMock(return_value=mock_redis)):
            from app.db.translation_cache import store

            await store(_metadata(), SAMPLE_CUES, _entry(credits=5))

            mock_redis.pipeline.assert_called_once_with(transaction=True)
            set_once = {c.args[1] for c in mock_pipeline.hsetnx.call_args_list}
            assert {"videoId", "title", "durationSeconds", "originalCues", "createdAt"} <= set_once

            fields = {c.args[1]: c.args[2] for c in mock_pipeline.hset.call_args_list}
            assert "translations.vi_standard" in fields
            assert json.loads(fields["translations.vi_standard"])["language"] == "vi"

            increments = [c.args for c in mock_pipeline.hincrby.call_args_list]
            assert ("video:abc123", "totalAccesses", 1) in increments
            assert ("video:abc123", "totalCostCredits", 5) in increments
            mock_pipeline.sadd.assert_called_once_with("video:abc123:accessed_by", "u1")
            mock_pipeline.execute.assert_awaited_once()

    async def test_get_record_collects_every_translation(self, mock_redis):
        vi = _entry("vi").model_dump_json(by_alias=True)
        ja = _entry("ja", TranslationStyle.CINEMATIC, credits=3, user_id="u2").model_dump_json(by_alias=True)
        mock_redis.hgetall = AsyncMock(return_value={
            "videoId": SAMPLE_VIDEO_ID,
            "sourceKind": "youtube",
            "title": "Sample video",
            "durationSeconds": "6",
            "originalCues": json.dumps([c.model_dump(by_alias=True) for c in SAMPLE_CUES]),
            "translations.vi_standard": vi,
            "translations.ja_cinematic": ja,
            "totalAccesses": "4",
            "totalCostCredits": "8",
        })
        mock_redis.smembers = AsyncMock(return_value={"u1", "u2"})

        with patch("app.db.translation_cache.get_redis", AsyncMock(return_value=mock_redis)):
            from app.db.translation_cache import get_record

            record = await get_record(SAMPLE_VIDEO_ID)
            assert set(record.translations) == {"vi_standard", "ja_cinematic"}
            assert record.accessed_by == {"u1", "u2"}
            assert record.total_accesses == 4
            assert record.total_cost_credits == 8
            assert len(record.original_cues) == 3
            assert record.metadata().title == "Sample video"

    async def test_get_record_missing(self, mock_redis):
        with patch("app.db.translation_cache.get_redis", AsyncMock(return_value=mock_redis)):
            from app.db.translation_cache import get_record

            assert await get_record("nothing") is None

    async def test_get_metadata(self, mock_redis):
        mock_redis.hmget = AsyncMock(return_value=[SAMPLE_VIDEO_ID, "youtube", "Sample video", "6", None, "en"])

        with patch("app.db.translation_cache.get_redis", AsyncMock(return_value=mock_redis)):
            from app.db.translation_cache import get_metadata

            metadata = await get_metadata(SAMPLE_VIDEO_ID)
            assert metadata.duration_seconds == 6
            assert metadata.original_language == "en"
            assert metadata.thumbnail_url is None

    async def test_touch_counts_access(self, mock_redis, mock_pipeline):
        with patch("app.db.translation_cache.get_redis", AsyncMock(return_value=mock_redis)):
            from app.db.translation_cache import touch

            await touch(SAMPLE_VIDEO_ID, "u9")
            mock_pipeline.hincrby.assert_called_once_with("video:abc123", "totalAccesses", 1)
            mock_pipeline.sadd.assert_called_once_with("video:abc123:accessed_by", "u9")
