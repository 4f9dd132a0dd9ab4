import redis.asyncio as redis
from app.core.config import settings

redis_client = redis.from_url(
    settings.REDIS_URL,
    encoding="utf-8",
    decode_responses=True
)

async def get_redis():
    return redis_client

# ── Key Layout ─────────────────────────────────────────────────────────────
# user:{user_id}                   hash, the account document (credit buckets)
# video:{video_id}                 hash, the VideoTranslationRecord
# video:{video_id}:accessed_by     set of user ids

USER_KEY_PREFIX = "user:"
VIDEO_KEY_PREFIX = "video:"

def user_key(user_id: str) -> str:
    return f"{USER_KEY_PREFIX}{user_id}"

def video_key(video_id: str) -> str:
    return f"{VIDEO_KEY_PREFIX}{video_id}"

def video_accessed_by_key(video_id: str) -> str:
    return f"{VIDEO_KEY_PREFIX}{video_id}:accessed_by"
