from youtube_transcript_api import (
    YouTubeTranscriptApi,
    CouldNotRetrieveTranscript,
    InvalidVideoId,
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable as TranscriptVideoUnavailable,
    VideoUnplayable,
)
import re
import asyncio
import logging
from dataclasses import dataclass
from urllib.parse import urlparse, parse_qs

import httpx

from app.core.errors import NoCaptionsAvailable, UpstreamError, VideoUnavailable
from app.schemas.subtitle import Cue, ms_to_timecode

logger = logging.getLogger(__name__)

# Create a single reusable API instance
_ytt_api = YouTubeTranscriptApi()

# Caption languages tried first by the auto-generated and manual passes
PREFERRED_CAPTION_LANGUAGES = ['en', 'en-US', 'en-GB']

VIDEO_ID_RE = re.compile(r'^[a-zA-Z0-9_-]{11}$')
# Ids passed explicitly by the client are trusted as platform ids
EXPLICIT_VIDEO_ID_RE = re.compile(r'^[a-zA-Z0-9_-]{1,64}$')


@dataclass
class CaptionTrack:
    language_code: str
    is_generated: bool
    cues: list[Cue]


def extract_video_id(url: str) -> str | None:
    """Extract YouTube video ID from URL reliably."""
    if not url:
        return None
    url = url.strip()
    if len(url) == 11 and VIDEO_ID_RE.match(url):
        return url

    parsed = urlparse(url)
    if not parsed.scheme:
        parsed = urlparse('https://' + url)

    hostname = parsed.hostname or ''

    if hostname in ('youtu.be', 'www.youtu.be'):
        video_id = parsed.path[1:]
        return video_id if VIDEO_ID_RE.match(video_id) else None

    if hostname in ('youtube.com', 'www.youtube.com', 'm.youtube.com', 'music.youtube.com'):
        if parsed.path == '/watch':
            qs = parse_qs(parsed.query)
            video_id = qs.get('v', [None])[0]
            return video_id if video_id and VIDEO_ID_RE.match(video_id) else None
        if parsed.path.startswith(('/embed/', '/v/', '/shorts/', '/live/')):
            parts = parsed.path.split('/')
            if len(parts) >= 3:
                video_id = parts[2]
                return video_id if VIDEO_ID_RE.match(video_id) else None

    return None


def resolve_video_id(video_id: str | None, youtube_url: str | None) -> str | None:
    """Prefer an explicit id, fall back to parsing the URL."""
    if video_id and EXPLICIT_VIDEO_ID_RE.match(video_id.strip()):
        return video_id.strip()
    if youtube_url:
        return extract_video_id(youtube_url)
    return None


def thumbnail_url(video_id: str) -> str:
    return f"https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"


def normalize_snippets(raw: list[dict]) -> list[Cue]:
    """Turn raw `{text, start, duration}` snippets into indexed cues.

    Empty-text and zero-length snippets are platform artifacts and are
    dropped; survivors are ordered by start time and re-indexed from 1.
    """
    timed = []
    for entry in raw:
        text = " ".join((entry.get("text") or "").split())
        if not text:
            continue
        start_ms = int(float(entry.get("start", 0.0)) * 1000)
        duration_ms = int(float(entry.get("duration", 0.0)) * 1000)
        if duration_ms <= 0:
            continue
        timed.append((start_ms, start_ms + duration_ms, text))

    timed.sort(key=lambda item: item[0])
    return [
        Cue(index=i, start_time=ms_to_timecode(start), end_time=ms_to_timecode(end), text=text)
        for i, (start, end, text) in enumerate(timed, start=1)
    ]


def _candidate_transcripts(transcript_list):
    """Auto-generated in preferred languages, then manual, then anything."""
    seen = set()
    finders = (
        transcript_list.find_generated_transcript,
        transcript_list.find_manually_created_transcript,
    )
    for finder in finders:
        try:
            transcript = finder(PREFERRED_CAPTION_LANGUAGES)
        except NoTranscriptFound:
            continue
        seen.add((transcript.language_code, transcript.is_generated))
        yield transcript

    for transcript in transcript_list:
        if (transcript.language_code, transcript.is_generated) not in seen:
            yield transcript


def _fetch_caption_track(video_id: str) -> CaptionTrack:
    transcript_list = _ytt_api.list(video_id)

    for transcript in _candidate_transcripts(transcript_list):
        fetched = transcript.fetch()
        cues = normalize_snippets(fetched.to_raw_data())
        if cues:
            return CaptionTrack(
                language_code=transcript.language_code,
                is_generated=transcript.is_generated,
                cues=cues,
            )
        logger.info(
            f"Caption track {transcript.language_code} for {video_id} is empty, trying next"
        )

    raise NoCaptionsAvailable(
        "This video has no usable captions. Please try a different video."
    )


async def fetch_captions(video_id: str) -> CaptionTrack:
    """
    Fetch and normalise the caption track for a video.

    Raises NoCaptionsAvailable, VideoUnavailable or UpstreamError.
    """
    try:
        track = await asyncio.to_thread(_fetch_caption_track, video_id)
    except (TranscriptsDisabled, NoTranscriptFound) as e:
        logger.info(f"No captions for {video_id}: {type(e).__name__}")
        raise NoCaptionsAvailable(
            "This video has no captions available. Please try a different video."
        ) from e
    except (TranscriptVideoUnavailable, VideoUnplayable, InvalidVideoId) as e:
        logger.info(f"Video {video_id} unavailable: {type(e).__name__}")
        raise VideoUnavailable(
            "This video is private, removed or not available in this region."
        ) from e
    except CouldNotRetrieveTranscript as e:
        logger.warning(f"Caption platform error for {video_id}: {e}")
        raise UpstreamError(f"Could not fetch captions: {type(e).__name__}") from e

    logger.info(
        f"Fetched {len(track.cues)} cues for {video_id} "
        f"({track.language_code}, {'auto-generated' if track.is_generated else 'manual'})"
    )
    return track


async def fetch_video_title(video_id: str) -> str:
    """
    Fetch the actual video title using YouTube's oEmbed endpoint.
    This requires no API key. Falls back to a placeholder on failure.
    """
    url = f"https://www.youtube.com/oembed?url=https://www.youtube.com/watch?v={video_id}&format=json"
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.get(url)
            if response.status_code == 200:
                data = response.json()
                return data.get("title") or f"YouTube Video {video_id}"
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"Could not fetch video title for {video_id}: {e}")

    return f"YouTube Video {video_id}"
