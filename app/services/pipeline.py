"""
Subtitle translation pipeline.

    ValidatingRequest -> CheckingCache
        hit:  RecordingFreeAccess -> Done
        miss: FetchingCaptions -> EstimatingCost -> CheckingCredit
              -> Translating -> DeductingCredit -> UpdatingCache
              -> RecordingChargedAccess -> Done

Any PipelineError ends the run in Rejected with the error's reason code.
Credits are only deducted after the translation succeeded; if the cache
write fails afterwards the deduction is refunded.
"""
import logging
import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from app.core.config import settings
from app.core.errors import (
    InsufficientCredits,
    PipelineError,
    RequestValidationFailed,
    TranslationFailed,
    UnsupportedSource,
    UpstreamError,
    VideoTooLong,
)
from app.db import persistence, translation_cache
from app.schemas.api import TranslateRequest
from app.schemas.subtitle import (
    Cue,
    SourceKind,
    TranslationEntry,
    TranslationStyle,
    VideoMetadata,
    track_duration_seconds,
    translation_key,
)
from app.services import credits
from app.services.pricing import MINIMUM_CHARGE, estimate_credits
from app.services.translation import translate_cues
from app.services.youtube import fetch_captions, fetch_video_title, resolve_video_id, thumbnail_url

logger = logging.getLogger(__name__)

# ── Tier Config ────────────────────────────────────────────────────────────
USER_TIERS = ("FREE", "PRO", "ULTRA")
MAX_DURATION_SECONDS = {
    "FREE": 1800,   # 30 min
    "PRO": 1800,    # 30 min
    "ULTRA": 3600,  # 60 min
}

LANGUAGE_CODE_RE = re.compile(r"^[a-zA-Z]{2,3}(-[a-zA-Z0-9]{2,4})?$")


class PipelineState(str, Enum):
    VALIDATING_REQUEST = "ValidatingRequest"
    CHECKING_CACHE = "CheckingCache"
    RECORDING_FREE_ACCESS = "RecordingFreeAccess"
    FETCHING_CAPTIONS = "FetchingCaptions"
    ESTIMATING_COST = "EstimatingCost"
    CHECKING_CREDIT = "CheckingCredit"
    TRANSLATING = "Translating"
    DEDUCTING_CREDIT = "DeductingCredit"
    UPDATING_CACHE = "UpdatingCache"
    RECORDING_CHARGED_ACCESS = "RecordingChargedAccess"
    DONE = "Done"
    REJECTED = "Rejected"


@dataclass
class TranslationJob:
    user_id: str
    user_tier: str
    video_id: str
    target_language: str
    style: TranslationStyle
    topic: Optional[str] = None


@dataclass
class PipelineResult:
    video_id: str
    credits_charged: int
    history_id: Optional[str]
    was_free: bool
    message: str
    states: list[PipelineState] = field(default_factory=list)


class _Run:
    """Tracks and logs the state transitions of one request."""

    def __init__(self):
        self.run_id = uuid.uuid4().hex[:8]
        self.states: list[PipelineState] = []

    def enter(self, state: PipelineState, detail: str = ""):
        self.states.append(state)
        logger.info(f"[{self.run_id}] {state.value}{': ' + detail if detail else ''}")


def validate_request(request: TranslateRequest) -> TranslationJob:
    missing = [
        name for name, value in (
            ("userId", request.user_id),
            ("userTier", request.user_tier),
            ("videoSource", request.video_source),
            ("targetLanguage", request.target_language),
        )
        if not value or not str(value).strip()
    ]
    if missing:
        raise RequestValidationFailed(f"Missing required fields: {', '.join(missing)}")

    user_tier = request.user_tier.strip().upper()
    if user_tier not in USER_TIERS:
        raise RequestValidationFailed(f"Unknown userTier: {request.user_tier}")

    source = request.video_source.strip().lower()
    if source == SourceKind.UPLOAD.value:
        raise UnsupportedSource("Uploaded videos are not supported yet. Currently only YouTube videos are supported")
    if source != SourceKind.YOUTUBE.value:
        raise RequestValidationFailed(f"Unknown videoSource: {request.video_source}")

    video_id = resolve_video_id(request.video_id, request.youtube_url)
    if not video_id:
        raise RequestValidationFailed("Invalid YouTube URL or video id")

    target_language = request.target_language.strip()
    if not LANGUAGE_CODE_RE.match(target_language):
        raise RequestValidationFailed(f"Invalid targetLanguage: {request.target_language}")

    try:
        style = TranslationStyle((request.translation_style or TranslationStyle.STANDARD.value).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in TranslationStyle)
        raise RequestValidationFailed(f"Unknown translationStyle: {request.translation_style} (expected one of {allowed})")

    topic = request.video_topic.strip() if request.video_topic and request.video_topic.strip() else None
    return TranslationJob(
        user_id=request.user_id.strip(),
        user_tier=user_tier,
        video_id=video_id,
        target_language=target_language.lower(),
        style=style,
        topic=topic,
    )


async def _record_history_best_effort(
    job: TranslationJob,
    metadata: VideoMetadata,
    credits_charged: int,
    was_free: bool,
) -> Optional[str]:
    try:
        return await persistence.record_access(
            user_id=job.user_id,
            metadata=metadata,
            language=job.target_language,
            style=job.style,
            credits_charged=credits_charged,
            was_free=was_free,
        )
    except Exception as db_err:
        # The user already has the translation; a missing history row must not fail the request
        logger.warning(f"Failed to record access history for {job.user_id}/{job.video_id}: {db_err}")
        return None


async def _acquire_source(job: TranslationJob) -> tuple[list[Cue], VideoMetadata]:
    """Original cues and metadata, from the stored record when one exists."""
    stored = await translation_cache.get_metadata(job.video_id)
    if stored is not None:
        cues = await translation_cache.get_original_cues(job.video_id)
        if cues:
            logger.info(f"Reusing stored transcript for {job.video_id} ({len(cues)} cues)")
            return cues, stored

    track = await fetch_captions(job.video_id)
    title = await fetch_video_title(job.video_id)
    metadata = VideoMetadata(
        video_id=job.video_id,
        source_kind=SourceKind.YOUTUBE,
        title=title,
        duration_seconds=track_duration_seconds(track.cues),
        thumbnail_url=thumbnail_url(job.video_id),
        original_language=track.language_code or "auto",
    )
    return track.cues, metadata


async def _serve_cached(run: _Run, job: TranslationJob, entry: TranslationEntry) -> PipelineResult:
    run.enter(PipelineState.RECORDING_FREE_ACCESS)
    metadata = await translation_cache.get_metadata(job.video_id)
    if metadata is None:
        metadata = VideoMetadata(
            video_id=job.video_id,
            title=f"YouTube Video {job.video_id}",
            duration_seconds=track_duration_seconds(entry.cues),
            thumbnail_url=thumbnail_url(job.video_id),
        )
    try:
        await translation_cache.touch(job.video_id, job.user_id)
    except Exception as cache_err:
        logger.warning(f"Failed to update access counters for {job.video_id}: {cache_err}")

    history_id = await _record_history_best_effort(job, metadata, credits_charged=0, was_free=True)
    run.enter(PipelineState.DONE, "served from cache")
    return PipelineResult(
        video_id=job.video_id,
        credits_charged=0,
        history_id=history_id,
        was_free=True,
        message="Translation loaded from cache (FREE)",
        states=run.states,
    )


async def _translate_and_charge(run: _Run, job: TranslationJob) -> PipelineResult:
    # Unknown users and empty balances are turned away before any upstream call
    balance = await credits.get_balance(job.user_id)
    if balance.total < MINIMUM_CHARGE:
        raise InsufficientCredits(required=None, available=balance.total)

    run.enter(PipelineState.FETCHING_CAPTIONS)
    cues, metadata = await _acquire_source(job)

    max_duration = MAX_DURATION_SECONDS[job.user_tier]
    if metadata.duration_seconds > max_duration:
        raise VideoTooLong(
            f"Video too long ({metadata.duration_seconds // 60} min). "
            f"Maximum: {max_duration // 60} min for {job.user_tier} tier"
        )

    run.enter(PipelineState.ESTIMATING_COST)
    required = estimate_credits(len(cues), metadata.duration_seconds, has_transcript=True)

    run.enter(PipelineState.CHECKING_CREDIT, f"{required} credits required")
    balance = await credits.get_balance(job.user_id)
    if balance.total < required:
        raise InsufficientCredits(required=required, available=balance.total)

    run.enter(PipelineState.TRANSLATING)
    try:
        outcome = await translate_cues(cues, job.target_language, job.style, job.topic)
    except UpstreamError as e:
        # Exhausted retries on a busy model fail the request like any other upstream error
        raise TranslationFailed(f"Translation failed: {e.message}") from e

    run.enter(PipelineState.DEDUCTING_CREDIT)
    key = translation_key(job.target_language, job.style)
    deduction = await credits.deduct(
        job.user_id, required, reason=f"AI Subs translation {key}", video_id=job.video_id
    )

    run.enter(PipelineState.UPDATING_CACHE)
    entry = TranslationEntry(
        language=job.target_language,
        style=job.style,
        topic=job.topic,
        cues=outcome.cues,
        translated_by_user_id=job.user_id,
        model_identifier=settings.LLM_MODEL,
        tokens_used=outcome.tokens_used,
        credits_charged=required,
    )
    try:
        await translation_cache.store(metadata, cues, entry)
    except Exception as cache_err:
        logger.error(f"Failed to cache translation {key} for {job.video_id}: {cache_err}")
        await credits.refund(
            job.user_id, deduction, reason=f"Refund: could not save translation {key}", video_id=job.video_id
        )
        raise UpstreamError("Could not save the translation. Your credits have been refunded.") from cache_err

    run.enter(PipelineState.RECORDING_CHARGED_ACCESS)
    history_id = await _record_history_best_effort(job, metadata, credits_charged=required, was_free=False)

    run.enter(PipelineState.DONE, f"charged {required} credits, {outcome.tokens_used} tokens used")
    return PipelineResult(
        video_id=job.video_id,
        credits_charged=required,
        history_id=history_id,
        was_free=False,
        message="Translation completed successfully",
        states=run.states,
    )


async def translate_video(request: TranslateRequest) -> PipelineResult:
    """Run one translation request end to end."""
    run = _Run()
    try:
        run.enter(PipelineState.VALIDATING_REQUEST)
        job = validate_request(request)

        run.enter(PipelineState.CHECKING_CACHE, f"{job.video_id} {translation_key(job.target_language, job.style)}")
        cached = await translation_cache.lookup(job.video_id, job.target_language, job.style)
        if cached is not None:
            return await _serve_cached(run, job, cached)
        return await _translate_and_charge(run, job)
    except PipelineError as e:
        run.enter(PipelineState.REJECTED, f"{e.reason}: {e.message}")
        raise
