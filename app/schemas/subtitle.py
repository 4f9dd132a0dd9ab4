"""
Subtitle data model: cues, translation entries and the per-video record.

Field names are snake_case in Python and camelCase on the wire and in the
document store.
"""
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

TIMECODE_RE = re.compile(r"^(\d{2}):([0-5]\d):([0-5]\d),(\d{3})$")


def ms_to_timecode(ms: int) -> str:
    """Format milliseconds as a fixed-width `HH:MM:SS,mmm` timecode."""
    hours, rest = divmod(int(ms), 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"


def timecode_to_ms(timecode: str) -> int:
    match = TIMECODE_RE.match(timecode)
    if not match:
        raise ValueError(f"Invalid timecode: {timecode!r}")
    hours, minutes, seconds, millis = (int(g) for g in match.groups())
    return ((hours * 60 + minutes) * 60 + seconds) * 1000 + millis


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TranslationStyle(str, Enum):
    STANDARD = "standard"
    EDUCATIONAL = "educational"
    ENTERTAINMENT = "entertainment"
    NEWS = "news"
    BUSINESS = "business"
    CINEMATIC = "cinematic"


class SourceKind(str, Enum):
    YOUTUBE = "youtube"
    UPLOAD = "upload"


class Cue(CamelModel):
    index: int = Field(ge=1)
    start_time: str
    end_time: str
    text: str

    @field_validator("start_time", "end_time")
    @classmethod
    def check_timecode(cls, v: str) -> str:
        timecode_to_ms(v)
        return v

    @model_validator(mode="after")
    def check_order(self) -> "Cue":
        if timecode_to_ms(self.start_time) > timecode_to_ms(self.end_time):
            raise ValueError(f"Cue {self.index} ends before it starts")
        return self

    @property
    def end_ms(self) -> int:
        return timecode_to_ms(self.end_time)


def translation_key(language: str, style: TranslationStyle | str) -> str:
    """Composite cache key `{language}_{style}`."""
    style_value = style.value if isinstance(style, TranslationStyle) else style
    return f"{language}_{style_value}"


def track_duration_seconds(cues: list[Cue]) -> int:
    """Duration of a track, the end of its last cue rounded up to whole seconds."""
    if not cues:
        return 0
    last_end_ms = max(cue.end_ms for cue in cues)
    return -(-last_end_ms // 1000)


class TranslationEntry(CamelModel):
    language: str
    style: TranslationStyle
    topic: Optional[str] = None
    cues: list[Cue]
    translated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    translated_by_user_id: str
    model_identifier: str
    tokens_used: int = 0
    credits_charged: int = 0

    @property
    def key(self) -> str:
        return translation_key(self.language, self.style)


class VideoMetadata(CamelModel):
    """Descriptive metadata, denormalised into history records."""
    video_id: str
    source_kind: SourceKind = SourceKind.YOUTUBE
    title: str
    duration_seconds: int
    thumbnail_url: Optional[str] = None
    original_language: str = "auto"


class VideoTranslationRecord(VideoMetadata):
    original_cues: list[Cue] = Field(default_factory=list)
    translations: dict[str, TranslationEntry] = Field(default_factory=dict)
    accessed_by: set[str] = Field(default_factory=set)
    total_accesses: int = 0
    total_cost_credits: int = 0

    def metadata(self) -> VideoMetadata:
        return VideoMetadata(
            video_id=self.video_id,
            source_kind=self.source_kind,
            title=self.title,
            duration_seconds=self.duration_seconds,
            thumbnail_url=self.thumbnail_url,
            original_language=self.original_language,
        )
