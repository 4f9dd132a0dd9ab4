import logging
from dataclasses import dataclass

import tiktoken
from langchain_core.prompts import PromptTemplate

from app.core.config import settings
from app.core.errors import TranslationIncomplete
from app.core.llm_client import invoke_with_retry
from app.schemas.subtitle import Cue, TranslationStyle

logger = logging.getLogger(__name__)

# Tokenizer for sizing the context transcript
_encoding = tiktoken.get_encoding("cl100k_base")

# ── Languages ─────────────────────────────────────────────────────────────

LANGUAGE_NAMES = {
    "ja": "Japanese",
    "en": "English",
    "vi": "Vietnamese",
    "zh": "Chinese",
    "ko": "Korean",
    "pt": "Portuguese",
    "es": "Spanish",
    "fil": "Filipino",
    "th": "Thai",
    "id": "Indonesian",
}

def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code.lower(), code)

# ── Style Instructions ────────────────────────────────────────────────────

STYLE_INSTRUCTIONS = {
    TranslationStyle.STANDARD: (
        "Translate clearly and neutrally. Stay faithful to the original meaning and "
        "register; do not add, omit or embellish anything."
    ),
    TranslationStyle.EDUCATIONAL: (
        "This is educational or tutorial content. Preserve technical terminology exactly, "
        "keep established terms in their standard target-language form (or the original "
        "term when no standard translation exists), and favour precision over fluency."
    ),
    TranslationStyle.ENTERTAINMENT: (
        "This is casual entertainment or vlog content. Use a relaxed, conversational tone, "
        "and localize slang, jokes and idioms into natural equivalents that a native "
        "viewer would actually say."
    ),
    TranslationStyle.NEWS: (
        "This is news or documentary content. Use a formal, objective, journalistic "
        "register. Keep names, figures, dates and places exact and avoid any editorial tone."
    ),
    TranslationStyle.BUSINESS: (
        "This is a business presentation or meeting. Use a professional, polite register "
        "and correct business terminology; keep product names, metrics and acronyms intact."
    ),
    TranslationStyle.CINEMATIC: (
        "This is film or storytelling content. You may depart from a literal rendering to "
        "carry emotion, rhythm and character voice; rewrite lines so they land dramatically "
        "in the target language while keeping the plot meaning."
    ),
}

# ── Translation Prompt ────────────────────────────────────────────────────

SUBTITLE_TRANSLATION_PROMPT = PromptTemplate(
    input_variables=["language", "style_instruction", "topic_hint", "transcript", "cues"],
    template="""You are a professional subtitle translator. Translate the subtitles below into {language}.

Style: {style_instruction}
{topic_hint}
Full transcript of the video (for context only, do NOT translate or output it):
{transcript}

FORMATTING RULES:
1. Each input line has the form index|startTime|endTime|text
2. Keep the index, startTime and endTime of every line exactly as given
3. Translate only the text field
4. Output exactly one line for every input line, in the same order
5. Use the full transcript to resolve sentences that are split across lines
6. Keep each line short enough to read on screen
7. Return ONLY the translated lines in the same index|startTime|endTime|text format, with no commentary

Subtitles to translate:
{cues}

Translated subtitles:"""
)


@dataclass
class TranslationOutcome:
    cues: list[Cue]
    tokens_used: int


def _truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Truncate text to a maximum number of tokens, preserving sentence boundaries."""
    tokens = _encoding.encode(text)
    if len(tokens) <= max_tokens:
        return text
    truncated = _encoding.decode(tokens[:max_tokens])
    last_period = truncated.rfind('.')
    if last_period > len(truncated) * 0.8:
        return truncated[:last_period + 1]
    return truncated


def full_transcript(cues: list[Cue]) -> str:
    return " ".join(cue.text for cue in cues)


def serialize_cues(cues: list[Cue]) -> str:
    return "\n".join(f"{c.index}|{c.start_time}|{c.end_time}|{c.text}" for c in cues)


def build_prompt(cues: list[Cue], target_language: str, style: TranslationStyle, topic: str | None = None) -> str:
    transcript = _truncate_to_tokens(full_transcript(cues), settings.TRANSCRIPT_CONTEXT_MAX_TOKENS)
    topic_hint = f"Video topic: {topic.strip()}\n" if topic and topic.strip() else ""
    return SUBTITLE_TRANSLATION_PROMPT.format(
        language=language_name(target_language),
        style_instruction=STYLE_INSTRUCTIONS[style],
        topic_hint=topic_hint,
        transcript=transcript,
        cues=serialize_cues(cues),
    )


def parse_reply(reply: str) -> dict[int, str]:
    """
    Parse `index|start|end|text` lines into {index: text}.

    Only the first three `|` are delimiters; the text keeps any further
    pipes. Lines with fewer than four fields or a non-numeric index are
    dropped. A repeated index keeps its first occurrence.
    """
    parsed: dict[int, str] = {}
    for line in reply.strip().splitlines():
        parts = line.strip().split("|", 3)
        if len(parts) < 4:
            continue
        try:
            index = int(parts[0].strip())
        except ValueError:
            continue
        parsed.setdefault(index, parts[3].strip())
    return parsed


def align_to_original(original: list[Cue], translated_text: dict[int, str]) -> list[Cue]:
    """
    Rebuild the translated track on the original cues' indices and timecodes.

    Raises TranslationIncomplete if any original cue has no non-empty translation.
    """
    missing = [cue.index for cue in original if not translated_text.get(cue.index)]
    if missing:
        raise TranslationIncomplete(missing)
    return [cue.model_copy(update={"text": translated_text[cue.index]}) for cue in original]


async def translate_cues(
    cues: list[Cue],
    target_language: str,
    style: TranslationStyle = TranslationStyle.STANDARD,
    topic: str | None = None,
) -> TranslationOutcome:
    """Translate a whole video's cues with a single model call."""
    prompt = build_prompt(cues, target_language, style, topic)
    logger.info(
        f"Translating {len(cues)} cues to {target_language} ({style.value}), "
        f"prompt ~{len(_encoding.encode(prompt))} tokens"
    )

    result = await invoke_with_retry(prompt)
    translated = parse_reply(result.text)
    dropped = len(cues) - len(translated)
    if dropped > 0:
        logger.warning(f"Model reply parsed to {len(translated)} lines for {len(cues)} cues")

    aligned = align_to_original(cues, translated)
    return TranslationOutcome(cues=aligned, tokens_used=result.total_tokens)
