import pytest
from unittest.mock import AsyncMock, patch

from app.core.errors import TranslationFailed, TranslationIncomplete, UpstreamError
from app.schemas.subtitle import Cue, TranslationStyle
from app.services.translation import (
    STYLE_INSTRUCTIONS,
    align_to_original,
    build_prompt,
    language_name,
    parse_reply,
    serialize_cues,
)
from tests.conftest import SAMPLE_CUES, SAMPLE_REPLY_VI, make_llm_response


class TestPromptBuilding:

    def test_serializes_pipe_delimited_lines(self):
        assert serialize_cues(SAMPLE_CUES[:2]) == (
            "1|00:00:00,000|00:00:02,000|Hello\n2|00:00:02,000|00:00:04,000|world"
        )

    def test_prompt_contains_context_and_cues(self):
        prompt = build_prompt(SAMPLE_CUES, "vi", TranslationStyle.STANDARD)
        assert "Vietnamese" in prompt
        assert "Hello world today" in prompt  # full transcript context
        assert "3|00:00:04,000|00:00:06,000|today" in prompt
        assert STYLE_INSTRUCTIONS[TranslationStyle.STANDARD] in prompt
        assert "Video topic" not in prompt

    def test_topic_hint_included(self):
        prompt = build_prompt(SAMPLE_CUES, "ja", TranslationStyle.EDUCATIONAL, topic="linear algebra")
        assert "Video topic: linear algebra" in prompt
        assert STYLE_INSTRUCTIONS[TranslationStyle.EDUCATIONAL] in prompt

    def test_every_style_has_a_distinct_instruction(self):
        instructions = [STYLE_INSTRUCTIONS[style] for style in TranslationStyle]
        assert len(instructions) == 6
        assert len(set(instructions)) == 6

    def test_unknown_language_code_passes_through(self):
        assert language_name("vi") == "Vietnamese"
        assert language_name("fil") == "Filipino"
        assert language_name("de") == "de"


class TestParseReply:

    def test_parses_well_formed_lines(self):
        parsed = parse_reply(SAMPLE_REPLY_VI)
        assert parsed == {1: "Xin chào", 2: "thế giới", 3: "hôm nay"}

    def test_text_may_contain_pipes(self):
        parsed = parse_reply("1|00:00:00,000|00:00:02,000|either | or | both")
        assert parsed[1] == "either | or | both"

    def test_malformed_lines_are_dropped(self):
        reply = "Here are your subtitles:\n1|00:00:00,000|00:00:02,000|Hola\n2|broken\nx|00:00:02,000|00:00:04,000|bad index"
        assert parse_reply(reply) == {1: "Hola"}

    def test_first_occurrence_of_an_index_wins(self):
        reply = "1|00:00:00,000|00:00:02,000|first\n1|00:00:00,000|00:00:02,000|second"
        assert parse_reply(reply) == {1: "first"}


class TestAlignToOriginal:

    def test_keeps_original_indices_and_timecodes(self):
        # The model shifted a timecode; the original timing must survive
        aligned = align_to_original(SAMPLE_CUES, {1: "Xin chào", 2: "thế giới", 3: "hôm nay"})
        for original, translated in zip(SAMPLE_CUES, aligned):
            assert translated.index == original.index
            assert translated.start_time == original.start_time
            assert translated.end_time == original.end_time
        assert [c.text for c in aligned] == ["Xin chào", "thế giới", "hôm nay"]

    def test_missing_cue_is_rejected(self):
        with pytest.raises(TranslationIncomplete) as exc_info:
            align_to_original(SAMPLE_CUES, {1: "Xin chào", 3: "hôm nay"})
        assert exc_info.value.missing == [2]
        assert isinstance(exc_info.value, TranslationFailed)

    def test_empty_translation_counts_as_missing(self):
        with pytest.raises(TranslationIncomplete):
            align_to_original(SAMPLE_CUES, {1: "Xin chào", 2: "", 3: "hôm nay"})

    def test_extra_indices_are_ignored(self):
        aligned = align_to_original(SAMPLE_CUES, {1: "a", 2: "b", 3: "c", 99: "stray"})
        assert len(aligned) == 3


@pytest.mark.asyncio
class TestTranslateCues:
    """Test the single-call translation of a whole track."""

    async def test_translates_whole_track_in_one_call(self, mock_llm):
        with patch("app.core.llm_client.llm", mock_llm):
            from app.services.translation import translate_cues

            outcome = await translate_cues(SAMPLE_CUES, "vi", TranslationStyle.STANDARD)
            mock_llm.ainvoke.assert_called_once()
            assert [c.text for c in outcome.cues] == ["Xin chào", "thế giới", "hôm nay"]
            assert outcome.tokens_used == 321

    async def test_style_reaches_the_prompt(self, mock_llm):
        with patch("app.core.llm_client.llm", mock_llm):
            from app.services.translation import translate_cues

            await translate_cues(SAMPLE_CUES, "vi", TranslationStyle.CINEMATIC, topic="heist movie")
            prompt = mock_llm.ainvoke.call_args[0][0]
            assert STYLE_INSTRUCTIONS[TranslationStyle.CINEMATIC] in prompt
            assert "heist movie" in prompt

    async def test_truncated_reply_fails(self, mock_llm):
        mock_llm.ainvoke = AsyncMock(return_value=make_llm_response("1|00:00:00,000|00:00:02,000|Xin chào"))

        with patch("app.core.llm_client.llm", mock_llm):
            from app.services.translation import translate_cues

            with pytest.raises(TranslationIncomplete) as exc_info:
                await translate_cues(SAMPLE_CUES, "vi")
            assert exc_info.value.missing == [2, 3]

    async def test_upstream_error_propagates(self, mock_llm):
        mock_llm.ainvoke = AsyncMock(side_effect=RuntimeError("invalid api key"))

        with patch("app.core.llm_client.llm", mock_llm):
            from app.services.translation import translate_cues

            with pytest.raises(UpstreamError):
                await translate_cues(SAMPLE_CUES, "vi")
            mock_llm.ainvoke.assert_called_once()

    async def test_text_with_pipes_round_trips(self, mock_llm):
        cues = [Cue(index=1, start_time="00:00:00,000", end_time="00:00:01,000", text="A | B")]
        mock_llm.ainvoke = AsyncMock(return_value=make_llm_response("1|00:00:00,000|00:00:01,000|Ä | B̈"))

        with patch("app.core.llm_client.llm", mock_llm):
            from app.services.translation import translate_cues

            outcome = await translate_cues(cues, "de")
            assert outcome.cues[0].text == "Ä | B̈"
