"""
Credit pricing for subtitle translation.

Costs are computed with exact rationals and rounded up once, at the
conversion to credits, so the platform never under-charges.
"""
import math
from dataclasses import dataclass
from fractions import Fraction

# Prompt + completion tokens per subtitle line (the line is sent as context and as a cue, then returned)
TOKENS_PER_LINE = 60
# Model list price, USD per 1M tokens
PRICE_PER_MILLION_TOKENS = Fraction("0.40")
# Speech-to-text price, USD per audio minute (sources without a transcript)
TRANSCRIPTION_PRICE_PER_MINUTE = Fraction("0.024")
# 1 credit = $0.001
USD_PER_CREDIT = Fraction("0.001")

DEFAULT_PROFIT_MARGIN = Fraction(3)
MINIMUM_CHARGE = 1


@dataclass(frozen=True)
class CostEstimate:
    estimated_tokens: int
    upstream_cost_usd: Fraction
    credits: int


def estimate_cost(
    cue_count: int,
    duration_seconds: int = 0,
    has_transcript: bool = True,
    margin: Fraction | int | str = DEFAULT_PROFIT_MARGIN,
) -> CostEstimate:
    if cue_count < 0 or duration_seconds < 0:
        raise ValueError("cue_count and duration_seconds must be non-negative")
    margin = Fraction(margin)
    if margin < 1:
        raise ValueError("Profit margin must be at least 1x")

    estimated_tokens = cue_count * TOKENS_PER_LINE
    cost = Fraction(estimated_tokens, 1_000_000) * PRICE_PER_MILLION_TOKENS
    if not has_transcript:
        cost += Fraction(duration_seconds, 60) * TRANSCRIPTION_PRICE_PER_MINUTE

    if cost == 0:
        return CostEstimate(estimated_tokens, cost, 0)

    credits = math.ceil(cost * margin / USD_PER_CREDIT)
    return CostEstimate(estimated_tokens, cost, max(MINIMUM_CHARGE, credits))


def estimate_credits(
    cue_count: int,
    duration_seconds: int = 0,
    has_transcript: bool = True,
    margin: Fraction | int | str = DEFAULT_PROFIT_MARGIN,
) -> int:
    """Credits to charge for translating `cue_count` lines."""
    return estimate_cost(cue_count, duration_seconds, has_transcript, margin).credits
