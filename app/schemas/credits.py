"""
Credit balance shapes.

Account documents come in two shapes: the bucketed one
(`credits.trial` / `credits.periodic` / `credits.purchased` / `credits.total`)
and a legacy single `credits` number. `parse_balance` is the only place
that knows about the legacy shape; everything past it sees buckets.
"""
from dataclasses import dataclass
from typing import Mapping, Union

TRIAL_FIELD = "credits.trial"
PERIODIC_FIELD = "credits.periodic"
PURCHASED_FIELD = "credits.purchased"
TOTAL_FIELD = "credits.total"
LEGACY_FIELD = "credits"

BUCKET_FIELDS = (TRIAL_FIELD, PERIODIC_FIELD, PURCHASED_FIELD)


@dataclass(frozen=True)
class LegacyBalance:
    amount: int


@dataclass(frozen=True)
class BucketBalance:
    trial: int = 0
    periodic: int = 0
    purchased: int = 0

    @property
    def total(self) -> int:
        return self.trial + self.periodic + self.purchased

    def to_dict(self) -> dict:
        return {
            "trial": self.trial,
            "periodic": self.periodic,
            "purchased": self.purchased,
            "total": self.total,
        }


RawBalance = Union[LegacyBalance, BucketBalance]


def _as_int(value) -> int:
    if value is None or value == "":
        return 0
    return max(0, int(float(value)))


def read_raw_balance(doc: Mapping[str, str]) -> RawBalance:
    """Tag a user document's credit fields as legacy or bucketed."""
    if any(field in doc for field in BUCKET_FIELDS):
        return BucketBalance(
            trial=_as_int(doc.get(TRIAL_FIELD)),
            periodic=_as_int(doc.get(PERIODIC_FIELD)),
            purchased=_as_int(doc.get(PURCHASED_FIELD)),
        )
    return LegacyBalance(amount=_as_int(doc.get(LEGACY_FIELD)))


def normalize(raw: RawBalance) -> BucketBalance:
    # Legacy balances predate trial/periodic grants, so they count as purchased.
    if isinstance(raw, LegacyBalance):
        return BucketBalance(purchased=raw.amount)
    return raw


def parse_balance(doc: Mapping[str, str]) -> BucketBalance:
    return normalize(read_raw_balance(doc))


@dataclass(frozen=True)
class DeductionBreakdown:
    trial_used: int = 0
    periodic_used: int = 0
    purchased_used: int = 0

    @property
    def total(self) -> int:
        return self.trial_used + self.periodic_used + self.purchased_used

    def to_dict(self) -> dict:
        return {
            "trialUsed": self.trial_used,
            "periodicUsed": self.periodic_used,
            "purchasedUsed": self.purchased_used,
        }


def plan_deduction(balance: BucketBalance, amount: int) -> DeductionBreakdown:
    """Split `amount` across buckets: trial first, then periodic, then purchased.

    The caller must have checked `balance.total >= amount`.
    """
    if amount < 0:
        raise ValueError("Deduction amount must be non-negative")
    if balance.total < amount:
        raise ValueError(f"Cannot deduct {amount} from a balance of {balance.total}")

    remaining = amount
    trial_used = min(balance.trial, remaining)
    remaining -= trial_used
    periodic_used = min(balance.periodic, remaining)
    remaining -= periodic_used
    purchased_used = min(balance.purchased, remaining)
    return DeductionBreakdown(trial_used, periodic_used, purchased_used)


def apply_deduction(balance: BucketBalance, breakdown: DeductionBreakdown) -> BucketBalance:
    return BucketBalance(
        trial=balance.trial - breakdown.trial_used,
        periodic=balance.periodic - breakdown.periodic_used,
        purchased=balance.purchased - breakdown.purchased_used,
    )


@dataclass(frozen=True)
class DeductionResult:
    breakdown: DeductionBreakdown
    balance_before: BucketBalance
    balance_after: BucketBalance
