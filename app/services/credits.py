"""
Credit ledger backed by the user's Redis hash.

Reads normalise legacy single-number balances into buckets. Deductions run
as an optimistic WATCH/MULTI transaction on the user key: the balance is
re-read, re-checked and written back atomically, so two concurrent requests
can never both spend the same credits. Redis re-runs the transaction if the
key changed between WATCH and EXEC.
"""
import logging

from app.core.errors import InsufficientCredits, UserNotFound
from app.db.persistence import save_credit_transaction
from app.db.redis_client import get_redis, user_key
from app.schemas.credits import (
    LEGACY_FIELD,
    PERIODIC_FIELD,
    PURCHASED_FIELD,
    TOTAL_FIELD,
    TRIAL_FIELD,
    BucketBalance,
    DeductionResult,
    LegacyBalance,
    apply_deduction,
    normalize,
    parse_balance,
    plan_deduction,
    read_raw_balance,
)

logger = logging.getLogger(__name__)

FEATURE_TYPE = "ai_subs"


def _bucket_mapping(balance: BucketBalance) -> dict:
    return {
        TRIAL_FIELD: balance.trial,
        PERIODIC_FIELD: balance.periodic,
        PURCHASED_FIELD: balance.purchased,
        TOTAL_FIELD: balance.total,
    }


async def get_balance(user_id: str) -> BucketBalance:
    """Current balance of a user. Raises UserNotFound for unknown users."""
    r = await get_redis()
    doc = await r.hgetall(user_key(user_id))
    if not doc:
        raise UserNotFound("User not found")
    return parse_balance(doc)


async def check_sufficient(user_id: str, required_credits: int) -> bool:
    balance = await get_balance(user_id)
    return balance.total >= required_credits


async def _deduct_in_transaction(pipe, key: str, amount: int) -> DeductionResult:
    doc = await pipe.hgetall(key)
    if not doc:
        raise UserNotFound("User not found")

    raw = read_raw_balance(doc)
    before = normalize(raw)
    if before.total < amount:
        raise InsufficientCredits(required=amount, available=before.total)

    breakdown = plan_deduction(before, amount)
    after = apply_deduction(before, breakdown)

    pipe.multi()
    pipe.hset(key, mapping=_bucket_mapping(after))
    if isinstance(raw, LegacyBalance):
        # First write after a legacy read migrates the account to buckets
        pipe.hdel(key, LEGACY_FIELD)
    return DeductionResult(breakdown=breakdown, balance_before=before, balance_after=after)


async def deduct(user_id: str, amount: int, reason: str, video_id: str | None = None) -> DeductionResult:
    """
    Atomically take `amount` credits from a user: trial, then periodic, then purchased.

    Raises InsufficientCredits if the live balance cannot cover the amount,
    even when an earlier sufficiency check passed.
    """
    r = await get_redis()
    key = user_key(user_id)

    async def _apply(pipe):
        return await _deduct_in_transaction(pipe, key, amount)

    result = await r.transaction(_apply, key, value_from_callable=True)
    logger.info(
        f"Deducted {amount} credits from {user_id} "
        f"(trial={result.breakdown.trial_used}, periodic={result.breakdown.periodic_used}, "
        f"purchased={result.breakdown.purchased_used}); total now {result.balance_after.total}"
    )
    await _log_transaction(user_id, "DEDUCTION", result, reason, video_id)
    return result


async def refund(user_id: str, deduction: DeductionResult, reason: str, video_id: str | None = None) -> None:
    """Return a deduction's credits to the buckets they were taken from."""
    r = await get_redis()
    key = user_key(user_id)
    breakdown = deduction.breakdown

    pipe = r.pipeline(transaction=True)
    pipe.hincrby(key, TRIAL_FIELD, breakdown.trial_used)
    pipe.hincrby(key, PERIODIC_FIELD, breakdown.periodic_used)
    pipe.hincrby(key, PURCHASED_FIELD, breakdown.purchased_used)
    pipe.hincrby(key, TOTAL_FIELD, breakdown.total)
    await pipe.execute()

    logger.warning(f"Refunded {breakdown.total} credits to {user_id}: {reason}")
    refunded = DeductionResult(
        breakdown=breakdown,
        balance_before=deduction.balance_after,
        balance_after=deduction.balance_before,
    )
    await _log_transaction(user_id, "REFUND", refunded, reason, video_id)


async def _log_transaction(
    user_id: str,
    transaction_type: str,
    result: DeductionResult,
    reason: str,
    video_id: str | None,
) -> None:
    try:
        await save_credit_transaction(
            user_id=user_id,
            transaction_type=transaction_type,
            amount=result.breakdown.total,
            breakdown=result.breakdown.to_dict(),
            balance_before=result.balance_before.to_dict(),
            balance_after=result.balance_after.to_dict(),
            reason=reason,
            feature_type=FEATURE_TYPE,
            video_id=video_id,
        )
    except Exception as db_err:
        # The ledger in Redis is authoritative; the log is an audit trail
        logger.warning(f"Failed to persist credit transaction for {user_id}: {db_err}")
