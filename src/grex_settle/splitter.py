"""Split an expense amount among participants, and validate expenses.

All amounts are integer minor units, so splits are exact: whatever cannot
be divided evenly is handed out one minor unit at a time.
"""

import logging
from collections.abc import Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal

from .currency import validate_currency_code
from .exceptions import InvalidExpenseError
from .models import Expense, ParticipantShare, SplitMethod

logger = logging.getLogger(__name__)


def split_equally(total: int, participant_ids: Sequence[str]) -> dict[str, int]:
    """
    Split an amount equally, giving the remainder to the first participants.

    Example:
        split_equally(100, ["a", "b", "c"]) -> {"a": 34, "b": 33, "c": 33}
    """
    if not participant_ids:
        raise InvalidExpenseError("Participant list cannot be empty")

    base, remainder = divmod(total, len(participant_ids))
    return {
        member_id: base + (1 if idx < remainder else 0)
        for idx, member_id in enumerate(participant_ids)
    }


def _split_weighted(
    total: int, weights: Mapping[str, Decimal], weight_total: Decimal
) -> dict[str, int]:
    """Split proportionally; the last participant absorbs rounding."""
    result: dict[str, int] = {}
    member_ids = list(weights)
    assigned = 0
    for member_id in member_ids[:-1]:
        amount = int(
            (Decimal(total) * weights[member_id] / weight_total).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
        )
        result[member_id] = amount
        assigned += amount

    result[member_ids[-1]] = total - assigned
    return result


def split_by_percentage(
    total: int, percentages: Mapping[str, Decimal | int | str]
) -> dict[str, int]:
    """
    Split an amount by percentage. Percentages must sum to 100.

    Example:
        split_by_percentage(1000, {"a": 50, "b": 30, "c": 20})
        -> {"a": 500, "b": 300, "c": 200}
    """
    if not percentages:
        raise InvalidExpenseError("Percentages cannot be empty")

    weights = {member_id: Decimal(str(pct)) for member_id, pct in percentages.items()}
    if any(pct < 0 for pct in weights.values()):
        raise InvalidExpenseError("Percentages cannot be negative")

    total_pct = sum(weights.values(), Decimal(0))
    if total_pct != 100:
        raise InvalidExpenseError(f"Percentages must sum to 100%, got {total_pct}%")

    return _split_weighted(total, weights, total_pct)


def split_by_shares(total: int, shares: Mapping[str, int]) -> dict[str, int]:
    """
    Split an amount by share counts (e.g. 2 shares vs 1 share).

    Example:
        split_by_shares(900, {"a": 2, "b": 1}) -> {"a": 600, "b": 300}
    """
    if not shares:
        raise InvalidExpenseError("Shares cannot be empty")
    if any(count < 0 for count in shares.values()):
        raise InvalidExpenseError("Share counts cannot be negative")

    total_shares = sum(shares.values())
    if total_shares == 0:
        raise InvalidExpenseError("Total shares cannot be zero")

    weights = {member_id: Decimal(count) for member_id, count in shares.items()}
    return _split_weighted(total, weights, Decimal(total_shares))


def split_by_exact_amounts(total: int, amounts: Mapping[str, int]) -> dict[str, int]:
    """Use exact per-participant amounts, which must add up to the total."""
    if not amounts:
        raise InvalidExpenseError("Exact amounts cannot be empty")
    if any(amount < 0 for amount in amounts.values()):
        raise InvalidExpenseError("Exact amounts cannot be negative")

    assigned = sum(amounts.values())
    if assigned != total:
        raise InvalidExpenseError(
            f"Exact amounts must sum to the total. Expected: {total}, got: {assigned}"
        )
    return dict(amounts)


def build_participant_shares(
    method: SplitMethod,
    total: int,
    participant_ids: Sequence[str] | None = None,
    weights: Mapping[str, Decimal | int | str] | None = None,
) -> list[ParticipantShare]:
    """
    Build participant shares for an expense using a split method.

    Args:
        method: "equal", "percentage", "shares" or "exact"
        total: Expense amount in minor units
        participant_ids: Participants, required for "equal"
        weights: Percentages, share counts or exact amounts for the other methods

    Returns:
        Participant shares summing exactly to ``total``
    """
    if method == "equal":
        split = split_equally(total, participant_ids or [])
    elif weights is None:
        raise InvalidExpenseError(f"Split method {method!r} requires weights")
    elif method == "percentage":
        split = split_by_percentage(total, weights)
    elif method == "shares":
        split = split_by_shares(total, {k: int(v) for k, v in weights.items()})
    elif method == "exact":
        split = split_by_exact_amounts(total, {k: int(v) for k, v in weights.items()})
    else:
        raise InvalidExpenseError(f"Unknown split method: {method!r}")

    return [
        ParticipantShare(member_id=member_id, share_amount=amount)
        for member_id, amount in split.items()
    ]


def validate_expense(expense: Expense, member_ids: set[str] | None = None) -> None:
    """
    Validate an expense before it is recorded.

    The balance calculator never calls this; it is the check that keeps
    inconsistent expenses out of the data in the first place.

    Raises:
        InvalidExpenseError: If the expense is inconsistent
    """
    if not validate_currency_code(expense.currency):
        raise InvalidExpenseError(
            f"Expense {expense.id} has unsupported currency {expense.currency!r}"
        )

    if not expense.participants:
        raise InvalidExpenseError(f"Expense {expense.id} has no participants")

    participant_ids = [share.member_id for share in expense.participants]
    if len(set(participant_ids)) != len(participant_ids):
        raise InvalidExpenseError(f"Expense {expense.id} lists a participant twice")

    if member_ids is not None:
        unknown = set(participant_ids + [expense.payer_id]) - member_ids
        if unknown:
            raise InvalidExpenseError(
                f"Expense {expense.id} references non-members: {sorted(unknown)}"
            )

    if expense.shares_total != expense.amount:
        raise InvalidExpenseError(
            f"Shares of expense {expense.id} sum to {expense.shares_total}, "
            f"expected {expense.amount}"
        )

    logger.debug(f"Expense {expense.id} passed validation")
