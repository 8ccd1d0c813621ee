"""Settlement planning: turn net balances into suggested transfers."""

import heapq
import logging
from collections.abc import Mapping
from typing import Literal

from .exceptions import SettlementInvariantError
from .models import SettlementSuggestion

logger = logging.getLogger(__name__)

TieBreak = Literal["member_id", "input_order"]


def compute_settlement_plan(
    balances: Mapping[str, int],
    *,
    currency: str | None = None,
    tie_break: TieBreak = "member_id",
) -> list[SettlementSuggestion]:
    """
    Compute a short list of transfers that brings every balance to zero.

    Greedy matching:
    1. Split members into creditors (balance > 0) and debtors (balance < 0)
    2. Match the largest debtor with the largest creditor
    3. Transfer min(debt, credit) and reduce both sides
    4. Drop members whose balance reached zero, repeat until none remain

    Every transfer settles at least one member, so the plan never has more
    than ``n - 1`` transfers for ``n`` members with a non-zero balance.

    Args:
        balances: Member id -> signed balance (positive = owed money)
        currency: Currency stamped on each suggestion
        tie_break: Ordering among equal amounts; "member_id" sorts by id,
                   "input_order" keeps the order of ``balances``

    Returns:
        Ordered settlement suggestions (empty if everyone is settled)

    Raises:
        SettlementInvariantError: If the balances do not sum to zero and a
                                  residual is left after matching
    """
    if tie_break == "member_id":
        rank = {member_id: member_id for member_id in balances}
    elif tie_break == "input_order":
        rank = {member_id: idx for idx, member_id in enumerate(balances)}
    else:
        raise ValueError(f"Unknown tie-break policy: {tie_break!r}")

    # Heaps of (-magnitude, rank, member_id): largest amount first, ties by rank
    creditors = [
        (-amount, rank[member_id], member_id)
        for member_id, amount in balances.items()
        if amount > 0
    ]
    debtors = [
        (amount, rank[member_id], member_id)
        for member_id, amount in balances.items()
        if amount < 0
    ]
    heapq.heapify(creditors)
    heapq.heapify(debtors)

    plan: list[SettlementSuggestion] = []
    while creditors and debtors:
        neg_credit, creditor_rank, creditor = heapq.heappop(creditors)
        neg_debt, debtor_rank, debtor = heapq.heappop(debtors)
        credit, debt = -neg_credit, -neg_debt

        transfer = min(credit, debt)
        plan.append(
            SettlementSuggestion(
                payer_id=debtor,
                recipient_id=creditor,
                amount=transfer,
                currency=currency,
            )
        )

        if credit > transfer:
            heapq.heappush(creditors, (-(credit - transfer), creditor_rank, creditor))
        if debt > transfer:
            heapq.heappush(debtors, (-(debt - transfer), debtor_rank, debtor))

    residuals = {member_id: -neg for neg, _, member_id in creditors}
    residuals.update({member_id: neg for neg, _, member_id in debtors})
    if residuals:
        logger.error(
            f"Settlement plan left {len(residuals)} unsettled balances "
            f"(net {sum(residuals.values())}); input balances are not zero-sum"
        )
        raise SettlementInvariantError(residuals)

    logger.info(
        f"Settlement plan: {len(plan)} transfers for "
        f"{sum(1 for amount in balances.values() if amount != 0)} unsettled members"
    )
    return plan


def apply_settlement_plan(
    balances: Mapping[str, int], plan: list[SettlementSuggestion]
) -> dict[str, int]:
    """
    Apply suggested transfers as if they were recorded payments.

    This is a pure function; the input mapping is not modified.
    """
    result = dict(balances)
    for suggestion in plan:
        result[suggestion.payer_id] = result.get(suggestion.payer_id, 0) + suggestion.amount
        result[suggestion.recipient_id] = (
            result.get(suggestion.recipient_id, 0) - suggestion.amount
        )
    return result
